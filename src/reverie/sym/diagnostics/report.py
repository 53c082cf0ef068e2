"""
Per-unit aggregation of verification and inversion outcomes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..analysis.constraint_verifier import ConstraintOutcome
from ..analysis.results import ProofResult, ProofStatus
from ..builder.model import ConstraintKind, FunctionSymbolicModel
from ..errors import CompileError
from ..expr.nodes import Node
from ..expr.rewrite import render
from ..inversion.results import InversionResult, InversionStatus
from ..ir.typed import Location
from .guards import RuntimeGuard


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A compile-time message tied to a function and source position."""
    severity: Severity
    function: str
    message: str
    location: Optional[Location] = None

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def __str__(self) -> str:
        where = f"{self.location}: " if self.location is not None else ""
        return f"{where}{self.severity.value}: in '{self.function}': {self.message}"


@dataclass(frozen=True)
class ConstraintReport:
    """Outcome of one constraint, as shown to users and used by codegen.

    Attributes:
        location: Declaration or call-site position
        function: Function whose body the constraint applies to (the caller,
            for assumptions checked at a call site)
        constraint_text: Source text of the declared constraint
        kind: Assumption or guarantee
        outcome: Proof result
        condition: Boolean graph a runtime guard evaluates
        callee: Declaring function for call-site assumptions
        call_site: Call-site label for call-site assumptions
    """
    location: Optional[Location]
    function: str
    constraint_text: str
    kind: ConstraintKind
    outcome: ProofResult
    condition: Node
    callee: Optional[str] = None
    call_site: Optional[str] = None

    @classmethod
    def from_outcome(cls, function: str, outcome: ConstraintOutcome) -> "ConstraintReport":
        c = outcome.constraint
        site = outcome.call_site
        return cls(
            location=c.location,
            function=function,
            constraint_text=c.display,
            kind=c.kind,
            outcome=outcome.result,
            condition=c.expr,
            callee=c.function if site is not None else None,
            call_site=site.label if site is not None else None,
        )

    def __str__(self) -> str:
        where = f" at {self.call_site}" if self.call_site else ""
        return f"{self.kind.value} '{self.constraint_text}' of '{self.callee or self.function}'{where}: {self.outcome}"


@dataclass(frozen=True)
class InversionReport:
    function: str
    outcome: InversionStatus
    reason: str = ""
    leg: Optional[str] = None
    failing_node: Optional[str] = None
    inverse: Optional[FunctionSymbolicModel] = field(default=None, compare=False)
    location: Optional[Location] = None

    @classmethod
    def from_result(cls, result: InversionResult,
                    location: Optional[Location] = None) -> "InversionReport":
        failing = render(result.failing_node) if result.failing_node is not None else None
        return cls(result.function, result.status, result.reason, result.leg,
                   failing, result.inverse, location)

    @property
    def ok(self) -> bool:
        return self.outcome == InversionStatus.INVERTIBLE

    def __str__(self) -> str:
        if self.ok:
            return f"'{self.function}' is invertible"
        at = f" at '{self.failing_node}'" if self.failing_node else ""
        return f"'{self.function}' is not invertible{at}: {self.reason}"


@dataclass(frozen=True)
class FunctionReport:
    """Complete result set for one function (the unit of caching)."""
    function: str
    constraints: Tuple[ConstraintReport, ...] = ()
    inversion: Optional[InversionReport] = None
    cached: bool = False


@dataclass
class UnitReport:
    """Everything the engine concluded about one compilation unit."""
    unit: str
    functions: List[FunctionReport] = field(default_factory=list)
    compositions: List[InversionReport] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    guards: List[RuntimeGuard] = field(default_factory=list)
    unstable_cycles: List[Tuple[str, ...]] = field(default_factory=list)

    @property
    def constraints(self) -> List[ConstraintReport]:
        return [c for f in self.functions for c in f.constraints]

    @property
    def inversions(self) -> List[InversionReport]:
        return [f.inversion for f in self.functions if f.inversion is not None] + list(self.compositions)

    def function(self, name: str) -> Optional[FunctionReport]:
        for f in self.functions:
            if f.function == name:
                return f
        return None

    def inversion(self, name: str) -> Optional[InversionReport]:
        for r in self.inversions:
            if r.function == name:
                return r
        return None

    def count(self, status: ProofStatus) -> int:
        return sum(1 for c in self.constraints if c.outcome.status == status)

    @property
    def proven(self) -> int:
        return self.count(ProofStatus.PROVEN)

    @property
    def unknown(self) -> int:
        return self.count(ProofStatus.UNKNOWN)

    @property
    def refuted(self) -> int:
        return self.count(ProofStatus.REFUTED)

    @property
    def inverted(self) -> int:
        return sum(1 for r in self.inversions if r.ok)

    @property
    def not_inverted(self) -> int:
        return sum(1 for r in self.inversions if not r.ok)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    @property
    def ok(self) -> bool:
        return not self.errors

    def counts(self) -> Dict[str, int]:
        return {
            "proven": self.proven,
            "unknown": self.unknown,
            "refuted": self.refuted,
            "inverted": self.inverted,
            "not_inverted": self.not_inverted,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
        }

    def summary(self) -> str:
        c = self.counts()
        lines = [
            f"Unit '{self.unit}':",
            f"  constraints: {c['proven']} proven, {c['unknown']} unknown, {c['refuted']} refuted",
            f"  inversions:  {c['inverted']} invertible, {c['not_inverted']} not invertible",
            f"  guards:      {len(self.guards)} inserted",
        ]
        for d in self.diagnostics:
            lines.append(f"  {d}")
        return "\n".join(lines)

    def raise_for_errors(self) -> None:
        errors = self.errors
        if errors:
            raise CompileError(errors)


