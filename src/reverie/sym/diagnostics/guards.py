"""
Runtime guards for constraints the verifier could not decide.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..builder.model import ConstraintKind
from ..errors import AssumptionViolation, ContractViolation, GuaranteeViolation
from ..expr.evaluate import evaluate
from ..expr.nodes import Node
from ..expr.rewrite import render, variable_names
from ..ir.typed import Location


@dataclass(frozen=True)
class RuntimeGuard:
    """A check codegen inserts for an Unknown constraint.

    Assumption guards sit at the call and read the caller's variables;
    guarantee guards sit on the return path and read the parameters plus
    ``result``.

    Attributes:
        kind: Assumption or guarantee
        function: Function the guard is inserted into
        location: Call site (assumptions) or declaration (guarantees)
        condition: Boolean graph to evaluate
        text: Constraint text used in the failure message
    """
    kind: ConstraintKind
    function: str
    location: Optional[Location]
    condition: Node
    text: str

    @classmethod
    def from_report(cls, report) -> "RuntimeGuard":
        return cls(report.kind, report.function, report.location, report.condition,
                   report.constraint_text)

    @property
    def variables(self) -> frozenset:
        return variable_names(self.condition)

    def violation(self, values: Mapping[str, Any]) -> ContractViolation:
        exc = AssumptionViolation if self.kind == ConstraintKind.ASSUMPTION else GuaranteeViolation
        return exc(self.function, self.text, self.location, values)

    def check(self, env: Mapping[str, Any], externals=None) -> None:
        """Evaluate the guard; raise the matching violation if it is false."""
        if not evaluate(self.condition, env, externals):
            used = {name: env[name] for name in sorted(self.variables) if name in env}
            raise self.violation(used)

    def __str__(self) -> str:
        return f"guard[{self.kind.value}] in '{self.function}': {render(self.condition)}"
