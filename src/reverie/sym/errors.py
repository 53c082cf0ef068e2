"""
Exception hierarchy for the symbolic engine.

Analysis outcomes are returned as values; these exceptions cover compile
failures surfaced to the build, runtime contract failures raised by
inserted guards, and concrete evaluation errors.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .diagnostics.report import Diagnostic


class SymbolicError(Exception):
    """Base class for all errors raised by reverie.sym."""


class CompileError(SymbolicError):
    """One or more fatal diagnostics were produced for a compilation unit."""

    def __init__(self, diagnostics: List["Diagnostic"]):
        self.diagnostics = list(diagnostics)
        lines = [str(d) for d in self.diagnostics]
        super().__init__("\n".join(lines) if lines else "compilation failed")


class EvaluationError(SymbolicError):
    """Concrete evaluation of a symbolic graph failed."""


class ContractViolation(SymbolicError):
    """A runtime-checked contract evaluated to false."""

    kind = "contract"

    def __init__(self, function: str, constraint: str,
                 location: Optional[Any] = None,
                 values: Optional[Dict[str, Any]] = None):
        self.function = function
        self.constraint = constraint
        self.location = location
        self.values = dict(values or {})
        where = f" at {location}" if location is not None else ""
        super().__init__(f"{self.kind} violated in '{function}'{where}: {constraint}")


class AssumptionViolation(ContractViolation):
    """A runtime-checked precondition was false at the actual call."""

    kind = "assumption"


class GuaranteeViolation(ContractViolation):
    """A runtime-checked postcondition was false at return."""

    kind = "guarantee"
