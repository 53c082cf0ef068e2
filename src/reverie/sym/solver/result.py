"""
Outcomes of single satisfiability checks.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SatStatus(Enum):
    SAT = "sat"
    UNSAT = "unsat"
    UNKNOWN = "unknown"


@dataclass
class SatCheck:
    """What one ``check()`` of a backend returned.

    Attributes:
        status: sat, unsat or unknown
        model: Values of the witness terms (sat only)
        reason: Backend explanation when it gave up (timeout, incompleteness)
        elapsed_ms: Wall time spent inside the backend
    """
    status: SatStatus
    model: Optional[Dict[str, Any]] = None
    reason: str = ""
    elapsed_ms: float = 0.0

    @property
    def is_sat(self) -> bool:
        return self.status is SatStatus.SAT

    @property
    def is_unsat(self) -> bool:
        return self.status is SatStatus.UNSAT

    @property
    def is_unknown(self) -> bool:
        return self.status is SatStatus.UNKNOWN

    def __str__(self) -> str:
        if self.is_sat:
            values = ", ".join(f"{k}={v}" for k, v in sorted((self.model or {}).items()))
            return f"sat [{values}] ({self.elapsed_ms:.2f}ms)"
        if self.is_unknown:
            return f"unknown: {self.reason or 'no verdict'} ({self.elapsed_ms:.2f}ms)"
        return f"unsat ({self.elapsed_ms:.2f}ms)"
