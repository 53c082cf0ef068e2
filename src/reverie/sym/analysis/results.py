"""
Proof outcomes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ProofStatus(Enum):
    PROVEN = "proven"
    REFUTED = "refuted"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProofResult:
    """Outcome of one proof obligation.

    Attributes:
        status: Proven, Refuted or Unknown
        counterexample: Falsifying assignment (Refuted only)
        reason: Why no verdict was reached (Unknown only)
    """
    status: ProofStatus
    counterexample: Optional[Dict[str, Any]] = field(default=None, compare=True, hash=False)
    reason: str = ""

    @classmethod
    def proven(cls) -> "ProofResult":
        return cls(ProofStatus.PROVEN)

    @classmethod
    def refuted(cls, counterexample: Dict[str, Any]) -> "ProofResult":
        return cls(ProofStatus.REFUTED, counterexample=dict(counterexample))

    @classmethod
    def unknown(cls, reason: str) -> "ProofResult":
        return cls(ProofStatus.UNKNOWN, reason=reason)

    @property
    def is_proven(self) -> bool:
        return self.status == ProofStatus.PROVEN

    @property
    def is_refuted(self) -> bool:
        return self.status == ProofStatus.REFUTED

    @property
    def is_unknown(self) -> bool:
        return self.status == ProofStatus.UNKNOWN

    def __str__(self) -> str:
        if self.is_refuted:
            cex = ", ".join(f"{k}={v}" for k, v in sorted((self.counterexample or {}).items()))
            return f"refuted ({cex})" if cex else "refuted"
        if self.is_unknown:
            return f"unknown ({self.reason})" if self.reason else "unknown"
        return "proven"
