"""
Inversion outcomes.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..builder.model import FunctionSymbolicModel
from ..expr.nodes import Node
from ..expr.rewrite import render


class InversionStatus(Enum):
    INVERTIBLE = "invertible"
    NOT_INVERTIBLE = "not_invertible"


@dataclass(frozen=True)
class InversionResult:
    """Outcome of an inversion request.

    Attributes:
        function: Name of the function (or composition) that was inverted
        status: Invertible or not
        inverse: The inverse model (Invertible only)
        failing_node: First node that could not be mirrored (NotInvertible only)
        reason: Human-readable reason (NotInvertible only)
        leg: For compositions, the leg that failed
    """
    function: str
    status: InversionStatus
    inverse: Optional[FunctionSymbolicModel] = None
    failing_node: Optional[Node] = None
    reason: str = ""
    leg: Optional[str] = None

    @classmethod
    def invertible(cls, function: str, inverse: FunctionSymbolicModel) -> "InversionResult":
        return cls(function, InversionStatus.INVERTIBLE, inverse=inverse)

    @classmethod
    def not_invertible(cls, function: str, node: Optional[Node], reason: str,
                       leg: Optional[str] = None) -> "InversionResult":
        return cls(function, InversionStatus.NOT_INVERTIBLE, failing_node=node,
                   reason=reason, leg=leg)

    @property
    def ok(self) -> bool:
        return self.status == InversionStatus.INVERTIBLE

    def __str__(self) -> str:
        if self.ok:
            return f"{self.function}: invertible"
        where = f" at {render(self.failing_node)}" if self.failing_node is not None else ""
        return f"{self.function}: not invertible{where}: {self.reason}"
