"""
Operator vocabulary of the symbolic graph.

Each operator knows its surface spelling, its result domain, and (for the
ones that destroy information) the reason inversion has to stop there.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from ..ir.types import BOOL, INT, REAL, Type, TypeKind, numeric_join


class UnaryOperator(Enum):
    NEG = "-"
    NOT = "not"
    ABS = "abs"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"
    TRUNC = "trunc"
    HASH = "hash"

    @classmethod
    def from_symbol(cls, symbol: str) -> "UnaryOperator":
        op = _UNARY_ALIASES.get(symbol)
        if op is None:
            try:
                op = cls(symbol)
            except ValueError:
                raise ValueError(f"Unknown unary operator: {symbol!r}") from None
        return op

    def result_type(self, operand: Type) -> Type:
        if self is UnaryOperator.NOT:
            return BOOL
        if self in (UnaryOperator.NEG, UnaryOperator.ABS):
            return operand
        return INT


class BinaryOperator(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    FLOORDIV = "//"
    MOD = "%"
    POW = "**"
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    AND = "and"
    OR = "or"
    IMPLIES = "implies"

    @classmethod
    def from_symbol(cls, symbol: str) -> "BinaryOperator":
        op = _BINARY_ALIASES.get(symbol)
        if op is None:
            try:
                op = cls(symbol)
            except ValueError:
                raise ValueError(f"Unknown binary operator: {symbol!r}") from None
        return op

    @property
    def is_comparison(self) -> bool:
        return self in _COMPARISONS

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOperator.AND, BinaryOperator.OR, BinaryOperator.IMPLIES)

    def result_type(self, left: Type, right: Type) -> Type:
        if self.is_comparison or self.is_logical:
            return BOOL
        joined = numeric_join(left, right)
        if self is BinaryOperator.DIV and joined.kind != TypeKind.ANY:
            return REAL
        return joined


_UNARY_ALIASES: Dict[str, UnaryOperator] = {
    "!": UnaryOperator.NOT,
    "neg": UnaryOperator.NEG,
}

_BINARY_ALIASES: Dict[str, BinaryOperator] = {
    "&&": BinaryOperator.AND,
    "||": BinaryOperator.OR,
    "=>": BinaryOperator.IMPLIES,
    "==>": BinaryOperator.IMPLIES,
}

_COMPARISONS = frozenset({
    BinaryOperator.EQ, BinaryOperator.NE,
    BinaryOperator.LT, BinaryOperator.LE,
    BinaryOperator.GT, BinaryOperator.GE,
})


UNARY_LOSS_REASONS: Dict[UnaryOperator, str] = {
    UnaryOperator.ROUND: "rounding loses information",
    UnaryOperator.FLOOR: "floor loses the fractional part",
    UnaryOperator.CEIL: "ceiling loses the fractional part",
    UnaryOperator.TRUNC: "truncation loses information",
    UnaryOperator.ABS: "absolute value discards the sign",
    UnaryOperator.HASH: "hashing is not injective",
}

BINARY_LOSS_REASONS: Dict[BinaryOperator, str] = {
    BinaryOperator.MOD: "modulo discards the quotient",
    BinaryOperator.FLOORDIV: "floor division discards the remainder",
    BinaryOperator.POW: "exponentiation has no registered inverse",
    BinaryOperator.AND: "boolean connective is not injective",
    BinaryOperator.OR: "boolean connective is not injective",
    BinaryOperator.IMPLIES: "boolean connective is not injective",
}


def loss_reason(op) -> Optional[str]:
    """Why ``op`` cannot be mirrored, or None if it has an inverse rule."""
    if isinstance(op, UnaryOperator):
        return UNARY_LOSS_REASONS.get(op)
    if op.is_comparison:
        return "comparison collapses a wider domain to a boolean"
    return BINARY_LOSS_REASONS.get(op)
