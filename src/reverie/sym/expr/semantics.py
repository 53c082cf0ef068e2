"""
Concrete semantics of the operator set.

Shared by constant folding in the arena and by the evaluator so that a folded
literal always equals what evaluation would have produced.
"""
from __future__ import annotations

import hashlib
import math
from fractions import Fraction
from typing import Any

from .ops import BinaryOperator, UnaryOperator


def true_divide(a: Any, b: Any) -> Any:
    """Language ``/``: exact on integers and rationals, IEEE on floats."""
    if b == 0:
        raise ZeroDivisionError("division by zero")
    if isinstance(a, float) or isinstance(b, float):
        return a / b
    return Fraction(a) / Fraction(b)


def stable_hash(value: Any) -> int:
    digest = hashlib.sha256(repr(value).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def apply_unary(op: UnaryOperator, value: Any) -> Any:
    if op is UnaryOperator.NEG:
        return -value
    if op is UnaryOperator.NOT:
        return not value
    if op is UnaryOperator.ABS:
        return abs(value)
    if op is UnaryOperator.ROUND:
        return round(value)
    if op is UnaryOperator.FLOOR:
        return math.floor(value)
    if op is UnaryOperator.CEIL:
        return math.ceil(value)
    if op is UnaryOperator.TRUNC:
        return math.trunc(value)
    if op is UnaryOperator.HASH:
        return stable_hash(value)
    raise NotImplementedError(f"Unary operator not supported: {op}")


def apply_binary(op: BinaryOperator, a: Any, b: Any) -> Any:
    if op is BinaryOperator.ADD:
        return a + b
    if op is BinaryOperator.SUB:
        return a - b
    if op is BinaryOperator.MUL:
        return a * b
    if op is BinaryOperator.DIV:
        return true_divide(a, b)
    if op is BinaryOperator.FLOORDIV:
        return a // b
    if op is BinaryOperator.MOD:
        return a % b
    if op is BinaryOperator.POW:
        return a ** b
    if op is BinaryOperator.EQ:
        return a == b
    if op is BinaryOperator.NE:
        return a != b
    if op is BinaryOperator.LT:
        return a < b
    if op is BinaryOperator.LE:
        return a <= b
    if op is BinaryOperator.GT:
        return a > b
    if op is BinaryOperator.GE:
        return a >= b
    if op is BinaryOperator.AND:
        return bool(a) and bool(b)
    if op is BinaryOperator.OR:
        return bool(a) or bool(b)
    if op is BinaryOperator.IMPLIES:
        return (not a) or bool(b)
    raise NotImplementedError(f"Binary operator not supported: {op}")
