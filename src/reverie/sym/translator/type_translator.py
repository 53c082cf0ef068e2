"""
Type translator from engine types to Z3 sorts and constants.
"""
from fractions import Fraction
from typing import Any, Dict, Optional

import z3

from ..ir.types import Type, TypeKind


class OutsideTheory(Exception):
    """A term falls outside linear integer/real arithmetic with booleans."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class TypeTranslator:
    """Translates engine types to Z3 sorts in a given context.

    Mapping:
        int -> Int
        real -> Real
        bool -> Bool
        str -> String (equality only)
        record -> one constant per leaf field, named ``<name>.<field>``
    """

    def __init__(self, ctx: Optional[z3.Context] = None):
        """Initialize type translator.

        Args:
            ctx: Z3 context all sorts and constants are created in
        """
        self.ctx = ctx
        self._sort_cache: Dict[TypeKind, Any] = {}

    def sort_of(self, t: Type) -> Any:
        """Z3 sort of a scalar type.

        Raises:
            OutsideTheory: For records and unresolved types
        """
        if t.kind in self._sort_cache:
            return self._sort_cache[t.kind]
        if t.kind == TypeKind.INT:
            sort = z3.IntSort(self.ctx)
        elif t.kind == TypeKind.REAL:
            sort = z3.RealSort(self.ctx)
        elif t.kind == TypeKind.BOOL:
            sort = z3.BoolSort(self.ctx)
        elif t.kind == TypeKind.STR:
            sort = z3.StringSort(self.ctx)
        else:
            raise OutsideTheory(f"no solver sort for type {t}")
        self._sort_cache[t.kind] = sort
        return sort

    def constant(self, name: str, t: Type) -> Any:
        """Create a scalar constant ``name`` of type ``t``."""
        return z3.Const(name, self.sort_of(t))

    def value(self, v: Any, t: Type) -> Any:
        """Translate a Python literal of type ``t``."""
        if t.kind == TypeKind.BOOL:
            return z3.BoolVal(bool(v), self.ctx)
        if t.kind == TypeKind.INT:
            return z3.IntVal(int(v), self.ctx)
        if t.kind == TypeKind.REAL:
            return z3.RealVal(_real_text(v), self.ctx)
        if t.kind == TypeKind.STR:
            return z3.StringVal(v, self.ctx)
        raise OutsideTheory(f"literal {v!r} of type {t} has no solver value")


def _real_text(v: Any) -> str:
    if isinstance(v, float):
        return str(Fraction(v))
    return str(v)
