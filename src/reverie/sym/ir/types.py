"""
Static types attached to typed bodies and symbolic nodes.

The front end has already resolved every type; this module only carries the
information the engine needs: numeric domain, booleans, and the ordered field
layout of records and tuples.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Optional, Sequence, Tuple


class TypeKind(Enum):
    """Domain of a value."""
    INT = "int"
    REAL = "real"
    BOOL = "bool"
    STR = "str"
    RECORD = "record"
    ANY = "any"


@dataclass(frozen=True)
class Type:
    """A resolved front-end type.

    Attributes:
        kind: Value domain
        name: Record type name (records only)
        fields: Ordered (field name, field type) pairs (records only)
    """
    kind: TypeKind
    name: Optional[str] = None
    fields: Tuple[Tuple[str, "Type"], ...] = ()

    @property
    def is_record(self) -> bool:
        return self.kind == TypeKind.RECORD

    def field_type(self, field: str) -> "Type":
        """Return the type of ``field``, or ``ANY`` when it is not declared."""
        for name, ftype in self.fields:
            if name == field:
                return ftype
        return ANY

    def has_field(self, field: str) -> bool:
        return any(name == field for name, _ in self.fields)

    def __str__(self) -> str:
        if self.kind == TypeKind.RECORD:
            inner = ", ".join(f"{n}: {t}" for n, t in self.fields)
            return f"{self.name}{{{inner}}}"
        return self.kind.value


INT = Type(TypeKind.INT)
REAL = Type(TypeKind.REAL)
BOOL = Type(TypeKind.BOOL)
STR = Type(TypeKind.STR)
ANY = Type(TypeKind.ANY)


def record_type(name: str, fields: Sequence[Tuple[str, Type]]) -> Type:
    """Build a record type preserving the declared field order."""
    names = [f for f, _ in fields]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate field in record type '{name}': {names}")
    return Type(TypeKind.RECORD, name=name, fields=tuple((f, t) for f, t in fields))


def tuple_type(*items: Type) -> Type:
    """Tuples are records named ``tuple`` with positional fields ``_0``, ``_1``, ..."""
    return record_type("tuple", [(f"_{i}", t) for i, t in enumerate(items)])


def numeric_join(left: Type, right: Type) -> Type:
    """Result type of arithmetic mixing ``left`` and ``right``."""
    if left.kind == TypeKind.REAL or right.kind == TypeKind.REAL:
        return REAL
    if left.kind == TypeKind.INT and right.kind == TypeKind.INT:
        return INT
    return ANY


def type_of_value(value) -> Type:
    """Infer the type of a Python literal value."""
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, int):
        return INT
    if isinstance(value, (float, Fraction)):
        return REAL
    if isinstance(value, str):
        return STR
    raise TypeError(f"Unsupported literal value: {value!r}")
