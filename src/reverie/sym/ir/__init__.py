"""
Typed input IR consumed from the type-checking front end.
"""

from .types import (
    Type,
    TypeKind,
    INT,
    REAL,
    BOOL,
    STR,
    ANY,
    record_type,
    tuple_type,
    numeric_join,
    type_of_value,
)
from .typed import (
    Location,
    Tag,
    TypedExpr,
    Const,
    Name,
    Unary,
    Binary,
    If,
    Member,
    RecordLit,
    TupleLit,
    Invoke,
    Effect,
    Loop,
    Let,
    Block,
    Param,
    Clause,
    TypedFunction,
    Composition,
    ExternalFunction,
    ExternalRegistry,
    CompilationUnit,
)

__all__ = [
    "Type",
    "TypeKind",
    "INT",
    "REAL",
    "BOOL",
    "STR",
    "ANY",
    "record_type",
    "tuple_type",
    "numeric_join",
    "type_of_value",
    "Location",
    "Tag",
    "TypedExpr",
    "Const",
    "Name",
    "Unary",
    "Binary",
    "If",
    "Member",
    "RecordLit",
    "TupleLit",
    "Invoke",
    "Effect",
    "Loop",
    "Let",
    "Block",
    "Param",
    "Clause",
    "TypedFunction",
    "Composition",
    "ExternalFunction",
    "ExternalRegistry",
    "CompilationUnit",
]
