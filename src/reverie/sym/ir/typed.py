"""
Typed function bodies as handed over by the type-checking front end.

Every name is resolved and every expression carries its type. The builder
converts these into symbolic graphs; nothing here is analysed directly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from .types import ANY, BOOL, Type, record_type, tuple_type, type_of_value


@dataclass(frozen=True)
class Location:
    """Source position of a declaration or call."""
    file: str
    line: int
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


class Tag(Enum):
    """Reversibility marker declared on a function."""
    REVERSIBLE = "reversible"
    LOSSY = "lossy"
    UNMARKED = "unmarked"


# ── Typed expressions ─────────────────────────────────────────────────

class TypedExpr:
    """Base class of typed expressions."""
    type: Type


@dataclass(frozen=True)
class Const(TypedExpr):
    value: Any
    type: Optional[Type] = None

    def __post_init__(self):
        if self.type is None:
            object.__setattr__(self, "type", type_of_value(self.value))


@dataclass(frozen=True)
class Name(TypedExpr):
    """Reference to a parameter or let-bound local."""
    name: str
    type: Type = ANY


@dataclass(frozen=True)
class Unary(TypedExpr):
    op: str
    operand: TypedExpr
    type: Type = ANY


@dataclass(frozen=True)
class Binary(TypedExpr):
    op: str
    left: TypedExpr
    right: TypedExpr
    type: Type = ANY


@dataclass(frozen=True)
class If(TypedExpr):
    cond: TypedExpr
    then: TypedExpr
    else_: TypedExpr
    type: Type = ANY


@dataclass(frozen=True)
class Member(TypedExpr):
    """Field projection ``record.field`` (also tuple positions ``_0``...)."""
    record: TypedExpr
    field: str
    type: Type = ANY


@dataclass(frozen=True)
class RecordLit(TypedExpr):
    type_name: str
    fields: Tuple[Tuple[str, TypedExpr], ...]
    type: Optional[Type] = None

    def __post_init__(self):
        if self.type is None:
            object.__setattr__(
                self, "type",
                record_type(self.type_name, [(n, e.type) for n, e in self.fields]))


@dataclass(frozen=True)
class TupleLit(TypedExpr):
    items: Tuple[TypedExpr, ...]
    type: Optional[Type] = None

    def __post_init__(self):
        if self.type is None:
            object.__setattr__(self, "type", tuple_type(*(e.type for e in self.items)))


@dataclass(frozen=True)
class Invoke(TypedExpr):
    """Call to an analysed function or an external one."""
    callee: str
    args: Tuple[TypedExpr, ...]
    type: Type = ANY
    location: Optional[Location] = None


@dataclass(frozen=True)
class Effect(TypedExpr):
    """An effectful operation (I/O, clock, randomness)."""
    description: str
    type: Type = ANY


@dataclass(frozen=True)
class Loop(TypedExpr):
    """Fold ``acc = step(acc)`` repeated ``count`` times starting from ``init``.

    ``count`` is None when the trip count is not statically known.
    """
    acc: str
    init: TypedExpr
    step: TypedExpr
    count: Optional[int] = None
    type: Type = ANY


# ── Function structure ────────────────────────────────────────────────

@dataclass(frozen=True)
class Let:
    name: str
    value: TypedExpr


@dataclass(frozen=True)
class Block:
    """A multi-statement body: let-bindings followed by the result expression."""
    lets: Tuple[Let, ...]
    result: TypedExpr


@dataclass(frozen=True)
class Param:
    name: str
    type: Type


@dataclass(frozen=True)
class Clause:
    """A declared ``assume`` or ``guarantee`` expression.

    Guarantees refer to the return value through the name ``result``.
    """
    expr: TypedExpr
    text: str = ""
    location: Optional[Location] = None

    def __post_init__(self):
        if self.expr.type.kind not in (BOOL.kind, ANY.kind):
            raise TypeError(f"Constraint must be boolean, got {self.expr.type}")


@dataclass(frozen=True)
class TypedFunction:
    """A type-checked function ready for symbolic analysis."""
    name: str
    params: Tuple[Param, ...]
    body: Block
    result_type: Type = ANY
    assumes: Tuple[Clause, ...] = ()
    guarantees: Tuple[Clause, ...] = ()
    tag: Tag = Tag.UNMARKED
    inverse_target: Optional[str] = None
    entry_point: bool = False
    location: Optional[Location] = None


@dataclass(frozen=True)
class Composition:
    """A declared pipeline ``legs[0] >> legs[1] >> ...``."""
    name: str
    legs: Tuple[str, ...]
    location: Optional[Location] = None


@dataclass(frozen=True)
class ExternalFunction:
    """A pure function implemented outside the unit.

    Attributes:
        name: Resolved function name
        arity: Number of arguments
        result_type: Declared return type
        inverse: Name of the registered inverse external, if any
        impl: Optional Python callable used for concrete evaluation
    """
    name: str
    arity: int
    result_type: Type = ANY
    inverse: Optional[str] = None
    impl: Optional[Callable[..., Any]] = field(default=None, compare=False, hash=False)


class ExternalRegistry:
    """Pure external functions the engine may reason about as ``Call`` nodes."""

    def __init__(self):
        self._functions: Dict[str, ExternalFunction] = {}

    def register(self, fn: ExternalFunction) -> ExternalFunction:
        if fn.name in self._functions:
            raise ValueError(f"External function '{fn.name}' already registered")
        self._functions[fn.name] = fn
        return fn

    def get(self, name: str) -> Optional[ExternalFunction]:
        return self._functions.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __iter__(self) -> Iterator[ExternalFunction]:
        return iter(self._functions[k] for k in sorted(self._functions))

    def __len__(self) -> int:
        return len(self._functions)


@dataclass
class CompilationUnit:
    """Everything the engine receives for one compilation unit."""
    name: str
    functions: Tuple[TypedFunction, ...] = ()
    compositions: Tuple[Composition, ...] = ()
    externals: ExternalRegistry = field(default_factory=ExternalRegistry)

    def __post_init__(self):
        self.functions = tuple(self.functions)
        self.compositions = tuple(self.compositions)
        names = [f.name for f in self.functions]
        dup = sorted({n for n in names if names.count(n) > 1})
        if dup:
            raise ValueError(f"Duplicate function definitions: {dup}")

    def function(self, name: str) -> Optional[TypedFunction]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    @property
    def function_table(self) -> Dict[str, TypedFunction]:
        return {fn.name: fn for fn in self.functions}
