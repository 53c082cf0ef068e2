"""
Hash-consed symbolic expression graph.

Every node lives in an ``ExprArena`` and is addressed by its index (``nid``).
Construction goes through the arena's smart constructors, which deduplicate on
the structural key, so two syntactically identical subexpressions are always
the same Python object and equality is an identity check.

Nodes are immutable once created; analyses build new nodes rather than
patching existing ones.
"""
from __future__ import annotations

import hashlib
import threading
from enum import Enum
from fractions import Fraction
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..ir.types import ANY, Type, TypeKind, numeric_join, record_type, type_of_value
from .ops import BinaryOperator, UnaryOperator
from .semantics import apply_binary, apply_unary


class NodeKind(Enum):
    LITERAL = "literal"
    VARIABLE = "variable"
    UNARY = "unary"
    BINARY = "binary"
    CONDITIONAL = "conditional"
    FIELD = "field"
    CONSTRUCT = "construct"
    CALL = "call"
    OPAQUE = "opaque"


class Node:
    """Base class of symbolic expression nodes.

    Attributes:
        nid: Index of the node in its arena
        type: Static type of the value the node denotes
        digest: Structural content hash (stable across processes)
    """
    __slots__ = ("nid", "type", "digest")
    kind: NodeKind

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} nodes are immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} nodes are immutable")

    def children(self) -> Tuple["Node", ...]:
        return ()

    def __repr__(self) -> str:
        from .rewrite import render
        return f"<{type(self).__name__}#{self.nid} {render(self)}>"


class Literal(Node):
    __slots__ = ("value",)
    kind = NodeKind.LITERAL


class Variable(Node):
    __slots__ = ("name",)
    kind = NodeKind.VARIABLE


class UnaryOp(Node):
    __slots__ = ("op", "operand")
    kind = NodeKind.UNARY

    def children(self):
        return (self.operand,)


class BinaryOp(Node):
    __slots__ = ("op", "left", "right")
    kind = NodeKind.BINARY

    def children(self):
        return (self.left, self.right)


class Conditional(Node):
    __slots__ = ("cond", "then", "else_")
    kind = NodeKind.CONDITIONAL

    def children(self):
        return (self.cond, self.then, self.else_)


class FieldAccess(Node):
    __slots__ = ("record", "field")
    kind = NodeKind.FIELD

    def children(self):
        return (self.record,)


class Construct(Node):
    __slots__ = ("type_name", "fields")
    kind = NodeKind.CONSTRUCT

    def children(self):
        return tuple(value for _, value in self.fields)

    def field_value(self, name: str) -> Optional[Node]:
        for fname, value in self.fields:
            if fname == name:
                return value
        return None


class Call(Node):
    __slots__ = ("function", "args")
    kind = NodeKind.CALL

    def children(self):
        return self.args


class Opaque(Node):
    __slots__ = ("reason", "site")
    kind = NodeKind.OPAQUE


_FOLD_ERRORS = (ZeroDivisionError, TypeError, ValueError, OverflowError)


class ExprArena:
    """Owner of all nodes built during one compilation.

    The arena is safe to share between worker threads: interning is guarded by
    a lock so each structural key maps to exactly one node.
    """

    def __init__(self):
        self._nodes: List[Node] = []
        self._index: Dict[tuple, Node] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, nid: int) -> Node:
        return self._nodes[nid]

    def owns(self, node: Node) -> bool:
        return 0 <= node.nid < len(self._nodes) and self._nodes[node.nid] is node

    # ── interning ─────────────────────────────────────────────────────

    def _intern(self, cls, type_: Type, payload: tuple, attrs: Dict[str, Any],
                children: Sequence[Node] = ()) -> Node:
        for child in children:
            if not self.owns(child):
                raise ValueError(f"Node {child!r} belongs to a different arena")
        key = (cls.kind, type_, payload, tuple(c.nid for c in children))
        with self._lock:
            existing = self._index.get(key)
            if existing is not None:
                return existing
            node = object.__new__(cls)
            for name, value in attrs.items():
                object.__setattr__(node, name, value)
            h = hashlib.sha256()
            h.update(f"{cls.kind.value}|{type_}|{payload!r}".encode("utf-8"))
            for child in children:
                h.update(child.digest.encode("ascii"))
            object.__setattr__(node, "type", type_)
            object.__setattr__(node, "digest", h.hexdigest())
            object.__setattr__(node, "nid", len(self._nodes))
            self._nodes.append(node)
            self._index[key] = node
            return node

    # ── leaves ────────────────────────────────────────────────────────

    def literal(self, value: Any, type_: Optional[Type] = None) -> Literal:
        if type_ is None:
            type_ = type_of_value(value)
        elif type_.kind == TypeKind.REAL and isinstance(value, int) and not isinstance(value, bool):
            value = Fraction(value)
        payload = (type(value).__name__, repr(value))
        return self._intern(Literal, type_, payload, {"value": value})

    def true(self) -> Literal:
        return self.literal(True)

    def false(self) -> Literal:
        return self.literal(False)

    def variable(self, name: str, type_: Type = ANY) -> Variable:
        return self._intern(Variable, type_, (name,), {"name": name})

    def opaque(self, reason: str, site: str = "", type_: Type = ANY) -> Opaque:
        return self._intern(Opaque, type_, (reason, site), {"reason": reason, "site": site})

    # ── operators ─────────────────────────────────────────────────────

    def unary(self, op: UnaryOperator, operand: Node, type_: Optional[Type] = None) -> Node:
        if type_ is None:
            type_ = op.result_type(operand.type)
        if isinstance(operand, Literal):
            try:
                value = apply_unary(op, operand.value)
                return self.literal(value, _folded_type(type_, value))
            except _FOLD_ERRORS:
                pass
        if op is UnaryOperator.NOT and isinstance(operand, UnaryOp) and operand.op is UnaryOperator.NOT:
            return operand.operand
        return self._intern(UnaryOp, type_, (op,), {"op": op, "operand": operand}, (operand,))

    def binary(self, op: BinaryOperator, left: Node, right: Node,
               type_: Optional[Type] = None) -> Node:
        if type_ is None:
            type_ = op.result_type(left.type, right.type)
        if isinstance(left, Literal) and isinstance(right, Literal):
            try:
                value = apply_binary(op, left.value, right.value)
                return self.literal(value, _folded_type(type_, value))
            except _FOLD_ERRORS:
                pass
        if op is BinaryOperator.AND:
            if _is_bool(left, True) or left is right:
                return right
            if _is_bool(right, True):
                return left
            if _is_bool(left, False) or _is_bool(right, False):
                return self.false()
        elif op is BinaryOperator.OR:
            if _is_bool(left, False) or left is right:
                return right
            if _is_bool(right, False):
                return left
            if _is_bool(left, True) or _is_bool(right, True):
                return self.true()
        elif op is BinaryOperator.IMPLIES:
            if _is_bool(left, True):
                return right
            if _is_bool(left, False) or _is_bool(right, True) or left is right:
                return self.true()
        return self._intern(BinaryOp, type_, (op,),
                            {"op": op, "left": left, "right": right}, (left, right))

    def conditional(self, cond: Node, then: Node, else_: Node,
                    type_: Optional[Type] = None) -> Node:
        if _is_bool(cond, True):
            return then
        if _is_bool(cond, False):
            return else_
        if then is else_:
            return then
        if type_ is None:
            if then.type == else_.type:
                type_ = then.type
            else:
                type_ = numeric_join(then.type, else_.type)
        return self._intern(Conditional, type_, (),
                            {"cond": cond, "then": then, "else_": else_},
                            (cond, then, else_))

    # ── structure ─────────────────────────────────────────────────────

    def field(self, record: Node, name: str, type_: Optional[Type] = None) -> Node:
        if isinstance(record, Construct):
            value = record.field_value(name)
            if value is None:
                raise ValueError(f"Record '{record.type_name}' has no field '{name}'")
            return value
        if record.type.is_record:
            if not record.type.has_field(name):
                raise ValueError(f"Type {record.type} has no field '{name}'")
            type_ = record.type.field_type(name)
        elif type_ is None:
            type_ = ANY
        return self._intern(FieldAccess, type_, (name,),
                            {"record": record, "field": name}, (record,))

    def construct(self, type_name: str, fields: Sequence[Tuple[str, Node]],
                  type_: Optional[Type] = None) -> Construct:
        fields = tuple((name, value) for name, value in fields)
        if type_ is None:
            type_ = record_type(type_name, [(name, value.type) for name, value in fields])
        names = tuple(name for name, _ in fields)
        return self._intern(Construct, type_, (type_name, names),
                            {"type_name": type_name, "fields": fields},
                            tuple(value for _, value in fields))

    def call(self, function: str, args: Sequence[Node], type_: Type = ANY) -> Call:
        args = tuple(args)
        return self._intern(Call, type_, (function,),
                            {"function": function, "args": args}, args)

    # ── boolean helpers ───────────────────────────────────────────────

    def conj(self, *terms: Node) -> Node:
        result: Node = self.true()
        seen = set()
        for term in terms:
            if term.nid in seen:
                continue
            seen.add(term.nid)
            result = self.binary(BinaryOperator.AND, result, term)
        return result

    def negate(self, term: Node) -> Node:
        return self.unary(UnaryOperator.NOT, term)

    def implies(self, premise: Node, conclusion: Node) -> Node:
        return self.binary(BinaryOperator.IMPLIES, premise, conclusion)

    def eq(self, left: Node, right: Node) -> Node:
        return self.binary(BinaryOperator.EQ, left, right)

    # ── rebuilding ────────────────────────────────────────────────────

    def rebuild(self, node: Node, children: Sequence[Node]) -> Node:
        """Recreate ``node`` over new children, keeping its payload."""
        if isinstance(node, (Literal, Variable, Opaque)):
            return node
        if isinstance(node, UnaryOp):
            return self.unary(node.op, children[0], _keep_type(node, children))
        if isinstance(node, BinaryOp):
            return self.binary(node.op, children[0], children[1], _keep_type(node, children))
        if isinstance(node, Conditional):
            return self.conditional(children[0], children[1], children[2])
        if isinstance(node, FieldAccess):
            return self.field(children[0], node.field, node.type)
        if isinstance(node, Construct):
            names = [name for name, _ in node.fields]
            return self.construct(node.type_name, list(zip(names, children)), node.type)
        if isinstance(node, Call):
            return self.call(node.function, children, node.type)
        raise NotImplementedError(f"Node kind not supported: {type(node).__name__}")


def _is_bool(node: Node, value: bool) -> bool:
    return isinstance(node, Literal) and node.value is value


def _folded_type(declared: Type, value: Any) -> Type:
    inferred = type_of_value(value)
    if declared.kind == inferred.kind:
        return declared
    if declared.kind == TypeKind.REAL and inferred.kind == TypeKind.INT:
        return declared
    return inferred


def _keep_type(node: Node, children: Sequence[Node]) -> Optional[Type]:
    # Recompute when any child type changed (e.g. a variable replaced by a real expression).
    old = node.children()
    if all(a.type == b.type for a, b in zip(old, children)):
        return node.type
    return None
