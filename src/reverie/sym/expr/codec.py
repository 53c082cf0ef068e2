"""
JSON encoding of symbolic graphs.

Nodes are written as a flat table in children-first order and referenced by
table position, so shared subgraphs are stored once. Decoding re-interns into
an arena, which restores sharing.
"""
from __future__ import annotations

from fractions import Fraction
from typing import Any, Dict, List, Sequence, Tuple

from ..ir.types import Type, TypeKind
from .nodes import (
    BinaryOp,
    Call,
    Conditional,
    Construct,
    ExprArena,
    FieldAccess,
    Literal,
    Node,
    Opaque,
    UnaryOp,
    Variable,
)
from .ops import BinaryOperator, UnaryOperator
from .rewrite import postorder


def type_to_json(t: Type) -> Any:
    if t.kind == TypeKind.RECORD:
        return {"record": t.name, "fields": [[n, type_to_json(ft)] for n, ft in t.fields]}
    return t.kind.value


def type_from_json(data: Any) -> Type:
    if isinstance(data, str):
        return Type(TypeKind(data))
    fields = tuple((n, type_from_json(ft)) for n, ft in data["fields"])
    return Type(TypeKind.RECORD, name=data["record"], fields=fields)


def value_to_json(value: Any) -> Any:
    if isinstance(value, Fraction):
        return {"frac": [value.numerator, value.denominator]}
    return value


def value_from_json(data: Any) -> Any:
    if isinstance(data, dict) and "frac" in data:
        num, den = data["frac"]
        return Fraction(num, den)
    return data


def encode_graphs(roots: Sequence[Node]) -> Dict[str, Any]:
    """Encode ``roots`` (and everything they reach) as a JSON-ready dict."""
    table: List[Dict[str, Any]] = []
    index: Dict[int, int] = {}
    for n in postorder(*roots):
        entry: Dict[str, Any] = {"k": n.kind.value, "t": type_to_json(n.type)}
        if isinstance(n, Literal):
            entry["v"] = value_to_json(n.value)
        elif isinstance(n, Variable):
            entry["name"] = n.name
        elif isinstance(n, UnaryOp):
            entry["op"] = n.op.value
        elif isinstance(n, BinaryOp):
            entry["op"] = n.op.value
        elif isinstance(n, FieldAccess):
            entry["field"] = n.field
        elif isinstance(n, Construct):
            entry["type_name"] = n.type_name
            entry["names"] = [name for name, _ in n.fields]
        elif isinstance(n, Call):
            entry["fn"] = n.function
        elif isinstance(n, Opaque):
            entry["reason"] = n.reason
            entry["site"] = n.site
        elif not isinstance(n, Conditional):
            raise NotImplementedError(f"Node kind not supported: {type(n).__name__}")
        entry["c"] = [index[c.nid] for c in n.children()]
        index[n.nid] = len(table)
        table.append(entry)
    return {"nodes": table, "roots": [index[r.nid] for r in roots]}


def decode_graphs(arena: ExprArena, data: Dict[str, Any]) -> Tuple[Node, ...]:
    """Rebuild the graphs of ``encode_graphs`` inside ``arena``."""
    built: List[Node] = []
    for entry in data["nodes"]:
        kind = entry["k"]
        t = type_from_json(entry["t"])
        kids = [built[i] for i in entry["c"]]
        if kind == "literal":
            node = arena.literal(value_from_json(entry["v"]), t)
        elif kind == "variable":
            node = arena.variable(entry["name"], t)
        elif kind == "unary":
            node = arena.unary(UnaryOperator(entry["op"]), kids[0], t)
        elif kind == "binary":
            node = arena.binary(BinaryOperator(entry["op"]), kids[0], kids[1], t)
        elif kind == "conditional":
            node = arena.conditional(kids[0], kids[1], kids[2], t)
        elif kind == "field":
            node = arena.field(kids[0], entry["field"], t)
        elif kind == "construct":
            node = arena.construct(entry["type_name"], list(zip(entry["names"], kids)), t)
        elif kind == "call":
            node = arena.call(entry["fn"], kids, t)
        elif kind == "opaque":
            node = arena.opaque(entry["reason"], entry["site"], t)
        else:
            raise ValueError(f"Unknown node kind in encoded graph: {kind!r}")
        built.append(node)
    return tuple(built[i] for i in data["roots"])
