"""
Traversal, substitution and rendering over symbolic graphs.

All walks use an explicit stack and visit each shared node once, so deep or
heavily shared graphs cost time proportional to their node count and never
hit the interpreter recursion limit.
"""
from __future__ import annotations

import hashlib
from fractions import Fraction
from typing import Callable, Dict, Iterable, List, Mapping, Tuple

from .nodes import (
    BinaryOp,
    Call,
    Conditional,
    Construct,
    ExprArena,
    FieldAccess,
    Literal,
    Node,
    NodeKind,
    Opaque,
    UnaryOp,
    Variable,
)
from .ops import BinaryOperator


def postorder(*roots: Node) -> List[Node]:
    """Return every distinct node reachable from ``roots``, children first."""
    order: List[Node] = []
    done = set()
    stack: List[Tuple[Node, bool]] = [(r, False) for r in reversed(roots)]
    while stack:
        node, expanded = stack.pop()
        if node.nid in done:
            continue
        if expanded:
            done.add(node.nid)
            order.append(node)
            continue
        stack.append((node, True))
        for child in reversed(node.children()):
            if child.nid not in done:
                stack.append((child, False))
    return order


def node_count(*roots: Node) -> int:
    return len(postorder(*roots))


def free_variables(*roots: Node) -> Tuple[Variable, ...]:
    """Variables reachable from ``roots``, sorted by name."""
    found = {n.name: n for n in postorder(*roots) if isinstance(n, Variable)}
    return tuple(found[name] for name in sorted(found))


def variable_names(*roots: Node) -> frozenset:
    return frozenset(n.name for n in postorder(*roots) if isinstance(n, Variable))


def nodes_of_kind(kind: NodeKind, *roots: Node) -> Tuple[Node, ...]:
    return tuple(n for n in postorder(*roots) if n.kind == kind)


def contains_kind(kind: NodeKind, *roots: Node) -> bool:
    return any(n.kind == kind for n in postorder(*roots))


def case_split_count(*roots: Node) -> int:
    """Number of points where a decision procedure has to branch."""
    count = 0
    for n in postorder(*roots):
        if isinstance(n, Conditional):
            count += 1
        elif isinstance(n, BinaryOp) and n.op in (BinaryOperator.OR, BinaryOperator.IMPLIES):
            count += 1
    return count


def dependency_map(root: Node) -> Dict[int, frozenset]:
    """Map each node id under ``root`` to the variable names it depends on."""
    deps: Dict[int, frozenset] = {}
    for n in postorder(root):
        if isinstance(n, Variable):
            deps[n.nid] = frozenset((n.name,))
        else:
            acc = frozenset()
            for c in n.children():
                acc = acc | deps[c.nid]
            deps[n.nid] = acc
    return deps


def substitute(arena: ExprArena, root: Node, mapping: Mapping[Node, Node]) -> Node:
    """Replace nodes by identity according to ``mapping``; returns a new graph."""
    if not mapping:
        return root
    replaced: Dict[int, Node] = {}
    for n in postorder(root):
        if n in mapping:
            replaced[n.nid] = mapping[n]
            continue
        kids = n.children()
        if not kids:
            replaced[n.nid] = n
            continue
        new_kids = [replaced[c.nid] for c in kids]
        if all(a is b for a, b in zip(kids, new_kids)):
            replaced[n.nid] = n
        else:
            replaced[n.nid] = arena.rebuild(n, new_kids)
    return replaced[root.nid]


def substitute_names(arena: ExprArena, root: Node, mapping: Mapping[str, Node]) -> Node:
    """Replace variables by name."""
    subst = {v: mapping[v.name] for v in free_variables(root) if v.name in mapping}
    return substitute(arena, root, subst)


def rename_variables(arena: ExprArena, root: Node, rename: Callable[[str], str]) -> Node:
    subst = {v: arena.variable(rename(v.name), v.type) for v in free_variables(root)}
    return substitute(arena, root, subst)


def combined_digest(nodes: Iterable[Node], *extra: str) -> str:
    """Order-sensitive content hash over several graphs plus extra strings."""
    h = hashlib.sha256()
    for n in nodes:
        h.update(n.digest.encode("ascii"))
        h.update(b";")
    for item in extra:
        h.update(item.encode("utf-8"))
        h.update(b";")
    return h.hexdigest()


# ── Rendering ─────────────────────────────────────────────────────────

def format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Fraction):
        return str(value.numerator) if value.denominator == 1 else f"{value.numerator}/{value.denominator}"
    if isinstance(value, str):
        return repr(value)
    return str(value)


def render(root: Node) -> str:
    """Render a graph as surface-like text."""
    text: Dict[int, str] = {}
    for n in postorder(root):
        if isinstance(n, Literal):
            s = format_value(n.value)
        elif isinstance(n, Variable):
            s = n.name
        elif isinstance(n, UnaryOp):
            inner = text[n.operand.nid]
            if n.op.value.isalpha():
                s = f"{n.op.value}({inner})" if n.op.value != "not" else f"not {_paren(n.operand, inner)}"
            else:
                s = f"{n.op.value}{_paren(n.operand, inner)}"
        elif isinstance(n, BinaryOp):
            s = f"{_paren(n.left, text[n.left.nid])} {n.op.value} {_paren(n.right, text[n.right.nid])}"
        elif isinstance(n, Conditional):
            s = f"if {text[n.cond.nid]} then {text[n.then.nid]} else {text[n.else_.nid]}"
        elif isinstance(n, FieldAccess):
            s = f"{_paren(n.record, text[n.record.nid])}.{n.field}"
        elif isinstance(n, Construct):
            inner = ", ".join(f"{name}: {text[v.nid]}" for name, v in n.fields)
            s = f"{n.type_name}{{{inner}}}"
        elif isinstance(n, Call):
            s = f"{n.function}({', '.join(text[a.nid] for a in n.args)})"
        elif isinstance(n, Opaque):
            s = f"<opaque: {n.reason}>"
        else:
            raise NotImplementedError(f"Node kind not supported: {type(n).__name__}")
        text[n.nid] = s
    return text[root.nid]


def _paren(node: Node, text: str) -> str:
    if isinstance(node, (BinaryOp, Conditional)):
        return f"({text})"
    return text
