"""
Concrete evaluation of symbolic graphs.

Used to check inserted runtime guards and to execute derived inverses.
Conditionals and boolean connectives are evaluated lazily so an untaken
branch can never fail.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..errors import EvaluationError
from .nodes import (
    BinaryOp,
    Call,
    Conditional,
    Construct,
    FieldAccess,
    Literal,
    Node,
    Opaque,
    UnaryOp,
    Variable,
)
from .ops import BinaryOperator
from .semantics import apply_binary, apply_unary


class RecordValue:
    """Concrete value of a ``Construct``: a type name plus ordered fields."""

    __slots__ = ("type_name", "fields")

    def __init__(self, type_name: str, fields):
        self.type_name = type_name
        self.fields: Tuple[Tuple[str, Any], ...] = tuple(
            fields.items() if isinstance(fields, Mapping) else fields)

    def __getitem__(self, name: str) -> Any:
        for fname, value in self.fields:
            if fname == name:
                return value
        raise KeyError(name)

    def __iter__(self) -> Iterator[str]:
        return iter(name for name, _ in self.fields)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RecordValue):
            return NotImplemented
        return self.type_name == other.type_name and self.fields == other.fields

    def __hash__(self) -> int:
        return hash((self.type_name, self.fields))

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.fields)

    def __repr__(self) -> str:
        inner = ", ".join(f"{n}={v!r}" for n, v in self.fields)
        return f"{self.type_name}({inner})"


def evaluate(root: Node, env: Mapping[str, Any],
             externals: Optional[Any] = None) -> Any:
    """Evaluate ``root`` with variables bound from ``env``.

    Args:
        root: Graph to evaluate
        env: Variable name to concrete value
        externals: Optional ExternalRegistry providing ``impl`` callables for
            ``Call`` nodes

    Returns:
        The concrete value

    Raises:
        EvaluationError: Unbound variable, opaque value, missing external
            implementation, or an arithmetic failure such as division by zero
    """
    values: Dict[int, Any] = {}
    stack: List[Tuple[Node, int]] = [(root, 0)]
    while stack:
        node, stage = stack.pop()
        if node.nid in values:
            continue

        if isinstance(node, Literal):
            values[node.nid] = node.value
        elif isinstance(node, Variable):
            if node.name not in env:
                raise EvaluationError(f"Unbound variable '{node.name}'")
            values[node.nid] = env[node.name]
        elif isinstance(node, Opaque):
            raise EvaluationError(f"Cannot evaluate opaque value: {node.reason}")
        elif isinstance(node, Conditional):
            if stage == 0:
                stack.append((node, 1))
                stack.append((node.cond, 0))
            else:
                branch = node.then if values[node.cond.nid] else node.else_
                if branch.nid in values:
                    values[node.nid] = values[branch.nid]
                else:
                    stack.append((node, 1))
                    stack.append((branch, 0))
        elif isinstance(node, BinaryOp) and node.op.is_logical:
            if stage == 0:
                stack.append((node, 1))
                stack.append((node.left, 0))
                continue
            left = bool(values[node.left.nid])
            decided = _short_circuit(node.op, left)
            if decided is not None:
                values[node.nid] = decided
            elif node.right.nid in values:
                values[node.nid] = bool(values[node.right.nid])
            else:
                stack.append((node, 1))
                stack.append((node.right, 0))
        else:
            kids = node.children()
            pending = [c for c in kids if c.nid not in values]
            if pending:
                stack.append((node, 1))
                for child in reversed(pending):
                    stack.append((child, 0))
                continue
            values[node.nid] = _apply(node, [values[c.nid] for c in kids], externals)
    return values[root.nid]


def _short_circuit(op: BinaryOperator, left: bool) -> Optional[bool]:
    if op is BinaryOperator.AND and not left:
        return False
    if op is BinaryOperator.OR and left:
        return True
    if op is BinaryOperator.IMPLIES and not left:
        return True
    return None


def _apply(node: Node, args: List[Any], externals) -> Any:
    try:
        if isinstance(node, UnaryOp):
            return apply_unary(node.op, args[0])
        if isinstance(node, BinaryOp):
            return apply_binary(node.op, args[0], args[1])
    except (ZeroDivisionError, TypeError, ValueError, OverflowError) as exc:
        raise EvaluationError(f"Evaluation of {node!r} failed: {exc}") from exc
    if isinstance(node, FieldAccess):
        record = args[0]
        try:
            return record[node.field]
        except (KeyError, TypeError) as exc:
            raise EvaluationError(f"Value {record!r} has no field '{node.field}'") from exc
    if isinstance(node, Construct):
        return RecordValue(node.type_name, [(name, v) for (name, _), v in zip(node.fields, args)])
    if isinstance(node, Call):
        fn = externals.get(node.function) if externals is not None else None
        if fn is None or fn.impl is None:
            raise EvaluationError(f"No implementation available for '{node.function}'")
        return fn.impl(*args)
    raise NotImplementedError(f"Node kind not supported: {type(node).__name__}")
