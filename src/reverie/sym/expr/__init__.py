"""
Symbolic expression graph: hash-consed nodes, operators, and graph utilities.
"""

from .ops import BinaryOperator, UnaryOperator, loss_reason
from .nodes import (
    NodeKind,
    Node,
    Literal,
    Variable,
    UnaryOp,
    BinaryOp,
    Conditional,
    FieldAccess,
    Construct,
    Call,
    Opaque,
    ExprArena,
)
from .rewrite import (
    postorder,
    node_count,
    free_variables,
    variable_names,
    substitute,
    substitute_names,
    rename_variables,
    render,
)
from .evaluate import RecordValue, evaluate
from .codec import encode_graphs, decode_graphs

__all__ = [
    "BinaryOperator",
    "UnaryOperator",
    "loss_reason",
    "NodeKind",
    "Node",
    "Literal",
    "Variable",
    "UnaryOp",
    "BinaryOp",
    "Conditional",
    "FieldAccess",
    "Construct",
    "Call",
    "Opaque",
    "ExprArena",
    "postorder",
    "node_count",
    "free_variables",
    "variable_names",
    "substitute",
    "substitute_names",
    "rename_variables",
    "render",
    "RecordValue",
    "evaluate",
    "encode_graphs",
    "decode_graphs",
]
