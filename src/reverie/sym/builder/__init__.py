"""
Expression builder: typed function bodies to symbolic models.
"""

from .model import (
    RESULT_NAME,
    ConstraintKind,
    Constraint,
    CallSite,
    FunctionSymbolicModel,
)
from .expression_builder import ExpressionBuilder

__all__ = [
    "RESULT_NAME",
    "ConstraintKind",
    "Constraint",
    "CallSite",
    "FunctionSymbolicModel",
    "ExpressionBuilder",
]
