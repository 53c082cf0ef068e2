"""
Translation from symbolic graphs to Z3 terms.
"""

from .type_translator import TypeTranslator, OutsideTheory
from .expr_to_z3 import ExprToZ3Translator, RecordTerm

__all__ = [
    "TypeTranslator",
    "OutsideTheory",
    "ExprToZ3Translator",
    "RecordTerm",
]
