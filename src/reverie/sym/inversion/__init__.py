"""
Reversibility solver: derives inverse functions by structural mirroring.
"""

from .results import InversionStatus, InversionResult
from .reversibility_solver import ReversibilitySolver

__all__ = [
    "InversionStatus",
    "InversionResult",
    "ReversibilitySolver",
]
