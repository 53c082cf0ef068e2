"""Satisfiability backends used by the constraint verifier."""

from .base import SatBackend
from .result import SatCheck, SatStatus
from .z3_solver import Z3Solver

__all__ = [
    "SatBackend",
    "SatCheck",
    "SatStatus",
    "Z3Solver",
]
