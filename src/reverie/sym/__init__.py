"""
Symbolic reasoning and invertibility engine.

This package turns typed function bodies into hash-consed symbolic graphs,
verifies their declared assumptions and guarantees with an SMT solver, and
derives inverses of functions declared reversible.
"""

__version__ = "0.1.0"

from .config import EngineConfig
from .errors import (
    SymbolicError,
    CompileError,
    EvaluationError,
    ContractViolation,
    AssumptionViolation,
    GuaranteeViolation,
)
from .solver import (
    SatBackend,
    SatCheck,
    SatStatus,
    Z3Solver,
)
from .expr import ExprArena, evaluate, render
from .builder import ExpressionBuilder, FunctionSymbolicModel
from .analysis import ConstraintVerifier, InterproceduralVerifier, ProofResult, ProofStatus
from .inversion import InversionResult, InversionStatus, ReversibilitySolver
from .diagnostics import (
    Diagnostic,
    ResultCache,
    RuntimeGuard,
    Severity,
    UnitReport,
)
from .engine import (
    Engine,
    analyze_unit,
    verify_function,
    invert_function,
)

__all__ = [
    "EngineConfig",
    "SymbolicError",
    "CompileError",
    "EvaluationError",
    "ContractViolation",
    "AssumptionViolation",
    "GuaranteeViolation",
    "SatBackend",
    "SatCheck",
    "SatStatus",
    "Z3Solver",
    "ExprArena",
    "evaluate",
    "render",
    "ExpressionBuilder",
    "FunctionSymbolicModel",
    "ConstraintVerifier",
    "InterproceduralVerifier",
    "ProofResult",
    "ProofStatus",
    "InversionResult",
    "InversionStatus",
    "ReversibilitySolver",
    "Diagnostic",
    "ResultCache",
    "RuntimeGuard",
    "Severity",
    "UnitReport",
    "Engine",
    "analyze_unit",
    "verify_function",
    "invert_function",
]
