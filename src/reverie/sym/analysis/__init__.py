"""
Constraint verification: three-way verdicts and interprocedural propagation.
"""

from .results import ProofStatus, ProofResult
from .memo import MemoTable
from .constraint_verifier import ConstraintOutcome, ConstraintVerifier, ModelVerification
from .interproc import CallGraph, EntryFacts, InterproceduralVerifier, conjuncts

__all__ = [
    "ProofStatus",
    "ProofResult",
    "MemoTable",
    "ConstraintOutcome",
    "ConstraintVerifier",
    "ModelVerification",
    "CallGraph",
    "EntryFacts",
    "InterproceduralVerifier",
    "conjuncts",
]
