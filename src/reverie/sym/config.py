"""
Shared configuration for the symbolic engine.

Module constants are the defaults; each can be overridden through a
``REVERIE_SYM_*`` environment variable. ``EngineConfig`` snapshots them so an
individual engine can be tuned without touching the environment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# ── Builder budgets ───────────────────────────────────────────────────
MAX_INLINE_DEPTH: int = int(os.getenv("REVERIE_SYM_MAX_INLINE_DEPTH", "4"))
MAX_LOOP_UNROLL: int = int(os.getenv("REVERIE_SYM_MAX_LOOP_UNROLL", "8"))

# ── Verifier ceilings ─────────────────────────────────────────────────
MAX_TERM_SIZE: int = int(os.getenv("REVERIE_SYM_MAX_TERM_SIZE", "2000"))
MAX_CASE_SPLITS: int = int(os.getenv("REVERIE_SYM_MAX_CASE_SPLITS", "64"))
Z3_TIMEOUT_MS: int = int(os.getenv("REVERIE_SYM_Z3_TIMEOUT_MS", "5000"))

# ── Interprocedural fixed point ───────────────────────────────────────
MAX_FIXPOINT_ROUNDS: int = int(os.getenv("REVERIE_SYM_MAX_FIXPOINT_ROUNDS", "4"))

# ── Inversion ─────────────────────────────────────────────────────────
MAX_INVERSION_DEPTH: int = int(os.getenv("REVERIE_SYM_MAX_INVERSION_DEPTH", "256"))

# ── Scheduling / cache ────────────────────────────────────────────────
MAX_WORKERS: int = int(os.getenv("REVERIE_SYM_MAX_WORKERS", "1"))
CACHE_PATH: Optional[str] = os.getenv("REVERIE_SYM_CACHE_PATH") or None

ENGINE_VERSION: str = "reverie-sym-0.1.0"


@dataclass(frozen=True)
class EngineConfig:
    """Limits and switches for a single engine instance.

    Attributes:
        max_inline_depth: Nested call depth the builder will inline
        max_loop_unroll: Iterations a bounded loop may be unrolled into
        max_term_size: Distinct nodes an obligation may reach before it is Unknown
        max_case_splits: Conditionals plus disjunctions allowed in one obligation
        z3_timeout_ms: Per-query Z3 timeout
        max_fixpoint_rounds: Round cap for cyclic call-graph components
        max_inversion_depth: Node depth the inversion walk may descend
        max_workers: Worker threads used for independent functions
        cache_path: JSON file backing the incremental cache (None disables it)
    """
    max_inline_depth: int = MAX_INLINE_DEPTH
    max_loop_unroll: int = MAX_LOOP_UNROLL
    max_term_size: int = MAX_TERM_SIZE
    max_case_splits: int = MAX_CASE_SPLITS
    z3_timeout_ms: int = Z3_TIMEOUT_MS
    max_fixpoint_rounds: int = MAX_FIXPOINT_ROUNDS
    max_inversion_depth: int = MAX_INVERSION_DEPTH
    max_workers: int = MAX_WORKERS
    cache_path: Optional[str] = CACHE_PATH
