"""
Z3 implementation of the satisfiability backend.
"""
import logging
import time
from contextlib import contextmanager
from fractions import Fraction
from typing import Any, Dict, Iterator, Optional

import z3

from ..config import Z3_TIMEOUT_MS
from .result import SatCheck, SatStatus

logger = logging.getLogger("reverie.sym.solver.z3_solver")


class Z3Solver:
    """Wrapper around ``z3.Solver``.

    Each instance owns a private ``z3.Context`` so solvers on different
    worker threads never share Z3 state. Terms added to the solver must be
    created in ``self.ctx``.
    """

    name = "z3"

    def __init__(self, timeout_ms: int = Z3_TIMEOUT_MS, ctx: Optional[z3.Context] = None):
        """
        Args:
            timeout_ms: Per-check timeout; a check that runs out is unknown
            ctx: Z3 context to use (a fresh one by default)
        """
        self.ctx = ctx if ctx is not None else z3.Context()
        self.timeout_ms = timeout_ms
        self.solver = z3.Solver(ctx=self.ctx)
        self.solver.set("timeout", int(timeout_ms))
        self._witnesses: Dict[str, Any] = {}

    def assert_term(self, term: Any) -> None:
        self.solver.add(term)

    def witness(self, name: str, term: Any) -> None:
        self._witnesses[name] = term

    @contextmanager
    def scope(self) -> Iterator["Z3Solver"]:
        self.solver.push()
        try:
            yield self
        finally:
            self.solver.pop()

    def check(self) -> SatCheck:
        """Decide the current assertions.

        Returns:
            SatCheck; a sat check carries the witness values
        """
        start_time = time.time()
        outcome = self.solver.check()
        elapsed_ms = (time.time() - start_time) * 1000

        if outcome == z3.sat:
            return SatCheck(SatStatus.SAT, model=self._model_values(self.solver.model()),
                            elapsed_ms=elapsed_ms)
        if outcome == z3.unsat:
            return SatCheck(SatStatus.UNSAT, elapsed_ms=elapsed_ms)
        reason = self.solver.reason_unknown()
        logger.debug("z3 gave up after %.1f ms: %s", elapsed_ms, reason)
        return SatCheck(SatStatus.UNKNOWN, reason=reason, elapsed_ms=elapsed_ms)

    def _model_values(self, model: z3.ModelRef) -> Dict[str, Any]:
        # Witnesses the model leaves unconstrained still get a (default) value.
        if self._witnesses:
            return {
                name: to_python(model.eval(term, model_completion=True))
                for name, term in sorted(self._witnesses.items())
            }
        return {decl.name(): to_python(model[decl]) for decl in model.decls()}

    def reset(self) -> None:
        self.solver.reset()
        self.solver.set("timeout", int(self.timeout_ms))
        self._witnesses.clear()


def to_python(value: Any) -> Any:
    """Convert a Z3 value to the matching Python value."""
    if z3.is_int_value(value):
        return value.as_long()
    if z3.is_rational_value(value):
        return Fraction(value.numerator_as_long(), value.denominator_as_long())
    if z3.is_true(value):
        return True
    if z3.is_false(value):
        return False
    if z3.is_string_value(value):
        return value.as_string()
    return str(value)
