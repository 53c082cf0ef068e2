"""
Main analysis API for compilation units.

Provides an ``Engine`` that builds symbolic models, verifies declared
contracts, derives inverses, and aggregates everything into a
``UnitReport``, plus module-level helpers that run a fresh engine.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .analysis.constraint_verifier import ConstraintVerifier, ModelVerification
from .analysis.interproc import EntryFacts, InterproceduralVerifier
from .analysis.memo import MemoTable
from .analysis.results import ProofStatus
from .builder.expression_builder import ExpressionBuilder
from .builder.model import ConstraintKind, FunctionSymbolicModel
from .config import EngineConfig
from .diagnostics.cache import ResultCache
from .diagnostics.guards import RuntimeGuard
from .diagnostics.report import (
    ConstraintReport,
    Diagnostic,
    FunctionReport,
    InversionReport,
    Severity,
    UnitReport,
)
from .expr.nodes import ExprArena, Node
from .inversion.results import InversionResult
from .inversion.reversibility_solver import ReversibilitySolver
from .ir.typed import CompilationUnit, Composition, Tag, TypedFunction

logger = logging.getLogger("reverie.sym.engine")

FunctionLike = Union[TypedFunction, FunctionSymbolicModel]


class Engine:
    """Symbolic reasoning over one or more compilation units.

    The engine owns the node arena, the memo table shared by every proof
    obligation, and the optional result cache.

    Args:
        config: Engine limits (defaults from ``reverie.sym.config``)
        cache: Result cache; one is opened at ``config.cache_path`` if unset
        arena: Node arena to build into (a fresh one by default)
    """

    def __init__(self, config: Optional[EngineConfig] = None,
                 cache: Optional[ResultCache] = None,
                 arena: Optional[ExprArena] = None):
        self.config = config or EngineConfig()
        self.arena = arena or ExprArena()
        self.memo = MemoTable()
        if cache is None and self.config.cache_path:
            cache = ResultCache(self.config.cache_path)
        self.cache = cache
        self.verifier = ConstraintVerifier(self.arena, self.config)

    # ── models ────────────────────────────────────────────────────────

    def builder(self, unit: Optional[CompilationUnit] = None) -> ExpressionBuilder:
        if unit is None:
            return ExpressionBuilder(self.arena, config=self.config)
        return ExpressionBuilder(self.arena, unit.function_table, unit.externals, self.config)

    def build_model(self, fn: TypedFunction,
                    unit: Optional[CompilationUnit] = None) -> FunctionSymbolicModel:
        """Build the symbolic model of ``fn``, inlining calls into ``unit``."""
        return self.builder(unit).build(fn)

    def build_models(self, unit: CompilationUnit) -> Dict[str, FunctionSymbolicModel]:
        builder = self.builder(unit)
        return {fn.name: builder.build(fn) for fn in unit.functions}

    def _model(self, fn: FunctionLike, unit: Optional[CompilationUnit]) -> FunctionSymbolicModel:
        if isinstance(fn, FunctionSymbolicModel):
            return fn
        return self.build_model(fn, unit)

    # ── single-function API ───────────────────────────────────────────

    def verify_function(self, fn: FunctionLike,
                        unit: Optional[CompilationUnit] = None,
                        incoming_facts: Sequence[Node] = ()) -> ModelVerification:
        """Verify one function's guarantees and the assumptions at its calls.

        Args:
            fn: Typed function or already-built model
            unit: Unit supplying callees and externals
            incoming_facts: Facts known on entry beyond the declared assumptions

        Returns:
            ModelVerification
        """
        model = self._model(fn, unit)
        callees: Dict[str, FunctionSymbolicModel] = {}
        if unit is not None:
            builder = self.builder(unit)
            for site in model.call_sites:
                callee = unit.function(site.callee)
                if callee is not None and site.callee not in callees:
                    callees[site.callee] = builder.build(callee)
        return self.verifier.verify(model, incoming_facts, callees)

    def invert_function(self, fn: FunctionLike,
                        unit: Optional[CompilationUnit] = None,
                        target: Optional[str] = None) -> InversionResult:
        """Derive the inverse of ``fn`` with respect to ``target``."""
        model = self._model(fn, unit)
        return self._solver(unit).invert(model, target)

    def invert_composition(self, composition: Composition, unit: CompilationUnit,
                           models: Optional[Mapping[str, FunctionSymbolicModel]] = None) -> InversionResult:
        """Invert a declared composition of functions in ``unit``."""
        if models is None:
            models = self.build_models(unit)
        return self._solver(unit).invert_composition(composition, models)

    def compose(self, composition: Composition, unit: CompilationUnit) -> FunctionSymbolicModel:
        """Forward model of a declared composition."""
        return self.builder(unit).compose(composition, self.build_models(unit))

    def _solver(self, unit: Optional[CompilationUnit]) -> ReversibilitySolver:
        externals = unit.externals if unit is not None else None
        return ReversibilitySolver(self.arena, self.verifier, externals, self.config)

    # ── whole unit ────────────────────────────────────────────────────

    def analyze_unit(self, unit: CompilationUnit) -> UnitReport:
        """Verify and invert everything declared in ``unit``.

        Args:
            unit: Compilation unit

        Returns:
            UnitReport with per-function results, inserted runtime guards,
            and the compile errors and warnings
        """
        start_time = time.time()
        models = self.build_models(unit)
        interproc = InterproceduralVerifier(models, self.verifier, self.memo, self.config)
        entry = interproc.compute_entry_facts()
        solver = self._solver(unit)

        def work(name: str) -> FunctionReport:
            return self._function_report(models[name], interproc, entry, solver)

        names = [fn.name for fn in unit.functions]
        if self.config.max_workers > 1 and len(names) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                functions = list(pool.map(work, names))
        else:
            functions = [work(name) for name in names]

        compositions = [
            InversionReport.from_result(solver.invert_composition(c, models), c.location)
            for c in unit.compositions
        ]

        report = UnitReport(unit.name, functions, compositions)
        report.unstable_cycles = list(interproc.unstable)
        self._diagnose(report, models)

        if self.cache is not None:
            self.cache.save()

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info("unit '%s' analysed in %.1f ms: %s", unit.name, elapsed_ms, report.counts())
        return report

    def _function_report(self, model: FunctionSymbolicModel,
                         interproc: InterproceduralVerifier,
                         entry: Mapping[str, EntryFacts],
                         solver: ReversibilitySolver) -> FunctionReport:
        key = None
        if self.cache is not None:
            facts = entry[model.name].facts if model.name in entry else ()
            callees = [interproc.models[n] for n in interproc.graph.callees(model.name)]
            key = ResultCache.key_for(model, facts, callees)
            cached = self.cache.get(key, self.arena)
            if cached is not None:
                logger.debug("cache hit for '%s'", model.name)
                return cached

        verification = interproc.verify_function(model.name, entry)
        constraints = tuple(ConstraintReport.from_outcome(model.name, o)
                            for o in verification.outcomes)
        inversion = None
        if model.tag is Tag.REVERSIBLE:
            inversion = InversionReport.from_result(solver.invert(model), model.location)
        report = FunctionReport(model.name, constraints, inversion)

        if key is not None:
            self.cache.put(key, report)
        return report

    def _diagnose(self, report: UnitReport, models: Mapping[str, FunctionSymbolicModel]) -> None:
        diagnostics: List[Diagnostic] = []
        guards: List[RuntimeGuard] = []

        for fr in report.functions:
            for c in fr.constraints:
                status = c.outcome.status
                if status == ProofStatus.REFUTED:
                    diagnostics.append(Diagnostic(
                        Severity.ERROR, c.function, _refuted_message(c), c.location))
                elif status == ProofStatus.UNKNOWN:
                    guards.append(RuntimeGuard.from_report(c))
                    diagnostics.append(Diagnostic(
                        Severity.WARNING, c.function,
                        f"{c.kind.value} '{c.constraint_text}' could not be proven "
                        f"({c.outcome.reason}); runtime guard inserted", c.location))
            inv = fr.inversion
            if inv is not None and not inv.ok:
                at = f" at '{inv.failing_node}'" if inv.failing_node else ""
                diagnostics.append(Diagnostic(
                    Severity.ERROR, fr.function,
                    f"declared reversible but not invertible{at}: {inv.reason}", inv.location))

        for inv in report.compositions:
            if not inv.ok:
                diagnostics.append(Diagnostic(
                    Severity.ERROR, inv.function,
                    f"composition is not invertible: {inv.reason}", inv.location))

        for component in report.unstable_cycles:
            first = models[component[0]]
            diagnostics.append(Diagnostic(
                Severity.WARNING, first.name,
                f"call-graph cycle {', '.join(component)} did not stabilize within "
                f"{self.config.max_fixpoint_rounds} rounds; only declared assumptions are used",
                first.location))

        report.diagnostics = diagnostics
        report.guards = guards


def _refuted_message(c: ConstraintReport) -> str:
    cex = ", ".join(f"{k}={v}" for k, v in sorted((c.outcome.counterexample or {}).items()))
    suffix = f"; counterexample: {cex}" if cex else ""
    if c.kind == ConstraintKind.ASSUMPTION:
        return f"call {c.call_site} violates assumption '{c.constraint_text}' of '{c.callee}'{suffix}"
    return f"guarantee '{c.constraint_text}' can never be met{suffix}"


def analyze_unit(unit: CompilationUnit, config: Optional[EngineConfig] = None) -> UnitReport:
    """Analyse ``unit`` with a fresh engine.

    Example:
        >>> report = analyze_unit(unit)
        >>> print(report.summary())
        >>> report.raise_for_errors()
    """
    return Engine(config).analyze_unit(unit)


def verify_function(fn: TypedFunction, unit: Optional[CompilationUnit] = None,
                    config: Optional[EngineConfig] = None) -> ModelVerification:
    """Verify one function with a fresh engine."""
    return Engine(config).verify_function(fn, unit)


def invert_function(fn: TypedFunction, unit: Optional[CompilationUnit] = None,
                    target: Optional[str] = None,
                    config: Optional[EngineConfig] = None) -> InversionResult:
    """Invert one function with a fresh engine.

    Example:
        >>> result = invert_function(celsius_to_fahrenheit)
        >>> if result.ok:
        ...     print(evaluate(result.inverse.body, {"result": 212.0}))
    """
    return Engine(config).invert_function(fn, unit, target)
