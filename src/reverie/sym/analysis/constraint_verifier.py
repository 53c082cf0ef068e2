"""
Three-way verification of declared assumptions and guarantees.

A proof obligation is a goal G checked under a fact set F:

- Proven   when F and not G is unsatisfiable
- Refuted  when F and G is unsatisfiable while F is satisfiable, i.e. every
  state the facts admit violates the goal
- Unknown  otherwise, or whenever the obligation leaves the supported theory
  (nonlinear terms, unsupported operators), exceeds the term-size or
  case-split ceilings, or the solver times out

Opaque values and external calls are free symbols. Both verdicts above hold
for every interpretation of those symbols, so treating them as free can only
turn a verdict into Unknown, never into a wrong answer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import z3

from ..builder.model import RESULT_NAME, CallSite, Constraint, ConstraintKind, FunctionSymbolicModel
from ..config import EngineConfig
from ..expr.nodes import ExprArena, Node
from ..expr.rewrite import case_split_count, node_count, render, substitute_names
from ..solver.base import SatBackend
from ..solver.z3_solver import Z3Solver
from ..translator.expr_to_z3 import ExprToZ3Translator, RecordTerm
from ..translator.type_translator import OutsideTheory
from .results import ProofResult

logger = logging.getLogger("reverie.sym.analysis.constraint_verifier")


@dataclass(frozen=True)
class ConstraintOutcome:
    """A constraint, the goal actually checked, and the verdict."""
    constraint: Constraint
    goal: Node
    result: ProofResult
    call_site: Optional[CallSite] = None


@dataclass
class ModelVerification:
    """Everything ``ConstraintVerifier.verify`` derives for one model.

    Attributes:
        function: Name of the verified function
        guarantees: One outcome per declared guarantee
        call_sites: One outcome per (call site, callee assumption)
        derived_facts: For each call site, the facts that hold on entry to
            the callee at that call, expressed in the caller's variables
    """
    function: str
    guarantees: List[ConstraintOutcome] = field(default_factory=list)
    call_sites: List[ConstraintOutcome] = field(default_factory=list)
    derived_facts: Dict[CallSite, Tuple[Node, ...]] = field(default_factory=dict)

    @property
    def outcomes(self) -> List[ConstraintOutcome]:
        return self.guarantees + self.call_sites


class ConstraintVerifier:
    """Decides proof obligations with Z3 over linear integer/real arithmetic.

    Each query runs in a fresh Z3 context, which keeps verdicts and
    counterexamples independent of what else was solved before and lets
    several verifiers run on different threads.

    Args:
        arena: Arena the obligations are built in
        config: Engine limits
        backend: Builds a solver from a timeout and the query's Z3 context
    """

    def __init__(self, arena: ExprArena, config: Optional[EngineConfig] = None,
                 backend: Callable[..., SatBackend] = Z3Solver):
        self.arena = arena
        self.config = config or EngineConfig()
        self.backend = backend

    # ── single obligations ────────────────────────────────────────────

    def decide(self, goal: Node, facts: Sequence[Node] = (),
               witnesses: Optional[Mapping[str, Node]] = None) -> ProofResult:
        """Decide ``goal`` under ``facts``.

        Args:
            goal: Boolean graph to prove
            facts: Boolean graphs assumed to hold
            witnesses: Named terms whose values make up the counterexample

        Returns:
            ProofResult
        """
        facts = tuple(facts)
        size = node_count(goal, *facts)
        if size > self.config.max_term_size:
            return ProofResult.unknown(
                f"term size {size} exceeds ceiling {self.config.max_term_size}")
        splits = case_split_count(goal, *facts)
        if splits > self.config.max_case_splits:
            return ProofResult.unknown(
                f"case splits {splits} exceed ceiling {self.config.max_case_splits}")

        ctx = z3.Context()
        translator = ExprToZ3Translator(ctx)
        try:
            goal_term = translator.translate_bool(goal)
            fact_terms = [translator.translate_bool(f) for f in facts]
            witness_terms = self._witness_terms(translator, witnesses or {})
        except OutsideTheory as exc:
            logger.debug("outside theory: %s (goal %s)", exc.reason, render(goal))
            return ProofResult.unknown(exc.reason)

        solver = self.backend(timeout_ms=self.config.z3_timeout_ms, ctx=ctx)
        for name, term in witness_terms.items():
            solver.witness(name, term)
        for term in fact_terms:
            solver.assert_term(term)

        with solver.scope():
            solver.assert_term(z3.Not(goal_term))
            violation = solver.check()
        logger.debug("goal %s: violation query %s", render(goal), violation)
        if violation.is_unsat:
            return ProofResult.proven()
        if violation.is_unknown:
            return ProofResult.unknown(f"solver gave up: {violation.reason or 'unknown'}")

        with solver.scope():
            solver.assert_term(goal_term)
            satisfaction = solver.check()
        if satisfaction.is_unsat:
            return ProofResult.refuted(violation.model or {})
        if satisfaction.is_unknown:
            return ProofResult.unknown(f"solver gave up: {satisfaction.reason or 'unknown'}")
        return ProofResult.unknown("neither provable nor refutable from the available facts")

    def prove(self, goal: Node, facts: Sequence[Node] = ()) -> bool:
        """True only when ``goal`` is Proven under ``facts``."""
        return self.decide(goal, facts).is_proven

    def _witness_terms(self, translator: ExprToZ3Translator,
                       witnesses: Mapping[str, Node]) -> Dict[str, Any]:
        terms: Dict[str, Any] = {}
        for name in sorted(witnesses):
            try:
                term = translator.translate(witnesses[name])
            except OutsideTheory:
                continue
            _flatten(name, term, terms)
        return terms

    # ── declared constraints ──────────────────────────────────────────

    def verify_guarantee(self, model: FunctionSymbolicModel, guarantee: Constraint,
                         extra_facts: Sequence[Node] = ()) -> ConstraintOutcome:
        """Does the body, under the function's own assumptions, meet ``guarantee``?"""
        goal = substitute_names(self.arena, guarantee.expr, {RESULT_NAME: model.body})
        facts = [a.expr for a in model.assumptions] + list(extra_facts)
        witnesses: Dict[str, Node] = {p.name: p for p in model.params}
        witnesses[RESULT_NAME] = model.body
        result = self.decide(goal, facts, witnesses)
        logger.info("guarantee %s of '%s': %s", guarantee.display, model.name, result)
        return ConstraintOutcome(guarantee, goal, result)

    def instantiate(self, callee: FunctionSymbolicModel, assumption: Constraint,
                    site: CallSite) -> Constraint:
        """The callee's assumption with the call's actual arguments substituted."""
        mapping = dict(zip(callee.param_names, site.args))
        expr = substitute_names(self.arena, assumption.expr, mapping)
        return Constraint(kind=ConstraintKind.ASSUMPTION, expr=expr, function=callee.name,
                          text=assumption.display,
                          location=site.location or assumption.location)

    def call_site_facts(self, caller: FunctionSymbolicModel, site: CallSite,
                        incoming: Sequence[Node] = ()) -> Tuple[Node, ...]:
        """Facts that hold at ``site``: caller assumptions, incoming facts, path condition."""
        facts = [a.expr for a in caller.assumptions] + list(incoming) + [site.path_condition]
        return unique_nodes(facts)

    def verify_call_site(self, caller: FunctionSymbolicModel, callee: FunctionSymbolicModel,
                         site: CallSite, assumption: Constraint,
                         incoming: Sequence[Node] = ()) -> ConstraintOutcome:
        instantiated = self.instantiate(callee, assumption, site)
        facts = self.call_site_facts(caller, site, incoming)
        result = self.decide(instantiated.expr, facts, self._site_witnesses(caller, callee, site))
        logger.info("assumption %s at %s: %s", assumption.display, site.label, result)
        return ConstraintOutcome(instantiated, instantiated.expr, result, site)

    def _site_witnesses(self, caller: FunctionSymbolicModel, callee: FunctionSymbolicModel,
                        site: CallSite) -> Dict[str, Node]:
        witnesses: Dict[str, Node] = dict(zip(callee.param_names, site.args))
        for p in caller.params:
            name = p.name if p.name not in witnesses else f"{caller.name}:{p.name}"
            witnesses[name] = p
        return witnesses

    def verify(self, model: FunctionSymbolicModel, incoming_facts: Sequence[Node] = (),
               callees: Optional[Mapping[str, FunctionSymbolicModel]] = None) -> ModelVerification:
        """Verify every guarantee of ``model`` and every assumption at its call sites.

        Args:
            model: Function to verify
            incoming_facts: Facts known to hold on entry, over ``model``'s parameters
            callees: Models of the functions ``model`` calls

        Returns:
            ModelVerification with the per-constraint results and the facts
            derived for each callee at each call
        """
        callees = callees or {}
        out = ModelVerification(model.name)
        for guarantee in model.guarantees:
            out.guarantees.append(self.verify_guarantee(model, guarantee))
        for site in model.call_sites:
            callee = callees.get(site.callee)
            if callee is None:
                continue
            for assumption in callee.assumptions:
                out.call_sites.append(
                    self.verify_call_site(model, callee, site, assumption, incoming_facts))
            instantiated = [self.instantiate(callee, a, site).expr for a in callee.assumptions]
            out.derived_facts[site] = unique_nodes(
                list(self.call_site_facts(model, site, incoming_facts)) + instantiated)
        return out


def _flatten(name: str, term: Any, into: Dict[str, Any]) -> None:
    if isinstance(term, RecordTerm):
        for fname in term.fields:
            _flatten(f"{name}.{fname}", term.fields[fname], into)
    else:
        into[name] = term


def unique_nodes(nodes: Sequence[Node]) -> Tuple[Node, ...]:
    seen = set()
    out = []
    for n in nodes:
        if n.nid not in seen:
            seen.add(n.nid)
            out.append(n)
    return tuple(out)
