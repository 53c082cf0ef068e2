"""
Interprocedural fact propagation over the call graph.

Entry facts are drawn from a finite set of candidate predicates per function
(the conjuncts of its callees' instantiated assumptions, of its own
parameter-only guarantees, and of the path conditions guarding its calls). A
candidate survives when every call site of the function proves it, assuming
the caller's own current entry facts. Functions callable from outside the
unit (entry points, or functions nobody in the unit calls) keep only their
declared assumptions.

Components of the call graph are processed callers first. Inside a cyclic
component the surviving sets shrink monotonically until they stop changing;
a component that has not stabilized after ``max_fixpoint_rounds`` rounds
falls back to declared assumptions only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..builder.model import RESULT_NAME, CallSite, FunctionSymbolicModel
from ..config import EngineConfig
from ..expr.nodes import BinaryOp, Literal, Node, NodeKind
from ..expr.ops import BinaryOperator
from ..expr.rewrite import combined_digest, contains_kind, substitute_names, variable_names
from .constraint_verifier import ConstraintOutcome, ConstraintVerifier, ModelVerification, unique_nodes
from .memo import MemoTable

logger = logging.getLogger("reverie.sym.analysis.interproc")


@dataclass(frozen=True)
class EntryFacts:
    """Facts known on entry to a function beyond its declared assumptions.

    Attributes:
        function: Function name
        facts: Predicates over the function's parameters
        stabilized: False when the enclosing cyclic component hit the round cap
        rounds: Rounds of iteration spent on the enclosing component
    """
    function: str
    facts: Tuple[Node, ...] = ()
    stabilized: bool = True
    rounds: int = 0


class CallGraph:
    """Direct-call graph among analysed functions."""

    def __init__(self, models: Mapping[str, FunctionSymbolicModel]):
        self.models = dict(models)
        self._callees: Dict[str, Tuple[str, ...]] = {}
        self._sites_into: Dict[str, List[CallSite]] = {name: [] for name in self.models}
        for name in sorted(self.models):
            model = self.models[name]
            targets = sorted({s.callee for s in model.call_sites if s.callee in self.models})
            self._callees[name] = tuple(targets)
            for site in model.call_sites:
                if site.callee in self._sites_into:
                    self._sites_into[site.callee].append(site)

    def callees(self, name: str) -> Tuple[str, ...]:
        return self._callees.get(name, ())

    def sites_into(self, name: str) -> Tuple[CallSite, ...]:
        return tuple(self._sites_into.get(name, ()))

    def callers(self, name: str) -> Tuple[str, ...]:
        return tuple(sorted({s.caller for s in self._sites_into.get(name, ())}))

    def is_root(self, name: str) -> bool:
        return self.models[name].entry_point or not self._sites_into.get(name)

    def is_cyclic(self, component: Sequence[str]) -> bool:
        if len(component) > 1:
            return True
        only = component[0]
        return only in self.callees(only)

    def components(self) -> List[Tuple[str, ...]]:
        """Strongly connected components, callers before callees.

        Iterative Tarjan; components and their members are sorted so the
        result does not depend on dictionary order.
        """
        index: Dict[str, int] = {}
        low: Dict[str, int] = {}
        on_stack = set()
        stack: List[str] = []
        result: List[Tuple[str, ...]] = []
        counter = 0

        for root in sorted(self.models):
            if root in index:
                continue
            index[root] = low[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            work = [(root, iter(self.callees(root)))]
            while work:
                node, successors = work[-1]
                descended = False
                for nxt in successors:
                    if nxt not in index:
                        index[nxt] = low[nxt] = counter
                        counter += 1
                        stack.append(nxt)
                        on_stack.add(nxt)
                        work.append((nxt, iter(self.callees(nxt))))
                        descended = True
                        break
                    if nxt in on_stack:
                        low[node] = min(low[node], index[nxt])
                if descended:
                    continue
                work.pop()
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[node])
                if low[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    result.append(tuple(sorted(component)))
        result.reverse()
        return result


class InterproceduralVerifier:
    """Runs entry-fact propagation and per-function verification for a unit.

    Args:
        models: All analysed models of the unit, by name
        verifier: Decision procedure for individual obligations
        memo: Shared compute-once table (a private one by default)
        config: Engine limits
    """

    def __init__(self, models: Mapping[str, FunctionSymbolicModel],
                 verifier: ConstraintVerifier,
                 memo: Optional[MemoTable] = None,
                 config: Optional[EngineConfig] = None):
        self.models = dict(models)
        self.verifier = verifier
        self.arena = verifier.arena
        self.memo = memo if memo is not None else MemoTable()
        self.config = config or verifier.config
        self.graph = CallGraph(self.models)
        self.unstable: List[Tuple[str, ...]] = []

    # ── entry facts ───────────────────────────────────────────────────

    def compute_entry_facts(self) -> Dict[str, EntryFacts]:
        final: Dict[str, EntryFacts] = {}
        self.unstable = []
        for component in self.graph.components():
            if self.graph.is_cyclic(component):
                final.update(self._solve_cyclic(component, final))
            else:
                name = component[0]
                facts = self._survivors(name, self._candidates(name), final, {})
                final[name] = EntryFacts(name, facts, True, 1)
        return final

    def _solve_cyclic(self, component: Tuple[str, ...],
                      final: Mapping[str, EntryFacts]) -> Dict[str, EntryFacts]:
        current = {name: self._candidates(name) for name in component}
        cap = self.config.max_fixpoint_rounds
        for round_no in range(1, cap + 1):
            changed = False
            for name in component:
                kept = self._survivors(name, current[name], final, current)
                if len(kept) != len(current[name]):
                    current[name] = kept
                    changed = True
            if not changed:
                logger.debug("component %s stabilized after %d rounds", list(component), round_no)
                return {name: EntryFacts(name, current[name], True, round_no) for name in component}

        logger.warning("call-graph cycle %s did not stabilize within %d rounds; "
                       "falling back to declared assumptions", list(component), cap)
        self.unstable.append(component)
        return {name: EntryFacts(name, (), False, cap) for name in component}

    def _survivors(self, name: str, candidates: Sequence[Node],
                   final: Mapping[str, EntryFacts],
                   current: Mapping[str, Sequence[Node]]) -> Tuple[Node, ...]:
        if self.graph.is_root(name) or not candidates:
            return ()
        sites = self.graph.sites_into(name)
        kept = []
        for predicate in candidates:
            if all(self._holds_at(site, predicate, self._entry_of(site.caller, final, current))
                   for site in sites):
                kept.append(predicate)
        return tuple(kept)

    @staticmethod
    def _entry_of(name: str, final: Mapping[str, EntryFacts],
                  current: Mapping[str, Sequence[Node]]) -> Sequence[Node]:
        if name in current:
            return current[name]
        if name in final:
            return final[name].facts
        return ()

    def _holds_at(self, site: CallSite, predicate: Node, caller_entry: Sequence[Node]) -> bool:
        callee = self.models[site.callee]
        caller = self.models[site.caller]
        goal = substitute_names(self.arena, predicate, dict(zip(callee.param_names, site.args)))
        instantiated = [self.verifier.instantiate(callee, a, site).expr for a in callee.assumptions]
        facts = unique_nodes(list(self.verifier.call_site_facts(caller, site, caller_entry)) + instantiated)
        key = ("entry", callee.name, goal.digest, combined_digest(facts))
        return self.memo.get_or_compute(key, lambda: self.verifier.prove(goal, facts))

    def _candidates(self, name: str) -> Tuple[Node, ...]:
        model = self.models[name]
        params = frozenset(model.param_names)
        pool: List[Node] = []
        for site in model.call_sites:
            callee = self.models.get(site.callee)
            if callee is not None:
                for a in callee.assumptions:
                    pool.extend(conjuncts(self.verifier.instantiate(callee, a, site).expr))
            pool.extend(conjuncts(site.path_condition))
        for g in model.guarantees:
            if RESULT_NAME not in variable_names(g.expr):
                pool.extend(conjuncts(g.expr))
        declared = {a.expr.nid for a in model.assumptions}
        chosen: Dict[str, Node] = {}
        for p in pool:
            if isinstance(p, Literal) or p.nid in declared:
                continue
            if not variable_names(p) <= params:
                continue
            if contains_kind(NodeKind.OPAQUE, p) or contains_kind(NodeKind.CALL, p):
                continue
            chosen.setdefault(p.digest, p)
        return tuple(chosen[d] for d in sorted(chosen))

    # ── per-function verification ─────────────────────────────────────

    def verify_function(self, name: str,
                        entry: Mapping[str, EntryFacts]) -> ModelVerification:
        """Verify ``name``'s guarantees and the assumptions at its call sites."""
        model = self.models[name]
        incoming = entry[name].facts if name in entry else ()
        out = ModelVerification(name)

        for guarantee in model.guarantees:
            key = ("guarantee", name, guarantee.expr.digest, model.body.digest,
                   combined_digest([a.expr for a in model.assumptions]))
            out.guarantees.append(self.memo.get_or_compute(
                key, lambda g=guarantee: self.verifier.verify_guarantee(model, g)))

        for site in model.call_sites:
            callee = self.models.get(site.callee)
            if callee is None:
                continue
            facts = self.verifier.call_site_facts(model, site, incoming)
            for assumption in callee.assumptions:
                key = ("site", name, callee.name, assumption.expr.digest,
                       combined_digest(site.args), combined_digest(facts))
                shared: ConstraintOutcome = self.memo.get_or_compute(
                    key, lambda a=assumption, s=site: self.verifier.verify_call_site(
                        model, callee, s, a, incoming))
                out.call_sites.append(_at_site(shared, site))
            instantiated = [self.verifier.instantiate(callee, a, site).expr
                            for a in callee.assumptions]
            out.derived_facts[site] = unique_nodes(list(facts) + instantiated)
        return out


def _at_site(outcome: ConstraintOutcome, site: CallSite) -> ConstraintOutcome:
    """Re-anchor a memoized outcome to the call site that asked for it."""
    if outcome.call_site is site:
        return outcome
    constraint = outcome.constraint
    located = type(constraint)(kind=constraint.kind, expr=constraint.expr,
                               function=constraint.function, text=constraint.text,
                               location=site.location or constraint.location)
    return ConstraintOutcome(located, outcome.goal, outcome.result, site)


def conjuncts(node: Node) -> List[Node]:
    """Split a formula at top-level conjunctions."""
    out: List[Node] = []
    stack = [node]
    while stack:
        n = stack.pop()
        if isinstance(n, BinaryOp) and n.op is BinaryOperator.AND:
            stack.append(n.right)
            stack.append(n.left)
        else:
            out.append(n)
    return out
