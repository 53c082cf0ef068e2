"""
Typed function bodies to symbolic expression graphs.

The builder is total: anything it cannot model (effects, unbounded loops,
unregistered externals, calls past the inlining budget) becomes an ``Opaque``
leaf rather than an error. Both branches of every conditional are built, and
calls to analysed functions are inlined up to ``max_inline_depth``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from ..config import EngineConfig
from ..expr.nodes import ExprArena, Node, Variable
from ..expr.ops import BinaryOperator, UnaryOperator
from ..expr.rewrite import node_count, substitute_names
from ..ir.typed import (
    Binary,
    Block,
    Clause,
    Composition,
    Const,
    Effect,
    ExternalRegistry,
    If,
    Invoke,
    Loop,
    Member,
    Name,
    RecordLit,
    Tag,
    TupleLit,
    TypedExpr,
    TypedFunction,
    Unary,
)
from ..ir.types import ANY
from .model import RESULT_NAME, CallSite, Constraint, ConstraintKind, FunctionSymbolicModel

logger = logging.getLogger("reverie.sym.builder.expression_builder")


@dataclass(frozen=True)
class _Scope:
    env: Mapping[str, Node]
    path: Node
    depth: int
    chain: Tuple[str, ...]
    record_calls: bool

    def bind(self, name: str, value: Node) -> "_Scope":
        env = dict(self.env)
        env[name] = value
        return _Scope(env, self.path, self.depth, self.chain, self.record_calls)

    def under(self, path: Node) -> "_Scope":
        return _Scope(self.env, path, self.depth, self.chain, self.record_calls)


class _BuildState:
    """Mutable bookkeeping for a single ``build`` call."""

    def __init__(self, root: str):
        self.root = root
        self.sites: List[CallSite] = []
        self.inlined: List[str] = []
        self._opaque_counter = 0

    def next_site(self) -> str:
        self._opaque_counter += 1
        return f"{self.root}#{self._opaque_counter}"


class ExpressionBuilder:
    """Converts typed functions into ``FunctionSymbolicModel`` instances.

    Args:
        arena: Arena receiving every node
        functions: Analysed functions available for inlining, by name
        externals: Registered pure external functions
        config: Engine limits (inlining depth, loop unrolling)
    """

    def __init__(self, arena: ExprArena,
                 functions: Optional[Mapping[str, TypedFunction]] = None,
                 externals: Optional[ExternalRegistry] = None,
                 config: Optional[EngineConfig] = None):
        self.arena = arena
        self.functions: Dict[str, TypedFunction] = dict(functions or {})
        self.externals = externals if externals is not None else ExternalRegistry()
        self.config = config or EngineConfig()

    def build(self, fn: TypedFunction) -> FunctionSymbolicModel:
        """Build the symbolic model of ``fn``. Never raises on unsupported constructs."""
        state = _BuildState(fn.name)
        params = tuple(self.arena.variable(p.name, p.type) for p in fn.params)
        env = {p.name: p for p in params}
        scope = _Scope(env, self.arena.true(), 0, (fn.name,), True)

        body = self._block(fn.body, scope, state)

        clause_scope = _Scope(env, self.arena.true(), 0, (fn.name,), False)
        assumptions = tuple(
            self._constraint(c, ConstraintKind.ASSUMPTION, fn, clause_scope, state)
            for c in fn.assumes)
        result_var = self.arena.variable(RESULT_NAME, fn.result_type)
        guarantee_scope = clause_scope.bind(RESULT_NAME, result_var)
        guarantees = tuple(
            self._constraint(c, ConstraintKind.GUARANTEE, fn, guarantee_scope, state)
            for c in fn.guarantees)

        target = fn.inverse_target
        if target is None and len(params) == 1:
            target = params[0].name

        model = FunctionSymbolicModel(
            name=fn.name,
            params=params,
            body=body,
            result_type=fn.result_type,
            assumptions=assumptions,
            guarantees=guarantees,
            tag=fn.tag,
            call_sites=tuple(state.sites),
            inlined=tuple(sorted(set(state.inlined))),
            inverse_target=target,
            entry_point=fn.entry_point,
            location=fn.location,
        )
        logger.debug("built model '%s': %d nodes, %d call sites, inlined=%s",
                     fn.name, node_count(body), len(state.sites), list(model.inlined))
        return model

    def compose(self, composition: Composition,
                models: Mapping[str, FunctionSymbolicModel]) -> FunctionSymbolicModel:
        """Forward model of ``legs[0] >> legs[1] >> ...``.

        Each later leg receives the previous leg's output in its inversion
        target parameter; its other parameters become parameters of the
        composite.
        """
        legs = [models[name] for name in composition.legs]
        if not legs:
            raise ValueError(f"Composition '{composition.name}' has no legs")
        first = legs[0]
        params: List[Variable] = list(first.params)
        body = first.body
        for leg in legs[1:]:
            target = leg.inverse_target
            if target is None:
                raise ValueError(
                    f"Leg '{leg.name}' of '{composition.name}' has no single input parameter")
            body = substitute_names(self.arena, leg.body, {target: body})
            for p in leg.params:
                if p.name != target and all(q.name != p.name for q in params):
                    params.append(p)

        tags = {leg.tag for leg in legs}
        if tags == {Tag.REVERSIBLE}:
            tag = Tag.REVERSIBLE
        elif Tag.LOSSY in tags:
            tag = Tag.LOSSY
        else:
            tag = Tag.UNMARKED
        return FunctionSymbolicModel(
            name=composition.name,
            params=tuple(params),
            body=body,
            result_type=legs[-1].result_type,
            tag=tag,
            inlined=tuple(sorted({leg.name for leg in legs})),
            inverse_target=first.inverse_target,
            location=composition.location,
        )

    # ── statements ────────────────────────────────────────────────────

    def _block(self, block: Block, scope: _Scope, state: _BuildState) -> Node:
        for let in block.lets:
            scope = scope.bind(let.name, self._expr(let.value, scope, state))
        return self._expr(block.result, scope, state)

    def _constraint(self, clause: Clause, kind: ConstraintKind, fn: TypedFunction,
                    scope: _Scope, state: _BuildState) -> Constraint:
        expr = self._expr(clause.expr, scope, state)
        return Constraint(kind=kind, expr=expr, function=fn.name,
                          text=clause.text, location=clause.location or fn.location)

    # ── expressions ───────────────────────────────────────────────────

    def _expr(self, e: TypedExpr, scope: _Scope, state: _BuildState) -> Node:
        if isinstance(e, Const):
            return self.arena.literal(e.value, e.type)
        elif isinstance(e, Name):
            node = scope.env.get(e.name)
            if node is None:
                return self.arena.opaque(f"unresolved name '{e.name}'", state.next_site(), e.type)
            return node
        elif isinstance(e, Unary):
            return self._unary(e, scope, state)
        elif isinstance(e, Binary):
            return self._binary(e, scope, state)
        elif isinstance(e, If):
            cond = self._expr(e.cond, scope, state)
            then = self._expr(e.then, scope.under(self.arena.conj(scope.path, cond)), state)
            else_ = self._expr(
                e.else_, scope.under(self.arena.conj(scope.path, self.arena.negate(cond))), state)
            return self.arena.conditional(cond, then, else_)
        elif isinstance(e, Member):
            record = self._expr(e.record, scope, state)
            try:
                return self.arena.field(record, e.field, e.type)
            except ValueError as exc:
                logger.debug("field access degraded to opaque: %s", exc)
                return self.arena.opaque(f"unknown field '{e.field}'", state.next_site(), e.type)
        elif isinstance(e, RecordLit):
            fields = [(name, self._expr(value, scope, state)) for name, value in e.fields]
            return self.arena.construct(e.type_name, fields, e.type)
        elif isinstance(e, TupleLit):
            items = [(f"_{i}", self._expr(item, scope, state)) for i, item in enumerate(e.items)]
            return self.arena.construct("tuple", items, e.type)
        elif isinstance(e, Invoke):
            return self._call(e, scope, state)
        elif isinstance(e, Effect):
            return self.arena.opaque(f"effect: {e.description}", state.next_site(), e.type)
        elif isinstance(e, Loop):
            return self._loop(e, scope, state)
        return self.arena.opaque(f"unsupported construct {type(e).__name__}",
                                 state.next_site(), getattr(e, "type", None) or ANY)

    def _unary(self, e: Unary, scope: _Scope, state: _BuildState) -> Node:
        operand = self._expr(e.operand, scope, state)
        try:
            op = UnaryOperator.from_symbol(e.op)
        except ValueError:
            return self.arena.opaque(f"unsupported operator '{e.op}'", state.next_site(), e.type)
        return self.arena.unary(op, operand)

    def _binary(self, e: Binary, scope: _Scope, state: _BuildState) -> Node:
        left = self._expr(e.left, scope, state)
        try:
            op = BinaryOperator.from_symbol(e.op)
        except ValueError:
            self._expr(e.right, scope, state)
            return self.arena.opaque(f"unsupported operator '{e.op}'", state.next_site(), e.type)
        # Calls inside the right operand of a connective only run when it is evaluated.
        right_scope = scope
        if op is BinaryOperator.AND or op is BinaryOperator.IMPLIES:
            right_scope = scope.under(self.arena.conj(scope.path, left))
        elif op is BinaryOperator.OR:
            right_scope = scope.under(self.arena.conj(scope.path, self.arena.negate(left)))
        right = self._expr(e.right, right_scope, state)
        return self.arena.binary(op, left, right)

    def _loop(self, e: Loop, scope: _Scope, state: _BuildState) -> Node:
        if e.count is None or e.count < 0 or e.count > self.config.max_loop_unroll:
            return self.arena.opaque("loop with unbounded iteration", state.next_site(), e.type)
        acc = self._expr(e.init, scope, state)
        for _ in range(e.count):
            acc = self._expr(e.step, scope.bind(e.acc, acc), state)
        return acc

    def _call(self, e: Invoke, scope: _Scope, state: _BuildState) -> Node:
        args = tuple(self._expr(a, scope, state) for a in e.args)
        callee = self.functions.get(e.callee)
        if callee is not None:
            if scope.record_calls and scope.depth == 0:
                state.sites.append(CallSite(
                    caller=state.root, callee=callee.name, args=args,
                    path_condition=scope.path, location=e.location,
                    index=len(state.sites)))
            if len(args) != len(callee.params):
                return self.arena.opaque(f"arity mismatch calling '{callee.name}'",
                                         state.next_site(), callee.result_type)
            if callee.name in scope.chain:
                return self.arena.opaque(f"recursive call to '{callee.name}'",
                                         state.next_site(), callee.result_type)
            if scope.depth >= self.config.max_inline_depth:
                return self.arena.opaque(f"inlining budget exceeded at '{callee.name}'",
                                         state.next_site(), callee.result_type)
            state.inlined.append(callee.name)
            env = {p.name: a for p, a in zip(callee.params, args)}
            inner = _Scope(env, scope.path, scope.depth + 1,
                           scope.chain + (callee.name,), scope.record_calls)
            return self._block(callee.body, inner, state)

        external = self.externals.get(e.callee)
        if external is not None and external.arity == len(args):
            return self.arena.call(external.name, args, external.result_type)
        return self.arena.opaque(f"call to unregistered external '{e.callee}'",
                                 state.next_site(), e.type)
