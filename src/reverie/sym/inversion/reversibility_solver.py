"""
Derivation of inverse functions by structural mirroring.

Starting at the output, each operator on the path to the target parameter is
replaced by its inverse applied in reverse order. There is no search: a
function is invertible exactly when every operator it applies to the target
has a known inverse rule and the target flows along a single injective path
(records excepted, where each field may carry its own path).
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..builder.model import RESULT_NAME, FunctionSymbolicModel
from ..analysis.constraint_verifier import ConstraintVerifier
from ..config import EngineConfig
from ..expr.nodes import (
    BinaryOp,
    Call,
    Conditional,
    Construct,
    ExprArena,
    FieldAccess,
    Literal,
    Node,
    Opaque,
    UnaryOp,
    Variable,
)
from ..expr.ops import BinaryOperator, UnaryOperator, loss_reason
from ..expr.rewrite import dependency_map, postorder, render, substitute, substitute_names, variable_names
from ..ir.typed import Composition, ExternalRegistry, Tag
from ..ir.types import Type, TypeKind
from .results import InversionResult

logger = logging.getLogger("reverie.sym.inversion.reversibility_solver")

Path = Tuple[str, ...]

_NUMERIC = (TypeKind.INT, TypeKind.REAL)


class _Stuck(Exception):
    """Raised inside the walk when a node cannot be mirrored."""

    def __init__(self, node: Node, reason: str):
        self.node = node
        self.reason = reason
        super().__init__(reason)


class ReversibilitySolver:
    """Derives inverses of functions tagged ``reversible``.

    Args:
        arena: Arena for the inverse graphs
        verifier: Used to prove branch disjointness and non-zero factors
        externals: Registry supplying inverses of external functions
        config: Engine limits
    """

    def __init__(self, arena: ExprArena, verifier: ConstraintVerifier,
                 externals: Optional[ExternalRegistry] = None,
                 config: Optional[EngineConfig] = None):
        self.arena = arena
        self.verifier = verifier
        self.externals = externals if externals is not None else ExternalRegistry()
        self.config = config or verifier.config

    def invert(self, model: FunctionSymbolicModel, target: Optional[str] = None) -> InversionResult:
        """Invert ``model`` with respect to ``target`` (default: its designated target)."""
        if model.tag is Tag.LOSSY:
            return InversionResult.not_invertible(model.name, model.body, "function is declared lossy")
        if model.tag is not Tag.REVERSIBLE:
            return InversionResult.not_invertible(
                model.name, model.body, "function is not declared reversible")

        target = target or model.inverse_target
        if target is None:
            return InversionResult.not_invertible(
                model.name, model.body,
                "multi-parameter function needs a designated inversion target")
        target_var = model.param(target)
        if target_var is None:
            return InversionResult.not_invertible(
                model.name, model.body, f"'{target}' is not a parameter of '{model.name}'")

        output = self.arena.variable(_input_name(model), model.result_type)
        walk = _Walk(self, target_var, [a.expr for a in model.assumptions])
        try:
            inverse_body = walk.solve_target(model.body, output)
        except _Stuck as stuck:
            logger.info("'%s' is not invertible at %s: %s", model.name, render(stuck.node), stuck.reason)
            return InversionResult.not_invertible(model.name, stuck.node, stuck.reason)

        others = tuple(p for p in model.params if p.name != target)
        closure = tuple(a for a in model.assumptions
                        if target not in variable_names(a.expr))
        inverse = FunctionSymbolicModel(
            name=f"{model.name}.inverse",
            params=(output,) + others,
            body=inverse_body,
            result_type=target_var.type,
            assumptions=closure,
            tag=Tag.REVERSIBLE,
            inlined=model.inlined,
            inverse_target=output.name,
            location=model.location,
        )
        logger.info("'%s' inverted: %s", model.name, render(inverse_body))
        return InversionResult.invertible(model.name, inverse)

    def invert_composition(self, composition: Composition,
                           models: Mapping[str, FunctionSymbolicModel]) -> InversionResult:
        """Invert ``f >> g >> ...`` as ``... >> invert(g) >> invert(f)``.

        Legs are inverted last to first; the first failing leg is cited.
        """
        inverses: List[FunctionSymbolicModel] = []
        for leg in reversed(composition.legs):
            model = models.get(leg)
            if model is None:
                return InversionResult.not_invertible(
                    composition.name, None, f"leg '{leg}' is not an analysed function", leg=leg)
            result = self.invert(model)
            if not result.ok:
                return InversionResult.not_invertible(
                    composition.name, result.failing_node,
                    f"leg '{leg}' is not invertible: {result.reason}", leg=leg)
            inverses.append(result.inverse)

        # inverses[0] undoes the last leg and receives the composite's output.
        head = inverses[0]
        body = head.body
        params = list(head.params)
        for inv in inverses[1:]:
            body = substitute_names(self.arena, inv.body, {inv.inverse_target: body})
            for p in inv.params[1:]:
                if all(q.name != p.name for q in params):
                    params.append(p)
        inverse = FunctionSymbolicModel(
            name=f"{composition.name}.inverse",
            params=tuple(params),
            body=body,
            result_type=inverses[-1].result_type,
            tag=Tag.REVERSIBLE,
            inlined=tuple(sorted(set(composition.legs))),
            inverse_target=head.inverse_target,
            location=composition.location,
        )
        logger.info("composition '%s' inverted", composition.name)
        return InversionResult.invertible(composition.name, inverse)


class _Walk:
    """One inversion walk toward a fixed target parameter."""

    def __init__(self, solver: ReversibilitySolver, target: Variable, facts: Sequence[Node]):
        self.solver = solver
        self.arena = solver.arena
        self.target = target
        self.facts = list(facts)
        self.max_depth = solver.config.max_inversion_depth

    def solve_target(self, body: Node, output: Node) -> Node:
        """Expression for the target in terms of ``output``."""
        deps = dependency_map(body)
        if self.target.name not in deps[body.nid]:
            self._reject_opaque(body)
            raise _Stuck(body, f"output does not depend on '{self.target.name}'")
        recovered = self._solve(body, output, deps, 0)
        return self._assemble(body, (), self.target.type, recovered)

    def _assemble(self, body: Node, path: Path, t: Type, recovered: Dict[Path, Node]) -> Node:
        if path in recovered:
            return recovered[path]
        if t.is_record and any(p[:len(path)] == path for p in recovered):
            fields = [(name, self._assemble(body, path + (name,), ftype, recovered))
                      for name, ftype in t.fields]
            return self.arena.construct(t.name, fields, t)
        dotted = ".".join((self.target.name,) + path)
        raise _Stuck(body, f"'{dotted}' is not recoverable from the output")

    # ── the walk ──────────────────────────────────────────────────────

    def _solve(self, node: Node, y: Node, deps: Dict[int, frozenset], depth: int) -> Dict[Path, Node]:
        if depth > self.max_depth:
            raise _Stuck(node, f"inversion depth limit {self.max_depth} exceeded")
        name = self.target.name

        path = self._target_path(node)
        if path is not None:
            return {path: y}
        if isinstance(node, Opaque):
            raise _Stuck(node, f"opaque value cannot be inverted ({node.reason})")
        if name not in deps[node.nid]:
            raise _Stuck(node, f"value does not depend on '{name}'")

        if isinstance(node, UnaryOp):
            if node.op is UnaryOperator.NEG:
                self._require_numeric(node, node.operand)
                return self._solve(node.operand, self.arena.unary(UnaryOperator.NEG, y), deps, depth + 1)
            if node.op is UnaryOperator.NOT:
                return self._solve(node.operand, self.arena.negate(y), deps, depth + 1)
            raise _Stuck(node, loss_reason(node.op) or f"no inverse rule for '{node.op.value}'")
        elif isinstance(node, BinaryOp):
            return self._binary(node, y, deps, depth)
        elif isinstance(node, Conditional):
            return {(): self._conditional(node, y, deps, depth)}
        elif isinstance(node, Construct):
            recovered: Dict[Path, Node] = {}
            for fname, value in node.fields:
                if name not in deps[value.nid]:
                    continue
                part = self._solve(value, self.arena.field(y, fname), deps, depth + 1)
                for key, expr in part.items():
                    recovered.setdefault(key, expr)
            return recovered
        elif isinstance(node, FieldAccess):
            raise _Stuck(node, "field projection discards the rest of the record")
        elif isinstance(node, Call):
            return self._call(node, y, deps, depth)
        elif isinstance(node, (Literal, Variable)):
            raise _Stuck(node, f"value does not depend on '{name}'")
        raise NotImplementedError(f"Node kind not supported: {type(node).__name__}")

    def _target_path(self, node: Node) -> Optional[Path]:
        fields: List[str] = []
        while isinstance(node, FieldAccess):
            fields.append(node.field)
            node = node.record
        if node is self.target:
            return tuple(reversed(fields))
        return None

    def _binary(self, node: BinaryOp, y: Node, deps, depth: int) -> Dict[Path, Node]:
        reason = loss_reason(node.op)
        if reason is not None:
            raise _Stuck(node, reason)
        name = self.target.name
        in_left = name in deps[node.left.nid]
        in_right = name in deps[node.right.nid]
        if in_left and in_right:
            raise _Stuck(node, f"both operands depend on '{name}' (not injective)")
        self._require_numeric(node, node.left, node.right)
        side, other = (node.left, node.right) if in_left else (node.right, node.left)
        self._reject_opaque(other)
        a = self.arena
        op = node.op

        if op is BinaryOperator.ADD:
            inner = a.binary(BinaryOperator.SUB, y, other)
        elif op is BinaryOperator.SUB:
            inner = (a.binary(BinaryOperator.ADD, y, other) if in_left
                     else a.binary(BinaryOperator.SUB, other, y))
        elif op is BinaryOperator.MUL:
            self._require_nonzero(node, other, "multiplier")
            inner = a.binary(BinaryOperator.DIV, y, other)
        elif op is BinaryOperator.DIV:
            if in_left:
                inner = a.binary(BinaryOperator.MUL, y, other)
            else:
                self._require_nonzero(node, other, "dividend")
                inner = a.binary(BinaryOperator.DIV, other, y)
        else:
            raise _Stuck(node, f"no inverse rule for '{op.value}'")
        return self._solve(side, inner, deps, depth + 1)

    def _require_numeric(self, node: Node, *operands: Node) -> None:
        for operand in operands:
            if operand.type.kind not in _NUMERIC:
                raise _Stuck(node, f"no inverse rule for '{node.op.value}' on {operand.type}")

    def _reject_opaque(self, node: Node) -> None:
        for m in postorder(node):
            if isinstance(m, Opaque):
                raise _Stuck(m, f"opaque value cannot be inverted ({m.reason})")

    def _require_nonzero(self, node: Node, operand: Node, role: str) -> None:
        if isinstance(operand, Literal):
            if operand.value == 0:
                raise _Stuck(node, f"{role} is zero, which loses information")
            return
        zero = self.arena.literal(0)
        goal = self.arena.binary(BinaryOperator.NE, operand, zero)
        if not self.solver.verifier.prove(goal, self.facts):
            raise _Stuck(node, f"{role} '{render(operand)}' is not provably non-zero")

    def _conditional(self, node: Conditional, y: Node, deps, depth: int) -> Node:
        a = self.arena
        self._reject_opaque(node.cond)
        then_inv = self._branch(node.then, y, deps, depth)
        else_inv = self._branch(node.else_, y, deps, depth)
        if not self._disjoint(node):
            raise _Stuck(node, "branches not provably disjoint")
        # y lies in the then-branch's range iff its then-inverse is a well-typed
        # input that maps back onto y.
        back = {self.target: then_inv}
        in_then = a.conj(*self._integral(then_inv, self.target.type),
                         substitute(a, node.cond, back),
                         a.eq(substitute(a, node.then, back), y))
        return a.conditional(in_then, then_inv, else_inv)

    def _integral(self, value: Node, t: Type) -> List[Node]:
        """Conditions under which ``value`` lies in the integer domain of ``t``."""
        a = self.arena
        if t.kind == TypeKind.INT:
            return [a.eq(a.unary(UnaryOperator.FLOOR, value), value)]
        if t.is_record:
            checks: List[Node] = []
            for name, ftype in t.fields:
                checks += self._integral(a.field(value, name), ftype)
            return checks
        return []

    def _branch(self, branch: Node, y: Node, deps, depth: int) -> Node:
        recovered = self._solve(branch, y, deps, depth + 1)
        return self._assemble(branch, (), self.target.type, recovered)

    def _disjoint(self, node: Conditional) -> bool:
        """Prove no input taking the then-branch collides with one taking the else-branch."""
        a = self.arena
        twin = a.variable(f"{self.target.name}'", self.target.type)
        rename = {self.target: twin}
        else_twin = substitute(a, node.else_, rename)
        cond_twin = substitute(a, node.cond, rename)
        facts = list(self.facts) + [substitute(a, f, rename) for f in self.facts]
        facts += [node.cond, a.negate(cond_twin)]
        goal = a.binary(BinaryOperator.NE, node.then, else_twin)
        return self.solver.verifier.prove(goal, facts)

    def _call(self, node: Call, y: Node, deps, depth: int) -> Dict[Path, Node]:
        ext = self.solver.externals.get(node.function)
        if ext is None or ext.inverse is None:
            raise _Stuck(node, f"external call '{node.function}' has no registered inverse")
        inverse = self.solver.externals.get(ext.inverse)
        if inverse is None or len(node.args) != 1:
            raise _Stuck(node, f"external call '{node.function}' has no usable inverse")
        arg = node.args[0]
        return self._solve(arg, self.arena.call(inverse.name, [y], inverse.result_type), deps, depth + 1)


def _input_name(model: FunctionSymbolicModel) -> str:
    name = RESULT_NAME
    while model.param(name) is not None:
        name += "_"
    return name
