"""
Symbolic graph to Z3 translation.

Only the decidable fragment the verifier supports is translated: linear
integer/real arithmetic, comparisons, propositional connectives,
conditionals, records (field-wise), and uninterpreted symbols for opaque
values and registered externals. Arithmetic on float literals is excluded
because it rounds at runtime. Anything else raises ``OutsideTheory``.
"""
from typing import Any, Dict, List, Optional, Tuple
import z3

from ..expr.nodes import (
    BinaryOp,
    Call,
    Conditional,
    Construct,
    FieldAccess,
    Literal,
    Node,
    Opaque,
    UnaryOp,
    Variable,
)
from ..expr.ops import BinaryOperator, UnaryOperator
from ..expr.rewrite import postorder
from ..ir.types import Type, TypeKind
from .type_translator import OutsideTheory, TypeTranslator


class RecordTerm:
    """Field-wise translation of a record-valued node."""

    def __init__(self, type_name: str, fields: Dict[str, Any]):
        self.type_name = type_name
        self.fields = fields


class ExprToZ3Translator:
    """Translates symbolic graphs to Z3 terms in one context.

    Translations are memoized per node. Each variable or opaque site maps to
    one constant, so repeated occurrences share a single solver symbol.
    """

    def __init__(self, ctx: Optional[z3.Context] = None):
        """Initialize translator.

        Args:
            ctx: Z3 context for every created term
        """
        self.ctx = ctx
        self.types = TypeTranslator(ctx)
        self._leaves: Dict[str, Any] = {}
        self._memo: Dict[int, Any] = {}
        self._ground: Dict[int, bool] = {}
        self._functions: Dict[str, Any] = {}

    def translate(self, node: Node) -> Any:
        """Translate a graph to a Z3 term (or ``RecordTerm`` for records).

        Raises:
            OutsideTheory: If any reachable node is outside the supported theory
        """
        for n in postorder(node):
            if n.nid not in self._memo:
                self._memo[n.nid] = self._translate_node(n)
        return self._memo[node.nid]

    def translate_bool(self, node: Node) -> Any:
        term = self.translate(node)
        if not z3.is_bool(term):
            raise OutsideTheory(f"expected a boolean formula, got {node.type}")
        return term

    # ── dispatch ──────────────────────────────────────────────────────

    def _translate_node(self, n: Node) -> Any:
        if isinstance(n, Literal):
            return self.types.value(n.value, n.type)
        elif isinstance(n, Variable):
            return self._leaf(n.name, n.type)
        elif isinstance(n, Opaque):
            return self._leaf(f"opaque!{n.site or n.nid}", n.type)
        elif isinstance(n, UnaryOp):
            return self._unary(n)
        elif isinstance(n, BinaryOp):
            return self._binary(n)
        elif isinstance(n, Conditional):
            return self._conditional(n)
        elif isinstance(n, FieldAccess):
            return self._field(n)
        elif isinstance(n, Construct):
            return RecordTerm(n.type_name, {name: self._memo[v.nid] for name, v in n.fields})
        elif isinstance(n, Call):
            return self._call(n)
        raise NotImplementedError(f"Node kind not supported: {type(n).__name__}")

    def _leaf(self, name: str, t: Type) -> Any:
        if t.kind == TypeKind.RECORD:
            return RecordTerm(t.name, {
                fname: self._leaf(f"{name}.{fname}", ftype)
                for fname, ftype in t.fields
            })
        if name not in self._leaves:
            self._leaves[name] = self.types.constant(name, t)
        return self._leaves[name]

    # ── operators ─────────────────────────────────────────────────────

    def _unary(self, n: UnaryOp) -> Any:
        x = self._scalar(n.operand)
        op = n.op
        if op is UnaryOperator.NOT:
            return z3.Not(self._as_bool(x))
        self._require_arith(x, n)
        if op is UnaryOperator.NEG:
            return -x
        if op is UnaryOperator.ABS:
            return z3.If(x >= 0, x, -x)
        if op is UnaryOperator.FLOOR:
            return z3.ToInt(x) if z3.is_real(x) else x
        if op is UnaryOperator.CEIL:
            return -z3.ToInt(-x) if z3.is_real(x) else x
        if op is UnaryOperator.TRUNC:
            if not z3.is_real(x):
                return x
            return z3.If(x >= 0, z3.ToInt(x), -z3.ToInt(-x))
        if op is UnaryOperator.HASH:
            return self._uninterpreted("hash", [x], z3.IntSort(self.ctx))
        raise OutsideTheory(f"operator '{op.value}' is not supported by the verifier")

    def _binary(self, n: BinaryOp) -> Any:
        op = n.op
        left = self._memo[n.left.nid]
        right = self._memo[n.right.nid]

        if op.is_logical:
            a, b = self._as_bool(left), self._as_bool(right)
            if op is BinaryOperator.AND:
                return z3.And(a, b)
            if op is BinaryOperator.OR:
                return z3.Or(a, b)
            return z3.Implies(a, b)

        if op in (BinaryOperator.EQ, BinaryOperator.NE):
            eq = self._equal(left, right, n)
            return eq if op is BinaryOperator.EQ else z3.Not(eq)

        a, b = self._scalar(n.left), self._scalar(n.right)
        self._require_arith(a, n)
        self._require_arith(b, n)
        a, b = _coerce(a, b)
        if op in _ARITHMETIC and (_is_float(n.left) or _is_float(n.right)):
            raise OutsideTheory(f"floating-point arithmetic rounds at runtime: {_text(n)}")

        if op is BinaryOperator.LT:
            return a < b
        if op is BinaryOperator.LE:
            return a <= b
        if op is BinaryOperator.GT:
            return a > b
        if op is BinaryOperator.GE:
            return a >= b
        if op is BinaryOperator.ADD:
            return a + b
        if op is BinaryOperator.SUB:
            return a - b
        if op is BinaryOperator.MUL:
            if not (self._is_ground(n.left) or self._is_ground(n.right)):
                raise OutsideTheory(f"nonlinear term: {_text(n)}")
            return a * b
        if op is BinaryOperator.DIV:
            self._require_constant_divisor(n)
            return z3.ToReal(a) / z3.ToReal(b) if not z3.is_real(a) else a / b
        if op is BinaryOperator.FLOORDIV:
            self._require_constant_divisor(n)
            return self._floordiv(a, b, n.right)
        if op is BinaryOperator.MOD:
            self._require_constant_divisor(n)
            return a - b * self._floordiv(a, b, n.right)
        if op is BinaryOperator.POW:
            raise OutsideTheory(f"nonlinear term: {_text(n)}")
        raise OutsideTheory(f"operator '{op.value}' is not supported by the verifier")

    def _floordiv(self, a: Any, b: Any, divisor: Node) -> Any:
        value = divisor.value
        if z3.is_int(a) and z3.is_int(b):
            # SMT-LIB integer division floors for positive divisors.
            return a / b if value > 0 else (-a) / (-b)
        return z3.ToInt(a / b)

    def _conditional(self, n: Conditional) -> Any:
        cond = self._as_bool(self._memo[n.cond.nid])
        then = self._memo[n.then.nid]
        else_ = self._memo[n.else_.nid]
        if isinstance(then, RecordTerm) or isinstance(else_, RecordTerm):
            if not (isinstance(then, RecordTerm) and isinstance(else_, RecordTerm)) \
                    or set(then.fields) != set(else_.fields):
                raise OutsideTheory("conditional over differently shaped records")
            return RecordTerm(then.type_name, {
                name: self._ite(cond, then.fields[name], else_.fields[name])
                for name in then.fields
            })
        return self._ite(cond, then, else_)

    def _ite(self, cond: Any, then: Any, else_: Any) -> Any:
        if isinstance(then, RecordTerm):
            return RecordTerm(then.type_name, {
                name: self._ite(cond, then.fields[name], else_.fields[name])
                for name in then.fields
            })
        if _is_arith(then) and _is_arith(else_):
            then, else_ = _coerce(then, else_)
        elif then.sort() != else_.sort():
            raise OutsideTheory("conditional branches have incompatible sorts")
        return z3.If(cond, then, else_)

    def _field(self, n: FieldAccess) -> Any:
        record = self._memo[n.record.nid]
        if not isinstance(record, RecordTerm):
            raise OutsideTheory(f"field access on a non-record value: {_text(n)}")
        if n.field not in record.fields:
            raise OutsideTheory(f"record has no field '{n.field}'")
        return record.fields[n.field]

    def _call(self, n: Call) -> Any:
        args = [self._scalar(a) for a in n.args]
        result_sort = self.types.sort_of(n.type)
        return self._uninterpreted(n.function, args, result_sort)

    def _uninterpreted(self, name: str, args: List[Any], result_sort: Any) -> Any:
        key = f"{name}/{len(args)}/{result_sort}/" + ",".join(str(a.sort()) for a in args)
        fn = self._functions.get(key)
        if fn is None:
            fn = z3.Function(name, *([a.sort() for a in args] + [result_sort]))
            self._functions[key] = fn
        return fn(*args)

    # ── helpers ───────────────────────────────────────────────────────

    def _equal(self, left: Any, right: Any, n: Node) -> Any:
        if isinstance(left, RecordTerm) or isinstance(right, RecordTerm):
            if not (isinstance(left, RecordTerm) and isinstance(right, RecordTerm)):
                raise OutsideTheory(f"comparing a record with a scalar: {_text(n)}")
            if set(left.fields) != set(right.fields) or left.type_name != right.type_name:
                return z3.BoolVal(False, self.ctx)
            parts = [self._equal(left.fields[k], right.fields[k], n) for k in sorted(left.fields)]
            return z3.And(*parts) if parts else z3.BoolVal(True, self.ctx)
        if _is_arith(left) and _is_arith(right):
            left, right = _coerce(left, right)
        elif left.sort() != right.sort():
            raise OutsideTheory(f"comparing incompatible sorts: {_text(n)}")
        return left == right

    def _scalar(self, node: Node) -> Any:
        term = self._memo[node.nid]
        if isinstance(term, RecordTerm):
            raise OutsideTheory(f"record used where a scalar is required: {_text(node)}")
        return term

    def _as_bool(self, term: Any) -> Any:
        if isinstance(term, RecordTerm) or not z3.is_bool(term):
            raise OutsideTheory("non-boolean operand of a logical operator")
        return term

    def _require_arith(self, term: Any, n: Node) -> None:
        if not _is_arith(term):
            raise OutsideTheory(f"arithmetic on a non-numeric value: {_text(n)}")

    def _require_constant_divisor(self, n: BinaryOp) -> None:
        if not isinstance(n.right, Literal):
            raise OutsideTheory(f"division by a non-constant: {_text(n)}")
        if n.right.value == 0:
            raise OutsideTheory(f"division by zero: {_text(n)}")

    def _is_ground(self, node: Node) -> bool:
        for m in postorder(node):
            if m.nid in self._ground:
                continue
            if isinstance(m, (Variable, Opaque, Call)):
                self._ground[m.nid] = False
            else:
                self._ground[m.nid] = all(self._ground[c.nid] for c in m.children())
        return self._ground[node.nid]


# Float literals are exact rationals here but round in IEEE arithmetic at runtime.
_ARITHMETIC = frozenset({
    BinaryOperator.ADD, BinaryOperator.SUB, BinaryOperator.MUL,
    BinaryOperator.DIV, BinaryOperator.FLOORDIV, BinaryOperator.MOD,
})


def _is_float(node: Node) -> bool:
    return isinstance(node, Literal) and isinstance(node.value, float)


def _is_arith(term: Any) -> bool:
    return not isinstance(term, RecordTerm) and (z3.is_int(term) or z3.is_real(term))


def _coerce(a: Any, b: Any) -> Tuple[Any, Any]:
    if z3.is_int(a) and z3.is_real(b):
        return z3.ToReal(a), b
    if z3.is_real(a) and z3.is_int(b):
        return a, z3.ToReal(b)
    return a, b


def _text(n: Node) -> str:
    from ..expr.rewrite import render
    return render(n)
