"""
Tests for building symbolic models from typed functions.
"""
import pytest
from reverie.sym.builder import ExpressionBuilder, RESULT_NAME
from reverie.sym.config import EngineConfig
from reverie.sym.expr import (
    BinaryOp,
    BinaryOperator,
    Call,
    NodeKind,
    Opaque,
    evaluate,
    free_variables,
)
from reverie.sym.expr.rewrite import nodes_of_kind
from reverie.sym.ir import (
    BOOL,
    INT,
    Binary,
    Block,
    Composition,
    Const,
    Effect,
    ExternalFunction,
    ExternalRegistry,
    If,
    Invoke,
    Let,
    Loop,
    Name,
    Param,
    Tag,
    TypedFunction,
)

X = Name("x", INT)


def fn(name, body, params=(("x", INT),), **kwargs):
    return TypedFunction(name, tuple(Param(n, t) for n, t in params), body, result_type=INT, **kwargs)


def builder_for(arena, *functions, externals=None, **config):
    return ExpressionBuilder(arena, {f.name: f for f in functions}, externals,
                             EngineConfig(cache_path=None, **config))


def test_let_bindings_are_inlined_and_shared(arena):
    body = Block((Let("t", Binary("*", X, Const(2))),), Binary("+", Name("t", INT), Name("t", INT)))
    model = builder_for(arena).build(fn("f", body))

    assert isinstance(model.body, BinaryOp)
    assert model.body.left is model.body.right
    assert evaluate(model.body, {"x": 3}) == 12


def test_calls_are_inlined_and_recorded(arena):
    double = fn("double", Block((), Binary("*", Name("n", INT), Const(2))), params=(("n", INT),))
    quad = fn("quad", Block((), Invoke("double", (Invoke("double", (X,), INT),), INT)))
    model = builder_for(arena, double, quad).build(quad)

    assert model.inlined == ("double",)
    assert [s.callee for s in model.call_sites] == ["double", "double"]
    assert model.call_sites[0].args == (arena.variable("x", INT),)
    assert evaluate(model.body, {"x": 5}) == 20


def test_path_condition_of_a_guarded_call(arena):
    g = fn("g", Block((), Binary("-", X, Const(1))))
    f = fn("f", Block((), If(Binary(">", X, Const(0), BOOL), Invoke("g", (X,), INT), Const(0), INT)))
    model = builder_for(arena, g, f).build(f)

    x = arena.variable("x", INT)
    (site,) = model.call_sites
    assert site.path_condition is arena.binary(BinaryOperator.GT, x, arena.literal(0))


def test_short_circuit_guards_the_right_operand(arena):
    g = fn("g", Block((), X))
    f = TypedFunction("f", (Param("x", INT),), Block((), Binary(
        "and", Binary("!=", X, Const(0), BOOL),
        Binary(">", Invoke("g", (X,), INT), Const(1), BOOL), BOOL)), result_type=BOOL)
    model = builder_for(arena, g, f).build(f)

    x = arena.variable("x", INT)
    assert model.call_sites[0].path_condition is arena.binary(BinaryOperator.NE, x, arena.literal(0))


def test_recursion_becomes_opaque(arena):
    fact = fn("fact", Block((), If(
        Binary("<=", X, Const(0), BOOL), Const(1),
        Binary("*", X, Invoke("fact", (Binary("-", X, Const(1)),), INT)), INT)))
    model = builder_for(arena, fact).build(fact)

    opaque = nodes_of_kind(NodeKind.OPAQUE, model.body)
    assert len(opaque) == 1
    assert "recursive call to 'fact'" in opaque[0].reason
    assert model.call_sites[0].callee == "fact"


def test_inlining_budget(arena):
    double = fn("double", Block((), Binary("*", Name("n", INT), Const(2))), params=(("n", INT),))
    f = fn("f", Block((), Invoke("double", (X,), INT)))
    model = builder_for(arena, double, f, max_inline_depth=0).build(f)

    assert isinstance(model.body, Opaque)
    assert "inlining budget" in model.body.reason
    assert model.inlined == ()


def test_arity_mismatch_becomes_opaque(arena):
    double = fn("double", Block((), Binary("*", Name("n", INT), Const(2))), params=(("n", INT),))
    f = fn("f", Block((), Invoke("double", (X, X), INT)))
    model = builder_for(arena, double, f).build(f)

    assert isinstance(model.body, Opaque)


def test_effects_become_distinct_opaque_values(arena):
    body = Binary("-", Effect("read clock", INT), Effect("read clock", INT))
    model = builder_for(arena).build(fn("f", Block((), body)))

    assert isinstance(model.body, BinaryOp)
    assert model.body.left is not model.body.right
    assert all(isinstance(n, Opaque) for n in (model.body.left, model.body.right))


def test_bounded_loop_is_unrolled(arena):
    loop = Loop("acc", Const(0), Binary("+", Name("acc", INT), X), count=3, type=INT)
    model = builder_for(arena).build(fn("f", Block((), loop)))

    assert evaluate(model.body, {"x": 2}) == 6


def test_unbounded_loops_become_opaque(arena):
    unbounded = Loop("acc", Const(0), Binary("+", Name("acc", INT), X), type=INT)
    too_long = Loop("acc", Const(0), Binary("+", Name("acc", INT), X), count=100, type=INT)
    b = builder_for(arena, max_loop_unroll=8)

    assert isinstance(b.build(fn("f", Block((), unbounded))).body, Opaque)
    assert isinstance(b.build(fn("g", Block((), too_long))).body, Opaque)


def test_registered_externals_become_calls(arena):
    externals = ExternalRegistry()
    externals.register(ExternalFunction("encode", 1, INT))
    f = fn("f", Block((), Binary("+", Invoke("encode", (X,), INT), Invoke("log", (X,), INT))))
    model = builder_for(arena, f, externals=externals).build(f)

    assert isinstance(model.body.left, Call)
    assert model.body.left.function == "encode"
    assert isinstance(model.body.right, Opaque)
    assert "unregistered external 'log'" in model.body.right.reason


def test_constraints_and_result_variable(arena, clamp):
    model = builder_for(arena, clamp).build(clamp)

    (guarantee,) = model.guarantees
    assert RESULT_NAME in {v.name for v in free_variables(guarantee.expr)}
    assert guarantee.display == "result >= 0 && result <= 100"
    assert model.inverse_target == "x"


def test_inverse_target_needs_a_single_parameter(arena):
    f = fn("f", Block((), Binary("+", X, Name("y", INT))), params=(("x", INT), ("y", INT)))
    g = fn("g", Block((), Binary("+", X, Name("y", INT))), params=(("x", INT), ("y", INT)),
           inverse_target="y")

    assert builder_for(arena).build(f).inverse_target is None
    assert builder_for(arena).build(g).inverse_target == "y"


def test_content_hash_follows_inlined_callees(arena):
    def unit(step):
        inc = fn("inc", Block((), Binary("+", X, Const(step))))
        main = fn("main", Block((), Invoke("inc", (X,), INT)))
        return inc, main

    h1 = builder_for(arena, *unit(1)).build(unit(1)[1]).content_hash()
    h1_again = builder_for(arena, *unit(1)).build(unit(1)[1]).content_hash()
    h2 = builder_for(arena, *unit(2)).build(unit(2)[1]).content_hash()

    assert h1 == h1_again
    assert h1 != h2


def test_compose_forward_model(arena, pipeline_unit):
    b = ExpressionBuilder(arena, pipeline_unit.function_table, config=EngineConfig(cache_path=None))
    models = {f.name: b.build(f) for f in pipeline_unit.functions}

    forward = b.compose(Composition("fg", ("f", "g")), models)
    lossy = b.compose(Composition("fgh", ("f", "g", "h")), models)

    assert evaluate(forward.body, {"x": 3}) == 8
    assert forward.tag is Tag.REVERSIBLE
    assert lossy.tag is Tag.LOSSY


def test_compose_rejects_empty(arena):
    with pytest.raises(ValueError):
        ExpressionBuilder(arena).compose(Composition("empty", ()), {})
