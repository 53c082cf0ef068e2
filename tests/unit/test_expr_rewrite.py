"""
Tests for graph utilities, concrete evaluation, and the JSON codec.
"""
import json
from fractions import Fraction

import pytest
from reverie.sym.errors import EvaluationError
from reverie.sym.expr import (
    BinaryOperator,
    ExprArena,
    Literal,
    RecordValue,
    decode_graphs,
    encode_graphs,
    evaluate,
    free_variables,
    node_count,
    render,
    substitute_names,
)
from reverie.sym.expr.rewrite import dependency_map, rename_variables
from reverie.sym.ir import INT, REAL


@pytest.fixture
def xy(arena):
    return arena.variable("x", INT), arena.variable("y", INT)


def test_free_variables_are_sorted_by_name(arena, xy):
    x, y = xy
    expr = arena.binary(BinaryOperator.ADD, y, x)

    assert [v.name for v in free_variables(expr)] == ["x", "y"]


def test_substitution_builds_new_nodes(arena, xy):
    x, y = xy
    expr = arena.binary(BinaryOperator.ADD, x, arena.literal(1))

    replaced = substitute_names(arena, expr, {"x": arena.literal(3)})

    assert isinstance(replaced, Literal) and replaced.value == 4
    assert expr.left is x


def test_rename_variables(arena, xy):
    x, y = xy
    expr = arena.binary(BinaryOperator.LT, x, y)

    renamed = rename_variables(arena, expr, lambda n: n + "'")

    assert [v.name for v in free_variables(renamed)] == ["x'", "y'"]


def test_node_count_counts_shared_nodes_once(arena, xy):
    x, _ = xy
    inc = arena.binary(BinaryOperator.ADD, x, arena.literal(1))
    square = arena.binary(BinaryOperator.MUL, inc, inc)

    assert node_count(square) == 4


def test_dependency_map(arena, xy):
    x, y = xy
    left = arena.binary(BinaryOperator.MUL, x, arena.literal(2))
    expr = arena.binary(BinaryOperator.ADD, left, y)

    deps = dependency_map(expr)

    assert deps[left.nid] == frozenset({"x"})
    assert deps[expr.nid] == frozenset({"x", "y"})


def test_render(arena, xy):
    x, y = xy
    expr = arena.binary(BinaryOperator.MUL, arena.binary(BinaryOperator.ADD, x, y), arena.literal(2))

    assert render(expr) == "(x + y) * 2"


def test_evaluate_arithmetic(arena, xy):
    x, y = xy
    expr = arena.binary(BinaryOperator.DIV, arena.binary(BinaryOperator.ADD, x, y), arena.literal(4))

    assert evaluate(expr, {"x": 1, "y": 2}) == Fraction(3, 4)
    assert evaluate(expr, {"x": 1.0, "y": 2}) == 0.75


def test_evaluate_short_circuits(arena, xy):
    x, _ = xy
    nonzero = arena.binary(BinaryOperator.NE, x, arena.literal(0))
    quotient = arena.binary(BinaryOperator.DIV, arena.literal(10), x)
    guarded = arena.binary(BinaryOperator.AND, nonzero,
                           arena.binary(BinaryOperator.GT, quotient, arena.literal(1)))

    assert evaluate(guarded, {"x": 0}) is False
    assert evaluate(guarded, {"x": 5}) is True


def test_evaluate_only_the_taken_branch(arena, xy):
    x, _ = xy
    is_zero = arena.binary(BinaryOperator.EQ, x, arena.literal(0))
    expr = arena.conditional(is_zero, arena.literal(0),
                             arena.binary(BinaryOperator.DIV, arena.literal(10), x))

    assert evaluate(expr, {"x": 0}) == 0
    assert evaluate(expr, {"x": 4}) == Fraction(5, 2)


def test_evaluate_records(arena, xy):
    x, y = xy
    rec = arena.construct("P", [("a", x), ("b", y)])
    swapped = arena.construct("Q", [("a", arena.field(rec, "b")), ("b", arena.field(rec, "a"))])

    value = evaluate(swapped, {"x": 1, "y": 2})

    assert value == RecordValue("Q", [("a", 2), ("b", 1)])
    assert value["a"] == 2
    assert value.as_dict() == {"a": 2, "b": 1}


def test_evaluate_errors(arena, xy):
    x, _ = xy

    with pytest.raises(EvaluationError):
        evaluate(x, {})
    with pytest.raises(EvaluationError):
        evaluate(arena.opaque("effect: io", "f#1", INT), {})
    with pytest.raises(EvaluationError):
        evaluate(arena.binary(BinaryOperator.DIV, arena.literal(1), x), {"x": 0})


def test_codec_restores_the_same_graph(arena, xy):
    x, y = xy
    shared = arena.binary(BinaryOperator.ADD, x, arena.literal(Fraction(1, 3), REAL))
    root = arena.conditional(arena.binary(BinaryOperator.GT, y, arena.literal(0)),
                             arena.construct("P", [("a", shared), ("b", shared)]),
                             arena.construct("P", [("a", shared), ("b", arena.opaque("io", "f#1", REAL))]))

    data = json.loads(json.dumps(encode_graphs([root])))
    assert len(data["nodes"]) == node_count(root)

    other = ExprArena()
    (decoded,) = decode_graphs(other, data)

    assert decoded.digest == root.digest
    assert render(decoded) == render(root)
