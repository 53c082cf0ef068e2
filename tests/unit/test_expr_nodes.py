"""
Tests for the hash-consed expression arena.
"""
from fractions import Fraction

import pytest
from reverie.sym.expr import (
    BinaryOp,
    BinaryOperator,
    Conditional,
    ExprArena,
    Literal,
    UnaryOperator,
)
from reverie.sym.ir import INT, REAL, BOOL, record_type


def test_identical_subexpressions_are_one_node(arena):
    x = arena.variable("x", INT)
    a = arena.binary(BinaryOperator.ADD, x, arena.literal(1))
    b = arena.binary(BinaryOperator.ADD, arena.variable("x", INT), arena.literal(1))

    assert a is b
    assert len(arena) == 3


def test_variables_of_different_types_are_distinct(arena):
    assert arena.variable("x", INT) is not arena.variable("x", REAL)


def test_literal_arithmetic_is_folded(arena):
    node = arena.binary(BinaryOperator.ADD, arena.literal(2), arena.literal(3))

    assert isinstance(node, Literal)
    assert node.value == 5
    assert node.type == INT


def test_exact_division_folds_to_a_fraction(arena):
    node = arena.binary(BinaryOperator.DIV, arena.literal(1), arena.literal(3))

    assert isinstance(node, Literal)
    assert node.value == Fraction(1, 3)
    assert node.type == REAL


def test_division_by_zero_is_never_folded(arena):
    node = arena.binary(BinaryOperator.DIV, arena.literal(1), arena.literal(0))

    assert isinstance(node, BinaryOp)
    assert node.op is BinaryOperator.DIV


def test_comparison_of_literals_folds_to_bool(arena):
    node = arena.binary(BinaryOperator.NE, arena.literal(5), arena.literal(0))

    assert node is arena.true()
    assert node.type == BOOL


def test_boolean_identities(arena):
    p = arena.binary(BinaryOperator.GT, arena.variable("x", INT), arena.literal(0))

    assert arena.binary(BinaryOperator.AND, arena.true(), p) is p
    assert arena.binary(BinaryOperator.AND, p, arena.false()) is arena.false()
    assert arena.binary(BinaryOperator.OR, p, arena.true()) is arena.true()
    assert arena.binary(BinaryOperator.IMPLIES, arena.false(), p) is arena.true()
    assert arena.negate(arena.negate(p)) is p


def test_conditional_collapse(arena):
    x = arena.variable("x", INT)
    c = arena.binary(BinaryOperator.LT, x, arena.literal(0))
    one, two = arena.literal(1), arena.literal(2)

    assert arena.conditional(arena.true(), one, two) is one
    assert arena.conditional(arena.false(), one, two) is two
    assert arena.conditional(c, one, one) is one
    assert isinstance(arena.conditional(c, one, two), Conditional)


def test_field_of_construct_is_the_field_value(arena):
    x = arena.variable("x", INT)
    rec = arena.construct("P", [("a", x), ("b", arena.literal(2))])

    assert arena.field(rec, "a") is x
    with pytest.raises(ValueError):
        arena.field(rec, "missing")


def test_field_access_takes_the_declared_field_type(arena):
    point = record_type("Point", [("x", INT), ("y", REAL)])
    p = arena.variable("p", point)

    assert arena.field(p, "y").type == REAL
    with pytest.raises(ValueError):
        arena.field(p, "z")


def test_nodes_are_immutable(arena):
    x = arena.variable("x", INT)

    with pytest.raises(AttributeError):
        x.name = "y"
    with pytest.raises(AttributeError):
        del x.nid


def test_opaque_values_at_different_sites_stay_distinct(arena):
    a = arena.opaque("effect: read clock", "f#1", INT)
    b = arena.opaque("effect: read clock", "f#2", INT)

    assert a is not b
    assert arena.binary(BinaryOperator.SUB, a, b).op is BinaryOperator.SUB


def test_digest_is_stable_across_arenas():
    def build(arena):
        x = arena.variable("x", INT)
        return arena.binary(BinaryOperator.MUL, arena.unary(UnaryOperator.NEG, x), arena.literal(3))

    a, b = build(ExprArena()), build(ExprArena())
    other = ExprArena()
    plain = other.binary(BinaryOperator.MUL, other.variable("x", INT), other.literal(3))

    assert a.digest == b.digest
    assert a.digest != plain.digest


def test_nodes_from_another_arena_are_rejected(arena):
    foreign = ExprArena().variable("x", INT)

    with pytest.raises(ValueError):
        arena.binary(BinaryOperator.ADD, foreign, arena.literal(1))


def test_real_literals_are_exact(arena):
    node = arena.literal(3, REAL)

    assert node.value == Fraction(3)
    assert node.type == REAL
