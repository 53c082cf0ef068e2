"""
Tests for the three-way constraint verifier.
"""
from fractions import Fraction

import pytest
from reverie.sym.analysis import ConstraintVerifier, ProofStatus
from reverie.sym.builder import ExpressionBuilder
from reverie.sym.config import EngineConfig
from reverie.sym.expr import BinaryOperator
from reverie.sym.solver import Z3Solver
from reverie.sym.ir import (
    BOOL,
    INT,
    REAL,
    Binary,
    Block,
    Clause,
    Const,
    Name,
    Param,
    TypedFunction,
)


@pytest.fixture
def verifier(arena, config):
    return ConstraintVerifier(arena, config)


@pytest.fixture
def xy(arena):
    return arena.variable("x", INT), arena.variable("y", INT)


def cmp(arena, op, left, right):
    if isinstance(right, int):
        right = arena.literal(right)
    return arena.binary(op, left, right)


def test_proven(arena, verifier, xy):
    x, _ = xy
    result = verifier.decide(cmp(arena, BinaryOperator.GT, x, 0), [cmp(arena, BinaryOperator.GT, x, 5)])

    assert result.status == ProofStatus.PROVEN
    assert result.counterexample is None


def test_refuted_with_counterexample(arena, verifier, xy):
    x, _ = xy
    result = verifier.decide(cmp(arena, BinaryOperator.GT, x, 10),
                             [cmp(arena, BinaryOperator.LT, x, 5)],
                             witnesses={"x": x})

    assert result.is_refuted
    assert result.counterexample["x"] < 5


def test_unknown_when_the_facts_do_not_decide(arena, verifier, xy):
    x, _ = xy
    result = verifier.decide(cmp(arena, BinaryOperator.GT, x, 10), [cmp(arena, BinaryOperator.GT, x, 5)])

    assert result.is_unknown
    assert result.reason


def test_integer_reasoning(arena, verifier, xy):
    x, _ = xy
    goal = cmp(arena, BinaryOperator.GE, arena.binary(BinaryOperator.SUB, x, arena.literal(1)), 0)
    facts = [cmp(arena, BinaryOperator.GE, x, 0), cmp(arena, BinaryOperator.NE, x, 0)]

    assert verifier.decide(goal, facts).is_proven


def test_real_and_integer_mix(arena, verifier, xy):
    x, _ = xy
    half = arena.binary(BinaryOperator.DIV, x, arena.literal(2))
    goal = cmp(arena, BinaryOperator.LT, half, x)

    assert verifier.decide(goal, [cmp(arena, BinaryOperator.GT, x, 0)]).is_proven


def test_nonlinear_terms_are_unknown(arena, verifier, xy):
    x, y = xy
    goal = cmp(arena, BinaryOperator.GE, arena.binary(BinaryOperator.MUL, x, y), 0)

    result = verifier.decide(goal)

    assert result.is_unknown
    assert "nonlinear" in result.reason


def test_division_by_a_variable_is_unknown(arena, verifier, xy):
    x, y = xy
    goal = cmp(arena, BinaryOperator.GT, arena.binary(BinaryOperator.DIV, x, y), 0)

    result = verifier.decide(goal, [cmp(arena, BinaryOperator.GT, y, 0)])

    assert result.is_unknown
    assert "non-constant" in result.reason


def test_float_literal_arithmetic_is_unknown(arena, verifier):
    r = arena.variable("r", REAL)
    tenth = arena.literal(0.1)
    round_trip = arena.binary(BinaryOperator.SUB, arena.binary(BinaryOperator.ADD, r, tenth), tenth)

    result = verifier.decide(arena.eq(round_trip, r))

    assert result.is_unknown
    assert "floating-point" in result.reason


def test_exact_literals_and_float_comparisons_stay_decidable(arena, verifier):
    r = arena.variable("r", REAL)
    tenth = arena.literal(Fraction(1, 10))
    round_trip = arena.binary(BinaryOperator.SUB, arena.binary(BinaryOperator.ADD, r, tenth), tenth)

    assert verifier.decide(arena.eq(round_trip, r)).is_proven
    assert verifier.decide(cmp(arena, BinaryOperator.GT, r, arena.literal(0.5)),
                           [cmp(arena, BinaryOperator.GT, r, arena.literal(1.0))]).is_proven


def test_opaque_values_are_free(arena, verifier):
    o = arena.opaque("effect: read sensor", "f#1", INT)

    assert verifier.decide(cmp(arena, BinaryOperator.GT, o, 0)).is_unknown
    assert verifier.decide(arena.binary(BinaryOperator.EQ, o, o)).is_proven


def test_literal_goals(arena, verifier):
    assert verifier.decide(arena.true()).is_proven
    assert verifier.decide(arena.false()).is_refuted


def test_term_size_ceiling(arena, xy):
    x, y = xy
    small = ConstraintVerifier(arena, EngineConfig(cache_path=None, max_term_size=3))
    goal = cmp(arena, BinaryOperator.GT, arena.binary(BinaryOperator.ADD, x, y), 0)

    result = small.decide(goal)

    assert result.is_unknown
    assert "term size" in result.reason


def test_case_split_ceiling(arena, xy):
    x, y = xy
    none_allowed = ConstraintVerifier(arena, EngineConfig(cache_path=None, max_case_splits=0))
    goal = arena.binary(BinaryOperator.OR, cmp(arena, BinaryOperator.GT, x, 0),
                        cmp(arena, BinaryOperator.LE, x, 0))

    result = none_allowed.decide(goal)

    assert result.is_unknown
    assert "case splits" in result.reason


def test_decisions_are_deterministic(arena, verifier, xy):
    x, y = xy
    goal = cmp(arena, BinaryOperator.GT, arena.binary(BinaryOperator.ADD, x, y), 100)
    facts = [cmp(arena, BinaryOperator.LT, x, 10), cmp(arena, BinaryOperator.LT, y, 10)]

    first = verifier.decide(goal, facts, {"x": x, "y": y})
    second = verifier.decide(goal, facts, {"x": x, "y": y})

    assert first.is_refuted
    assert first == second


# ── guarantees ─────────────────────────────────────────────────────────

def model_of(arena, fn):
    return ExpressionBuilder(arena, {fn.name: fn}).build(fn)


def test_clamp_guarantee_is_proven(arena, verifier, clamp):
    model = model_of(arena, clamp)

    outcome = verifier.verify_guarantee(model, model.guarantees[0])

    assert outcome.result.is_proven


def test_guarantee_that_can_never_hold_is_refuted(arena, verifier):
    x, r = Name("x", INT), Name("result", INT)
    fn = TypedFunction("dec", (Param("x", INT),), Block((), Binary("-", x, Const(1), INT)),
                       result_type=INT,
                       guarantees=(Clause(Binary(">", r, x, BOOL), "result > x"),))
    model = model_of(arena, fn)

    outcome = verifier.verify_guarantee(model, model.guarantees[0])

    assert outcome.result.is_refuted
    cex = outcome.result.counterexample
    assert cex["result"] == cex["x"] - 1


def test_guarantee_depends_on_assumptions(arena, verifier):
    x, r = Name("x", REAL), Name("result", REAL)
    positive = Clause(Binary(">", r, Const(0), BOOL), "result > 0")
    bare = TypedFunction("ident", (Param("x", REAL),), Block((), x), result_type=REAL,
                         guarantees=(positive,))
    guarded = TypedFunction("ident_pos", (Param("x", REAL),), Block((), x), result_type=REAL,
                            assumes=(Clause(Binary(">", x, Const(0), BOOL), "x > 0"),),
                            guarantees=(positive,))

    bare_model, guarded_model = model_of(arena, bare), model_of(arena, guarded)

    assert verifier.verify_guarantee(bare_model, bare_model.guarantees[0]).result.is_unknown
    assert verifier.verify_guarantee(guarded_model, guarded_model.guarantees[0]).result.is_proven


def test_verify_reports_call_sites(arena, verifier, div_unit):
    builder = ExpressionBuilder(arena, div_unit.function_table)
    models = {f.name: builder.build(f) for f in div_unit.functions}

    outcomes = {
        name: verifier.verify(models[name], callees=models).call_sites[0].result.status
        for name in ("safe_caller", "free_caller", "zero_caller")
    }

    assert outcomes == {
        "safe_caller": ProofStatus.PROVEN,
        "free_caller": ProofStatus.UNKNOWN,
        "zero_caller": ProofStatus.REFUTED,
    }


def test_refuted_call_site_names_the_arguments(arena, verifier, div_unit):
    builder = ExpressionBuilder(arena, div_unit.function_table)
    models = {f.name: builder.build(f) for f in div_unit.functions}

    verification = verifier.verify(models["zero_caller"], callees=models)
    (outcome,) = verification.call_sites

    assert outcome.result.counterexample == {"a": 10, "b": 0}
    assert outcome.call_site.callee == "div"
    assert str(outcome.constraint.location) == "calc.rv:10:11"


class CountingSolver(Z3Solver):
    checks = 0

    def check(self):
        CountingSolver.checks += 1
        return super().check()


def test_verifier_runs_on_the_given_backend(arena, config, xy):
    x, _ = xy
    CountingSolver.checks = 0
    verifier = ConstraintVerifier(arena, config, backend=CountingSolver)

    assert verifier.decide(cmp(arena, BinaryOperator.GT, x, 0), [cmp(arena, BinaryOperator.GT, x, 5)]).is_proven
    assert verifier.decide(cmp(arena, BinaryOperator.GT, x, 10), [cmp(arena, BinaryOperator.LT, x, 5)]).is_refuted
    assert CountingSolver.checks == 3
