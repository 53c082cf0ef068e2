"""
Pytest configuration and fixtures for reverie-sym tests.
"""
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from reverie.sym.config import EngineConfig  # noqa: E402
from reverie.sym.engine import Engine  # noqa: E402
from reverie.sym.expr import ExprArena  # noqa: E402
from reverie.sym.ir import (  # noqa: E402
    BOOL,
    INT,
    REAL,
    Binary,
    Block,
    Clause,
    CompilationUnit,
    Composition,
    Const,
    If,
    Invoke,
    Location,
    Member,
    Name,
    Param,
    RecordLit,
    Tag,
    TypedFunction,
    Unary,
    record_type,
)


@pytest.fixture
def arena():
    return ExprArena()


@pytest.fixture
def config():
    return EngineConfig(cache_path=None)


@pytest.fixture
def engine(config):
    return Engine(config)


@pytest.fixture
def celsius_to_fahrenheit():
    """``c -> c * 9 / 5 + 32``, declared reversible."""
    c = Name("c", REAL)
    body = Binary("+", Binary("/", Binary("*", c, Const(9)), Const(5)), Const(32))
    return TypedFunction("c_to_f", (Param("c", REAL),), Block((), body),
                         result_type=REAL, tag=Tag.REVERSIBLE)


@pytest.fixture
def clamp():
    """Three-branch clamp into [0, 100] with a range guarantee."""
    x = Name("x", INT)
    r = Name("result", INT)
    body = If(Binary("<", x, Const(0), BOOL), Const(0),
              If(Binary(">", x, Const(100), BOOL), Const(100), x, INT), INT)
    guarantee = Clause(
        Binary("and", Binary(">=", r, Const(0), BOOL), Binary("<=", r, Const(100), BOOL), BOOL),
        "result >= 0 && result <= 100")
    return TypedFunction("clamp", (Param("x", INT),), Block((), body),
                         result_type=INT, guarantees=(guarantee,))


@pytest.fixture
def div_unit():
    """``div`` assumes ``b != 0``; three callers pass safe, free, and zero divisors."""
    a, b = Name("a", INT), Name("b", INT)
    div = TypedFunction(
        "div", (Param("a", INT), Param("b", INT)),
        Block((), Binary("/", a, b, REAL)),
        result_type=REAL,
        assumes=(Clause(Binary("!=", b, Const(0), BOOL), "b != 0",
                        Location("calc.rv", 1, 12)),),
        location=Location("calc.rv", 1, 0))
    safe = TypedFunction(
        "safe_caller", (),
        Block((), Invoke("div", (Const(10), Const(5)), REAL, Location("calc.rv", 4, 11))),
        result_type=REAL)
    free = TypedFunction(
        "free_caller", (Param("x", INT), Param("y", INT)),
        Block((), Invoke("div", (Name("x", INT), Name("y", INT)), REAL,
                         Location("calc.rv", 7, 11))),
        result_type=REAL)
    zero = TypedFunction(
        "zero_caller", (),
        Block((), Invoke("div", (Const(10), Const(0)), REAL, Location("calc.rv", 10, 11))),
        result_type=REAL)
    return CompilationUnit("calc", (div, safe, free, zero))


@pytest.fixture
def pipeline_unit():
    """``f >> g >> h`` where ``h`` rounds and is tagged lossy; ``f >> g`` is clean."""
    x = Name("x", REAL)
    f = TypedFunction("f", (Param("x", REAL),), Block((), Binary("+", x, Const(1))),
                      result_type=REAL, tag=Tag.REVERSIBLE)
    g = TypedFunction("g", (Param("x", REAL),), Block((), Binary("*", x, Const(2))),
                      result_type=REAL, tag=Tag.REVERSIBLE)
    h = TypedFunction("h", (Param("x", REAL),), Block((), Unary("round", x, INT)),
                      result_type=INT, tag=Tag.LOSSY)
    return CompilationUnit(
        "pipeline", (f, g, h),
        compositions=(Composition("f_g_h", ("f", "g", "h"), Location("pipe.rv", 20, 0)),
                      Composition("f_g", ("f", "g"))))


@pytest.fixture
def point_types():
    point = record_type("Point", [("x", INT), ("y", INT)])
    pair = record_type("Pair", [("first", INT), ("second", INT)])
    return point, pair


@pytest.fixture
def to_pair(point_types):
    """Field-renaming record transform ``Point{x, y} -> Pair{first, second}``."""
    point, pair = point_types
    p = Name("p", point)
    body = RecordLit("Pair", (("first", Member(p, "x", INT)), ("second", Member(p, "y", INT))))
    return TypedFunction("to_pair", (Param("p", point),), Block((), body),
                         result_type=pair, tag=Tag.REVERSIBLE)


@pytest.fixture
def parity_unit():
    """Mutually recursive ``is_even`` / ``is_odd`` called from ``main``."""
    n = Name("n", INT)
    non_negative = (Clause(Binary(">=", n, Const(0), BOOL), "n >= 0"),)

    def parity(name, other, base):
        body = If(Binary("==", n, Const(0), BOOL), Const(base),
                  Invoke(other, (Binary("-", n, Const(1), INT),), BOOL), BOOL)
        return TypedFunction(name, (Param("n", INT),), Block((), body),
                             result_type=BOOL, assumes=non_negative)

    main = TypedFunction("main", (), Block((), Invoke("is_even", (Const(7),), BOOL)),
                         result_type=BOOL)
    return CompilationUnit("parity", (parity("is_even", "is_odd", True),
                                      parity("is_odd", "is_even", False), main))
