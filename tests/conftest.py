"""
Shared pytest fixtures for compsynth encoding and synthesis tests.
"""

import pytest
import sys
import os

# Add src and tests to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.dirname(__file__))

from z3 import Solver, sat

from compsynth.api import CompSynthAPI
from compsynth.core.components import Apply, Constant, Hole, Input, Parameter, Type
from test_examples.problems import (
    PLUS_ONE_PROBLEM,
    MAX_PROBLEM,
    PARAMETER_PROBLEM,
    FORBIDDEN_PROBLEM,
    INFEASIBLE_PROBLEM,
)


@pytest.fixture
def api():
    """Create CompSynthAPI instance for testing."""
    return CompSynthAPI(timeout=10)


@pytest.fixture
def components():
    """Common integer and boolean components."""
    a = Hole("a", Type.INT)
    b = Hole("b", Type.INT)
    c = Hole("c", Type.BOOL)
    return {
        "zero": Constant(0),
        "one": Constant(1),
        "two": Constant(2),
        "true": Constant(True),
        "x": Input("x"),
        "y": Input("y"),
        "p": Parameter("p"),
        "plus": Apply("+", (a, b)),
        "minus": Apply("-", (a, b)),
        "neg": Apply("neg", (a,)),
        "less": Apply("<", (a, b)),
        "not": Apply("not", (c,)),
        "ite": Apply("ite", (c, a, b)),
        "a": a,
        "b": b,
    }


@pytest.fixture
def problems():
    """JSON problem descriptions."""
    return {
        "plus_one": PLUS_ONE_PROBLEM,
        "max": MAX_PROBLEM,
        "parameter": PARAMETER_PROBLEM,
        "forbidden": FORBIDDEN_PROBLEM,
        "infeasible": INFEASIBLE_PROBLEM,
    }


@pytest.fixture
def solve():
    """Check constraints plus extra assumptions, returning the model or None."""

    def _solve(constraints, *extra):
        solver = Solver()
        solver.add(*constraints)
        solver.add(*extra)
        if solver.check() == sat:
            return solver.model()
        return None

    return _solve
