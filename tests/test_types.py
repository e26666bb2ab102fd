"""Tests for shared value types."""
import pickle

import pytest

from simopt.errors import ValidationError
from simopt.types import (
    Direction,
    FixedBatch,
    FractionBatch,
    FullBatch,
    Objective,
    SharedParameters,
    maximize,
    minimize,
)


def test_shared_parameters_access():
    sp = SharedParameters(discount_rate=0.03, horizon=50)
    assert sp.horizon == 50
    assert sp.as_dict() == {"discount_rate": 0.03, "horizon": 50}
    assert "horizon" in dir(sp)


def test_shared_parameters_unknown_name_lists_available():
    sp = SharedParameters(a=1, b=2)
    with pytest.raises(AttributeError, match=r"\['a', 'b'\]"):
        sp.c


def test_shared_parameters_are_immutable():
    sp = SharedParameters(a=1)
    with pytest.raises(AttributeError):
        sp.a = 2
    with pytest.raises(AttributeError):
        sp.b = 2
    with pytest.raises(AttributeError):
        del sp.a


def test_shared_parameters_pickle_and_equality():
    sp = SharedParameters(rate=0.05, label="base")
    clone = pickle.loads(pickle.dumps(sp))
    assert clone == sp
    assert clone.rate == 0.05
    assert SharedParameters(rate=0.05) != SharedParameters(rate=0.06)


def test_objective_sign():
    assert minimize("cost").sign == 1.0
    assert maximize("reliability").sign == -1.0
    assert Objective("x").direction is Direction.MINIMIZE


@pytest.mark.parametrize("n,expected", [(10, 10), (1, 1)])
def test_full_batch_count(n, expected):
    assert FullBatch().count(n) == expected


@pytest.mark.parametrize(
    "fraction,n,expected",
    [(0.5, 10, 5), (0.01, 10, 1), (0.25, 10, 2), (0.75, 2, 2), (0.125, 4, 1), (1.0, 7, 7)],
)
def test_fraction_batch_count_rounds_half_to_even(fraction, n, expected):
    assert FractionBatch(fraction).count(n) == expected


@pytest.mark.parametrize("bad", [0, -3, 2.5])
def test_fixed_batch_rejects_non_positive_or_fractional(bad):
    with pytest.raises(ValidationError):
        FixedBatch(bad)


@pytest.mark.parametrize("bad", [0.0, -0.1, 1.5])
def test_fraction_batch_range(bad):
    with pytest.raises(ValidationError):
        FractionBatch(bad)
