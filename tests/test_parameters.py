"""Tests for typed parameters."""
import pickle

import numpy as np
import pytest

from simopt.errors import TimeSeriesParameterBoundsError, ValidationError
from simopt.parameters import (
    CategoricalParameter,
    ContinuousParameter,
    DiscreteParameter,
    GenericParameter,
    TimeSeriesParameter,
    is_parameter,
    value,
)
from simopt.types import TimeStep


def test_continuous_parameter_coerces_to_float():
    p = ContinuousParameter(3, (0, 10))
    assert p.value == 3.0 and isinstance(p.value, float)
    assert p() == 3.0


def test_continuous_bounds_must_be_ordered():
    with pytest.raises(ValidationError, match="lower > upper"):
        ContinuousParameter(1.0, (2.0, 0.0))


def test_discrete_valid_values():
    assert DiscreteParameter(2, (1, 2, 3)).valid_values == (1, 2, 3)
    with pytest.raises(ValidationError, match="not in valid values"):
        DiscreteParameter(5, [1, 2, 3])


def test_categorical_levels():
    assert CategoricalParameter("b", ["a", "b"]).value == "b"
    with pytest.raises(ValidationError):
        CategoricalParameter("z", ["a", "b"])


def test_parameters_are_frozen():
    p = ContinuousParameter(1.0)
    with pytest.raises(AttributeError):
        p.value = 2.0


def test_time_series_indexing():
    ts = TimeSeriesParameter([2030, 2040, 2050], [0.1, 0.2, 0.3])
    assert ts[TimeStep(1, 2040)] == 0.2
    assert ts[1] == 0.1
    assert ts[3] == 0.3
    assert len(ts) == 3
    assert list(ts) == [0.1, 0.2, 0.3]


def test_time_series_default_axis():
    ts = TimeSeriesParameter([5.0, 6.0])
    assert ts.time_axis == (1, 2)
    assert ts[TimeStep(2, 2)] == 6.0


def test_time_series_missing_time_value():
    ts = TimeSeriesParameter([2030, 2040], [1.0, 2.0])
    with pytest.raises(TimeSeriesParameterBoundsError) as info:
        ts[TimeStep(1, 2035)]
    assert "2035" in str(info.value)
    assert info.value.available == [2030, 2040]
    assert isinstance(info.value, IndexError)


def test_time_series_long_axis_reports_range():
    ts = TimeSeriesParameter(range(2000, 2020), np.zeros(20))
    with pytest.raises(TimeSeriesParameterBoundsError, match="2000 to 2019"):
        ts[TimeStep(1, 1999)]


@pytest.mark.parametrize("key", [0, 4, -1])
def test_time_series_position_out_of_range(key):
    with pytest.raises(IndexError):
        TimeSeriesParameter([1.0, 2.0, 3.0])[key]


def test_time_series_rejects_bad_construction():
    with pytest.raises(ValidationError):
        TimeSeriesParameter([])
    with pytest.raises(ValidationError, match="must match"):
        TimeSeriesParameter([1, 2, 3], [1.0, 2.0])


def test_time_series_immutable_and_picklable():
    ts = TimeSeriesParameter([1, 2], [3.0, 4.0])
    with pytest.raises(AttributeError):
        ts.values = np.zeros(2)
    assert pickle.loads(pickle.dumps(ts)) == ts


def test_value_and_is_parameter():
    assert value(ContinuousParameter(2.5)) == 2.5
    assert value(7) == 7
    assert is_parameter(GenericParameter(object()))
    assert is_parameter(TimeSeriesParameter([1.0]))
    assert not is_parameter(1.0)
