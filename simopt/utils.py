"""Small helpers for writing simulation callbacks."""
from __future__ import annotations

from typing import Iterable, Iterator, Sized, Union

from .types import TimeStep

__all__ = ["timeindex", "is_first", "is_last", "discount_factor"]


def timeindex(times: Iterable) -> Iterator[TimeStep]:
    """Yield a :class:`TimeStep` for every value of ``times``, numbered from 1.

    >>> [ts.t for ts in timeindex(range(2020, 2023))]
    [1, 2, 3]
    """
    for i, val in enumerate(times, start=1):
        yield TimeStep(i, val)


def is_first(ts: TimeStep) -> bool:
    return ts.t == 1


def is_last(ts: TimeStep, times: Union[Sized, int]) -> bool:
    """True if ``ts`` is the final step of ``times`` (a sequence or its length)."""
    n = times if isinstance(times, int) else len(times)
    return ts.t == n


def discount_factor(rate: float, t: float) -> float:
    """Discount factor ``1 / (1 + rate) ** t``; e.g. 5% over 10 years ≈ 0.614."""
    return 1.0 / (1.0 + rate) ** t
