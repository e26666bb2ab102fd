"""Exception hierarchy shared by every simopt module.

Each error also derives from the closest built-in exception so callers may
catch either the library type or the standard one.
"""
from __future__ import annotations

__all__ = [
    "SimOptError",
    "InterfaceNotImplemented",
    "ValidationError",
    "TimeAxisTypeError",
    "UnsupportedStrategyError",
    "DownstreamMetricError",
    "ExploratoryInterfaceError",
    "ParameterTypeError",
    "TimeSeriesParameterBoundsError",
    "interface_not_implemented",
]


class SimOptError(Exception):
    """Base class for all errors raised by simopt."""


class InterfaceNotImplemented(SimOptError, NotImplementedError):
    """A required callback is missing for the concrete type in use."""

    def __init__(self, method: str, receiver: type, signature: str = ""):
        self.method = method
        self.receiver = receiver
        self.signature = signature
        hint = f"self, {signature}" if signature else "self"
        super().__init__(
            f"Interface method `{method}` not implemented for {receiver.__name__}.\n"
            f"Add: `def {method}({hint}): ...` to {receiver.__name__}"
        )


class ValidationError(SimOptError, ValueError):
    """Malformed problem setup, detected before any simulation runs."""


class TimeAxisTypeError(SimOptError, TypeError):
    """The time axis is not a finite, sized, homogeneously-typed sequence."""


class UnsupportedStrategyError(SimOptError, ValueError):
    """The requested operation is not available for this execution strategy."""


class DownstreamMetricError(SimOptError, LookupError):
    """The metric function did not return a name required by an objective."""


class ExploratoryInterfaceError(SimOptError, TypeError):
    """Types used with `explore` do not expose typed parameter fields."""


class ParameterTypeError(SimOptError, TypeError):
    """Strict validation found a non-parameter field."""


class TimeSeriesParameterBoundsError(SimOptError, IndexError):
    """A time series was indexed with a time value it does not contain."""

    def __init__(self, requested, available):
        self.requested = requested
        self.available = list(available)
        if len(self.available) <= 10:
            detail = f"Available: {self.available}"
        else:
            detail = f"Available range: {self.available[0]} to {self.available[-1]}"
        super().__init__(f"time value {requested!r} not in time_axis. {detail}")


def interface_not_implemented(method: str, receiver, signature: str = ""):
    """Raise `InterfaceNotImplemented` for ``receiver`` (an instance or a class)."""
    cls = receiver if isinstance(receiver, type) else type(receiver)
    raise InterfaceNotImplemented(method, cls, signature)
