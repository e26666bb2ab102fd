"""Common random numbers: one deterministic stream per scenario index.

Comparing two policies on the same scenario with the same draws isolates the
policy effect from sampling noise. Streams are derived from a base seed and
the 1-based scenario index only, never from the policy or execution order.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

__all__ = ["CRNConfig", "GOLDEN_GAMMA", "stream_seed", "stream_for", "scenario_rng"]

# 2**64 / golden ratio, odd, so i -> seed is a bijection modulo 2**64
GOLDEN_GAMMA = 0x9E3779B97F4A7C15
_MASK64 = (1 << 64) - 1


@dataclass(frozen=True)
class CRNConfig:
    """Enable flag plus base seed for scenario-indexed streams."""

    enabled: bool = True
    seed: int = 1234

    def __post_init__(self) -> None:
        object.__setattr__(self, "enabled", bool(self.enabled))
        object.__setattr__(self, "seed", int(self.seed) & _MASK64)


def stream_seed(base_seed: int, scenario_index: int) -> int:
    """Seed of the stream for ``scenario_index`` (1-based)."""
    return (int(base_seed) + (int(scenario_index) - 1) * GOLDEN_GAMMA) & _MASK64


def stream_for(base_seed: int, scenario_index: int) -> np.random.Generator:
    """Fresh generator for ``scenario_index``; identical inputs give identical draws."""
    return np.random.default_rng(stream_seed(base_seed, scenario_index))


def scenario_rng(crn: CRNConfig, scenario_index: int) -> np.random.Generator:
    """CRN stream when enabled, otherwise an entropy-seeded generator."""
    if crn.enabled:
        return stream_for(crn.seed, scenario_index)
    return np.random.default_rng()
