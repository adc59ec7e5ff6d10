# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# arrivals.py
# -----------------------------------------------------------------------------
# Purpose:
#   Generate exogenous arrivals. An arrival process is a callable that takes
#   the run's random.Random and returns an iterable of inter-arrival gaps.
#
# Design notes:
#   - Gaps are pulled lazily: each arrival event schedules the next one, so
#     an infinite generator is fine. The stream stops at the first arrival
#     past the horizon; entities already admitted run to completion.
#   - The first gap is measured from t = 0, so fixed_times([0, 1]) admits
#     entities at exactly t = 0 and t = 1.
#
# Usage:
#   stream = ArrivalStream("patient", exponential_interarrivals(15), horizon)
#   stream.start(env)
# -----------------------------------------------------------------------------

from __future__ import annotations
import itertools
import logging
import math
import random
from typing import Callable, Iterable, Iterator, Optional, Sequence

from .distributions import Exponential, make_distribution
from .entities import Entity
from .errors import ConfigError, DistributionSampleError

log = logging.getLogger(__name__)

ArrivalProcess = Callable[[random.Random], Iterable[float]]


def from_distribution(dist) -> ArrivalProcess:
    """Endless i.i.d. gaps drawn from a Distribution (or a config dict)."""
    dist = make_distribution(dist)

    def _gaps(rng: random.Random) -> Iterator[float]:
        while True:
            yield dist.sample(rng)
    return _gaps


def exponential_interarrivals(mean: float) -> ArrivalProcess:
    """Poisson arrivals with the given mean gap."""
    if not mean > 0:
        raise ConfigError(f"exponential arrivals need a positive mean, got {mean!r}")
    return from_distribution(Exponential(mean))


def fixed_times(times: Sequence[float]) -> ArrivalProcess:
    """Deterministic arrivals at the given absolute times."""
    times = [float(t) for t in times]
    if any(t < 0 for t in times):
        raise ConfigError("arrival times must be non-negative")
    if times != sorted(times):
        raise ConfigError("arrival times must be non-decreasing")

    def _gaps(rng: random.Random) -> Iterator[float]:
        prev = 0.0
        for t in times:
            yield t - prev
            prev = t
    return _gaps


def fixed_gaps(gaps: Sequence[float]) -> ArrivalProcess:
    """Deterministic inter-arrival gaps."""
    gaps = [float(g) for g in gaps]
    if any(g < 0 for g in gaps):
        raise ConfigError("inter-arrival gaps must be non-negative")
    return lambda rng: iter(gaps)


class ArrivalStream:
    """Pulls gaps from an arrival process and spawns entities up to the horizon."""

    def __init__(self, name: str, process: ArrivalProcess, horizon: float):
        self.name = name
        self.process = process
        self.horizon = horizon
        self._gaps: Optional[Iterator[float]] = None
        self._ids = itertools.count(1)
        self._next_t = 0.0
        self.admitted = 0

    def start(self, env):
        try:
            self._gaps = iter(self.process(env.rng))
        except DistributionSampleError:
            raise
        except Exception as exc:
            raise DistributionSampleError(f"{self.name}: arrival process failed to start: {exc!r}") from exc
        self._ids = itertools.count(1)
        self._next_t = 0.0
        self.admitted = 0
        self.schedule_next(env)

    def schedule_next(self, env):
        try:
            gap = next(self._gaps)
        except StopIteration:
            log.debug("%s: arrival process exhausted after %d entities", self.name, self.admitted)
            return
        except DistributionSampleError:
            raise
        except Exception as exc:
            raise DistributionSampleError(
                f"{self.name}: arrival process failed after {self.admitted} entities: {exc!r}"
            ) from exc
        try:
            gap = float(gap)
        except (TypeError, ValueError) as exc:
            raise DistributionSampleError(f"{self.name}: non-numeric inter-arrival gap {gap!r}") from exc
        if not math.isfinite(gap) or gap < 0:
            raise DistributionSampleError(f"{self.name}: invalid inter-arrival gap {gap!r}")
        t = self._next_t + gap
        if t > self.horizon:
            # Admission stops at the horizon; in-flight entities keep going.
            log.debug("%s: next arrival at %.4f is past horizon %.4f", self.name, t, self.horizon)
            return
        self._next_t = t
        env.schedule(t, "arrival", {"stream": self})

    def spawn(self, env) -> Entity:
        self.admitted += 1
        return Entity(eid=next(self._ids), name=self.name, arrival_time=env.t)
