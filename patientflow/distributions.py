# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# distributions.py
# -----------------------------------------------------------------------------
# Purpose:
#   Duration samplers for service holds and inter-arrival gaps.
#
# Design notes:
#   - Every sampler draws from the run's random.Random passed in explicitly,
#     never from the module-level generator, so a seed fully determines a run.
#   - Samplers are callables of a StepContext. Plain user callables with the
#     same signature work anywhere a Distribution does.
#   - Parameters are checked when sampling; a bad parameter surfaces as
#     DistributionSampleError and aborts the run.
#   - Normal draws are NOT clipped here; the negative-duration policy lives
#     in the router.
#
# Usage:
#   from patientflow.distributions import Normal, make_distribution
#   svc = Normal(15, 1); svc.sample(rng)
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
import random
from typing import Any, Callable, Dict, Union

from .errors import ConfigError, DistributionSampleError


class Distribution:
    """Base sampler. Subclasses implement _draw(rng)."""

    def sample(self, rng: random.Random) -> float:
        return float(self._draw(rng))

    def _draw(self, rng: random.Random) -> float:
        raise NotImplementedError

    def mean(self) -> float:
        raise NotImplementedError

    def __call__(self, ctx) -> float:
        return self.sample(ctx.rng)

    def _fail(self, msg: str):
        raise DistributionSampleError(f"{self!r}: {msg}")


class Constant(Distribution):
    def __init__(self, value: float):
        self.value = value

    def _draw(self, rng):
        return self.value

    def mean(self):
        return self.value

    def __repr__(self):
        return f"Constant({self.value})"


class Exponential(Distribution):
    """Exponential with the given mean (not rate)."""

    def __init__(self, mean: float):
        self._mean = mean

    def _draw(self, rng):
        if not self._mean > 0:
            self._fail("mean must be positive")
        return rng.expovariate(1.0 / self._mean)

    def mean(self):
        return self._mean

    def __repr__(self):
        return f"Exponential(mean={self._mean})"


class Normal(Distribution):
    def __init__(self, mean: float, sd: float):
        self._mean = mean
        self.sd = sd

    def _draw(self, rng):
        if self.sd < 0:
            self._fail("sd must be non-negative")
        return rng.gauss(self._mean, self.sd)

    def mean(self):
        return self._mean

    def __repr__(self):
        return f"Normal(mean={self._mean}, sd={self.sd})"


class Uniform(Distribution):
    def __init__(self, low: float, high: float):
        self.low = low
        self.high = high

    def _draw(self, rng):
        if self.high < self.low:
            self._fail("high must be >= low")
        return rng.uniform(self.low, self.high)

    def mean(self):
        return 0.5 * (self.low + self.high)

    def __repr__(self):
        return f"Uniform({self.low}, {self.high})"


class LogNormal(Distribution):
    """Log-normal parameterised on the underlying normal (mu, sigma)."""

    def __init__(self, mu: float, sigma: float):
        self.mu = mu
        self.sigma = sigma

    def _draw(self, rng):
        if self.sigma < 0:
            self._fail("sigma must be non-negative")
        return rng.lognormvariate(self.mu, self.sigma)

    def mean(self):
        return math.exp(self.mu + 0.5 * self.sigma ** 2)

    def __repr__(self):
        return f"LogNormal(mu={self.mu}, sigma={self.sigma})"


class Triangular(Distribution):
    def __init__(self, low: float, mode: float, high: float):
        self.low = low
        self.mode = mode
        self.high = high

    def _draw(self, rng):
        if not self.low <= self.mode <= self.high:
            self._fail("need low <= mode <= high")
        return rng.triangular(self.low, self.high, self.mode)

    def mean(self):
        return (self.low + self.mode + self.high) / 3.0

    def __repr__(self):
        return f"Triangular({self.low}, {self.mode}, {self.high})"


Sampler = Union[Distribution, Callable[[Any], float]]

# YAML name -> (class, required parameter names)
_REGISTRY: Dict[str, tuple] = {
    "constant": (Constant, ("value",)),
    "exponential": (Exponential, ("mean",)),
    "normal": (Normal, ("mean", "sd")),
    "uniform": (Uniform, ("low", "high")),
    "lognormal": (LogNormal, ("mu", "sigma")),
    "triangular": (Triangular, ("low", "mode", "high")),
}


def make_distribution(spec: Any) -> Distribution:
    """
    Build a Distribution from a config value.

    Parameters
    ----------
    spec : number | dict
        A bare number is a Constant. A dict names the family under 'dist'
        plus its parameters, e.g. {'dist': 'normal', 'mean': 15, 'sd': 1}.

    Raises
    ------
    ConfigError
        Unknown family, missing or non-numeric parameters.
    """
    if isinstance(spec, Distribution):
        return spec
    if isinstance(spec, (int, float)) and not isinstance(spec, bool):
        return Constant(float(spec))
    if not isinstance(spec, dict):
        raise ConfigError(f"Cannot build a distribution from {spec!r}")
    kind = str(spec.get("dist", "")).lower()
    if kind not in _REGISTRY:
        raise ConfigError(f"Unknown distribution {kind!r}; expected one of {sorted(_REGISTRY)}")
    cls, params = _REGISTRY[kind]
    args = []
    for p in params:
        if p not in spec:
            raise ConfigError(f"Distribution {kind!r} needs parameter {p!r}")
        val = spec[p]
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            raise ConfigError(f"Distribution {kind!r} parameter {p!r} must be numeric, got {val!r}")
        args.append(float(val))
    extra = set(spec) - set(params) - {"dist"}
    if extra:
        raise ConfigError(f"Distribution {kind!r} got unexpected parameters {sorted(extra)}")
    return cls(*args)


def draw_duration(sampler: Sampler, ctx) -> float:
    """Call a sampler with the step context and return a finite float."""
    try:
        value = sampler(ctx)
    except DistributionSampleError:
        raise
    except Exception as exc:
        raise DistributionSampleError(f"sampler {sampler!r} failed: {exc}") from exc
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise DistributionSampleError(f"sampler {sampler!r} returned non-numeric {value!r}") from exc
    if not math.isfinite(value):
        raise DistributionSampleError(f"sampler {sampler!r} returned {value}")
    return value
