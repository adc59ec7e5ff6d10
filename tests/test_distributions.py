"""Samplers, config parsing of distributions and arrival processes."""

from __future__ import annotations

import random

import pytest

from patientflow.arrivals import exponential_interarrivals, fixed_gaps, fixed_times, from_distribution
from patientflow.distributions import (
    Constant, Exponential, LogNormal, Normal, Triangular, Uniform, draw_duration, make_distribution,
)
from patientflow.entities import Entity, StepContext
from patientflow.errors import ConfigError, DistributionSampleError


def ctx(seed=0):
    return StepContext(entity=Entity(1, "p", 0.0), now=0.0, rng=random.Random(seed))


class TestMakeDistribution:

    def test_number_is_constant(self):
        d = make_distribution(3)
        assert isinstance(d, Constant) and d.sample(random.Random()) == 3.0

    @pytest.mark.parametrize("spec, cls", [
        ({"dist": "exponential", "mean": 15}, Exponential),
        ({"dist": "normal", "mean": 10, "sd": 2}, Normal),
        ({"dist": "uniform", "low": 1, "high": 2}, Uniform),
        ({"dist": "lognormal", "mu": 1, "sigma": 0.5}, LogNormal),
        ({"dist": "triangular", "low": 1, "mode": 2, "high": 4}, Triangular),
        ({"dist": "Normal", "mean": 0, "sd": 1}, Normal),
    ])
    def test_families(self, spec, cls):
        assert isinstance(make_distribution(spec), cls)

    @pytest.mark.parametrize("spec", [
        {"dist": "weibull", "shape": 1},
        {"dist": "normal", "mean": 1},
        {"dist": "normal", "mean": 1, "sd": "wide"},
        {"dist": "exponential", "mean": 1, "rate": 2},
        "fast",
        True,
    ])
    def test_bad_specs(self, spec):
        with pytest.raises(ConfigError):
            make_distribution(spec)


class TestSampling:

    def test_seeded_draws_repeat(self):
        d = Normal(10, 2)
        a = [d.sample(random.Random(5)) for _ in range(3)]
        b = [d.sample(random.Random(5)) for _ in range(3)]
        assert a == b

    def test_normal_not_clipped(self):
        d = Normal(0.0, 1.0)
        rng = random.Random(11)
        assert any(d.sample(rng) < 0 for _ in range(100))

    def test_means(self):
        assert Uniform(2, 4).mean() == 3.0
        assert Triangular(0, 3, 6).mean() == 3.0
        assert Exponential(15).mean() == 15

    @pytest.mark.parametrize("dist", [Exponential(0), Normal(1, -1), Uniform(3, 1), LogNormal(0, -1),
                                      Triangular(1, 5, 2)])
    def test_invalid_parameters_raise_on_sample(self, dist):
        with pytest.raises(DistributionSampleError):
            dist.sample(random.Random(0))

    def test_draw_duration_accepts_callables(self):
        assert draw_duration(lambda c: 4, ctx()) == 4.0

    def test_draw_duration_rejects_non_numeric(self):
        with pytest.raises(DistributionSampleError):
            draw_duration(lambda c: "soon", ctx())


class TestArrivalProcesses:

    def test_fixed_times_to_gaps(self):
        assert list(fixed_times([0, 1, 4])(random.Random())) == [0.0, 1.0, 3.0]

    def test_fixed_times_must_be_sorted(self):
        with pytest.raises(ConfigError):
            fixed_times([3, 1])

    def test_fixed_gaps_non_negative(self):
        with pytest.raises(ConfigError):
            fixed_gaps([1, -1])

    def test_exponential_mean(self):
        gaps = exponential_interarrivals(15)(random.Random(4))
        sample = [next(gaps) for _ in range(20_000)]
        assert 14.0 < sum(sample) / len(sample) < 16.0

    def test_exponential_needs_positive_mean(self):
        with pytest.raises(ConfigError):
            exponential_interarrivals(0)

    def test_from_distribution_config(self):
        gaps = from_distribution({"dist": "constant", "value": 2})(random.Random())
        assert [next(gaps) for _ in range(3)] == [2.0, 2.0, 2.0]
