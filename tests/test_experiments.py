"""Replication harness, confidence intervals, CRN comparison and plots."""

from __future__ import annotations

import os

import pytest

from experiments import run_experiments as rx
from experiments.scenarios import SCENARIOS
from patientflow.config import DEFAULT_CONFIG, apply_overrides, build_simulator, load_cfg


@pytest.fixture
def cfg():
    return load_cfg(DEFAULT_CONFIG)


class TestStats:

    def test_mean_ci_matches_t_interval(self):
        mu, half = rx.mean_ci([1.0, 2.0, 3.0, 4.0, 5.0], 0.95)
        assert mu == pytest.approx(3.0)
        # t(0.975, 4) = 2.776..., s = 1.5811
        assert half == pytest.approx(2.7764 * 1.5811 / 5 ** 0.5, rel=1e-3)

    def test_mean_ci_small_samples(self):
        assert rx.mean_ci([], 0.95) == (0.0, 0.0)
        assert rx.mean_ci([7.0], 0.95) == (7.0, 0.0)

    def test_avg_nested(self):
        rows = [{"u": {"a": 0.2, "b": 1.0}}, {"u": {"a": 0.4}}]
        assert rx.avg_nested(rows, "u") == pytest.approx({"a": 0.3, "b": 0.5})


class TestScenarios:

    def test_names_unique(self):
        names = [sc["name"] for sc in SCENARIOS]
        assert len(names) == len(set(names))

    @pytest.mark.parametrize("sc", SCENARIOS, ids=lambda sc: sc["name"])
    def test_every_scenario_configures(self, cfg, sc):
        build_simulator(apply_overrides(cfg, sc["overrides"]))

    def test_lookup(self):
        assert rx.scenario_by_name("baseline")["overrides"] == {}
        with pytest.raises(KeyError):
            rx.scenario_by_name("nope")


class TestReplications:

    def test_seeds_advance(self, cfg):
        summaries, first = rx.run_replications(cfg, 3, base_seed=100)
        assert len(summaries) == 3
        assert first is not None
        assert len({s["avg_flow_time"] for s in summaries}) > 1

    def test_crn_same_scenario_has_zero_difference(self, cfg, capsys):
        base = rx.scenario_by_name("baseline")
        out = rx.run_crn(cfg, base, base, replications=3, base_seed=5, confidence=0.95)
        assert out["mean_diff"] == 0.0
        assert len(out["rows"]) == 3
        assert "CRN paired" in capsys.readouterr().out


class TestOutput:

    def test_occupancy_plot_written(self, cfg, tmp_path):
        result = build_simulator(cfg).run()
        path = rx.plot_occupancy(result, "Baseline Run", str(tmp_path))
        assert path == os.path.join(str(tmp_path), "baseline_run_occupancy.png")
        assert os.path.getsize(path) > 0

    def test_utilization_plot_written(self, tmp_path):
        rows = [{"name": "a", "utilization": {"x": 0.5}}, {"name": "b", "utilization": {"x": 0.7}}]
        path = rx.plot_all_scenario_utilization(rows, str(tmp_path))
        assert os.path.exists(path)

    def test_main_reports(self, tmp_path, capsys):
        code = rx.main(["--replications", "2", "--out-dir", str(tmp_path), "--scenario", "baseline"])
        out = capsys.readouterr().out
        assert code == 0
        assert "Scenario: baseline" in out
        assert os.path.exists(tmp_path / "baseline_occupancy.png")

    def test_main_no_plots_runs_crn(self, tmp_path, capsys):
        code = rx.main(["--replications", "2", "--no-plots", "--out-dir", str(tmp_path)])
        out = capsys.readouterr().out
        assert code == 0
        assert "CRN & Bonferroni Comparison: baseline vs fast_triage" in out
        assert not any(tmp_path.iterdir())

    def test_main_unknown_scenario(self, tmp_path):
        assert rx.main(["--scenario", "nope", "--no-plots", "--out-dir", str(tmp_path)]) == 2

    def test_main_missing_config(self, tmp_path):
        assert rx.main(["--config", str(tmp_path / "missing.yaml")]) == 2
