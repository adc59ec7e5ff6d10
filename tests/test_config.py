"""YAML scenario loading and the hospital reference model."""

from __future__ import annotations

import copy
import os

import pytest
import yaml

import patientflow
from patientflow.config import (
    DEFAULT_CONFIG, apply_overrides, build_simulator, build_stations, build_trajectory, load_cfg,
    run_from_config,
)
from patientflow.errors import ConfigError
from patientflow.trajectory import Branch


@pytest.fixture
def hospital_cfg():
    return load_cfg(DEFAULT_CONFIG)


DESK_YAML = """
sim: {seed: 1, horizon: 10}
stations:
  desk: 1
arrivals:
  times: [0, 1]
trajectory:
  name: customer
  steps:
    - visit: desk
      duration: 3
"""


class TestLoad:

    def test_hospital_config_parses(self, hospital_cfg):
        assert hospital_cfg["sim"]["horizon"] == 480
        assert set(hospital_cfg["stations"]) == {"nurse", "lab", "doctor", "administration", "transfer"}

    def test_hospital_config_ships_inside_package(self):
        package_dir = os.path.dirname(os.path.abspath(patientflow.__file__))
        assert os.path.commonpath([package_dir, DEFAULT_CONFIG]) == package_dir
        assert os.path.isfile(DEFAULT_CONFIG)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_cfg(str(path))

    def test_yaml_desk_scenario(self, tmp_path):
        path = tmp_path / "desk.yaml"
        path.write_text(DESK_YAML)
        result = run_from_config(load_cfg(str(path)))
        assert [e.departure_time for e in result.entities] == [3.0, 6.0]


class TestOverrides:

    def test_recursive_merge(self, hospital_cfg):
        new = apply_overrides(hospital_cfg, {"stations": {"doctor": {"capacity": 2}}, "sim": {"seed": 9}})
        assert new["stations"]["doctor"]["capacity"] == 2
        assert new["stations"]["nurse"]["capacity"] == 1
        assert new["sim"]["seed"] == 9
        assert new["sim"]["horizon"] == 480

    def test_base_left_untouched(self, hospital_cfg):
        before = copy.deepcopy(hospital_cfg)
        apply_overrides(hospital_cfg, {"stations": {"doctor": {"capacity": 3}}})
        assert hospital_cfg == before


class TestBuild:

    def test_station_forms(self):
        specs = build_stations({"a": 2, "b": {"capacity": 1, "queue_size": 4}, "c": {}})
        assert [(s.name, s.capacity) for s in specs] == [("a", 2), ("b", 1), ("c", 1)]
        assert specs[1].queue_size == 4

    def test_station_unknown_key(self):
        with pytest.raises(ConfigError):
            build_stations({"a": {"servers": 2}})

    def test_branch_block(self, hospital_cfg):
        traj = build_trajectory(hospital_cfg["trajectory"])
        branches = [s for s in traj.steps if isinstance(s, Branch)]
        assert len(branches) == 2
        assert branches[1].continue_ == (True, False)
        assert branches[0].paths[1].name == "straight_to_doctor"

    @pytest.mark.parametrize("step", [
        {"visit": "desk"},
        {"jump": "desk"},
        {"branch": {"probabilities": [1.0]}},
        "desk",
    ])
    def test_bad_steps(self, step):
        with pytest.raises(ConfigError):
            build_trajectory({"name": "p", "steps": [step]})

    def test_missing_sections(self):
        cfg = yaml.safe_load(DESK_YAML)
        del cfg["arrivals"]
        with pytest.raises(ConfigError, match="arrivals"):
            build_simulator(cfg)

    def test_missing_horizon(self):
        cfg = yaml.safe_load(DESK_YAML)
        del cfg["sim"]["horizon"]
        with pytest.raises(ConfigError, match="horizon"):
            build_simulator(cfg)

    def test_bad_branch_vector_fails_before_running(self, hospital_cfg):
        cfg = copy.deepcopy(hospital_cfg)
        cfg["trajectory"]["steps"][1]["branch"]["probabilities"] = [0.3, 0.6]
        with pytest.raises(ConfigError):
            build_simulator(cfg)

    def test_undeclared_station_in_yaml(self, hospital_cfg):
        cfg = copy.deepcopy(hospital_cfg)
        del cfg["stations"]["lab"]
        with pytest.raises(ConfigError, match="lab"):
            build_simulator(cfg)


class TestHospitalModel:

    def test_runs_to_completion(self, hospital_cfg):
        result = run_from_config(hospital_cfg)
        summary = result.summary()
        assert summary["entities"] > 0
        assert summary["finished"] == summary["entities"]
        assert all(e.arrival_time <= 480 for e in result.entities)

    def test_deterministic(self, hospital_cfg):
        a = run_from_config(hospital_cfg)
        b = run_from_config(hospital_cfg)
        assert a.trace == b.trace
        assert a.summary() == b.summary()

    def test_admitted_patients_skip_administration(self, hospital_cfg):
        for e in run_from_config(hospital_cfg).entities:
            stations = [v.station for v in e.visits]
            assert stations[0] == "nurse"
            assert not ("transfer" in stations and "administration" in stations)
            if e.branches[-1] == 1:
                assert stations[-1] == "transfer"
