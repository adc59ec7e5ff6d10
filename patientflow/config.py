# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# config.py
# -----------------------------------------------------------------------------
# Purpose:
#   Turn a YAML scenario (stations, arrivals, trajectory, sim settings) into
#   a configured Simulator, plus the load / override helpers experiments use.
#
# Design notes:
#   - Shape of a scenario file (see patientflow/data/hospital.yaml):
#       sim:        {seed, horizon, negative_durations}
#       stations:   {name: {capacity, queue_size} | capacity}
#       arrivals:   {interarrival: <dist>} | {times: [...]} | {gaps: [...]}
#       trajectory: {name, steps: [...]}
#   - A step is one of: {visit: st, duration: <dist>}, {seize: st},
#     {timeout: <dist>}, {release: st},
#     {branch: {probabilities, continue, paths: [{name, steps}]}}.
#   - A <dist> is a number (constant) or {dist: family, ...params}.
#
# Usage:
#   cfg = load_cfg(DEFAULT_CONFIG); sim = build_simulator(cfg)
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy
import math
import os
from typing import Any, Dict, List

import yaml

from .arrivals import fixed_gaps, fixed_times, from_distribution
from .distributions import make_distribution
from .errors import ConfigError
from .metrics import SimulationResult
from .simulation import Simulator, StationSpec, configure
from .trajectory import Trajectory

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
DEFAULT_CONFIG = os.path.join(DATA_DIR, "hospital.yaml")


def load_cfg(path: str = DEFAULT_CONFIG) -> Dict:
    with open(path, "r") as f:
        cfg = yaml.safe_load(f)
    if not isinstance(cfg, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")
    return cfg


def apply_overrides(cfg: Dict, overrides: Dict) -> Dict:
    """Apply scenario overrides (recursive merge) on top of the base config."""
    new = copy.deepcopy(cfg)

    def _merge(dst: Dict, src: Dict):
        for key, val in src.items():
            if isinstance(val, dict) and isinstance(dst.get(key), dict):
                _merge(dst[key], val)
            else:
                dst[key] = copy.deepcopy(val)

    _merge(new, overrides)
    return new


def build_stations(block: Any) -> List[StationSpec]:
    if not isinstance(block, dict) or not block:
        raise ConfigError("'stations' must be a non-empty mapping of name -> capacity or settings")
    specs = []
    for name, val in block.items():
        if isinstance(val, dict):
            unknown = set(val) - {"capacity", "queue_size"}
            if unknown:
                raise ConfigError(f"station {name!r}: unexpected keys {sorted(unknown)}")
            queue_size = val.get("queue_size")
            specs.append(StationSpec(
                str(name),
                val.get("capacity", 1),
                math.inf if queue_size is None else queue_size,
            ))
        else:
            specs.append(StationSpec(str(name), val))
    return specs


def build_trajectory(block: Any, default_name: str = "trajectory") -> Trajectory:
    if not isinstance(block, dict):
        raise ConfigError(f"trajectory {default_name!r} must be a mapping with 'steps'")
    traj = Trajectory(str(block.get("name", default_name)))
    steps = block.get("steps")
    if not isinstance(steps, list):
        raise ConfigError(f"trajectory {traj.name!r}: 'steps' must be a list")
    for i, step in enumerate(steps):
        where = f"{traj.name}[{i}]"
        if not isinstance(step, dict):
            raise ConfigError(f"{where}: step must be a mapping, got {step!r}")
        if "visit" in step:
            if "duration" not in step:
                raise ConfigError(f"{where}: visit needs a 'duration'")
            traj.visit(str(step["visit"]), make_distribution(step["duration"]))
        elif "seize" in step:
            traj.seize(str(step["seize"]))
        elif "release" in step:
            traj.release(str(step["release"]))
        elif "timeout" in step:
            traj.timeout(make_distribution(step["timeout"]))
        elif "branch" in step:
            br = step["branch"]
            if not isinstance(br, dict) or not isinstance(br.get("paths"), list):
                raise ConfigError(f"{where}: branch needs 'probabilities' and a list of 'paths'")
            paths = [
                build_trajectory(p, default_name=f"{traj.name}.{i}.{k}")
                for k, p in enumerate(br["paths"])
            ]
            probs = br.get("probabilities")
            if not isinstance(probs, list):
                raise ConfigError(f"{where}: 'probabilities' must be a list")
            traj.branch(probs, paths, br.get("continue", True))
        else:
            raise ConfigError(f"{where}: unknown step {sorted(step)}")
    return traj


def build_arrivals(block: Any):
    if not isinstance(block, dict):
        raise ConfigError("'arrivals' must be a mapping")
    if "interarrival" in block:
        return from_distribution(make_distribution(block["interarrival"]))
    if "times" in block:
        return fixed_times(block["times"])
    if "gaps" in block:
        return fixed_gaps(block["gaps"])
    raise ConfigError("'arrivals' needs one of 'interarrival', 'times' or 'gaps'")


def build_simulator(cfg: Dict) -> Simulator:
    for key in ("stations", "arrivals", "trajectory"):
        if key not in cfg:
            raise ConfigError(f"config is missing {key!r}")
    sim_cfg = cfg.get("sim", {}) or {}
    if "horizon" not in sim_cfg:
        raise ConfigError("config is missing sim.horizon")
    return configure(
        build_stations(cfg["stations"]),
        build_trajectory(cfg["trajectory"]),
        build_arrivals(cfg["arrivals"]),
        sim_cfg["horizon"],
        seed=sim_cfg.get("seed", 0),
        negative_durations=sim_cfg.get("negative_durations", "allow"),
    )


def run_from_config(cfg: Dict) -> SimulationResult:
    return build_simulator(cfg).run()
