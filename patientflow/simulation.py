# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# simulation.py
# -----------------------------------------------------------------------------
# Purpose:
#   Configure and run a single replication: validate stations, trajectory
#   and arrivals up front, then build a fresh Env / stations / router per
#   run, drive the event loop and return the collected result.
#
# Design notes:
#   - configure() raises ConfigError before any simulated time advances.
#   - Every run() starts from the configured seed with its own
#     random.Random, so two runs of one Simulator produce identical traces.
#   - A sampler failure propagates out of run(); nothing partial is kept.
#
# Usage:
#   from patientflow.simulation import configure
#   result = configure([("desk", 1)], traj, fixed_times([0, 1]), horizon=10).run()
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from .arrivals import ArrivalProcess, ArrivalStream
from .errors import ConfigError
from .metrics import Metrics, SimulationResult
from .network import NEGATIVE_POLICIES, Router
from .queues import Env, Station
from .trajectory import Trajectory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StationSpec:
    name: str
    capacity: int = 1
    queue_size: float = math.inf


def _as_spec(item) -> StationSpec:
    if isinstance(item, StationSpec):
        return item
    if isinstance(item, (tuple, list)) and len(item) in (2, 3):
        return StationSpec(*item)
    raise ConfigError(f"station must be (name, capacity[, queue_size]) or StationSpec, got {item!r}")


class Simulator:
    """A validated model: stations, trajectory, arrival process and horizon."""

    def __init__(self, stations: List[StationSpec], trajectory: Trajectory, arrivals: ArrivalProcess,
                 horizon: float, seed: Optional[int] = None, negative_durations: str = "allow"):
        self.stations = stations
        self.trajectory = trajectory
        self.arrivals = arrivals
        self.horizon = horizon
        self.seed = seed
        self.negative_durations = negative_durations

    def build_stations(self) -> Dict[str, Station]:
        return {s.name: Station(s.name, s.capacity, s.queue_size) for s in self.stations}

    def run(self, seed: Optional[int] = None) -> SimulationResult:
        """Run one replication; `seed` overrides the configured seed for this run only."""
        seed = self.seed if seed is None else seed
        rng = random.Random(seed)
        stations = self.build_stations()
        M = Metrics()
        router = Router(self.trajectory, stations, M, self.negative_durations)
        env = Env(router, rng)

        # Schedule the first arrival then run until nothing is pending
        stream = ArrivalStream(self.trajectory.name, self.arrivals, self.horizon)
        stream.start(env)
        env.run()

        result = M.result(env, stations, self.horizon)
        log.info(
            "run seed=%s: %d entities, %d events, ended at t=%.3f",
            seed, len(result.entities), result.events_processed, result.end_time,
        )
        return result


def configure(stations: Iterable[Union[StationSpec, tuple]], trajectory: Trajectory,
              arrivals: ArrivalProcess, horizon: float, *, seed: Optional[int] = None,
              negative_durations: str = "allow") -> Simulator:
    """
    Validate a model and return a Simulator ready to run.

    Parameters
    ----------
    stations : iterable
        (name, capacity) or (name, capacity, queue_size) tuples, or StationSpec.
    trajectory : Trajectory
        Path every arriving entity follows.
    arrivals : callable
        Takes the run's random.Random, returns an iterable of inter-arrival gaps.
    horizon : float
        Arrivals after this time are not admitted.
    seed : int, optional
        Seed for the run's private generator.
    negative_durations : str
        'allow', 'clip' or 'error' (see network.NEGATIVE_POLICIES).

    Raises
    ------
    ConfigError
        On any malformed input.
    """
    specs = [_as_spec(s) for s in stations]
    if not specs:
        raise ConfigError("at least one station is required")
    names = [s.name for s in specs]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigError(f"duplicate station name(s): {dupes}")
    for s in specs:
        # Station() validates capacity and queue_size
        Station(s.name, s.capacity, s.queue_size)
    if not isinstance(trajectory, Trajectory):
        raise ConfigError(f"trajectory must be a Trajectory, got {type(trajectory).__name__}")
    if len(trajectory) == 0:
        raise ConfigError(f"trajectory {trajectory.name!r} has no steps")
    trajectory.validate(names)
    if not callable(arrivals):
        raise ConfigError("arrivals must be a callable returning inter-arrival gaps")
    if isinstance(horizon, bool) or not isinstance(horizon, (int, float)) \
            or not math.isfinite(horizon) or horizon <= 0:
        raise ConfigError(f"horizon must be a positive finite number, got {horizon!r}")
    if negative_durations not in NEGATIVE_POLICIES:
        raise ConfigError(f"negative_durations must be one of {NEGATIVE_POLICIES}, got {negative_durations!r}")
    return Simulator(specs, trajectory, arrivals, float(horizon), seed, negative_durations)
