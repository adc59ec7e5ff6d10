# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# trajectory.py
# -----------------------------------------------------------------------------
# Purpose:
#   Declarative description of the path an entity takes: seize / timeout /
#   release steps plus probabilistic branch points.
#
# Design notes:
#   - Trajectory methods return self so paths read top to bottom:
#       Trajectory("patient").visit("nurse", Normal(15, 1)).branch(...)
#   - A branch resolves to a BranchOutcome(index, continuation). A
#     continuation Frame means the entity resumes the enclosing path after
#     the selected sub-path; None means the sub-path ends the entity.
#   - validate() checks station references, branch vectors and seize/release
#     pairing before a run starts.
#
# Usage:
#   from patientflow.trajectory import Trajectory
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
import random
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .distributions import Sampler, make_distribution
from .errors import ConfigError

PROB_TOL = 1e-9


@dataclass(frozen=True)
class Seize:
    station: str


@dataclass(frozen=True)
class Release:
    station: str


@dataclass(frozen=True)
class Timeout:
    duration: Sampler


@dataclass(frozen=True)
class Branch:
    probabilities: Tuple[float, ...]
    paths: Tuple["Trajectory", ...]
    continue_: Tuple[bool, ...]

    def select(self, rng: random.Random) -> int:
        """Draw a path index according to the probability vector."""
        u = rng.random()
        acc = 0.0
        last = 0
        for i, p in enumerate(self.probabilities):
            if p <= 0.0:
                continue
            acc += p
            last = i
            if u < acc:
                return i
        # u landed in the rounding gap above the cumulative sum
        return last


@dataclass
class Frame:
    """Position inside one path: the steps and the index of the next one."""
    steps: Tuple
    pos: int = 0

    def current(self):
        return self.steps[self.pos] if self.pos < len(self.steps) else None


@dataclass(frozen=True)
class BranchOutcome:
    index: int
    continuation: Optional[Frame]


class Trajectory:
    """An ordered, possibly branching, sequence of steps."""

    def __init__(self, name: str = "trajectory"):
        self.name = name
        self.steps: List = []

    def seize(self, station: str) -> "Trajectory":
        self.steps.append(Seize(station))
        return self

    def release(self, station: str) -> "Trajectory":
        self.steps.append(Release(station))
        return self

    def timeout(self, duration) -> "Trajectory":
        if not callable(duration):
            duration = make_distribution(duration)
        self.steps.append(Timeout(duration))
        return self

    def visit(self, station: str, duration) -> "Trajectory":
        """Shorthand for seize, hold for duration, release."""
        return self.seize(station).timeout(duration).release(station)

    def branch(self, probabilities: Sequence[float], paths: Sequence["Trajectory"],
               continue_: Optional[Sequence[bool]] = None) -> "Trajectory":
        if continue_ is None:
            continue_ = [True] * len(paths)
        elif isinstance(continue_, bool):
            continue_ = [continue_] * len(paths)
        self.steps.append(Branch(tuple(probabilities), tuple(paths), tuple(bool(c) for c in continue_)))
        return self

    def __len__(self):
        return len(self.steps)

    def __repr__(self):
        return f"Trajectory({self.name!r}, steps={len(self.steps)})"

    def start_frame(self) -> Frame:
        return Frame(tuple(self.steps))

    def stations(self, _active: FrozenSet[int] = frozenset()) -> FrozenSet[str]:
        """Every station named anywhere on this trajectory."""
        active = _enter(self, _active)
        names = set()
        for step in self.steps:
            if isinstance(step, (Seize, Release)):
                names.add(step.station)
            elif isinstance(step, Branch):
                for p in step.paths:
                    names |= p.stations(active)
        return frozenset(names)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self, stations: Iterable[str]):
        """Raise ConfigError if this trajectory cannot run on `stations`."""
        declared = set(stations)
        unknown = sorted(self.stations() - declared)
        if unknown:
            raise ConfigError(f"Trajectory {self.name!r} references undeclared station(s): {unknown}")
        held = _check_path(self, frozenset())
        if held:
            raise ConfigError(
                f"Trajectory {self.name!r} ends while still holding {sorted(held)}; "
                "every seize needs a matching release"
            )


def check_probabilities(probabilities: Sequence[float], where: str = "branch"):
    if not probabilities:
        raise ConfigError(f"{where}: empty probability vector")
    for p in probabilities:
        if isinstance(p, bool) or not isinstance(p, (int, float)) or not math.isfinite(p):
            raise ConfigError(f"{where}: probability {p!r} is not a finite number")
        if p < 0:
            raise ConfigError(f"{where}: negative probability {p}")
    total = math.fsum(probabilities)
    if abs(total - 1.0) > PROB_TOL:
        raise ConfigError(f"{where}: probabilities sum to {total!r}, expected 1")


def _enter(traj: Trajectory, active: FrozenSet[int]) -> FrozenSet[int]:
    """Add traj to the set of trajectories being walked; a repeat means a cycle."""
    if id(traj) in active:
        raise ConfigError(f"Trajectory {traj.name!r} is cyclic: it appears inside its own branch paths")
    return active | {id(traj)}


def _check_path(traj: Trajectory, held: FrozenSet[str],
                active: FrozenSet[int] = frozenset()) -> FrozenSet[str]:
    """Walk a path tracking which stations are held; return the held set at the end."""
    active = _enter(traj, active)
    for i, step in enumerate(traj.steps):
        where = f"{traj.name}[{i}]"
        if isinstance(step, Seize):
            if step.station in held:
                raise ConfigError(f"{where}: seizes {step.station!r} while already holding it")
            held = held | {step.station}
        elif isinstance(step, Release):
            if step.station not in held:
                raise ConfigError(f"{where}: releases {step.station!r} without seizing it")
            held = held - {step.station}
        elif isinstance(step, Timeout):
            if not callable(step.duration):
                raise ConfigError(f"{where}: timeout duration is not a sampler")
        elif isinstance(step, Branch):
            check_probabilities(step.probabilities, where)
            if len(step.paths) != len(step.probabilities):
                raise ConfigError(
                    f"{where}: {len(step.paths)} paths for {len(step.probabilities)} probabilities"
                )
            if len(step.continue_) != len(step.paths):
                raise ConfigError(f"{where}: {len(step.continue_)} continue flags for {len(step.paths)} paths")
            merged = None
            for path, cont in zip(step.paths, step.continue_):
                after = _check_path(path, held, active)
                if not cont:
                    if after:
                        raise ConfigError(
                            f"{where}: terminating path {path.name!r} ends holding {sorted(after)}"
                        )
                    continue
                if merged is None:
                    merged = after
                elif after != merged:
                    raise ConfigError(
                        f"{where}: continuing paths rejoin holding different stations "
                        f"({sorted(merged)} vs {sorted(after)})"
                    )
            if merged is None:
                # every path terminates; nothing after this branch is reachable
                return frozenset()
            held = merged
        else:
            raise ConfigError(f"{where}: unknown step {step!r}")
    return held
