# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# network.py
# -----------------------------------------------------------------------------
# Purpose:
#   Router: walks each entity along its trajectory. Decides what happens on
#   arrival, after a hold ends, and when a queued entity is handed a station.
#
# Design notes:
#   - advance() runs steps back to back at the current instant until the
#     entity has to wait: a hold (timeout) or a queue. Both cases end with a
#     'resume' event for that entity, scheduled by us or by Station.release.
#   - Entities admitted from a queue on release resume through an event at
#     the same instant instead of recursing, so the FEL order stays the only
#     source of interleaving.
#   - Negative hold draws are a policy choice (see NEGATIVE_POLICIES).
#
# Usage:
#   router = Router(trajectory, stations, metrics)
#   env = Env(router, rng)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
from typing import Dict

from .distributions import draw_duration
from .entities import Entity, StepContext
from .errors import ConfigError, DistributionSampleError
from .queues import QUEUED, REJECTED, Env, Station
from .trajectory import Branch, BranchOutcome, Release, Seize, Timeout, Trajectory

log = logging.getLogger(__name__)

# allow: record the raw draw, hold ends at the current instant (clock never runs back)
# clip:  draws below zero become zero
# error: a negative draw aborts the run
NEGATIVE_POLICIES = ("allow", "clip", "error")


class Router:
    def __init__(self, trajectory: Trajectory, stations: Dict[str, Station], metrics,
                 negative_durations: str = "allow"):
        if negative_durations not in NEGATIVE_POLICIES:
            raise ConfigError(
                f"negative_durations must be one of {NEGATIVE_POLICIES}, got {negative_durations!r}"
            )
        self.trajectory = trajectory
        self.S = stations
        self.M = metrics
        self.negative_durations = negative_durations

    # Incoming arrivals (scheduled by arrivals.ArrivalStream)
    def on_arrival(self, env: Env, stream) -> Entity:
        entity = stream.spawn(env)
        stream.schedule_next(env)
        env.note("arrival", entity)
        self.M.note_arrival(entity)
        entity.frames = [self.trajectory.start_frame()]
        self.advance(env, entity)
        return entity

    # A hold finished or a station was handed over
    def on_resume(self, env: Env, entity: Entity):
        self.advance(env, entity)

    def advance(self, env: Env, entity: Entity):
        while True:
            if not entity.frames:
                self._depart(env, entity, finished=True)
                return
            frame = entity.frames[-1]
            step = frame.current()
            if step is None:
                # path done; fall back to the continuation beneath it
                entity.frames.pop()
                continue
            frame.pos += 1
            if isinstance(step, Seize):
                outcome = self.S[step.station].seize(env, entity)
                if outcome == QUEUED:
                    return
                if outcome == REJECTED:
                    self._reject(env, entity, step.station)
                    return
            elif isinstance(step, Release):
                nxt = self.S[step.station].release(env, entity)
                if nxt is not None:
                    env.schedule(env.t, "resume", {"entity": nxt})
            elif isinstance(step, Timeout):
                hold = self._hold(env, entity, step)
                env.schedule(env.t + hold, "resume", {"entity": entity})
                return
            elif isinstance(step, Branch):
                outcome = self._branch(env, entity, step, frame)
                path = step.paths[outcome.index]
                if outcome.continuation is None:
                    entity.frames = [path.start_frame()]
                else:
                    entity.frames.append(path.start_frame())
            else:
                raise ConfigError(f"unknown step {step!r}")

    def _hold(self, env: Env, entity: Entity, step: Timeout) -> float:
        """Sample a hold and return how far to move the clock."""
        ctx = StepContext(entity=entity, now=env.t, rng=env.rng)
        d = draw_duration(step.duration, ctx)
        if d < 0:
            if self.negative_durations == "error":
                raise DistributionSampleError(
                    f"entity {entity.eid}: negative hold {d:.4f} from {step.duration!r}"
                )
            if self.negative_durations == "clip":
                d = 0.0
            else:
                log.warning("entity %d: negative hold %.4f from %r at t=%.4f",
                            entity.eid, d, step.duration, env.t)
                self.M.note_negative(entity, d)
        entity.add_activity(d)
        return max(d, 0.0)

    def _branch(self, env: Env, entity: Entity, step: Branch, frame) -> BranchOutcome:
        idx = step.select(env.rng)
        entity.branches.append(idx)
        env.note(f"branch:{idx}", entity)
        return BranchOutcome(idx, frame if step.continue_[idx] else None)

    def _reject(self, env: Env, entity: Entity, station: str):
        """Waiting room full: drop the entity, handing back whatever it still holds."""
        for name in list(entity.held):
            nxt = self.S[name].release(env, entity)
            if nxt is not None:
                env.schedule(env.t, "resume", {"entity": nxt})
        self.M.note_reject(entity, station)
        self._depart(env, entity, finished=False)

    def _depart(self, env: Env, entity: Entity, finished: bool):
        entity.departure_time = env.t
        entity.finished = finished
        entity.frames = []
        env.note("depart", entity)
        self.M.note_departure(entity)
