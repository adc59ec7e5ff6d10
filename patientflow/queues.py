# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# queues.py
# -----------------------------------------------------------------------------
# Purpose:
#   Minimal discrete-event primitives: Event, Env, and a Station with a FIFO
#   queue, fixed capacity and an optional finite waiting room.
#
# Design notes:
#   - The Future Event List (FEL) is a min-heap ordered by (t, seq). seq is
#     the insertion counter, so same-time events fire first-in first-out and
#     a seed fully determines the event order.
#   - Stations do not sample service times; holds are trajectory steps. A
#     station only grants, queues or rejects seizes and hands capacity to
#     the head of its queue on release.
#   - Dispatch is delegated to env.router (defined in patientflow.network).
#
# Usage:
#   from patientflow.queues import Env, Event, Station
# -----------------------------------------------------------------------------

from __future__ import annotations
import heapq
import logging
import math
import random
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from .errors import ConfigError

log = logging.getLogger(__name__)

SERVED = "served"
QUEUED = "queued"
REJECTED = "rejected"


class Event:
    """Minimal event object for the Future Event List (FEL)."""
    __slots__ = ("t", "seq", "kind", "data")

    def __init__(self, t: float, seq: int, kind: str, data: dict):
        self.t = t; self.seq = seq; self.kind = kind; self.data = data

    def __lt__(self, other: "Event"):
        return (self.t, self.seq) < (other.t, other.seq)

    def __repr__(self):
        return f"Event(t={self.t}, seq={self.seq}, kind={self.kind!r})"


class Env:
    """Simulation environment holding the clock, FEL, RNG and a router hook.

    Attributes
    ----------
    t : float
        Simulation clock. Only moves forward, and only when an event is popped.
    FEL : list[Event]
        Min-heap of scheduled events.
    rng : random.Random
        The run's private generator; samplers receive it through StepContext.
    router : object
        Object with on_arrival/on_resume used to dispatch events.
    trace : list[tuple]
        (time, kind, entity id, station) for every processed event and
        station change, in processing order.
    """
    def __init__(self, router, rng: random.Random):
        self.t: float = 0.0
        self.FEL: List[Event] = []
        self.router = router
        self.rng = rng
        self.trace: List[Tuple[float, str, Optional[int], Optional[str]]] = []
        self._seq = 0
        self.processed = 0

    def schedule(self, t: float, kind: str, data: dict) -> Event:
        if t < self.t:
            raise ValueError(f"cannot schedule {kind!r} at {t} before the clock ({self.t})")
        self._seq += 1
        ev = Event(t, self._seq, kind, data)
        heapq.heappush(self.FEL, ev)
        return ev

    def note(self, kind: str, entity: Any = None, station: Optional[str] = None):
        eid = getattr(entity, "eid", None)
        self.trace.append((self.t, kind, eid, station))

    def run(self):
        """Process events until the FEL is empty."""
        while self.FEL:
            ev = heapq.heappop(self.FEL)
            self.t = ev.t
            self.processed += 1
            kind, data = ev.kind, ev.data
            if log.isEnabledFor(logging.DEBUG):
                log.debug("t=%.4f %s %s", self.t, kind, {k: getattr(v, "eid", v) for k, v in data.items()})
            if kind == "arrival":
                self.router.on_arrival(self, **data)
            elif kind == "resume":
                self.router.on_resume(self, **data)
            else:
                raise ValueError(f"unknown event kind {kind!r}")


class Station:
    """FIFO station with `capacity` parallel servers and an optional waiting room.

    Parameters
    ----------
    name : str
        Station name for routing/metrics.
    capacity : int
        Number of entities that can hold the station at once (> 0).
    queue_size : float
        Waiting-room limit (entities queued, not in service). math.inf for
        unlimited; a seize that finds it full is rejected.
    """
    def __init__(self, name: str, capacity: int = 1, queue_size: float = math.inf):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ConfigError(f"Station {name!r}: capacity must be a positive integer, got {capacity!r}")
        if not (queue_size == math.inf or (isinstance(queue_size, int) and not isinstance(queue_size, bool))) \
                or queue_size < 0:
            raise ConfigError(f"Station {name!r}: queue_size must be a non-negative integer, got {queue_size!r}")
        self.name = name
        self.capacity = capacity
        self.queue_size = queue_size
        self.queue: Deque[Any] = deque()
        self.in_service: int = 0
        self.busy_time: float = 0.0
        self.last_change: float = 0.0
        self._prev_in_service: int = 0
        self.rejected: int = 0
        self.series: List[Dict[str, Any]] = []

    def __repr__(self):
        return f"Station({self.name!r}, capacity={self.capacity}, in_service={self.in_service}, queue={len(self.queue)})"

    def has_capacity(self) -> bool:
        return self.in_service < self.capacity

    def can_join(self) -> bool:
        return len(self.queue) < self.queue_size

    def seize(self, env: Env, job: Any) -> str:
        """Grant the station to job, queue it, or reject it when the waiting room is full."""
        if self.has_capacity() and not self.queue:
            self._occupy(env, job, job.open_visit(self.name, env.t))
            return SERVED
        if not self.can_join():
            self.rejected += 1
            env.note("reject", job, self.name)
            return REJECTED
        job.open_visit(self.name, env.t)
        self.queue.append(job)
        job.waiting_at = self.name
        env.note("enqueue", job, self.name)
        self._record(env.t)
        return QUEUED

    def release(self, env: Env, job: Any) -> Optional[Any]:
        """
        Free one unit held by job. If someone is waiting, hand them the unit
        right away and return them so the router can resume their path.
        """
        visit = job.held.pop(self.name, None)
        if visit is None or visit.start_time is None:
            raise RuntimeError(f"{self.name}: entity {job.eid} released without holding")
        visit.end_time = env.t
        self.in_service -= 1
        self._mark_busy(env.t)
        env.note("release", job, self.name)
        nxt = None
        if self.queue and self.has_capacity():
            nxt = self.queue.popleft()
            nxt.waiting_at = None
            self._occupy(env, nxt, nxt.held[self.name])
        else:
            self._record(env.t)
        return nxt

    def _occupy(self, env: Env, job: Any, visit):
        visit.start_time = env.t
        self.in_service += 1
        if self.in_service > self.capacity:
            raise RuntimeError(f"{self.name}: occupancy {self.in_service} exceeds capacity {self.capacity}")
        self._mark_busy(env.t)
        env.note("seize", job, self.name)
        self._record(env.t)

    def _mark_busy(self, now: float):
        # Integrate busy server-time by tracking how many servers were active
        dt = now - self.last_change
        if dt > 0:
            self.busy_time += self._prev_in_service * dt
        self.last_change = now
        self._prev_in_service = self.in_service

    def _record(self, now: float):
        self.series.append({
            "resource": self.name,
            "time": now,
            "server": self.in_service,
            "queue": len(self.queue),
            "capacity": self.capacity,
            "queue_size": self.queue_size,
            "system": self.in_service + len(self.queue),
        })

    def finalize(self, now: float):
        """Close the busy-time integral at the end of the observation window."""
        self._mark_busy(now)
