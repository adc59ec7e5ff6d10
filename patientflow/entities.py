# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# entities.py
# -----------------------------------------------------------------------------
# Purpose:
#   Entity definitions for the patient-flow DES: Entity (a patient), the
#   per-station Visit record, and the StepContext handed to samplers.
#
# Design notes:
#   - An entity's trajectory position is a stack of frames (see
#     trajectory.Frame). Branches that continue push a frame; branches that
#     terminate independently replace the stack.
#   - Visit timestamps are filled in by the station as the entity queues,
#     starts service and releases.
#
# Usage:
#   from patientflow.entities import Entity, Visit, StepContext
# -----------------------------------------------------------------------------

from __future__ import annotations
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Visit:
    station: str
    enter_time: float                     # joined the station (queue or service)
    start_time: Optional[float] = None    # seize granted
    end_time: Optional[float] = None      # released
    activity_time: float = 0.0            # sum of sampled holds while seized

    @property
    def wait_time(self) -> float:
        if self.start_time is None:
            return 0.0
        return self.start_time - self.enter_time

    @property
    def complete(self) -> bool:
        return self.end_time is not None


@dataclass
class Entity:
    eid: int
    name: str                             # trajectory name, e.g. 'patient'
    arrival_time: float
    departure_time: Optional[float] = None
    finished: bool = False
    visits: List[Visit] = field(default_factory=list)
    frames: List[Any] = field(default_factory=list)          # trajectory position
    held: Dict[str, Visit] = field(default_factory=dict)     # station -> open visit
    waiting_at: Optional[str] = None                         # station whose queue we sit in
    activity_time: float = 0.0
    branches: List[int] = field(default_factory=list)        # branch indices taken, in order

    def open_visit(self, station: str, now: float) -> Visit:
        v = Visit(station, enter_time=now)
        self.visits.append(v)
        self.held[station] = v
        return v

    def add_activity(self, duration: float):
        """Attribute a sampled hold to the entity and every station it holds."""
        self.activity_time += duration
        for v in self.held.values():
            if v.start_time is not None:
                v.activity_time += duration

    @property
    def flow_time(self) -> Optional[float]:
        if self.departure_time is None:
            return None
        return self.departure_time - self.arrival_time

    @property
    def wait_time(self) -> float:
        return sum(v.wait_time for v in self.visits)


@dataclass
class StepContext:
    """Explicit context for duration samplers and branch draws."""
    entity: Entity
    now: float
    rng: random.Random
