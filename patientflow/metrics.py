# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# metrics.py
# -----------------------------------------------------------------------------
# Purpose:
#   Collect per-entity and per-station records during a run and hand them
#   back as a SimulationResult: arrivals / visits / resources tables (pandas),
#   utilization and a KPI summary.
#
# Design notes:
#   - Keep side-effect methods (note_*) for instrumentation from the router.
#   - Summaries return JSON-serializable dicts for easy tabulation across
#     replications.
#   - Utilization = busy server-time / (observation horizon * capacity), the
#     observation horizon being max(configured horizon, final clock) since
#     admitted entities may finish after admission stops.
#
# Usage:
#   M = Metrics(); ...; result = M.result(env, stations, horizon)
# -----------------------------------------------------------------------------

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from statistics import mean
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

ARRIVAL_COLUMNS = ["name", "entity_id", "start_time", "end_time", "activity_time", "wait_time", "finished"]
VISIT_COLUMNS = ["entity_id", "resource", "enter_time", "start_time", "end_time", "wait_time", "activity_time"]
RESOURCE_COLUMNS = ["resource", "time", "server", "queue", "capacity", "queue_size", "system"]
TRACE_COLUMNS = ["time", "event", "entity_id", "resource"]


class Metrics:
    def __init__(self):
        self.entities: List[Any] = []
        self.departed = 0
        self.rejects = defaultdict(int)       # station -> rejected entities
        self.negative_draws: List[Tuple[int, float]] = []

    def note_arrival(self, entity):
        self.entities.append(entity)

    def note_departure(self, entity):
        self.departed += 1

    def note_reject(self, entity, station: str):
        self.rejects[station] += 1

    def note_negative(self, entity, value: float):
        self.negative_draws.append((entity.eid, value))

    def result(self, env, stations: Dict[str, Any], horizon: float) -> "SimulationResult":
        end = env.t
        for st in stations.values():
            st.finalize(end)
        return SimulationResult(
            entities=list(self.entities),
            station_series={name: list(st.series) for name, st in stations.items()},
            busy_time={name: st.busy_time for name, st in stations.items()},
            capacity={name: st.capacity for name, st in stations.items()},
            horizon=horizon,
            end_time=end,
            trace=list(env.trace),
            rejects=dict(self.rejects),
            negative_draws=list(self.negative_draws),
            events_processed=env.processed,
        )


@dataclass
class SimulationResult:
    entities: List[Any]
    station_series: Dict[str, List[Dict[str, Any]]]
    busy_time: Dict[str, float]
    capacity: Dict[str, int]
    horizon: float
    end_time: float
    trace: List[Tuple[float, str, Optional[int], Optional[str]]] = field(default_factory=list)
    rejects: Dict[str, int] = field(default_factory=dict)
    negative_draws: List[Tuple[int, float]] = field(default_factory=list)
    events_processed: int = 0

    @property
    def observation_horizon(self) -> float:
        return max(self.horizon, self.end_time)

    @property
    def utilization(self) -> Dict[str, float]:
        obs = self.observation_horizon
        out = {}
        for name, busy in self.busy_time.items():
            denom = obs * self.capacity[name]
            out[name] = busy / denom if denom > 0 else 0.0
        return out

    def arrivals_table(self) -> pd.DataFrame:
        """One row per entity."""
        rows = [{
            "name": e.name,
            "entity_id": e.eid,
            "start_time": e.arrival_time,
            "end_time": e.departure_time,
            "activity_time": e.activity_time,
            "wait_time": e.wait_time,
            "finished": e.finished,
        } for e in self.entities]
        return pd.DataFrame(rows, columns=ARRIVAL_COLUMNS)

    def visits_table(self) -> pd.DataFrame:
        """One row per (entity, station) visit."""
        rows = []
        for e in self.entities:
            for v in e.visits:
                rows.append({
                    "entity_id": e.eid,
                    "resource": v.station,
                    "enter_time": v.enter_time,
                    "start_time": v.start_time,
                    "end_time": v.end_time,
                    "wait_time": v.wait_time,
                    "activity_time": v.activity_time,
                })
        return pd.DataFrame(rows, columns=VISIT_COLUMNS)

    def resources_table(self) -> pd.DataFrame:
        """One row per station per occupancy change, in time order."""
        rows = [row for series in self.station_series.values() for row in series]
        df = pd.DataFrame(rows, columns=RESOURCE_COLUMNS)
        if df.empty:
            return df
        # stable sort keeps the within-instant order in which changes happened
        return df.sort_values("time", kind="mergesort").reset_index(drop=True)

    def trace_table(self) -> pd.DataFrame:
        return pd.DataFrame(self.trace, columns=TRACE_COLUMNS)

    def summary(self) -> Dict:
        done = [e for e in self.entities if e.finished]
        flows = [e.flow_time for e in done]
        waits = [e.wait_time for e in done]
        station_waits: Dict[str, List[float]] = defaultdict(list)
        for e in self.entities:
            for v in e.visits:
                if v.start_time is not None:
                    station_waits[v.station].append(v.wait_time)
        return {
            "entities": len(self.entities),
            "finished": len(done),
            "rejected": sum(self.rejects.values()),
            "rejected_by_station": dict(self.rejects),
            "avg_flow_time": mean(flows) if flows else 0.0,
            "max_flow_time": max(flows) if flows else 0.0,
            "avg_wait_time": mean(waits) if waits else 0.0,
            "avg_station_wait": {
                name: (mean(station_waits[name]) if station_waits[name] else 0.0)
                for name in self.busy_time
            },
            "station_utilization": self.utilization,
            "negative_draws": len(self.negative_draws),
            "end_time": self.end_time,
            "observation_horizon": self.observation_horizon,
            "events_processed": self.events_processed,
        }
