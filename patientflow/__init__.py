"""
patientflow package initializer.

This package contains the discrete-event simulation engine, primitives
(stations/queues), trajectory description and routing, arrival processes,
duration samplers, configuration loading and metric collection used by the
hospital patient-flow model.
"""
__all__ = [
    "errors", "entities", "distributions", "trajectory", "queues",
    "arrivals", "network", "metrics", "simulation", "config",
]
