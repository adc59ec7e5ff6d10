"""
experiments/scenarios.py

Holds scenario definitions (decision variables) to sweep during experiments.
Each scenario is a set of overrides merged onto patientflow/data/hospital.yaml:
arrival intensity, service-time parameters, station capacities.
"""

from __future__ import annotations

BASELINE = {
    "name": "baseline",
    "overrides": {},  # override config keys here per scenario
}

BUSY_CLINIC = {
    "name": "busy_clinic",
    "overrides": {
        "arrivals": {
            "interarrival": {"dist": "exponential", "mean": 11},
        },
    },
}

# Triage protocol that trims nurse time; steps are replaced wholesale since
# lists do not merge.
FAST_TRIAGE = {
    "name": "fast_triage",
    "overrides": {
        "trajectory": {
            "name": "patient",
            "steps": [
                {"visit": "nurse", "duration": {"dist": "normal", "mean": 7, "sd": 1.5}},
                {"branch": {
                    "probabilities": [0.3, 0.7],
                    "continue": [True, True],
                    "paths": [
                        {"name": "lab_work", "steps": [
                            {"visit": "lab", "duration": {"dist": "normal", "mean": 20, "sd": 5}},
                        ]},
                        {"name": "straight_to_doctor", "steps": []},
                    ],
                }},
                {"visit": "doctor", "duration": {"dist": "normal", "mean": 12, "sd": 3}},
                {"branch": {
                    "probabilities": [0.85, 0.15],
                    "continue": [True, False],
                    "paths": [
                        {"name": "discharge", "steps": [
                            {"visit": "administration", "duration": {"dist": "normal", "mean": 5, "sd": 1}},
                        ]},
                        {"name": "admit", "steps": [
                            {"visit": "transfer", "duration": {"dist": "uniform", "low": 10, "high": 20}},
                        ]},
                    ],
                }},
            ],
        },
    },
}

SECOND_DOCTOR = {
    "name": "second_doctor",
    "overrides": {
        "arrivals": {
            "interarrival": {"dist": "exponential", "mean": 11},
        },
        "stations": {
            "doctor": {"capacity": 2},
        },
    },
}

SCENARIOS = [BASELINE, BUSY_CLINIC, FAST_TRIAGE, SECOND_DOCTOR]
