# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# errors.py
# -----------------------------------------------------------------------------
# Purpose:
#   Exception types raised by the simulator.
#
# Design notes:
#   - ConfigError is raised while configuring, before any simulated time
#     advances. It subclasses ValueError so callers validating inputs the
#     usual way still catch it.
#   - DistributionSampleError aborts a run; no partial result is returned.
# -----------------------------------------------------------------------------

from __future__ import annotations


class PatientFlowError(Exception):
    """Base class for simulator errors."""


class ConfigError(PatientFlowError, ValueError):
    """Malformed stations, trajectory, arrivals or run settings."""


class DistributionSampleError(PatientFlowError, RuntimeError):
    """A duration sampler failed or produced an unusable value."""
