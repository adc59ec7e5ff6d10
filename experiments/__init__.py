"""Scenario definitions and the replication / comparison harness."""
