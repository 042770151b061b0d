"""Supervise external fuzzing campaigns, one per tracked git repository."""

__version__ = "0.1.0"
