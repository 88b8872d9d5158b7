"""Scheduling utilities."""

from .apsched_adapter import HARVEST_JOB_ID, HarvestScheduler, build_trigger

__all__ = ["HARVEST_JOB_ID", "HarvestScheduler", "build_trigger"]
