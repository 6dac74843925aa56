"""
Periodic jobs for the matchmaking feature, run through app.jobs.worker.
"""

from .hotspot_job import HotspotJob, start_hotspot_scheduler
from .retention_job import run_retention_job, start_scan_retention_scheduler

__all__ = [
    "HotspotJob",
    "run_retention_job",
    "start_hotspot_scheduler",
    "start_scan_retention_scheduler",
]
