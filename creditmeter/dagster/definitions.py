"""Dagster definitions entry point for the credit metering service.

This module defines all Dagster components:
- Resources: Ledger store connection
- Jobs: Credit ledger maintenance jobs
- Schedules: Cron-based job triggers

Usage:
    # Local development
    dagster dev -m creditmeter.dagster
"""

from dagster import Definitions, EnvVar

from creditmeter.dagster.jobs.credits import (
  reclaim_expired_reservations_job,
  reclaim_expired_reservations_schedule,
)
from creditmeter.dagster.resources import LedgerStoreResource

# ============================================================================
# Resource Configuration
# ============================================================================

resources = {
  "ledger": LedgerStoreResource(
    database_url=EnvVar("DATABASE_URL"),
  ),
}

# ============================================================================
# Jobs and Schedules Registry
# ============================================================================

all_jobs = [
  reclaim_expired_reservations_job,
]

all_schedules = [
  reclaim_expired_reservations_schedule,
]

defs = Definitions(
  jobs=all_jobs,
  schedules=all_schedules,
  resources=resources,
)
