"""Dagster jobs for the credit metering service."""

from creditmeter.dagster.jobs.credits import (
  reclaim_expired_reservations,
  reclaim_expired_reservations_job,
  reclaim_expired_reservations_schedule,
)

__all__ = [
  "reclaim_expired_reservations",
  "reclaim_expired_reservations_job",
  "reclaim_expired_reservations_schedule",
]
