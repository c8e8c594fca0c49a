"""Dagster credit jobs.

These jobs keep the credit ledger consistent: pending reservations abandoned
by crashed callers are refunded once they expire.
"""

from dataclasses import asdict
from typing import Any

from dagster import (
  Backoff,
  DefaultScheduleStatus,
  OpExecutionContext,
  RetryPolicy,
  ScheduleDefinition,
  job,
  op,
)

from creditmeter.config import env
from creditmeter.dagster.resources import LedgerStoreResource
from creditmeter.logger import get_logger
from creditmeter.operations.credits.reconciliation import (
  ReconciliationSummary,
  ReservationReconciler,
)
from creditmeter.store.base import LedgerStore

logger = get_logger(__name__)

# ============================================================================
# Environment-based Schedule Status
# ============================================================================

# Defaults to STOPPED. Enable via RECONCILIATION_SCHEDULE_ENABLED=true
RECONCILIATION_SCHEDULE_STATUS = (
  DefaultScheduleStatus.RUNNING
  if env.RECONCILIATION_SCHEDULE_ENABLED
  else DefaultScheduleStatus.STOPPED
)


async def _reclaim(store: LedgerStore) -> ReconciliationSummary:
  try:
    return await ReservationReconciler(store).reclaim_expired()
  finally:
    await store.close()


# ============================================================================
# Expired Reservation Reclaim Job
# ============================================================================


@op(
  retry_policy=RetryPolicy(
    max_retries=3,
    delay=30,
    backoff=Backoff.EXPONENTIAL,
  ),
  tags={"kind": "maintenance", "category": "credits"},
)
def reclaim_expired_reservations(
  context: OpExecutionContext,
  ledger: LedgerStoreResource,
) -> dict[str, Any]:
  """
  Refund pending reservations past their expiry.

  Each refund is its own ledger transaction, so a failed run can be retried
  without double-refunding anything already reclaimed.
  """
  import asyncio

  loop = asyncio.new_event_loop()
  try:
    summary = loop.run_until_complete(_reclaim(ledger.create_store()))
  finally:
    loop.close()

  context.log.info(
    f"Reclaimed {summary.reclaimed} of {summary.examined} expired reservations "
    f"({summary.credits_restored} credits restored)"
  )
  if summary.failed:
    context.log.warning(f"{summary.failed} expired reservations could not be reclaimed")
  return asdict(summary)


@job(
  tags={
    "dagster/max_runtime": 600,  # 10 minute max
    "category": "credits",
  },
)
def reclaim_expired_reservations_job():
  """Expired reservation reclaim job."""
  reclaim_expired_reservations()


reclaim_expired_reservations_schedule = ScheduleDefinition(
  job=reclaim_expired_reservations_job,
  cron_schedule="*/15 * * * *",  # Every 15 minutes
  default_status=RECONCILIATION_SCHEDULE_STATUS,
)
