"""
Reclaim credits held by abandoned reservations.

A caller that crashes between reserving and completing leaves its usage event
``pending`` forever, holding the user's credits. Every pending event carries
an ``expires_at``; the reconciler refunds those that are past it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from ...config import env
from ...exceptions import CreditErrorCode
from ...logger import get_logger
from ...models.credits import UsageEvent
from ...store.base import LedgerStore
from .reservation_service import Clock, CreditReservationService, utcnow

logger = get_logger(__name__)

EXPIRED_REASON = "reservation expired"


@dataclass
class ReconciliationSummary:
  examined: int = 0
  reclaimed: int = 0
  credits_restored: int = 0
  failed: int = 0


class ReservationReconciler:
  """Refunds pending reservations whose expiry has passed."""

  def __init__(
    self,
    store: LedgerStore,
    clock: Clock | None = None,
    reservation_ttl: timedelta | None = None,
    batch_size: int | None = None,
  ):
    self.store = store
    self.clock = clock or utcnow
    self.reservation_ttl = reservation_ttl or timedelta(
      minutes=env.CREDIT_RESERVATION_TTL_MINUTES
    )
    self.batch_size = max(1, batch_size or env.RECONCILIATION_BATCH_SIZE)
    # No identity: the sweep acts on behalf of every user
    self.reservations = CreditReservationService(
      store, clock=self.clock, reservation_ttl=self.reservation_ttl
    )

  async def reclaim_expired(self, now: datetime | None = None) -> ReconciliationSummary:
    """
    Refund every pending reservation that expired at or before ``now``.

    Expired events are loaded ``batch_size`` at a time. Events that could not
    be refunded stay pending, so each is attempted once per sweep.
    """
    now = now or self.clock()
    summary = ReconciliationSummary()
    seen: set[str] = set()

    while True:
      # Events examined but not reclaimed may still be pending
      limit = self.batch_size + summary.examined - summary.reclaimed
      docs = await self.store.expired_reservations(
        before=now,
        created_before=now - self.reservation_ttl,
        limit=limit,
      )
      batch = [doc for doc in docs if doc["idempotency_key"] not in seen]
      if not batch:
        break

      for doc in batch:
        event = UsageEvent.from_doc(doc)
        seen.add(event.idempotency_key)
        summary.examined += 1
        await self._reclaim(event, summary)

      if len(docs) < limit:
        break

    logger.info(
      f"Reservation sweep: {summary.reclaimed}/{summary.examined} expired reservations "
      f"reclaimed, {summary.credits_restored} credits restored, {summary.failed} failed"
    )
    return summary

  async def _reclaim(self, event: UsageEvent, summary: ReconciliationSummary) -> None:
    result = await self.reservations.refund_credits(
      event.idempotency_key, EXPIRED_REASON
    )
    if result.success:
      summary.reclaimed += 1
      if event.charged:
        summary.credits_restored += event.credits_reserved
    elif result.error is CreditErrorCode.ALREADY_COMPLETED:
      # Completed between the query and the refund
      return
    else:
      summary.failed += 1
      logger.warning(
        f"Could not reclaim reservation {event.idempotency_key}: {result.error}"
      )
