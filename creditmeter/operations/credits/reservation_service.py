"""
Credit reservation lifecycle.

A billable operation reserves its credits up front, then either completes
(the debit stands) or is refunded (the exact reserved amount is restored):

    NONE -> PENDING -> COMPLETED
                    -> FAILED (refunded or not)

Every state change runs inside one ``LedgerStore.transaction`` together with
the balance change and its audit row. Transaction bodies abort by returning
an ``Abort`` rather than raising.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from ...config import env
from ...exceptions import (
  CreditErrorCode,
  InvalidOperationError,
  StoreUnavailableError,
  TransactionConflictError,
)
from ...logger import get_logger, log_credit_event, log_error
from ...middleware.auth import Identity, IdentityProvider, StaticIdentityProvider
from ...models.api.credits import OperationResult, ReservationResult
from ...models.credits import (
  Collection,
  CreditTransaction,
  CreditTransactionType,
  OperationKind,
  UsageEvent,
  UsageStatus,
  UserAccount,
)
from ...store.base import Abort, LedgerStore, LedgerTransaction
from ...utils.ulid import generate_prefixed_ulid
from .cost_calculator import get_operation_cost, parse_operation_kind
from .idempotency import generate_idempotency_key

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


async def run_ledger_transaction(
  store: LedgerStore,
  body: Callable[[LedgerTransaction], Awaitable[Any]],
  action: str,
  user_id: str | None = None,
) -> Any:
  """
  Run ``body`` in a store transaction, turning store failures into an ``Abort``.

  Exhausted conflict retries and backend outages both surface to callers as
  ``STORE_UNAVAILABLE``; the underlying error is logged in full.
  """
  try:
    return await store.transaction(body)
  except (TransactionConflictError, StoreUnavailableError) as e:
    log_error(
      logger,
      e,
      component="credits",
      action=action,
      error_category="store",
      user_id=user_id,
      metadata=e.details,
    )
    return Abort(CreditErrorCode.STORE_UNAVAILABLE, {"cause": e.error_code.value})


class CreditReservationService:
  """Reserve, complete and refund credits for billable operations."""

  def __init__(
    self,
    store: LedgerStore,
    identity_provider: IdentityProvider | None = None,
    clock: Clock | None = None,
    reservation_ttl: timedelta | None = None,
  ):
    self.store = store
    self.identity_provider = identity_provider or StaticIdentityProvider(None)
    self.clock = clock or utcnow
    self.reservation_ttl = reservation_ttl or timedelta(
      minutes=env.CREDIT_RESERVATION_TTL_MINUTES
    )

  def _can_access(self, identity: Identity | None, event: UsageEvent) -> bool:
    # Internal callers (jobs) run without an identity
    if identity is None or identity.is_privileged:
      return True
    return identity.user_id == event.user_id

  async def reserve_credits(
    self,
    operation_kind: OperationKind | str,
    params: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
  ) -> ReservationResult:
    """
    Reserve credits for an operation before running it.

    Re-submitting an attempt id that maps to an existing idempotency key
    returns the original reservation with ``replayed=True`` and debits
    nothing. A call without an attempt id is rejected.

    Args:
        operation_kind: Operation being billed
        params: Cost parameters (``image_count``, ``text_length``)
        metadata: Opaque caller context stored on the usage event
        request_id: Caller-supplied attempt id, required; retries must
            reuse it and every new attempt needs a new one

    Returns:
        ReservationResult with the idempotency key and credits reserved
    """
    identity = self.identity_provider.current_user()
    if identity is None:
      return ReservationResult.failure(CreditErrorCode.AUTH_REQUIRED)

    user_id = identity.user_id
    try:
      kind = parse_operation_kind(operation_kind)
      cost = get_operation_cost(kind, params)
      key = generate_idempotency_key(user_id, kind, request_id)
    except InvalidOperationError as e:
      logger.warning(f"Rejected reservation for {user_id}: {e.message}")
      return ReservationResult.failure(CreditErrorCode.INVALID_OPERATION)

    now = self.clock()

    async def reserve(tx: LedgerTransaction):
      existing = await tx.get(Collection.USAGE_EVENTS, key)
      if existing is not None:
        return UsageEvent.from_doc(existing), True

      account_doc = await tx.get(Collection.USERS, user_id)
      if account_doc is None:
        return Abort(CreditErrorCode.NOT_FOUND, {"user_id": user_id})
      account = UserAccount.from_doc(account_doc)

      privileged = account.is_privileged or identity.is_privileged
      if not privileged and account.credit_balance < cost:
        return Abort(
          CreditErrorCode.INSUFFICIENT_CREDITS,
          {"required": cost, "available": account.credit_balance},
        )

      event = UsageEvent(
        idempotency_key=key,
        user_id=user_id,
        operation_kind=kind,
        credits_reserved=cost,
        status=UsageStatus.PENDING,
        created_at=now,
        expires_at=now + self.reservation_ttl,
        charged=not privileged,
        metadata=dict(metadata or {}),
      )
      tx.put(Collection.USAGE_EVENTS, key, event.to_doc())

      if not privileged:
        account.credit_balance -= cost
        account.last_updated = now
        tx.put(Collection.USERS, user_id, account.to_doc())
        usage = CreditTransaction(
          id=generate_prefixed_ulid("txn"),
          user_id=user_id,
          type=CreditTransactionType.USAGE,
          amount=-cost,
          description=f"Reserved credits for {kind.value}",
          timestamp=now,
          idempotency_key=key,
          metadata=dict(metadata or {}),
        )
        tx.put(Collection.CREDIT_TRANSACTIONS, usage.id, usage.to_doc())
      return event, False

    outcome = await run_ledger_transaction(
      self.store, reserve, "reserve_credits", user_id=user_id
    )
    if isinstance(outcome, Abort):
      log_credit_event(
        logger,
        "reserve_credits",
        f"Reservation refused: {outcome.error_code.value}",
        user_id=user_id,
        idempotency_key=key,
        credits=cost,
        metadata=outcome.details,
      )
      return ReservationResult.failure(outcome.error_code, idempotency_key=key)

    event, replayed = outcome
    log_credit_event(
      logger,
      "reserve_credits",
      "Reservation replayed" if replayed else f"Reserved {event.credits_reserved} credits",
      user_id=user_id,
      idempotency_key=key,
      credits=event.credits_reserved,
      metadata={"operation_kind": event.operation_kind.value, "charged": event.charged},
    )
    return ReservationResult(
      success=True,
      idempotency_key=key,
      credits_reserved=event.credits_reserved,
      replayed=replayed,
    )

  async def complete_credit_operation(
    self,
    idempotency_key: str,
    status: UsageStatus | str,
    error: str | None = None,
  ) -> OperationResult:
    """
    Finalize a pending reservation as ``completed`` or ``failed``.

    The balance is not touched: the debit happened at reservation time.
    Marking an event ``failed`` here does not refund it; callers that want
    the credits back call ``refund_credits`` first. Completing an event that
    is already terminal is a successful no-op.
    """
    try:
      final_status = UsageStatus(status)
    except ValueError:
      final_status = None
    if final_status is None or not final_status.is_terminal:
      logger.warning(f"Invalid completion status {status!r} for {idempotency_key}")
      return OperationResult.failure(CreditErrorCode.INVALID_OPERATION)

    identity = self.identity_provider.current_user()
    now = self.clock()

    async def complete(tx: LedgerTransaction):
      doc = await tx.get(Collection.USAGE_EVENTS, idempotency_key)
      if doc is None:
        return Abort(CreditErrorCode.NOT_FOUND)
      event = UsageEvent.from_doc(doc)
      if not self._can_access(identity, event):
        return Abort(CreditErrorCode.NOT_FOUND)
      if event.status.is_terminal:
        return event, False

      event.status = final_status
      event.completed_at = now
      event.error = error
      tx.put(Collection.USAGE_EVENTS, idempotency_key, event.to_doc())
      return event, True

    user_id = identity.user_id if identity else None
    outcome = await run_ledger_transaction(
      self.store, complete, "complete_credit_operation", user_id=user_id
    )
    if isinstance(outcome, Abort):
      return OperationResult.failure(outcome.error_code)

    event, changed = outcome
    if changed:
      log_credit_event(
        logger,
        "complete_credit_operation",
        f"Operation {final_status.value}",
        user_id=event.user_id,
        idempotency_key=idempotency_key,
        credits=event.credits_reserved,
        metadata={"error": error} if error else None,
      )
    else:
      logger.debug(f"Usage event {idempotency_key} already {event.status.value}")
    return OperationResult(success=True)

  async def refund_credits(self, idempotency_key: str, reason: str) -> OperationResult:
    """
    Return the reserved credits of an operation that did not complete.

    Restores exactly ``credits_reserved`` when the reservation debited the
    balance, marks the event ``failed`` and ``refunded`` and writes a
    ``refund`` audit row, all in one transaction. Completed work is never
    refunded; refunding twice is a no-op.
    """
    identity = self.identity_provider.current_user()
    now = self.clock()

    async def refund(tx: LedgerTransaction):
      doc = await tx.get(Collection.USAGE_EVENTS, idempotency_key)
      if doc is None:
        return Abort(CreditErrorCode.NOT_FOUND)
      event = UsageEvent.from_doc(doc)
      if not self._can_access(identity, event):
        return Abort(CreditErrorCode.NOT_FOUND)
      if event.status is UsageStatus.COMPLETED:
        return Abort(CreditErrorCode.ALREADY_COMPLETED)
      if event.refunded:
        return event, False

      if event.charged:
        account_doc = await tx.get(Collection.USERS, event.user_id)
        if account_doc is None:
          return Abort(CreditErrorCode.NOT_FOUND, {"user_id": event.user_id})
        account = UserAccount.from_doc(account_doc)
        account.credit_balance += event.credits_reserved
        account.last_updated = now
        tx.put(Collection.USERS, account.user_id, account.to_doc())
        entry = CreditTransaction(
          id=generate_prefixed_ulid("txn"),
          user_id=event.user_id,
          type=CreditTransactionType.REFUND,
          amount=event.credits_reserved,
          description=f"Refund for {event.operation_kind.value}: {reason}",
          timestamp=now,
          idempotency_key=idempotency_key,
          metadata={"reason": reason},
        )
        tx.put(Collection.CREDIT_TRANSACTIONS, entry.id, entry.to_doc())

      event.status = UsageStatus.FAILED
      event.refunded = True
      event.refund_reason = reason
      event.refunded_at = now
      event.completed_at = event.completed_at or now
      tx.put(Collection.USAGE_EVENTS, idempotency_key, event.to_doc())
      return event, True

    user_id = identity.user_id if identity else None
    outcome = await run_ledger_transaction(
      self.store, refund, "refund_credits", user_id=user_id
    )
    if isinstance(outcome, Abort):
      log_credit_event(
        logger,
        "refund_credits",
        f"Refund refused: {outcome.error_code.value}",
        user_id=user_id,
        idempotency_key=idempotency_key,
        metadata=outcome.details,
      )
      return OperationResult.failure(outcome.error_code)

    event, changed = outcome
    if changed:
      log_credit_event(
        logger,
        "refund_credits",
        f"Refunded {event.credits_reserved if event.charged else 0} credits",
        user_id=event.user_id,
        idempotency_key=idempotency_key,
        credits=event.credits_reserved if event.charged else 0,
        metadata={"reason": reason},
      )
    return OperationResult(success=True)
