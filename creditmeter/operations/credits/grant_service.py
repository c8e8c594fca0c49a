"""
Credit grants: account provisioning, bonuses and purchases.

These are the only paths that increase a balance other than refunds. Each
grant updates the account and appends its audit row in one transaction.
"""

import hashlib
from typing import Any

from ...config import env
from ...exceptions import (
  AuthRequiredError,
  CreditErrorCode,
  CreditMeterError,
  InvalidAmountError,
)
from ...logger import get_logger, log_credit_event
from ...middleware.auth import IdentityProvider, StaticIdentityProvider
from ...models.api.credits import CreditTransactionResponse, OperationResult
from ...models.credits import (
  Collection,
  CreditTransaction,
  CreditTransactionType,
  UserAccount,
)
from ...store.base import Abort, LedgerStore, LedgerTransaction
from ...utils.ulid import generate_prefixed_ulid
from .reservation_service import Clock, run_ledger_transaction, utcnow

logger = get_logger(__name__)


def _validate_amount(amount: Any) -> int:
  if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
    raise InvalidAmountError(amount)
  return amount


def purchase_transaction_id(payment_reference: str) -> str:
  """Deterministic audit row id so a replayed payment confirmation credits once."""
  digest = hashlib.sha256(payment_reference.encode("utf-8")).hexdigest()
  return f"pur_{digest[:32]}"


class CreditGrantService:
  """Service for adding credits to user accounts."""

  def __init__(
    self,
    store: LedgerStore,
    identity_provider: IdentityProvider | None = None,
    clock: Clock | None = None,
  ):
    self.store = store
    self.identity_provider = identity_provider or StaticIdentityProvider(None)
    self.clock = clock or utcnow

  async def ensure_account(
    self,
    user_id: str,
    is_privileged: bool = False,
    initial_credits: int | None = None,
  ) -> UserAccount:
    """
    Provision a credit account if the user has none.

    New accounts start with ``initial_credits`` (default
    ``SIGNUP_BONUS_CREDITS``), recorded as a ``bonus`` audit row. Existing
    accounts are returned unchanged.

    Raises:
        CreditMeterError: The store could not provision the account
    """
    credits = env.SIGNUP_BONUS_CREDITS if initial_credits is None else initial_credits
    if isinstance(credits, bool) or not isinstance(credits, int) or credits < 0:
      raise InvalidAmountError(credits)
    now = self.clock()

    async def provision(tx: LedgerTransaction):
      existing = await tx.get(Collection.USERS, user_id)
      if existing is not None:
        return UserAccount.from_doc(existing), False

      account = UserAccount(
        user_id=user_id,
        credit_balance=credits,
        is_privileged=is_privileged,
        last_updated=now,
      )
      tx.put(Collection.USERS, user_id, account.to_doc())
      if credits:
        entry = CreditTransaction(
          id=generate_prefixed_ulid("txn"),
          user_id=user_id,
          type=CreditTransactionType.BONUS,
          amount=credits,
          description="Signup bonus",
          timestamp=now,
        )
        tx.put(Collection.CREDIT_TRANSACTIONS, entry.id, entry.to_doc())
      return account, True

    outcome = await run_ledger_transaction(
      self.store, provision, "ensure_account", user_id=user_id
    )
    if isinstance(outcome, Abort):
      raise CreditMeterError(
        f"Could not provision credit account for {user_id}",
        error_code=outcome.error_code,
        details=outcome.details,
      )

    account, created = outcome
    if created:
      log_credit_event(
        logger,
        "ensure_account",
        "Provisioned credit account",
        user_id=user_id,
        credits=credits,
        metadata={"is_privileged": is_privileged},
      )
    return account

  async def _grant(
    self,
    user_id: str,
    amount: int,
    transaction_type: CreditTransactionType,
    description: str,
    metadata: dict[str, Any] | None,
    transaction_id: str | None = None,
  ) -> OperationResult:
    now = self.clock()
    action = f"add_{transaction_type.value}_credits"

    async def grant(tx: LedgerTransaction):
      entry_id = transaction_id or generate_prefixed_ulid("txn")
      if transaction_id is not None:
        if await tx.get(Collection.CREDIT_TRANSACTIONS, transaction_id) is not None:
          return False

      account_doc = await tx.get(Collection.USERS, user_id)
      if account_doc is None:
        return Abort(CreditErrorCode.NOT_FOUND, {"user_id": user_id})
      account = UserAccount.from_doc(account_doc)
      account.credit_balance += amount
      account.last_updated = now
      tx.put(Collection.USERS, user_id, account.to_doc())

      entry = CreditTransaction(
        id=entry_id,
        user_id=user_id,
        type=transaction_type,
        amount=amount,
        description=description,
        timestamp=now,
        metadata=dict(metadata or {}),
      )
      tx.put(Collection.CREDIT_TRANSACTIONS, entry.id, entry.to_doc())
      return True

    outcome = await run_ledger_transaction(self.store, grant, action, user_id=user_id)
    if isinstance(outcome, Abort):
      logger.warning(f"{action} refused for {user_id}: {outcome.error_code.value}")
      return OperationResult.failure(outcome.error_code)

    if outcome:
      log_credit_event(
        logger, action, description, user_id=user_id, credits=amount, metadata=metadata
      )
    else:
      logger.info(f"Duplicate {transaction_type.value} {transaction_id} ignored")
    return OperationResult(success=True)

  async def add_bonus_credits(
    self,
    user_id: str,
    amount: int,
    reason: str,
    metadata: dict[str, Any] | None = None,
  ) -> OperationResult:
    """Grant promotional or administrative credits."""
    try:
      amount = _validate_amount(amount)
    except InvalidAmountError:
      return OperationResult.failure(CreditErrorCode.INVALID_AMOUNT)
    return await self._grant(
      user_id, amount, CreditTransactionType.BONUS, reason, metadata
    )

  async def add_purchased_credits(
    self,
    user_id: str,
    amount: int,
    payment_reference: str,
    metadata: dict[str, Any] | None = None,
  ) -> OperationResult:
    """
    Credit a confirmed purchase.

    Idempotent on ``payment_reference``: a repeated confirmation for the same
    payment is a successful no-op.
    """
    try:
      amount = _validate_amount(amount)
    except InvalidAmountError:
      return OperationResult.failure(CreditErrorCode.INVALID_AMOUNT)
    if not payment_reference:
      return OperationResult.failure(CreditErrorCode.INVALID_OPERATION)

    return await self._grant(
      user_id,
      amount,
      CreditTransactionType.PURCHASE,
      f"Purchased {amount} credits",
      {**(metadata or {}), "payment_reference": payment_reference},
      transaction_id=purchase_transaction_id(payment_reference),
    )

  async def get_credit_history(
    self, user_id: str | None = None, limit: int = 50
  ) -> list[CreditTransactionResponse]:
    """
    Newest-first audit rows for ``user_id`` or the current user.

    Raises:
        AuthRequiredError: No user id given and no current identity
    """
    if not user_id:
      identity = self.identity_provider.current_user()
      if identity is None:
        raise AuthRequiredError("get_credit_history")
      user_id = identity.user_id

    docs = await self.store.query(Collection.CREDIT_TRANSACTIONS, user_id=user_id)
    transactions = sorted(
      (CreditTransaction.from_doc(doc) for doc in docs),
      key=lambda t: (t.timestamp, t.id),
      reverse=True,
    )
    return [
      CreditTransactionResponse.from_transaction(t) for t in transactions[: max(limit, 0)]
    ]
