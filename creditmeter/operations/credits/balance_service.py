"""Read-only credit balance queries."""

from typing import Any

from ...exceptions import AuthRequiredError
from ...logger import get_logger
from ...middleware.auth import IdentityProvider, StaticIdentityProvider
from ...models.api.credits import CreditBalance, CreditCheckResponse
from ...models.credits import Collection, OperationKind, UsageStatus, UserAccount
from ...store.base import LedgerStore
from .cost_calculator import get_operation_cost

logger = get_logger(__name__)


class CreditBalanceService:
  """
  Computes spendable credits for display and pre-flight checks.

  Reads run outside any transaction, so a reservation committed between the
  account read and the pending query can make the result briefly stale.
  """

  def __init__(
    self, store: LedgerStore, identity_provider: IdentityProvider | None = None
  ):
    self.store = store
    self.identity_provider = identity_provider or StaticIdentityProvider(None)

  def _resolve_user_id(self, user_id: str | None, operation: str) -> str:
    if user_id:
      return user_id
    identity = self.identity_provider.current_user()
    if identity is None:
      raise AuthRequiredError(operation)
    return identity.user_id

  async def get_pending_credits(self, user_id: str) -> int:
    events = await self.store.query(
      Collection.USAGE_EVENTS,
      user_id=user_id,
      status=UsageStatus.PENDING.value,
    )
    return sum(int(event.get("credits_reserved") or 0) for event in events)

  async def get_credit_balance(self, user_id: str | None = None) -> CreditBalance:
    """
    Get the balance of ``user_id`` or, when omitted, of the current user.

    ``available`` is ``total`` minus the credits held by pending
    reservations. A user without an account has a zero balance.

    Raises:
        AuthRequiredError: No user id given and no current identity
    """
    user_id = self._resolve_user_id(user_id, "get_credit_balance")

    account_doc = await self.store.get(Collection.USERS, user_id)
    if account_doc is None:
      logger.debug(f"No credit account for user {user_id}")
      return CreditBalance(total=0, available=0, pending=0, last_updated=None)

    account = UserAccount.from_doc(account_doc)
    pending = await self.get_pending_credits(user_id)
    return CreditBalance(
      total=account.credit_balance,
      available=account.credit_balance - pending,
      pending=pending,
      last_updated=account.last_updated,
    )

  async def check_credits(
    self,
    operation_kind: OperationKind | str,
    params: dict[str, Any] | None = None,
  ) -> CreditCheckResponse:
    """
    Check whether the current user can afford an operation.

    Advisory only: the reservation re-checks the balance atomically.

    Raises:
        AuthRequiredError: No current identity
        InvalidOperationError: Unknown kind or malformed parameters
    """
    identity = self.identity_provider.current_user()
    if identity is None:
      raise AuthRequiredError("check_credits")

    required = get_operation_cost(operation_kind, params)
    account_doc = await self.store.get(Collection.USERS, identity.user_id)
    account = (
      UserAccount.from_doc(account_doc)
      if account_doc is not None
      else UserAccount(user_id=identity.user_id)
    )
    is_privileged = account.is_privileged or identity.is_privileged
    return CreditCheckResponse(
      has_credits=is_privileged or account.credit_balance >= required,
      required=required,
      available=account.credit_balance,
      is_privileged=is_privileged,
    )
