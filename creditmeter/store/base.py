"""
Ledger store interface.

The engine never reads-then-writes a balance outside ``transaction``. A
transaction body receives a ``LedgerTransaction``: reads record the version
they saw, writes are buffered, and the store validates every version read at
commit. A lost race raises ``TransactionConflictError`` inside the adapter and
the whole body is re-run, so two concurrent debits can never both apply
against the same stale balance.

Bodies return either a value or an ``Abort``. An ``Abort`` discards the
buffered writes and is handed back to the caller unchanged.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from ..config import env
from ..exceptions import CreditErrorCode, TransactionConflictError
from ..logger import get_logger
from ..models.credits import Collection

logger = get_logger(__name__)

Document = dict[str, Any]
T = TypeVar("T")


@dataclass(frozen=True)
class Abort:
  """Explicit rollback outcome of a transaction body."""

  error_code: CreditErrorCode
  details: dict[str, Any] = field(default_factory=dict)


class LedgerTransaction(ABC):
  """Read/write handle passed to a transaction body."""

  @abstractmethod
  async def get(self, collection: Collection, key: str) -> Document | None:
    """Read a document and remember the version seen."""

  @abstractmethod
  def put(self, collection: Collection, key: str, doc: Document) -> None:
    """Buffer a full-document write, applied only if the commit validates."""


TransactionBody = Callable[[LedgerTransaction], Awaitable[Any]]


class LedgerStore(ABC):
  """Transactional document store holding users, usage events and audit rows."""

  def __init__(
    self,
    max_retries: int | None = None,
    retry_delay_ms: int | None = None,
  ):
    self.max_retries = max(
      1, max_retries if max_retries is not None else env.CREDIT_TRANSACTION_MAX_RETRIES
    )
    self.retry_delay_ms = (
      retry_delay_ms
      if retry_delay_ms is not None
      else env.CREDIT_TRANSACTION_RETRY_DELAY_MS
    )

  async def transaction(self, fn: TransactionBody) -> Any:
    """
    Run ``fn`` atomically, retrying the whole body on optimistic conflicts.

    Returns:
        Whatever ``fn`` returned, including an ``Abort``.

    Raises:
        TransactionConflictError: Every attempt lost to a concurrent writer.
        StoreUnavailableError: The backend could not be reached.
    """
    for attempt in range(1, self.max_retries + 1):
      try:
        return await self._run_once(fn)
      except TransactionConflictError:
        if attempt == self.max_retries:
          logger.warning(f"Transaction conflict not resolved after {attempt} attempts")
          raise TransactionConflictError(attempts=attempt)
        logger.debug(f"Transaction conflict on attempt {attempt}, retrying")
        if self.retry_delay_ms:
          await asyncio.sleep(self.retry_delay_ms * (2 ** (attempt - 1)) / 1000)

  @abstractmethod
  async def _run_once(self, fn: TransactionBody) -> Any:
    """Run one attempt; raise ``TransactionConflictError`` if the commit loses."""

  @abstractmethod
  async def get(self, collection: Collection, key: str) -> Document | None:
    """Read a document outside any transaction."""

  @abstractmethod
  async def query(self, collection: Collection, **filters: Any) -> list[Document]:
    """Return all documents whose fields equal every filter value."""

  @abstractmethod
  async def put(self, collection: Collection, key: str, doc: Document) -> None:
    """Write a document outside any transaction (last write wins)."""

  @abstractmethod
  async def expired_reservations(
    self, before: datetime, created_before: datetime, limit: int
  ) -> list[Document]:
    """
    Pending usage events that expired at or before ``before``, oldest first.

    Events written without ``expires_at`` count as expired once
    ``created_at <= created_before``. At most ``limit`` documents are returned.
    """

  async def close(self) -> None:
    """Release backend resources."""
