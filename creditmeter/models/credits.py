"""
Ledger records for the credit metering engine.

The store persists plain documents (dicts); these dataclasses are the typed
view the services work with. ``to_doc``/``from_doc`` convert between the two,
flattening enums to their string values.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any


class Collection(str, Enum):
  """Collections held by the ledger store."""

  USERS = "users"
  USAGE_EVENTS = "usage_events"
  CREDIT_TRANSACTIONS = "credit_transactions"


class OperationKind(str, Enum):
  """Billable AI operations."""

  STORY = "story"
  IMAGE = "image"
  NARRATION = "narration"
  VIDEO = "video"
  POLISH = "polish"
  MUSIC = "music"


class UsageStatus(str, Enum):
  """Lifecycle of a usage event."""

  PENDING = "pending"
  COMPLETED = "completed"
  FAILED = "failed"

  @property
  def is_terminal(self) -> bool:
    return self is not UsageStatus.PENDING


class CreditTransactionType(str, Enum):
  """Types of credit transactions."""

  PURCHASE = "purchase"  # Paid credit pack
  USAGE = "usage"  # Debit at reservation time
  REFUND = "refund"  # Reversal of a reservation
  BONUS = "bonus"  # Signup grants, promotions, referrals


def _known_fields(cls, doc: dict[str, Any]) -> dict[str, Any]:
  names = {f.name for f in fields(cls)}
  return {k: v for k, v in doc.items() if k in names}


@dataclass
class UserAccount:
  """Balance document for one user."""

  user_id: str
  credit_balance: int = 0
  is_privileged: bool = False
  last_updated: datetime | None = None

  def to_doc(self) -> dict[str, Any]:
    return asdict(self)

  @classmethod
  def from_doc(cls, doc: dict[str, Any]) -> "UserAccount":
    return cls(**_known_fields(cls, doc))


@dataclass
class UsageEvent:
  """
  Durable record of one reservation attempt.

  ``charged`` records whether the balance was actually debited, so a refund
  restores exactly what was taken (nothing for privileged accounts).
  """

  idempotency_key: str
  user_id: str
  operation_kind: OperationKind
  credits_reserved: int
  status: UsageStatus = UsageStatus.PENDING
  created_at: datetime | None = None
  completed_at: datetime | None = None
  expires_at: datetime | None = None
  charged: bool = True
  refunded: bool = False
  refund_reason: str | None = None
  refunded_at: datetime | None = None
  error: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)

  def to_doc(self) -> dict[str, Any]:
    doc = asdict(self)
    doc["operation_kind"] = self.operation_kind.value
    doc["status"] = self.status.value
    return doc

  @classmethod
  def from_doc(cls, doc: dict[str, Any]) -> "UsageEvent":
    values = _known_fields(cls, doc)
    values["operation_kind"] = OperationKind(values["operation_kind"])
    values["status"] = UsageStatus(values.get("status", UsageStatus.PENDING))
    values["metadata"] = dict(values.get("metadata") or {})
    return cls(**values)


@dataclass
class CreditTransaction:
  """Append-only audit row for a balance mutation."""

  id: str
  user_id: str
  type: CreditTransactionType
  amount: int  # Positive for credits added, negative for credits used
  description: str
  timestamp: datetime
  idempotency_key: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)

  def to_doc(self) -> dict[str, Any]:
    doc = asdict(self)
    doc["type"] = self.type.value
    return doc

  @classmethod
  def from_doc(cls, doc: dict[str, Any]) -> "CreditTransaction":
    values = _known_fields(cls, doc)
    values["type"] = CreditTransactionType(values["type"])
    values["metadata"] = dict(values.get("metadata") or {})
    return cls(**values)
