"""Credit system API models.

This module contains Pydantic models for the reservation lifecycle, balance
queries, credit grants and transaction history.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ...config.credits import CreditConfig
from ...exceptions import CreditErrorCode
from ..credits import CreditTransaction, OperationKind, UsageStatus


class OperationResult(BaseModel):
  """Outcome of complete/refund/grant operations."""

  success: bool
  error: CreditErrorCode | None = None
  message: str | None = Field(None, description="User-safe explanation")
  action: str | None = Field(
    None, description="Suggested follow-up: purchase_credits, retry, ..."
  )

  @classmethod
  def failure(cls, error: CreditErrorCode, **kwargs: Any):
    message, action = CreditConfig.get_user_message(error)
    return cls(success=False, error=error, message=message, action=action, **kwargs)


class ReservationResult(OperationResult):
  """Outcome of a credit reservation."""

  idempotency_key: str = ""
  credits_reserved: int = 0
  replayed: bool = Field(
    False, description="True when the key was already reserved and nothing was debited"
  )


class CreditBalance(BaseModel):
  """Spendable balance view for a user."""

  total: int
  available: int
  pending: int = Field(..., description="Credits held by pending reservations")
  last_updated: datetime | None = None


class CreditCheckResponse(BaseModel):
  """Pre-flight check before starting a billable operation."""

  has_credits: bool
  required: int
  available: int
  is_privileged: bool = False


class OperationCostResponse(BaseModel):
  operation_kind: OperationKind
  base_cost: int
  scaling: str
  param: str | None = None
  unit_size: int = 1


class CreditTransactionResponse(BaseModel):
  """Credit transaction response model."""

  id: str
  type: str
  amount: int
  description: str
  timestamp: datetime
  idempotency_key: str | None = None
  metadata: dict[str, Any] = Field(default_factory=dict)

  @classmethod
  def from_transaction(cls, transaction: CreditTransaction) -> "CreditTransactionResponse":
    return cls(
      id=transaction.id,
      type=transaction.type.value,
      amount=transaction.amount,
      description=transaction.description,
      timestamp=transaction.timestamp,
      idempotency_key=transaction.idempotency_key,
      metadata=transaction.metadata,
    )


class ReserveCreditsRequest(BaseModel):
  """Request to reserve credits before running an operation."""

  operation_kind: OperationKind
  params: dict[str, Any] = Field(default_factory=dict)
  metadata: dict[str, Any] = Field(
    default_factory=dict, description="Opaque context such as project or scene id"
  )
  request_id: str | None = Field(
    None,
    description=(
      "Caller-supplied attempt id; retries must reuse it. Required unless the "
      "X-Idempotency-Key header is sent"
    ),
    min_length=1,
    max_length=255,
  )


class CompleteOperationRequest(BaseModel):
  status: UsageStatus
  error: str | None = Field(None, max_length=2000)


class RefundCreditsRequest(BaseModel):
  reason: str = Field(..., min_length=1, max_length=500)


class BonusCreditsRequest(BaseModel):
  user_id: str = Field(..., min_length=1, max_length=128)
  amount: int = Field(..., gt=0)
  reason: str = Field(..., min_length=1, max_length=500)
  metadata: dict[str, Any] = Field(default_factory=dict)
