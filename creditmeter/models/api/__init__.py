"""Pydantic request/response models for the credit API."""

from .common import ErrorResponse, create_error_response
from .credits import (
  BonusCreditsRequest,
  CompleteOperationRequest,
  CreditBalance,
  CreditCheckResponse,
  CreditTransactionResponse,
  OperationCostResponse,
  OperationResult,
  RefundCreditsRequest,
  ReservationResult,
  ReserveCreditsRequest,
)

__all__ = [
  "ErrorResponse",
  "create_error_response",
  "BonusCreditsRequest",
  "CompleteOperationRequest",
  "CreditBalance",
  "CreditCheckResponse",
  "CreditTransactionResponse",
  "OperationCostResponse",
  "OperationResult",
  "RefundCreditsRequest",
  "ReservationResult",
  "ReserveCreditsRequest",
]
