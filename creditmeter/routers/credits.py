"""
Credit API endpoints.

Provides endpoints for:
- Reserving, completing and refunding credits around billable operations
- Viewing balances and pre-flight credit checks
- Viewing transaction history and the pricing table
- Granting bonus credits (privileged callers only)
"""

from fastapi import (
  APIRouter,
  Depends,
  Header,
  HTTPException,
  Path,
  Query,
  Request,
  status,
)

from ..config.credits import CreditConfig
from ..exceptions import CreditErrorCode, CreditMeterError
from ..logger import api_logger as logger
from ..middleware.auth import (
  Identity,
  StaticIdentityProvider,
  get_current_identity,
  require_privileged,
)
from ..models.api.common import ErrorResponse, create_error_response
from ..models.api.credits import (
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
from ..models.credits import OperationKind
from ..operations.credits import (
  CreditBalanceService,
  CreditGrantService,
  CreditReservationService,
  get_cost_table,
)
from ..store.base import LedgerStore

ERROR_STATUS_CODES: dict[CreditErrorCode, int] = {
  CreditErrorCode.AUTH_REQUIRED: status.HTTP_401_UNAUTHORIZED,
  CreditErrorCode.INVALID_OPERATION: 422,
  CreditErrorCode.INVALID_AMOUNT: 422,
  CreditErrorCode.INSUFFICIENT_CREDITS: status.HTTP_402_PAYMENT_REQUIRED,
  CreditErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
  CreditErrorCode.ALREADY_COMPLETED: status.HTTP_409_CONFLICT,
  CreditErrorCode.TRANSACTION_CONFLICT: status.HTTP_503_SERVICE_UNAVAILABLE,
  CreditErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

ERROR_RESPONSES = {
  401: {"description": "Authentication required", "model": ErrorResponse},
  503: {"description": "Credit ledger temporarily unavailable", "model": ErrorResponse},
}

router = APIRouter(
  prefix="/credits",
  tags=["Credits"],
  responses=ERROR_RESPONSES,
)

IDEMPOTENCY_KEY_PATH = Path(
  ..., description="Idempotency key returned by the reservation", max_length=128
)


def get_ledger_store(request: Request) -> LedgerStore:
  """Ledger store attached to the application at startup."""
  store = getattr(request.app.state, "ledger_store", None)
  if store is None:
    message, action = CreditConfig.GENERIC_ERROR
    raise create_error_response(
      status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
      detail=message,
      code=CreditErrorCode.STORE_UNAVAILABLE.value,
      action=action,
    )
  return store


def http_error(error_code: CreditErrorCode | None) -> HTTPException:
  """Map a credit error code onto an HTTP error with a user-safe message."""
  code = error_code or CreditErrorCode.STORE_UNAVAILABLE
  message, action = CreditConfig.get_user_message(code)
  return create_error_response(
    status_code=ERROR_STATUS_CODES.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
    detail=message,
    code=code.value,
    action=action,
  )


def _raise_for_error(result: OperationResult) -> None:
  if not result.success:
    raise http_error(result.error)


@router.post(
  "/reservations",
  response_model=ReservationResult,
  summary="Reserve Credits",
  description="""Reserve credits before running a billable operation.

The balance is debited immediately and a pending usage event is recorded.
Every attempt must carry an attempt id, either as `request_id` in the body or
in the `X-Idempotency-Key` header. Retrying with the same id returns the
original reservation instead of debiting again.""",
  operation_id="reserveCredits",
  responses={
    402: {"description": "Insufficient credits", "model": ErrorResponse},
    404: {"description": "No credit account for user", "model": ErrorResponse},
    422: {"description": "Unknown operation, bad parameters or missing attempt id"},
  },
)
async def reserve_credits(
  body: ReserveCreditsRequest,
  idempotency_key: str | None = Header(
    None,
    alias="X-Idempotency-Key",
    max_length=255,
    description="Attempt id, used when the body has no request_id",
  ),
  identity: Identity = Depends(get_current_identity),
  store: LedgerStore = Depends(get_ledger_store),
) -> ReservationResult:
  service = CreditReservationService(store, StaticIdentityProvider(identity))
  result = await service.reserve_credits(
    body.operation_kind,
    params=body.params,
    metadata=body.metadata,
    request_id=body.request_id or idempotency_key,
  )
  _raise_for_error(result)
  return result


@router.post(
  "/reservations/{idempotency_key}/complete",
  response_model=OperationResult,
  summary="Complete Credit Operation",
  description="""Mark a reserved operation `completed` or `failed`.

No balance change happens here. Marking an operation `failed` does not refund
it; call the refund endpoint to restore the credits.""",
  operation_id="completeCreditOperation",
  responses={
    404: {"description": "Unknown reservation", "model": ErrorResponse},
    422: {"description": "Invalid status"},
  },
)
async def complete_credit_operation(
  body: CompleteOperationRequest,
  idempotency_key: str = IDEMPOTENCY_KEY_PATH,
  identity: Identity = Depends(get_current_identity),
  store: LedgerStore = Depends(get_ledger_store),
) -> OperationResult:
  service = CreditReservationService(store, StaticIdentityProvider(identity))
  result = await service.complete_credit_operation(
    idempotency_key, body.status, error=body.error
  )
  _raise_for_error(result)
  return result


@router.post(
  "/reservations/{idempotency_key}/refund",
  response_model=OperationResult,
  summary="Refund Credits",
  description="Restore the credits of an operation that did not complete.",
  operation_id="refundCredits",
  responses={
    404: {"description": "Unknown reservation", "model": ErrorResponse},
    409: {"description": "Operation already completed", "model": ErrorResponse},
  },
)
async def refund_credits(
  body: RefundCreditsRequest,
  idempotency_key: str = IDEMPOTENCY_KEY_PATH,
  identity: Identity = Depends(get_current_identity),
  store: LedgerStore = Depends(get_ledger_store),
) -> OperationResult:
  service = CreditReservationService(store, StaticIdentityProvider(identity))
  result = await service.refund_credits(idempotency_key, body.reason)
  _raise_for_error(result)
  return result


@router.get(
  "/balance",
  response_model=CreditBalance,
  summary="Get Credit Balance",
  description="Total credits, credits held by pending reservations and the spendable remainder.",
  operation_id="getCreditBalance",
)
async def get_credit_balance(
  identity: Identity = Depends(get_current_identity),
  store: LedgerStore = Depends(get_ledger_store),
) -> CreditBalance:
  service = CreditBalanceService(store, StaticIdentityProvider(identity))
  try:
    return await service.get_credit_balance()
  except CreditMeterError as e:
    logger.error(f"Failed to get credit balance for {identity.user_id}: {e}")
    raise http_error(e.error_code)


@router.get(
  "/check",
  response_model=CreditCheckResponse,
  summary="Check Credit Requirements",
  description="Pre-flight check whether the current user can afford an operation.",
  operation_id="checkCredits",
)
async def check_credits(
  operation_kind: OperationKind = Query(..., description="Operation to price"),
  image_count: int | None = Query(None, ge=0, description="Images to generate"),
  text_length: int | None = Query(None, ge=0, description="Characters to narrate"),
  identity: Identity = Depends(get_current_identity),
  store: LedgerStore = Depends(get_ledger_store),
) -> CreditCheckResponse:
  params = {
    name: value
    for name, value in (("image_count", image_count), ("text_length", text_length))
    if value is not None
  }
  service = CreditBalanceService(store, StaticIdentityProvider(identity))
  try:
    return await service.check_credits(operation_kind, params)
  except CreditMeterError as e:
    logger.warning(f"Credit check failed for {identity.user_id}: {e}")
    raise http_error(e.error_code)


@router.get(
  "/transactions",
  response_model=list[CreditTransactionResponse],
  summary="List Credit Transactions",
  description="Newest-first audit rows for the current user.",
  operation_id="listCreditTransactions",
)
async def list_credit_transactions(
  limit: int = Query(50, ge=1, le=200, description="Maximum rows to return"),
  identity: Identity = Depends(get_current_identity),
  store: LedgerStore = Depends(get_ledger_store),
) -> list[CreditTransactionResponse]:
  service = CreditGrantService(store, StaticIdentityProvider(identity))
  try:
    return await service.get_credit_history(limit=limit)
  except CreditMeterError as e:
    logger.error(f"Failed to list transactions for {identity.user_id}: {e}")
    raise http_error(e.error_code)


@router.get(
  "/costs",
  response_model=list[OperationCostResponse],
  summary="Get Operation Costs",
  description="Credit pricing for every billable operation.",
  operation_id="getOperationCosts",
)
async def get_operation_costs() -> list[OperationCostResponse]:
  return [OperationCostResponse(**row) for row in get_cost_table()]


@router.post(
  "/bonus",
  response_model=OperationResult,
  summary="Grant Bonus Credits",
  description="Grant promotional or administrative credits to a user.",
  operation_id="addBonusCredits",
  responses={
    403: {"description": "Privileged access required", "model": ErrorResponse},
    404: {"description": "No credit account for user", "model": ErrorResponse},
  },
)
async def add_bonus_credits(
  body: BonusCreditsRequest,
  identity: Identity = Depends(require_privileged),
  store: LedgerStore = Depends(get_ledger_store),
) -> OperationResult:
  service = CreditGrantService(store, StaticIdentityProvider(identity))
  result = await service.add_bonus_credits(
    body.user_id,
    body.amount,
    body.reason,
    metadata={**body.metadata, "granted_by": identity.user_id},
  )
  _raise_for_error(result)
  logger.info(f"{identity.user_id} granted {body.amount} bonus credits to {body.user_id}")
  return result
