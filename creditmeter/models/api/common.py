"""Common API models and error helpers shared by all routers."""

from datetime import datetime, timezone

from fastapi import HTTPException
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
  """Standard error body returned in ``HTTPException.detail``."""

  detail: str = Field(..., description="Human-readable, user-safe message")
  code: str | None = Field(None, description="Machine-readable error code")
  action: str | None = Field(
    None, description="Suggested follow-up", examples=["purchase_credits"]
  )
  timestamp: datetime


def create_error_response(
  status_code: int,
  detail: str,
  code: str | None = None,
  action: str | None = None,
) -> HTTPException:
  """
  Create a consistent error response using the ErrorResponse model.

  Args:
      status_code: HTTP status code
      detail: Human-readable error message
      code: Machine-readable error code
      action: Suggested follow-up for the client

  Returns:
      HTTPException with ErrorResponse content
  """
  error = ErrorResponse(
    detail=detail,
    code=code,
    action=action,
    timestamp=datetime.now(timezone.utc),
  )
  return HTTPException(
    status_code=status_code, detail=error.model_dump(mode="json", exclude_none=True)
  )
