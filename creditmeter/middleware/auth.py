"""
Identity seam between the credit engine and the upstream auth layer.

Authentication itself lives outside this service. The upstream layer stores
an ``Identity`` on ``request.state.identity``; services receive it through an
``IdentityProvider`` so they can be driven from HTTP handlers, jobs and tests
alike.
"""

from dataclasses import dataclass
from typing import Protocol

from fastapi import Depends, Request, status

from ..config.credits import CreditConfig
from ..exceptions import CreditErrorCode
from ..models.api.common import create_error_response


@dataclass(frozen=True)
class Identity:
  user_id: str
  is_privileged: bool = False


class IdentityProvider(Protocol):
  def current_user(self) -> Identity | None: ...


class StaticIdentityProvider:
  """Provider for a fixed identity (request handlers, jobs, tests)."""

  def __init__(self, identity: Identity | None):
    self._identity = identity

  def current_user(self) -> Identity | None:
    return self._identity


def get_current_identity(request: Request) -> Identity:
  """FastAPI dependency returning the authenticated identity or 401."""
  identity = getattr(request.state, "identity", None)
  if not isinstance(identity, Identity):
    message, action = CreditConfig.get_user_message(CreditErrorCode.AUTH_REQUIRED)
    raise create_error_response(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail=message,
      code=CreditErrorCode.AUTH_REQUIRED.value,
      action=action,
    )
  return identity


def require_privileged(identity: Identity = Depends(get_current_identity)) -> Identity:
  """FastAPI dependency restricting an endpoint to privileged identities."""
  if not identity.is_privileged:
    raise create_error_response(
      status_code=status.HTTP_403_FORBIDDEN,
      detail="Privileged access required",
      code="FORBIDDEN",
    )
  return identity
