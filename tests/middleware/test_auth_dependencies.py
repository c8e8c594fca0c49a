"""Tests for the identity seam."""

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from creditmeter.middleware.auth import (
  Identity,
  StaticIdentityProvider,
  get_current_identity,
  require_privileged,
)


def _request(identity=None):
  state = SimpleNamespace()
  if identity is not None:
    state.identity = identity
  return SimpleNamespace(state=state)


class TestStaticIdentityProvider:
  @pytest.mark.unit
  def test_returns_fixed_identity(self):
    identity = Identity(user_id="u1")
    assert StaticIdentityProvider(identity).current_user() is identity
    assert StaticIdentityProvider(None).current_user() is None


class TestDependencies:
  @pytest.mark.unit
  def test_current_identity_from_request_state(self):
    identity = Identity(user_id="u1", is_privileged=True)
    assert get_current_identity(_request(identity)) is identity

  @pytest.mark.unit
  def test_missing_identity_is_unauthorized(self):
    with pytest.raises(HTTPException) as exc_info:
      get_current_identity(_request())

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail["code"] == "AUTH_REQUIRED"
    assert exc_info.value.detail["action"] == "sign_in"

  @pytest.mark.unit
  def test_foreign_identity_objects_are_rejected(self):
    with pytest.raises(HTTPException):
      get_current_identity(_request({"user_id": "u1"}))

  @pytest.mark.unit
  def test_require_privileged(self):
    admin = Identity(user_id="admin", is_privileged=True)
    assert require_privileged(admin) is admin

    with pytest.raises(HTTPException) as exc_info:
      require_privileged(Identity(user_id="u1"))
    assert exc_info.value.status_code == 403
