"""Tests for condition based authorization."""

import pytest

from workbench.authorization import (
    ADMIN_CONDITIONS,
    AuthorizationRequest,
    AuthorizationService,
    allow,
    allow_if_active,
    allow_if_admin,
    deny,
)
from workbench.context import RequestContext
from workbench.errors import ServiceError


REQUEST = AuthorizationRequest(action="update")


def test_allow_if_active(admin_context, inactive_admin_context):
    assert allow_if_active(admin_context, REQUEST).allowed
    assert not allow_if_active(inactive_admin_context, REQUEST).allowed


def test_allow_if_admin(admin_context, guest_context):
    assert allow_if_admin(admin_context, REQUEST).allowed
    assert not allow_if_admin(guest_context, REQUEST).allowed


def test_missing_principal_is_denied():
    anonymous = RequestContext()
    service = AuthorizationService()
    assert not service.authorize(anonymous, REQUEST, ADMIN_CONDITIONS).allowed


def test_no_conditions_is_implicit_deny(admin_context):
    result = AuthorizationService().authorize(admin_context, REQUEST, [])
    assert not result.allowed


def test_deny_short_circuits(admin_context):
    calls = []

    def denying(ctx, req):
        calls.append("deny")
        return deny("nope")

    def allowing(ctx, req):
        calls.append("allow")
        return allow()

    result = AuthorizationService().authorize(admin_context, REQUEST, [denying, allowing])
    assert not result.allowed
    assert result.reason == "nope"
    assert calls == ["deny"]


def test_assert_authorized_raises_forbidden(guest_context):
    with pytest.raises(ServiceError) as exc_info:
        AuthorizationService().assert_authorized(guest_context, REQUEST, ADMIN_CONDITIONS)

    assert exc_info.value.code == "forbidden"
    assert exc_info.value.status == 403
    assert exc_info.value.safe
    assert exc_info.value.message == "You are not authorized to perform this operation"
