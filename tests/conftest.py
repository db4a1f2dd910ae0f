"""Shared fixtures for workbench tests."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from workbench.context import Principal, PrincipalIdentifier, RequestContext


def make_context(uid="u-admin", is_admin=True, status="active"):
    return RequestContext(
        principal=Principal(
            uid=uid,
            username=uid,
            first_name="Ada",
            last_name="Lovelace",
            is_admin=is_admin,
            user_role="admin" if is_admin else "researcher",
            status=status,
        ),
        principal_identifier=PrincipalIdentifier(uid=uid),
        authenticated=True,
        ip_address="10.0.0.1",
    )


def conditional_check_failed(operation="PutItem"):
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
        operation,
    )


@pytest.fixture
def admin_context():
    return make_context()


@pytest.fixture
def guest_context():
    return make_context(uid="u-guest", is_admin=False)


@pytest.fixture
def inactive_admin_context():
    return make_context(uid="u-inactive", status="inactive")


@pytest.fixture
def mock_dynamodb():
    """Mock DynamoDB resource behind ``workbench.db``."""
    with patch("workbench.db.boto3.Session") as mock_session:
        mock_resource = MagicMock()
        mock_table = MagicMock()

        mock_session.return_value.resource.return_value = mock_resource
        mock_resource.Table.return_value = mock_table

        yield {
            "session": mock_session,
            "resource": mock_resource,
            "table": mock_table,
        }
