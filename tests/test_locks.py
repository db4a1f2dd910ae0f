"""Tests for DynamoDB write locks."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from workbench.db import DynamoTable
from workbench.errors import ServiceError
from workbench.locks import LockService

from conftest import conditional_check_failed


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def lock_service(mock_dynamodb, sleeps):
    table = DynamoTable("test-locks", region="us-west-2")
    return LockService(table, sleep=sleeps.append)


def test_obtain_write_lock(lock_service, mock_dynamodb):
    assert lock_service.obtain_write_lock("acct-1", expires_in=25) == "acct-1"

    kwargs = mock_dynamodb["table"].put_item.call_args.kwargs
    assert kwargs["ConditionExpression"] == "attribute_not_exists(id) OR #ttl < :now"
    assert kwargs["ExpressionAttributeNames"] == {"#ttl": "ttl"}
    now = kwargs["ExpressionAttributeValues"][":now"]
    assert kwargs["Item"]["ttl"] == now + 25


def test_obtain_write_lock_held(lock_service, mock_dynamodb):
    mock_dynamodb["table"].put_item.side_effect = conditional_check_failed()
    assert lock_service.obtain_write_lock("acct-1") is None


def test_obtain_write_lock_other_error(lock_service, mock_dynamodb):
    mock_dynamodb["table"].put_item.side_effect = ClientError(
        {"Error": {"Code": "InternalServerError"}}, "PutItem"
    )
    with pytest.raises(ClientError):
        lock_service.obtain_write_lock("acct-1")


def test_try_write_lock_retries_with_sleep(lock_service, mock_dynamodb, sleeps):
    mock_dynamodb["table"].put_item.side_effect = [
        conditional_check_failed(),
        conditional_check_failed(),
        {},
    ]
    assert lock_service.try_write_lock("acct-1", attempts_count=5) == "acct-1"
    assert sleeps == [1, 1]


def test_try_write_lock_gives_up(lock_service, mock_dynamodb, sleeps):
    mock_dynamodb["table"].put_item.side_effect = conditional_check_failed()
    assert lock_service.try_write_lock("acct-1", attempts_count=3) is None
    assert mock_dynamodb["table"].put_item.call_count == 3
    assert len(sleeps) == 2


def test_try_write_lock_and_run_releases(lock_service, mock_dynamodb):
    fn = MagicMock(return_value="done")
    assert lock_service.try_write_lock_and_run("acct-1", fn) == "done"

    fn.assert_called_once()
    kwargs = mock_dynamodb["table"].delete_item.call_args.kwargs
    assert kwargs["Key"] == {"id": "acct-1"}
    assert kwargs["ConditionExpression"] == "attribute_exists(id)"


def test_try_write_lock_and_run_releases_on_error(lock_service, mock_dynamodb):
    def fail():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        lock_service.try_write_lock_and_run("acct-1", fail)
    mock_dynamodb["table"].delete_item.assert_called_once()


def test_try_write_lock_and_run_without_lock(lock_service, mock_dynamodb):
    mock_dynamodb["table"].put_item.side_effect = conditional_check_failed()
    fn = MagicMock()

    with pytest.raises(ServiceError) as exc_info:
        lock_service.try_write_lock_and_run("acct-1", fn, attempts_count=2)

    assert exc_info.value.code == "internal_error"
    assert exc_info.value.message == "Could not obtain a lock"
    fn.assert_not_called()
    mock_dynamodb["table"].delete_item.assert_not_called()


def test_release_ignores_missing_lock(lock_service, mock_dynamodb):
    mock_dynamodb["table"].delete_item.side_effect = conditional_check_failed("DeleteItem")
    lock_service.release_write_lock("acct-1")
