"""Tests for DataSourceBucketService."""

from unittest.mock import MagicMock

import pytest

from workbench.authorization import AuthorizationService
from workbench.data_source_buckets import DataSourceBucketService
from workbench.db import DynamoTable
from workbench.errors import ServiceError

from conftest import conditional_check_failed

ACCOUNT = {"id": "123456789012", "qualifier": "swb-abc"}

RAW_BUCKET = {
    "name": "genomics-raw",
    "region": "us-east-1",
    "aws_partition": "aws",
    "access": "roles",
    "sse": "s3",
}


@pytest.fixture
def audit_writer():
    return MagicMock()


@pytest.fixture
def service(mock_dynamodb, audit_writer):
    table = DynamoTable("test-data-sources", region="us-west-2")
    return DataSourceBucketService(table, AuthorizationService(), audit_writer)


def test_register_bucket(service, admin_context, mock_dynamodb, audit_writer):
    entity = service.register(admin_context, ACCOUNT, RAW_BUCKET)

    kwargs = mock_dynamodb["table"].put_item.call_args.kwargs
    item = kwargs["Item"]
    assert kwargs["ConditionExpression"] == "attribute_not_exists(pk) AND attribute_not_exists(sk)"
    assert item["pk"] == "ACT#123456789012"
    assert item["sk"] == "BUK#genomics-raw"
    assert item["account_id"] == "123456789012"
    assert item["rev"] == 0
    assert entity["name"] == "genomics-raw"
    assert audit_writer.write_and_forget.call_args.args[1]["action"] == "register-data-source-bucket"


def test_register_bucket_already_registered(service, admin_context, mock_dynamodb):
    mock_dynamodb["table"].put_item.side_effect = conditional_check_failed()

    with pytest.raises(ServiceError) as exc_info:
        service.register(admin_context, ACCOUNT, RAW_BUCKET)

    assert exc_info.value.code == "already_exists"
    assert exc_info.value.message == 'bucket "genomics-raw" already registered'


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "x" * 66},
        {"sse": "kms"},
        {"sse": "kms", "kms_arn": "not-an-arn"},
        {"kms_arn": ""},
    ],
)
def test_register_bucket_invalid(service, admin_context, overrides, mock_dynamodb):
    with pytest.raises(ServiceError) as exc_info:
        service.register(admin_context, ACCOUNT, {**RAW_BUCKET, **overrides})
    assert exc_info.value.code == "bad_request"
    mock_dynamodb["table"].put_item.assert_not_called()


def test_find_bucket(service, admin_context, mock_dynamodb):
    mock_dynamodb["table"].get_item.return_value = {
        "Item": {"pk": "ACT#123456789012", "sk": "BUK#genomics-raw", "region": "us-east-1"}
    }
    bucket = service.find(admin_context, "123456789012", "genomics-raw")
    assert bucket == {"account_id": "123456789012", "name": "genomics-raw", "region": "us-east-1"}


def test_must_find_missing_bucket(service, admin_context, mock_dynamodb):
    mock_dynamodb["table"].get_item.return_value = {}
    with pytest.raises(ServiceError) as exc_info:
        service.must_find(admin_context, "123456789012", "nope")
    assert exc_info.value.code == "not_found"


def test_list_by_account(service, admin_context, mock_dynamodb):
    mock_dynamodb["table"].query.return_value = {
        "Items": [{"pk": "ACT#123456789012", "sk": "BUK#a"}, {"pk": "ACT#123456789012", "sk": "BUK#b"}]
    }
    assert [b["name"] for b in service.list_by_account(admin_context, "123456789012")] == ["a", "b"]
