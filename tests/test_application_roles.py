"""Tests for application role allocation and status."""

from unittest.mock import patch

import pytest

from workbench.application_roles import (
    ApplicationRoleService,
    add_study,
    max_reached,
    new_app_role_entity,
    to_app_role_entity,
)
from workbench.authorization import AuthorizationService
from workbench.db import DynamoTable
from workbench.errors import ServiceError

from conftest import conditional_check_failed

ACCOUNT = {"id": "123456789012", "qualifier": "swb-abc", "main_region": "us-east-1"}
BUCKET = {"name": "genomics-raw", "region": "us-east-1", "access": "roles", "kms_arn": None}
ROLE_ARN = "arn:aws:iam::123456789012:role/swb-abc-app-1000"


def make_study(study_id="study-1", folder="cohort-a/", **overrides):
    study = {
        "id": study_id,
        "folder": folder,
        "account_id": "123456789012",
        "bucket": "genomics-raw",
        "bucket_access": "roles",
        "aws_partition": "aws",
        "qualifier": "swb-abc",
        "region": "us-east-1",
        "kms_scope": "none",
        "access_type": "readonly",
    }
    study.update(overrides)
    return study


def role_item(studies, status=None):
    item = {
        "pk": "APP#123456789012",
        "sk": f"APP#genomics-raw#{ROLE_ARN}",
        "name": "swb-abc-app-1000",
        "bucket": "genomics-raw",
        "aws_partition": "aws",
        "qualifier": "swb-abc",
        "studies": studies,
        "rev": 1,
    }
    if status:
        item["status"] = status
    return item


@pytest.fixture
def service(mock_dynamodb):
    table = DynamoTable("test-data-sources", region="us-west-2")
    return ApplicationRoleService(table, AuthorizationService())


def test_to_app_role_entity_decodes_key():
    entity = to_app_role_entity(role_item({}))
    assert entity["account_id"] == "123456789012"
    assert entity["arn"] == ROLE_ARN
    assert entity["status"] == "reachable"
    assert "pk" not in entity


def test_new_app_role_entity():
    with patch("workbench.application_roles.time.time", return_value=1700000000.5):
        role = new_app_role_entity(ACCOUNT, BUCKET, make_study())

    assert role["name"] == "swb-abc-app-1700000000500"
    assert role["arn"] == "arn:aws:iam::123456789012:role/swb-abc-app-1700000000500"
    assert role["boundary_policy_arn"] == "arn:aws:iam::123456789012:policy/swb-abc-app-1700000000500"
    assert role["status"] == "pending"
    assert role["main_region"] == "us-east-1"
    assert role["studies"]["study-1"]["folder"] == "cohort-a/"


def test_max_reached_grows_with_studies():
    role = new_app_role_entity(ACCOUNT, BUCKET, make_study())
    assert not max_reached(role)
    for i in range(200):
        add_study(role, make_study(f"study-{i}", folder=f"cohort-with-a-long-folder-name-{i}/"))
    assert max_reached(role)


class TestAllocateRole:
    def test_non_role_bucket_access(self, service, admin_context, mock_dynamodb):
        assert service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study(bucket_access="direct")) is None
        mock_dynamodb["table"].query.assert_not_called()

    def test_creates_role_when_none_exist(self, service, admin_context, mock_dynamodb):
        mock_dynamodb["table"].query.return_value = {"Items": []}

        role = service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study())

        kwargs = mock_dynamodb["table"].put_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_not_exists(pk) AND attribute_not_exists(sk)"
        assert kwargs["Item"]["pk"] == "APP#123456789012"
        assert kwargs["Item"]["sk"] == f"APP#genomics-raw#{role['arn']}"
        assert kwargs["Item"]["status"] == "pending"
        assert role["status"] == "pending"
        assert "study-1" in role["studies"]

    def test_reuses_role_holding_study(self, service, admin_context, mock_dynamodb):
        mock_dynamodb["table"].query.return_value = {
            "Items": [role_item({"study-1": {"folder": "cohort-a/", "access_type": "readonly"}})]
        }

        role = service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study())

        assert role["arn"] == ROLE_ARN
        mock_dynamodb["table"].put_item.assert_not_called()
        mock_dynamodb["table"].update_item.assert_not_called()

    def test_adds_study_to_role_with_room(self, service, admin_context, mock_dynamodb):
        existing = {"study-0": {"folder": "cohort-0/", "access_type": "readonly"}}
        mock_dynamodb["table"].query.return_value = {"Items": [role_item(existing)]}
        mock_dynamodb["table"].update_item.return_value = {
            "Attributes": role_item({**existing, "study-1": {"folder": "cohort-a/"}})
        }

        role = service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study())

        kwargs = mock_dynamodb["table"].update_item.call_args.kwargs
        assert kwargs["ExpressionAttributeValues"][":rev"] == 1
        assert set(role["studies"]) == {"study-0", "study-1"}
        mock_dynamodb["table"].put_item.assert_not_called()

    def test_stale_role_rev_is_outdated_update(self, service, admin_context, mock_dynamodb):
        existing = {"study-0": {"folder": "cohort-0/", "access_type": "readonly"}}
        mock_dynamodb["table"].query.return_value = {"Items": [role_item(existing)]}
        mock_dynamodb["table"].update_item.side_effect = conditional_check_failed("UpdateItem")

        with pytest.raises(ServiceError) as exc_info:
            service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study())

        assert exc_info.value.code == "outdated_update_attempt"
        assert exc_info.value.status == 409
        mock_dynamodb["table"].put_item.assert_not_called()

    def test_new_role_when_existing_is_full(self, service, admin_context, mock_dynamodb):
        full = {
            f"study-x{i}": {"folder": f"cohort-with-a-long-folder-name-{i}/", "access_type": "readonly"}
            for i in range(200)
        }
        mock_dynamodb["table"].query.return_value = {"Items": [role_item(full)]}

        role = service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study())

        assert role["arn"] != ROLE_ARN
        assert list(role["studies"]) == ["study-1"]
        mock_dynamodb["table"].put_item.assert_called_once()

    def test_ignores_roles_of_other_buckets(self, service, admin_context, mock_dynamodb):
        other = role_item({})
        other["bucket"] = "other-bucket"
        mock_dynamodb["table"].query.return_value = {"Items": [other]}

        role = service.allocate_role(admin_context, ACCOUNT, BUCKET, make_study())
        assert role["bucket"] == "genomics-raw"
        mock_dynamodb["table"].put_item.assert_called_once()


class TestUpdateStatus:
    def test_reachable(self, service, admin_context, mock_dynamodb):
        mock_dynamodb["table"].update_item.return_value = {"Attributes": role_item({})}
        role = to_app_role_entity(role_item({}, status="pending"))

        updated = service.update_status(admin_context, role, "reachable")

        kwargs = mock_dynamodb["table"].update_item.call_args.kwargs
        assert kwargs["Key"] == {"pk": "APP#123456789012", "sk": f"APP#genomics-raw#{ROLE_ARN}"}
        assert "REMOVE" in kwargs["UpdateExpression"]
        assert updated["status"] == "reachable"

    def test_invalid_status(self, service, admin_context):
        role = to_app_role_entity(role_item({}))
        with pytest.raises(ServiceError) as exc_info:
            service.update_status(admin_context, role, "offline")
        assert exc_info.value.code == "bad_request"
