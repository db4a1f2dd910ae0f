"""Tests for DataSourceRegistrationService."""

from unittest.mock import MagicMock

import pytest

from workbench.application_roles import ApplicationRoleService
from workbench.authorization import AuthorizationService
from workbench.data_source_accounts import DataSourceAccountService
from workbench.data_source_buckets import DataSourceBucketService
from workbench.data_source_registration import DataSourceRegistrationService
from workbench.errors import ServiceError, already_exists, internal_error, not_found
from workbench.locks import LockService
from workbench.studies import StudyService

ACCOUNT = {"id": "123456789012", "qualifier": "swb-abc", "status": "pending"}
BUCKET = {"account_id": "123456789012", "name": "genomics-raw", "access": "roles"}
RAW_BUCKET = {"name": "genomics-raw", "region": "us-east-1", "aws_partition": "aws", "access": "roles", "sse": "s3"}


@pytest.fixture
def deps():
    lock_service = MagicMock(spec=LockService)
    lock_service.try_write_lock_and_run.side_effect = lambda lock_id, fn: fn()
    return {
        "account_service": MagicMock(spec=DataSourceAccountService),
        "bucket_service": MagicMock(spec=DataSourceBucketService),
        "study_service": MagicMock(spec=StudyService),
        "application_role_service": MagicMock(spec=ApplicationRoleService),
        "lock_service": lock_service,
        "audit_writer": MagicMock(),
    }


@pytest.fixture
def service(deps):
    return DataSourceRegistrationService(authorization=AuthorizationService(), **deps)


class TestRegisterBucket:
    def test_only_admins(self, service, deps, guest_context):
        with pytest.raises(ServiceError) as exc_info:
            service.register_bucket(guest_context, "123456789012", RAW_BUCKET)
        assert exc_info.value.code == "forbidden"
        deps["account_service"].must_find.assert_not_called()

    def test_account_must_exist(self, service, deps, admin_context):
        deps["account_service"].must_find.side_effect = not_found("missing", safe=True)
        with pytest.raises(ServiceError) as exc_info:
            service.register_bucket(admin_context, "123456789012", RAW_BUCKET)
        assert exc_info.value.code == "not_found"
        deps["bucket_service"].register.assert_not_called()

    def test_bucket_already_registered(self, service, deps, admin_context):
        deps["account_service"].must_find.return_value = ACCOUNT
        deps["bucket_service"].register.side_effect = already_exists("dup", safe=True)
        with pytest.raises(ServiceError) as exc_info:
            service.register_bucket(admin_context, "123456789012", RAW_BUCKET)
        assert exc_info.value.code == "already_exists"

    def test_registers(self, service, deps, admin_context):
        deps["account_service"].must_find.return_value = ACCOUNT
        deps["bucket_service"].register.return_value = BUCKET

        assert service.register_bucket(admin_context, "123456789012", RAW_BUCKET) == BUCKET
        deps["bucket_service"].register.assert_called_once_with(admin_context, ACCOUNT, RAW_BUCKET)


def test_register_account_delegates(service, deps, admin_context):
    deps["account_service"].register.return_value = ACCOUNT
    assert service.register_account(admin_context, {"id": "123456789012"}) == ACCOUNT


class TestRegisterStudy:
    def test_registers_under_account_lock(self, service, deps, admin_context):
        study = {"id": "study-1", "status": "pending"}
        deps["account_service"].must_find.return_value = ACCOUNT
        deps["bucket_service"].must_find.return_value = BUCKET
        deps["study_service"].register.return_value = study
        deps["application_role_service"].allocate_role.return_value = {"arn": "arn:role"}
        deps["study_service"].update_app_role_arn.return_value = {**study, "app_role_arn": "arn:role"}

        result = service.register_study(admin_context, "123456789012", "genomics-raw", {"id": "study-1"})

        assert result["app_role_arn"] == "arn:role"
        assert deps["lock_service"].try_write_lock_and_run.call_args.args[0] == "123456789012-account-studies"
        deps["study_service"].update_app_role_arn.assert_called_once_with(admin_context, "study-1", "arn:role")
        event = deps["audit_writer"].write_and_forget.call_args.args[1]
        assert event["action"] == "register-data-source-study"

    def test_no_role_for_non_role_buckets(self, service, deps, admin_context):
        deps["account_service"].must_find.return_value = ACCOUNT
        deps["bucket_service"].must_find.return_value = BUCKET
        deps["study_service"].register.return_value = {"id": "study-1"}
        deps["application_role_service"].allocate_role.return_value = None

        service.register_study(admin_context, "123456789012", "genomics-raw", {"id": "study-1"})
        deps["study_service"].update_app_role_arn.assert_not_called()

    def test_lock_not_obtained(self, service, deps, admin_context):
        deps["lock_service"].try_write_lock_and_run.side_effect = internal_error("Could not obtain a lock", safe=True)
        with pytest.raises(ServiceError) as exc_info:
            service.register_study(admin_context, "123456789012", "genomics-raw", {"id": "study-1"})
        assert exc_info.value.code == "internal_error"
        deps["study_service"].register.assert_not_called()

    def test_only_admins(self, service, deps, guest_context):
        with pytest.raises(ServiceError):
            service.register_study(guest_context, "123456789012", "genomics-raw", {"id": "study-1"})
        deps["lock_service"].try_write_lock_and_run.assert_not_called()
