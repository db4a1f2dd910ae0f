"""Registration of accounts, buckets and studies as one workflow."""

from __future__ import annotations

import logging
from typing import Any, Dict

from workbench.application_roles import ApplicationRoleService
from workbench.audit import AuditWriterService
from workbench.authorization import ADMIN_CONDITIONS, AuthorizationRequest, AuthorizationService
from workbench.context import RequestContext
from workbench.data_source_accounts import DataSourceAccountService
from workbench.data_source_buckets import DataSourceBucketService
from workbench.locks import LockService
from workbench.studies import StudyService

LOGGER = logging.getLogger("workbench.data_source_registration")


class DataSourceRegistrationService:
    """Entry point used by the API to register data sources."""

    def __init__(
        self,
        account_service: DataSourceAccountService,
        bucket_service: DataSourceBucketService,
        study_service: StudyService,
        application_role_service: ApplicationRoleService,
        lock_service: LockService,
        authorization: AuthorizationService,
        audit_writer: AuditWriterService,
    ):
        self.account_service = account_service
        self.bucket_service = bucket_service
        self.study_service = study_service
        self.application_role_service = application_role_service
        self.lock_service = lock_service
        self.authorization = authorization
        self.audit_writer = audit_writer

    def register_account(self, request_context: RequestContext, raw_data: Dict[str, Any]) -> Dict[str, Any]:
        return self.account_service.register(request_context, raw_data)

    def register_bucket(
        self,
        request_context: RequestContext,
        account_id: str,
        raw_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Register a bucket under an existing account.

        Raises:
            ServiceError: ``forbidden`` for non admins, ``not_found`` for an
                unknown account, ``already_exists`` for a duplicate bucket
        """
        self._assert_authorized(request_context, "register_bucket")
        account = self.account_service.must_find(request_context, account_id)
        return self.bucket_service.register(request_context, account, raw_data)

    def register_study(
        self,
        request_context: RequestContext,
        account_id: str,
        bucket_name: str,
        raw_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Register a study in a bucket and give it an application role.

        Studies of the same account are registered one at a time because
        they share the account's application roles.
        """
        self._assert_authorized(request_context, "register_study")

        def register() -> Dict[str, Any]:
            account = self.account_service.must_find(request_context, account_id)
            bucket = self.bucket_service.must_find(request_context, account_id, bucket_name)
            study = self.study_service.register(request_context, account, bucket, raw_data)
            app_role = self.application_role_service.allocate_role(request_context, account, bucket, study)
            if app_role is not None:
                study = self.study_service.update_app_role_arn(request_context, study["id"], app_role["arn"])
            return study

        study = self.lock_service.try_write_lock_and_run(f"{account_id}-account-studies", register)
        LOGGER.info("Registered study %s for account %s", study["id"], account_id)

        self.audit_writer.write_and_forget(
            request_context, {"action": "register-data-source-study", "body": study}
        )
        return study

    def _assert_authorized(self, request_context: RequestContext, action: str) -> None:
        self.authorization.assert_authorized(
            request_context,
            AuthorizationRequest(action=action),
            ADMIN_CONDITIONS,
        )
