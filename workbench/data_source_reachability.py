"""Reachability checks for data source accounts and studies.

An account is reachable when every one of its application roles can be
assumed.  A study is reachable when its application role can read the study
folder.  Status moves between pending, error and reachable; entities that were
never reachable stay pending with a warning message instead of erroring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from workbench.application_roles import ApplicationRoleService
from workbench.audit import AuditWriterService
from workbench.authorization import ADMIN_CONDITIONS, AuthorizationRequest, AuthorizationService
from workbench.context import RequestContext
from workbench.data_source_accounts import DataSourceAccountService
from workbench.entities import ReachabilityStatus
from workbench.errors import ServiceError, bad_request
from workbench.role_sessions import RoleSessionFactory
from workbench.studies import StudyService, is_data_source_study
from workbench.utils import process_in_batches
from workbench.validation import ATTEMPT_REACH_SCHEMA, ensure_valid
from workbench.workflows import WorkflowTriggerService

LOGGER = logging.getLogger("workbench.data_source_reachability")

BATCH_SIZE = 10

BULK_CHECK_WORKFLOW = "wf-bulk-reachability-check"
ACCOUNT_STATUS_CHANGE_WORKFLOW = "wf-ds-account-status-change"

METRICS_NAMESPACE = "ServiceWorkbench/DataSources"


@dataclass
class AccountAvailability:
    """Outcome of probing the application roles of one account."""
    reachable: bool
    unreachable_app_roles: List[str] = field(default_factory=list)


class DataSourceReachabilityService:
    """Checks data sources and records their reachability status."""

    def __init__(
        self,
        account_service: DataSourceAccountService,
        study_service: StudyService,
        application_role_service: ApplicationRoleService,
        workflow_trigger: WorkflowTriggerService,
        role_sessions: RoleSessionFactory,
        authorization: AuthorizationService,
        audit_writer: AuditWriterService,
        cloudwatch: Optional[Any] = None,
    ):
        self.account_service = account_service
        self.study_service = study_service
        self.application_role_service = application_role_service
        self.workflow_trigger = workflow_trigger
        self.role_sessions = role_sessions
        self.authorization = authorization
        self.audit_writer = audit_writer
        self.cloudwatch = cloudwatch

    # ========== Entry point ==========

    def attempt_reach(
        self,
        request_context: RequestContext,
        params: Dict[str, Any],
        force_check_all: bool = False,
    ) -> Optional[str]:
        """Check one account, one study, or (``id == "*"``) every account.

        Args:
            request_context: Caller context, must be an active admin
            params: ``{"id", "type", "status"}``; ``type`` is ``ds_account`` or
                ``study`` for a single id, ``status`` filters a ``*`` check
            force_check_all: Also check roles that are already reachable

        Returns:
            The new status for a single entity, None for a bulk check
        """
        self.authorization.assert_authorized(
            request_context,
            AuthorizationRequest(action="update", args={"resource": params}),
            ADMIN_CONDITIONS,
        )
        ensure_valid(params, ATTEMPT_REACH_SCHEMA)

        entity_id = params["id"]
        entity_type = params.get("type")
        status = params.get("status")
        if entity_id == "*" and entity_type:
            raise bad_request("Cannot process type with wildcard id", safe=True)
        if entity_id != "*" and status:
            raise bad_request("Can only process status with wildcard id", safe=True)

        if entity_id == "*":
            self.bulk_reach(request_context, status or "*", force_check_all)
            return None
        if entity_type == "ds_account":
            return self.reach_ds_account(request_context, entity_id, force_check_all)
        if entity_type == "study":
            return self.reach_study(request_context, entity_id)
        raise bad_request("A type of 'ds_account' or 'study' is required for a single id", safe=True)

    # ========== Accounts ==========

    def bulk_reach(self, request_context: RequestContext, status: str = "*", force_check_all: bool = False) -> Dict[str, Any]:
        """Hand every account with ``status`` to the bulk check workflow."""
        ds_account_ids = [a["id"] for a in self.account_service.list_accounts_with_status(status)]
        LOGGER.info("Bulk reachability check of %d accounts (status=%s)", len(ds_account_ids), status)

        result = self.workflow_trigger.trigger_workflow(
            request_context,
            {"workflow_id": BULK_CHECK_WORKFLOW},
            {
                "status": status,
                "force_check_all": force_check_all,
                "request_context": request_context.model_dump(),
                "ds_account_ids": ds_account_ids,
            },
        )
        self.audit_writer.write_and_forget(
            request_context, {"action": "bulk-check-reachability", "body": {"status": status}}
        )
        return result

    def reach_accounts(
        self,
        request_context: RequestContext,
        ds_account_ids: List[str],
        force_check_all: bool = False,
    ) -> Dict[str, str]:
        """Check many accounts, ``BATCH_SIZE`` at a time.

        A failing account (deleted since it was listed, throttled) is logged
        and left out so the remaining accounts are still checked.

        Returns:
            Mapping of account id to its new status
        """
        def reach(account_id: str) -> Optional[str]:
            try:
                return self.reach_ds_account(request_context, account_id, force_check_all)
            except (ServiceError, ClientError, BotoCoreError) as e:
                LOGGER.error("Reachability check of account %s failed: %r", account_id, e)
                return None

        statuses = process_in_batches(ds_account_ids, BATCH_SIZE, reach)
        return {
            account_id: status
            for account_id, status in zip(ds_account_ids, statuses)
            if status is not None
        }

    def reach_ds_account(
        self,
        request_context: RequestContext,
        account_id: str,
        force_check_all: bool = False,
    ) -> str:
        account = self.account_service.must_find(request_context, account_id)
        prev_status = account["status"]
        new_status = prev_status
        status_msg = ""

        availability = self._check_ds_account_availability(request_context, account_id, force_check_all)
        if availability.reachable:
            new_status = ReachabilityStatus.REACHABLE.value
        elif prev_status == ReachabilityStatus.PENDING.value:
            status_msg = f"WARN|||Data source account {account_id} is not reachable yet"
        else:
            new_status = ReachabilityStatus.ERROR.value
            status_msg = f"ERR|||Error getting information from data source account {account_id}"

        self.account_service.update_status(request_context, account, new_status, status_msg)

        if new_status != prev_status and new_status == ReachabilityStatus.REACHABLE.value:
            self.workflow_trigger.trigger_workflow(
                request_context,
                {"workflow_id": ACCOUNT_STATUS_CHANGE_WORKFLOW},
                {"id": account_id, "type": "ds_account", "request_context": request_context.model_dump()},
            )

        self._emit_metric("AccountReachable", 1 if availability.reachable else 0, account_id)
        self.audit_writer.write_and_forget(
            request_context,
            {"action": "check-ds-account-reachability", "body": {"id": account_id, "type": "ds_account"}},
        )
        return new_status

    def _check_ds_account_availability(
        self,
        request_context: RequestContext,
        account_id: str,
        force_check_all: bool = False,
    ) -> AccountAvailability:
        """Check the account's application roles and record each role's status.

        Roles already reachable are trusted unless ``force_check_all`` is set.
        An account without application roles is not reachable.
        """
        app_roles = self.application_role_service.list(request_context, account_id)
        if not app_roles:
            return AccountAvailability(reachable=False)

        to_check = [
            role for role in app_roles
            if force_check_all or role.get("status") != ReachabilityStatus.REACHABLE.value
        ]

        def check(role: Dict[str, Any]) -> bool:
            reachable = self._can_assume(role["arn"])
            new_status = ReachabilityStatus.REACHABLE.value if reachable else (
                ReachabilityStatus.PENDING.value
                if role.get("status") == ReachabilityStatus.PENDING.value
                else ReachabilityStatus.ERROR.value
            )
            if new_status != role.get("status"):
                msg = "" if reachable else f"ERR|||Could not assume application role {role['arn']}"
                self.application_role_service.update_status(request_context, role, new_status, msg)
            return reachable

        results = process_in_batches(to_check, BATCH_SIZE, check)
        unreachable = [role["arn"] for role, ok in zip(to_check, results) if not ok]
        return AccountAvailability(reachable=not unreachable, unreachable_app_roles=unreachable)

    def _can_assume(self, role_arn: str) -> bool:
        try:
            self.role_sessions.assume_role(role_arn)
            return True
        except (ClientError, BotoCoreError) as e:
            LOGGER.debug("Cannot assume %s: %s", role_arn, e)
            return False

    # ========== Studies ==========

    def reach_study(self, request_context: RequestContext, study_id: str) -> str:
        study = self.study_service.must_find(request_context, study_id)
        if not study.get("status") or not is_data_source_study(study):
            raise bad_request("Can only check reachability for data source account studies", safe=True)

        prev_status = study["status"]
        new_status = prev_status
        status_msg = ""

        reachable = self._assume_app_role(study)
        if reachable:
            new_status = ReachabilityStatus.REACHABLE.value
        elif prev_status == ReachabilityStatus.PENDING.value:
            status_msg = f"WARN|||Study {study_id} is not reachable yet"
        else:
            new_status = ReachabilityStatus.ERROR.value
            status_msg = f"ERR|||Error getting information from study {study_id}"

        self.study_service.update_status(request_context, study, new_status, status_msg)

        self._emit_metric("StudyReachable", 1 if reachable else 0, study.get("account_id"))
        self.audit_writer.write_and_forget(
            request_context,
            {"action": "check-study-reachability", "body": {"id": study_id, "type": "study"}},
        )
        return new_status

    def _assume_app_role(self, study: Dict[str, Any]) -> bool:
        """Read the head of the study folder as the study's application role.

        A missing folder object still proves the role works, so a 404 counts
        as reachable.
        """
        app_role_arn = study.get("app_role_arn")
        if not app_role_arn:
            return False
        try:
            s3 = self.role_sessions.client_for_role(app_role_arn, "s3", region=study.get("region"))
            s3.head_object(Bucket=study["bucket"], Key=study["folder"])
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return True
            LOGGER.debug("Study %s not reachable: %s", study.get("id"), e)
            return False
        except BotoCoreError as e:
            LOGGER.debug("Study %s not reachable: %s", study.get("id"), e)
            return False

    def _emit_metric(self, metric_name: str, value: float, account_id: Optional[str]) -> None:
        if self.cloudwatch is None:
            return
        try:
            self.cloudwatch.put_metric_data(
                Namespace=METRICS_NAMESPACE,
                MetricData=[{
                    "MetricName": metric_name,
                    "Value": value,
                    "Unit": "Count",
                    "Dimensions": [{"Name": "AccountId", "Value": account_id or "unknown"}],
                }],
            )
        except (ClientError, BotoCoreError) as e:
            LOGGER.debug("Failed to emit metric %s: %s", metric_name, e)
