"""Application roles: IAM roles in a data source account that grant access to studies.

A role belongs to one bucket and accumulates studies until its managed policy
document grows close to the IAM size limit, then a new role is allocated.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

from workbench.authorization import ADMIN_CONDITIONS, AuthorizationRequest, AuthorizationService
from workbench.context import RequestContext
from workbench.db import DynamoTable
from workbench.entities import APP_ROLE_KEY, ReachabilityStatus, from_db_item, status_update
from workbench.errors import already_exists, not_found, outdated_update_attempt
from workbench.studies import is_readonly, is_writeonly
from workbench.study_policy import StudyPolicy
from workbench.utils import run_and_catch, utc_now_iso

LOGGER = logging.getLogger("workbench.application_roles")

# IAM managed policy limit is 6144 characters, keep headroom for the wrapper
MAX_POLICY_SIZE = 6 * 1024 - 255


# ========== Entity helpers ==========

def app_role_key(account_id: str, bucket: str, arn: str) -> Dict[str, str]:
    return APP_ROLE_KEY.encode(account_id, f"{bucket}#{arn}")


def to_app_role_entity(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if item is None:
        return None
    account_id, bucket_and_arn = APP_ROLE_KEY.decode(item)
    entity = from_db_item(item)
    entity["account_id"] = account_id
    entity["arn"] = bucket_and_arn.split("#", 1)[-1]
    return entity


def add_study(app_role: Dict[str, Any], study: Dict[str, Any]) -> Dict[str, Any]:
    app_role.setdefault("studies", {})[study["id"]] = {
        "folder": study.get("folder"),
        "kms_arn": study.get("kms_arn"),
        "kms_scope": study.get("kms_scope"),
        "access_type": study.get("access_type"),
    }
    return app_role


def to_policy_doc(app_role: Dict[str, Any]) -> Dict[str, Any]:
    """Render the policy document that backs the role's permission boundary."""
    policy = StudyPolicy()
    partition = app_role.get("aws_partition", "aws")
    for study in app_role.get("studies", {}).values():
        policy.add_study(
            bucket=app_role["bucket"],
            folder=study["folder"],
            read=not is_writeonly(study),
            write=not is_readonly(study),
            kms_arn=study.get("kms_arn") or app_role.get("bucket_kms_arn"),
            aws_partition=partition,
        )
    return policy.to_policy_doc()


def max_reached(app_role: Dict[str, Any], max_size: int = MAX_POLICY_SIZE) -> bool:
    return len(json.dumps(to_policy_doc(app_role))) >= max_size


def new_app_role_entity(account: Dict[str, Any], bucket: Dict[str, Any], study: Dict[str, Any]) -> Dict[str, Any]:
    account_id = study["account_id"]
    partition = study.get("aws_partition", "aws")
    name = f"{study['qualifier']}-app-{int(time.time() * 1000)}"
    role = {
        "account_id": account_id,
        "arn": f"arn:{partition}:iam::{account_id}:role/{name}",
        "name": name,
        "qualifier": study["qualifier"],
        "studies": {},
        "boundary_policy_arn": f"arn:{partition}:iam::{account_id}:policy/{name}",
        "bucket": study["bucket"],
        "bucket_kms_arn": bucket.get("kms_arn"),
        "bucket_region": study.get("region"),
        "main_region": account.get("main_region"),
        "aws_partition": partition,
        "status": ReachabilityStatus.PENDING.value,
        "status_at": utc_now_iso(),
    }
    return add_study(role, study)


# ========== Service ==========

class ApplicationRoleService:
    """Stores application roles under ``APP#<account id>`` keys."""

    def __init__(self, table: DynamoTable, authorization: AuthorizationService):
        self.table = table
        self.authorization = authorization

    def list(self, request_context: RequestContext, account_id: str) -> List[Dict[str, Any]]:
        self._assert_authorized(request_context, "list")
        items = self.table.query(
            KeyConditionExpression=Key("pk").eq(f"{APP_ROLE_KEY.pk_prefix}{account_id}")
            & Key("sk").begins_with(APP_ROLE_KEY.sk_prefix),
        )
        return [to_app_role_entity(item) for item in items]

    def allocate_role(
        self,
        request_context: RequestContext,
        account: Dict[str, Any],
        bucket: Dict[str, Any],
        study: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Find or create the application role that will serve ``study``.

        Prefers a role already holding the study, then the first role of the
        bucket with room left, and otherwise creates a new pending role.

        Returns:
            The application role entity, or None when the bucket is not
            accessed through roles
        """
        self._assert_authorized(request_context, "allocate", study)
        if study.get("bucket_access") != "roles":
            return None

        roles = [r for r in self.list(request_context, account["id"]) if r.get("bucket") == bucket["name"]]
        for role in roles:
            if study["id"] in role.get("studies", {}):
                return role

        for role in roles:
            candidate = add_study(copy.deepcopy(role), study)
            if not max_reached(candidate):
                return self._save_studies(request_context, candidate)

        role = new_app_role_entity(account, bucket, study)
        return self._create(request_context, role)

    def update_status(
        self,
        request_context: RequestContext,
        app_role: Dict[str, Any],
        status: str,
        status_msg: str = "",
    ) -> Dict[str, Any]:
        self._assert_authorized(request_context, "update_status", app_role)
        item, remove = status_update(status, status_msg)
        key = app_role_key(app_role["account_id"], app_role["bucket"], app_role["arn"])

        def gone():
            raise not_found(f'application role "{app_role["arn"]}" does not exist', safe=True)

        updated = run_and_catch(
            lambda: self.table.update(
                key,
                item,
                condition="attribute_exists(pk) AND attribute_exists(sk)",
                remove=remove,
                by=request_context.uid,
            ),
            gone,
        )
        return to_app_role_entity(updated)

    def _create(self, request_context: RequestContext, role: Dict[str, Any]) -> Dict[str, Any]:
        by = request_context.uid
        now = utc_now_iso()
        db_item = {
            **app_role_key(role["account_id"], role["bucket"], role["arn"]),
            **{k: v for k, v in role.items() if k not in ("account_id", "arn")},
            "rev": 0,
            "created_at": now,
            "updated_at": now,
            "created_by": by,
            "updated_by": by,
        }

        def duplicate():
            raise already_exists(f'application role "{role["arn"]}" already exists', safe=True)

        run_and_catch(
            lambda: self.table.put(db_item, condition="attribute_not_exists(pk) AND attribute_not_exists(sk)"),
            duplicate,
        )
        LOGGER.info("Created application role %s", role["arn"])
        return to_app_role_entity(db_item)

    def _save_studies(self, request_context: RequestContext, role: Dict[str, Any]) -> Dict[str, Any]:
        def changed():
            raise outdated_update_attempt(
                f'application role "{role["arn"]}" changed just before your request is processed, please try again',
                safe=True,
            )

        updated = run_and_catch(
            lambda: self.table.update(
                app_role_key(role["account_id"], role["bucket"], role["arn"]),
                {"studies": role["studies"]},
                condition="attribute_exists(pk) AND attribute_exists(sk)",
                rev=role.get("rev"),
                by=request_context.uid,
            ),
            changed,
        )
        return to_app_role_entity(updated)

    def _assert_authorized(self, request_context: RequestContext, action: str, resource: Any = None) -> None:
        self.authorization.assert_authorized(
            request_context,
            AuthorizationRequest(action=action, args={"resource": resource} if resource else {}),
            ADMIN_CONDITIONS,
        )
