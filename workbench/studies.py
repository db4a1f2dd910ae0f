"""Studies registered from data source buckets.

Only the data source part of studies lives here: registration from a bucket,
the application role arn and reachability status.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

from workbench.audit import AuditWriterService
from workbench.authorization import ADMIN_CONDITIONS, AuthorizationRequest, AuthorizationService
from workbench.context import RequestContext
from workbench.db import DynamoTable
from workbench.entities import ReachabilityStatus, status_update
from workbench.errors import already_exists, not_found
from workbench.study_policy import to_s3_arn
from workbench.utils import normalize_study_folder, run_and_catch, utc_now_iso
from workbench.validation import REGISTER_STUDY_SCHEMA, ensure_valid

LOGGER = logging.getLogger("workbench.studies")

ACCOUNT_INDEX = "account-id-index"


def is_readonly(study: Dict[str, Any]) -> bool:
    return study.get("access_type") == "readonly"


def is_readwrite(study: Dict[str, Any]) -> bool:
    return study.get("access_type") == "readwrite"


def is_writeonly(study: Dict[str, Any]) -> bool:
    return study.get("access_type") == "writeonly"


def is_data_source_study(study: Dict[str, Any]) -> bool:
    return bool(study.get("account_id") and study.get("bucket"))


def to_study_entity(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Data source studies without a stored status are reachable."""
    if item is None:
        return None
    entity = dict(item)
    if is_data_source_study(entity) and not entity.get("status"):
        entity["status"] = ReachabilityStatus.REACHABLE.value
    return entity


class StudyService:
    """Study records keyed by ``id``."""

    def __init__(
        self,
        table: DynamoTable,
        authorization: AuthorizationService,
        audit_writer: AuditWriterService,
    ):
        self.table = table
        self.authorization = authorization
        self.audit_writer = audit_writer

    def find(self, request_context: RequestContext, study_id: str, fields: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        return to_study_entity(self.table.get({"id": study_id}, fields))

    def must_find(self, request_context: RequestContext, study_id: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        entity = self.find(request_context, study_id, fields)
        if entity is None:
            raise not_found(f'study with id "{study_id}" does not exist', safe=True)
        return entity

    def list_studies_for_account(self, request_context: RequestContext, account_id: str) -> List[Dict[str, Any]]:
        self._assert_authorized(request_context, "list")
        items = self.table.query(
            IndexName=ACCOUNT_INDEX,
            KeyConditionExpression=Key("account_id").eq(account_id),
        )
        return [to_study_entity(item) for item in items]

    def register(
        self,
        request_context: RequestContext,
        account: Dict[str, Any],
        bucket: Dict[str, Any],
        raw_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Create a pending study pointing at a folder of a registered bucket.

        Args:
            request_context: Caller context, must be an active admin
            account: Owning account entity
            bucket: Bucket entity holding the study folder
            raw_data: Study fields, see ``REGISTER_STUDY_SCHEMA``

        Returns:
            The stored study entity

        Raises:
            ServiceError: ``bad_request`` or ``already_exists``
        """
        self._assert_authorized(request_context, "register", raw_data)
        ensure_valid(raw_data, REGISTER_STUDY_SCHEMA)

        study_id = raw_data["id"]
        partition = bucket.get("aws_partition", "aws")
        folder = normalize_study_folder(raw_data["folder"])
        by = request_context.uid
        now = utc_now_iso()

        kms_scope = raw_data["kms_scope"]
        kms_arn = None
        if kms_scope == "study":
            kms_arn = raw_data.get("kms_arn")
        elif kms_scope == "bucket":
            kms_arn = bucket.get("kms_arn")

        entity = {
            **{k: v for k, v in raw_data.items() if k != "kms_arn"},
            "name": raw_data.get("name") or study_id,
            "folder": folder,
            "account_id": account["id"],
            "bucket": bucket["name"],
            "region": bucket.get("region"),
            "aws_partition": partition,
            "bucket_access": bucket.get("access"),
            "qualifier": account.get("qualifier"),
            "resources": [{"arn": to_s3_arn(bucket["name"], folder, partition)}],
            "status": ReachabilityStatus.PENDING.value,
            "status_at": now,
            "rev": 0,
            "created_at": now,
            "updated_at": now,
            "created_by": by,
            "updated_by": by,
        }
        if kms_arn:
            entity["kms_arn"] = kms_arn

        def already_registered():
            raise already_exists(f'study with id "{study_id}" already exists', safe=True)

        run_and_catch(
            lambda: self.table.put(entity, condition="attribute_not_exists(id)"),
            already_registered,
        )
        LOGGER.info("Registered study %s at s3://%s/%s", study_id, bucket["name"], folder)
        return entity

    def update_app_role_arn(self, request_context: RequestContext, study_id: str, app_role_arn: str) -> Dict[str, Any]:
        def gone():
            raise not_found(f'study with id "{study_id}" does not exist', safe=True)

        updated = run_and_catch(
            lambda: self.table.update(
                {"id": study_id},
                {"app_role_arn": app_role_arn},
                condition="attribute_exists(id)",
                by=request_context.uid,
            ),
            gone,
        )
        return to_study_entity(updated)

    def update_status(
        self,
        request_context: RequestContext,
        study: Dict[str, Any],
        status: str,
        status_msg: str = "",
    ) -> Dict[str, Any]:
        self._assert_authorized(request_context, "update_status", study)
        study_id = study["id"]
        item, remove = status_update(status, status_msg)

        def gone():
            raise not_found(f'study with id "{study_id}" does not exist', safe=True)

        updated = run_and_catch(
            lambda: self.table.update(
                {"id": study_id},
                item,
                condition="attribute_exists(id)",
                remove=remove,
                by=request_context.uid,
            ),
            gone,
        )
        return to_study_entity(updated)

    def _assert_authorized(self, request_context: RequestContext, action: str, resource: Any = None) -> None:
        self.authorization.assert_authorized(
            request_context,
            AuthorizationRequest(action=action, args={"resource": resource} if resource else {}),
            ADMIN_CONDITIONS,
        )
