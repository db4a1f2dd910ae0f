"""Registration of S3 buckets that live in data source accounts."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

from workbench.audit import AuditWriterService
from workbench.authorization import ADMIN_CONDITIONS, AuthorizationRequest, AuthorizationService
from workbench.context import RequestContext
from workbench.db import DynamoTable
from workbench.entities import BUCKET_KEY
from workbench.errors import already_exists, not_found
from workbench.utils import run_and_catch, utc_now_iso
from workbench.validation import REGISTER_BUCKET_SCHEMA, ensure_valid

LOGGER = logging.getLogger("workbench.data_source_buckets")


def to_bucket_entity(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if item is None:
        return None
    entity = {k: v for k, v in item.items() if k not in ("pk", "sk")}
    account_id, name = BUCKET_KEY.decode(item)
    entity.setdefault("account_id", account_id)
    entity.setdefault("name", name)
    return entity


class DataSourceBucketService:
    """Buckets are stored next to their account under ``BUK#<name>`` sort keys."""

    def __init__(
        self,
        table: DynamoTable,
        authorization: AuthorizationService,
        audit_writer: AuditWriterService,
    ):
        self.table = table
        self.authorization = authorization
        self.audit_writer = audit_writer

    def find(self, request_context: RequestContext, account_id: str, name: str) -> Optional[Dict[str, Any]]:
        return to_bucket_entity(self.table.get(BUCKET_KEY.encode(account_id, name)))

    def must_find(self, request_context: RequestContext, account_id: str, name: str) -> Dict[str, Any]:
        entity = self.find(request_context, account_id, name)
        if entity is None:
            raise not_found(f'bucket "{name}" is not registered for account "{account_id}"', safe=True)
        return entity

    def list_by_account(self, request_context: RequestContext, account_id: str) -> List[Dict[str, Any]]:
        items = self.table.query(
            KeyConditionExpression=Key("pk").eq(f"{BUCKET_KEY.pk_prefix}{account_id}")
            & Key("sk").begins_with(BUCKET_KEY.sk_prefix),
        )
        return [to_bucket_entity(item) for item in items]

    def register(
        self,
        request_context: RequestContext,
        account: Dict[str, Any],
        raw_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Register a bucket under ``account``.

        Args:
            request_context: Caller context, must be an active admin
            account: The owning account entity
            raw_data: Bucket fields, see ``REGISTER_BUCKET_SCHEMA``

        Returns:
            The stored bucket entity

        Raises:
            ServiceError: ``bad_request`` or ``already_exists``
        """
        self.authorization.assert_authorized(
            request_context,
            AuthorizationRequest(action="register", args={"resource": raw_data}),
            ADMIN_CONDITIONS,
        )
        ensure_valid(raw_data, REGISTER_BUCKET_SCHEMA)

        account_id = account["id"]
        name = raw_data["name"]
        by = request_context.uid
        now = utc_now_iso()
        entity = {
            **raw_data,
            "account_id": account_id,
            "rev": 0,
            "created_at": now,
            "updated_at": now,
            "created_by": by,
            "updated_by": by,
        }

        def already_registered():
            raise already_exists(f'bucket "{name}" already registered', safe=True)

        run_and_catch(
            lambda: self.table.put(
                {**BUCKET_KEY.encode(account_id, name), **entity},
                condition="attribute_not_exists(pk) AND attribute_not_exists(sk)",
            ),
            already_registered,
        )
        LOGGER.info("Registered bucket %s for account %s", name, account_id)

        self.audit_writer.write_and_forget(
            request_context, {"action": "register-data-source-bucket", "body": entity}
        )
        return entity
