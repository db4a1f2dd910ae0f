"""Registration and maintenance of data source AWS accounts."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from workbench.audit import AuditWriterService
from workbench.authorization import ADMIN_CONDITIONS, AuthorizationRequest, AuthorizationService
from workbench.context import RequestContext
from workbench.db import DynamoTable
from workbench.entities import (
    ACCOUNT_KEY,
    BUCKET_KEY,
    ReachabilityStatus,
    from_db_item,
    status_update,
)
from workbench.errors import already_exists, not_found, not_supported, outdated_update_attempt
from workbench.utils import generate_id, run_and_catch, utc_now_iso
from workbench.validation import REGISTER_ACCOUNT_SCHEMA, UPDATE_ACCOUNT_SCHEMA, ensure_valid

LOGGER = logging.getLogger("workbench.data_source_accounts")

QUALIFIER_PREFIX = "swb"


class DataSourceAccountService:
    """CRUD for data source accounts stored under ``ACT#<id>`` keys."""

    def __init__(
        self,
        table: DynamoTable,
        authorization: AuthorizationService,
        audit_writer: AuditWriterService,
    ):
        self.table = table
        self.authorization = authorization
        self.audit_writer = audit_writer

    # ========== Reads ==========

    def find(self, request_context: RequestContext, account_id: str, fields: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        item = self.table.get(ACCOUNT_KEY.encode(account_id, account_id), fields)
        return from_db_item(item)

    def must_find(self, request_context: RequestContext, account_id: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        entity = self.find(request_context, account_id, fields)
        if entity is None:
            raise not_found(f'account with id "{account_id}" does not exist', safe=True)
        return entity

    def list(self, request_context: RequestContext) -> List[Dict[str, Any]]:
        """List every account with its registered buckets attached.

        Only admins may list accounts.
        """
        self._assert_authorized(request_context, "list")

        accounts: Dict[str, Dict[str, Any]] = {}
        buckets: Dict[str, List[Dict[str, Any]]] = {}
        for item in self.table.scan():
            if ACCOUNT_KEY.matches(item):
                entity = from_db_item(item)
                accounts[entity["id"]] = entity
            elif BUCKET_KEY.matches(item):
                account_id, _ = BUCKET_KEY.decode(item)
                bucket = {k: v for k, v in item.items() if k not in ("pk", "sk")}
                buckets.setdefault(account_id, []).append(bucket)

        result = []
        for account_id, account in accounts.items():
            account["buckets"] = buckets.get(account_id, [])
            result.append(account)
        return result

    def list_accounts_with_status(self, status: str = "*") -> List[Dict[str, Any]]:
        """Return accounts whose status matches ``status``; ``*`` matches all."""
        accounts = [
            from_db_item(item)
            for item in self.table.scan()
            if ACCOUNT_KEY.matches(item)
        ]
        if status == "*":
            return accounts
        return [a for a in accounts if a["status"] == status]

    # ========== Writes ==========

    def register(self, request_context: RequestContext, raw_data: Dict[str, Any]) -> Dict[str, Any]:
        """Register a new data source account.

        Args:
            request_context: Caller context, must be an active admin
            raw_data: Account fields, see ``REGISTER_ACCOUNT_SCHEMA``

        Returns:
            The stored account entity

        Raises:
            ServiceError: ``forbidden``, ``bad_request``, ``not_supported`` or ``already_exists``
        """
        self._assert_authorized(request_context, "register", raw_data)
        ensure_valid(raw_data, REGISTER_ACCOUNT_SCHEMA)

        if raw_data.get("type") == "unmanaged":
            raise not_supported("Support for unmanaged accounts is not available yet", safe=True)

        account_id = raw_data["id"]
        by = request_context.uid
        now = utc_now_iso()
        qualifier = f"{QUALIFIER_PREFIX}-{generate_id()}"
        entity = {
            **raw_data,
            "type": "managed",
            "qualifier": qualifier,
            "stack": f"{qualifier}-stack",
            "stack_created": False,
            "status": ReachabilityStatus.PENDING.value,
            "status_at": now,
            "rev": 0,
            "created_at": now,
            "updated_at": now,
            "created_by": by,
            "updated_by": by,
        }

        def already_registered():
            raise already_exists(f'account with id "{account_id}" already registered', safe=True)

        run_and_catch(
            lambda: self.table.put(
                {**ACCOUNT_KEY.encode(account_id, account_id), **entity},
                condition="attribute_not_exists(pk)",
            ),
            already_registered,
        )
        LOGGER.info("Registered data source account %s (%s)", account_id, qualifier)

        self.audit_writer.write_and_forget(
            request_context, {"action": "register-data-source-account", "body": entity}
        )
        return entity

    def update(self, request_context: RequestContext, raw_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update name, description or contact info of an account.

        ``raw_data`` must carry the ``rev`` the caller last saw.

        Raises:
            ServiceError: ``outdated_update_attempt`` if the account changed meanwhile,
                ``not_found`` if it no longer exists
        """
        self._assert_authorized(request_context, "update", raw_data)
        ensure_valid(raw_data, UPDATE_ACCOUNT_SCHEMA)

        account_id = raw_data["id"]
        item = {k: v for k, v in raw_data.items() if k not in ("id", "rev")}

        def changed_or_missing():
            if self.find(request_context, account_id, ["pk"]) is not None:
                raise outdated_update_attempt(
                    "the account information changed just before your request is processed, please try again",
                    safe=True,
                )
            raise not_found(f'account with id "{account_id}" does not exist', safe=True)

        updated = run_and_catch(
            lambda: self.table.update(
                ACCOUNT_KEY.encode(account_id, account_id),
                item,
                condition="attribute_exists(pk) AND attribute_exists(sk)",
                rev=raw_data["rev"],
                by=request_context.uid,
            ),
            changed_or_missing,
        )
        entity = from_db_item(updated)

        self.audit_writer.write_and_forget(
            request_context, {"action": "update-data-source-account", "body": entity}
        )
        return entity

    def update_status(
        self,
        request_context: RequestContext,
        account: Dict[str, Any],
        status: str,
        status_msg: str = "",
    ) -> Dict[str, Any]:
        self._assert_authorized(request_context, "update_status", account)
        account_id = account["id"]
        item, remove = status_update(status, status_msg)

        def gone():
            raise not_found(f'account with id "{account_id}" does not exist', safe=True)

        updated = run_and_catch(
            lambda: self.table.update(
                ACCOUNT_KEY.encode(account_id, account_id),
                item,
                condition="attribute_exists(pk) AND attribute_exists(sk)",
                remove=remove,
                by=request_context.uid,
            ),
            gone,
        )
        return from_db_item(updated)

    def update_stack_info(self, request_context: RequestContext, account_id: str, stack_id: str) -> Dict[str, Any]:
        """Record that the account's onboarding stack was created."""
        self._assert_authorized(request_context, "update_stack_info")

        def gone():
            raise not_found(f'account with id "{account_id}" does not exist', safe=True)

        updated = run_and_catch(
            lambda: self.table.update(
                ACCOUNT_KEY.encode(account_id, account_id),
                {"stack_id": stack_id, "stack_created": True},
                condition="attribute_exists(pk) AND attribute_exists(sk)",
                by=request_context.uid,
            ),
            gone,
        )
        return from_db_item(updated)

    def _assert_authorized(self, request_context: RequestContext, action: str, resource: Any = None) -> None:
        self.authorization.assert_authorized(
            request_context,
            AuthorizationRequest(action=action, args={"resource": resource} if resource else {}),
            ADMIN_CONDITIONS,
        )
