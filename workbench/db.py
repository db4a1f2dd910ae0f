"""DynamoDB table access with conditional writes and rev based updates."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError

from workbench.utils import utc_now_iso

LOGGER = logging.getLogger("workbench.db")


def serialize(value: Any) -> Any:
    """Convert floats to Decimal recursively for DynamoDB."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def deserialize(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int or float recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: deserialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [deserialize(v) for v in value]
    return value


@dataclass(frozen=True)
class CompositeKey:
    """Encodes entity ids into ``pk``/``sk`` pairs such as ``ACT#<id>``."""

    pk_prefix: str
    sk_prefix: str

    def encode(self, pk_value: str, sk_value: str) -> Dict[str, str]:
        return {"pk": f"{self.pk_prefix}{pk_value}", "sk": f"{self.sk_prefix}{sk_value}"}

    def decode(self, item: Dict[str, Any]) -> Tuple[str, str]:
        pk = item.get("pk", "")
        sk = item.get("sk", "")
        return pk[len(self.pk_prefix):], sk[len(self.sk_prefix):]

    def matches(self, item: Dict[str, Any]) -> bool:
        return str(item.get("pk", "")).startswith(self.pk_prefix) and str(
            item.get("sk", "")
        ).startswith(self.sk_prefix)


class DynamoTable:
    """A DynamoDB table bound through a boto3 session.

    boto3 sessions and resources are not thread-safe, so every thread that
    touches the table (``process_in_batches`` workers included) binds its own.
    """

    def __init__(
        self,
        table_name: str,
        region: str,
        profile: Optional[str] = None,
    ):
        """Bind the table.

        Args:
            table_name: DynamoDB table name
            region: AWS region
            profile: AWS profile name (optional)
        """
        session_kwargs = {"region_name": region}
        if profile:
            session_kwargs["profile_name"] = profile

        self._session_kwargs = session_kwargs
        self._local = threading.local()
        self.table_name = table_name
        self._bind()
        LOGGER.debug("DynamoTable bound to %s (region=%s)", table_name, region)

    def _bind(self) -> None:
        session = boto3.Session(**self._session_kwargs)
        self._local.dynamodb = session.resource("dynamodb")
        self._local.table = self._local.dynamodb.Table(self.table_name)

    @property
    def dynamodb(self) -> Any:
        if getattr(self._local, "dynamodb", None) is None:
            self._bind()
        return self._local.dynamodb

    @property
    def table(self) -> Any:
        if getattr(self._local, "table", None) is None:
            self._bind()
        return self._local.table

    # ========== Table management ==========

    def create_table_if_not_exists(
        self,
        key_names: List[str],
        indexes: Optional[List[Dict[str, str]]] = None,
        ttl_attribute: Optional[str] = None,
    ) -> None:
        """Create the table with string keys if it is missing.

        Args:
            key_names: Hash key name, optionally followed by the range key name
            indexes: Global secondary indexes as ``{"name", "hash_key"}`` dicts
            ttl_attribute: Attribute to enable DynamoDB TTL on
        """
        try:
            self.table.load()
            LOGGER.info("Table %s already exists", self.table_name)
            return
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise

        key_schema = [{"AttributeName": key_names[0], "KeyType": "HASH"}]
        if len(key_names) > 1:
            key_schema.append({"AttributeName": key_names[1], "KeyType": "RANGE"})
        attribute_names = list(key_names)
        kwargs: Dict[str, Any] = {
            "TableName": self.table_name,
            "KeySchema": key_schema,
            "BillingMode": "PAY_PER_REQUEST",
        }
        if indexes:
            kwargs["GlobalSecondaryIndexes"] = [
                {
                    "IndexName": index["name"],
                    "KeySchema": [{"AttributeName": index["hash_key"], "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                }
                for index in indexes
            ]
            attribute_names.extend(i["hash_key"] for i in indexes if i["hash_key"] not in attribute_names)
        kwargs["AttributeDefinitions"] = [
            {"AttributeName": name, "AttributeType": "S"} for name in attribute_names
        ]

        LOGGER.info("Creating table %s", self.table_name)
        table = self.dynamodb.create_table(**kwargs)
        table.wait_until_exists()
        if ttl_attribute:
            self.dynamodb.meta.client.update_time_to_live(
                TableName=self.table_name,
                TimeToLiveSpecification={"Enabled": True, "AttributeName": ttl_attribute},
            )
        LOGGER.info("Table %s created successfully", self.table_name)

    # ========== Reads ==========

    def get(self, key: Dict[str, Any], fields: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"Key": key}
        if fields:
            kwargs["ProjectionExpression"] = ", ".join(f"#f{i}" for i in range(len(fields)))
            kwargs["ExpressionAttributeNames"] = {f"#f{i}": name for i, name in enumerate(fields)}
        response = self.table.get_item(**kwargs)
        item = response.get("Item")
        return deserialize(item) if item else None

    def query(self, **kwargs: Any) -> List[Dict[str, Any]]:
        """Run a query and follow ``LastEvaluatedKey`` until exhausted."""
        return list(self._paginate(self.table.query, kwargs))

    def scan(self, **kwargs: Any) -> List[Dict[str, Any]]:
        """Run a scan and follow ``LastEvaluatedKey`` until exhausted."""
        return list(self._paginate(self.table.scan, kwargs))

    def _paginate(self, operation: Any, kwargs: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        while True:
            response = operation(**kwargs)
            for item in response.get("Items", []):
                yield deserialize(item)
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            kwargs = dict(kwargs, ExclusiveStartKey=last_key)

    # ========== Writes ==========

    def put(
        self,
        item: Dict[str, Any],
        condition: Optional[str] = None,
        names: Optional[Dict[str, str]] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> None:
        kwargs: Dict[str, Any] = {"Item": serialize(item)}
        if condition:
            kwargs["ConditionExpression"] = condition
        if names:
            kwargs["ExpressionAttributeNames"] = names
        if values:
            kwargs["ExpressionAttributeValues"] = serialize(values)
        self.table.put_item(**kwargs)

    def update(
        self,
        key: Dict[str, Any],
        item: Dict[str, Any],
        condition: Optional[str] = None,
        rev: Optional[int] = None,
        remove: Optional[List[str]] = None,
        names: Optional[Dict[str, str]] = None,
        values: Optional[Dict[str, Any]] = None,
        by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update an item and return it as stored after the write.

        Every attribute in ``item`` is SET.  ``updated_at`` is always refreshed
        and ``created_at``/``created_by`` are only written if absent.  ``rev`` is
        only touched when given: the write then succeeds only if the stored
        rev still equals it, and the stored rev is incremented.

        Args:
            key: Primary key of the item
            item: Attributes to set (key attributes are ignored)
            condition: Extra condition expression
            rev: Expected current rev for optimistic locking
            remove: Attributes to REMOVE
            names: Extra expression attribute names used by ``condition``
            values: Extra expression attribute values used by ``condition``
            by: uid recorded in ``updated_by``/``created_by``

        Returns:
            The updated item

        Raises:
            ClientError: ``ConditionalCheckFailedException`` when a condition fails
        """
        expression_names: Dict[str, str] = dict(names or {})
        expression_values: Dict[str, Any] = dict(values or {})
        set_parts: List[str] = []

        now = utc_now_iso()
        skipped = set(key) | set(remove or []) | {"rev", "created_at", "created_by"}
        attributes = {k: v for k, v in item.items() if k not in skipped}
        attributes["updated_at"] = now
        if by:
            attributes["updated_by"] = by

        for i, (name, value) in enumerate(attributes.items()):
            expression_names[f"#a{i}"] = name
            expression_values[f":a{i}"] = value
            set_parts.append(f"#a{i} = :a{i}")

        expression_names["#created_at"] = "created_at"
        expression_values[":created_at"] = item.get("created_at", now)
        set_parts.append("#created_at = if_not_exists(#created_at, :created_at)")
        if by:
            expression_names["#created_by"] = "created_by"
            expression_values[":created_by"] = by
            set_parts.append("#created_by = if_not_exists(#created_by, :created_by)")

        conditions = [condition] if condition else []
        if rev is not None:
            expression_names["#rev"] = "rev"
            expression_values[":rev"] = rev
            expression_values[":rev_one"] = 1
            conditions.append("#rev = :rev")
            set_parts.append("#rev = #rev + :rev_one")

        update_expression = "SET " + ", ".join(set_parts)
        if remove:
            for i, name in enumerate(remove):
                expression_names[f"#r{i}"] = name
            update_expression += " REMOVE " + ", ".join(f"#r{i}" for i in range(len(remove)))

        kwargs: Dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ExpressionAttributeNames": expression_names,
            "ExpressionAttributeValues": serialize(expression_values),
            "ReturnValues": "ALL_NEW",
        }
        if conditions:
            kwargs["ConditionExpression"] = " AND ".join(f"({c})" for c in conditions)

        response = self.table.update_item(**kwargs)
        return deserialize(response.get("Attributes", {}))

    def delete(
        self,
        key: Dict[str, Any],
        condition: Optional[str] = None,
        names: Optional[Dict[str, str]] = None,
    ) -> None:
        kwargs: Dict[str, Any] = {"Key": key}
        if condition:
            kwargs["ConditionExpression"] = condition
        if names:
            kwargs["ExpressionAttributeNames"] = names
        self.table.delete_item(**kwargs)
