"""
DynamoDB adapter for the durable store contract (boto3 ``Table`` resource).

Numbers come back from DynamoDB as ``Decimal`` and floats are rejected on
write, so items are converted at the boundary.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ConditionalCheckFailedError, PersistenceError, StorageUnavailableError
from .base import DurableStore, SortCondition, TableSchema, chunked, is_live

logger = logging.getLogger("tidalvoice.storage.dynamodb")


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


class DynamoDbStore(DurableStore):
    """Durable store backed by one DynamoDB table."""

    def __init__(self, table_name: str, schema: TableSchema, table=None,
                 region: Optional[str] = None, endpoint: Optional[str] = None):
        """
        Args:
            table_name: DynamoDB table name
            schema: Key layout of the table
            table: Pre-built ``Table`` resource (tests inject a mock)
            region: AWS region for the resource
            endpoint: Custom endpoint, e.g. DynamoDB Local
        """
        super().__init__(table_name, schema)
        if table is None:
            resource_kwargs: Dict[str, Any] = {}
            if region:
                resource_kwargs["region_name"] = region
            if endpoint:
                resource_kwargs["endpoint_url"] = endpoint
                logger.info("storage.dynamodb.custom_endpoint", extra={"endpoint": endpoint})
            table = boto3.resource("dynamodb", **resource_kwargs).Table(table_name)
        self.table = table

    def _handle_error(self, exc: Exception, operation: str) -> PersistenceError:
        details: Dict[str, Any] = {"table": self.table_name, "operation": operation}
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "")
            message = exc.response.get("Error", {}).get("Message", str(exc))
            details["code"] = code
            if code == "ResourceNotFoundException":
                details["status"] = 404
                error: PersistenceError = StorageUnavailableError(
                    f"Table {self.table_name} does not exist", details, exc)
            elif code == "ConditionalCheckFailedException":
                details["status"] = 400
                error = ConditionalCheckFailedError("Conditional check failed", details, exc)
            elif code == "ProvisionedThroughputExceededException":
                details["status"] = 429
                error = StorageUnavailableError("Provisioned throughput exceeded", details, exc)
            elif code == "ValidationException":
                details["status"] = 400
                error = PersistenceError(f"Validation error: {message}", details, exc)
            else:
                details["status"] = 500
                error = StorageUnavailableError(f"DynamoDB error: {message}", details, exc)
        else:
            details["status"] = 503
            error = StorageUnavailableError(f"DynamoDB unreachable: {exc}", details, exc)

        logger.error("storage.dynamodb.error", extra=details)
        return error

    def put_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self.table.put_item(Item=_to_dynamo(item))
        except (ClientError, BotoCoreError) as exc:
            raise self._handle_error(exc, "put_item")
        return item

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            result = self.table.get_item(Key=_to_dynamo(key))
        except (ClientError, BotoCoreError) as exc:
            raise self._handle_error(exc, "get_item")
        item = result.get("Item")
        if item is None:
            return None
        item = _from_dynamo(item)
        return item if is_live(item, self.schema.ttl_attribute) else None

    def _key_condition(self, partition_key: Any, sort_condition: Optional[SortCondition],
                       index_name: Optional[str]):
        pk_attr, sk_attr = self.schema.key_attributes(index_name)
        condition = Key(pk_attr).eq(_to_dynamo(partition_key))
        if sort_condition is not None and sk_attr:
            sort_key = Key(sk_attr)
            if sort_condition.op == "between":
                condition = condition & sort_key.between(
                    _to_dynamo(sort_condition.value), _to_dynamo(sort_condition.upper))
            else:
                condition = condition & getattr(sort_key, sort_condition.op)(_to_dynamo(sort_condition.value))
        return condition

    def query(
        self,
        partition_key: Any,
        sort_condition: Optional[SortCondition] = None,
        scan_forward: bool = True,
        limit: Optional[int] = None,
        index_name: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {
            "KeyConditionExpression": self._key_condition(partition_key, sort_condition, index_name),
            "ScanIndexForward": scan_forward,
        }
        if index_name:
            params["IndexName"] = index_name
        if limit is not None:
            params["Limit"] = int(limit)

        items: List[Dict[str, Any]] = []
        try:
            while True:
                result = self.table.query(**params)
                items.extend(_from_dynamo(item) for item in result.get("Items", []))
                last_key = result.get("LastEvaluatedKey")
                if not last_key or (limit is not None and len(items) >= limit):
                    break
                params["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as exc:
            raise self._handle_error(exc, "query")

        live = [item for item in items if is_live(item, self.schema.ttl_attribute)]
        return live[:limit] if limit is not None else live

    def delete_item(self, key: Dict[str, Any]) -> bool:
        try:
            self.table.delete_item(Key=_to_dynamo(key))
        except (ClientError, BotoCoreError) as exc:
            raise self._handle_error(exc, "delete_item")
        return True

    def batch_write(self, items: List[Dict[str, Any]], operation: str = "put") -> Dict[str, Any]:
        if operation not in ("put", "delete"):
            raise ValueError(f"Unsupported batch operation: {operation}")
        batches = 0
        try:
            for batch in chunked(list(items)):
                with self.table.batch_writer() as writer:
                    for item in batch:
                        if operation == "delete":
                            writer.delete_item(Key=_to_dynamo(self.schema.key_of(item)))
                        else:
                            writer.put_item(Item=_to_dynamo(item))
                batches += 1
        except (ClientError, BotoCoreError) as exc:
            raise self._handle_error(exc, "batch_write")
        logger.debug(
            "storage.batch_write",
            extra={"table": self.table_name, "operation": operation, "count": len(items), "batches": batches},
        )
        return {"batches": batches, "count": len(items)}
