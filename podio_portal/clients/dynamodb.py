"""
DynamoDB record store for serverless deployments of the gateway.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Key

from podio_portal.core.config import StorageSettings
from podio_portal.core.errors import ConfigurationError


class DynamoDBClient:
    """Same record interface as ``SQLiteStore``, backed by one DynamoDB table."""

    def __init__(self, settings: StorageSettings, *, resource: Any = None) -> None:
        if not settings.dynamodb_table_name:
            raise ConfigurationError(
                "STORAGE_DYNAMODB_TABLE_NAME is required for the dynamodb backend."
            )
        self._settings = settings
        self._resource = resource or boto3.resource(
            "dynamodb", region_name=settings.aws_region
        )
        self._table = self._resource.Table(settings.dynamodb_table_name)

    def put_item(self, item: Dict[str, Any]) -> None:
        """Put an item in the DynamoDB table."""
        if not item.get("pk") or not item.get("sk"):
            raise ValueError("Item must include 'pk' and 'sk' keys")
        self._table.put_item(Item=item)

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        """Retrieve an item using its key."""
        response = self._table.get_item(
            Key={"pk": partition_key, "sk": sort_key}, ConsistentRead=True
        )
        return response.get("Item")

    def delete_item(self, *, partition_key: str, sort_key: str) -> bool:
        """Delete an item; report whether it existed."""
        response = self._table.delete_item(
            Key={"pk": partition_key, "sk": sort_key},
            ReturnValues="ALL_OLD",
        )
        return bool(response.get("Attributes"))

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        """Query items in a partition whose sort key starts with a prefix."""
        condition = Key("pk").eq(partition_key) & Key("sk").begins_with(sort_key_prefix)
        response = self._table.query(KeyConditionExpression=condition)
        items = list(response.get("Items", []))
        while response.get("LastEvaluatedKey"):
            response = self._table.query(
                KeyConditionExpression=condition,
                ExclusiveStartKey=response["LastEvaluatedKey"],
            )
            items.extend(response.get("Items", []))
        return items


__all__ = ["DynamoDBClient"]
