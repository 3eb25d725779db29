"""DynamoDB implementation of the Storage Adapter."""

import json
from typing import Any, Dict, Optional

import aioboto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from ..domain.errors import StorageError
from ..domain.interfaces.storage_adapter import StorageAdapter, resolve_key


class DynamoDBStorageAdapter(StorageAdapter):
    """DynamoDB storage adapter.

    All collections share one table with partition key ``collection`` and
    sort key ``key``. Each record is stored as a JSON string in ``data``,
    which keeps floats out of DynamoDB's Decimal handling.
    """

    def __init__(self, table_name: str, region_name: str = "us-east-1"):
        """Initialize the DynamoDB storage adapter.

        Args:
            table_name: The name of the DynamoDB table.
            region_name: AWS region name (default: us-east-1).
        """
        self.table_name = table_name
        self.region_name = region_name
        self._session = aioboto3.Session()

    async def put(self, collection: str, value: Dict[str, Any], key: Optional[str] = None) -> None:
        """Insert or replace a record.

        Raises:
            StorageError: If the write fails.
        """
        item = self._record_to_item(collection, resolve_key(collection, value, key), value)
        try:
            async with self._session.resource("dynamodb", region_name=self.region_name) as dynamodb:
                table = await dynamodb.Table(self.table_name)
                await table.put_item(Item=item)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to write {collection}/{item['key']}: {e}") from e

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        """Retrieve a record.

        Returns:
            The record, or None if not found.

        Raises:
            StorageError: If the read fails.
        """
        try:
            async with self._session.resource("dynamodb", region_name=self.region_name) as dynamodb:
                table = await dynamodb.Table(self.table_name)
                response = await table.get_item(Key={"collection": collection, "key": str(key)})
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read {collection}/{key}: {e}") from e

        if "Item" not in response:
            return None

        return self._item_to_record(response["Item"])

    async def get_all(self, collection: str) -> list[Dict[str, Any]]:
        """Retrieve all records of a collection in sort-key order.

        Raises:
            StorageError: If the query fails.
        """
        return [self._item_to_record(item) for item in await self._query(collection)]

    async def delete(self, collection: str, key: str) -> None:
        """Delete a record.

        Raises:
            StorageError: If the delete fails.
        """
        try:
            async with self._session.resource("dynamodb", region_name=self.region_name) as dynamodb:
                table = await dynamodb.Table(self.table_name)
                await table.delete_item(Key={"collection": collection, "key": str(key)})
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {collection}/{key}: {e}") from e

    async def clear(self, collection: str) -> None:
        """Delete all records of a collection.

        Raises:
            StorageError: If the query or a delete fails.
        """
        items = await self._query(collection)
        try:
            async with self._session.resource("dynamodb", region_name=self.region_name) as dynamodb:
                table = await dynamodb.Table(self.table_name)
                for item in items:
                    await table.delete_item(Key={"collection": collection, "key": item["key"]})
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to clear {collection}: {e}") from e

    async def _query(self, collection: str) -> list[Dict[str, Any]]:
        """Query every item of a collection, following pagination."""
        items: list[Dict[str, Any]] = []
        query_args: Dict[str, Any] = {"KeyConditionExpression": Key("collection").eq(collection)}

        try:
            async with self._session.resource("dynamodb", region_name=self.region_name) as dynamodb:
                table = await dynamodb.Table(self.table_name)
                while True:
                    response = await table.query(**query_args)
                    items.extend(response.get("Items", []))
                    if "LastEvaluatedKey" not in response:
                        break
                    query_args["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to query {collection}: {e}") from e

        return items

    def _record_to_item(self, collection: str, key: str, value: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a record to a DynamoDB item.

        Args:
            collection: The collection name.
            key: The record key.
            value: The record.

        Returns:
            Dict: The DynamoDB item representation.
        """
        return {
            "collection": collection,
            "key": key,
            "data": json.dumps(value),
        }

    def _item_to_record(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a DynamoDB item back to a record.

        Raises:
            StorageError: If the stored data is not valid JSON.
        """
        try:
            return json.loads(item["data"])
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupt item {item.get('collection')}/{item.get('key')}: {e}") from e
