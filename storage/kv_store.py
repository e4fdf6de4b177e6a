"""Key/value persistence backends for events and analytics state."""
import logging
from pathlib import Path
from typing import Dict, Optional

import boto3
from botocore.exceptions import ClientError

from processor.errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Persistence port: whole JSON documents stored under string keys."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored document for key, or None if never written."""
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        """Replace the stored document for key."""
        raise NotImplementedError


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store, used in tests and local runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileKeyValueStore(KeyValueStore):
    """Stores each key as <data_dir>/<key>.json on local disk."""

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        logger.info(f"Initialized FileKeyValueStore in: {self.data_dir}")

    def path_for(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            if not path.exists():
                return None
            return path.read_text(encoding='utf-8')
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            raise StorageError(f"Failed to read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(value, encoding='utf-8')
        except OSError as e:
            logger.error(f"Error writing {path}: {e}")
            raise StorageError(f"Failed to write {path}: {e}") from e


class DynamoDBKeyValueStore(KeyValueStore):
    """Stores each key as one item of a DynamoDB table."""

    KEY_ATTRIBUTE = 'state_key'
    VALUE_ATTRIBUTE = 'payload'

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of a table whose hash key is 'state_key'
            region_name: AWS region, defaults to the environment's
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBKeyValueStore for table: {table_name}")

    def get(self, key: str) -> Optional[str]:
        try:
            response = self.table.get_item(Key={self.KEY_ATTRIBUTE: key})
        except ClientError as e:
            logger.error(f"Error reading '{key}' from DynamoDB: {e}")
            raise StorageError(f"Failed to read '{key}': {e}") from e

        item = response.get('Item')
        if not item:
            return None
        return item.get(self.VALUE_ATTRIBUTE)

    def set(self, key: str, value: str) -> None:
        try:
            self.table.put_item(
                Item={self.KEY_ATTRIBUTE: key, self.VALUE_ATTRIBUTE: value}
            )
        except ClientError as e:
            logger.error(f"Error writing '{key}' to DynamoDB: {e}")
            raise StorageError(f"Failed to write '{key}': {e}") from e
