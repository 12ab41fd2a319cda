"""
Key-value / blob store used for projects, workspaces and preview snapshots.

Values are serialized strings (JSON). Two backends are provided:

- S3KVStore: any S3-compatible bucket (AWS S3, Cloudflare R2, MinIO)
- MemoryKVStore: process-local dict for local development and tests

Only put/get/list are used; no conditional writes or transactions.
"""

import logging
import threading
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

import config
from errors import StoreError

logger = logging.getLogger(__name__)

# Error codes that mean "no such object" rather than a failure
MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class KVStore:
    """Minimal store interface: put(key, value), get(key), list(prefix)."""

    def put(self, key: str, value: str) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def list(self, prefix: str) -> List[str]:
        raise NotImplementedError


class S3KVStore(KVStore):
    """Store backed by one S3-compatible bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = config.S3_ENDPOINT_URL,
        region: str = config.AWS_DEFAULT_REGION,
        profile: Optional[str] = config.AWS_PROFILE
    ):
        """
        Initialize the store.

        Args:
            bucket: Bucket name
            endpoint_url: Custom endpoint for S3-compatible services (None for AWS)
            region: Region name ("auto" for R2)
            profile: AWS profile name (None for environment credentials)
        """
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.profile = profile
        self._client = None

    @property
    def client(self):
        """Lazy-load S3 client."""
        if self._client is None:
            session = boto3.Session(
                profile_name=self.profile,
                region_name=self.region
            )
            self._client = session.client('s3', endpoint_url=self.endpoint_url)
        return self._client

    def put(self, key: str, value: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=value.encode('utf-8'),
                ContentType='application/json'
            )
            logger.debug(f"Stored s3://{self.bucket}/{key} ({len(value)} chars)")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 error writing {key}: {e}")
            raise StoreError(f"Failed to write {key}", key=key) from e

    def get(self, key: str) -> Optional[str]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read().decode('utf-8')
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in MISSING_KEY_CODES:
                return None
            logger.error(f"S3 error reading {key}: {e}")
            raise StoreError(f"Failed to read {key}", key=key) from e
        except BotoCoreError as e:
            logger.error(f"S3 error reading {key}: {e}")
            raise StoreError(f"Failed to read {key}", key=key) from e

    def list(self, prefix: str) -> List[str]:
        keys = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(item['Key'] for item in page.get('Contents', []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 error listing {prefix}: {e}")
            raise StoreError(f"Failed to list {prefix}", key=prefix) from e
        return keys


class MemoryKVStore(KVStore):
    """Dict-backed store; listing follows insertion order."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def list(self, prefix: str) -> List[str]:
        with self._lock:
            return [key for key in self._data if key.startswith(prefix)]


STORE_BUCKETS = {
    "metadata": config.METADATA_BUCKET,
    "workspace": config.WORKSPACE_BUCKET,
}

# Global instances (lazy-loaded)
_stores: Dict[str, KVStore] = {}


def create_store(name: str, backend: Optional[str] = None) -> KVStore:
    """Build a store for one of the named buckets ("metadata" or "workspace")."""
    if name not in STORE_BUCKETS:
        raise ValueError(f"Unknown store '{name}'. Available: {list(STORE_BUCKETS)}")
    backend = backend or config.STORE_BACKEND
    if backend == "memory":
        return MemoryKVStore()
    if backend == "s3":
        return S3KVStore(bucket=STORE_BUCKETS[name])
    raise ValueError(f"Unknown store backend '{backend}'")


def get_store(name: str) -> KVStore:
    """Get or create the global store for a bucket name."""
    if name not in _stores:
        _stores[name] = create_store(name)
        logger.info(f"Initialized '{name}' store ({type(_stores[name]).__name__})")
    return _stores[name]
