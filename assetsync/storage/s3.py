"""S3 (and S3-compatible) storage provider backed by boto3.

boto3 is synchronous; every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from assetsync.storage.base import StorageObject, StorageProvider

logger = logging.getLogger(__name__)


def _strip_etag(etag: str | None) -> str | None:
    if etag is None:
        return None
    return etag.strip('"') or None


class S3StorageProvider(StorageProvider):
    """Objects in one bucket, optionally below a key prefix."""

    name = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        custom_domain: str | None = None,
        max_attempts: int = 3,
        prefix: str | None = None,
        exclude_regex: str | None = None,
        max_file_limit: int | None = None,
        client: Any = None,
    ) -> None:
        super().__init__(prefix=prefix, exclude_regex=exclude_regex, max_file_limit=max_file_limit)
        self.bucket = bucket
        self.region = region
        self.endpoint = endpoint
        self.custom_domain = custom_domain.rstrip("/") if custom_domain else None
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=region,
            )
            client = session.client(
                "s3",
                endpoint_url=endpoint,
                config=Config(retries={"max_attempts": max_attempts, "mode": "standard"}),
            )
        self._client = client

    def _list_sync(self) -> list[StorageObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        params: dict[str, str] = {"Bucket": self.bucket}
        if self.prefix:
            params["Prefix"] = f"{self.prefix}/"
        entries: list[StorageObject] = []
        for page in paginator.paginate(**params):
            for item in page.get("Contents", []):
                key = item["Key"]
                if key.endswith("/"):
                    continue
                entries.append(
                    StorageObject(
                        key=key,
                        size=item.get("Size"),
                        etag=_strip_etag(item.get("ETag")),
                        last_modified=item.get("LastModified"),
                    )
                )
        logger.debug("Listed %d objects from s3://%s/%s", len(entries), self.bucket, self.prefix)
        return entries

    async def list_all_files(self) -> list[StorageObject]:
        return await asyncio.to_thread(self._list_sync)

    def _get_sync(self, key: str) -> bytes | None:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=self._full_key(key))
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                return None
            raise
        body: bytes = response["Body"].read()
        return body

    async def get_file(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._get_sync, key)

    def _put_sync(self, key: str, data: bytes) -> StorageObject:
        full_key = self._full_key(key)
        self._client.put_object(Bucket=self.bucket, Key=full_key, Body=data)
        head = self._client.head_object(Bucket=self.bucket, Key=full_key)
        return StorageObject(
            key=full_key,
            size=head.get("ContentLength", len(data)),
            etag=_strip_etag(head.get("ETag")),
            last_modified=head.get("LastModified"),
        )

    async def upload_file(self, key: str, data: bytes) -> StorageObject:
        return await asyncio.to_thread(self._put_sync, key, data)

    async def delete_file(self, key: str) -> None:
        await asyncio.to_thread(
            self._client.delete_object, Bucket=self.bucket, Key=self._full_key(key)
        )

    def generate_public_url(self, key: str) -> str:
        full_key = quote(self._full_key(key))
        if self.custom_domain:
            return f"{self.custom_domain}/{full_key}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{full_key}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{full_key}"
