"""GitHub repository storage provider using the REST API via httpx."""

from __future__ import annotations

import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from assetsync.storage.base import StorageObject, StorageProvider

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
_TIMEOUT = 30.0


class GitHubStorageProvider(StorageProvider):
    """Files committed to one branch of a repository.

    The git tree listing carries no modification time, so objects from this
    provider hash on blob SHA and size only.
    """

    name = "github"

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        branch: str = "main",
        token: str | None = None,
        use_raw_url: bool = True,
        custom_domain: str | None = None,
        prefix: str | None = None,
        exclude_regex: str | None = None,
        max_file_limit: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(prefix=prefix, exclude_regex=exclude_regex, max_file_limit=max_file_limit)
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.token = token
        self.use_raw_url = use_raw_url
        self.custom_domain = custom_domain.rstrip("/") if custom_domain else None
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            base_url=GITHUB_API_URL,
            headers=headers,
            timeout=_TIMEOUT,
            transport=self._transport,
        )

    def _contents_path(self, key: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{quote(self._full_key(key))}"

    async def list_all_files(self) -> list[StorageObject]:
        async with self._client() as client:
            resp = await client.get(
                f"/repos/{self.owner}/{self.repo}/git/trees/{quote(self.branch)}",
                params={"recursive": "1"},
            )
            resp.raise_for_status()
            data: dict[str, Any] = resp.json()

        if data.get("truncated"):
            # A partial listing would read as deleted objects downstream
            msg = f"GitHub tree listing for {self.owner}/{self.repo} was truncated"
            logger.error(msg)
            raise OSError(msg)

        entries: list[StorageObject] = []
        scope = f"{self.prefix}/" if self.prefix else ""
        for item in data.get("tree", []):
            if item.get("type") != "blob":
                continue
            path = item["path"]
            if scope and not path.startswith(scope):
                continue
            entries.append(StorageObject(key=path, size=item.get("size"), etag=item.get("sha")))
        return entries

    async def _file_sha(self, client: httpx.AsyncClient, key: str) -> str | None:
        resp = await client.get(self._contents_path(key), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        sha: str | None = resp.json().get("sha")
        return sha

    async def get_file(self, key: str) -> bytes | None:
        async with self._client() as client:
            resp = await client.get(
                self._contents_path(key),
                params={"ref": self.branch},
                headers={"Accept": "application/vnd.github.raw+json"},
            )
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.content

    async def upload_file(self, key: str, data: bytes) -> StorageObject:
        full_key = self._full_key(key)
        async with self._client() as client:
            body: dict[str, Any] = {
                "message": f"Upload {full_key}",
                "content": base64.b64encode(data).decode("ascii"),
                "branch": self.branch,
            }
            existing_sha = await self._file_sha(client, key)
            if existing_sha:
                body["sha"] = existing_sha
            resp = await client.put(self._contents_path(key), json=body)
            resp.raise_for_status()
            content = resp.json().get("content", {})
        return StorageObject(key=full_key, size=content.get("size", len(data)), etag=content.get("sha"))

    async def delete_file(self, key: str) -> None:
        async with self._client() as client:
            sha = await self._file_sha(client, key)
            if sha is None:
                return
            resp = await client.request(
                "DELETE",
                self._contents_path(key),
                json={"message": f"Delete {self._full_key(key)}", "sha": sha, "branch": self.branch},
            )
            resp.raise_for_status()

    def generate_public_url(self, key: str) -> str:
        full_key = quote(self._full_key(key))
        if self.custom_domain:
            return f"{self.custom_domain}/{full_key}"
        if self.use_raw_url:
            return (
                f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/{self.branch}/{full_key}"
            )
        return f"https://github.com/{self.owner}/{self.repo}/blob/{self.branch}/{full_key}?raw=true"
