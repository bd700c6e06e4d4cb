"""Storage provider configuration schemas.

The set of providers is closed: each variant is tagged by ``provider`` and
validated as one arm of a discriminated union.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class _ProviderConfigBase(BaseModel):
    prefix: str | None = None
    custom_domain: str | None = None
    exclude_regex: str | None = None
    max_file_limit: int | None = Field(default=None, gt=0)


class S3StorageConfig(_ProviderConfigBase):
    """S3 or S3-compatible bucket."""

    provider: Literal["s3"] = "s3"
    bucket: str = Field(min_length=1)
    region: str | None = None
    endpoint: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    max_attempts: int = Field(default=3, ge=1)


class GitHubStorageConfig(_ProviderConfigBase):
    """GitHub repository used as an image store."""

    provider: Literal["github"] = "github"
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    branch: str = "main"
    token: str | None = None
    use_raw_url: bool = True


class LocalStorageConfig(_ProviderConfigBase):
    """Directory on the local filesystem."""

    provider: Literal["local"] = "local"
    base_path: Path
    base_url: str | None = None


StorageConfig = Annotated[
    S3StorageConfig | GitHubStorageConfig | LocalStorageConfig,
    Field(discriminator="provider"),
]
