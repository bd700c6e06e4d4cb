"""Storage provider construction from validated configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from assetsync.exceptions import StorageConfigurationError
from assetsync.storage.config import GitHubStorageConfig, LocalStorageConfig, S3StorageConfig
from assetsync.storage.github import GitHubStorageProvider
from assetsync.storage.local import LocalStorageProvider
from assetsync.storage.s3 import S3StorageProvider

if TYPE_CHECKING:
    from assetsync.config import Settings
    from assetsync.storage.base import StorageProvider
    from assetsync.storage.config import StorageConfig

logger = logging.getLogger(__name__)


def resolve_storage_config(
    settings: Settings, override: StorageConfig | None = None
) -> StorageConfig:
    """Pick the request override, else the configured default.

    Raises StorageConfigurationError when neither is present.
    """
    config = override or settings.storage_config
    if config is None:
        raise StorageConfigurationError("No active storage provider is configured.")
    return config


def create_storage_provider(config: StorageConfig) -> StorageProvider:
    """Instantiate the provider variant described by ``config``."""
    common = {
        "prefix": config.prefix,
        "exclude_regex": config.exclude_regex,
        "max_file_limit": config.max_file_limit,
    }
    try:
        if isinstance(config, S3StorageConfig):
            provider: StorageProvider = S3StorageProvider(
                config.bucket,
                region=config.region,
                endpoint=config.endpoint,
                access_key_id=config.access_key_id,
                secret_access_key=config.secret_access_key,
                custom_domain=config.custom_domain,
                max_attempts=config.max_attempts,
                **common,
            )
        elif isinstance(config, GitHubStorageConfig):
            provider = GitHubStorageProvider(
                config.owner,
                config.repo,
                branch=config.branch,
                token=config.token,
                use_raw_url=config.use_raw_url,
                custom_domain=config.custom_domain,
                **common,
            )
        elif isinstance(config, LocalStorageConfig):
            provider = LocalStorageProvider(
                config.base_path,
                base_url=config.base_url or config.custom_domain,
                **common,
            )
        else:
            msg = f"Unsupported storage provider: {getattr(config, 'provider', config)!r}"
            raise StorageConfigurationError(msg)
    except StorageConfigurationError:
        raise
    except Exception as exc:
        # Bad regexes, malformed endpoints and SDK setup errors.
        msg = f"Invalid {config.provider} storage configuration: {exc}"
        raise StorageConfigurationError(msg) from exc

    logger.debug("Created %s storage provider", provider.name)
    return provider
