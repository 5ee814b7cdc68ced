"""Factory for creating storage drivers from configuration."""

import logging
import weakref
from functools import lru_cache

from filestore.config import StorageConfig, validate_storage_config
from filestore.drivers.base import StorageDriver
from filestore.exceptions import ConfigurationError
from filestore.schemas import StorageDriverKind

logger = logging.getLogger(__name__)

MAX_CACHED_DRIVERS = 100

# Cached drivers can be shared by several managers; count who holds each one
_driver_users: "weakref.WeakKeyDictionary[StorageDriver, int]" = weakref.WeakKeyDictionary()


def _build_backend(config: StorageConfig, provider: str) -> StorageDriver:
    # Import backends lazily so unused SDKs are never loaded
    if provider == "s3":
        from filestore.drivers.s3 import S3StorageDriver

        return S3StorageDriver(config)
    if provider == "gcs":
        from filestore.drivers.gcs import GCSStorageDriver

        return GCSStorageDriver(config)
    if provider == "azure":
        from filestore.drivers.azure import AzureStorageDriver

        return AzureStorageDriver(config)

    from filestore.drivers.local import LocalStorageDriver

    return LocalStorageDriver(config)


@lru_cache(maxsize=MAX_CACHED_DRIVERS)
def create_driver(config: StorageConfig) -> StorageDriver:
    """
    Create (or return the cached) driver for a configuration.

    Drivers are cached per config, so equal configs share one driver.

    Args:
        config: Storage configuration

    Returns:
        Configured StorageDriver instance

    Raises:
        ConfigurationError: If the config is invalid or the driver cannot be built
    """
    validation = validate_storage_config(config)
    if not validation.is_valid:
        raise ConfigurationError(
            f"Invalid storage configuration: {'; '.join(validation.errors)}",
            driver=config.driver,
            errors=validation.errors,
        )

    kind = config.driver_kind
    driver = _build_backend(config, kind.provider)
    if kind.is_presigned:
        from filestore.drivers.presigned import PresignedUploadDriver

        driver = PresignedUploadDriver(driver)

    logger.info(f"[{driver.driver_name}] Created storage driver")
    return driver


def clear_driver_cache() -> None:
    """Forget all cached drivers. Does not close them."""
    create_driver.cache_clear()


def retain_driver(driver: StorageDriver) -> StorageDriver:
    """Register one more holder of a (possibly shared) driver."""
    _driver_users[driver] = _driver_users.get(driver, 0) + 1
    return driver


async def release_driver(driver: StorageDriver) -> bool:
    """
    Drop one holder of a driver; close it when the last holder lets go.

    A closed driver is also evicted from the cache so it is never handed out
    again. Other cached drivers are rebuilt on next use.

    Returns:
        True if the driver was closed
    """
    remaining = _driver_users.get(driver, 0) - 1
    if remaining > 0:
        _driver_users[driver] = remaining
        return False

    _driver_users.pop(driver, None)
    clear_driver_cache()
    await driver.close()
    logger.info(f"[{driver.driver_name}] Closed storage driver")
    return True


def available_drivers() -> list[str]:
    return [kind.value for kind in StorageDriverKind]
