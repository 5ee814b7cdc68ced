"""
Storage drivers.

Backend drivers (S3, GCS, Azure) are imported lazily by the factory so their
SDKs are only loaded when used.
"""

from filestore.drivers.base import StorageDriver
from filestore.drivers.local import LocalStorageDriver
from filestore.drivers.presigned import PresignedUploadDriver

__all__ = [
    "StorageDriver",
    "LocalStorageDriver",
    "PresignedUploadDriver",
]
