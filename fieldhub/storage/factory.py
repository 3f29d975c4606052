from ..config import settings
from .blob_provider import BlobStorageProvider
from .local_provider import LocalStorageProvider
from .provider import StorageProvider


def get_storage() -> StorageProvider:
    """Get storage provider based on configuration"""
    if settings.storage_provider == "blob" or (settings.azure_blob_connection and settings.azure_blob_container):
        return BlobStorageProvider()
    return LocalStorageProvider()
