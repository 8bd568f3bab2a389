from ..config import settings
from .provider import StorageProvider
from .local_provider import LocalStorageProvider


def get_storage() -> StorageProvider:
    """Get storage provider based on configuration"""
    if settings.storage_provider == "blob" or (settings.azure_blob_connection and settings.azure_blob_container):
        from .blob_provider import BlobStorageProvider
        return BlobStorageProvider()
    return LocalStorageProvider()
