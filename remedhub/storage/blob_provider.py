from datetime import datetime, timedelta, timezone
from typing import Optional

from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import (
    BlobServiceClient,
    generate_blob_sas,
    BlobSasPermissions,
)

from ..config import settings
from .provider import StorageProvider


class BlobStorageProvider(StorageProvider):
    name = "blob"

    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self._container = settings.azure_blob_container

    def get_download_url(self, key: str, expires_s: int) -> Optional[str]:
        expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_s)
        sas = generate_blob_sas(
            account_name=self._service.account_name,
            container_name=self._container,
            blob_name=key.lstrip("/"),
            account_key=self._service.credential.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=expiry,
        )
        blob_url = self._service.get_blob_client(self._container, key.lstrip("/")).url
        return f"{blob_url}?{sas}"

    def exists(self, key: str) -> bool:
        client = self._service.get_blob_client(self._container, key.lstrip("/"))
        return client.exists()

    def delete(self, key: str) -> None:
        client = self._service.get_blob_client(self._container, key.lstrip("/"))
        try:
            client.delete_blob(delete_snapshots="include")
        except ResourceNotFoundError:
            # Already gone
            return
