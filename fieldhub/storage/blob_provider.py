from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Optional, Union

import structlog
from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
)

from ..config import settings
from .provider import StorageProvider


log = structlog.get_logger(__name__)

# Read links handed to clients for photos and documents
READ_URL_TTL = timedelta(days=365)


class BlobStorageProvider(StorageProvider):
    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self._container = settings.azure_blob_container

    def _client(self, key: str):
        return self._service.get_blob_client(self._container, key.lstrip("/"))

    def put(self, key: str, data: Union[bytes, BinaryIO], content_type: Optional[str] = None) -> None:
        content = ContentSettings(content_type=content_type) if content_type else None
        self._client(key).upload_blob(data, overwrite=True, content_settings=content)
        log.info("storage_put", provider="blob", key=key)

    def public_url(self, key: str) -> str:
        sas = generate_blob_sas(
            account_name=self._service.account_name,
            container_name=self._container,
            blob_name=key.lstrip("/"),
            account_key=self._service.credential.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + READ_URL_TTL,
        )
        return f"{self._client(key).url}?{sas}"

    def exists(self, key: str) -> bool:
        return self._client(key).exists()

    def delete(self, key: str) -> None:
        try:
            self._client(key).delete_blob()
        except ResourceNotFoundError:
            log.info("storage_delete_missing", key=key)
