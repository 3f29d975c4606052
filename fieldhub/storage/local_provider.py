"""
Local filesystem storage provider for development.
Saves files to a local directory instead of Azure Blob Storage.
"""
from pathlib import Path
from typing import BinaryIO, Optional, Union
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider


log = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider for development."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key."""
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / clean_key

    def put(self, key: str, data: Union[bytes, BinaryIO], content_type: Optional[str] = None) -> None:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data.read() if hasattr(data, "read") else data)
        log.info("storage_put", provider="local", key=key)

    def public_url(self, key: str) -> str:
        return f"{settings.public_base_url}/files/local/{quote(key.lstrip('/'))}"

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        if path.exists():
            path.unlink()

    def resolve(self, key: str) -> Optional[Path]:
        """Path of a stored file, or None when it is missing or outside the storage dir."""
        path = self._get_path(key).resolve()
        if not str(path).startswith(str(self.base_dir.resolve())) or not path.is_file():
            return None
        return path
