"""
Local filesystem storage provider for development.
Keeps completion photos under a local directory instead of Azure Blob Storage.
"""
from typing import Optional
from pathlib import Path
from urllib.parse import quote

from ..config import settings
from .provider import StorageProvider


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider for development."""

    name = "local"

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir)
        (self.base_dir / "uploads").mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key, confined to the uploads directory."""
        root = (self.base_dir / "uploads").resolve()
        path = (root / key.lstrip("/").replace("\\", "/")).resolve()
        if path == root or root not in path.parents:
            raise ValueError(f"Storage key {key!r} resolves outside the storage directory")
        return path

    def get_download_url(self, key: str, expires_s: int) -> Optional[str]:
        if self._get_path(key).exists():
            return f"{settings.public_base_url}/files/local/{quote(key.lstrip('/'))}"
        return None

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def delete(self, key: str) -> None:
        # OSError and out-of-tree keys propagate so the caller can surface a release warning
        self._get_path(key).unlink(missing_ok=True)
