from typing import Optional


class StorageProvider:
    """Object storage keyed by the opaque locator stored on a photo record."""

    name: str = "base"

    def get_download_url(self, key: str, expires_s: int) -> Optional[str]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove the object. Missing objects are not an error; anything else raises."""
        raise NotImplementedError
