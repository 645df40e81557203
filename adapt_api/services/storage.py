from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import unquote_to_bytes

import requests

from adapt_api.config import get_settings
from adapt_api.services.errors import SourceFetchError, StorageError

logger = logging.getLogger(__name__)


class LocalBlobStorage:
    """
    Filesystem-backed blob storage with public URLs.

    Blobs live under `<base_dir>/<path>` and are published at
    `<public_base_url>/<path>`; the app serves `base_dir` as static files.
    Can later be replaced by an object store without changing callers.
    """

    def __init__(self, base_dir: Path, public_base_url: str) -> None:
        self._base_dir = base_dir
        self._public_base_url = public_base_url.rstrip("/")
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise StorageError(f"Refusing blob path outside storage root: {path}")
        return self._base_dir.joinpath(*relative.parts)

    def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{path}"

    def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        """Write `data` to `path` (overwriting) and return its public URL."""
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Storage upload failed for {path}: {exc}") from exc
        logger.debug("Uploaded %s (%d bytes, %s)", path, len(data), content_type)
        return self.public_url(path)

    def remove(self, paths: Iterable[str]) -> None:
        """Delete blobs; missing ones are ignored."""
        failed: List[str] = []
        for path in paths:
            try:
                self._resolve(path).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove blob %s: %s", path, exc)
                failed.append(path)
        if failed:
            raise StorageError(f"Storage remove failed for: {', '.join(failed)}")

    def read_public_url(self, url: str) -> Optional[bytes]:
        """Read a blob back by its public URL, or None if the URL is not ours."""
        prefix = self._public_base_url + "/"
        if not url.startswith(prefix):
            return None
        target = self._resolve(url[len(prefix) :])
        try:
            return target.read_bytes()
        except OSError as exc:
            raise SourceFetchError(f"Failed to read stored blob {url}: {exc}") from exc


def _decode_data_url(url: str) -> bytes:
    header, sep, payload = url[len("data:") :].partition(",")
    if not sep:
        raise SourceFetchError("Malformed data URL: missing ',' separator")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SourceFetchError(f"Malformed base64 in data URL: {exc}") from exc
    return unquote_to_bytes(payload)


def fetch_bytes(url: str, storage: LocalBlobStorage | None = None, timeout: float = 30.0) -> bytes:
    """
    Download a URL, short-circuiting URLs that point into our own storage.

    `data:` URLs are decoded in place. Raises `SourceFetchError` on any
    transport or HTTP failure.
    """
    if url.startswith("data:"):
        return _decode_data_url(url)

    if storage is not None:
        local = storage.read_public_url(url)
        if local is not None:
            return local

    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as exc:
        raise SourceFetchError(f"Failed to fetch image {url}: {exc}") from exc
    return response.content


_default_storage: LocalBlobStorage | None = None


def get_blob_storage() -> LocalBlobStorage:
    """Return the process-wide blob storage instance."""
    global _default_storage
    if _default_storage is None:
        settings = get_settings()
        _default_storage = LocalBlobStorage(
            base_dir=Path(settings.storage_dir),
            public_base_url=settings.public_base_url,
        )
    return _default_storage
