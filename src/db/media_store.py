"""Media (blob) storage for product and vendor images, kept in MongoDB GridFS."""

import logging
from dataclasses import dataclass
from functools import partial
from urllib.parse import quote, unquote

import anyio
from gridfs.errors import NoFile

from src.config import MEDIA_CONFIG
from src.db.mongodb_client import mongo_client

logger = logging.getLogger(__name__)


@dataclass
class MediaFile:
    """An uploaded file waiting to be stored."""

    filename: str | None
    content: bytes
    content_type: str | None = None

    @property
    def extension(self) -> str:
        if self.filename and "." in self.filename:
            return self.filename.rsplit(".", 1)[-1].lower()
        return "jpg"


def extract_storage_path(url: str | None, bucket: str) -> str | None:
    """Recover the storage path of an object from its public URL, or None if the URL is not in ``bucket``."""
    if not url:
        return None

    marker = f"/object/public/{bucket}/"
    idx = url.find(marker)
    if idx != -1:
        return unquote(url[idx + len(marker):]) or None

    marker = f"/{bucket}/"
    idx = url.find(marker)
    if idx != -1:
        return unquote(url[idx + len(marker):]) or None

    parts = url.split(f"{bucket}/")
    if len(parts) < 2:
        return None
    return unquote(parts[-1]) or None


class MediaStore:
    def __init__(self, client=mongo_client, public_base_url: str = MEDIA_CONFIG["public_base_url"]):
        self.client = client
        self.public_base_url = public_base_url

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_base_url}/object/public/{bucket}/{quote(path)}"

    def _upload(self, bucket: str, path: str, data: bytes, content_type: str | None):
        grid = self.client.get_bucket(bucket)
        # replace any previous object stored under the same path
        for previous in grid.find({"filename": path}):
            grid.delete(previous._id)
        grid.upload_from_stream(path, data, metadata={"contentType": content_type or "application/octet-stream"})

    def _remove(self, bucket: str, paths: list[str]) -> list[str]:
        grid = self.client.get_bucket(bucket)
        removed = []
        for path in paths:
            for stored in grid.find({"filename": path}):
                grid.delete(stored._id)
                removed.append(path)
        return removed

    def _download(self, bucket: str, path: str) -> tuple[bytes, str] | None:
        grid = self.client.get_bucket(bucket)
        try:
            stream = grid.open_download_stream_by_name(path)
        except NoFile:
            return None
        content_type = (stream.metadata or {}).get("contentType", "application/octet-stream")
        return stream.read(), content_type

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None) -> str:
        """Store ``data`` under ``bucket``/``path`` and return its public URL."""
        await anyio.to_thread.run_sync(partial(self._upload, bucket, path, data, content_type))
        logger.info(f"Stored media object {bucket}/{path} ({len(data)} bytes)")
        return self.public_url(bucket, path)

    async def remove(self, bucket: str, paths: list[str]) -> list[str]:
        """Remove objects by path. Returns the paths that were actually found and removed."""
        if not paths:
            return []
        return await anyio.to_thread.run_sync(partial(self._remove, bucket, list(paths)))

    async def download(self, bucket: str, path: str) -> tuple[bytes, str] | None:
        return await anyio.to_thread.run_sync(partial(self._download, bucket, path))


# Singleton instance
media_store = MediaStore()
