import asyncio
import logging
import shutil
from functools import lru_cache
from pathlib import Path
from urllib.parse import unquote, urlparse

from src.config import Settings, get_settings
from src.exceptions import UploadFailedError

logger = logging.getLogger(__name__)


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.base_path = Path(self.settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.base_url = self.settings.local_public_base_url.rstrip("/")

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = self.base_path / storage_key
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, storage_key: str) -> str:
        """Get URL for accessing the file."""
        return f"{self.base_url}/{storage_key}"

    def storage_key_from_url(self, url: str) -> str | None:
        """Reverse of get_public_url; None for URLs this store did not issue."""
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            return None
        return unquote(url[len(prefix):]) or None

    async def upload_file(self, local_path: str, storage_key: str, content_type: str | None = None) -> str:
        """Copy a local file into the store and return its public URL."""
        try:
            full_path = self._get_full_path(storage_key)
            await asyncio.to_thread(shutil.copy, local_path, str(full_path))
        except OSError as e:
            logger.error(f"[STORAGE] Local upload failed for {storage_key}: {e}")
            raise UploadFailedError(f"Failed to store {storage_key}", detail=str(e)) from e
        logger.info(f"[STORAGE] Stored {storage_key} ({content_type or 'unknown type'})")
        return self.get_public_url(storage_key)

    def delete_file(self, storage_key: str) -> bool:
        """Delete file."""
        full_path = self.base_path / storage_key
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    async def delete_by_url(self, url: str) -> bool:
        storage_key = self.storage_key_from_url(url)
        if storage_key is None:
            logger.warning(f"[STORAGE] Not a local storage URL, skipping delete: {url}")
            return False
        return self.delete_file(storage_key)

    def file_exists(self, storage_key: str) -> bool:
        """Check if file exists."""
        return (self.base_path / storage_key).exists()

    def get_file_path(self, storage_key: str) -> Path:
        """Get the actual file path for serving."""
        return self.base_path / storage_key


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self, settings: Settings | None = None) -> None:
        from google.cloud import storage

        self.settings = settings or get_settings()
        self._storage = storage
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self):
        if self._client is None:
            if self.settings.gcs_project_id:
                self._client = self._storage.Client(project=self.settings.gcs_project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self.settings.gcs_bucket_name)
        return self._bucket

    def get_public_url(self, storage_key: str) -> str:
        """Get the public URL for a stored file."""
        return f"https://storage.googleapis.com/{self.settings.gcs_bucket_name}/{storage_key}"

    def storage_key_from_url(self, url: str) -> str | None:
        """Object name for a URL in this bucket, or None."""
        parsed = urlparse(url)
        bucket = self.settings.gcs_bucket_name
        path = unquote(parsed.path).lstrip("/")
        if parsed.netloc == "storage.googleapis.com" and path.startswith(f"{bucket}/"):
            return path[len(bucket) + 1:] or None
        if parsed.netloc == f"{bucket}.storage.googleapis.com":
            return path or None
        return None

    async def upload_file(self, local_path: str, storage_key: str, content_type: str | None = None) -> str:
        """Upload a local file to GCS."""
        blob = self.bucket.blob(storage_key)
        try:
            if content_type:
                await asyncio.to_thread(blob.upload_from_filename, local_path, content_type=content_type)
            else:
                await asyncio.to_thread(blob.upload_from_filename, local_path)
        except Exception as e:
            logger.error(f"[STORAGE] GCS upload failed for {storage_key}: {e}")
            raise UploadFailedError(f"Failed to upload {storage_key}", detail=str(e)) from e
        logger.info(f"[STORAGE] Uploaded gs://{self.settings.gcs_bucket_name}/{storage_key}")
        return self.get_public_url(storage_key)

    def delete_file(self, storage_key: str) -> bool:
        """Delete a file from GCS."""
        blob = self.bucket.blob(storage_key)
        if blob.exists():
            blob.delete()
            return True
        return False

    async def delete_by_url(self, url: str) -> bool:
        storage_key = self.storage_key_from_url(url)
        if storage_key is None:
            logger.warning(f"[STORAGE] Not a URL in bucket {self.settings.gcs_bucket_name}, skipping delete: {url}")
            return False
        return await asyncio.to_thread(self.delete_file, storage_key)

    def file_exists(self, storage_key: str) -> bool:
        """Check if a file exists in GCS."""
        blob = self.bucket.blob(storage_key)
        return blob.exists()


StorageService = LocalStorageService | GCSStorageService


@lru_cache
def get_storage_service(settings: Settings | None = None) -> StorageService:
    # Use LocalStorageService or GCSStorageService based on config
    settings = settings or get_settings()
    if settings.use_local_storage:
        return LocalStorageService(settings)
    return GCSStorageService(settings)
