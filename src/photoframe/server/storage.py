"""
Photo storage backends for the upload server.

- LocalStorage: files in an uploads directory, served by the app itself
- GCSStorage: objects in a Google Cloud Storage bucket, served from their public url

Both backends are single-writer stores; names are generated by the server so
uploads never overwrite each other.
"""

import os
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from photoframe.common.errors import StorageError
from photoframe.common.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class StoredPhoto:
    """A photo held by a storage backend."""

    name: str
    last_modified: datetime
    public_url: Optional[str] = None  # Set when the backend serves the photo itself
    size: int = 0


def generate_photo_name(original_filename: str) -> str:
    """
    Build a unique storage name: <millis>-<8 hex chars><extension>.
    """
    extension = os.path.splitext(original_filename or '')[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"


class LocalStorage:
    """Stores photos as files in a local directory."""

    name = "local"

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info("LocalStorage initialized: %s", self.directory)

    def path_for(self, name: str) -> Path:
        """Get the file path of a stored photo."""
        return self.directory / name

    def save(self, name: str, data: bytes, content_type: str) -> StoredPhoto:
        """Write a photo to disk."""
        path = self.path_for(name)
        try:
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Could not write {name}: {e}") from e

        logger.info("Stored photo %s (%d bytes)", name, len(data))
        return StoredPhoto(name=name, last_modified=datetime.now(timezone.utc), size=len(data))

    def list(self) -> List[StoredPhoto]:
        """List stored photos, oldest first."""
        photos = []
        try:
            for path in self.directory.iterdir():
                if not path.is_file() or path.name.startswith('.'):
                    continue
                stat = path.stat()
                photos.append(StoredPhoto(
                    name=path.name,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size=stat.st_size,
                ))
        except OSError as e:
            raise StorageError(f"Could not list {self.directory}: {e}") from e
        return sorted(photos, key=lambda photo: photo.last_modified)

    def delete_all(self) -> int:
        """Delete every stored photo, returning how many were removed."""
        removed = 0
        try:
            for path in self.directory.iterdir():
                if path.is_file():
                    path.unlink()
                    removed += 1
        except OSError as e:
            raise StorageError(f"Could not delete photos: {e}") from e

        logger.info("Deleted %d photos from %s", removed, self.directory)
        return removed


class GCSStorage:
    """Stores photos as publicly readable objects in a Cloud Storage bucket."""

    name = "gcs"

    def __init__(self, bucket_name: str, project_id: Optional[str] = None):
        if not bucket_name:
            raise ValueError("A bucket name is required for GCS storage")

        from google.cloud import storage

        self.bucket_name = bucket_name
        self.project_id = project_id or None
        self.client = storage.Client(project=self.project_id)
        self.bucket = self.client.bucket(bucket_name)
        logger.info("GCSStorage initialized: bucket %s", bucket_name)

    def save(self, name: str, data: bytes, content_type: str) -> StoredPhoto:
        """Upload a photo to the bucket."""
        from google.api_core import exceptions as gcs_exceptions

        blob = self.bucket.blob(name)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError(f"Could not upload {name}: {e}") from e

        logger.info("Uploaded photo %s (%d bytes)", name, len(data))
        return StoredPhoto(
            name=name,
            last_modified=blob.updated or datetime.now(timezone.utc),
            public_url=blob.public_url,
            size=len(data),
        )

    def list(self) -> List[StoredPhoto]:
        """List objects in the bucket, oldest first."""
        from google.api_core import exceptions as gcs_exceptions

        try:
            blobs = list(self.client.list_blobs(self.bucket_name, max_results=1000))
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError(f"Could not list bucket {self.bucket_name}: {e}") from e

        photos = [
            StoredPhoto(
                name=blob.name,
                last_modified=blob.updated or datetime.now(timezone.utc),
                public_url=blob.public_url,
                size=blob.size or 0,
            )
            for blob in blobs
        ]
        return sorted(photos, key=lambda photo: photo.last_modified)

    def delete_all(self) -> int:
        """Delete every object in the bucket."""
        from google.api_core import exceptions as gcs_exceptions

        removed = 0
        try:
            for blob in self.client.list_blobs(self.bucket_name):
                blob.delete()
                removed += 1
        except gcs_exceptions.GoogleAPIError as e:
            raise StorageError(f"Could not delete photos: {e}") from e

        logger.info("Deleted %d photos from bucket %s", removed, self.bucket_name)
        return removed


def create_storage(config) -> Union[LocalStorage, GCSStorage]:
    """
    Build the storage backend selected by server.storage ("local" or "gcs").
    """
    backend = config.get('server.storage', 'local')
    if backend == 'gcs':
        return GCSStorage(
            config.get('server.gcs_bucket', ''),
            config.get('server.gcs_project', '')
        )
    if backend == 'local':
        return LocalStorage(os.path.expanduser(config.get('server.upload_dir', 'uploads')))
    raise ValueError(f"Unknown storage backend: {backend!r}")
