import os
import pathlib
import uuid
from typing import BinaryIO, Tuple
from urllib.parse import unquote, urlparse

from google.cloud import storage

ALLOWED_MIME_TYPES = {
    "image/jpeg": "image",
    "image/png": "image",
    "image/gif": "image",
    "image/webp": "image",
    "application/pdf": "document",
    "application/msword": "document",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "document",
    "application/vnd.ms-excel": "document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "document",
    "text/plain": "document",
}


class StorageError(Exception):
    pass


def file_type_for(mime_type: str) -> str:
    kind = ALLOWED_MIME_TYPES.get(mime_type)
    if kind is None:
        raise StorageError(f"Dateityp nicht erlaubt: {mime_type}")
    return kind


def unique_name(original_name: str) -> str:
    suffix = pathlib.Path(original_name or "").suffix.lower()
    return f"{uuid.uuid4().hex}{suffix}"


class StorageClient:
    """Stores uploads on local disk, or in a GCS bucket when ``GCS_BUCKET`` is set."""

    def __init__(self) -> None:
        self.bucket_name = os.getenv("GCS_BUCKET")
        self.use_local = os.getenv("LOCAL_STORAGE", "0") == "1" or not self.bucket_name
        self.base_dir = pathlib.Path(os.getenv("LOCAL_STORAGE_DIR", "uploads")).resolve()
        if self.use_local:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._client = storage.Client() if self.bucket_name and not self.use_local else None

    def _ensure_bucket(self):
        if not self.bucket_name or not self._client:
            raise StorageError("GCS_BUCKET ist nicht konfiguriert.")
        return self._client.bucket(self.bucket_name)

    def upload_file(
        self,
        file_obj: BinaryIO,
        dest_path: str,
        content_type: str,
        max_bytes: int | None = None,
    ) -> Tuple[str, int]:
        total = 0
        if self.use_local:
            full_path = self.base_dir / dest_path
            full_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                with open(full_path, "wb") as handle:
                    while True:
                        chunk = file_obj.read(1024 * 1024)
                        if not chunk:
                            break
                        total += len(chunk)
                        if max_bytes and total > max_bytes:
                            raise StorageError("Datei überschreitet die maximale Größe.")
                        handle.write(chunk)
            except StorageError:
                full_path.unlink(missing_ok=True)
                raise
            return full_path.as_uri(), total

        content = file_obj.read(max_bytes + 1 if max_bytes else -1)
        total = len(content)
        if max_bytes and total > max_bytes:
            raise StorageError("Datei überschreitet die maximale Größe.")
        blob = self._ensure_bucket().blob(dest_path)
        blob.upload_from_string(content, content_type=content_type)
        return f"gs://{self.bucket_name}/{dest_path}", total

    def read_bytes(self, file_url: str) -> bytes:
        if file_url.startswith("file://"):
            return pathlib.Path(self._local_path(file_url)).read_bytes()
        if file_url.startswith("gs://"):
            bucket_name, blob_path = file_url[len("gs://") :].split("/", 1)
            client = self._client or storage.Client()
            return client.bucket(bucket_name).blob(blob_path).download_as_bytes()
        raise StorageError("Datei-URL wird nicht unterstützt.")

    def delete(self, file_url: str) -> None:
        if file_url.startswith("file://"):
            pathlib.Path(self._local_path(file_url)).unlink(missing_ok=True)
            return
        if file_url.startswith("gs://"):
            bucket_name, blob_path = file_url[len("gs://") :].split("/", 1)
            client = self._client or storage.Client()
            client.bucket(bucket_name).blob(blob_path).delete()
            return
        raise StorageError("Datei-URL wird nicht unterstützt.")

    @staticmethod
    def _local_path(file_url: str) -> str:
        return unquote(urlparse(file_url).path)
