"""
Durable Object Store

Key-addressed blob storage for cached images with:
- head(key): existence + metadata, no body transfer
- get(key): body + content type, ObjectNotFound if absent
- put(key, body, content_type): body is bytes or an async iterator of chunks

Backends:
- FileObjectStore: local directory with a metadata.json index
- S3ObjectStore: S3 / R2 / MinIO bucket through boto3
"""

import asyncio
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Protocol, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import ConfigurationError, Settings

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"

Body = Union[bytes, AsyncIterator[bytes]]


class ObjectStoreError(RuntimeError):
    """Store unreachable or an operation failed."""


class ObjectNotFound(KeyError):
    """No object under the requested key."""


@dataclass
class ObjectInfo:
    """Metadata for a stored object."""
    key: str
    content_type: str
    size_bytes: int
    created_at: float


@dataclass
class StoredObject:
    """Object body plus its metadata."""
    info: ObjectInfo
    data: bytes

    @property
    def content_type(self) -> str:
        return self.info.content_type


class ObjectStore(Protocol):
    async def head(self, key: str) -> Optional[ObjectInfo]: ...

    async def get(self, key: str) -> StoredObject: ...

    async def put(self, key: str, body: Body, content_type: str) -> ObjectInfo: ...


async def _iter_body(body: Body) -> AsyncIterator[bytes]:
    if isinstance(body, (bytes, bytearray)):
        yield bytes(body)
        return
    async for chunk in body:
        yield chunk


# ============================================
# File backend
# ============================================

class FileObjectStore:
    """
    Stores objects as files under a root directory.

    Layout:
    root/
    ├── images/
    │   ├── 1f2e3d4c-....jpg
    │   └── ...
    └── metadata.json

    Writes go to a temp file that is renamed into place, so two writers of
    the same key end with one complete copy (last write wins).
    """

    def __init__(self, root: str = "./image_store"):
        self.root = Path(root)
        self.metadata_file = self.root / "metadata.json"

        self._metadata: Dict[str, ObjectInfo] = {}
        self._lock = asyncio.Lock()

        self.root.mkdir(parents=True, exist_ok=True)
        self._load_metadata()
        logger.info(f"[ObjectStore] File store root: {self.root}")

    def _load_metadata(self) -> None:
        """Load metadata index from disk."""
        if not self.metadata_file.exists():
            self._metadata = {}
            return
        try:
            with open(self.metadata_file, "r") as f:
                data = json.load(f)
            self._metadata = {k: ObjectInfo(**v) for k, v in data.items()}
            logger.info(f"[ObjectStore] Loaded {len(self._metadata)} entries")
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"[ObjectStore] Failed to load metadata: {e}")
            self._metadata = {}

    def _save_metadata(self) -> None:
        data = {k: asdict(v) for k, v in self._metadata.items()}
        tmp = self.metadata_file.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.metadata_file)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ObjectNotFound(key)
        return path

    async def head(self, key: str) -> Optional[ObjectInfo]:
        try:
            path = self._path_for(key)
        except ObjectNotFound:
            return None
        if not path.exists():
            return None
        info = self._metadata.get(key)
        if info is None:
            # File written by another process, index not reloaded yet
            stat = path.stat()
            info = ObjectInfo(
                key=key,
                content_type=DEFAULT_CONTENT_TYPE,
                size_bytes=stat.st_size,
                created_at=stat.st_mtime,
            )
        return info

    async def get(self, key: str) -> StoredObject:
        info = await self.head(key)
        if info is None:
            raise ObjectNotFound(key)
        try:
            with open(self._path_for(key), "rb") as f:
                data = f.read()
        except FileNotFoundError as e:
            raise ObjectNotFound(key) from e
        except OSError as e:
            raise ObjectStoreError(f"Failed to read {key}: {e}") from e
        return StoredObject(info=info, data=data)

    async def put(self, key: str, body: Body, content_type: str) -> ObjectInfo:
        path = self._path_for(key)
        size = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".part")
            try:
                with os.fdopen(fd, "wb") as f:
                    async for chunk in _iter_body(body):
                        f.write(chunk)
                        size += len(chunk)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise ObjectStoreError(f"Failed to write {key}: {e}") from e

        info = ObjectInfo(
            key=key,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            size_bytes=size,
            created_at=time.time(),
        )
        async with self._lock:
            self._metadata[key] = info
            try:
                self._save_metadata()
            except OSError as e:
                logger.error(f"[ObjectStore] Failed to save metadata: {e}")
        logger.debug(f"[ObjectStore] Stored {key} ({size} bytes)")
        return info


# ============================================
# S3 / R2 backend
# ============================================

class S3ObjectStore:
    """
    S3-compatible bucket storage (AWS S3, Cloudflare R2, MinIO).

    boto3 is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.client = client if client is not None else boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @staticmethod
    def _is_not_found(error: ClientError) -> bool:
        code = str(error.response.get("Error", {}).get("Code", ""))
        return code in ("404", "NoSuchKey", "NotFound")

    async def head(self, key: str) -> Optional[ObjectInfo]:
        try:
            response = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=key
            )
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise ObjectStoreError(f"head_object failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"head_object failed for {key}: {e}") from e

        modified = response.get("LastModified")
        return ObjectInfo(
            key=key,
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
            size_bytes=int(response.get("ContentLength", 0)),
            created_at=modified.timestamp() if modified else 0.0,
        )

    async def get(self, key: str) -> StoredObject:
        try:
            response = await asyncio.to_thread(
                self.client.get_object, Bucket=self.bucket, Key=key
            )
            data = await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if self._is_not_found(e):
                raise ObjectNotFound(key) from e
            raise ObjectStoreError(f"get_object failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"get_object failed for {key}: {e}") from e

        modified = response.get("LastModified")
        info = ObjectInfo(
            key=key,
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
            size_bytes=len(data),
            created_at=modified.timestamp() if modified else 0.0,
        )
        return StoredObject(info=info, data=data)

    async def put(self, key: str, body: Body, content_type: str) -> ObjectInfo:
        chunks = [chunk async for chunk in _iter_body(body)]
        data = b"".join(chunks)
        content_type = content_type or DEFAULT_CONTENT_TYPE
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError(f"put_object failed for {key}: {e}") from e
        return ObjectInfo(
            key=key,
            content_type=content_type,
            size_bytes=len(data),
            created_at=time.time(),
        )


def build_object_store(settings: Settings) -> ObjectStore:
    """Create the store selected by ``IMAGE_STORE_BACKEND``."""
    if settings.image_store_backend == "s3":
        if not settings.s3_bucket:
            raise ConfigurationError("S3_BUCKET")
        return S3ObjectStore(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            region=settings.s3_region,
        )
    return FileObjectStore(settings.image_store_dir)
