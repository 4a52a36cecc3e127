"""
Local and S3 file access for models, input streams and result sinks.

Paths starting with ``s3://`` are served through boto3, ``-`` stands for
stdin/stdout, everything else is a local path.
"""

import io
import shutil
import sys
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Iterator, List, Literal, Optional
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..models.exceptions import InputOutputError
from .project_logger import get_logger

STDIO = "-"


@dataclass
class StorageLocation:
    """Represents a storage location for models and data."""
    uri: str
    storage_type: Literal["s3", "local", "stdio"]

    @property
    def is_s3(self) -> bool:
        return self.storage_type == "s3"

    @property
    def bucket(self) -> str:
        return urlparse(self.uri).netloc

    @property
    def key(self) -> str:
        return urlparse(self.uri).path.lstrip("/")


def parse_storage_location(path: str) -> StorageLocation:
    """Parse a path string (S3 URI, ``-`` or local path) into a storage location."""
    if path == STDIO:
        return StorageLocation(uri=STDIO, storage_type="stdio")
    if path.startswith("s3://"):
        return StorageLocation(uri=path, storage_type="s3")
    return StorageLocation(uri=str(Path(path).absolute()), storage_type="local")


def join_path(base: str, name: str) -> str:
    if base.startswith("s3://"):
        return f"{base.rstrip('/')}/{name}"
    return str(Path(base) / name)


class S3Writer(io.StringIO):
    """Text buffer uploaded to S3 when closed."""

    def __init__(self, client: Any, bucket: str, key: str) -> None:
        super().__init__()
        self.client = client
        self.bucket = bucket
        self.key = key

    def close(self) -> None:
        if self.closed:
            return
        body = self.getvalue().encode("utf-8")
        super().close()
        try:
            self.client.put_object(Bucket=self.bucket, Key=self.key, Body=body)
        except (BotoCoreError, ClientError) as e:
            raise InputOutputError(f"Failed to upload s3://{self.bucket}/{self.key}: {e}") from e


class FileSystem:
    """Uniform read/write/walk over local paths, S3 URIs and stdio."""

    def __init__(
        self,
        *,
        s3_client: Optional[Any] = None,
        region: Optional[str] = None,
        logger: Optional[Any] = None
    ) -> None:
        self._s3 = s3_client
        self.region = region
        self.logger = logger or get_logger("file_system")

    @property
    def s3(self) -> Any:
        if self._s3 is None:
            self._s3 = boto3.client("s3", region_name=self.region)
        return self._s3

    def exists(self, path: str) -> bool:
        location = parse_storage_location(path)
        if location.storage_type == "stdio":
            return True
        if not location.is_s3:
            return Path(location.uri).exists()
        try:
            response = self.s3.list_objects_v2(Bucket=location.bucket, Prefix=location.key, MaxKeys=1)
        except (BotoCoreError, ClientError) as e:
            raise InputOutputError(f"Failed to list {path}: {e}") from e
        return response.get("KeyCount", 0) > 0

    def walk(self, path: str) -> List[str]:
        """All files below ``path`` in sorted order; a file yields itself.

        Raises:
            InputOutputError: If the path does not exist or cannot be listed
        """
        location = parse_storage_location(path)
        if location.storage_type == "stdio":
            return [STDIO]
        if location.is_s3:
            return self._walk_s3(location)

        local_path = Path(location.uri)
        if local_path.is_file():
            return [str(local_path)]
        if local_path.is_dir():
            return sorted(str(p) for p in local_path.rglob("*") if p.is_file())
        raise InputOutputError(f"Input path {path} does not exist")

    def _walk_s3(self, location: StorageLocation) -> List[str]:
        keys = []
        try:
            paginator = self.s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=location.bucket, Prefix=location.key):
                for obj in page.get("Contents", []):
                    if not obj["Key"].endswith("/"):
                        keys.append(obj["Key"])
        except (BotoCoreError, ClientError) as e:
            raise InputOutputError(f"Failed to list {location.uri}: {e}") from e
        if not keys:
            raise InputOutputError(f"Input path {location.uri} does not exist")
        return [f"s3://{location.bucket}/{key}" for key in sorted(keys)]

    def iter_lines(self, path: str) -> Iterator[str]:
        """Yield the text lines of a file, S3 object or stdin without line endings."""
        location = parse_storage_location(path)
        if location.storage_type == "stdio":
            for line in sys.stdin:
                yield line.rstrip("\r\n")
            return
        if location.is_s3:
            try:
                body = self.s3.get_object(Bucket=location.bucket, Key=location.key)["Body"]
                for line in body.iter_lines():
                    yield line.decode("utf-8")
            except (BotoCoreError, ClientError) as e:
                raise InputOutputError(f"Failed to read {path}: {e}") from e
            return
        try:
            with open(location.uri, "r", encoding="utf-8") as f:
                for line in f:
                    yield line.rstrip("\r\n")
        except OSError as e:
            raise InputOutputError(f"Failed to read {path}: {e}") from e

    def read_bytes(self, path: str) -> bytes:
        location = parse_storage_location(path)
        try:
            if location.is_s3:
                return self.s3.get_object(Bucket=location.bucket, Key=location.key)["Body"].read()
            return Path(location.uri).read_bytes()
        except (BotoCoreError, ClientError, OSError) as e:
            raise InputOutputError(f"Failed to read {path}: {e}") from e

    def make_dirs(self, path: str) -> None:
        location = parse_storage_location(path)
        if location.storage_type != "local":
            return
        try:
            Path(location.uri).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InputOutputError(f"Failed to create directory {path}: {e}") from e

    def new_writer(self, path: str) -> IO[str]:
        """Open a text sink; S3 sinks upload their content on ``close()``."""
        location = parse_storage_location(path)
        if location.storage_type == "stdio":
            return sys.stdout
        if location.is_s3:
            return S3Writer(self.s3, location.bucket, location.key)
        try:
            return open(location.uri, "w", encoding="utf-8")
        except OSError as e:
            raise InputOutputError(f"Failed to open {path} for writing: {e}") from e

    @contextmanager
    def local_copy(self, path: str) -> Iterator[str]:
        """Yield a local directory holding the contents of ``path``.

        Local directories are yielded as they are; S3 prefixes are downloaded
        into a temporary directory removed on exit.
        """
        location = parse_storage_location(path)
        if not location.is_s3:
            yield location.uri
            return

        tmp_dir = tempfile.mkdtemp(prefix="nlp_pipelines_")
        try:
            prefix = location.key.rstrip("/")
            for file_uri in self._walk_s3(location):
                key = parse_storage_location(file_uri).key
                local_file = Path(tmp_dir) / Path(key).relative_to(prefix)
                local_file.parent.mkdir(parents=True, exist_ok=True)
                try:
                    self.s3.download_file(location.bucket, key, str(local_file))
                except (BotoCoreError, ClientError) as e:
                    raise InputOutputError(f"Failed to download {file_uri}: {e}") from e
            self.logger.info(f"Downloaded {path} to {tmp_dir}")
            yield tmp_dir
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)
