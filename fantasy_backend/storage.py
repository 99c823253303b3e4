"""
Object storage for performer images: presigned upload/download URLs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import boto3
from botocore.config import Config

IMAGE_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def performer_image_path(performer_id: str, content_type: str) -> str:
    return f"performers/{performer_id}/image.{IMAGE_CONTENT_TYPES[content_type]}"


class StorageClient(Protocol):
    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def presign_put(
        self, path: str, content_type: str, expires_in: int = 3600
    ) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double that hands out predictable URLs."""

    base_url: str = "https://example.test/storage"
    signed: list = field(default_factory=list)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        self.signed.append(("get", path))
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def presign_put(
        self, path: str, content_type: str, expires_in: int = 3600
    ) -> str:
        self.signed.append(("put", path))
        return f"{self.base_url}/{path}?op=put&type={content_type}&expires={expires_in}"


@dataclass
class S3StorageClient:
    """S3-compatible storage client."""

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    def presign_put(
        self, path: str, content_type: str, expires_in: int = 3600
    ) -> str:
        # The browser must send the same Content-Type it was signed with.
        return self._client.generate_presigned_url(
            ClientMethod="put_object",
            Params={"Bucket": self.bucket, "Key": path, "ContentType": content_type},
            ExpiresIn=expires_in,
        )
