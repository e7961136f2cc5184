"""
Object storage backends.

Both providers are driven through their S3-compatible endpoints with a boto3
client, so a backend only differs in its reference scheme, its credentials
and the host pattern of the bare URLs it used to hand out.
"""
import re
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional, Pattern
from urllib.parse import urlparse, unquote

import boto3
from botocore.client import Config

logger = logging.getLogger(__name__)

# scheme:bucket:key, the key may contain further colons
_REFERENCE_RE = re.compile(r"^(?P<scheme>[a-z][a-z0-9]*):(?P<bucket>[^:/]+):(?P<key>.+)$")


@dataclass(frozen=True)
class StorageReference:
    scheme: str
    bucket: str
    key: str

    @classmethod
    def parse(cls, value) -> Optional["StorageReference"]:
        """Parse ``scheme:bucket:key``; anything else gives None"""
        if not isinstance(value, str):
            return None
        match = _REFERENCE_RE.match(value)
        if not match:
            return None
        return cls(match.group("scheme"), match.group("bucket"), match.group("key"))

    def __str__(self) -> str:
        return f"{self.scheme}:{self.bucket}:{self.key}"


def make_s3_client(endpoint_url: str, access_key: Optional[str], secret_key: Optional[str], region: str):
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region or None,
        config=Config(signature_version="s3v4", s3={"addressing_style": "virtual"}),
    )


class StorageBackend:
    scheme: str = ""
    host_pattern: Optional[Pattern] = None

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def put(self, key: str, stream: BinaryIO, mimetype: str) -> StorageReference:
        """Write ``stream`` under ``key`` in the backend's own bucket."""
        self.client.put_object(Bucket=self.bucket, Key=key, Body=stream, ContentType=mimetype)
        logger.info(f"Uploaded {key} to {self.scheme}:{self.bucket}")
        return StorageReference(self.scheme, self.bucket, key)

    def owns(self, reference: StorageReference) -> bool:
        return reference.scheme == self.scheme and reference.bucket == self.bucket

    def sign(self, reference: StorageReference, expires: int) -> str:
        """Presigned GET URL for an object in the backend's own bucket."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": reference.key},
            ExpiresIn=expires,
        )

    def remove(self, reference: StorageReference) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=reference.key)
        logger.info(f"Deleted {reference}")

    def reference_from_url(self, url: str) -> Optional[StorageReference]:
        """Recover a reference from a bare provider URL, if the host is ours."""
        if self.host_pattern is None:
            return None
        parsed = urlparse(url)
        match = self.host_pattern.match(parsed.hostname or "")
        key = unquote(parsed.path.lstrip("/"))
        if not match or not key:
            return None
        return StorageReference(self.scheme, match.group("bucket"), key)


class OSSBackend(StorageBackend):
    """Alibaba Cloud OSS, e.g. ``mybucket.oss-cn-hangzhou.aliyuncs.com``"""

    scheme = "oss"
    host_pattern = re.compile(r"^(?P<bucket>[^.]+)\.oss-[a-z0-9-]+(\.internal)?\.aliyuncs\.com$")

    @classmethod
    def from_settings(cls, settings) -> "OSSBackend":
        # boto3 signs with the bare region ("cn-hangzhou"), OSS names it "oss-cn-hangzhou"
        region = settings.OSS_REGION
        if region.startswith("oss-"):
            region = region[len("oss-"):]
        client = make_s3_client(
            settings.oss_endpoint,
            settings.OSS_ACCESS_KEY_ID,
            settings.OSS_ACCESS_KEY_SECRET,
            region,
        )
        return cls(client, settings.OSS_BUCKET)


class COSBackend(StorageBackend):
    """Tencent Cloud COS, e.g. ``mybucket-1250000000.cos.ap-guangzhou.myqcloud.com``"""

    scheme = "cos"
    host_pattern = re.compile(r"^(?P<bucket>[^.]+)\.cos\.[a-z0-9-]+\.myqcloud\.com$")

    @classmethod
    def from_settings(cls, settings) -> "COSBackend":
        client = make_s3_client(
            settings.cos_endpoint,
            settings.COS_SECRET_ID,
            settings.COS_SECRET_KEY,
            settings.COS_REGION,
        )
        return cls(client, settings.COS_BUCKET)
