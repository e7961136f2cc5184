"""
Storage reference resolver.

Files are persisted as provider-neutral references (``oss:bucket:key``) and
only turned into signed, expiring URLs when a response is built. Every
reference carries its own scheme, so reading and deleting keep working for
old objects after STORAGE_DEFAULT switches to another provider.
"""
import os
import re
import uuid
import logging
from typing import BinaryIO, Iterable, Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from fastapi.concurrency import run_in_threadpool

from app.services.storage_backends import (
    StorageBackend,
    StorageReference,
    OSSBackend,
    COSBackend,
)
from app.utils.errors import (
    UploadFailedError,
    DeleteFailedError,
    ResolveFailedError,
    InvalidReferenceError,
)

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_SECONDS = 60 * 60 * 24 * 7

_EXPIRES_RE = re.compile(r"^(\d+)([dhms])?$")
_UNIT_SECONDS = {"d": 24 * 60 * 60, "h": 60 * 60, "m": 60, "s": 1}


def parse_expires(value: Optional[str]) -> int:
    """
    Parse a compact duration such as "7d", "24h", "30m" or "45" into seconds.

    A bare number is seconds. Missing or malformed input falls back to
    seven days with a warning instead of failing.
    """
    if not value:
        return DEFAULT_EXPIRES_SECONDS

    match = _EXPIRES_RE.match(str(value).strip())
    if not match:
        logger.warning(f"Invalid expires value {value!r}, using 7 days")
        return DEFAULT_EXPIRES_SECONDS

    amount = int(match.group(1))
    unit = match.group(2) or "s"
    return amount * _UNIT_SECONDS[unit]


def build_object_key(filename: Optional[str]) -> str:
    """Unique object key: ``<uuid4>-<original file name>``"""
    name = os.path.basename(filename or "").strip() or "file"
    return f"{uuid.uuid4()}-{name}"


class StorageService:
    def __init__(
        self,
        backends: Iterable[StorageBackend],
        default_scheme: str,
        default_expires: str = "1h",
    ):
        self.backends = {backend.scheme: backend for backend in backends}
        self.default_scheme = default_scheme
        self.default_expires = default_expires

    @property
    def schemes(self) -> tuple:
        return tuple(self.backends)

    def locate(self, value) -> Optional[StorageReference]:
        """
        Find the stored object behind ``value``.

        Accepts references and bare provider URLs only when they point into
        the configured bucket of a registered backend. Returns None otherwise,
        so objects in other buckets are never signed or deleted.
        """
        if not isinstance(value, str):
            return None

        reference = StorageReference.parse(value)
        if reference is not None:
            backend = self.backends.get(reference.scheme)
            return reference if backend is not None and backend.owns(reference) else None

        if value.startswith(("http://", "https://")):
            for backend in self.backends.values():
                reference = backend.reference_from_url(value)
                if reference is not None and backend.owns(reference):
                    return reference

        return None

    def to_reference(self, value: str) -> str:
        """Normalise a legacy provider URL into a reference; pass anything else through"""
        reference = self.locate(value)
        return str(reference) if reference is not None else value

    def looks_like_file(self, value) -> bool:
        """Cheap check used by the response rewriter before calling resolve()"""
        if not isinstance(value, str):
            return False
        if value.startswith("http"):
            return True
        return any(value.startswith(f"{scheme}:") for scheme in self.backends)

    async def upload(self, stream: BinaryIO, filename: Optional[str], mimetype: str) -> str:
        """Upload to the default backend and return the reference string"""
        backend = self.backends.get(self.default_scheme)
        if backend is None:
            logger.error(f"Default storage backend '{self.default_scheme}' is not configured")
            raise UploadFailedError("File storage is not configured")

        key = build_object_key(filename)
        logger.info(f"Uploading {filename} via {backend.scheme}")
        try:
            reference = await run_in_threadpool(backend.put, key, stream, mimetype)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"{backend.scheme} upload failed for {key}: {e}")
            raise UploadFailedError()

        return str(reference)

    async def resolve(self, value: str, expires: Optional[str] = None) -> str:
        """
        Turn a reference (or legacy provider URL) into a signed URL.

        Unrecognised values are returned unchanged and treated as public URLs.
        """
        reference = self.locate(value)
        if reference is None:
            return value

        seconds = parse_expires(expires or self.default_expires)
        backend = self.backends[reference.scheme]
        try:
            return backend.sign(reference, seconds)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Signing {reference} failed: {e}")
            raise ResolveFailedError()

    async def delete(self, value: str) -> None:
        reference = self.locate(value)
        if reference is None:
            raise InvalidReferenceError(f"Unrecognized storage reference: {value}", param="reference")

        backend = self.backends[reference.scheme]
        try:
            await run_in_threadpool(backend.remove, reference)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Deleting {reference} failed: {e}")
            raise DeleteFailedError()


def build_storage(settings) -> StorageService:
    """Create one client per configured provider; called once at startup"""
    backends = []
    if settings.OSS_BUCKET:
        backends.append(OSSBackend.from_settings(settings))
    if settings.COS_BUCKET:
        backends.append(COSBackend.from_settings(settings))

    configured = [backend.scheme for backend in backends]
    if settings.STORAGE_DEFAULT not in configured:
        logger.warning(
            f"Default storage '{settings.STORAGE_DEFAULT}' has no bucket configured; "
            f"uploads will fail (configured: {configured or 'none'})"
        )

    return StorageService(backends, settings.STORAGE_DEFAULT, settings.FILE_URL_EXPIRES)


def get_storage(request: Request) -> StorageService:
    """Dependency returning the storage service built at startup"""
    return request.app.state.storage
