"""
Rewrites storage references in outgoing JSON into signed URLs.

Fields named ``url``, ``avatar`` and ``image`` are resolved when they hold a
reference or an http(s) URL, every element of an ``images`` list is resolved,
and everything else is copied through. A field that cannot be signed keeps
its original value: one broken thumbnail must not fail the whole response.
"""
import json
import logging
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.services.storage_service import StorageService

logger = logging.getLogger(__name__)

FILE_URL_FIELDS = ("url", "avatar", "image")
FILE_URL_LIST_FIELD = "images"


async def _resolve_field(value: Any, storage: StorageService) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return await storage.resolve(value)
    except Exception as e:
        logger.warning(f"Could not resolve file URL {value!r}: {e}")
        return value


async def rewrite_file_urls(payload: Any, storage: StorageService) -> Any:
    """Return a copy of ``payload`` with file fields replaced by signed URLs"""
    if isinstance(payload, list):
        return [await rewrite_file_urls(item, storage) for item in payload]

    if not isinstance(payload, dict):
        return payload

    result = {}
    for key, value in payload.items():
        if key == FILE_URL_LIST_FIELD and isinstance(value, list):
            result[key] = [await _resolve_field(item, storage) for item in value]
        elif key in FILE_URL_FIELDS and storage.looks_like_file(value):
            result[key] = await _resolve_field(value, storage)
        elif isinstance(value, (dict, list)):
            result[key] = await rewrite_file_urls(value, storage)
        else:
            result[key] = value

    return result


class FileURLMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if "application/json" not in response.headers.get("content-type", ""):
            return response

        storage = getattr(request.app.state, "storage", None)
        if storage is None:
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        if body:
            try:
                payload = json.loads(body)
                rewritten = await rewrite_file_urls(payload, storage)
                body = json.dumps(
                    rewritten, ensure_ascii=False, separators=(",", ":")
                ).encode("utf-8")
            except Exception as e:
                logger.error(f"Failed to rewrite file URLs for {request.url.path}: {e}")

        new_response = Response(
            content=body,
            status_code=response.status_code,
            background=response.background,
        )
        new_response.raw_headers = [
            (name, value)
            for name, value in response.raw_headers
            if name.lower() != b"content-length"
        ] + [(b"content-length", str(len(body)).encode("latin-1"))]
        return new_response
