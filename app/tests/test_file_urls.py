from urllib.parse import unquote, urlparse

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient
from starlette.background import BackgroundTask

from app.middleware.file_urls import FileURLMiddleware, rewrite_file_urls
from app.services.storage_service import StorageService
from app.utils.errors import ResolveFailedError

class BrokenStorage(StorageService):
    """Signing fails for every key containing ``broken``"""

    async def resolve(self, value, expires=None):
        if "broken" in value:
            raise ResolveFailedError()
        return await super().resolve(value, expires)

def _is_signed(value: str, key: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme == "https" and unquote(parsed.path) == f"/{key}" and "X-Amz-Signature=" in parsed.query

@pytest.mark.asyncio
async def test_rewrite_nested_payload(storage: StorageService):
    payload = {
        "code": "success",
        "data": {
            "items": [
                {
                    "title": "oss:forum-oss:not-a-file-field.png",
                    "images": ["oss:forum-oss:a.png", "https://cdn.example.com/b.png"],
                    "author": {"username": "alice", "avatar": "cos:forum-cos-1250000000:me.png"},
                },
            ],
            "image": "oss:forum-oss:cover.png",
            "url": None,
            "count": 3,
        },
    }

    result = await rewrite_file_urls(payload, storage)

    item = result["data"]["items"][0]
    assert item["title"] == "oss:forum-oss:not-a-file-field.png"
    assert _is_signed(item["images"][0], "a.png")
    assert item["images"][1] == "https://cdn.example.com/b.png"
    assert _is_signed(item["author"]["avatar"], "me.png")
    assert item["author"]["username"] == "alice"
    assert _is_signed(result["data"]["image"], "cover.png")
    assert result["data"]["url"] is None
    assert result["data"]["count"] == 3
    # the input is left alone
    assert payload["data"]["image"] == "oss:forum-oss:cover.png"

@pytest.mark.asyncio
async def test_rewrite_top_level_list(storage: StorageService):
    result = await rewrite_file_urls([{"url": "oss:forum-oss:x.png"}, "oss:forum-oss:y.png"], storage)

    assert _is_signed(result[0]["url"], "x.png")
    assert result[1] == "oss:forum-oss:y.png"

@pytest.mark.asyncio
async def test_rewrite_fails_open(storage: StorageService):
    broken = BrokenStorage(storage.backends.values(), "oss")
    payload = {
        "avatar": "oss:forum-oss:broken.png",
        "images": ["oss:forum-oss:ok.png", "oss:forum-oss:broken-too.png"],
    }

    result = await rewrite_file_urls(payload, broken)

    assert result["avatar"] == "oss:forum-oss:broken.png"
    assert _is_signed(result["images"][0], "ok.png")
    assert result["images"][1] == "oss:forum-oss:broken-too.png"

@pytest.mark.asyncio
async def test_profile_avatar_is_signed(
    test_client: AsyncClient, test_user, auth_headers, storage: StorageService
):
    legacy = "https://forum-oss.oss-cn-hangzhou.aliyuncs.com/avatars/alice.png"

    response = await test_client.put(
        "/api/v1/users/me",
        json={"avatar": legacy, "bio": "hello"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 200

    response = await test_client.get(f"/api/v1/users/{test_user.id}")

    data = response.json()["data"]
    assert data["bio"] == "hello"
    assert _is_signed(data["avatar"], "avatars/alice.png")
    assert int(response.headers["content-length"]) == len(response.content)

@pytest.mark.asyncio
async def test_non_json_responses_untouched(test_client: AsyncClient):
    response = await test_client.get("/api/docs")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]

@pytest.mark.asyncio
async def test_rewritten_response_keeps_background_task(storage: StorageService):
    app = FastAPI()
    app.state.storage = storage
    app.add_middleware(FileURLMiddleware)
    done = []

    @app.get("/cover")
    async def cover():
        return JSONResponse(
            {"image": "oss:forum-oss:cover.png"},
            background=BackgroundTask(done.append, "cover"),
        )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/cover")

    assert _is_signed(response.json()["image"], "cover.png")
    assert done == ["cover"]
