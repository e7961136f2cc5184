from urllib.parse import unquote, urlparse

import pytest
from botocore.stub import ANY, Stubber
from httpx import AsyncClient
from sqlalchemy import select

from app.config import settings
from app.models.post import Post
from app.services.storage_backends import StorageReference

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

def _stub_put(storage, mimetype="image/png"):
    stubber = Stubber(storage.backends["oss"].client)
    stubber.add_response(
        "put_object",
        {},
        {"Bucket": "forum-oss", "Key": ANY, "Body": ANY, "ContentType": mimetype},
    )
    return stubber

@pytest.mark.asyncio
async def test_upload_then_post_images_are_signed(
    test_client: AsyncClient, test_db, test_user, auth_headers, storage
):
    headers = auth_headers(test_user)

    with _stub_put(storage):
        response = await test_client.post(
            "/api/v1/upload/",
            files={"file": ("photo.png", PNG_BYTES, "image/png")},
            headers=headers,
        )

    assert response.status_code == 201
    upload = response.json()["data"]
    reference = upload["reference"]
    parsed = StorageReference.parse(reference)
    assert parsed.scheme == "oss"
    assert parsed.bucket == "forum-oss"
    assert parsed.key.endswith("-photo.png")
    assert upload["mimetype"] == "image/png"
    # ``url`` is signed on the way out, ``reference`` is not
    assert unquote(urlparse(upload["url"]).path) == f"/{parsed.key}"
    assert "X-Amz-Signature=" in upload["url"]

    response = await test_client.post(
        "/api/v1/posts/",
        json={"title": "Holiday", "content": "Look", "images": [reference]},
        headers=headers,
    )
    post_id = response.json()["data"]["id"]

    response = await test_client.get(f"/api/v1/posts/{post_id}")

    image = response.json()["data"]["images"][0]
    assert image != reference
    assert urlparse(image).scheme == "https"
    assert unquote(urlparse(image).path) == f"/{parsed.key}"

    stored = await test_db.scalar(select(Post.images).where(Post.id == post_id))
    assert stored == [reference]

@pytest.mark.asyncio
async def test_post_with_legacy_image_url_stores_reference(
    test_client: AsyncClient, test_db, test_user, auth_headers
):
    legacy = "https://forum-oss.oss-cn-hangzhou.aliyuncs.com/2023/beach.png"

    response = await test_client.post(
        "/api/v1/posts/",
        json={"title": "Old", "content": "From before", "images": [legacy]},
        headers=auth_headers(test_user),
    )

    post_id = response.json()["data"]["id"]
    stored = await test_db.scalar(select(Post.images).where(Post.id == post_id))
    assert stored == ["oss:forum-oss:2023/beach.png"]

@pytest.mark.asyncio
async def test_upload_rejects_disallowed_type(test_client: AsyncClient, test_user, auth_headers):
    response = await test_client.post(
        "/api/v1/upload/",
        files={"file": ("run.sh", b"#!/bin/sh", "application/x-sh")},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 400
    assert response.json()["data"]["errorCode"] == "invalid_file_type"

@pytest.mark.asyncio
async def test_upload_rejects_large_file(test_client: AsyncClient, test_user, auth_headers):
    response = await test_client.post(
        "/api/v1/upload/",
        files={"file": ("big.png", b"0" * (settings.MAX_UPLOAD_SIZE + 1), "image/png")},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 400
    assert response.json()["data"]["errorCode"] == "file_too_large"

@pytest.mark.asyncio
async def test_upload_requires_file(test_client: AsyncClient, test_user, auth_headers):
    response = await test_client.post(
        "/api/v1/upload/",
        data={"note": "nothing attached"},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 400
    assert response.json()["data"]["errorCode"] == "missing_required_field"

@pytest.mark.asyncio
async def test_upload_requires_auth(test_client: AsyncClient):
    response = await test_client.post(
        "/api/v1/upload/",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
    )

    assert response.status_code == 401

@pytest.mark.asyncio
async def test_upload_storage_failure(test_client: AsyncClient, test_user, auth_headers, storage):
    stubber = Stubber(storage.backends["oss"].client)
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

    with stubber:
        response = await test_client.post(
            "/api/v1/upload/",
            files={"file": ("photo.png", PNG_BYTES, "image/png")},
            headers=auth_headers(test_user),
        )

    assert response.status_code == 502
    assert response.json()["data"]["errorCode"] == "upload_failed"
