import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.comment import Comment
from app.models.post import Post
from app.schemas.post_schema import PostCreate
from app.services.comment_service import CommentService
from app.services.post_service import PostService
from app.utils.errors import HasRepliesError, InvalidParentError, NotFoundError

# Failed service calls roll the session back, which expires every loaded
# object, so the service tests below work with plain ids.

async def _create_post(test_db, user, title="Thread") -> str:
    post = await PostService(test_db).create_post(user.id, PostCreate(title=title, content="body"))
    return post.id

async def _post_state(test_db, post_id):
    row = (await test_db.execute(
        select(Post.updated_at, Post.comment_count).where(Post.id == post_id)
    )).one()
    return row.updated_at, row.comment_count

@pytest.mark.asyncio
async def test_reply_scenario_keeps_post_updated_at(test_db, test_user, other_user):
    alice_id, bob_id = test_user.id, other_user.id
    post_id = await _create_post(test_db, test_user)
    before, _ = await _post_state(test_db, post_id)
    service = CommentService(test_db)

    c1 = (await service.create_comment(post_id, alice_id, "first")).id
    c2 = (await service.create_comment(post_id, bob_id, "reply", parent_id=c1, reply_to_id=alice_id)).id
    assert await _post_state(test_db, post_id) == (before, 2)

    with pytest.raises(HasRepliesError):
        await service.delete_comment(c1)

    await service.delete_comment(c2)
    await service.delete_comment(c1)

    assert await _post_state(test_db, post_id) == (before, 0)

@pytest.mark.asyncio
async def test_update_comment_advances_own_timestamp_only(test_db, test_user):
    post_id = await _create_post(test_db, test_user)
    before, _ = await _post_state(test_db, post_id)
    service = CommentService(test_db)

    comment = await service.create_comment(post_id, test_user.id, "draft")
    created_at = comment.created_at

    updated = await service.update_comment(comment.id, "final")

    assert updated.content == "final"
    assert updated.updated_at > created_at
    assert (await _post_state(test_db, post_id))[0] == before

@pytest.mark.asyncio
async def test_delete_twice_is_not_found(test_db, test_user):
    post_id = await _create_post(test_db, test_user)
    service = CommentService(test_db)
    comment_id = (await service.create_comment(post_id, test_user.id, "bye")).id

    await service.delete_comment(comment_id)
    with pytest.raises(NotFoundError):
        await service.delete_comment(comment_id)

@pytest.mark.asyncio
async def test_create_comment_rules(test_db, test_user, other_user):
    alice_id = test_user.id
    post_a = await _create_post(test_db, test_user, "A")
    post_b = await _create_post(test_db, other_user, "B")
    before, _ = await _post_state(test_db, post_b)
    service = CommentService(test_db)
    parent_on_a = (await service.create_comment(post_a, alice_id, "on A")).id

    with pytest.raises(NotFoundError):
        await service.create_comment("missing-post", alice_id, "hi")
    with pytest.raises(NotFoundError):
        await service.create_comment(post_b, alice_id, "hi", parent_id="missing-comment")
    with pytest.raises(InvalidParentError):
        await service.create_comment(post_b, alice_id, "hi", parent_id=parent_on_a)
    with pytest.raises(NotFoundError):
        await service.create_comment(post_b, alice_id, "hi", reply_to_id="missing-user")

    assert await _post_state(test_db, post_b) == (before, 0)
    leftover = await test_db.scalar(select(Comment.id).where(Comment.post_id == post_b))
    assert leftover is None

@pytest.mark.asyncio
async def test_reply_to_reply_joins_top_level_thread(test_db, test_user, other_user):
    alice_id, bob_id = test_user.id, other_user.id
    post_id = await _create_post(test_db, test_user)
    service = CommentService(test_db)

    top = (await service.create_comment(post_id, alice_id, "top")).id
    reply = (await service.create_comment(post_id, bob_id, "reply", parent_id=top)).id
    nested = await service.create_comment(
        post_id, alice_id, "reply to reply", parent_id=reply, reply_to_id=bob_id
    )

    assert nested.parent_id == top
    assert nested.reply_to.id == bob_id

@pytest.mark.asyncio
async def test_list_top_level_comments_with_replies(test_db, test_user, other_user):
    alice_id, bob_id = test_user.id, other_user.id
    post_id = await _create_post(test_db, test_user)
    service = CommentService(test_db)

    first = (await service.create_comment(post_id, alice_id, "first")).id
    second = (await service.create_comment(post_id, bob_id, "second")).id
    r1 = (await service.create_comment(post_id, bob_id, "r1", parent_id=first)).id
    r2 = (await service.create_comment(post_id, alice_id, "r2", parent_id=first)).id

    page = await service.list_top_level_comments(post_id, order="desc")

    assert page["total"] == 2
    assert [c.id for c in page["items"]] == [second, first]
    replies = page["items"][1].replies
    assert [r.id for r in replies] == [r1, r2]
    assert replies[0].author.id == bob_id

    page = await service.list_replies(first, limit=1)
    assert page["total"] == 2
    assert page["total_pages"] == 2
    assert [c.id for c in page["items"]] == [r1]

@pytest.mark.asyncio
async def test_list_comments_missing_targets(test_db):
    service = CommentService(test_db)

    with pytest.raises(NotFoundError):
        await service.list_top_level_comments("missing-post")
    with pytest.raises(NotFoundError):
        await service.list_replies("missing-comment")

@pytest.mark.asyncio
async def test_comment_api_flow(
    test_client: AsyncClient, test_db, test_user, other_user, auth_headers
):
    post_id = await _create_post(test_db, test_user)
    alice, bob = auth_headers(test_user), auth_headers(other_user)
    url = f"/api/v1/posts/{post_id}/comments"

    response = await test_client.post(url, json={"content": "Nice post"}, headers=bob)
    assert response.status_code == 201
    top = response.json()["data"]
    assert top["author"]["username"] == other_user.username
    assert top["parent_id"] is None

    response = await test_client.post(
        url,
        json={"content": "Thanks", "parent_id": top["id"], "reply_to_id": other_user.id},
        headers=alice,
    )
    assert response.status_code == 201
    reply = response.json()["data"]
    assert reply["reply_to"]["id"] == other_user.id

    response = await test_client.get(url)
    data = response.json()["data"]
    assert data["total"] == 1
    assert [r["id"] for r in data["items"][0]["replies"]] == [reply["id"]]

    response = await test_client.get(f"/api/v1/comments/{top['id']}/replies")
    assert response.json()["data"]["total"] == 1

    response = await test_client.delete(f"/api/v1/comments/{top['id']}", headers=bob)
    assert response.status_code == 409
    assert response.json()["data"]["errorCode"] == "has_replies"

    response = await test_client.get(f"/api/v1/posts/{post_id}")
    assert response.json()["data"]["comment_count"] == 2

@pytest.mark.asyncio
async def test_comment_invalid_parent_api(
    test_client: AsyncClient, test_db, test_user, auth_headers
):
    post_a = await _create_post(test_db, test_user, "A")
    post_b = await _create_post(test_db, test_user, "B")
    headers = auth_headers(test_user)

    response = await test_client.post(
        f"/api/v1/posts/{post_a}/comments", json={"content": "on A"}, headers=headers
    )
    parent_id = response.json()["data"]["id"]

    response = await test_client.post(
        f"/api/v1/posts/{post_b}/comments",
        json={"content": "wrong thread", "parent_id": parent_id},
        headers=headers,
    )

    assert response.status_code == 400
    data = response.json()["data"]
    assert data["errorCode"] == "invalid_parent"
    assert data["param"] == "parent_id"

@pytest.mark.asyncio
async def test_comment_permissions(
    test_client: AsyncClient, test_db, test_user, other_user, make_user, auth_headers
):
    post_id = await _create_post(test_db, test_user)
    outsider = await make_user("carol")

    response = await test_client.post(
        f"/api/v1/posts/{post_id}/comments", json={"content": "hi"}, headers=auth_headers(other_user)
    )
    comment_id = response.json()["data"]["id"]

    # only the author may edit
    response = await test_client.put(
        f"/api/v1/comments/{comment_id}", json={"content": "edit"}, headers=auth_headers(test_user)
    )
    assert response.status_code == 403

    response = await test_client.put(
        f"/api/v1/comments/{comment_id}", json={"content": "edit"}, headers=auth_headers(other_user)
    )
    assert response.status_code == 200
    assert response.json()["data"]["content"] == "edit"

    response = await test_client.delete(
        f"/api/v1/comments/{comment_id}", headers=auth_headers(outsider)
    )
    assert response.status_code == 403

    # the post author may delete comments under their post
    response = await test_client.delete(
        f"/api/v1/comments/{comment_id}", headers=auth_headers(test_user)
    )
    assert response.status_code == 200

@pytest.mark.asyncio
async def test_my_comments(test_client: AsyncClient, test_db, test_user, auth_headers):
    post_id = await _create_post(test_db, test_user, title="Mine")
    headers = auth_headers(test_user)
    await test_client.post(
        f"/api/v1/posts/{post_id}/comments", json={"content": "self"}, headers=headers
    )

    response = await test_client.get("/api/v1/comments/me", headers=headers)

    items = response.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["post"] == {"id": post_id, "title": "Mine"}

@pytest.mark.asyncio
async def test_delete_with_replies_rolls_back_cleanly(test_db, test_user, other_user):
    post_id = await _create_post(test_db, test_user)
    service = CommentService(test_db)
    top = (await service.create_comment(post_id, test_user.id, "top")).id
    reply = (await service.create_comment(post_id, other_user.id, "reply", parent_id=top)).id
    before = await _post_state(test_db, post_id)

    with pytest.raises(HasRepliesError):
        await service.delete_comment(top)

    assert await _post_state(test_db, post_id) == before
    remaining = (await test_db.scalars(
        select(Comment.id).where(Comment.post_id == post_id)
    )).all()
    assert sorted(remaining) == sorted([top, reply])
