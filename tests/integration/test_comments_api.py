"""
Comment and moderation API tests.
"""
import pytest

from app.models.article import Article
from app.services.capability_service import CapabilityService


async def _grant(db, user, *names):
    service = CapabilityService(db)
    for name in names:
        cap = await service.get_capability_by_name(name)
        await service.assign_capability_to_user(user.id, cap.id)


async def _published_article(db, slug="field-notes") -> Article:
    article = Article(title="Field Notes", slug=slug, content="Body", status="published", visibility="public")
    db.add(article)
    await db.flush()
    return article


class TestCommentsApi:

    @pytest.mark.asyncio
    async def test_post_and_read_thread(self, client, seeded_db, make_user, auth_headers):
        article = await _published_article(seeded_db)
        reader = await make_user()
        headers = auth_headers(reader)

        anonymous = await client.post(f"/api/articles/{article.id}/comments", json={"content": "Hi"})
        assert anonymous.status_code == 401

        created = await client.post(
            f"/api/articles/{article.id}/comments", json={"content": "Great read"}, headers=headers
        )
        assert created.status_code == 201
        top = created.json()
        assert top["status"] == "approved"
        assert "moderation_flags" not in top

        reply = await client.post(
            f"/api/articles/{article.id}/comments",
            json={"content": "Agreed", "parent_id": top["id"]},
            headers=headers,
        )
        assert reply.status_code == 201

        nested = await client.post(
            f"/api/articles/{article.id}/comments",
            json={"content": "Deeper", "parent_id": reply.json()["id"]},
            headers=headers,
        )
        assert nested.status_code == 400

        thread = await client.get(f"/api/articles/{article.id}/comments")
        assert thread.status_code == 200
        body = thread.json()
        assert body["meta"]["total"] == 1
        assert [r["content"] for r in body["data"][0]["replies"]] == ["Agreed"]

    @pytest.mark.asyncio
    async def test_empty_comment_rejected(self, client, seeded_db, make_user, auth_headers):
        article = await _published_article(seeded_db)
        reader = await make_user()

        response = await client.post(
            f"/api/articles/{article.id}/comments", json={"content": ""}, headers=auth_headers(reader)
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_edit_and_delete_own(self, client, seeded_db, make_user, auth_headers):
        article = await _published_article(seeded_db)
        author = await make_user()
        stranger = await make_user()
        created = await client.post(
            f"/api/articles/{article.id}/comments", json={"content": "Frist"}, headers=auth_headers(author)
        )
        comment_id = created.json()["id"]

        hijack = await client.patch(
            f"/api/comments/{comment_id}", json={"content": "Mine now"}, headers=auth_headers(stranger)
        )
        assert hijack.status_code == 403

        edited = await client.patch(
            f"/api/comments/{comment_id}", json={"content": "First"}, headers=auth_headers(author)
        )
        assert edited.json()["content"] == "First"

        assert (await client.delete(f"/api/comments/{comment_id}", headers=auth_headers(stranger))).status_code == 403
        assert (await client.delete(f"/api/comments/{comment_id}", headers=auth_headers(author))).status_code == 204
        assert (await client.get(f"/api/comments/{comment_id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_moderation_requires_capability(self, client, seeded_db, make_user, auth_headers):
        article = await _published_article(seeded_db)
        reader = await make_user()
        created = await client.post(
            f"/api/articles/{article.id}/comments", json={"content": "Hello"}, headers=auth_headers(reader)
        )
        comment_id = created.json()["id"]

        assert (await client.get("/api/comments/moderation/queue")).status_code == 401
        assert (await client.get("/api/comments", headers=auth_headers(reader))).status_code == 403
        rejected = await client.post(f"/api/comments/{comment_id}/reject", headers=auth_headers(reader))
        assert rejected.status_code == 403

    @pytest.mark.asyncio
    async def test_moderator_workflow(self, client, seeded_db, make_user, auth_headers):
        article = await _published_article(seeded_db)
        reader = await make_user()
        moderator = await make_user()
        await _grant(seeded_db, moderator, "comment.moderate")
        mod_headers = auth_headers(moderator)
        created = await client.post(
            f"/api/articles/{article.id}/comments",
            json={"content": "What the fuck"},
            headers=auth_headers(reader),
        )
        comment_id = created.json()["id"]

        queue = await client.get("/api/comments/moderation/queue", headers=mod_headers)
        assert queue.status_code == 200
        queued = queue.json()["data"][0]
        assert queued["id"] == comment_id
        assert queued["moderation_status"] == "flagged"
        assert queued["moderation_flags"] == ["profanity"]

        spam = await client.post(f"/api/comments/{comment_id}/spam", headers=mod_headers)
        assert spam.json()["status"] == "spam"

        public = await client.get(f"/api/articles/{article.id}/comments")
        assert public.json()["meta"]["total"] == 0

        listing = await client.get("/api/comments?status=spam", headers=mod_headers)
        assert [c["id"] for c in listing.json()["data"]] == [comment_id]

        approved = await client.post(f"/api/comments/{comment_id}/approve", headers=mod_headers)
        assert approved.json()["moderation_status"] == "approved"
        assert (await client.get(f"/api/articles/{article.id}/comments")).json()["meta"]["total"] == 1

    @pytest.mark.asyncio
    async def test_unknown_article(self, client, seeded_db):
        response = await client.get("/api/articles/9999/comments")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
