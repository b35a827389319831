"""
Tests for product catalog and article services.
"""
from decimal import Decimal

import pytest

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.services.article_service import ArticleService
from app.services.capability_service import CapabilityService
from app.services.product_service import ProductService


async def _grant(db, user, name):
    service = CapabilityService(db)
    cap = await service.get_capability_by_name(name)
    await service.assign_capability_to_user(user.id, cap.id)


class TestProductService:

    @pytest.mark.asyncio
    async def test_create_derives_slug(self, db_session):
        product = await ProductService(db_session).create({
            "name": "Lamplight Omnibus: Vol. 1",
            "price": Decimal("49.99"),
            "sku": "LAMP-1",
        })
        assert product.slug == "lamplight-omnibus-vol-1"

    @pytest.mark.asyncio
    async def test_duplicate_slug_and_sku(self, db_session, make_product):
        await make_product(slug="taken", sku="SKU-TAKEN")
        service = ProductService(db_session)

        with pytest.raises(ConflictError):
            await service.create({"name": "Other", "slug": "taken", "price": Decimal("1.00")})
        with pytest.raises(ConflictError) as exc_info:
            await service.create({"name": "Other", "sku": "SKU-TAKEN", "price": Decimal("1.00")})
        assert exc_info.value.message == "Product with SKU 'SKU-TAKEN' already exists"

    @pytest.mark.asyncio
    async def test_find_one_by_id_or_slug(self, db_session, make_product):
        product = await make_product(slug="field-guide")
        service = ProductService(db_session)

        assert (await service.find_one(str(product.id))).id == product.id
        assert (await service.find_one("field-guide")).id == product.id

    @pytest.mark.asyncio
    async def test_drafts_hidden_unless_requested(self, db_session, make_product):
        draft = await make_product(status="draft")
        service = ProductService(db_session)

        with pytest.raises(NotFoundError):
            await service.find_one(draft.slug)
        assert (await service.find_one(draft.slug, include_unpublished=True)).id == draft.id

    @pytest.mark.asyncio
    async def test_find_all_filters(self, db_session, make_product):
        await make_product(name="Ink Primer")
        await make_product(name="Brush Set")
        await make_product(name="Ink Draft", status="draft")
        service = ProductService(db_session)

        published = await service.find_all()
        ink = await service.find_all(search="ink")
        everything = await service.find_all(include_unpublished=True, limit=2)

        assert published["meta"]["total"] == 2
        assert [p.name for p in ink["data"]] == ["Ink Primer"]
        assert everything["meta"]["total"] == 3
        assert everything["meta"]["total_pages"] == 2

    @pytest.mark.asyncio
    async def test_update_checks_uniqueness_against_others(self, db_session, make_product):
        first = await make_product(slug="first")
        second = await make_product(slug="second")
        service = ProductService(db_session)

        updated = await service.update(first.id, {"slug": "first", "price": Decimal("12.00")})
        assert updated.price == Decimal("12.00")

        with pytest.raises(ConflictError):
            await service.update(second.id, {"slug": "first"})

    @pytest.mark.asyncio
    async def test_remove_is_soft(self, db_session, make_product):
        product = await make_product()
        service = ProductService(db_session)

        await service.remove(product.id)

        assert product.deleted_at is not None
        with pytest.raises(NotFoundError):
            await service.find_one(str(product.id), include_unpublished=True)
        assert (await service.find_all(include_unpublished=True))["meta"]["total"] == 0


class TestArticleService:

    @pytest.mark.asyncio
    async def test_create_published_sets_timestamp(self, seeded_db, make_user):
        author = await make_user()
        service = ArticleService(seeded_db)

        draft = await service.create({"title": "Draft Notes"}, author)
        live = await service.create({"title": "Launch Day", "status": "published"}, author)

        assert draft.slug == "draft-notes"
        assert draft.published_at is None
        assert live.published_at is not None
        assert live.author_id == author.id

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, seeded_db, make_user):
        author = await make_user()
        service = ArticleService(seeded_db)
        await service.create({"title": "Same"}, author)

        with pytest.raises(ConflictError):
            await service.create({"title": "Same"}, author)

    @pytest.mark.asyncio
    async def test_visibility(self, seeded_db, make_user):
        author = await make_user()
        reader = await make_user()
        editor = await make_user()
        await _grant(seeded_db, editor, "article.edit.any")
        service = ArticleService(seeded_db)
        await service.create({"title": "Public", "status": "published"}, author)
        await service.create({"title": "Members", "status": "published", "visibility": "logged_in_only"}, author)
        await service.create({"title": "Hidden Draft"}, author)

        async def titles(user):
            return sorted(a.title for a in (await service.find_all(user=user))["data"])

        assert await titles(None) == ["Public"]
        assert await titles(reader) == ["Members", "Public"]
        assert await titles(editor) == ["Hidden Draft", "Members", "Public"]

        with pytest.raises(NotFoundError):
            await service.find_by_slug("members")
        assert (await service.find_by_slug("members", reader)).title == "Members"

    @pytest.mark.asyncio
    async def test_author_edits_own(self, seeded_db, make_user):
        author = await make_user()
        service = ArticleService(seeded_db)
        article = await service.create({"title": "Mine"}, author)

        updated = await service.update(article.id, {"status": "published"}, author)

        assert updated.status == "published"
        assert updated.published_at is not None

    @pytest.mark.asyncio
    async def test_other_user_needs_any_capability(self, seeded_db, make_user):
        author = await make_user()
        stranger = await make_user()
        service = ArticleService(seeded_db)
        article = await service.create({"title": "Theirs"}, author)

        with pytest.raises(ForbiddenError):
            await service.update(article.id, {"title": "Changed"}, stranger)
        with pytest.raises(ForbiddenError):
            await service.remove(article.id, stranger)

        await _grant(seeded_db, stranger, "article.delete.any")
        await service.remove(article.id, stranger)
        with pytest.raises(NotFoundError):
            await service.get_article(article.id)

    @pytest.mark.asyncio
    async def test_publish(self, seeded_db, make_user):
        author = await make_user()
        service = ArticleService(seeded_db)
        article = await service.create({"title": "Soon"}, author)

        published = await service.publish(article.id)

        assert published.status == "published"
        assert published.published_at is not None
