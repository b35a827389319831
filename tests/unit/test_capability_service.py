"""
Tests for capability resolution and grant management.
"""
import pytest

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models.capability import SYSTEM_CAPABILITIES
from app.services.capability_service import CapabilityService, is_owner_role
from app.models.user import UserRole


class TestOwnerRole:

    def test_owner_string_and_enum(self):
        assert is_owner_role("owner")
        assert is_owner_role(UserRole.OWNER)

    def test_other_roles_are_not_owner(self):
        assert not is_owner_role("admin")
        assert not is_owner_role("member")
        assert not is_owner_role(None)


class TestResolution:

    @pytest.mark.asyncio
    async def test_owner_holds_everything_without_grants(self, seeded_db, make_user):
        owner = await make_user(role="owner")
        service = CapabilityService(seeded_db)

        assert await service.user_has_capability(owner.id, "order.refund")
        assert await service.user_has_capability(owner.id, "system.configure")

        caps = await service.get_user_capabilities(owner.id)
        assert len(caps) == len(SYSTEM_CAPABILITIES)

    @pytest.mark.asyncio
    async def test_member_without_grants_has_nothing(self, seeded_db, make_user):
        member = await make_user()
        service = CapabilityService(seeded_db)

        assert not await service.user_has_capability(member.id, "product.create")
        assert await service.resolve(member.id) == set()

    @pytest.mark.asyncio
    async def test_role_grant_applies_to_role_members(self, seeded_db, make_user):
        admin = await make_user(role="admin")
        member = await make_user()
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("product.edit")

        await service.assign_capability_to_role("admin", cap.id)

        assert await service.user_has_capability(admin.id, "product.edit")
        assert not await service.user_has_capability(member.id, "product.edit")

    @pytest.mark.asyncio
    async def test_user_grant_applies_only_to_that_user(self, seeded_db, make_user):
        alice = await make_user()
        bob = await make_user()
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("article.create")

        await service.assign_capability_to_user(alice.id, cap.id)

        assert await service.user_has_capability(alice.id, "article.create")
        assert not await service.user_has_capability(bob.id, "article.create")

    @pytest.mark.asyncio
    async def test_unknown_capability_name_is_false(self, seeded_db, make_user):
        member = await make_user()
        service = CapabilityService(seeded_db)

        assert not await service.user_has_capability(member.id, "does.not.exist")

    @pytest.mark.asyncio
    async def test_missing_user_is_false(self, seeded_db):
        assert not await CapabilityService(seeded_db).user_has_capability(9999, "order.refund")

    @pytest.mark.asyncio
    async def test_any_capability_is_or(self, seeded_db, make_user):
        member = await make_user()
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("article.edit.own")
        await service.assign_capability_to_user(member.id, cap.id)

        assert await service.user_has_any_capability(member.id, ["article.edit.own", "article.edit.any"])
        assert not await service.user_has_any_capability(member.id, ["article.edit.any"])
        assert not await service.user_has_any_capability(member.id, [])

    @pytest.mark.asyncio
    async def test_role_and_user_grants_are_deduplicated(self, seeded_db, make_user):
        admin = await make_user(role="admin")
        service = CapabilityService(seeded_db)
        refund = await service.get_capability_by_name("order.refund")
        edit = await service.get_capability_by_name("order.edit")

        await service.assign_capability_to_role("admin", refund.id)
        await service.assign_capability_to_user(admin.id, refund.id)
        await service.assign_capability_to_user(admin.id, edit.id)

        caps = await service.get_user_capabilities(admin.id)
        assert sorted(c.name for c in caps) == ["order.edit", "order.refund"]
        assert await service.resolve(admin.id) == {"order.edit", "order.refund"}

    @pytest.mark.asyncio
    async def test_user_capabilities_for_missing_user(self, seeded_db):
        with pytest.raises(NotFoundError):
            await CapabilityService(seeded_db).get_user_capabilities(9999)


class TestRoleGrants:

    @pytest.mark.asyncio
    async def test_owner_role_cannot_be_granted(self, seeded_db):
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("order.refund")

        with pytest.raises(BadRequestError) as exc_info:
            await service.assign_capability_to_role("owner", cap.id)
        assert exc_info.value.message == "Owner role always has all capabilities"

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, seeded_db):
        service = CapabilityService(seeded_db)
        with pytest.raises(BadRequestError):
            await service.get_role_capabilities("superuser")

    @pytest.mark.asyncio
    async def test_duplicate_role_grant_conflicts(self, seeded_db):
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("order.refund")
        await service.assign_capability_to_role("admin", cap.id)

        with pytest.raises(ConflictError):
            await service.assign_capability_to_role("admin", cap.id)

    @pytest.mark.asyncio
    async def test_unknown_capability_not_found(self, seeded_db):
        with pytest.raises(NotFoundError):
            await CapabilityService(seeded_db).assign_capability_to_role("admin", 9999)

    @pytest.mark.asyncio
    async def test_remove_role_grant(self, seeded_db, make_user):
        admin = await make_user(role="admin")
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("order.refund")
        await service.assign_capability_to_role("admin", cap.id)

        await service.remove_capability_from_role("admin", cap.id)

        assert not await service.user_has_capability(admin.id, "order.refund")
        with pytest.raises(NotFoundError):
            await service.remove_capability_from_role("admin", cap.id)

    @pytest.mark.asyncio
    async def test_owner_role_capabilities_are_full_catalog(self, seeded_db):
        caps = await CapabilityService(seeded_db).get_role_capabilities("owner")
        assert len(caps) == len(SYSTEM_CAPABILITIES)


class TestUserGrants:

    @pytest.mark.asyncio
    async def test_grant_records_granter(self, seeded_db, make_user):
        owner = await make_user(role="owner")
        member = await make_user()
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("media.upload")

        grant = await service.assign_capability_to_user(member.id, cap.id, granted_by=owner.id)

        assert grant.granted_by == owner.id
        assert grant.user_id == member.id

    @pytest.mark.asyncio
    async def test_owner_user_cannot_be_granted(self, seeded_db, make_user):
        owner = await make_user(role="owner")
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("media.upload")

        with pytest.raises(BadRequestError):
            await service.assign_capability_to_user(owner.id, cap.id)

    @pytest.mark.asyncio
    async def test_missing_user_not_found(self, seeded_db):
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("media.upload")

        with pytest.raises(NotFoundError):
            await service.assign_capability_to_user(9999, cap.id)

    @pytest.mark.asyncio
    async def test_duplicate_user_grant_conflicts(self, seeded_db, make_user):
        member = await make_user()
        service = CapabilityService(seeded_db)
        cap = await service.get_capability_by_name("media.upload")
        await service.assign_capability_to_user(member.id, cap.id)

        with pytest.raises(ConflictError):
            await service.assign_capability_to_user(member.id, cap.id)

    @pytest.mark.asyncio
    async def test_remove_missing_user_grant(self, seeded_db, make_user):
        member = await make_user()
        service = CapabilityService(seeded_db)

        with pytest.raises(NotFoundError) as exc_info:
            await service.remove_capability_from_user(member.id, 1)
        assert exc_info.value.message == "User capability not found"


class TestSeeding:

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, db_session):
        service = CapabilityService(db_session)

        first = await service.seed_capabilities()
        second = await service.seed_capabilities()

        assert first == second == len(SYSTEM_CAPABILITIES)
        assert len(await service.get_all_capabilities()) == len(SYSTEM_CAPABILITIES)

    @pytest.mark.asyncio
    async def test_catalog_is_ordered_by_category_then_name(self, seeded_db):
        caps = await CapabilityService(seeded_db).get_all_capabilities()
        keys = [(c.category, c.name) for c in caps]
        assert keys == sorted(keys)
