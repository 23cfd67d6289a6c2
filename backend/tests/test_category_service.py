"""
PhotoBazaar Backend: Category Service Tests
============================================
"""

import pytest

from photobazaar.exceptions import AuthorizationError, ConflictError, NotFoundError
from photobazaar.models.user import ROLE_ADMIN, ROLE_PHOTOGRAPHER
from photobazaar.schemas.category import CategoryCreate, CategoryUpdate
from photobazaar.services.category_service import category_service


class TestCategoryAdmin:
    @pytest.mark.asyncio
    async def test_create_derives_slug(self, db_session, make_user):
        admin = await make_user(ROLE_ADMIN)

        category = await category_service.create_category(
            db_session, admin, CategoryCreate(name="Street Art & Murals")
        )
        assert category.slug == "street-art-murals"
        assert category.is_active is True

    @pytest.mark.asyncio
    async def test_duplicate_name_case_insensitive(self, db_session, make_user):
        admin = await make_user(ROLE_ADMIN)
        await category_service.create_category(db_session, admin, CategoryCreate(name="Nature"))

        with pytest.raises(ConflictError):
            await category_service.create_category(db_session, admin, CategoryCreate(name="nature"))

    @pytest.mark.asyncio
    async def test_non_admin_cannot_manage(self, db_session, make_user):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        with pytest.raises(AuthorizationError, match="administrators"):
            await category_service.create_category(db_session, photographer, CategoryCreate(name="Food"))

    @pytest.mark.asyncio
    async def test_rename_updates_slug_and_deactivate(self, db_session, make_user):
        admin = await make_user(ROLE_ADMIN)
        category = await category_service.create_category(db_session, admin, CategoryCreate(name="Citys"))

        updated = await category_service.update_category(
            db_session, admin, category.id, CategoryUpdate(name="Cities", is_active=False)
        )
        assert (updated.name, updated.slug, updated.is_active) == ("Cities", "cities", False)

    @pytest.mark.asyncio
    async def test_delete_blocked_while_photos_exist(self, db_session, make_user, make_photo):
        admin = await make_user(ROLE_ADMIN)
        category = await category_service.create_category(db_session, admin, CategoryCreate(name="Food"))
        await make_photo(await make_user(ROLE_PHOTOGRAPHER), category_id=category.id)

        with pytest.raises(ConflictError, match="still has photos"):
            await category_service.delete_category(db_session, admin, category.id)

    @pytest.mark.asyncio
    async def test_delete_empty_category(self, db_session, make_user):
        admin = await make_user(ROLE_ADMIN)
        category = await category_service.create_category(db_session, admin, CategoryCreate(name="Food"))

        await category_service.delete_category(db_session, admin, category.id)

        with pytest.raises(NotFoundError):
            await category_service.get_category(db_session, "food")


class TestCategoryListing:
    @pytest.mark.asyncio
    async def test_list_hides_inactive_and_counts_active_photos(self, db_session, make_user, make_photo):
        admin = await make_user(ROLE_ADMIN)
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        nature = await category_service.create_category(db_session, admin, CategoryCreate(name="Nature"))
        old = await category_service.create_category(db_session, admin, CategoryCreate(name="Old"))
        await category_service.update_category(db_session, admin, old.id, CategoryUpdate(is_active=False))
        await make_photo(photographer, category_id=nature.id)
        await make_photo(photographer, category_id=nature.id, is_active=False)

        public = await category_service.list_categories(db_session, include_count=True)
        assert [(c.slug, c.photo_count) for c in public] == [("nature", 1)]

        everything = await category_service.list_categories(db_session, include_inactive=True)
        assert {c.slug for c in everything} == {"nature", "old"}
        assert all(c.photo_count is None for c in everything)

    @pytest.mark.asyncio
    async def test_lookup_by_id_or_slug(self, db_session, make_user):
        admin = await make_user(ROLE_ADMIN)
        created = await category_service.create_category(db_session, admin, CategoryCreate(name="Travel"))

        assert (await category_service.get_category(db_session, str(created.id))).id == created.id
        assert (await category_service.get_category(db_session, "TRAVEL")).id == created.id
        assert await category_service.resolve_reference(db_session, "missing") is None
