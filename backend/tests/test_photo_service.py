"""
PhotoBazaar Backend: Photo Service and Marketplace Query Tests
===============================================================

What we test:
    ✅ upload validation (role, title, price, category) and stored metadata
    ✅ owner-only edits; featuring is admin-only; soft delete
    ✅ marketplace filters: search, category slug, price range, sort, pages
    ✅ viewer annotations (isLiked, isPurchased, isOwner)
    ✅ liked / purchased / category collections
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from conftest import make_image_bytes
from photobazaar.exceptions import (
    AuthorizationError,
    InvalidOperationError,
    NotFoundError,
    PhotoUnavailableError,
    ValidationError,
)
from photobazaar.models.category import Category
from photobazaar.models.user import ROLE_ADMIN, ROLE_PHOTOGRAPHER
from photobazaar.schemas.photo import PhotoFilters, PhotoUpdate
from photobazaar.services.engagement_service import engagement_service
from photobazaar.services.photo_query import photo_query
from photobazaar.services.photo_service import parse_price, photo_service
from photobazaar.services.purchase_service import purchase_service
from photobazaar.utils import utcnow


@pytest.fixture
def make_category(db_session):
    async def _make(name: str, slug: str, is_active: bool = True) -> Category:
        category = Category(name=name, slug=slug, is_active=is_active)
        db_session.add(category)
        await db_session.flush()
        await db_session.refresh(category)
        return category

    return _make


class TestParsePrice:
    @pytest.mark.parametrize("raw, expected", [("10", "10"), ("0.01", "0.01"), (" 9999.99 ", "9999.99")])
    def test_valid(self, raw, expected):
        assert parse_price(raw) == Decimal(expected)

    @pytest.mark.parametrize("raw", ["0", "10000", "1.999", "abc", "NaN", "-5"])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_price(raw)


class TestUploadPhoto:
    @pytest.mark.asyncio
    async def test_upload_stores_metadata(self, db_session, make_user, make_category):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        category = await make_category("Nature", "nature")

        photo = await photo_service.upload_photo(
            db_session,
            photographer,
            filename="forest.png",
            content=make_image_bytes("PNG", size=(300, 200)),
            title="  Misty forest  ",
            price="12.50",
            category_id=category.id,
            tags="Forest, fog, forest",
        )

        assert photo.title == "Misty forest"
        assert photo.price == Decimal("12.50")
        assert photo.tags == ["forest", "fog"]
        assert (photo.width, photo.height, photo.format) == (300, 200, "png")
        assert photo.category.slug == "nature"
        assert photo.is_owner is True
        assert photo.image_url.startswith("/uploads/")

    @pytest.mark.asyncio
    async def test_buyers_cannot_upload(self, db_session, make_user):
        with pytest.raises(AuthorizationError):
            await photo_service.upload_photo(
                db_session, await make_user(), "a.jpg", make_image_bytes(), "Title", "5"
            )

    @pytest.mark.asyncio
    async def test_short_title(self, db_session, make_user):
        with pytest.raises(ValidationError, match="Title"):
            await photo_service.upload_photo(
                db_session, await make_user(ROLE_PHOTOGRAPHER), "a.jpg", make_image_bytes(), "ab", "5"
            )

    @pytest.mark.asyncio
    async def test_inactive_category(self, db_session, make_user, make_category):
        category = await make_category("Retired", "retired", is_active=False)
        with pytest.raises(ValidationError) as exc_info:
            await photo_service.upload_photo(
                db_session,
                await make_user(ROLE_PHOTOGRAPHER),
                "a.jpg",
                make_image_bytes(),
                "Valid title",
                "5",
                category_id=category.id,
            )
        assert exc_info.value.field == "categoryId"


class TestEditPhoto:
    @pytest.mark.asyncio
    async def test_owner_updates_and_clears_description(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        photo = await make_photo(photographer, description="Old text")

        updated = await photo_service.update_photo(
            db_session,
            photographer,
            photo.id,
            PhotoUpdate.model_validate({"price": "15.00", "description": None, "title": None}),
        )

        assert updated.price == Decimal("15.00")
        assert updated.description is None
        assert updated.title == photo.title

    @pytest.mark.asyncio
    async def test_stranger_cannot_update(self, db_session, make_user, make_photo):
        photo = await make_photo(await make_user(ROLE_PHOTOGRAPHER))
        other = await make_user(ROLE_PHOTOGRAPHER)

        with pytest.raises(AuthorizationError):
            await photo_service.update_photo(db_session, other, photo.id, PhotoUpdate(price=Decimal("1.00")))

    @pytest.mark.asyncio
    async def test_only_admin_features(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        photo = await make_photo(photographer)

        with pytest.raises(AuthorizationError):
            await photo_service.update_photo(db_session, photographer, photo.id, PhotoUpdate(is_featured=True))

        admin = await make_user(ROLE_ADMIN)
        featured = await photo_service.update_photo(db_session, admin, photo.id, PhotoUpdate(is_featured=True))
        assert featured.is_featured is True

    @pytest.mark.asyncio
    async def test_soft_delete_hides_photo(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        photo = await make_photo(photographer)

        await photo_service.delete_photo(db_session, photographer, photo.id)

        with pytest.raises(NotFoundError):
            await photo_service.get_photo(db_session, photo.id)
        assert (await photo_service.get_photo(db_session, photo.id, include_inactive=True)).is_active is False

    @pytest.mark.asyncio
    async def test_exclusivity_locked_after_sale(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        first, second = await make_user(), await make_user()
        photo = await make_photo(photographer, is_exclusive=True)
        await purchase_service.create_purchase(db_session, first, photo.id)

        with pytest.raises(InvalidOperationError, match="Exclusivity"):
            await photo_service.update_photo(db_session, photographer, photo.id, PhotoUpdate(is_exclusive=False))

        # Still sold out to everyone else
        with pytest.raises(PhotoUnavailableError):
            await purchase_service.create_purchase(db_session, second, photo.id)

    @pytest.mark.asyncio
    async def test_sold_photo_cannot_become_exclusive(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        photo = await make_photo(photographer)
        await purchase_service.create_purchase(db_session, await make_user(), photo.id)

        with pytest.raises(InvalidOperationError) as exc_info:
            await photo_service.update_photo(db_session, photographer, photo.id, PhotoUpdate(is_exclusive=True))
        assert exc_info.value.context["completed_purchases"] == 1

    @pytest.mark.asyncio
    async def test_exclusivity_editable_before_any_sale(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        photo = await make_photo(photographer)

        updated = await photo_service.update_photo(db_session, photographer, photo.id, PhotoUpdate(is_exclusive=True))
        assert updated.is_exclusive is True

        # Same value is not a change
        again = await photo_service.update_photo(db_session, photographer, photo.id, PhotoUpdate(is_exclusive=True))
        assert again.is_exclusive is True


class TestTagSearch:
    @pytest_asyncio.fixture
    async def tagged(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        await make_photo(photographer, title="Corner shop", tags=["café", "paris"])
        await make_photo(photographer, title="Crossing", tags=["東京", "night"])
        await make_photo(photographer, title="Shoreline", tags=["sea", "sky"])

    async def titles(self, db_session, search):
        page = await photo_query.list_photos(db_session, PhotoFilters(search=search))
        return {p.title for p in page.photos}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "search, expected",
        [("café", {"Corner shop"}), ("CAFÉ", {"Corner shop"}), ("東京", {"Crossing"}), ("ea", {"Shoreline"})],
    )
    async def test_matches_inside_a_tag(self, db_session, tagged, search, expected):
        assert await self.titles(db_session, search) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("search", ['", "', '"', "[", "\\u", "sea sky", "a\ns"])
    async def test_never_matches_storage_punctuation_or_across_tags(self, db_session, tagged, search):
        assert await self.titles(db_session, search) == set()

    @pytest.mark.asyncio
    async def test_retagging_updates_search(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        photo = await make_photo(photographer, title="Market", tags=["food"])

        await photo_service.update_photo(db_session, photographer, photo.id, PhotoUpdate(tags=["Épices"]))

        assert await self.titles(db_session, "épices") == {"Market"}
        assert await self.titles(db_session, "food") == set()


class TestMarketplaceQuery:
    @pytest_asyncio.fixture
    async def catalog(self, db_session, make_user, make_photo, make_category):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        nature = await make_category("Nature", "nature")
        city = await make_category("City", "city")
        now = utcnow()
        photos = {
            "forest": await make_photo(
                photographer, price="5.00", title="Misty forest", category_id=nature.id,
                tags=["fog"], created_at=now - timedelta(days=3),
            ),
            "lake": await make_photo(
                photographer, price="25.00", title="Mountain lake", category_id=nature.id,
                description="Still water at 100% calm", created_at=now - timedelta(days=2),
            ),
            "street": await make_photo(
                photographer, price="15.00", title="Night street", category_id=city.id,
                views=50, created_at=now - timedelta(days=1),
            ),
        }
        await make_photo(photographer, title="Hidden", is_active=False)
        return photographer, photos

    @pytest.mark.asyncio
    async def test_default_lists_active_newest_first(self, db_session, catalog):
        page = await photo_query.list_photos(db_session, PhotoFilters())
        assert [p.title for p in page.photos] == ["Night street", "Mountain lake", "Misty forest"]
        assert page.pagination.total_items == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "search, expected",
        [("MISTY", {"Misty forest"}), ("fog", {"Misty forest"}), ("100%", {"Mountain lake"}), ("zzz", set())],
    )
    async def test_search(self, db_session, catalog, search, expected):
        page = await photo_query.list_photos(db_session, PhotoFilters(search=search))
        assert {p.title for p in page.photos} == expected

    @pytest.mark.asyncio
    async def test_category_slug(self, db_session, catalog):
        page = await photo_query.list_photos(db_session, PhotoFilters(category="nature"))
        assert {p.title for p in page.photos} == {"Misty forest", "Mountain lake"}

        everything = await photo_query.list_photos(db_session, PhotoFilters(category="all"))
        assert everything.pagination.total_items == 3

    @pytest.mark.asyncio
    async def test_unknown_category_is_empty_page(self, db_session, catalog):
        page = await photo_query.list_photos(db_session, PhotoFilters(category="underwater"))
        assert page.photos == []
        assert page.pagination.total_items == 0

    @pytest.mark.asyncio
    async def test_price_range_and_sort(self, db_session, catalog):
        page = await photo_query.list_photos(
            db_session,
            PhotoFilters(price_min=Decimal("5.00"), price_max=Decimal("15.00"), sort_by="price-high"),
        )
        assert [p.price for p in page.photos] == [Decimal("15.00"), Decimal("5.00")]

    @pytest.mark.asyncio
    async def test_views_sort_and_unknown_sort_falls_back(self, db_session, catalog):
        by_views = await photo_query.list_photos(db_session, PhotoFilters(sort_by="views"))
        assert by_views.photos[0].title == "Night street"

        fallback = await photo_query.list_photos(db_session, PhotoFilters(sort_by="random"))
        assert fallback.photos[0].title == "Night street"

    @pytest.mark.asyncio
    async def test_pagination(self, db_session, catalog):
        page = await photo_query.list_photos(db_session, PhotoFilters(page=2, limit=2, sort_by="oldest"))
        assert [p.title for p in page.photos] == ["Night street"]
        meta = page.pagination
        assert (meta.current_page, meta.total_pages, meta.has_next, meta.has_prev) == (2, 2, False, True)

    @pytest.mark.asyncio
    async def test_annotations_for_viewer(self, db_session, make_user, catalog):
        photographer, photos = catalog
        buyer = await make_user()
        await engagement_service.toggle_like(db_session, buyer, photos["forest"].id)
        await purchase_service.create_purchase(db_session, buyer, photos["lake"].id)

        page = await photo_query.list_photos(db_session, PhotoFilters(), viewer=buyer)
        by_title = {p.title: p for p in page.photos}
        assert by_title["Misty forest"].is_liked is True
        assert by_title["Mountain lake"].is_purchased is True
        assert by_title["Mountain lake"].purchase_info.downloads_remaining == 3
        assert not any(p.is_owner for p in page.photos)

        owner_page = await photo_query.list_photos(db_session, PhotoFilters(), viewer=photographer)
        assert all(p.is_owner for p in owner_page.photos)

        anonymous = await photo_query.list_photos(db_session, PhotoFilters())
        assert not any(p.is_liked or p.is_purchased for p in anonymous.photos)


class TestCollections:
    @pytest.mark.asyncio
    async def test_liked_and_purchased(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        buyer = await make_user()
        liked = await make_photo(photographer, title="Liked one")
        bought = await make_photo(photographer, title="Bought one")
        await engagement_service.toggle_like(db_session, buyer, liked.id)
        await purchase_service.create_purchase(db_session, buyer, bought.id)
        await photo_service.delete_photo(db_session, photographer, bought.id)

        liked_page = await photo_service.list_liked(db_session, buyer, 1, 12)
        purchased_page = await photo_service.list_purchased(db_session, buyer, 1, 12)

        assert [p.title for p in liked_page.photos] == ["Liked one"]
        # Still listed after the photographer deactivated it
        assert [p.title for p in purchased_page.photos] == ["Bought one"]

    @pytest.mark.asyncio
    async def test_my_photos_totals(self, db_session, make_user, make_photo):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        await make_photo(photographer, views=10, downloads=2)
        await make_photo(photographer, views=5, likes_count=4)

        page = await photo_service.list_my_photos(db_session, photographer, 1, 12)
        assert (page.stats.total_photos, page.stats.total_views) == (2, 15)
        assert (page.stats.total_downloads, page.stats.total_likes) == (2, 4)

    @pytest.mark.asyncio
    async def test_user_photos_unknown_user(self, db_session):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await photo_service.list_user_photos(db_session, uuid4(), None)

    @pytest.mark.asyncio
    async def test_category_detail(self, db_session, make_user, make_photo, make_category):
        photographer = await make_user(ROLE_PHOTOGRAPHER)
        category = await make_category("Nature", "nature")
        await make_photo(photographer, category_id=category.id)

        detail = await photo_service.get_category_detail(db_session, "nature", None)
        assert detail.category.photo_count == 1
        assert len(detail.photos) == 1

    @pytest.mark.asyncio
    async def test_inactive_category_hidden_from_non_admins(self, db_session, make_user, make_category):
        category = await make_category("Archive", "archive", is_active=False)

        with pytest.raises(NotFoundError):
            await photo_service.get_category_detail(db_session, "archive", await make_user())

        detail = await photo_service.get_category_detail(db_session, str(category.id), await make_user(ROLE_ADMIN))
        assert detail.category.is_active is False

    @pytest.mark.asyncio
    async def test_detail_counts_view(self, db_session, make_user, make_photo):
        photo = await make_photo(await make_user(ROLE_PHOTOGRAPHER))

        detail = await photo_service.get_photo_detail(db_session, photo.id, None, "10.0.0.1")
        assert detail.views == 1
