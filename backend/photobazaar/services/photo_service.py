"""
PhotoBazaar Backend: Photo Service
===================================

What:  Upload, edit, soft delete and detail for photos, plus the per-user
       collections (my photos, liked, purchased, a photographer's portfolio,
       a category page).
Why:   Routes stay thin; ownership and field rules are enforced here.
How:   Images go through FileService before the row is inserted. If the
       insert fails, the files just written are removed so storage never
       holds orphans for rows that do not exist.
Who:   Called by the photo, user and category routes.
When:  On uploads, edits, detail pages and collection pages.

Upload pipeline:
    ┌──────────┐   ┌────────────────┐   ┌──────────────┐   ┌────────────┐
    │ authorize│──►│ validate fields│──►│ store files  │──►│ INSERT row │
    │ (upload) │   │ (title, price, │   │ original +   │   │ (rollback  │
    └──────────┘   │  category)     │   │ display+thumb│   │  → cleanup)│
                   └────────────────┘   └──────────────┘   └────────────┘
"""

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.exceptions import InvalidOperationError, NotFoundError, ValidationError
from photobazaar.models.category import Category
from photobazaar.models.like import Like
from photobazaar.models.photo import Photo
from photobazaar.models.purchase import STATUS_COMPLETED, Purchase
from photobazaar.models.user import User
from photobazaar.schemas.category import CategoryResponse
from photobazaar.schemas.common import Pagination
from photobazaar.schemas.photo import (
    CategoryDetail,
    MyPhotosPage,
    MyPhotosStats,
    PhotoPage,
    PhotoResponse,
    PhotoUpdate,
    clean_tags,
)
from photobazaar.security.policy import Action, authorize
from photobazaar.services.category_service import category_service
from photobazaar.services.engagement_service import engagement_service
from photobazaar.services.file_service import file_service
from photobazaar.services.photo_query import photo_query, sort_clause
from photobazaar.utils import CENTS, pagination_meta

logger = logging.getLogger(__name__)

MIN_PRICE = Decimal("0.01")
MAX_PRICE = Decimal("9999.99")
NULLABLE_FIELDS = {"description", "category_id"}


def parse_price(raw) -> Decimal:
    """Price from a form field; two decimal places, 0.01 to 9999.99."""
    try:
        price = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(message="Price must be a number", field="price")
    if not price.is_finite() or price != price.quantize(CENTS):
        raise ValidationError(message="Price must have at most two decimal places", field="price")
    if not MIN_PRICE <= price <= MAX_PRICE:
        raise ValidationError(
            message=f"Price must be between {MIN_PRICE} and {MAX_PRICE}",
            field="price",
        )
    return price


def parse_title(raw: Optional[str]) -> str:
    title = (raw or "").strip()
    if not 3 <= len(title) <= 200:
        raise ValidationError(message="Title must be 3 to 200 characters", field="title")
    return title


class PhotoService:
    """
    Photo lifecycle and per-user photo collections.

    Responsibilities:
        - upload_photo(): validate, store files, insert the row
        - update_photo() / delete_photo(): owner edits and soft delete
        - get_photo_detail(): detail read that counts a view
        - list_my_photos(), list_liked(), list_purchased(),
          list_user_photos(), get_category_detail()

    Error Handling Strategy:
        Field problems raise ValidationError with the camelCase field name so
        the API can point at the form input. Permission checks go through
        security.policy and raise AuthorizationError. Storage failures keep
        their FileStorageError type; a failed INSERT removes the files it
        just wrote and re-raises.
    """

    async def get_photo(self, db: AsyncSession, photo_id: uuid.UUID, include_inactive: bool = False) -> Photo:
        stmt = select(Photo).where(Photo.id == photo_id)
        if not include_inactive:
            stmt = stmt.where(Photo.is_active.is_(True))
        photo = await db.scalar(stmt)
        if photo is None:
            raise NotFoundError(resource="Photo", resource_id=str(photo_id))
        return photo

    async def _check_category(self, db: AsyncSession, category_id: Optional[uuid.UUID]) -> None:
        if category_id is None:
            return
        exists = await db.scalar(
            select(Category.id).where(Category.id == category_id, Category.is_active.is_(True))
        )
        if exists is None:
            raise ValidationError(
                message="Category does not exist or is inactive",
                field="categoryId",
                context={"category_id": str(category_id)},
            )

    async def _check_exclusivity_open(self, db: AsyncSession, photo: Photo) -> None:
        """
        Exclusivity is fixed once the photo has any completed sale, in both
        directions.

        Raises:
            InvalidOperationError: the photo has a completed purchase
        """
        completed = await db.scalar(
            select(func.count(Purchase.id)).where(
                Purchase.photo_id == photo.id, Purchase.status == STATUS_COMPLETED
            )
        )
        if photo.sold or completed:
            raise InvalidOperationError(
                "Exclusivity cannot change after the photo has been sold",
                context={"photo_id": str(photo.id), "completed_purchases": int(completed or 0)},
            )

    # ── Mutations ─────────────────────────────────────────────────────────

    async def upload_photo(
        self,
        db: AsyncSession,
        actor: User,
        filename: Optional[str],
        content: bytes,
        title: Optional[str],
        price,
        description: Optional[str] = None,
        category_id: Optional[uuid.UUID] = None,
        tags=None,
        is_exclusive: bool = False,
        content_length: Optional[int] = None,
    ) -> PhotoResponse:
        """
        Store an uploaded image and create its listing.

        Args:
            content: raw upload bytes; decoded with Pillow by FileService
            price: form value, parsed by parse_price()
            tags: list or comma-separated string

        Raises:
            AuthorizationError: actor is not a photographer
            ValidationError: bad title, price, description, category or image
            FileStorageError: writing to storage failed
        """
        authorize(actor, Action.UPLOAD_PHOTO)
        clean_title = parse_title(title)
        clean_price = parse_price(price)
        if description is not None and len(description) > 5000:
            raise ValidationError(message="Description must be at most 5000 characters", field="description")
        await self._check_category(db, category_id)

        stored = await file_service.store_photo(filename, content, content_length)
        photo = Photo(
            photographer_id=actor.id,
            category_id=category_id,
            title=clean_title,
            description=(description or "").strip() or None,
            price=clean_price,
            tags=clean_tags(tags),
            image_url=stored.image_url,
            thumbnail_url=stored.thumbnail_url,
            full_image_path=stored.original_path,
            width=stored.width,
            height=stored.height,
            file_size=stored.file_size,
            format=stored.format,
            is_exclusive=is_exclusive,
        )
        try:
            db.add(photo)
            await db.flush()
        except Exception:
            await file_service.remove_photo_files(
                stored.original_path, stored.image_url, stored.thumbnail_url
            )
            raise

        await db.refresh(photo)
        logger.info(
            "Photo uploaded: %s by %s (%dx%d, %d bytes)",
            photo.id,
            actor.id,
            stored.width,
            stored.height,
            stored.file_size,
        )
        return PhotoResponse.model_validate(photo).model_copy(update={"is_owner": True})

    async def update_photo(
        self,
        db: AsyncSession,
        actor: User,
        photo_id: uuid.UUID,
        data: PhotoUpdate,
    ) -> PhotoResponse:
        """
        Apply a partial update from the owner (or an admin).

        Raises:
            NotFoundError: photo missing or inactive
            AuthorizationError: not the owner, or featuring without admin role
            ValidationError: bad title or category
            InvalidOperationError: changing exclusivity after a sale
        """
        photo = await self.get_photo(db, photo_id)
        authorize(actor, Action.UPDATE_PHOTO, photo)
        if data.is_featured is not None:
            authorize(actor, Action.FEATURE_PHOTO, photo)

        changes = data.model_dump(exclude_unset=True)
        # Only description and category may be cleared with null
        changes = {
            field: value
            for field, value in changes.items()
            if value is not None or field in NULLABLE_FIELDS
        }
        if "title" in changes:
            changes["title"] = parse_title(changes["title"])
        if "category_id" in changes:
            await self._check_category(db, changes["category_id"])
        if "is_exclusive" in changes and changes["is_exclusive"] != photo.is_exclusive:
            await self._check_exclusivity_open(db, photo)

        for field, value in changes.items():
            setattr(photo, field, value)

        await db.flush()
        await db.refresh(photo)
        logger.info("Photo updated: %s fields=%s", photo.id, sorted(changes))
        annotated = await photo_query.annotate(db, [photo], actor)
        return annotated[0]

    async def delete_photo(self, db: AsyncSession, actor: User, photo_id: uuid.UUID) -> None:
        """Soft delete; files stay on disk so existing buyers can still download."""
        photo = await self.get_photo(db, photo_id)
        authorize(actor, Action.DELETE_PHOTO, photo)
        photo.is_active = False
        await db.flush()
        logger.info("Photo deactivated: %s by %s", photo.id, actor.id)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_photo_detail(
        self,
        db: AsyncSession,
        photo_id: uuid.UUID,
        viewer: Optional[User],
        ip_address: Optional[str],
        user_agent: Optional[str] = None,
    ) -> PhotoResponse:
        """Fetch an active photo and count the view."""
        photo = await self.get_photo(db, photo_id)
        await engagement_service.record_view(db, photo, viewer, ip_address, user_agent)
        annotated = await photo_query.annotate(db, [photo], viewer)
        return annotated[0]

    async def list_my_photos(self, db: AsyncSession, actor: User, page: int, limit: int) -> MyPhotosPage:
        conditions = [Photo.photographer_id == actor.id, Photo.is_active.is_(True)]
        photos, total = await photo_query.fetch_page(db, conditions, sort_clause("newest"), page, limit)

        totals = (
            await db.execute(
                select(
                    func.coalesce(func.sum(Photo.views), 0),
                    func.coalesce(func.sum(Photo.downloads), 0),
                    func.coalesce(func.sum(Photo.likes_count), 0),
                ).where(*conditions)
            )
        ).one()
        return MyPhotosPage(
            photos=await photo_query.annotate(db, photos, actor),
            pagination=Pagination(**pagination_meta(page, limit, total)),
            stats=MyPhotosStats(
                total_photos=total,
                total_views=int(totals[0]),
                total_downloads=int(totals[1]),
                total_likes=int(totals[2]),
            ),
        )

    async def list_liked(self, db: AsyncSession, user: User, page: int, limit: int) -> PhotoPage:
        photos, total = await photo_query.fetch_page(
            db,
            [Like.user_id == user.id, Photo.is_active.is_(True)],
            (desc(Like.created_at), Photo.id),
            page,
            limit,
            join=(Like, Like.photo_id == Photo.id),
        )
        return await photo_query.page_response(db, photos, total, page, limit, user)

    async def list_purchased(self, db: AsyncSession, user: User, page: int, limit: int) -> PhotoPage:
        # Deactivated photos stay listed; the buyer still owns them
        photos, total = await photo_query.fetch_page(
            db,
            [Purchase.buyer_id == user.id, Purchase.status == STATUS_COMPLETED],
            (desc(Purchase.completed_at), Photo.id),
            page,
            limit,
            join=(Purchase, Purchase.photo_id == Photo.id),
        )
        return await photo_query.page_response(db, photos, total, page, limit, user)

    async def list_user_photos(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        viewer: Optional[User],
        sort_by: Optional[str] = None,
        page: int = 1,
        limit: int = 12,
    ) -> PhotoPage:
        if await db.get(User, user_id) is None:
            raise NotFoundError(resource="User", resource_id=str(user_id))
        photos, total = await photo_query.fetch_page(
            db,
            [Photo.photographer_id == user_id, Photo.is_active.is_(True)],
            sort_clause(sort_by),
            page,
            limit,
        )
        return await photo_query.page_response(db, photos, total, page, limit, viewer)

    async def get_category_detail(
        self,
        db: AsyncSession,
        ref: str,
        viewer: Optional[User],
        sort_by: Optional[str] = None,
        page: int = 1,
        limit: int = 12,
    ) -> CategoryDetail:
        category = await category_service.get_category(db, ref)
        if not category.is_active and not (viewer and viewer.is_admin):
            raise NotFoundError(resource="Category", resource_id=ref)

        photos, total = await photo_query.fetch_page(
            db,
            [Photo.category_id == category.id, Photo.is_active.is_(True)],
            sort_clause(sort_by),
            page,
            limit,
        )
        listing = await photo_query.page_response(db, photos, total, page, limit, viewer)
        return CategoryDetail(
            category=CategoryResponse.model_validate(category).model_copy(update={"photo_count": total}),
            photos=listing.photos,
            pagination=listing.pagination,
        )


photo_service = PhotoService()
