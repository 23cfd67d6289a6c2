"""
PhotoBazaar Backend: Marketplace Query Builder
===============================================

What:  Turns listing filters into one filtered, sorted, paginated SELECT plus
       a COUNT, then annotates each row for the calling user.
Why:   Every photo collection shares one filter, sort and paging path.
How:   Filters become a list of WHERE conditions shared by the page query and
       the count query. Viewer annotations (isLiked, isPurchased, isOwner,
       purchaseInfo) cost two IN queries per page regardless of page size.
Who:   Used by PhotoService collections and the GET /api/photos route.
When:  Every listing, search and collection page.

Search:
    title and description   ILIKE '%term%'
    tags                    LIKE over tags_text, the lowercased tags joined
                            by newlines, with the term lowercased and its
                            whitespace collapsed. A term cannot span tags.

Sort options:
    newest       created_at DESC (default; unknown values fall back here)
    oldest       created_at ASC
    popular      likes_count DESC
    price-low    price ASC
    price-high   price DESC
    views        views DESC
"""

import logging
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.models.like import Like
from photobazaar.models.photo import Photo, normalize_tag
from photobazaar.models.purchase import STATUS_COMPLETED, Purchase
from photobazaar.models.user import User
from photobazaar.schemas.common import Pagination
from photobazaar.schemas.photo import (
    SORT_OPTIONS,
    PhotoFilters,
    PhotoPage,
    PhotoResponse,
    PurchaseInfo,
)
from photobazaar.services.category_service import category_service
from photobazaar.utils import pagination_meta

logger = logging.getLogger(__name__)

_SORTS = {
    "newest": (desc(Photo.created_at),),
    "oldest": (asc(Photo.created_at),),
    "popular": (desc(Photo.likes_count), desc(Photo.created_at)),
    "price-low": (asc(Photo.price), desc(Photo.created_at)),
    "price-high": (desc(Photo.price), desc(Photo.created_at)),
    "views": (desc(Photo.views), desc(Photo.created_at)),
}


def sort_clause(sort_by: Optional[str]) -> Tuple[Any, ...]:
    key = sort_by if sort_by in SORT_OPTIONS else "newest"
    # id as final tie-breaker keeps pages stable
    return _SORTS[key] + (Photo.id,)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def purchase_info(purchase: Purchase) -> PurchaseInfo:
    return PurchaseInfo(
        purchase_id=purchase.id,
        status=purchase.status,
        download_count=purchase.download_count,
        max_downloads=purchase.max_downloads,
        downloads_remaining=purchase.downloads_remaining,
        download_expires_at=purchase.download_expires_at,
    )


class PhotoQuery:
    """
    Read side of the marketplace.

    Responsibilities:
        - build_conditions(): PhotoFilters → WHERE clauses
        - fetch_page(): one page plus the total count
        - annotate(): per-viewer flags for a page of photos
        - list_photos(): the public marketplace listing

    Error Handling Strategy:
        Filter values are validated by PhotoFilters before they get here, so
        nothing in this class raises for user input. An unknown category
        yields an empty page, and an unknown sort falls back to newest.
        Database errors propagate unchanged.
    """

    async def build_conditions(self, db: AsyncSession, filters: PhotoFilters) -> Optional[List[Any]]:
        """
        WHERE conditions for the marketplace listing.

        Returns None when the filters can match nothing (an unknown category
        slug), so callers can skip the round trip.
        """
        conditions: List[Any] = [Photo.is_active.is_(True)]

        if filters.search and filters.search.strip():
            pattern = _like_pattern(filters.search.strip())
            # Why LIKE on a lowercased term: SQLite's ILIKE folds ASCII only
            tag_pattern = _like_pattern(normalize_tag(filters.search))
            conditions.append(
                or_(
                    Photo.title.ilike(pattern, escape="\\"),
                    Photo.description.ilike(pattern, escape="\\"),
                    Photo.tags_text.like(tag_pattern, escape="\\"),
                )
            )

        if filters.category and filters.category.lower() != "all":
            category_id = await category_service.resolve_reference(db, filters.category)
            if category_id is None:
                return None
            conditions.append(Photo.category_id == category_id)

        if filters.price_min is not None:
            conditions.append(Photo.price >= filters.price_min)
        if filters.price_max is not None:
            conditions.append(Photo.price <= filters.price_max)
        if filters.photographer is not None:
            conditions.append(Photo.photographer_id == filters.photographer)
        if filters.featured is not None:
            conditions.append(Photo.is_featured == filters.featured)

        return conditions

    async def fetch_page(
        self,
        db: AsyncSession,
        conditions: Sequence[Any],
        order_by: Sequence[Any],
        page: int,
        limit: int,
        join: Optional[Tuple[Any, Any]] = None,
    ) -> Tuple[List[Photo], int]:
        stmt = select(Photo)
        count_stmt = select(func.count(Photo.id))
        if join is not None:
            stmt = stmt.join(*join)
            count_stmt = count_stmt.join(*join)

        total = await db.scalar(count_stmt.where(*conditions)) or 0
        photos = await db.scalars(
            stmt.where(*conditions)
            .order_by(*order_by)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(photos.all()), int(total)

    async def annotate(
        self,
        db: AsyncSession,
        photos: Sequence[Photo],
        viewer: Optional[User],
    ) -> List[PhotoResponse]:
        """
        Response models for a page, with isLiked, isPurchased, isOwner and
        purchaseInfo filled in when there is a viewer.
        """
        responses = [PhotoResponse.model_validate(photo) for photo in photos]
        if viewer is None or not photos:
            return responses

        ids = [photo.id for photo in photos]
        liked = set(
            (
                await db.scalars(
                    select(Like.photo_id).where(Like.user_id == viewer.id, Like.photo_id.in_(ids))
                )
            ).all()
        )
        purchases = {
            purchase.photo_id: purchase
            for purchase in (
                await db.scalars(
                    select(Purchase).where(Purchase.buyer_id == viewer.id, Purchase.photo_id.in_(ids))
                )
            ).all()
        }

        annotated = []
        for photo, response in zip(photos, responses):
            purchase = purchases.get(photo.id)
            annotated.append(
                response.model_copy(
                    update={
                        "is_liked": photo.id in liked,
                        "is_purchased": purchase is not None and purchase.status == STATUS_COMPLETED,
                        "is_owner": photo.photographer_id == viewer.id,
                        "purchase_info": purchase_info(purchase) if purchase else None,
                    }
                )
            )
        return annotated

    async def page_response(
        self,
        db: AsyncSession,
        photos: Sequence[Photo],
        total: int,
        page: int,
        limit: int,
        viewer: Optional[User],
    ) -> PhotoPage:
        return PhotoPage(
            photos=await self.annotate(db, photos, viewer),
            pagination=Pagination(**pagination_meta(page, limit, total)),
        )

    async def list_photos(
        self,
        db: AsyncSession,
        filters: PhotoFilters,
        viewer: Optional[User] = None,
    ) -> PhotoPage:
        conditions = await self.build_conditions(db, filters)
        if conditions is None:
            logger.debug("Unknown category '%s'; returning empty page", filters.category)
            return await self.page_response(db, [], 0, filters.page, filters.limit, viewer)

        photos, total = await self.fetch_page(
            db, conditions, sort_clause(filters.sort_by), filters.page, filters.limit
        )
        return await self.page_response(db, photos, total, filters.page, filters.limit, viewer)


photo_query = PhotoQuery()
