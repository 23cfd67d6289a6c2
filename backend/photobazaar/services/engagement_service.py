"""
PhotoBazaar Backend: Likes and Views
=====================================

What:  Like toggling and unique view counting for photos.
Why:   Counters on the photo row stay equal to the like and view rows.
How:   The unique indexes on likes and views decide duplicates. Each insert
       runs in a SAVEPOINT so a uniqueness violation rolls back only that
       insert, not the request. Counters move with single-statement UPDATEs
       (`likes_count = likes_count + 1`) so concurrent requests never lose
       an increment.
Who:   Called by the like route and by photo detail reads.
When:  Each like click and each detail page load.

Like toggle:
    liked?  ── yes ──► DELETE like; likes_count - 1 (floored at 0)
       │
       no ──► INSERT like ─┬─ ok ─────────► likes_count + 1
                           └─ duplicate ──► already liked; counter untouched

View:
    owner viewing own photo ──► not counted
    INSERT view ─┬─ ok ─────────► views + 1
                 └─ duplicate ──► already counted
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.exceptions import InvalidOperationError, NotFoundError
from photobazaar.models.like import Like
from photobazaar.models.photo import Photo
from photobazaar.models.user import User
from photobazaar.models.view import View
from photobazaar.schemas.photo import LikeResult

logger = logging.getLogger(__name__)


class EngagementService:
    """
    Like toggling and view counting.

    Responsibilities:
        - toggle_like(): like or unlike, returning the fresh likes_count
        - record_view(): count a view once per user or anonymous IP

    Error Handling Strategy:
        Only caller mistakes surface (NotFoundError for missing or inactive
        photos, InvalidOperationError for liking your own photo). A unique
        violation from a racing request is an expected outcome, so it is
        caught and reported as "already liked" or "already counted".
    """

    async def _active_photo(self, db: AsyncSession, photo_id: uuid.UUID) -> Photo:
        photo = await db.scalar(select(Photo).where(Photo.id == photo_id, Photo.is_active.is_(True)))
        if photo is None:
            raise NotFoundError(resource="Photo", resource_id=str(photo_id))
        return photo

    async def _find_like(self, db: AsyncSession, user_id: uuid.UUID, photo_id: uuid.UUID) -> Optional[uuid.UUID]:
        return await db.scalar(select(Like.id).where(Like.user_id == user_id, Like.photo_id == photo_id))

    async def _bump_likes(self, db: AsyncSession, photo_id: uuid.UUID, delta: int) -> None:
        if delta > 0:
            new_value = Photo.likes_count + delta
        else:
            new_value = case(
                (Photo.likes_count + delta > 0, Photo.likes_count + delta),
                else_=0,
            )
        await db.execute(
            update(Photo)
            .where(Photo.id == photo_id)
            .values(likes_count=new_value)
            .execution_options(synchronize_session=False)
        )

    async def toggle_like(self, db: AsyncSession, user: User, photo_id: uuid.UUID) -> LikeResult:
        """
        Flip the user's like on a photo.

        Returns:
            LikeResult with the new state and the counter as stored.

        Raises:
            NotFoundError: photo missing or inactive
            InvalidOperationError: the user owns the photo
        """
        photo = await self._active_photo(db, photo_id)
        if photo.photographer_id == user.id:
            raise InvalidOperationError(
                "You cannot like your own photo",
                context={"photo_id": str(photo_id)},
            )

        existing_id = await self._find_like(db, user.id, photo.id)

        if existing_id is not None:
            result = await db.execute(delete(Like).where(Like.id == existing_id))
            # 0 rows: a concurrent unlike got there first and already decremented
            if result.rowcount:
                await self._bump_likes(db, photo.id, -1)
            is_liked = False
        else:
            try:
                async with db.begin_nested():
                    db.add(Like(user_id=user.id, photo_id=photo.id))
            except IntegrityError:
                logger.debug("Concurrent like for photo %s by %s", photo.id, user.id)
            else:
                await self._bump_likes(db, photo.id, 1)
            is_liked = True

        await db.refresh(photo, ["likes_count"])
        logger.info(
            "Like toggled: photo=%s user=%s liked=%s count=%d",
            photo.id,
            user.id,
            is_liked,
            photo.likes_count,
        )
        return LikeResult(photo_id=photo.id, is_liked=is_liked, likes_count=photo.likes_count)

    async def record_view(
        self,
        db: AsyncSession,
        photo: Photo,
        viewer: Optional[User],
        ip_address: Optional[str],
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Count a unique view. Returns True when the counter moved.

        Identity is the viewer's user id, or the client IP for anonymous
        callers. Owners never count on their own photos.
        """
        if viewer is not None and viewer.id == photo.photographer_id:
            return False
        if viewer is None and not ip_address:
            return False

        try:
            async with db.begin_nested():
                db.add(
                    View(
                        photo_id=photo.id,
                        user_id=viewer.id if viewer else None,
                        ip_address=ip_address,
                        user_agent=(user_agent or "")[:500] or None,
                    )
                )
        except IntegrityError:
            return False

        await db.execute(
            update(Photo)
            .where(Photo.id == photo.id)
            .values(views=Photo.views + 1)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(photo, ["views"])
        return True


engagement_service = EngagementService()
