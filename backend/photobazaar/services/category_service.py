"""
PhotoBazaar Backend: Category Service
======================================

What:  Category listing and lookup for everyone; create, update and delete
       for admins.
How:   Categories are addressed by UUID or slug. Slugs are derived from the
       name when not supplied. A category that still has photos cannot be
       deleted.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from photobazaar.exceptions import ConflictError, NotFoundError, ValidationError
from photobazaar.models.category import Category
from photobazaar.models.photo import Photo
from photobazaar.models.user import User
from photobazaar.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from photobazaar.security.policy import Action, authorize
from photobazaar.utils import slugify

logger = logging.getLogger(__name__)


def parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        return None


class CategoryService:
    async def list_categories(
        self,
        db: AsyncSession,
        include_count: bool = False,
        include_inactive: bool = False,
    ) -> List[CategoryResponse]:
        stmt = select(Category).order_by(Category.name)
        if not include_inactive:
            stmt = stmt.where(Category.is_active.is_(True))
        categories = (await db.scalars(stmt)).all()

        counts = {}
        if include_count and categories:
            rows = await db.execute(
                select(Photo.category_id, func.count(Photo.id))
                .where(Photo.is_active.is_(True), Photo.category_id.is_not(None))
                .group_by(Photo.category_id)
            )
            counts = {category_id: count for category_id, count in rows.all()}

        return [
            CategoryResponse.model_validate(category).model_copy(
                update={"photo_count": counts.get(category.id, 0) if include_count else None}
            )
            for category in categories
        ]

    async def resolve_reference(self, db: AsyncSession, ref: str) -> Optional[uuid.UUID]:
        """Category id for a UUID string or a slug; None when no slug matches."""
        category_id = parse_uuid(ref)
        if category_id is not None:
            return category_id
        return await db.scalar(select(Category.id).where(Category.slug == ref.lower()))

    async def get_category(self, db: AsyncSession, ref: str) -> Category:
        category_id = parse_uuid(ref)
        condition = Category.id == category_id if category_id else Category.slug == ref.lower()
        category = await db.scalar(select(Category).where(condition))
        if category is None:
            raise NotFoundError(resource="Category", resource_id=ref)
        return category

    async def _ensure_unique(
        self,
        db: AsyncSession,
        name: str,
        slug: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        stmt = select(Category.id).where(
            or_(func.lower(Category.name) == name.lower(), Category.slug == slug)
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if await db.scalar(stmt.limit(1)) is not None:
            raise ConflictError(
                message="A category with this name or slug already exists",
                context={"name": name, "slug": slug},
            )

    @staticmethod
    def _slug_for(name: str, slug: Optional[str]) -> str:
        value = slug or slugify(name)
        if not value:
            raise ValidationError(message="Category name must contain letters or digits", field="name")
        return value

    async def _flush(self, db: AsyncSession) -> None:
        try:
            async with db.begin_nested():
                await db.flush()
        except IntegrityError:
            raise ConflictError(message="A category with this name or slug already exists")

    async def create_category(self, db: AsyncSession, actor: User, data: CategoryCreate) -> Category:
        authorize(actor, Action.MANAGE_CATEGORIES)
        name = data.name.strip()
        slug = self._slug_for(name, data.slug)
        await self._ensure_unique(db, name, slug)

        category = Category(name=name, slug=slug, description=data.description)
        db.add(category)
        await self._flush(db)
        logger.info("Category created: %s (%s)", category.slug, category.id)
        return category

    async def update_category(
        self,
        db: AsyncSession,
        actor: User,
        category_id: uuid.UUID,
        data: CategoryUpdate,
    ) -> Category:
        authorize(actor, Action.MANAGE_CATEGORIES)
        category = await db.get(Category, category_id)
        if category is None:
            raise NotFoundError(resource="Category", resource_id=str(category_id))

        name = data.name.strip() if data.name is not None else category.name
        if data.slug is not None:
            slug = data.slug
        elif data.name is not None:
            slug = self._slug_for(name, None)
        else:
            slug = category.slug
        await self._ensure_unique(db, name, slug, exclude_id=category.id)

        category.name = name
        category.slug = slug
        if data.description is not None:
            category.description = data.description
        if data.is_active is not None:
            category.is_active = data.is_active
        await self._flush(db)
        await db.refresh(category)
        logger.info("Category updated: %s", category.id)
        return category

    async def delete_category(self, db: AsyncSession, actor: User, category_id: uuid.UUID) -> None:
        authorize(actor, Action.MANAGE_CATEGORIES)
        category = await db.get(Category, category_id)
        if category is None:
            raise NotFoundError(resource="Category", resource_id=str(category_id))

        photo_count = await db.scalar(
            select(func.count(Photo.id)).where(Photo.category_id == category.id)
        )
        if photo_count:
            raise ConflictError(
                message="Cannot delete a category that still has photos",
                context={"photo_count": photo_count},
            )
        await db.delete(category)
        await db.flush()
        logger.info("Category deleted: %s", category_id)


category_service = CategoryService()
