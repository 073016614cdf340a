import logging

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import CATEGORIES, query_cache
from app.core.exceptions import NotFoundError
from app.core.seed import DEFAULT_CATEGORIES
from app.models.transaction import Category, Transaction
from app.schemas.transaction import CategoryCreate, CategoryUpdate, CategoryResponse
from app.schemas.user import CurrentUser
from app.services.base import require_user, store_errors
from app.services.sync import invalidate_with_dependents

logger = logging.getLogger(__name__)


class CategoryService:
    @staticmethod
    async def _load_categories(db: AsyncSession, user_id: str) -> list[CategoryResponse]:
        query = (
            select(Category)
            .where(Category.user_id == user_id)
            .order_by(Category.name)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [CategoryResponse.model_validate(c) for c in result.scalars().all()]

    @staticmethod
    async def list_categories(db: AsyncSession, user: CurrentUser | None) -> list[CategoryResponse]:
        user = require_user(user)
        return await query_cache.fetch(CATEGORIES, user.id, CategoryService._load_categories, db=db)

    @staticmethod
    async def _get_row(db: AsyncSession, user_id: str, category_id: str) -> Category:
        query = select(Category).where(and_(Category.id == category_id, Category.user_id == user_id))
        category = (await db.execute(query)).scalar_one_or_none()
        if category is None:
            raise NotFoundError("Categoria não encontrada")
        return category

    @staticmethod
    async def create_category(db: AsyncSession, user: CurrentUser | None, data: CategoryCreate) -> CategoryResponse:
        user = require_user(user)
        db_obj = Category(**data.model_dump(), user_id=user.id)

        async with store_errors(db, "Erro ao salvar categoria"):
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)

        await invalidate_with_dependents(CATEGORIES, user.id)
        return CategoryResponse.model_validate(db_obj)

    @staticmethod
    async def update_category(
            db: AsyncSession, user: CurrentUser | None, category_id: str, data: CategoryUpdate
    ) -> CategoryResponse:
        user = require_user(user)
        category = await CategoryService._get_row(db, user.id, category_id)

        async with store_errors(db, "Erro ao atualizar categoria"):
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(category, key, value)
            await db.commit()
            await db.refresh(category)

        await invalidate_with_dependents(CATEGORIES, user.id)
        return CategoryResponse.model_validate(category)

    @staticmethod
    async def delete_category(db: AsyncSession, user: CurrentUser | None, category_id: str) -> None:
        """Deletes the category and orphans (never deletes) the transactions pointing at it."""
        user = require_user(user)
        category = await CategoryService._get_row(db, user.id, category_id)

        async with store_errors(db, "Erro ao excluir categoria"):
            await db.execute(
                update(Transaction)
                .where(and_(Transaction.category_id == category_id, Transaction.user_id == user.id))
                .values(category_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.delete(category)
            await db.commit()

        await invalidate_with_dependents(CATEGORIES, user.id)

    @staticmethod
    async def create_default_categories(db: AsyncSession, user: CurrentUser | None) -> list[CategoryResponse]:
        user = require_user(user)
        existing = await db.execute(select(Category.name, Category.type).where(Category.user_id == user.id))
        present = {(name.lower(), ctype) for name, ctype in existing.all()}

        new_rows = [
            Category(user_id=user.id, **default)
            for default in DEFAULT_CATEGORIES
            if (default["name"].lower(), default["type"]) not in present
        ]
        async with store_errors(db, "Erro ao criar categorias padrão"):
            db.add_all(new_rows)
            await db.commit()

        logger.info("Created %d default categories for user %s", len(new_rows), user.id)
        await invalidate_with_dependents(CATEGORIES, user.id)
        return await CategoryService._load_categories(db, user.id)
