import logging

from sqlalchemy import select, desc, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import TRANSACTIONS, query_cache
from app.core.exceptions import NotFoundError
from app.models.transaction import Transaction, Category
from app.schemas.ai import HistoryItem
from app.schemas.transaction import TransactionCreate, TransactionUpdate, TransactionResponse
from app.schemas.user import CurrentUser
from app.services.base import require_user, store_errors
from app.services.categories import CategoryService
from app.services.sync import invalidate_with_dependents

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


def _with_category_query():
    return (
        select(Transaction, Category.name, Category.color, Category.icon)
        .outerjoin(
            Category, and_(Category.id == Transaction.category_id, Category.user_id == Transaction.user_id)
        )
    )


def _to_response(row) -> TransactionResponse:
    trx, name, color, icon = row
    response = TransactionResponse.model_validate(trx)
    response.category_name = name
    response.category_color = color
    response.category_icon = icon
    return response


class TransactionService:
    @staticmethod
    async def _load_transactions(db: AsyncSession, user_id: str) -> list[TransactionResponse]:
        query = (
            _with_category_query()
            .where(Transaction.user_id == user_id)
            .order_by(desc(Transaction.transaction_date), desc(Transaction.created_at))
            .limit(LIST_LIMIT)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [_to_response(r) for r in result.all()]

    @staticmethod
    async def list_transactions(db: AsyncSession, user: CurrentUser | None) -> list[TransactionResponse]:
        user = require_user(user)
        return await query_cache.fetch(TRANSACTIONS, user.id, TransactionService._load_transactions, db=db)

    @staticmethod
    async def get_row(db: AsyncSession, user_id: str, transaction_id: str) -> Transaction:
        query = select(Transaction).where(
            and_(Transaction.id == transaction_id, Transaction.user_id == user_id)
        ).execution_options(populate_existing=True)
        result = await db.execute(query)
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundError("Transação não encontrada")
        return transaction

    @staticmethod
    async def get_transaction(db: AsyncSession, user: CurrentUser | None, transaction_id: str) -> TransactionResponse:
        user = require_user(user)
        query = _with_category_query().where(
            and_(Transaction.id == transaction_id, Transaction.user_id == user.id)
        ).execution_options(populate_existing=True)
        row = (await db.execute(query)).one_or_none()
        if row is None:
            raise NotFoundError("Transação não encontrada")
        return _to_response(row)

    @staticmethod
    async def create_transaction(db: AsyncSession, user: CurrentUser | None, data: TransactionCreate) -> TransactionResponse:
        user = require_user(user)
        if data.category_id is not None:
            await CategoryService._get_row(db, user.id, data.category_id)
        db_obj = Transaction(**data.model_dump(), user_id=user.id)

        async with store_errors(db, "Erro ao salvar transação"):
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)

        await invalidate_with_dependents(TRANSACTIONS, user.id)
        return TransactionResponse.model_validate(db_obj)

    @staticmethod
    async def update_transaction(
            db: AsyncSession, user: CurrentUser | None, transaction_id: str, data: TransactionUpdate
    ) -> TransactionResponse:
        user = require_user(user)
        transaction = await TransactionService.get_row(db, user.id, transaction_id)
        if data.category_id is not None:
            await CategoryService._get_row(db, user.id, data.category_id)

        async with store_errors(db, "Erro ao atualizar transação"):
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(transaction, key, value)
            await db.commit()
            await db.refresh(transaction)

        await invalidate_with_dependents(TRANSACTIONS, user.id)
        return TransactionResponse.model_validate(transaction)

    @staticmethod
    async def delete_transaction(db: AsyncSession, user: CurrentUser | None, transaction_id: str) -> None:
        user = require_user(user)
        transaction = await TransactionService.get_row(db, user.id, transaction_id)

        async with store_errors(db, "Erro ao excluir transação"):
            await db.delete(transaction)
            await db.commit()

        await invalidate_with_dependents(TRANSACTIONS, user.id)

    @staticmethod
    async def get_categorized_history(db: AsyncSession, user_id: str, limit: int = 50) -> list[HistoryItem]:
        query = (
            select(Transaction.description, Transaction.type, Transaction.amount, Category.id, Category.name)
            .join(
                Category, and_(Category.id == Transaction.category_id, Category.user_id == Transaction.user_id)
            )
            .where(Transaction.user_id == user_id)
            .order_by(desc(Transaction.created_at))
            .limit(limit)
        )
        result = await db.execute(query)
        return [
            HistoryItem(description=r[0], type=r[1], amount=r[2], category_id=r[3], category_name=r[4])
            for r in result.all()
        ]
