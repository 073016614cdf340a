import logging
from datetime import date

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import BILLS, query_cache
from app.core.exceptions import NotFoundError
from app.models.planning import Bill
from app.schemas.planning import BillCreate, BillUpdate, BillResponse, BillsSummary
from app.schemas.user import CurrentUser
from app.services.base import require_user, store_errors
from app.services.sync import invalidate_with_dependents

logger = logging.getLogger(__name__)


def calculate_bills_summary(bills: list[BillResponse], today: date | None = None) -> BillsSummary:
    # ISO dates compare correctly as strings
    today_iso = (today or date.today()).isoformat()
    pending = [b for b in bills if b.status == "pending"]
    return BillsSummary(
        pending_bills=len(pending),
        total_pending_amount=round(sum(b.amount for b in pending), 2),
        overdue_bills=sum(1 for b in pending if b.due_date < today_iso),
        due_today_bills=sum(1 for b in pending if b.due_date == today_iso),
    )


class BillService:
    @staticmethod
    async def _load_bills(db: AsyncSession, user_id: str) -> list[BillResponse]:
        query = (
            select(Bill)
            .where(Bill.user_id == user_id)
            .order_by(Bill.due_date)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return [BillResponse.model_validate(b) for b in result.scalars().all()]

    @staticmethod
    async def list_bills(db: AsyncSession, user: CurrentUser | None) -> list[BillResponse]:
        user = require_user(user)
        return await query_cache.fetch(BILLS, user.id, BillService._load_bills, db=db)

    @staticmethod
    async def _get_row(db: AsyncSession, user_id: str, bill_id: str) -> Bill:
        query = select(Bill).where(and_(Bill.id == bill_id, Bill.user_id == user_id))
        bill = (await db.execute(query)).scalar_one_or_none()
        if bill is None:
            raise NotFoundError("Conta não encontrada")
        return bill

    @staticmethod
    async def create_bill(db: AsyncSession, user: CurrentUser | None, data: BillCreate) -> BillResponse:
        user = require_user(user)
        db_obj = Bill(**data.model_dump(), user_id=user.id)

        async with store_errors(db, "Erro ao salvar conta"):
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)

        await invalidate_with_dependents(BILLS, user.id)
        return BillResponse.model_validate(db_obj)

    @staticmethod
    async def update_bill(db: AsyncSession, user: CurrentUser | None, bill_id: str, data: BillUpdate) -> BillResponse:
        user = require_user(user)
        bill = await BillService._get_row(db, user.id, bill_id)

        async with store_errors(db, "Erro ao atualizar conta"):
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(bill, key, value)
            await db.commit()
            await db.refresh(bill)

        await invalidate_with_dependents(BILLS, user.id)
        return BillResponse.model_validate(bill)

    @staticmethod
    async def mark_as_paid(db: AsyncSession, user: CurrentUser | None, bill_id: str) -> BillResponse:
        return await BillService.update_bill(db, user, bill_id, BillUpdate(status="paid"))

    @staticmethod
    async def delete_bill(db: AsyncSession, user: CurrentUser | None, bill_id: str) -> None:
        user = require_user(user)
        bill = await BillService._get_row(db, user.id, bill_id)

        async with store_errors(db, "Erro ao excluir conta"):
            await db.delete(bill)
            await db.commit()

        await invalidate_with_dependents(BILLS, user.id)

    @staticmethod
    async def get_summary(db: AsyncSession, user: CurrentUser | None, today: date | None = None) -> BillsSummary:
        bills = await BillService.list_bills(db, user)
        return calculate_bills_summary(bills, today)
