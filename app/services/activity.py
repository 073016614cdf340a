import logging
from datetime import datetime

from sqlalchemy import select, desc, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import ACTIVITY_LOG, query_cache
from app.core.database import utcnow
from app.models.planning import Bill, Goal
from app.models.transaction import Transaction, Category
from app.schemas.analytics import ActivityLogItem, ActivityFeedResponse
from app.schemas.user import CurrentUser
from app.services.base import require_user

logger = logging.getLogger(__name__)

FEED_LIMIT = 8
TRANSACTIONS_LIMIT = 5
BILLS_LIMIT = 3
GOALS_LIMIT = 3


def format_currency(value: float) -> str:
    """pt-BR money, e.g. 1234.5 -> 'R$ 1.234,50'."""
    formatted = f"{abs(value):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    sign = "-" if value < 0 else ""
    return f"{sign}R$ {formatted}"


def format_timestamp(timestamp: datetime, now: datetime | None = None) -> str:
    now = now or utcnow()
    diff_seconds = (now - timestamp).total_seconds()
    diff_hours = int(diff_seconds // 3600)
    diff_days = diff_hours // 24

    if diff_hours < 1:
        diff_minutes = int(diff_seconds // 60)
        return "Agora" if diff_minutes < 1 else f"{diff_minutes}min atrás"
    if diff_hours < 24:
        return f"{diff_hours}h atrás"
    if diff_days < 7:
        return f"{diff_days}d atrás"
    return timestamp.strftime("%d/%m")


def format_error(error: Exception | None) -> str | None:
    if error is None:
        return None
    message = str(error)
    lowered = message.lower()
    if "406" in message:
        return "Alguns dados podem estar temporariamente indisponíveis. Tentando novamente..."
    if "network" in lowered or "fetch" in lowered:
        return "Problema de conexão. Verifique sua internet."
    if "unauthorized" in lowered or "401" in message:
        return "Sessão expirou. Faça login novamente."
    return f"Erro: {message}"


def merge_activities(items: list[ActivityLogItem], limit: int = FEED_LIMIT) -> list[ActivityLogItem]:
    return sorted(items, key=lambda i: i.timestamp, reverse=True)[:limit]


def transaction_activity(transaction: Transaction, category_name: str | None) -> ActivityLogItem:
    is_income = transaction.type == "income"
    return ActivityLogItem(
        id=f"transaction_{transaction.id}",
        type="transaction_income" if is_income else "transaction_expense",
        title="Receita Adicionada" if is_income else "Gasto Registrado",
        description=f"{transaction.description} - {category_name or 'Sem categoria'}",
        amount=abs(transaction.amount),
        timestamp=transaction.created_at,
        icon="TrendingUp" if is_income else "TrendingDown",
        color="success" if is_income else "destructive",
    )


def bill_activity(bill: Bill) -> ActivityLogItem:
    kind = "Conta a Pagar" if bill.type == "payable" else "Conta a Receber"
    return ActivityLogItem(
        id=f"bill_{bill.id}",
        type="bill_paid",
        title="Conta Paga",
        description=f"{bill.title} - {kind}",
        amount=bill.amount,
        timestamp=bill.updated_at,
        icon="CreditCard",
        color="primary",
    )


def goal_activity(goal: Goal) -> ActivityLogItem:
    return ActivityLogItem(
        id=f"goal_{goal.id}",
        type="goal_created",
        title="Nova Meta",
        description=f"{goal.title} - Meta: R$ {goal.target_amount:.2f}",
        amount=goal.target_amount,
        timestamp=goal.created_at,
        icon="Target",
        color="accent",
    )


class ActivityLogService:
    @staticmethod
    async def _load_activities(db: AsyncSession, user_id: str) -> list[ActivityLogItem]:
        items = []

        trx_query = (
            select(Transaction, Category.name)
            .outerjoin(
                Category, and_(Category.id == Transaction.category_id, Category.user_id == Transaction.user_id)
            )
            .where(Transaction.user_id == user_id)
            .order_by(desc(Transaction.created_at))
            .limit(TRANSACTIONS_LIMIT)
        )
        for transaction, category_name in (await db.execute(trx_query)).all():
            items.append(transaction_activity(transaction, category_name))

        bill_query = (
            select(Bill)
            .where(Bill.user_id == user_id, Bill.status == "paid")
            .order_by(desc(Bill.updated_at))
            .limit(BILLS_LIMIT)
        )
        items.extend(bill_activity(b) for b in (await db.execute(bill_query)).scalars().all())

        goal_query = (
            select(Goal)
            .where(Goal.user_id == user_id)
            .order_by(desc(Goal.created_at))
            .limit(GOALS_LIMIT)
        )
        items.extend(goal_activity(g) for g in (await db.execute(goal_query)).scalars().all())

        return merge_activities(items)

    @staticmethod
    async def get_activities(db: AsyncSession, user: CurrentUser | None) -> list[ActivityLogItem]:
        user = require_user(user)
        return await query_cache.fetch(
            ACTIVITY_LOG,
            user.id,
            ActivityLogService._load_activities,
            db=db,
            stale_time=settings.ACTIVITY_STALE_SECONDS,
            refetch_interval=settings.ACTIVITY_REFETCH_SECONDS,
        )

    @staticmethod
    async def get_feed(db: AsyncSession, user: CurrentUser | None, now: datetime | None = None) -> ActivityFeedResponse:
        items = await ActivityLogService.get_activities(db, user)
        now = now or utcnow()
        return ActivityFeedResponse(items=items, relative_times=[format_timestamp(i.timestamp, now) for i in items])
