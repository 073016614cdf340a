import logging
from datetime import date

import pandas as pd
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import BALANCE, MONTHLY_REPORT, query_cache
from app.models.transaction import Transaction, Category
from app.schemas.analytics import BalanceResponse, MonthlyReport, CategorySpending
from app.schemas.user import CurrentUser
from app.services.base import require_user

logger = logging.getLogger(__name__)

TOP_CATEGORIES = 5


def current_month(today: date | None = None) -> str:
    return (today or date.today()).strftime("%Y-%m")


def balance_contribution(transaction) -> float:
    """Signed effect of one transaction on the balance; expenses always subtract."""
    if transaction.type == "income":
        return transaction.amount
    return -abs(transaction.amount)


def summarize_balance(transactions, month: str) -> BalanceResponse:
    completed = [t for t in transactions if t.status == "completed"]
    in_month = [t for t in completed if t.transaction_date.startswith(month)]

    income = sum(t.amount for t in in_month if t.type == "income")
    expenses = sum(abs(t.amount) for t in in_month if t.type == "expense")
    return BalanceResponse(
        current_balance=round(sum(balance_contribution(t) for t in completed), 2),
        monthly_income=round(income, 2),
        monthly_expenses=round(expenses, 2),
        monthly_net=round(income - expenses, 2),
    )


class BalanceService:
    @staticmethod
    async def _load_balance(db: AsyncSession, user_id: str) -> BalanceResponse:
        query = select(Transaction).where(
            Transaction.user_id == user_id, Transaction.status == "completed"
        )
        result = await db.execute(query)
        return summarize_balance(result.scalars().all(), current_month())

    @staticmethod
    async def get_balance(db: AsyncSession, user: CurrentUser | None) -> BalanceResponse:
        user = require_user(user)
        return await query_cache.fetch(BALANCE, user.id, BalanceService._load_balance, db=db)


class MonthlyReportService:
    @staticmethod
    async def get_month_df(db: AsyncSession, user_id: str, month: str) -> pd.DataFrame:
        query = (
            select(
                Transaction.amount, Transaction.type, Transaction.transaction_date,
                Category.name.label("category_name"), Category.color.label("category_color"),
                Category.icon.label("category_icon"), Category.budget,
            )
            .outerjoin(
                Category, and_(Category.id == Transaction.category_id, Category.user_id == Transaction.user_id)
            )
            .where(
                Transaction.user_id == user_id,
                Transaction.status == "completed",
                Transaction.transaction_date.like(f"{month}%"),
            )
        )
        result = await db.execute(query)
        rows = result.mappings().all()
        if not rows:
            return pd.DataFrame()
        return pd.DataFrame([dict(r) for r in rows])

    @staticmethod
    def build_report(df: pd.DataFrame, month: str) -> MonthlyReport:
        if df.empty:
            return MonthlyReport(
                month=month, total_income=0.0, total_expenses=0.0, net_income=0.0,
                transaction_count=0, top_categories=[],
            )

        df["amount"] = df["amount"].abs()
        income = float(df.loc[df["type"] == "income", "amount"].sum())
        expenses_df = df[df["type"] == "expense"].copy()
        expenses = float(expenses_df["amount"].sum())

        top = []
        if not expenses_df.empty:
            expenses_df["category_name"] = expenses_df["category_name"].fillna("Sem categoria")
            expenses_df["budget"] = expenses_df["budget"].fillna(0.0)
            grouped = (
                expenses_df.groupby("category_name", dropna=False)
                .agg(
                    total_spent=("amount", "sum"),
                    budget=("budget", "first"),
                    category_color=("category_color", "first"),
                    category_icon=("category_icon", "first"),
                )
                .sort_values("total_spent", ascending=False)
                .head(TOP_CATEGORIES)
            )
            for name, row in grouped.iterrows():
                budget = float(row["budget"])
                pct = (row["total_spent"] / budget * 100) if budget > 0 else 0.0
                top.append(CategorySpending(
                    category_name=name,
                    category_color=row["category_color"] if pd.notna(row["category_color"]) else None,
                    category_icon=row["category_icon"] if pd.notna(row["category_icon"]) else None,
                    total_spent=round(float(row["total_spent"]), 2),
                    budget=budget,
                    percentage=round(float(pct), 1),
                ))

        return MonthlyReport(
            month=month,
            total_income=round(income, 2),
            total_expenses=round(expenses, 2),
            net_income=round(income - expenses, 2),
            transaction_count=int(len(df)),
            top_categories=top,
        )

    @staticmethod
    async def _load_report(db: AsyncSession, user_id: str, month: str) -> MonthlyReport:
        df = await MonthlyReportService.get_month_df(db, user_id, month)
        return MonthlyReportService.build_report(df, month)

    @staticmethod
    async def get_monthly_report(db: AsyncSession, user: CurrentUser | None, month: str | None = None) -> MonthlyReport:
        user = require_user(user)
        month = month or current_month()
        return await query_cache.fetch(
            MONTHLY_REPORT, user.id, MonthlyReportService._load_report, db=db, params=(month,)
        )
