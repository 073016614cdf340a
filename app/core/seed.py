import logging
import os

import pandas as pd
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import new_id
from app.models.transaction import Category, Transaction
from app.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "Alimentação", "type": "expense", "icon": "Utensils", "color": "#ef4444"},
    {"name": "Transporte", "type": "expense", "icon": "Car", "color": "#f97316"},
    {"name": "Saúde", "type": "expense", "icon": "Heart", "color": "#ec4899"},
    {"name": "Entretenimento", "type": "expense", "icon": "Film", "color": "#8b5cf6"},
    {"name": "Casa", "type": "expense", "icon": "Home", "color": "#0ea5e9"},
    {"name": "Educação", "type": "expense", "icon": "BookOpen", "color": "#14b8a6"},
    {"name": "Telefone", "type": "expense", "icon": "Phone", "color": "#64748b"},
    {"name": "Outros", "type": "expense", "icon": "Tag", "color": "#94a3b8"},
    {"name": "Salário", "type": "income", "icon": "Briefcase", "color": "#22c55e"},
    {"name": "Freelance", "type": "income", "icon": "Laptop", "color": "#10b981"},
    {"name": "Vendas", "type": "income", "icon": "ShoppingBag", "color": "#84cc16"},
    {"name": "Outros", "type": "income", "icon": "Tag", "color": "#a3e635"},
]

DEMO_USER_ID = "00000000-0000-4000-8000-000000000001"


async def seed_data(db: AsyncSession, csv_path: str | None = None):
    """Seeds a demo user from a CSV export (date,description,amount,type,category) on an empty database."""
    csv_path = csv_path or settings.SEED_CSV_PATH
    if not csv_path or not os.path.exists(csv_path):
        return

    count = (await db.execute(select(func.count(Transaction.id)))).scalar()
    if count > 0:
        logger.info("Database already has %d transactions. Skipping seed.", count)
        return

    df = pd.read_csv(csv_path)
    df.columns = [c.strip().lower() for c in df.columns]
    df["date"] = pd.to_datetime(df["date"], errors="coerce", dayfirst=True)
    df = df.dropna(subset=["date", "amount"])
    df["type"] = df["type"].str.strip().str.lower()
    df = df[df["type"].isin(["income", "expense"])]
    df["category"] = df["category"].fillna("Outros").astype(str).str.strip()

    db.add(User(id=DEMO_USER_ID, email="demo@granafacil.app", full_name="Usuário Demo"))
    categories = {}
    for default in DEFAULT_CATEGORIES:
        category = Category(id=new_id(), user_id=DEMO_USER_ID, **default)
        categories[(default["name"].lower(), default["type"])] = category
        db.add(category)

    for row in df.itertuples(index=False):
        key = (row.category.lower(), row.type)
        if key not in categories:
            categories[key] = Category(id=new_id(), user_id=DEMO_USER_ID, name=row.category, type=row.type)
            db.add(categories[key])
        db.add(Transaction(
            user_id=DEMO_USER_ID,
            description=str(row.description),
            amount=abs(float(row.amount)),
            type=row.type,
            category_id=categories[key].id,
            status="completed",
            transaction_date=row.date.strftime("%Y-%m-%d"),
        ))

    await db.commit()
    logger.info("Seeded %d demo transactions.", len(df))
