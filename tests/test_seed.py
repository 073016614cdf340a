from sqlalchemy import func, select

from app.core.seed import DEMO_USER_ID, seed_data
from app.models.transaction import Category, Transaction

CSV = """date,description,amount,type,category
01/03/2025,Supermercado Extra,-230.50,expense,Alimentação
05/03/2025,Salário março,5000,income,Salário
07/03/2025,Aula de violão,180,expense,Música
,Linha sem data,10,expense,Outros
08/03/2025,Estorno,15,refund,Outros
"""


async def test_seed_loads_csv_once(db, tmp_path):
    path = tmp_path / "extrato.csv"
    path.write_text(CSV, encoding="utf-8")

    await seed_data(db, str(path))
    await seed_data(db, str(path))

    rows = (await db.execute(select(Transaction).order_by(Transaction.transaction_date))).scalars().all()
    assert [r.description for r in rows] == ["Supermercado Extra", "Salário março", "Aula de violão"]
    assert rows[0].amount == 230.5
    assert rows[0].transaction_date == "2025-03-01"
    assert all(r.user_id == DEMO_USER_ID for r in rows)

    music = (await db.execute(select(Category).where(Category.name == "Música"))).scalar_one()
    assert rows[2].category_id == music.id
    total = (await db.execute(select(func.count(Category.id)))).scalar()
    assert total == 13


async def test_seed_without_csv_does_nothing(db):
    await seed_data(db, None)

    assert (await db.execute(select(func.count(Transaction.id)))).scalar() == 0
