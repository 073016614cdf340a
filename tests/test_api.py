from datetime import date

import pytest
from sqlalchemy import select

from app.models.transaction import Category, Transaction
from app.models.user import User, WhatsAppMessage
from app.services.conversation import chat_history

API = "/api/v1"


def today():
    return date.today().isoformat()


def upsert_payload(phone, text, from_me=False, push_name="Carlos"):
    return {
        "event": "messages.upsert",
        "instance": "granafacil",
        "data": {
            "key": {"fromMe": from_me, "remoteJid": f"{phone}@s.whatsapp.net"},
            "message": {"conversation": text},
            "pushName": push_name,
        },
    }


@pytest.fixture
async def api(client, auth_headers):
    client.headers.update(auth_headers)
    return client


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["service"] == "granafacil-api"


async def test_routes_require_authentication(client):
    response = await client.get(f"{API}/transactions")

    assert response.status_code == 401
    assert response.json()["detail"] == "Usuário não autenticado"


async def test_transaction_crud(api, user):
    response = await api.post(f"{API}/transactions", json={
        "description": "Mercado", "amount": 120.5, "type": "expense",
        "transaction_date": today(), "user_id": "someone-else",
    })
    assert response.status_code == 201
    created = response.json()
    assert created["user_id"] == user.id
    assert created["status"] == "completed"

    response = await api.patch(f"{API}/transactions/{created['id']}", json={"amount": 99})
    assert response.status_code == 200
    assert response.json()["amount"] == 99

    listed = (await api.get(f"{API}/transactions")).json()
    assert [t["id"] for t in listed] == [created["id"]]

    assert (await api.delete(f"{API}/transactions/{created['id']}")).status_code == 204
    response = await api.get(f"{API}/transactions/{created['id']}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Transação não encontrada"


async def test_transactions_of_other_users_are_invisible(api, db, other_user):
    foreign = Transaction(user_id=other_user.id, description="Outro", amount=10, type="expense",
                          transaction_date=today())
    db.add(foreign)
    await db.commit()

    assert (await api.get(f"{API}/transactions")).json() == []
    assert (await api.get(f"{API}/transactions/{foreign.id}")).status_code == 404


async def test_other_users_category_cannot_be_attached(api, db, other_user):
    secret = Category(user_id=other_user.id, name="Segredo do Bruno", type="expense", color="#000000")
    db.add(secret)
    await db.commit()

    response = await api.post(f"{API}/transactions", json={
        "description": "Presente", "amount": 80, "type": "expense",
        "category_id": secret.id, "transaction_date": today(),
    })
    assert response.status_code == 404
    assert response.json()["detail"] == "Categoria não encontrada"

    trx = (await api.post(f"{API}/transactions", json={
        "description": "Presente", "amount": 80, "type": "expense", "transaction_date": today(),
    })).json()
    response = await api.patch(f"{API}/transactions/{trx['id']}", json={"category_id": secret.id})
    assert response.status_code == 404
    assert (await api.get(f"{API}/transactions/{trx['id']}")).json()["category_id"] is None


async def test_foreign_category_details_never_leak(api, db, user, other_user):
    secret = Category(user_id=other_user.id, name="Segredo do Bruno", type="expense", color="#000000")
    db.add(secret)
    await db.commit()
    # a row written behind the service's back still must not expose the other user's category
    trx = Transaction(user_id=user.id, description="Presente", amount=80, type="expense",
                      status="completed", category_id=secret.id, transaction_date=today())
    db.add(trx)
    await db.commit()

    stored = (await api.get(f"{API}/transactions/{trx.id}")).json()
    assert stored["category_name"] is None
    assert stored["category_color"] is None

    feed = (await api.get(f"{API}/activity")).json()
    assert feed["items"][0]["description"] == "Presente - Sem categoria"

    report = (await api.get(f"{API}/reports/monthly", params={"month": today()[:7]})).json()
    assert all(c["category_name"] != "Segredo do Bruno" for c in report["top_categories"])


async def test_invalid_transaction_is_rejected(api):
    response = await api.post(f"{API}/transactions", json={
        "description": "x", "amount": -5, "type": "expense", "transaction_date": today(),
    })

    assert response.status_code == 422


async def test_deleting_a_category_orphans_its_transactions(api):
    category = (await api.post(f"{API}/categories", json={"name": "Lazer", "type": "expense"})).json()
    trx = (await api.post(f"{API}/transactions", json={
        "description": "Cinema", "amount": 40, "type": "expense",
        "category_id": category["id"], "transaction_date": today(),
    })).json()
    assert (await api.get(f"{API}/transactions/{trx['id']}")).json()["category_name"] == "Lazer"

    assert (await api.delete(f"{API}/categories/{category['id']}")).status_code == 204

    stored = (await api.get(f"{API}/transactions/{trx['id']}")).json()
    assert stored["category_id"] is None
    assert stored["description"] == "Cinema"


async def test_default_categories_are_created_once(api):
    first = (await api.post(f"{API}/categories/defaults")).json()
    second = (await api.post(f"{API}/categories/defaults")).json()

    assert len(first) == 12
    assert len(second) == 12
    assert {"Alimentação", "Salário"} <= {c["name"] for c in first}


async def test_bills_pay_and_summary(api):
    bill = (await api.post(f"{API}/bills", json={
        "title": "Luz", "type": "payable", "amount": 150, "due_date": "2020-01-10",
    })).json()
    await api.post(f"{API}/bills", json={"title": "Internet", "type": "payable", "amount": 100, "due_date": today()})

    summary = (await api.get(f"{API}/bills/summary")).json()
    assert summary == {"pending_bills": 2, "total_pending_amount": 250, "overdue_bills": 1, "due_today_bills": 1}

    paid = await api.post(f"{API}/bills/{bill['id']}/pay")
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"

    summary = (await api.get(f"{API}/bills/summary")).json()
    assert summary["pending_bills"] == 1
    assert summary["overdue_bills"] == 0

    response = await api.post(f"{API}/bills/missing/pay")
    assert response.status_code == 404
    assert response.json()["detail"] == "Conta não encontrada"


async def test_goal_contributions(api):
    goal = (await api.post(f"{API}/goals", json={"title": "Reserva", "target_amount": 1000})).json()
    assert goal["current_amount"] == 0

    contribution = await api.post(f"{API}/goals/{goal['id']}/contributions", json={"amount": 250, "notes": "13º"})
    assert contribution.status_code == 201
    await api.post(f"{API}/goals/{goal['id']}/contributions", json={"amount": 50})

    [stored] = (await api.get(f"{API}/goals")).json()
    assert stored["current_amount"] == 300
    assert len(stored["contributions"]) == 2

    response = await api.delete(f"{API}/goals/{goal['id']}/contributions/{contribution.json()['id']}")
    assert response.status_code == 204
    listed = (await api.get(f"{API}/goals/{goal['id']}/contributions")).json()
    assert [c["amount"] for c in listed] == [50]

    summary = (await api.get(f"{API}/goals/summary")).json()
    assert summary["total_current_amount"] == 50
    assert summary["overall_progress"] == 5.0


async def test_balance_reflects_new_transactions(api):
    assert (await api.get(f"{API}/balance")).json()["current_balance"] == 0

    await api.post(f"{API}/transactions", json={
        "description": "Salário", "amount": 1000, "type": "income", "transaction_date": today(),
    })
    await api.post(f"{API}/transactions", json={
        "description": "Feira", "amount": 250, "type": "expense", "transaction_date": today(),
    })

    balance = (await api.get(f"{API}/balance")).json()
    assert balance["current_balance"] == 750
    assert balance["monthly_income"] == 1000
    assert balance["monthly_expenses"] == 250


async def test_monthly_report_validates_month(api):
    assert (await api.get(f"{API}/reports/monthly", params={"month": "março"})).status_code == 422
    assert (await api.get(f"{API}/reports/monthly", params={"month": "2025-03"})).json()["month"] == "2025-03"


async def test_activity_feed(api):
    await api.post(f"{API}/transactions", json={
        "description": "Padaria", "amount": 12, "type": "expense", "transaction_date": today(),
    })

    feed = (await api.get(f"{API}/activity")).json()

    assert feed["items"][0]["title"] == "Gasto Registrado"
    assert feed["items"][0]["description"] == "Padaria - Sem categoria"
    assert len(feed["relative_times"]) == 1


async def test_process_message_endpoint(api):
    await api.post(f"{API}/categories", json={"name": "Alimentação", "type": "expense"})

    response = await api.post(f"{API}/ai/process-message", json={"message": "Gastei 35 reais no restaurante"})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["category_info"]["category_name"] == "Alimentação"
    [trx] = (await api.get(f"{API}/transactions")).json()
    assert trx["amount"] == 35
    assert trx["category_name"] == "Alimentação"

    history = (await api.get(f"{API}/ai/chat-history")).json()
    assert [m["sender"] for m in history] == ["user", "bot"]
    assert history[0]["text"] == "Gastei 35 reais no restaurante"
    assert history[1]["type"] == "transaction"


async def test_sync_endpoints(api):
    await api.get(f"{API}/balance")

    assert (await api.post(f"{API}/sync/all")).status_code == 200
    assert (await api.post(f"{API}/sync/transactions")).json() == {"status": "invalidated", "scope": "transactions"}
    assert (await api.post(f"{API}/sync/cards")).status_code == 404

    stats = (await api.get(f"{API}/sync/stats")).json()
    assert stats["total_queries"] >= 1

    assert (await api.delete(f"{API}/sync/cache")).json()["removed"] >= 1
    assert (await api.get(f"{API}/sync/stats")).json()["total_queries"] == 0


async def test_minimal_webhook_always_acknowledges(client):
    assert (await client.post("/webhook", json={"foo": "bar"})).json() == {"success": True}
    assert (await client.post("/webhook", json=upsert_payload("5511988887777", "oi"))).json() == {"success": True}


async def test_evolution_webhook_ignores_other_events(client):
    response = await client.post("/webhook/evolution", json={"event": "connection.update", "data": {}})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Evento ignorado"}


async def test_evolution_webhook_ignores_own_messages(client):
    response = await client.post("/webhook/evolution", json=upsert_payload("5511988887777", "oi", from_me=True))

    assert response.json()["message"] == "Mensagem própria ignorada"


async def test_evolution_webhook_rejects_malformed_payload(client):
    response = await client.post("/webhook/evolution", json={"data": {}})

    assert response.status_code == 500
    assert response.json()["error"] == "Erro interno"


async def test_unknown_phone_becomes_a_lead(client, db):
    response = await client.post("/webhook/evolution", json=upsert_payload("5511988887777", "Gastei 20 reais no almoço"))

    assert response.json() == {"success": True, "message": "Webhook processado"}
    lead = (await db.execute(select(User).where(User.phone == "5511988887777"))).scalar_one()
    assert lead.email == "5511988887777@whatsapp.temp"
    assert lead.full_name == "Carlos"
    messages = (await db.execute(select(WhatsAppMessage).where(WhatsAppMessage.user_id == lead.id))).scalars().all()
    assert sorted(m.sender for m in messages) == ["bot", "user"]
    assert (await db.execute(select(Transaction))).scalars().all() == []
    assert [m.sender for m in chat_history.messages(lead.id)] == ["user", "bot", "bot"]


async def test_registered_phone_records_a_transaction(client, db, user):
    db.add(Category(user_id=user.id, name="Alimentação", type="expense"))
    await db.commit()

    response = await client.post("/webhook/evolution", json=upsert_payload("5511999990000", "Gastei 20 reais no almoço"))

    assert response.json()["message"] == "Webhook processado"
    [trx] = (await db.execute(select(Transaction))).scalars().all()
    assert trx.user_id == user.id
    assert trx.amount == 20
    assert trx.status == "completed"


async def test_webhook_status_pages(client):
    assert (await client.get("/webhook/test")).json()["status"] == "ok"
    assert (await client.get("/webhook/status")).json()["endpoints"]["webhook"] == "/webhook/evolution"
