import logging

import pytest
from sqlalchemy import select

from app.ml.components.gateway import AIGateway
from app.ml.engine import CategorizationEngine
from app.models.transaction import CategorizationFeedback, Category, Transaction
from app.models.user import WhatsAppMessage
from app.schemas.ai import FeedbackRequest
from app.services.ai_processing import NO_CATEGORIES, NOT_AUTHENTICATED, AITransactionProcessor
from app.services.conversation import ChatHistory, ClientStorage, ConversationStore
from app.services.notifications import LogNotifier, Notifier
from app.services.sync import DataSync


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    async def notify(self, title, body):
        self.sent.append((title, body))


class ExplodingEngine:
    async def categorize(self, context):
        raise RuntimeError("boom")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def processor(notifier, session_factory):
    return AITransactionProcessor(
        notifier=notifier,
        engine=CategorizationEngine(gateway=AIGateway(base_url="", api_key="")),
        sync=DataSync(settle_seconds=0, financial_settle_seconds=0),
    )


@pytest.fixture
async def categories(db, user):
    market = Category(user_id=user.id, name="Mercado", type="expense")
    transport = Category(user_id=user.id, name="Transporte", type="expense")
    salary = Category(user_id=user.id, name="Salário", type="income")
    db.add_all([market, transport, salary])
    await db.commit()
    return {"market": market, "transport": transport, "salary": salary}


async def all_transactions(db):
    return (await db.execute(select(Transaction).execution_options(populate_existing=True))).scalars().all()


async def test_message_becomes_a_categorized_transaction(db, user, categories, processor, notifier):
    result = await processor.process_message(db, user, "Gastei 50 reais no mercado")

    assert result.success
    assert result.error is None
    assert result.category_info.category_id == categories["market"].id
    assert result.category_info.confidence >= 0.6
    assert result.category_info.confidence_level == "high"

    [transaction] = await all_transactions(db)
    assert transaction.id == result.transaction_id
    assert transaction.amount == 50
    assert transaction.type == "expense"
    assert transaction.description == "Mercado"
    assert transaction.category_id == categories["market"].id
    assert transaction.status == "completed"

    [audit] = (await db.execute(select(WhatsAppMessage))).scalars().all()
    assert audit.processed is True
    assert audit.sender == "user"
    assert audit.message_type == "transaction"
    assert audit.transaction_id == transaction.id

    assert notifier.sent[-1][0] == "Transação processada!"
    assert 'como "Mercado" (90% de confiança)' in notifier.sent[-1][1]


async def test_user_without_categories_keeps_pending_draft(db, user, processor, notifier):
    result = await processor.process_message(db, user, "Gastei 50 reais no mercado")

    assert not result.success
    assert result.error == NO_CATEGORIES
    [transaction] = await all_transactions(db)
    assert transaction.status == "pending"
    assert transaction.category_id is None
    assert notifier.sent == [("Erro no processamento", NO_CATEGORIES)]


async def test_anonymous_message_is_rejected(db, processor, notifier):
    result = await processor.process_message(db, None, "Gastei 50 reais no mercado")

    assert result.success is False
    assert result.error == NOT_AUTHENTICATED
    assert notifier.sent == []


async def test_message_without_amount_creates_nothing(db, user, categories, processor):
    result = await processor.process_message(db, user, "bom dia!")

    assert not result.success
    assert result.error == "Não foi possível extrair a transação da mensagem"
    assert await all_transactions(db) == []


async def test_classifier_crash_is_reported(db, user, categories, notifier):
    processor = AITransactionProcessor(
        notifier=notifier, engine=ExplodingEngine(), sync=DataSync(settle_seconds=0, financial_settle_seconds=0),
    )

    result = await processor.process_message(db, user, "paguei 30 no uber")

    assert result.error == "Erro na categorização: boom"
    [transaction] = await all_transactions(db)
    assert transaction.status == "pending"


async def test_categorize_existing_transaction(db, user, categories, processor):
    transaction = Transaction(
        user_id=user.id, description="Uber para o trabalho", amount=25, type="expense",
        status="completed", transaction_date="2025-03-01",
    )
    db.add(transaction)
    await db.commit()

    result = await processor.categorize_existing(db, user, transaction.id)

    assert result.success
    assert result.category_name == "Transporte"
    [stored] = await all_transactions(db)
    assert stored.category_id == categories["transport"].id


async def test_categorize_missing_transaction(db, user, categories, processor):
    result = await processor.categorize_existing(db, user, "missing")

    assert result.success is False
    assert result.error == "Transação não encontrada"


async def test_feedback_applies_the_correction(db, user, categories, processor):
    await processor.process_message(db, user, "Gastei 50 reais no mercado")
    [transaction] = await all_transactions(db)

    feedback = await processor.record_feedback(db, user, FeedbackRequest(
        transaction_id=transaction.id, correct_category_id=categories["transport"].id, was_correct=False,
    ))

    assert feedback.applied
    assert feedback.suggested_category_id == categories["market"].id
    [stored] = await all_transactions(db)
    assert stored.category_id == categories["transport"].id
    [row] = (await db.execute(select(CategorizationFeedback))).scalars().all()
    assert row.was_correct is False
    assert row.correct_category_id == categories["transport"].id


async def test_confirming_feedback_changes_nothing(db, user, categories, processor):
    await processor.process_message(db, user, "Gastei 50 reais no mercado")
    [transaction] = await all_transactions(db)

    feedback = await processor.record_feedback(db, user, FeedbackRequest(
        transaction_id=transaction.id, correct_category_id=categories["market"].id, was_correct=True,
    ))

    assert feedback.applied is False
    [stored] = await all_transactions(db)
    assert stored.category_id == categories["market"].id


async def test_default_notifier_keeps_nothing(db, user, caplog):
    processor = AITransactionProcessor(sync=DataSync(settle_seconds=0, financial_settle_seconds=0))

    with caplog.at_level(logging.INFO, logger="app.services.notifications"):
        for _ in range(3):
            await processor.process_message(db, user, "oi")

    assert isinstance(processor.notifier, LogNotifier)
    assert vars(processor.notifier) == {}
    assert caplog.text.count("Erro no processamento") == 3


async def test_chat_turns_are_recorded(db, user, categories, processor):
    chat = ChatHistory(ClientStorage(), ConversationStore())
    processor.chat = chat

    await processor.process_message(db, user, "Gastei 50 reais no mercado")

    [sent, reply] = chat.messages(user.id)
    assert (sent.sender, sent.text) == ("user", "Gastei 50 reais no mercado")
    assert reply.sender == "bot"
    assert reply.type == "transaction"
    assert reply.confidence == 0.9
    assert reply.text.startswith("Transação processada!")
    assert [turn["role"] for turn in chat.conversations.history(user.id)] == ["user", "assistant"]
