import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import TRANSACTIONS
from app.core.exceptions import GranaError
from app.ml.components.extraction import TransactionExtractor
from app.ml.engine import CategorizationEngine, ml_engine
from app.models.transaction import Transaction, CategorizationFeedback
from app.models.user import WhatsAppMessage
from app.schemas.ai import (
    CandidateCategory, CategorizationContext, CategorizationResult, CategoryInfo, FeedbackRequest,
    FeedbackResponse, PipelineResult, RecategorizeResult,
)
from app.schemas.user import CurrentUser
from app.services.base import require_user, store_errors
from app.services.categories import CategoryService
from app.services.conversation import ChatHistory, chat_history
from app.services.notifications import LogNotifier, Notifier
from app.services.sync import DataSync, data_sync, invalidate_with_dependents
from app.services.transactions import TransactionService

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Usuário não autenticado"
NO_CATEGORIES = "Nenhuma categoria encontrada para o usuário"
INTERNAL_ERROR = "Erro interno no processamento"


class PipelineFailure(Exception):
    """Stops the pipeline with a user-facing message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AITransactionProcessor:
    def __init__(
            self,
            notifier: Notifier | None = None,
            engine: CategorizationEngine | None = None,
            sync: DataSync | None = None,
            extractor: TransactionExtractor | None = None,
            chat: ChatHistory | None = None,
    ):
        self.notifier = notifier or LogNotifier()
        self.engine = engine or ml_engine
        self.sync = sync or data_sync
        self.extractor = extractor or TransactionExtractor()
        self.chat = chat or chat_history

    async def _reply(
            self, notifier: Notifier, user_id: str, title: str, body: str,
            message_type: str = "text", confidence: float | None = None,
    ) -> None:
        await notifier.notify(title, body)
        self.chat.record(user_id, "bot", f"{title}\n{body}", message_type, confidence)

    async def _insert_draft(self, db: AsyncSession, user_id: str, text: str) -> str:
        try:
            draft = self.extractor.extract(text)
        except GranaError as e:
            raise PipelineFailure(e.message) from e

        transaction = Transaction(
            user_id=user_id,
            description=draft.description,
            amount=draft.amount,
            type=draft.type,
            status="pending",
            transaction_date=draft.transaction_date,
        )
        async with store_errors(db, "Erro ao salvar transação"):
            db.add(transaction)
            await db.commit()
            await db.refresh(transaction)

        await invalidate_with_dependents(TRANSACTIONS, user_id)
        return transaction.id

    async def _build_context(self, db: AsyncSession, user_id: str, transaction: Transaction) -> CategorizationContext:
        categories = await CategoryService._load_categories(db, user_id)
        if not categories:
            raise PipelineFailure(NO_CATEGORIES)
        history = await TransactionService.get_categorized_history(db, user_id)
        return CategorizationContext(
            description=transaction.description,
            amount=abs(transaction.amount),
            type=transaction.type,
            available_categories=[
                CandidateCategory(id=c.id, name=c.name, type=c.type, icon=c.icon) for c in categories
            ],
            user_id=user_id,
            history=history,
        )

    async def _classify(self, context: CategorizationContext) -> CategorizationResult:
        try:
            return await self.engine.categorize(context)
        except Exception as e:
            logger.error("Categorization failed for user %s: %s", context.user_id, e)
            raise PipelineFailure(f"Erro na categorização: {e}") from e

    async def process_message(
            self, db: AsyncSession, user: CurrentUser | None, text: str, notifier: Notifier | None = None
    ) -> PipelineResult:
        """Extract, classify and store a transaction described in a chat message. Never raises."""
        if user is None:
            return PipelineResult(success=False, error=NOT_AUTHENTICATED)
        notifier = notifier or self.notifier
        self.chat.record(user.id, "user", text)

        try:
            transaction_id = await self._insert_draft(db, user.id, text)
            transaction = await TransactionService.get_row(db, user.id, transaction_id)
            context = await self._build_context(db, user.id, transaction)
            result = await self._classify(context)

            async with store_errors(db, "Erro ao atualizar categoria da transação"):
                transaction.category_id = result.category_id
                transaction.status = "completed"
                db.add(WhatsAppMessage(
                    user_id=user.id,
                    message_text=text,
                    sender="user",
                    message_type="transaction",
                    processed=True,
                    transaction_id=transaction_id,
                ))
                await db.commit()
        except (PipelineFailure, GranaError) as e:
            await self._reply(notifier, user.id, "Erro no processamento", e.message)
            return PipelineResult(success=False, error=e.message)
        except Exception as e:
            logger.exception("Unexpected failure processing message for user %s: %s", user.id, e)
            await self._reply(
                notifier, user.id, "Erro no processamento", "Não foi possível processar a transação. Tente novamente."
            )
            return PipelineResult(success=False, error=INTERNAL_ERROR)

        await self._reply(
            notifier, user.id,
            "Transação processada!",
            f'Categorizada automaticamente como "{result.category_name}" '
            f"({round(result.confidence * 100)}% de confiança)",
            message_type="transaction", confidence=result.confidence,
        )
        await self.sync.sync_financial_data(user.id)

        return PipelineResult(
            success=True,
            transaction_id=transaction_id,
            category_info=CategoryInfo(
                category_id=result.category_id,
                category_name=result.category_name,
                confidence=result.confidence,
                confidence_level=result.confidence_level,
                reasoning=result.reasoning,
            ),
        )

    async def categorize_existing(
            self, db: AsyncSession, user: CurrentUser | None, transaction_id: str
    ) -> RecategorizeResult:
        if user is None:
            return RecategorizeResult(success=False, error=NOT_AUTHENTICATED)

        try:
            transaction = await TransactionService.get_row(db, user.id, transaction_id)
            context = await self._build_context(db, user.id, transaction)
            result = await self._classify(context)
            async with store_errors(db, "Erro ao atualizar categoria"):
                transaction.category_id = result.category_id
                await db.commit()
        except (PipelineFailure, GranaError) as e:
            return RecategorizeResult(success=False, error=e.message)

        await invalidate_with_dependents(TRANSACTIONS, user.id)
        return RecategorizeResult(success=True, category_name=result.category_name)

    async def record_feedback(self, db: AsyncSession, user: CurrentUser | None, data: FeedbackRequest) -> FeedbackResponse:
        user = require_user(user)
        transaction = await TransactionService.get_row(db, user.id, data.transaction_id)
        await CategoryService._get_row(db, user.id, data.correct_category_id)

        suggested = transaction.category_id
        applied = not data.was_correct and suggested != data.correct_category_id
        feedback = CategorizationFeedback(
            user_id=user.id,
            transaction_id=transaction.id,
            suggested_category_id=suggested,
            correct_category_id=data.correct_category_id,
            was_correct=data.was_correct,
            notes=data.notes,
        )
        async with store_errors(db, "Erro ao salvar feedback"):
            db.add(feedback)
            if applied:
                transaction.category_id = data.correct_category_id
            await db.commit()
            await db.refresh(feedback)

        logger.info("Categorization feedback for %s: correct=%s", transaction.id, data.was_correct)
        if applied:
            await invalidate_with_dependents(TRANSACTIONS, user.id)
        return FeedbackResponse(
            id=feedback.id,
            transaction_id=transaction.id,
            suggested_category_id=suggested,
            correct_category_id=data.correct_category_id,
            was_correct=data.was_correct,
            applied=applied,
        )


ai_processor = AITransactionProcessor()
