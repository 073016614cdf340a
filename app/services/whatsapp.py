import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import new_id
from app.models.user import User, WhatsAppMessage
from app.schemas.user import CurrentUser
from app.schemas.webhook import EvolutionWebhookPayload, InboundMessage
from app.services.ai_processing import AITransactionProcessor, ai_processor
from app.services.auth import AuthService
from app.services.conversation import ChatHistory, chat_history
from app.services.notifications import EvolutionClient, WhatsAppNotifier, evolution_client

logger = logging.getLogger(__name__)

JID_SUFFIX = "@s.whatsapp.net"

PRESENTATION_TEXT = """🎉 *Olá{name}! Bem-vindo ao GranaFácil!*

🤖 Sou a *Grana IA*, seu assistente financeiro inteligente.

💡 *O que eu posso fazer por você:*
💰 Organizar suas finanças automaticamente
📊 Controlar receitas e despesas
🎯 Ajudar com metas financeiras
🏷️ Categorizar gastos inteligentemente

🚀 *Experimente agora mesmo:*
• "Gastei 50 reais no supermercado"
• "Recebi 2000 reais de salário"

📱 *Esta é uma demonstração gratuita!*
Para ter acesso completo, cadastre-se em nossa plataforma web."""

DEMO_EXPENSE_REPLY = """💸 *Transação de demonstração registrada!*

✅ Despesa processada com sucesso
📝 Categoria sugerida automaticamente

🚀 Cadastre-se gratuitamente para registrar de verdade!"""

DEMO_INCOME_REPLY = """💰 *Receita de demonstração registrada!*

✅ Entrada processada com sucesso
📈 Saldo aumentado

🚀 Cadastre-se e acompanhe tudo no painel!"""

DEMO_UNKNOWN_REPLY = """🤖 *Comando não reconhecido na demonstração*

🚀 *Comandos que você pode testar:*
• "Gastei 30 reais no almoço"
• "Recebi 1500 reais"

*Cadastre-se para ter acesso completo!*"""

INTERNAL_ERROR_REPLY = "❌ Erro interno. Tente novamente em alguns instantes."


def demo_reply(text: str) -> str:
    lowered = text.lower()
    if any(w in lowered for w in ("gastei", "paguei", "comprei")):
        return DEMO_EXPENSE_REPLY
    if any(w in lowered for w in ("recebi", "ganhei", "salário")):
        return DEMO_INCOME_REPLY
    return DEMO_UNKNOWN_REPLY


def parse_inbound(payload: EvolutionWebhookPayload) -> tuple[InboundMessage | None, str]:
    """Returns the inbound message, or None and the reason it was skipped."""
    if payload.event != "messages.upsert" or payload.data is None:
        return None, "Evento ignorado"
    data = payload.data
    if data.key.from_me:
        return None, "Mensagem própria ignorada"

    phone = (data.key.remote_jid or "").replace(JID_SUFFIX, "")
    text = None
    if data.message is not None:
        text = data.message.conversation or (
            data.message.extended_text_message.text if data.message.extended_text_message else None
        )
    if not phone or not text:
        return None, "Mensagem inválida ignorada"

    sender_name = data.push_name or f"Usuário {phone[-4:]}"
    return InboundMessage(phone_number=phone, text=text, sender_name=sender_name), "Webhook processado"


class WhatsAppRelay:
    def __init__(
            self,
            client: EvolutionClient | None = None,
            processor: AITransactionProcessor | None = None,
            chat: ChatHistory | None = None,
    ):
        self.client = client or evolution_client
        self.processor = processor or ai_processor
        self.chat = chat or chat_history

    async def _save_message(self, db: AsyncSession, user_id: str, text: str, sender: str) -> None:
        try:
            db.add(WhatsAppMessage(user_id=user_id, message_text=text, sender=sender, message_type="text", processed=True))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Could not store WhatsApp message for %s: %s", user_id, e)

    async def _create_lead(self, db: AsyncSession, message: InboundMessage) -> User | None:
        lead = User(
            id=new_id(),
            phone=message.phone_number,
            full_name=message.sender_name or f"Lead WhatsApp {message.phone_number[-4:]}",
            email=f"{message.phone_number}@whatsapp.temp",
        )
        try:
            db.add(lead)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Could not create lead for %s: %s", message.phone_number, e)
            return None
        return lead

    async def _handle_new_contact(self, db: AsyncSession, message: InboundMessage) -> None:
        logger.info("New contact detected: %s", message.phone_number)
        name = f" {message.sender_name}" if message.sender_name else ""
        presentation = PRESENTATION_TEXT.format(name=name)
        await self.client.send_text(message.phone_number, presentation)

        lead = await self._create_lead(db, message)
        if lead is None:
            await self.client.send_text(message.phone_number, "❌ Erro interno. Tente novamente.")
            return

        await self._save_message(db, lead.id, message.text, "user")
        reply = demo_reply(message.text)
        await self.client.send_text(message.phone_number, reply)
        await self._save_message(db, lead.id, reply, "bot")
        self.chat.record(lead.id, "user", message.text)
        self.chat.record(lead.id, "bot", presentation)
        self.chat.record(lead.id, "bot", reply)

    async def _handle_registered(self, db: AsyncSession, user: User, message: InboundMessage) -> None:
        current = CurrentUser(id=user.id, email=user.email or "", full_name=user.full_name or "")
        notifier = WhatsAppNotifier(self.client, message.phone_number)
        result = await self.processor.process_message(db, current, message.text, notifier=notifier)
        if not result.success:
            # the notifier already told the user why
            await self._save_message(db, user.id, message.text, "user")

    async def process(self, db: AsyncSession, message: InboundMessage) -> None:
        logger.info("Message from %s (%s): %s", message.sender_name, message.phone_number, message.text)
        try:
            user = await AuthService.get_user_by_phone(db, message.phone_number)
            if user is None:
                await self._handle_new_contact(db, message)
            else:
                await self._handle_registered(db, user, message)
        except Exception as e:
            logger.exception("Failed to process WhatsApp message from %s: %s", message.phone_number, e)
            await self.client.send_text(message.phone_number, INTERNAL_ERROR_REPLY)

    async def handle(self, db: AsyncSession, payload: EvolutionWebhookPayload) -> str:
        message, outcome = parse_inbound(payload)
        if message is None:
            logger.info("%s (event %s)", outcome, payload.event)
            return outcome
        await self.process(db, message)
        return outcome


whatsapp_relay = WhatsAppRelay()
