import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.schemas.webhook import EvolutionWebhookPayload
from app.services.whatsapp import parse_inbound, whatsapp_relay

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhook", tags=["Webhooks"])


def _configured(value) -> str:
    return "Configurado" if value else "Não configurado"


@webhook_router.post("")
async def minimal_webhook(request: Request):
    """Development relay: logs inbound messages and always acknowledges."""
    try:
        payload = EvolutionWebhookPayload.model_validate(await request.json())
        message, outcome = parse_inbound(payload)
        if message is not None:
            logger.info("New message from %s (%s): %s", message.phone_number, message.sender_name, message.text)
        else:
            logger.info("Webhook event %s: %s", payload.event, outcome)
    except Exception as e:
        logger.warning("Unreadable webhook payload: %s", e)
    return {"success": True}


@webhook_router.post("/evolution")
async def evolution_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        payload = EvolutionWebhookPayload.model_validate(await request.json())
        logger.info("Evolution webhook received: event=%s instance=%s", payload.event, payload.instance)
        outcome = await whatsapp_relay.handle(db, payload)
    except Exception as e:
        logger.error("Webhook error: %s", e)
        return JSONResponse(status_code=500, content={"error": "Erro interno", "details": str(e)})
    return {"success": True, "message": outcome}


@webhook_router.get("/test")
async def webhook_test():
    return {
        "status": "ok",
        "message": "Webhook server funcionando!",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "config": {
            "supabaseConfigured": bool(settings.SUPABASE_URL),
            "evolutionConfigured": bool(settings.EVOLUTION_API_URL),
            "apiKeyConfigured": bool(settings.EVOLUTION_API_KEY),
        },
    }


@webhook_router.get("/status")
async def webhook_status():
    return {
        "server": "Webhook Evolution API Production",
        "status": "running",
        "port": settings.PORT,
        "endpoints": {
            "webhook": "/webhook/evolution",
            "minimal": "/webhook",
            "test": "/webhook/test",
            "status": "/webhook/status",
        },
        "environment": {
            "supabaseUrl": _configured(settings.SUPABASE_URL),
            "evolutionApiUrl": _configured(settings.EVOLUTION_API_URL),
            "evolutionApiKey": _configured(settings.EVOLUTION_API_KEY),
            "instanceName": settings.EVOLUTION_INSTANCE_NAME or "Não configurado",
            "callbackUrl": settings.WEBHOOK_CALLBACK_URL or "Não configurado",
        },
    }
