import asyncio
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.cache import query_cache
from app.core.database import init_db, AsyncSessionLocal
from app.core.exceptions import GranaError
from app.core.logging import setup_logging
from app.core.seed import seed_data
from app.api.router import api_router
from app.api.webhooks import webhook_router

logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "Transactions",
        "description": "Receitas e despesas do usuário.",
    },
    {
        "name": "Categories",
        "description": "Categorias de receitas e despesas, com orçamento.",
    },
    {
        "name": "Bills",
        "description": "Contas a pagar e a receber.",
    },
    {
        "name": "Goals",
        "description": "Metas de economia e seus aportes.",
    },
    {
        "name": "Analytics",
        "description": "Saldo, relatório mensal e atividades recentes.",
    },
    {
        "name": "AI",
        "description": "Registro de transações por texto livre e categorização automática.",
    },
    {
        "name": "Sync",
        "description": "Invalidação e estatísticas do cache de consultas.",
    },
    {
        "name": "Auth",
        "description": "Usuário atual e logout.",
    },
    {
        "name": "Webhooks",
        "description": "Mensagens recebidas do WhatsApp (Evolution API).",
    },
    {
        "name": "System",
        "description": "Endpoints de sistema.",
    },
]

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
### Documentação da API

Backend de finanças pessoais do GranaFácil: transações, contas, metas e categorização por IA.

    """,
    version=settings.VERSION,
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GranaError)
async def grana_error_handler(request: Request, exc: GranaError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def startup():
    setup_logging()
    await init_db()
    async with AsyncSessionLocal() as session:
        await seed_data(session)
    app.state.refetch_task = asyncio.create_task(query_cache.run_refetch_loop())
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)


@app.on_event("shutdown")
async def shutdown():
    task = getattr(app.state, "refetch_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app.include_router(api_router, prefix=settings.API_V1_STR)
app.include_router(webhook_router)


@app.get("/health", tags=["System"])
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
