import asyncio
import hmac
import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.logging import setup_logging
from app.schemas.webhook import DeployRequest

logger = logging.getLogger(__name__)


def deploy_commands() -> list[str]:
    return [
        f"cd {settings.DEPLOY_PROJECT_DIR}",
        "git pull origin main",
        "docker-compose down",
        "docker-compose build --no-cache",
        "docker-compose up -d",
        f"curl -f {settings.DEPLOY_HEALTHCHECK_URL}",
    ]


async def run_command(command: str, cwd: str | None = None) -> dict:
    started = time.monotonic()
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd or str(settings.DEPLOY_PROJECT_DIR),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return {
        "command": command,
        "code": process.returncode,
        "stdout": stdout.decode(errors="replace"),
        "stderr": stderr.decode(errors="replace"),
        "duration": f"{time.monotonic() - started:.2f}",
        "success": process.returncode == 0,
    }


async def run_deploy(commands: list[str]) -> tuple[bool, str]:
    """Runs the commands in order and stops at the first failure."""
    logs = ""
    success = True
    for command in commands:
        logs += f"$ {command}\n"
        logger.info("Running: %s", command)
        try:
            result = await run_command(command)
        except OSError as e:
            success = False
            logs += f"❌ Erro ao executar comando: {e}\n"
            break

        if result["stdout"]:
            logs += f"{result['stdout']}\n"
        if result["stderr"]:
            logs += f"STDERR: {result['stderr']}\n"
        logs += f"Comando executado em {result['duration']}s\n\n"

        if not result["success"]:
            success = False
            logs += f"❌ Erro: comando falhou com código {result['code']}\n"
            break

    if success:
        logs += "✅ Deploy concluído com sucesso!\n"
        logger.info("Deploy finished successfully")
    else:
        logs += "❌ Deploy falhou!\n"
        logger.error("Deploy failed")
    return success, logs


deploy_app = FastAPI(title="GranaFácil Deploy Webhook", version=settings.VERSION, docs_url=None, redoc_url=None)


@deploy_app.on_event("startup")
async def startup():
    setup_logging()
    logger.info("Deploy webhook listening on port %d", settings.DEPLOY_PORT)


@deploy_app.post("/deploy")
async def deploy(req: DeployRequest):
    if not req.secret or not hmac.compare_digest(req.secret.encode(), settings.DEPLOY_SECRET.encode()):
        logger.warning("Deploy %s rejected: bad secret", req.deploy_id)
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    logger.info("Starting deploy of branch %s (ID: %s)", req.branch, req.deploy_id)
    try:
        success, logs = await run_deploy(deploy_commands())
    except Exception as e:
        logger.error("Deploy error: %s", e)
        return JSONResponse(status_code=500, content={"error": "Erro interno do servidor", "details": str(e)})

    return {
        "success": success,
        "deployId": req.deploy_id,
        "logs": logs,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@deploy_app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat(), "service": "deploy-webhook"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.deploy:deploy_app", host="0.0.0.0", port=settings.DEPLOY_PORT)
