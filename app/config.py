from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    PROJECT_NAME: str = "GranaFácil API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SERVICE_NAME: str = "granafacil-api"
    PORT: int = 8000

    DATABASE_URL: str = f"sqlite+aiosqlite:///{BASE_DIR}/data/granafacil.db"

    BACKEND_CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Tokens are issued by the external auth provider (Supabase GoTrue)
    AUTH_JWT_SECRET: str = "dev-jwt-secret-change-me"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: str | None = None
    SUPABASE_URL: str | None = None
    SUPABASE_ANON_KEY: str | None = None

    AI_GATEWAY_URL: str | None = None
    AI_GATEWAY_KEY: str | None = None
    AI_MODEL: str = "gpt-4o"

    EVOLUTION_API_URL: str | None = None
    EVOLUTION_API_KEY: str | None = None
    EVOLUTION_INSTANCE_NAME: str | None = None
    WEBHOOK_CALLBACK_URL: str | None = None

    DEPLOY_SECRET: str = "change-this-deploy-secret"
    DEPLOY_PROJECT_DIR: Path = Path("/root/grana-facil")
    DEPLOY_HEALTHCHECK_URL: str = "https://app.granaboard.com.br/health"
    DEPLOY_PORT: int = 3001

    SEED_CSV_PATH: str | None = None

    HTTP_TIMEOUT_SECONDS: float = 15.0

    CACHE_STALE_SECONDS: float = 5 * 60
    ACTIVITY_STALE_SECONDS: float = 30
    ACTIVITY_REFETCH_SECONDS: float = 60
    SYNC_SETTLE_SECONDS: float = 0.3
    SYNC_FINANCIAL_SETTLE_SECONDS: float = 0.2

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
