import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, ExternalServiceError
from app.schemas.user import CurrentUser

logger = logging.getLogger(__name__)


def require_user(user: CurrentUser | None) -> CurrentUser:
    if user is None:
        raise AuthenticationError("Usuário não autenticado. Faça login para continuar.")
    return user


@asynccontextmanager
async def store_errors(db: AsyncSession, message: str):
    """Rolls back and re-raises store failures as ExternalServiceError('<message>: <detail>')."""
    try:
        yield
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("%s: %s", message, e)
        raise ExternalServiceError(f"{message}: {e}") from e
