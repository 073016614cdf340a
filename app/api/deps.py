from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.core.security import get_identity
from app.schemas.user import AuthIdentity, CurrentUser
from app.services.auth import AuthService, auth_watchers


async def get_optional_user(
        identity: AuthIdentity | None = Depends(get_identity),
        client_id: str | None = Header(None, alias="X-Client-Id"),
        db: AsyncSession = Depends(get_db),
) -> CurrentUser | None:
    user = await AuthService.get_current_user(db, identity)
    if client_id:
        auth_watchers.observe(client_id, user.id if user else None)
    return user


async def get_current_user(user: CurrentUser | None = Depends(get_optional_user)) -> CurrentUser:
    if user is None:
        raise AuthenticationError()
    return user
