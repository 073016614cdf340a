import logging
import math
import time

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings
from app.schemas.user import AuthIdentity

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# token -> its exp claim; after that jwt.decode rejects it anyway
_revoked_tokens: dict[str, float] = {}


def _token_expiry(token: str) -> float:
    try:
        exp = jwt.get_unverified_claims(token).get("exp")
    except JWTError:
        exp = None
    if isinstance(exp, (int, float)):
        return float(exp)
    return math.inf


def purge_revoked_tokens(now: float | None = None) -> int:
    now = time.time() if now is None else now
    expired = [t for t, expiry in _revoked_tokens.items() if expiry <= now]
    for token in expired:
        del _revoked_tokens[token]
    return len(expired)


def revoke_token(token: str, now: float | None = None) -> None:
    now = time.time() if now is None else now
    purge_revoked_tokens(now)
    _revoked_tokens[token] = _token_expiry(token)


def decode_access_token(token: str) -> AuthIdentity | None:
    if token in _revoked_tokens:
        return None
    options = {"verify_aud": settings.AUTH_JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.info("Rejected access token: %s", e)
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    metadata = payload.get("user_metadata") or {}
    return AuthIdentity(id=user_id, email=payload.get("email") or "", full_name=metadata.get("full_name"))


def create_access_token(
        user_id: str, email: str = "", full_name: str | None = None, expires_at: int | None = None
) -> str:
    """Issues a provider-compatible token; used by tests and local tooling."""
    claims = {"sub": user_id, "email": email, "user_metadata": {"full_name": full_name or ""}}
    if expires_at is not None:
        claims["exp"] = expires_at
    if settings.AUTH_JWT_AUDIENCE:
        claims["aud"] = settings.AUTH_JWT_AUDIENCE
    return jwt.encode(claims, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def get_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str | None:
    return credentials.credentials if credentials else None


def get_identity(token: str | None = Depends(get_token)) -> AuthIdentity | None:
    if not token:
        return None
    return decode_access_token(token)
