import logging
from collections import OrderedDict

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import QueryCache, query_cache
from app.core.security import revoke_token
from app.models.user import User
from app.schemas.user import AuthIdentity, CurrentUser
from app.services.conversation import ClientStorage, ConversationStore, client_storage, conversation_store

logger = logging.getLogger(__name__)

MAX_WATCHED_CLIENTS = 10_000


class AuthService:
    @staticmethod
    async def get_current_user(db: AsyncSession, identity: AuthIdentity | None) -> CurrentUser | None:
        """Resolves the token's user, creating the profile row on first sight.

        A failed profile insert is not fatal: the user is still built from the token claims.
        """
        if identity is None:
            return None

        profile = (await db.execute(select(User).where(User.id == identity.id))).scalar_one_or_none()
        if profile is None:
            try:
                db.add(User(id=identity.id, email=identity.email, full_name=identity.full_name or ""))
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.warning("Could not create profile row for user %s: %s", identity.id, e)

        full_name = (profile.full_name if profile is not None else None) or identity.full_name or ""
        return CurrentUser(id=identity.id, email=identity.email, full_name=full_name)

    @staticmethod
    async def get_user_by_phone(db: AsyncSession, phone: str) -> User | None:
        result = await db.execute(select(User).where(User.phone == phone))
        return result.scalar_one_or_none()


class AuthProvider:
    """Sign-out against the external auth provider."""

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float | None = None):
        self.base_url = base_url if base_url is not None else settings.SUPABASE_URL
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def sign_out(self, token: str | None) -> None:
        if not token:
            return
        revoke_token(token)
        if not self.base_url:
            return
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url.rstrip('/')}/auth/v1/logout", headers=headers)
            response.raise_for_status()


class SessionTeardown:
    def __init__(
            self,
            cache: QueryCache,
            storage: ClientStorage,
            conversations: ConversationStore,
            provider: AuthProvider,
    ):
        self.cache = cache
        self.storage = storage
        self.conversations = conversations
        self.provider = provider

    def wipe(self, user_id: str) -> dict[str, bool]:
        """Drops every piece of per-user client state; each step runs even if an earlier one failed."""
        steps = {}
        for name, action in (
                ("cache", lambda: self.cache.clear(user_id)),
                ("storage", lambda: self.storage.purge(user_id)),
                ("conversation", lambda: self.conversations.reset(user_id)),
        ):
            try:
                action()
                steps[name] = True
            except Exception as e:
                logger.warning("Logout step %s failed for user %s: %s", name, user_id, e)
                steps[name] = False
        return steps

    async def logout(self, user_id: str, token: str | None) -> dict[str, bool]:
        steps = self.wipe(user_id)
        try:
            await self.provider.sign_out(token)
            steps["sign_out"] = True
        except Exception as e:
            logger.warning("Provider sign-out failed for user %s: %s", user_id, e)
            steps["sign_out"] = False
        logger.info("User %s logged out", user_id)
        return steps


class AuthStateWatcher:
    """Wipes the previous user's state when a client switches accounts."""

    def __init__(self, teardown: SessionTeardown):
        self.teardown = teardown
        self.previous_user_id: str | None = None

    def on_auth_state_change(self, user_id: str | None) -> bool:
        previous = self.previous_user_id
        self.previous_user_id = user_id
        if previous is not None and previous != user_id:
            logger.info("User changed from %s to %s, clearing cached state", previous, user_id)
            self.teardown.wipe(previous)
            return True
        return False


class AuthStateRegistry:
    """One watcher per client; the least recently seen client is dropped past max_clients."""

    def __init__(self, teardown: SessionTeardown, max_clients: int = MAX_WATCHED_CLIENTS):
        self.teardown = teardown
        self.max_clients = max_clients
        self._watchers: OrderedDict[str, AuthStateWatcher] = OrderedDict()

    def observe(self, client_id: str, user_id: str | None) -> bool:
        watcher = self._watchers.pop(client_id, None) or AuthStateWatcher(self.teardown)
        self._watchers[client_id] = watcher
        while len(self._watchers) > self.max_clients:
            self._watchers.popitem(last=False)
        return watcher.on_auth_state_change(user_id)

    def forget(self, client_id: str) -> None:
        self._watchers.pop(client_id, None)


auth_provider = AuthProvider()
session_teardown = SessionTeardown(query_cache, client_storage, conversation_store, auth_provider)
auth_watchers = AuthStateRegistry(session_teardown)
