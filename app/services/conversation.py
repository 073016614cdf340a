import logging
from collections import defaultdict, deque
from datetime import datetime

from pydantic import TypeAdapter, ValidationError

from app.core.database import new_id, utcnow
from app.schemas.ai import ChatMessage

logger = logging.getLogger(__name__)

APP_NAMESPACE = "granafacil"
CHAT_HISTORY_NAMESPACE = "grana_ia_chat_history"
MAX_CONTEXT_ENTRIES = 100
MAX_HISTORY_MESSAGES = 100

_messages_adapter = TypeAdapter(list[ChatMessage])


def chat_history_key(user_id: str) -> str:
    return f"{CHAT_HISTORY_NAMESPACE}_{user_id}"


class ClientStorage:
    """Server-side stand-in for the browser key-value storage, keyed per user."""

    def __init__(self):
        self._data: dict[str, dict[str, str]] = defaultdict(dict)

    def set(self, user_id: str, key: str, value: str) -> None:
        self._data[user_id][key] = value

    def get(self, user_id: str, key: str) -> str | None:
        return self._data.get(user_id, {}).get(key)

    def keys(self, user_id: str) -> list[str]:
        return list(self._data.get(user_id, {}))

    def purge(self, user_id: str) -> int:
        """Removes the app's and the chat history's keys of one user."""
        stored = self._data.get(user_id, {})
        doomed = [k for k in stored if k.startswith(APP_NAMESPACE) or k.startswith(CHAT_HISTORY_NAMESPACE)]
        for key in doomed:
            del stored[key]
        if not stored:
            self._data.pop(user_id, None)
        return len(doomed)


class ConversationStore:
    """In-memory AI assistant context, bounded per user."""

    def __init__(self, max_entries: int = MAX_CONTEXT_ENTRIES):
        self.max_entries = max_entries
        self._contexts: dict[str, deque] = {}

    def append(self, user_id: str, role: str, content: str) -> None:
        context = self._contexts.setdefault(user_id, deque(maxlen=self.max_entries))
        context.append({"role": role, "content": content})

    def history(self, user_id: str) -> list[dict]:
        return list(self._contexts.get(user_id, ()))

    def reset(self, user_id: str) -> None:
        self._contexts.pop(user_id, None)
        logger.debug("Conversation context reset for user %s", user_id)


class ChatHistory:
    """Chat transcript of a user: the last messages in storage, plus the assistant's running context."""

    def __init__(self, storage: ClientStorage, conversations: ConversationStore, max_messages: int = MAX_HISTORY_MESSAGES):
        self.storage = storage
        self.conversations = conversations
        self.max_messages = max_messages

    def messages(self, user_id: str) -> list[ChatMessage]:
        saved = self.storage.get(user_id, chat_history_key(user_id))
        if not saved:
            return []
        try:
            return _messages_adapter.validate_json(saved)
        except ValidationError as e:
            logger.error("Discarding unreadable chat history of user %s: %s", user_id, e)
            return []

    def record(
            self,
            user_id: str,
            sender: str,
            text: str,
            message_type: str = "text",
            confidence: float | None = None,
            timestamp: datetime | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            id=new_id(), text=text, sender=sender, timestamp=timestamp or utcnow(),
            type=message_type, confidence=confidence,
        )
        messages = (self.messages(user_id) + [message])[-self.max_messages:]
        self.storage.set(user_id, chat_history_key(user_id), _messages_adapter.dump_json(messages).decode())
        self.conversations.append(user_id, "user" if sender == "user" else "assistant", text)
        return message


client_storage = ClientStorage()
conversation_store = ConversationStore()
chat_history = ChatHistory(client_storage, conversation_store)
