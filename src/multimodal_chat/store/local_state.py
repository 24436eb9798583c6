"""Client state kept under fixed keys: session, preferences and the open chat."""

import json
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from ..domain.models import Chat, User
from .conversations import CHATS_KEY, ConversationStore
from .kv import KeyValueStore, StorageQuotaExceeded

logger = structlog.get_logger()

CURRENT_CHAT_KEY = "multimodal-chatbot-current-chat"
USER_KEY = "multimodal-chatbot-user"
TOKEN_KEY = "multimodal-chatbot-token"
DARK_MODE_KEY = "multimodal-chatbot-dark-mode"


class LocalState:
    """Typed accessors over the persisted client keys."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv
        self.chats = ConversationStore(kv, key=CHATS_KEY)

    def _read_json(self, key: str) -> Any:
        raw = self.kv.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("local_state_unparseable", key=key, error=str(e))
            return None

    def _write_json(self, key: str, value: Any) -> bool:
        try:
            self.kv.set(key, json.dumps(value))
        except StorageQuotaExceeded as e:
            logger.warning("local_state_write_rejected", key=key, error=str(e))
            return False
        return True

    @property
    def token(self) -> Optional[str]:
        return self.kv.get(TOKEN_KEY)

    @token.setter
    def token(self, value: Optional[str]) -> None:
        if value is None:
            self.kv.delete(TOKEN_KEY)
        else:
            try:
                self.kv.set(TOKEN_KEY, value)
            except StorageQuotaExceeded as e:
                logger.warning("local_state_write_rejected", key=TOKEN_KEY, error=str(e))

    @property
    def user(self) -> Optional[User]:
        data = self._read_json(USER_KEY)
        if data is None:
            return None
        try:
            return User.model_validate(data)
        except ValidationError as e:
            logger.warning("local_state_unparseable", key=USER_KEY, error=str(e))
            return None

    @user.setter
    def user(self, value: Optional[User]) -> None:
        if value is None:
            self.kv.delete(USER_KEY)
        else:
            self._write_json(USER_KEY, value.model_dump(mode="json", by_alias=True))

    @property
    def dark_mode(self) -> bool:
        return bool(self._read_json(DARK_MODE_KEY))

    @dark_mode.setter
    def dark_mode(self, enabled: bool) -> None:
        self._write_json(DARK_MODE_KEY, bool(enabled))

    def stash_current_chat(self, chat: Chat) -> None:
        """Remember the open chat so the next start can reopen it."""
        self._write_json(CURRENT_CHAT_KEY, chat.model_dump(mode="json", by_alias=True))

    def pop_current_chat(self) -> Optional[Chat]:
        """Return the stashed chat once; the key is cleared on read."""
        data = self._read_json(CURRENT_CHAT_KEY)
        self.kv.delete(CURRENT_CHAT_KEY)
        if data is None:
            return None
        try:
            return Chat.model_validate(data)
        except ValidationError as e:
            logger.warning("local_state_unparseable", key=CURRENT_CHAT_KEY, error=str(e))
            return None

    def sign_in(self, token: str, user: User) -> None:
        self.token = token
        self.user = user

    def sign_out(self) -> None:
        self.token = None
        self.user = None
