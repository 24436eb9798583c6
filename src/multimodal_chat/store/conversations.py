"""Quota-aware persistence of chats in a key-value store.

Every save rewrites the whole chat list under one key. When the store
rejects the write, fidelity is given up step by step until something fits:

1. normalize: newest ``MAX_CHATS`` chats, newest ``MAX_MESSAGES`` messages each
   (always applied before the first attempt)
2. sanitize: drop inline media larger than ``MAX_INLINE_MEDIA_CHARS``
3. shrink: cut the per-chat message window by 30% per retry down to
   ``MIN_MESSAGES``, then drop the oldest chats one at a time
4. minimal snapshot with empty message lists, else delete the key
"""

import json
from typing import List, Optional, Union

import structlog
from pydantic import TypeAdapter

from ..domain.models import Chat, Message
from .kv import KeyValueStore, StorageQuotaExceeded

logger = structlog.get_logger()

CHATS_KEY = "multimodal-chatbot-chats"

MAX_CHATS = 20
MAX_MESSAGES = 100
MIN_MESSAGES = 10
SHRINK_FACTOR = 0.7
MAX_INLINE_MEDIA_CHARS = 100_000

_chat_list = TypeAdapter(List[Chat])


def _is_large_inline(ref: Optional[str]) -> bool:
    return bool(ref) and ref.startswith("data:") and len(ref) > MAX_INLINE_MEDIA_CHARS


def _with_window(chat: Chat, cap: int) -> Chat:
    return chat.model_copy(update={"messages": chat.messages[-cap:] if cap else []})


def _sanitize_message(message: Message) -> Message:
    update = {}
    if _is_large_inline(message.image_ref):
        update["image_ref"] = None
    if _is_large_inline(message.audio_ref):
        update["audio_ref"] = None
    return message.model_copy(update=update) if update else message


class ConversationStore:
    """Chats persisted under a single key of a :class:`KeyValueStore`.

    Concurrent saves are not serialized: callers save one chat at a time.
    """

    def __init__(self, kv: KeyValueStore, key: str = CHATS_KEY) -> None:
        self.kv = kv
        self.key = key

    def load(self) -> List[Chat]:
        """Return every persisted chat; an empty list if nothing usable is stored."""
        raw = self.kv.get(self.key)
        if raw is None:
            return []
        try:
            return _chat_list.validate_python(json.loads(raw))
        except ValueError as e:
            logger.warning("chats_unparseable", key=self.key, error=str(e))
            return []

    def get(self, chat_id: Union[int, str]) -> Optional[Chat]:
        return next((c for c in self.load() if c.id == chat_id), None)

    def save(self, chat: Chat) -> None:
        """Insert or replace ``chat`` and persist the set. Never raises."""
        chat.touch()
        chats = self.load()
        for index, existing in enumerate(chats):
            if existing.id == chat.id:
                chats[index] = chat
                break
        else:
            chats.insert(0, chat)
        self._write(chats)

    def delete(self, chat_id: Union[int, str]) -> None:
        """Remove one chat from the persisted set."""
        chats = [c for c in self.load() if c.id != chat_id]
        self._write(chats)
        logger.info("chat_removed", chat_id=chat_id)

    def clear(self) -> None:
        """Remove every chat."""
        self.kv.delete(self.key)
        logger.info("chats_cleared")

    def _try_write(self, chats: List[Chat]) -> bool:
        payload = json.dumps([c.model_dump(mode="json", by_alias=True) for c in chats])
        try:
            self.kv.set(self.key, payload)
        except StorageQuotaExceeded as e:
            logger.warning("chats_write_rejected", chats=len(chats), size=len(payload), error=str(e))
            return False
        return True

    def _write(self, chats: List[Chat]) -> None:
        ordered = sorted(chats, key=lambda c: c.last_modified, reverse=True)[:MAX_CHATS]
        normalized = [_with_window(c, MAX_MESSAGES) for c in ordered]
        if self._try_write(normalized):
            return

        sanitized = [
            c.model_copy(update={"messages": [_sanitize_message(m) for m in c.messages]})
            for c in normalized
        ]
        if self._try_write(sanitized):
            logger.info("chats_saved_without_media", chats=len(sanitized))
            return

        cap = MAX_MESSAGES
        kept = sanitized
        while True:
            if cap > MIN_MESSAGES:
                cap = max(MIN_MESSAGES, int(cap * SHRINK_FACTOR))
            elif len(kept) > 1:
                kept = kept[:-1]
            else:
                break
            if self._try_write([_with_window(c, cap) for c in kept]):
                logger.info("chats_saved_shrunk", chats=len(kept), message_cap=cap)
                return

        minimal = [_with_window(c, 0) for c in sanitized]
        if self._try_write(minimal):
            logger.warning("chats_saved_minimal", chats=len(minimal))
            return

        try:
            self.kv.delete(self.key)
        except StorageQuotaExceeded as e:
            logger.error("chats_storage_unwritable", key=self.key, error=str(e))
            return
        logger.error("chats_storage_cleared", key=self.key)
