"""In-memory repository implementation."""

import asyncio
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import structlog

from ..domain.models import Chat, Message, UserRecord, utc_now
from .base import Repository

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Async-safe in-memory repository."""

    def __init__(self) -> None:
        self._users: Dict[UUID, UserRecord] = {}
        self._emails: Dict[str, UUID] = {}
        self._chats: Dict[str, Chat] = {}
        self._owners: Dict[str, UUID] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized")

    async def create_user(self, user: UserRecord) -> UserRecord:
        email = user.email.lower()
        async with self._lock:
            if email in self._emails:
                logger.warning("user_already_exists", email=email)
                raise ValueError("User already exists")
            self._users[user.id] = user
            self._emails[email] = user.id
            logger.info("user_created", user_id=str(user.id))
            return user

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._lock:
            user_id = self._emails.get(email.lower())
            return self._users.get(user_id) if user_id else None

    async def list_chats(self, user_id: UUID) -> List[Chat]:
        async with self._lock:
            chats = [
                chat for chat_id, chat in self._chats.items()
                if self._owners[chat_id] == user_id
            ]
            return sorted(chats, key=lambda c: c.last_modified, reverse=True)

    async def create_chat(self, user_id: UUID, name: str, messages: List[Message]) -> Chat:
        chat = Chat(id=uuid4().hex, name=name.strip(), messages=list(messages))
        async with self._lock:
            self._chats[chat.id] = chat
            self._owners[chat.id] = user_id
            logger.info("chat_created", chat_id=chat.id, user_id=str(user_id))
        return chat

    async def update_chat(
        self,
        user_id: UUID,
        chat_id: str,
        name: Optional[str] = None,
        messages: Optional[List[Message]] = None,
    ) -> Optional[Chat]:
        async with self._lock:
            chat = self._chats.get(chat_id)
            if chat is None or self._owners[chat_id] != user_id:
                logger.warning("chat_not_found", chat_id=chat_id, user_id=str(user_id))
                return None
            if name is not None and name.strip():
                chat.name = name.strip()
            if messages is not None:
                chat.messages = list(messages)
            chat.last_modified = max(utc_now(), chat.created_at)
            logger.info("chat_updated", chat_id=chat_id, message_count=len(chat.messages))
            return chat

    async def delete_chat(self, user_id: UUID, chat_id: str) -> bool:
        async with self._lock:
            if chat_id not in self._chats or self._owners[chat_id] != user_id:
                logger.warning("chat_not_found", chat_id=chat_id, user_id=str(user_id))
                return False
            del self._chats[chat_id]
            del self._owners[chat_id]
            logger.info("chat_deleted", chat_id=chat_id)
            return True
