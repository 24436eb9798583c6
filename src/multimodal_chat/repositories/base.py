"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from ..domain.models import Chat, Message, UserRecord


class Repository(ABC):
    """Abstract base class for user and chat storage."""

    @abstractmethod
    async def create_user(self, user: UserRecord) -> UserRecord:
        """Store a new user; raises ValueError if the email is taken."""
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        """Retrieve a user by email address."""
        pass

    @abstractmethod
    async def list_chats(self, user_id: UUID) -> List[Chat]:
        """List a user's chats, most recently modified first."""
        pass

    @abstractmethod
    async def create_chat(self, user_id: UUID, name: str, messages: List[Message]) -> Chat:
        """Create a chat owned by the user."""
        pass

    @abstractmethod
    async def update_chat(
        self,
        user_id: UUID,
        chat_id: str,
        name: Optional[str] = None,
        messages: Optional[List[Message]] = None,
    ) -> Optional[Chat]:
        """Rename a chat and/or replace its messages. None if not found."""
        pass

    @abstractmethod
    async def delete_chat(self, user_id: UUID, chat_id: str) -> bool:
        """Delete a chat. False if not found."""
        pass
