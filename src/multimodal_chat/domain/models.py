"""Domain models for the chat application."""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def _as_utc(value: datetime) -> datetime:
    # Offset-less timestamps are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, as stored and sent over the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Segment(BaseModel):
    """A typed span of a model response."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["text", "math"]
    content: str


class Message(CamelModel):
    """Message model."""

    id: int
    role: Literal["user", "bot"]
    content: str = ""
    timestamp: UtcDatetime = Field(default_factory=utc_now)
    audio_ref: Optional[str] = None
    image_ref: Optional[str] = None


class Chat(CamelModel):
    """Chat model.

    ``id`` is a local integer until the chat is synced, after which it holds
    the identifier assigned by the backend.
    """

    id: Union[int, str]
    name: str
    messages: List[Message] = Field(default_factory=list)
    created_at: UtcDatetime = Field(default_factory=utc_now)
    last_modified: UtcDatetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _last_modified_not_before_created(self) -> "Chat":
        if self.last_modified < self.created_at:
            self.last_modified = self.created_at
        return self

    def next_message_id(self) -> int:
        """Next id in this chat's monotonic message sequence."""
        return max((m.id for m in self.messages), default=0) + 1

    def add_message(
        self,
        role: str,
        content: str,
        audio_ref: Optional[str] = None,
        image_ref: Optional[str] = None,
    ) -> Message:
        """Append a message and bump ``last_modified``."""
        message = Message(
            id=self.next_message_id(),
            role=role,
            content=content,
            audio_ref=audio_ref,
            image_ref=image_ref,
        )
        self.messages.append(message)
        self.touch()
        return message

    def touch(self) -> None:
        self.last_modified = max(utc_now(), self.created_at)


class User(CamelModel):
    """Public view of a registered user."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    email: str
    created_at: UtcDatetime = Field(default_factory=utc_now)


class UserRecord(User):
    """Stored user, including the password hash."""

    password_hash: str

    def public(self) -> User:
        return User(id=self.id, name=self.name, email=self.email, created_at=self.created_at)


class AuthResult(BaseModel):
    """Response body of the register/login endpoints."""

    token: str
    user: User
