"""Chat session: the client-side flow behind the chat screen."""

import base64
import time
from typing import List, Optional, Union

import httpx
import structlog

from ..domain.models import Chat, Message, utc_now
from ..services.segmenter import render_segments
from ..store.local_state import LocalState
from .api import ChatAPIClient, FileUpload
from .responses import UnrecognizedResponseShape

logger = structlog.get_logger()

GREETING = "Hello! I can help you with text, images, and audio. How can I assist you today?"
FALLBACK_REPLY = "Sorry, I encountered an error processing your request."


def to_data_uri(upload: FileUpload) -> str:
    """Inline reference for an attachment, kept on the user's message."""
    _, content, mime_type = upload
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


class ChatSession:
    """Creates, selects and mutates chats, saving after every change.

    When the API client carries a token, chats are also pushed to the
    backend; sync failures are logged and never interrupt the session.
    """

    def __init__(self, api: ChatAPIClient, state: LocalState) -> None:
        self.api = api
        self.state = state
        self.store = state.chats
        self.current: Optional[Chat] = None
        if api.token is None:
            api.token = state.token

    def chats(self) -> List[Chat]:
        return self.store.load()

    def _next_chat_id(self) -> int:
        local_ids = [c.id for c in self.store.load() if isinstance(c.id, int)]
        return max([int(time.time() * 1000)] + [i + 1 for i in local_ids])

    def new_chat(self, name: Optional[str] = None) -> Chat:
        """Start a chat with the greeting message and make it current."""
        now = utc_now()
        chat = Chat(
            id=self._next_chat_id(),
            name=name or f"Chat {now.date().isoformat()}",
            created_at=now,
            last_modified=now,
        )
        chat.add_message("bot", GREETING)
        self.store.save(chat)
        self.current = chat
        logger.info("chat_started", chat_id=chat.id)
        return chat

    def select(self, chat_id: Union[int, str]) -> Optional[Chat]:
        self.current = self.store.get(chat_id)
        return self.current

    async def rename(self, chat_id: Union[int, str], name: str) -> Optional[Chat]:
        """Rename a chat; blank names are ignored."""
        name = name.strip()
        chat = self.store.get(chat_id)
        if chat is None or not name:
            return chat
        chat.name = name
        self.store.save(chat)
        is_current = self.current is not None and self.current.id == chat_id
        await self._sync(chat)
        if is_current:
            self.current = chat
        return chat

    async def delete(self, chat_id: Union[int, str]) -> None:
        """Delete a chat locally and, once synced, on the backend."""
        self.store.delete(chat_id)
        if self.current is not None and self.current.id == chat_id:
            self.current = None
        if isinstance(chat_id, str) and self.api.token:
            try:
                await self.api.delete_chat(chat_id)
            except httpx.HTTPError as e:
                logger.error("chat_delete_sync_failed", chat_id=chat_id, error=str(e))

    def delete_all(self) -> None:
        self.store.clear()
        self.current = None

    def close(self) -> None:
        """Stash the open chat so the next session reopens it."""
        if self.current is not None:
            self.state.stash_current_chat(self.current)

    def resume(self) -> Optional[Chat]:
        chat = self.state.pop_current_chat()
        if chat is not None:
            self.current = chat
        return chat

    async def send(
        self,
        text: Optional[str] = None,
        image: Optional[FileUpload] = None,
        audio: Optional[FileUpload] = None,
    ) -> Optional[Message]:
        """Send a user turn and append the bot's reply.

        Returns the bot message, or None when the user switched chats before
        the reply arrived (the reply is then dropped).
        """
        text = (text or "").strip()
        upload = audio or image
        if not text and upload is None:
            raise ValueError("Nothing to send: provide text, an image or audio")

        chat = self.current or self.new_chat()
        chat.add_message(
            "user",
            text,
            audio_ref=to_data_uri(audio) if audio else None,
            image_ref=to_data_uri(image) if image else None,
        )
        self.store.save(chat)
        await self._sync(chat)

        try:
            segments = await self.api.send_message(text or None, upload)
            content = render_segments(segments)
        except (httpx.HTTPError, ValueError, UnrecognizedResponseShape) as e:
            logger.error("chat_reply_failed", chat_id=chat.id, error=str(e))
            content = FALLBACK_REPLY

        if self.current is None or self.current.id != chat.id:
            logger.info("chat_reply_discarded", chat_id=chat.id)
            return None

        self.current = chat
        reply = chat.add_message("bot", content)
        self.store.save(chat)
        await self._sync(chat)
        return reply

    async def _sync(self, chat: Chat) -> None:
        if not self.api.token:
            return
        try:
            if isinstance(chat.id, str):
                await self.api.update_chat(chat.id, name=chat.name, messages=chat.messages)
                return
            remote = await self.api.create_chat(chat.name, chat.messages)
        except httpx.HTTPError as e:
            logger.error("chat_sync_failed", chat_id=chat.id, error=str(e))
            return

        local_id = chat.id
        chat.id = remote.id
        self.store.delete(local_id)
        self.store.save(chat)
        logger.info("chat_synced", local_id=local_id, chat_id=chat.id)
