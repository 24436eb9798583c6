"""Async HTTP client for the chat backend."""

from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
import structlog

from ..domain.models import AuthResult, Chat, Message, Segment
from .responses import decode_chat_response

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0

# (filename, content, mime type)
FileUpload = Tuple[str, bytes, str]


class ChatAPIClient:
    """Thin wrapper over the backend's REST surface.

    Every request is cancelled after ``timeout`` seconds and surfaces as an
    :class:`httpx.TimeoutException`.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token = token
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ChatAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, url, headers=self._auth_headers(), **kwargs)
        if response.is_error:
            logger.warning("api_request_failed", method=method, url=url, status=response.status_code)
        response.raise_for_status()
        return response.json()

    async def health(self) -> Dict[str, str]:
        return await self._request("GET", "/health")

    async def send_message(self, text: Optional[str] = None, file: Optional[FileUpload] = None) -> List[Segment]:
        """Send one turn to ``/api/chat`` and return the reply segments."""
        data = {"text": text} if text else {}
        files = {"file": file} if file else None
        payload = await self._request("POST", "/api/chat", data=data, files=files)
        return decode_chat_response(payload)

    async def register(self, name: str, email: str, password: str) -> AuthResult:
        body = await self._request(
            "POST", "/api/auth/register", json={"name": name, "email": email, "password": password}
        )
        result = AuthResult.model_validate(body)
        self.token = result.token
        return result

    async def login(self, email: str, password: str) -> AuthResult:
        body = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        result = AuthResult.model_validate(body)
        self.token = result.token
        return result

    async def list_chats(self) -> List[Chat]:
        body = await self._request("GET", "/api/chats")
        return [Chat.model_validate(c) for c in body]

    async def create_chat(self, name: str, messages: List[Message]) -> Chat:
        body = await self._request(
            "POST",
            "/api/chats",
            json={"name": name, "messages": [m.model_dump(mode="json", by_alias=True) for m in messages]},
        )
        return Chat.model_validate(body)

    async def update_chat(
        self,
        chat_id: Union[int, str],
        name: Optional[str] = None,
        messages: Optional[List[Message]] = None,
    ) -> Chat:
        body: Dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if messages is not None:
            body["messages"] = [m.model_dump(mode="json", by_alias=True) for m in messages]
        return Chat.model_validate(await self._request("PUT", f"/api/chats/{chat_id}", json=body))

    async def delete_chat(self, chat_id: Union[int, str]) -> None:
        await self._request("DELETE", f"/api/chats/{chat_id}")
