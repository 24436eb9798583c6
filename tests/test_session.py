"""Test suite for the client chat session against the app and a mock transport."""

import asyncio

import httpx
import pytest

from multimodal_chat.api.app import app
from multimodal_chat.client.api import ChatAPIClient
from multimodal_chat.client.session import FALLBACK_REPLY, GREETING, ChatSession
from multimodal_chat.store.kv import InMemoryKeyValueStore
from multimodal_chat.store.local_state import LocalState


def app_client(token=None):
    return ChatAPIClient("http://test", token=token, transport=httpx.ASGITransport(app=app))


def mock_client(handler):
    return ChatAPIClient("http://test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_send_creates_chat_lazily_and_renders_reply():
    state = LocalState(InMemoryKeyValueStore())
    async with app_client() as api:
        session = ChatSession(api, state)
        reply = await session.send("what is energy?")

    assert reply.role == "bot"
    assert reply.content == "Energy:\n\n$$E=mc^2$$\n\nis famous"

    [chat] = state.chats.load()
    assert [m.role for m in chat.messages] == ["bot", "user", "bot"]
    assert chat.messages[0].content == GREETING
    assert chat.messages[1].content == "what is energy?"
    assert [m.id for m in chat.messages] == [1, 2, 3]


@pytest.mark.asyncio
async def test_message_ids_increase_within_chat():
    state = LocalState(InMemoryKeyValueStore())
    async with app_client() as api:
        session = ChatSession(api, state)
        session.new_chat("Quick")
        for i in range(5):
            await session.send(f"question {i}")

    ids = [m.id for m in state.chats.load()[0].messages]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


@pytest.mark.asyncio
async def test_image_is_kept_as_data_uri():
    state = LocalState(InMemoryKeyValueStore())
    async with app_client() as api:
        session = ChatSession(api, state)
        await session.send(image=("cat.png", b"\x89PNG", "image/png"))

    user_message = state.chats.load()[0].messages[1]
    assert user_message.image_ref.startswith("data:image/png;base64,")
    assert user_message.content == ""


@pytest.mark.asyncio
async def test_empty_send_rejected():
    async with app_client() as api:
        session = ChatSession(api, LocalState(InMemoryKeyValueStore()))
        with pytest.raises(ValueError):
            await session.send("   ")


@pytest.mark.asyncio
async def test_server_error_becomes_fallback_message():
    def handler(request):
        return httpx.Response(500, json={"success": False, "error": "Gemini API error: boom"})

    state = LocalState(InMemoryKeyValueStore())
    async with mock_client(handler) as api:
        reply = await ChatSession(api, state).send("hi")
    assert reply.content == FALLBACK_REPLY
    assert state.chats.load()[0].messages[-1].content == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_timeout_becomes_fallback_message():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with mock_client(handler) as api:
        reply = await ChatSession(api, LocalState(InMemoryKeyValueStore())).send("hi")
    assert reply.content == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_unrecognized_shape_becomes_fallback_message():
    def handler(request):
        return httpx.Response(200, json={"success": True, "response": {"unexpected": 1}})

    async with mock_client(handler) as api:
        reply = await ChatSession(api, LocalState(InMemoryKeyValueStore())).send("hi")
    assert reply.content == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_legacy_shape_is_rendered():
    def handler(request):
        return httpx.Response(
            200,
            json={"success": True, "input": "hi", "response": {"text_content": "Let $x$ be", "logo_content": ""}},
        )

    async with mock_client(handler) as api:
        reply = await ChatSession(api, LocalState(InMemoryKeyValueStore())).send("hi")
    assert reply.content == "Let $x$ be"


@pytest.mark.asyncio
async def test_reply_dropped_after_switching_chat():
    entered = asyncio.Event()
    release = asyncio.Event()

    async def handler(request):
        entered.set()
        await release.wait()
        return httpx.Response(200, json={"success": True, "response": [{"type": "text", "content": "late"}]})

    state = LocalState(InMemoryKeyValueStore())
    async with mock_client(handler) as api:
        session = ChatSession(api, state)
        first = session.new_chat("First")
        pending = asyncio.create_task(session.send("hello"))
        await entered.wait()
        session.new_chat("Second")
        release.set()
        assert await pending is None

    stored = state.chats.get(first.id)
    assert [m.content for m in stored.messages] == [GREETING, "hello"]


@pytest.mark.asyncio
async def test_rename_delete_and_resume():
    state = LocalState(InMemoryKeyValueStore())
    async with app_client() as api:
        session = ChatSession(api, state)
        chat = session.new_chat("Draft")
        other = session.new_chat("Other")

        await session.rename(chat.id, "  Physics  ")
        await session.rename(chat.id, "   ")
        assert state.chats.get(chat.id).name == "Physics"

        await session.delete(other.id)
        assert session.current is None
        assert [c.id for c in session.chats()] == [chat.id]

        session.select(chat.id)
        session.close()
        resumed = ChatSession(api, state).resume()
        assert resumed.id == chat.id

        session.delete_all()
        assert session.chats() == []


@pytest.mark.asyncio
async def test_signed_in_session_syncs_to_backend():
    state = LocalState(InMemoryKeyValueStore())
    async with app_client() as api:
        auth = await api.register("Ada", "ada@example.com", "password1")
        state.sign_in(auth.token, auth.user)

        session = ChatSession(api, state)
        await session.send("what is energy?")

        [local] = state.chats.load()
        assert isinstance(local.id, str)

        [remote] = await api.list_chats()
        assert remote.id == local.id
        assert [m.content for m in remote.messages] == [m.content for m in local.messages]

        await session.delete(local.id)
        assert await api.list_chats() == []


@pytest.mark.asyncio
async def test_sync_failure_does_not_interrupt_send():
    def handler(request):
        if request.url.path == "/api/chats":
            return httpx.Response(503, json={"message": "down"})
        return httpx.Response(200, json={"success": True, "response": [{"type": "text", "content": "ok"}]})

    state = LocalState(InMemoryKeyValueStore())
    async with mock_client(handler) as api:
        api.token = "token"
        reply = await ChatSession(api, state).send("hi")
    assert reply.content == "ok"
    assert isinstance(state.chats.load()[0].id, int)


@pytest.mark.asyncio
async def test_client_health_and_login():
    async with app_client() as api:
        assert await api.health() == {"status": "ok", "provider": "google-gemini"}
        registered = await api.register("Ada", "ada@example.com", "password1")

        api.token = None
        result = await api.login("ada@example.com", "password1")
        assert result.user.id == registered.user.id
        assert api.token == result.token

        with pytest.raises(httpx.HTTPStatusError):
            await api.login("ada@example.com", "wrong-password")


@pytest.mark.asyncio
async def test_rename_syncs_to_backend():
    state = LocalState(InMemoryKeyValueStore())
    async with app_client() as api:
        auth = await api.register("Ada", "ada@example.com", "password1")
        state.sign_in(auth.token, auth.user)

        session = ChatSession(api, state)
        chat = session.new_chat("Draft")
        await session.send("hello")
        await session.rename(session.current.id, "Physics")

        [remote] = await api.list_chats()
        assert remote.name == "Physics"
        assert session.current.name == "Physics"
        assert chat.id == remote.id
