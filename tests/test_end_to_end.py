"""Browser-side flow against the real app, with the provider faked."""

import httpx
import pytest

from src.studio.api.main import app
from src.studio.client import ApiError, BackendClient, BrowsingContext, ChatView
from src.studio.client.api import error_message
from src.studio.client.views import chat_path
from src.studio.core.state_machine import ExchangeState
from src.studio.errors import RATE_LIMIT_MESSAGE, SEND_FAILED_MESSAGE

from .utils import CHAT_ID, DEMO_URL


def _backend():
    return BackendClient("http://testserver/api", transport=httpx.ASGITransport(app=app))


@pytest.mark.asyncio
async def test_first_message_streams_and_hands_off(provider, store):
    api = _backend()
    await api.sign_up("builder@example.com", "secret123")

    ctx = BrowsingContext(api)
    ctx.composer_options = {"handoff_on_chat_id": True}
    composer = await ctx.navigate("/")
    assert await composer.submit("Build a landing page") is True

    view = ctx.view
    assert isinstance(view, ChatView)
    await view.wait()
    await api.aclose()

    assert ctx.location == chat_path(CHAT_ID)
    conv = view.conversation
    assert conv.state == ExchangeState.SETTLED
    assert conv.messages[-1].text == "Here is your landing page."
    assert conv.demo_url == DEMO_URL
    assert len(provider.called("create")) == 1

    ownership = await store.get_ownership(CHAT_ID)
    assert ownership is not None


@pytest.mark.asyncio
async def test_anonymous_landing_page_binds_id_and_preview(provider, store):
    api = _backend()
    ctx = BrowsingContext(api)
    composer = await ctx.navigate("/")
    assert await composer.submit("Landing page") is True
    await api.aclose()

    conv = composer.conversation
    assert conv.chat_id == CHAT_ID
    assert ctx.history == ["/", f"/chats/{CHAT_ID}"]
    assert conv.demo_url == "https://demo.example/xyz"
    assert conv.state == ExchangeState.SETTLED
    assert [log.v0_chat_id for log in store.anonymous_logs()] == [CHAT_ID]


@pytest.mark.asyncio
async def test_follow_up_message_in_chat_view(provider):
    provider.add_chat(CHAT_ID, latestVersion={"demoUrl": DEMO_URL}, messages=[{"role": "user", "content": "first"}])
    api = _backend()
    ctx = BrowsingContext(api)
    view = await ctx.navigate(chat_path(CHAT_ID))
    assert [m.text for m in view.conversation.messages] == ["first"]

    assert await view.submit("Make it blue") is True
    await api.aclose()
    assert view.conversation.state == ExchangeState.SETTLED
    assert provider.called("send_message")[0]["chat_id"] == CHAT_ID


@pytest.mark.asyncio
async def test_rate_limited_submit_shows_limit_message(provider, store):
    for i in range(3):
        await store.create_anonymous_log("127.0.0.1", f"chat-{i}")
    api = _backend()
    ctx = BrowsingContext(api)
    composer = await ctx.navigate("/")
    await composer.submit("one too many")
    await api.aclose()

    conv = composer.conversation
    assert conv.state == ExchangeState.FAILED
    assert conv.messages[-1].error == RATE_LIMIT_MESSAGE
    assert provider.called("create") == []


@pytest.mark.asyncio
async def test_get_chat_error_surfaces_as_api_error():
    api = _backend()
    with pytest.raises(ApiError) as exc_info:
        await api.get_chat("missing-chat-identifier")
    await api.aclose()
    assert exc_info.value.status_code == 404


def test_error_message_fallbacks():
    assert error_message(400, {"message": "bad input"}) == "bad input"
    assert error_message(429, None) == RATE_LIMIT_MESSAGE
    assert error_message(500, {"message": ""}) == SEND_FAILED_MESSAGE
