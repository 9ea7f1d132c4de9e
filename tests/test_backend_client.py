import httpx
import pytest

from src.studio.client import ApiError, BackendClient
from src.studio.client.conversation import Conversation
from src.studio.core.state_machine import ExchangeState
from src.studio.errors import SEND_FAILED_MESSAGE

from .utils import CHAT_ID, landing_page_frames

PROXY_PAGE = "<html><body>502 Bad Gateway</body></html>"


def _html(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=PROXY_PAGE, headers={"content-type": "text/html"})


async def _frames():
    for frame in landing_page_frames():
        yield frame


def _backend(handler):
    return BackendClient("http://testserver/api", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_html_reply_fails_the_exchange_and_allows_retry():
    replies = iter(
        [
            httpx.Response(200, text=PROXY_PAGE, headers={"content-type": "text/html"}),
            httpx.Response(200, content=_frames(), headers={"content-type": "text/event-stream"}),
            httpx.Response(200, text=PROXY_PAGE, headers={"content-type": "text/html"}),
        ]
    )
    api = _backend(lambda request: next(replies))
    conv = Conversation(api, CHAT_ID)

    assert await conv.submit("Build a landing page") is True
    assert conv.state == ExchangeState.FAILED
    assert conv.loading is False
    assert conv.messages[-1].error == SEND_FAILED_MESSAGE
    assert conv.in_flight_message is None

    # the refresh after the retry settles also sees HTML and is ignored
    assert await conv.submit("retry") is True
    await api.aclose()
    assert conv.state == ExchangeState.SETTLED
    assert conv.messages[-1].text == "Here is your landing page."


@pytest.mark.asyncio
async def test_html_record_raises_api_error():
    api = _backend(_html)
    with pytest.raises(ApiError) as exc_info:
        await api.get_chat(CHAT_ID)
    await api.aclose()
    assert exc_info.value.message == SEND_FAILED_MESSAGE


@pytest.mark.asyncio
async def test_non_object_record_raises_api_error():
    api = _backend(lambda request: httpx.Response(200, json=["not", "a", "record"]))
    with pytest.raises(ApiError):
        await api.create_chat("hi", streaming=False)
    await api.aclose()


@pytest.mark.asyncio
async def test_refresh_ignores_html_record():
    api = _backend(_html)
    conv = Conversation(api, CHAT_ID)
    assert await conv.refresh() is None
    await api.aclose()
    assert conv.record is None


@pytest.mark.asyncio
async def test_client_reply_stream_is_replayable():
    api = _backend(lambda request: httpx.Response(200, content=_frames(), headers={"content-type": "text/event-stream"}))
    reply = await api.create_chat("Build a landing page")
    assert reply.stream is not None and reply.stream.replayable
    await reply.stream.aclose()
    await api.aclose()
