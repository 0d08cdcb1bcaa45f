"""Chat client for the Slidefox API.

``DeckTracker`` keeps one session's message history and slide store snapshot
together and recomputes the slide list on every change. Snapshot refetches are
debounced: slowly while a message is still streaming, almost immediately once
the stream settles.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Literal, Optional

import aiohttp

from slidefox.agent_runtime import DONE_SENTINEL, iter_sse_data
from slidefox.core.history import SessionHistory
from slidefox.core.messages import ChatMessage, MessageAccumulator, parse_messages
from slidefox.core.models import Presentation, Slide
from slidefox.core.reconciler import (
    IMAGE_TOOL_NAME,
    SETTLED_REFETCH_DELAY,
    STREAMING_REFETCH_DELAY,
    reconcile_slides,
    snapshot_refetch_delay,
)
from slidefox.default_definitions import DEFAULT_SESSION_TITLE, USER_MESSAGE_INPUT, USER_MESSAGE_TRIGGER

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

RATE_LIMIT_MESSAGE = "You've reached the usage limit for now. Please wait a while before trying again."
GENERIC_MESSAGE = "Something went wrong. Please try again."


class SlidefoxError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


@dataclass
class ChatError:
    kind: Literal["rate_limit", "generic"]
    message: str


def classify_error(message: str) -> ChatError:
    """Pick the banner for an error without exposing its details."""
    lowered = message.lower()
    if "rate limit" in lowered or "too many requests" in lowered or "429" in lowered:
        return ChatError(kind="rate_limit", message=RATE_LIMIT_MESSAGE)
    return ChatError(kind="generic", message=GENERIC_MESSAGE)


class SlidefoxClient:
    """aiohttp client for the Slidefox HTTP API."""

    def __init__(self, base_url: str, history: Optional[SessionHistory] = None, request_timeout: int = 300):
        self.base_url = base_url.rstrip("/")
        self.history = history
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.request_timeout))
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, **kwargs) -> aiohttp.ClientResponse:
        session = await self._get_session()
        response = await session.request(method, f"{self.base_url}{path}", **kwargs)
        if response.status >= 400:
            text = await response.text()
            response.release()
            raise SlidefoxError(response.status, f"{response.status}: {text}")
        return response

    async def create_session(self, theme: Optional[str] = None) -> str:
        response = await self._request("POST", "/api/sessions", json={"theme": theme})
        session_id = (await response.json())["sessionId"]
        if self.history is not None:
            self.history.save_session(session_id, DEFAULT_SESSION_TITLE)
        return session_id

    async def load_messages(self, session_id: str) -> list[ChatMessage]:
        response = await self._request("GET", f"/api/sessions/{session_id}/messages")
        return parse_messages((await response.json()).get("messages"))

    async def fetch_presentation(self, session_id: str) -> Presentation:
        response = await self._request("GET", "/api/presentation", params={"sessionId": session_id})
        return Presentation.model_validate(await response.json())

    async def stream_trigger(
        self, session_id: str, trigger_name: str, trigger_input: dict[str, Any]
    ) -> AsyncGenerator[dict[str, Any], None]:
        response = await self._request(
            "POST",
            "/api/trigger",
            json={"sessionId": session_id, "triggerName": trigger_name, "input": trigger_input},
            headers={"Accept": "text/event-stream"},
        )
        async with response:
            async for data in iter_sse_data(response.content):
                if data == DONE_SENTINEL:
                    return
                try:
                    event = json.loads(data)
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to parse JSON: {e}")
                    continue
                if isinstance(event, dict):
                    yield event

    async def export_pdf(self, slide_urls: list[str]) -> bytes:
        response = await self._request("POST", "/api/slides/pdf", json={"slideUrls": slide_urls})
        async with response:
            return await response.read()


class DeckTracker:
    """Live slide list of one session."""

    def __init__(
        self,
        client: SlidefoxClient,
        session_id: str,
        messages: Optional[list[ChatMessage]] = None,
        image_tool_name: str = IMAGE_TOOL_NAME,
        streaming_delay: float = STREAMING_REFETCH_DELAY,
        settled_delay: float = SETTLED_REFETCH_DELAY,
    ):
        self.client = client
        self.session_id = session_id
        self.image_tool_name = image_tool_name
        self.streaming_delay = streaming_delay
        self.settled_delay = settled_delay
        self.accumulator = MessageAccumulator(messages)
        self.snapshot: Optional[Presentation] = None
        self.slides: list[Slide] = []
        self.error: Optional[ChatError] = None
        self._refetch_task: Optional[asyncio.Task] = None
        self._recompute()

    @property
    def messages(self) -> list[ChatMessage]:
        return self.accumulator.messages

    def _recompute(self) -> None:
        self.slides = reconcile_slides(self.messages, self.snapshot, self.image_tool_name)

    def schedule_refetch(self) -> None:
        """Restart the debounce timer for the next snapshot refetch."""
        if self._refetch_task is not None and not self._refetch_task.done():
            self._refetch_task.cancel()
        delay = snapshot_refetch_delay(self.messages, self.streaming_delay, self.settled_delay)
        self._refetch_task = asyncio.create_task(self._refetch_after(delay))

    async def _refetch_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            self.snapshot = await self.client.fetch_presentation(self.session_id)
        except (SlidefoxError, aiohttp.ClientError) as e:
            logger.warning(f"⚠️ Could not refresh presentation {self.session_id}: {e}")
            return
        self._recompute()

    async def wait_for_refetch(self) -> None:
        if self._refetch_task is not None:
            await asyncio.gather(self._refetch_task, return_exceptions=True)

    async def send(self, text: str) -> None:
        """Send a user message and fold the agent's streamed reply into the history.

        Cancelling this coroutine stops the turn; the reply keeps what it had
        received so far.
        """
        self.error = None
        self.accumulator.error = None
        self.accumulator.add_user_message(text)
        self._recompute()

        try:
            async for event in self.client.stream_trigger(
                self.session_id, USER_MESSAGE_TRIGGER, {USER_MESSAGE_INPUT: text}
            ):
                self.accumulator.apply(event)
                self._recompute()
                self.schedule_refetch()
        except asyncio.CancelledError:
            self.accumulator.finalize(cancelled=True)
            self._recompute()
            raise
        except (SlidefoxError, aiohttp.ClientError) as e:
            logger.error(f"Trigger failed: {e}")
            self.error = classify_error(str(e))
            self.accumulator.finalize()

        if self.accumulator.error is not None and self.error is None:
            self.error = classify_error(self.accumulator.error)
        self.accumulator.finalize()
        self._recompute()
        self.schedule_refetch()

    async def close(self) -> None:
        if self._refetch_task is not None and not self._refetch_task.done():
            self._refetch_task.cancel()
            await asyncio.gather(self._refetch_task, return_exceptions=True)
