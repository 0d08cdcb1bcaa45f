"""Client for the remote agent runtime.

The runtime owns agent sessions. Triggering an action on a session streams
events back as server-sent events: text deltas, tool calls, generated files and
structured objects. Tools the runtime cannot run itself arrive as
``tool-request`` events; they are executed here and their results posted back
so the agent turn can continue.
"""

import codecs
import json
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

DONE_SENTINEL = "[DONE]"


class AgentRuntimeError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(f"Agent runtime error {status}: {message}")
        self.status = status
        self.message = message


async def iter_sse_data(content: aiohttp.StreamReader) -> AsyncGenerator[str, None]:
    """Yield the ``data:`` payloads of a server-sent-event stream."""
    buffer = ""
    decoder = codecs.getincrementaldecoder("utf-8")()
    async for chunk in content.iter_any():
        if not chunk:
            continue

        buffer = (buffer + decoder.decode(chunk)).replace("\r\n", "\n")

        # Process complete SSE events
        while "\n\n" in buffer:
            event, buffer = buffer.split("\n\n", 1)
            data_lines = [line[5:].lstrip(" ") for line in event.split("\n") if line.startswith("data:")]
            if data_lines:
                yield "\n".join(data_lines)


def to_sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


def sse_done() -> str:
    return f"data: {DONE_SENTINEL}\n\n"


class AgentRuntimeClient:
    """aiohttp client for agent sessions."""

    def __init__(self, base_url: str, api_key: str = "", request_timeout: int = 300):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._session = aiohttp.ClientSession(timeout=timeout, headers=headers)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _json_request(self, method: str, path: str, payload: dict | None = None) -> dict:
        session = await self._get_session()
        async with session.request(method, f"{self.base_url}{path}", json=payload) as response:
            if response.status >= 400:
                raise AgentRuntimeError(response.status, await response.text())
            return await response.json()

    async def create_session(self, agent_id: str, session_input: dict[str, Any]) -> str:
        data = await self._json_request("POST", "/agent-sessions", {"agentId": agent_id, "input": session_input})
        session_id = data["sessionId"]
        logger.info(f"🆕 Agent session created: {session_id}")
        return session_id

    async def get_messages(self, session_id: str) -> list[dict[str, Any]]:
        """Raw message history of a session. Expired sessions have none."""
        data = await self._json_request("GET", f"/agent-sessions/{session_id}/messages")
        if data.get("status") == "expired":
            logger.info(f"Session {session_id} has expired")
            return []
        return data.get("messages") or []

    async def submit_tool_result(self, session_id: str, tool_call_id: str, result: dict[str, Any]) -> None:
        await self._json_request(
            "POST",
            f"/agent-sessions/{session_id}/tool-results",
            {"toolCallId": tool_call_id, "result": result},
        )

    async def trigger(
        self,
        session_id: str,
        trigger_name: str,
        trigger_input: dict[str, Any] | None = None,
        tool_handlers: dict[str, ToolHandler] | None = None,
        tool_schemas: list[dict[str, Any]] | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Trigger an action and yield the streamed events.

        Closing the generator aborts the underlying request.

        Raises:
            AgentRuntimeError: If the runtime rejects the trigger
        """
        session = await self._get_session()
        url = f"{self.base_url}/agent-sessions/{session_id}/trigger"
        payload = {"triggerName": trigger_name, "input": trigger_input or {}}
        if tool_schemas:
            payload["tools"] = tool_schemas

        logger.info(f"▶️ Trigger {trigger_name!r} on session {session_id}")

        async with session.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json", "Accept": "text/event-stream"},
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                logger.error(f"API error {response.status}: {error_text}")
                raise AgentRuntimeError(response.status, error_text)

            async for data in iter_sse_data(response.content):
                if data == DONE_SENTINEL:
                    logger.info("Stream completed")
                    return

                try:
                    event = json.loads(data)
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to parse JSON: {e}")
                    continue
                if not isinstance(event, dict):
                    continue

                if event.get("type") == "tool-request":
                    await self._run_tool(session_id, event, tool_handlers or {})

                yield event

    async def _run_tool(self, session_id: str, event: dict[str, Any], tool_handlers: dict[str, ToolHandler]) -> None:
        tool_name = event.get("toolName", "")
        tool_call_id = event.get("toolCallId", "")
        handler = tool_handlers.get(tool_name)
        if handler is None:
            logger.debug(f"No local handler for tool {tool_name!r}")
            return

        args = event.get("args")
        result = await handler(args if isinstance(args, dict) else {})
        logger.info(f"🔧 {tool_name} -> success={result.get('success')}")
        await self.submit_tool_result(session_id, tool_call_id, result)
