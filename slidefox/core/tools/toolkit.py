"""Dispatch of agent tool calls to the slide tools."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Type

from pydantic import ValidationError

from slidefox.core.tools.base_tool import BaseTool, ToolContext, format_validation_error

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletionFunctionToolParam

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class SlideToolkit:
    """Named set of tools that validate arguments before touching the store."""

    def __init__(self, tools: list[Type[BaseTool]]):
        self.tools: dict[str, Type[BaseTool]] = {tool.tool_name: tool for tool in tools}

    @property
    def names(self) -> list[str]:
        return list(self.tools)

    def function_schemas(self) -> list[ChatCompletionFunctionToolParam]:
        return [tool.function_schema() for tool in self.tools.values()]

    async def handle(self, name: str, args: Any, context: ToolContext) -> dict[str, Any]:
        """Run one tool call. Bad input yields ``{"success": False, "error": ...}``."""
        tool_class = self.tools.get(name)
        if tool_class is None:
            return BaseTool.failure(f"Unknown tool: {name}")

        try:
            tool = tool_class.model_validate(args if args is not None else {})
        except ValidationError as e:
            error = format_validation_error(e)
            logger.warning(f"⚠️ Rejected {name} call for session {context.session_id}: {error}")
            return tool_class.failure(error)

        return await tool(context)

    def bind(self, context: ToolContext) -> dict[str, ToolHandler]:
        """Handlers for one session, keyed by tool name."""

        def make_handler(name: str) -> ToolHandler:
            async def handler(args: dict[str, Any]) -> dict[str, Any]:
                return await self.handle(name, args, context)

            return handler

        return {name: make_handler(name) for name in self.tools}
