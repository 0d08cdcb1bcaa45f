"""Base class for agent-facing tools."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from openai import pydantic_function_tool
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletionFunctionToolParam

    from slidefox.core.store import SlideStore


@dataclass
class ToolContext:
    """What a tool call runs against: one session of one slide store."""

    session_id: str
    store: SlideStore


def format_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid input")
    return f"{location}: {message}" if location else message


class BaseTool(BaseModel):
    """Tool arguments model. Instances are called to execute the tool."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    tool_name: ClassVar[str] = ""
    description: ClassVar[str] = ""

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        if not cls.tool_name:
            cls.tool_name = cls.__name__.removesuffix("Tool").lower()
        if not cls.__dict__.get("description"):
            cls.description = inspect.getdoc(cls) or ""

    @classmethod
    def function_schema(cls) -> ChatCompletionFunctionToolParam:
        return pydantic_function_tool(cls, name=cls.tool_name, description=cls.description)

    @classmethod
    def failure(cls, error: str) -> dict[str, Any]:
        return {"success": False, "error": error}

    async def __call__(self, context: ToolContext, **_) -> dict[str, Any]:
        raise NotImplementedError
