"""Models for presentation slide state."""

import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SlideType = Literal["title", "content", "data", "quote", "section", "conclusion"]
SlideStatus = Literal["pending", "generating", "done", "error"]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SlideContent(CamelModel):
    """Structured text content of a single slide."""

    headline: str = Field(min_length=1, description="Slide headline")
    body: list[str] | None = Field(default=None, description="Ordered body lines or bullet points")
    slide_type: SlideType = Field(default="content", description="Slide type (title, content, data, quote, ...)")


class Slide(CamelModel):
    """A slide at a permanent slot position."""

    slot: int = Field(gt=0, description="Permanent slot number of the slide")
    content: SlideContent
    image_url: str | None = Field(default=None, description="Generated image URL")
    image_tool_call_id: str | None = Field(default=None, description="Tool call that produced the image")
    status: SlideStatus = "pending"


class Presentation(CamelModel):
    """Slide set owned by one agent session."""

    session_id: str
    title: str = "New Presentation"
    style: str = "auto"
    slides: list[Slide] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)
    # Set by the presentation query endpoint only
    exists: bool | None = None

    def find_slide(self, slot: int) -> Slide | None:
        for slide in self.slides:
            if slide.slot == slot:
                return slide
        return None

    def sort_slides(self) -> None:
        self.slides.sort(key=lambda s: s.slot)

    def touch(self) -> None:
        self.updated_at = now_ms()

    def get_slide_count(self) -> int:
        """Get the total number of slides."""
        return len(self.slides)

    def get_slides_summary(self) -> str:
        """Get a summary of all slides for LLM context."""
        if not self.slides:
            return "No slides created yet."
        summary = []
        for slide in self.slides:
            summary.append(f"Slide {slide.slot}: {slide.content.headline} ({slide.content.slide_type}, {slide.status})")
        return "\n".join(summary)


class LocalPresentation(CamelModel):
    """Entry of the local session history list."""

    session_id: str
    title: str
    created_at: int = Field(default_factory=now_ms)
