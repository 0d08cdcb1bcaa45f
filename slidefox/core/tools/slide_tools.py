"""Tools the agent uses to edit the slide deck.

Each tool proxies to one slide store operation. Slots are permanent slide ids:
deleting a slide leaves a gap, and new slides should use the ``nextSlot`` hint
from get-presentation.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from pydantic import Field

from slidefox.core.models import SlideContent
from slidefox.core.tools.base_tool import BaseTool, ToolContext

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

Slot = Annotated[int, Field(gt=0, strict=True)]


class GetPresentationTool(BaseTool):
    """Get the current slide deck: every slide with its slot, content and status,
    plus the next free slot number to use for a new slide."""

    tool_name = "get-presentation"

    async def __call__(self, context: ToolContext, **_) -> dict[str, Any]:
        presentation = context.store.get_presentation(context.session_id)
        next_slot = context.store.get_next_slot(context.session_id)

        if presentation is None:
            return {
                "success": True,
                "presentation": None,
                "slides": [],
                "summary": "No slides created yet.",
                "nextSlot": next_slot,
            }

        data = presentation.to_json_dict()
        return {
            "success": True,
            "presentation": data,
            "slides": data["slides"],
            "summary": presentation.get_slides_summary(),
            "nextSlot": next_slot,
        }


class AddSlideTool(BaseTool):
    """Add a slide at a slot. A slide already at that slot is replaced.

    Omit the slot to append after the highest existing slot.
    """

    tool_name = "add-slide"

    slot: Slot | None = Field(default=None, description="Slot number for the slide")
    content: SlideContent = Field(description="Slide content: headline, optional body lines, slide type")

    async def __call__(self, context: ToolContext, **_) -> dict[str, Any]:
        slot = self.slot if self.slot is not None else context.store.get_next_slot(context.session_id)
        presentation = context.store.add_slide(context.session_id, slot, self.content)

        logger.info(
            f"🎨 SLIDE ADDED:\n"
            f"   📊 Slot #{slot}: '{self.content.headline}'\n"
            f"   🎯 Type: {self.content.slide_type}\n"
            f"   📝 Total slides: {presentation.get_slide_count()}\n"
        )

        return {
            "success": True,
            "slot": slot,
            "totalSlides": presentation.get_slide_count(),
            "message": f"Slide {slot} '{self.content.headline}' added",
        }


class UpdateSlideTool(BaseTool):
    """Replace the content of an existing slide. Its image is discarded and must be regenerated."""

    tool_name = "update-slide"

    slot: Slot = Field(description="Slot of the slide to update")
    content: SlideContent = Field(description="New slide content")

    async def __call__(self, context: ToolContext, **_) -> dict[str, Any]:
        presentation = context.store.get_presentation(context.session_id)
        if presentation is None or presentation.find_slide(self.slot) is None:
            return self.failure(f"No slide at slot {self.slot}")

        context.store.update_slide(context.session_id, self.slot, self.content)
        logger.info(f"✏️ Slide {self.slot} updated: '{self.content.headline}'")

        return {
            "success": True,
            "slot": self.slot,
            "message": f"Slide {self.slot} updated",
        }


class DeleteSlideTool(BaseTool):
    """Delete the slide at a slot. Other slides keep their slot numbers."""

    tool_name = "delete-slide"

    slot: Slot = Field(description="Slot of the slide to delete")

    async def __call__(self, context: ToolContext, **_) -> dict[str, Any]:
        before = context.store.get_presentation(context.session_id)
        deleted = before is not None and before.find_slide(self.slot) is not None

        presentation = context.store.delete_slide(context.session_id, self.slot)
        logger.info(f"🗑️ Slide {self.slot} {'deleted' if deleted else 'was already absent'}")

        return {
            "success": True,
            "slot": self.slot,
            "deleted": deleted,
            "totalSlides": presentation.get_slide_count(),
        }


class ReorderSlideTool(BaseTool):
    """Move a slide to another slot. If the target slot is taken the two slides swap slots."""

    tool_name = "reorder-slide"

    from_slot: Slot = Field(description="Current slot of the slide")
    to_slot: Slot = Field(description="Slot to move the slide to")

    async def __call__(self, context: ToolContext, **_) -> dict[str, Any]:
        presentation = context.store.get_presentation(context.session_id)
        if presentation is None or presentation.find_slide(self.from_slot) is None:
            return self.failure(f"No slide at slot {self.from_slot}")

        swapped = self.to_slot != self.from_slot and presentation.find_slide(self.to_slot) is not None
        context.store.reorder_slide(context.session_id, self.from_slot, self.to_slot)
        logger.info(f"🔀 Slide {self.from_slot} -> {self.to_slot}{' (swapped)' if swapped else ''}")

        return {
            "success": True,
            "fromSlot": self.from_slot,
            "toSlot": self.to_slot,
            "swapped": swapped,
        }
