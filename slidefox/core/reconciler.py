"""Derive the ordered slide list shown in the gallery.

The slide list is recomputed from scratch on every change to the message
history. Two sources feed it:

1. The slide store snapshot (``Presentation`` with ``exists=True``). When present
   it decides which slots exist, their content and their status, including the
   case of an empty deck.
2. The message history alone, used until the first snapshot arrives. Slots come
   from ``# SLOT: <n>`` directives at the start of image generation prompts and
   from the most recent structured deck response.

Images found in the history are linked to slots through the tool call that
produced them. Only the most recent image call for a slot counts: an image from
an earlier call for the same slot is stale once the slot has been asked for a
new one. A snapshot slide's status is kept unless an image from that latest call
is attached. When a snapshot is present, images whose tool call has no slot
directive fall back to arrival order (the Nth distinct image belongs to slot N),
but only for pending snapshot slides without an image or any directive call.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from slidefox.core.messages import ChatMessage, FilePart, ObjectPart, ToolCallPart, ToolCallStatus, iter_parts
from slidefox.core.models import Presentation, Slide, SlideContent, SlideStatus

logger = logging.getLogger(__name__)

IMAGE_TOOL_NAME = "generate_image"

STREAMING_REFETCH_DELAY = 1.0
SETTLED_REFETCH_DELAY = 0.1

# Only recognized as the very first characters of the prompt
_SLOT_DIRECTIVE = re.compile(r"^#\s*SLOT:\s*(\d+)", re.IGNORECASE)
_SLIDE_TYPES = {"title", "content", "data", "quote", "section", "conclusion"}


def parse_slot_directive(prompt: Any) -> int | None:
    """Read the slot from a leading ``# SLOT: <n>`` line of an image prompt."""
    if not isinstance(prompt, str):
        return None
    match = _SLOT_DIRECTIVE.match(prompt)
    if match is None:
        return None
    slot = int(match.group(1))
    return slot if slot > 0 else None


def get_slide_status(slot: int, has_image: bool, tool_statuses: dict[int, ToolCallStatus]) -> SlideStatus:
    if has_image:
        return "done"
    status = tool_statuses.get(slot)
    if status == "running":
        return "generating"
    if status == "error":
        return "error"
    return "pending"


@dataclass
class ImageIndex:
    """Image generation calls and generated images found in a message history."""

    slot_by_tool_call: dict[str, int] = field(default_factory=dict)
    # Most recent image call per slot, and its status
    latest_call_by_slot: dict[int, str] = field(default_factory=dict)
    tool_status_by_slot: dict[int, ToolCallStatus] = field(default_factory=dict)
    # slot -> (url, tool call id) of the latest call for the slot
    images_by_slot: dict[int, tuple[str, str]] = field(default_factory=dict)
    # slot -> (url, tool call id), resolved by arrival order
    positional_images: dict[int, tuple[str, str]] = field(default_factory=dict)
    images_by_tool_call: dict[str, str] = field(default_factory=dict)


def index_images(messages: list[ChatMessage], image_tool_name: str = IMAGE_TOOL_NAME) -> ImageIndex:
    index = ImageIndex()

    for call in iter_parts(messages, ToolCallPart):
        if call.tool_name != image_tool_name:
            continue
        slot = parse_slot_directive(call.args.get("prompt"))
        if slot is None:
            logger.debug(f"Image call {call.tool_call_id} has no slot directive, it cannot be placed by slot")
            continue
        index.slot_by_tool_call[call.tool_call_id] = slot
        index.latest_call_by_slot[slot] = call.tool_call_id
        index.tool_status_by_slot[slot] = call.status

    seen: set[str] = set()
    for part in iter_parts(messages, FilePart):
        if not part.is_image or not part.tool_call_id:
            continue
        slot = index.slot_by_tool_call.get(part.tool_call_id)
        if slot is not None and index.latest_call_by_slot[slot] == part.tool_call_id:
            index.images_by_slot.setdefault(slot, (part.url, part.tool_call_id))
        if part.tool_call_id in seen:
            continue
        seen.add(part.tool_call_id)
        index.images_by_tool_call[part.tool_call_id] = part.url
        if slot is None:
            index.positional_images[len(seen)] = (part.url, part.tool_call_id)

    return index


def latest_deck_slides(messages: list[ChatMessage]) -> list[dict[str, Any]] | None:
    """Slide entries of the most recent structured deck response, partial or final."""
    for part in reversed(iter_parts(messages, ObjectPart)):
        payload = part.payload
        if isinstance(payload, dict) and isinstance(payload.get("slides"), list):
            return payload["slides"]
    return None


def _content_from_entry(slot: int, entry: dict[str, Any]) -> SlideContent:
    headline = entry.get("headline")
    if not isinstance(headline, str) or not headline.strip():
        headline = f"Slide {slot}"
    slide_type = entry.get("slideType")
    if slide_type not in _SLIDE_TYPES:
        slide_type = "content"
    body = entry.get("body")
    if not isinstance(body, list):
        body = None
    else:
        body = [line for line in body if isinstance(line, str)]
    return SlideContent(headline=headline, body=body, slide_type=slide_type)


def _entry_slot(entry: Any) -> int | None:
    if not isinstance(entry, dict):
        return None
    slot = entry.get("slot")
    if isinstance(slot, bool) or not isinstance(slot, int) or slot <= 0:
        return None
    return slot


def _placeholder(slot: int) -> SlideContent:
    return SlideContent(headline=f"Slide {slot}", slide_type="content")


def _positional_image(stored: Slide, index: ImageIndex, linked_calls: set[str]) -> tuple[str, str] | None:
    if stored.image_url is not None or stored.status != "pending":
        return None
    if stored.slot in index.latest_call_by_slot:
        return None
    image = index.positional_images.get(stored.slot)
    if image is None or image[1] in linked_calls:
        return None
    return image


def _from_snapshot(snapshot: Presentation, index: ImageIndex) -> list[Slide]:
    linked_calls = {s.image_tool_call_id for s in snapshot.slides if s.image_tool_call_id}
    slides = []
    for stored in snapshot.slides:
        slide = stored.model_copy(deep=True)
        latest = index.images_by_slot.get(stored.slot)
        linked = index.images_by_tool_call.get(stored.image_tool_call_id or "")
        positional = _positional_image(stored, index, linked_calls)
        if latest is not None:
            slide.image_url, slide.image_tool_call_id = latest
            slide.status = "done"
        elif linked is not None:
            # Fresher URL for the image the store already holds; status stays
            slide.image_url = linked
        elif positional is not None:
            slide.image_url, slide.image_tool_call_id = positional
            slide.status = "done"
        slides.append(slide)
    slides.sort(key=lambda s: s.slot)
    return slides


def _from_history(messages: list[ChatMessage], index: ImageIndex) -> list[Slide]:
    deck = latest_deck_slides(messages)

    if deck is not None:
        contents: dict[int, SlideContent] = {}
        for entry in deck:
            slot = _entry_slot(entry)
            if slot is not None:
                contents[slot] = _content_from_entry(slot, entry)
    else:
        slots = set(index.tool_status_by_slot) | set(index.images_by_slot)
        contents = {slot: _placeholder(slot) for slot in slots}

    slides = []
    for slot in sorted(contents):
        url, tool_call_id = index.images_by_slot.get(slot, (None, None))
        slides.append(
            Slide(
                slot=slot,
                content=contents[slot],
                image_url=url,
                image_tool_call_id=tool_call_id,
                status=get_slide_status(slot, url is not None, index.tool_status_by_slot),
            )
        )
    return slides


def reconcile_slides(
    messages: list[ChatMessage],
    snapshot: Presentation | None = None,
    image_tool_name: str = IMAGE_TOOL_NAME,
) -> list[Slide]:
    """Compute the ordered slide list for a session.

    Args:
        messages: Full message history in arrival order
        snapshot: Slide store state for the session, if it has been fetched
        image_tool_name: Name of the agent's image generation tool

    Returns:
        Slides ordered by slot. Never raises on malformed agent output.
    """
    index = index_images(messages, image_tool_name)
    if snapshot is not None and snapshot.exists:
        return _from_snapshot(snapshot, index)
    return _from_history(messages, index)


def snapshot_refetch_delay(
    messages: list[ChatMessage],
    streaming_delay: float = STREAMING_REFETCH_DELAY,
    settled_delay: float = SETTLED_REFETCH_DELAY,
) -> float:
    """Debounce delay before refetching the store snapshot."""
    if any(message.status == "streaming" for message in messages):
        return streaming_delay
    return settled_delay
