"""In-memory slide store keyed by agent session id.

Slots are permanent slide identities: deleting a slide never renumbers the
others, so a deck may have gaps (1, 3, 4 after deleting slot 2). Every mutating
operation gets-or-creates the session's presentation and bumps ``updated_at``.

The store assumes mutations for one session arrive sequentially (the agent issues
one tool call at a time within a turn). None of the operations await, so under a
single asyncio event loop each one runs to completion without interleaving.
"""

import logging
from collections import OrderedDict

from slidefox.core.models import Presentation, Slide, SlideContent, SlideStatus

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class SlideStore:
    """Mutable per-session registry of slides."""

    def __init__(self, max_sessions: int | None = None):
        """
        Args:
            max_sessions: Upper bound on stored presentations. When exceeded the
                least recently used presentation is evicted. ``None`` keeps
                presentations for the lifetime of the process.
        """
        self._presentations: OrderedDict[str, Presentation] = OrderedDict()
        self._max_sessions = max_sessions

    def __len__(self) -> int:
        return len(self._presentations)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._presentations

    def get_presentation(self, session_id: str) -> Presentation | None:
        """Get presentation state for a session."""
        presentation = self._presentations.get(session_id)
        if presentation is not None:
            self._presentations.move_to_end(session_id)
        return presentation

    def get_or_create_presentation(self, session_id: str, style: str = "auto") -> Presentation:
        presentation = self.get_presentation(session_id)
        if presentation is None:
            presentation = Presentation(session_id=session_id, style=style)
            self._presentations[session_id] = presentation
            logger.info(f"🆕 Presentation created for session {session_id}")
            self._evict()
        return presentation

    def _evict(self) -> None:
        if self._max_sessions is None:
            return
        while len(self._presentations) > self._max_sessions:
            evicted, _ = self._presentations.popitem(last=False)
            logger.info(f"🧹 Evicted presentation for session {evicted}")

    def add_slide(self, session_id: str, slot: int, content: SlideContent) -> Presentation:
        """Add a slide at ``slot``, replacing any slide already there."""
        presentation = self.get_or_create_presentation(session_id)
        slide = Slide(slot=slot, content=content)

        for index, existing in enumerate(presentation.slides):
            if existing.slot == slot:
                presentation.slides[index] = slide
                break
        else:
            presentation.slides.append(slide)
            presentation.sort_slides()

        presentation.touch()
        return presentation

    def update_slide(self, session_id: str, slot: int, content: SlideContent) -> Presentation:
        """Replace the content of an existing slide.

        A missing slot is a silent no-op; callers that need a hard failure must
        check for the slide themselves.
        """
        presentation = self.get_or_create_presentation(session_id)
        slide = presentation.find_slide(slot)

        if slide is not None:
            slide.content = content
            # Content changed, so the old image is stale
            slide.status = "pending"
            slide.image_url = None
            slide.image_tool_call_id = None
            presentation.touch()

        return presentation

    def delete_slide(self, session_id: str, slot: int) -> Presentation:
        """Delete the slide at ``slot``. Remaining slides keep their slots."""
        presentation = self.get_or_create_presentation(session_id)
        slide = presentation.find_slide(slot)

        if slide is not None:
            presentation.slides.remove(slide)
            presentation.touch()

        return presentation

    def reorder_slide(self, session_id: str, from_slot: int, to_slot: int) -> Presentation:
        """Swap two slides' slots, or move a slide into an empty slot.

        Content and image stay with their slide; only the slot label moves.
        """
        presentation = self.get_or_create_presentation(session_id)
        from_slide = presentation.find_slide(from_slot)
        to_slide = presentation.find_slide(to_slot)

        if from_slide is None:
            return presentation

        from_slide.slot = to_slot
        if to_slide is not None and to_slide is not from_slide:
            to_slide.slot = from_slot

        presentation.sort_slides()
        presentation.touch()
        return presentation

    def set_slide_status(self, session_id: str, slot: int, status: SlideStatus) -> Presentation:
        presentation = self.get_or_create_presentation(session_id)
        slide = presentation.find_slide(slot)

        if slide is not None:
            slide.status = status
            presentation.touch()

        return presentation

    def set_slide_image(
        self, session_id: str, slot: int, image_url: str, tool_call_id: str | None = None
    ) -> Presentation:
        """Link a generated image to a slot. Marks the slide done."""
        presentation = self.get_or_create_presentation(session_id)
        slide = presentation.find_slide(slot)

        if slide is not None:
            slide.image_url = image_url
            slide.image_tool_call_id = tool_call_id
            slide.status = "done"
            presentation.touch()

        return presentation

    def update_presentation(
        self, session_id: str, title: str | None = None, style: str | None = None
    ) -> Presentation:
        """Update presentation metadata."""
        presentation = self.get_or_create_presentation(session_id)

        if title:
            presentation.title = title
        if style:
            presentation.style = style
        presentation.touch()

        return presentation

    def get_next_slot(self, session_id: str) -> int:
        """Suggest the next free slot: one past the highest slot in use."""
        presentation = self._presentations.get(session_id)
        if presentation is None or not presentation.slides:
            return 1
        return max(slide.slot for slide in presentation.slides) + 1

    def clear_presentation(self, session_id: str) -> None:
        self._presentations.pop(session_id, None)
