"""Tests for the in-memory slide store."""

import pytest

from slidefox.core.models import SlideContent
from slidefox.core.store import SlideStore

SESSION = "session-1"


def content(headline: str, slide_type: str = "content") -> SlideContent:
    return SlideContent(headline=headline, slide_type=slide_type)


@pytest.fixture
def store():
    return SlideStore()


class TestAddSlide:
    """Tests for add_slide."""

    def test_add_creates_presentation(self, store):
        presentation = store.add_slide(SESSION, 1, content("Intro", "title"))

        assert presentation.session_id == SESSION
        assert presentation.get_slide_count() == 1
        assert presentation.slides[0].status == "pending"
        assert store.get_presentation(SESSION) is presentation

    def test_add_keeps_slides_sorted(self, store):
        store.add_slide(SESSION, 3, content("Three"))
        store.add_slide(SESSION, 1, content("One"))
        presentation = store.add_slide(SESSION, 2, content("Two"))

        assert [s.slot for s in presentation.slides] == [1, 2, 3]

    def test_add_to_occupied_slot_replaces(self, store):
        store.add_slide(SESSION, 2, content("First"))
        store.set_slide_image(SESSION, 2, "https://img/2.png", "call-2")

        presentation = store.add_slide(SESSION, 2, content("Second"))

        assert presentation.get_slide_count() == 1
        slide = presentation.find_slide(2)
        assert slide.content.headline == "Second"
        assert slide.status == "pending"
        assert slide.image_url is None
        assert slide.image_tool_call_id is None

    def test_add_bumps_updated_at(self, store):
        presentation = store.get_or_create_presentation(SESSION)
        presentation.updated_at = 0

        store.add_slide(SESSION, 1, content("Intro"))

        assert presentation.updated_at > 0


class TestUpdateSlide:
    """Tests for update_slide."""

    def test_update_resets_status_and_image(self, store):
        store.add_slide(SESSION, 1, content("Old"))
        store.set_slide_image(SESSION, 1, "https://img/1.png", "call-1")

        presentation = store.update_slide(SESSION, 1, content("New"))

        slide = presentation.find_slide(1)
        assert slide.content.headline == "New"
        assert slide.status == "pending"
        assert slide.image_url is None
        assert slide.image_tool_call_id is None

    def test_update_missing_slot_is_noop(self, store):
        store.add_slide(SESSION, 1, content("Only"))
        before = store.get_presentation(SESSION).model_dump()

        store.update_slide(SESSION, 5, content("Ghost"))
        store.update_slide(SESSION, 5, content("Ghost"))

        assert store.get_presentation(SESSION).model_dump() == before


class TestDeleteSlide:
    """Tests for delete_slide."""

    def test_delete_leaves_gap(self, store):
        for slot in (1, 2, 3):
            store.add_slide(SESSION, slot, content(f"Slide {slot}"))

        presentation = store.delete_slide(SESSION, 2)

        assert [s.slot for s in presentation.slides] == [1, 3]

    def test_delete_missing_slot(self, store):
        store.add_slide(SESSION, 1, content("Only"))

        presentation = store.delete_slide(SESSION, 9)

        assert presentation.get_slide_count() == 1


class TestReorderSlide:
    """Tests for reorder_slide."""

    def test_swap_occupied_slots(self, store):
        store.add_slide(SESSION, 1, content("A"))
        store.add_slide(SESSION, 2, content("B"))
        store.set_slide_image(SESSION, 1, "https://img/a.png", "call-a")

        presentation = store.reorder_slide(SESSION, 1, 2)

        assert [s.slot for s in presentation.slides] == [1, 2]
        assert presentation.find_slide(1).content.headline == "B"
        assert presentation.find_slide(2).content.headline == "A"
        assert presentation.find_slide(2).image_url == "https://img/a.png"

    def test_swap_round_trip_restores_mapping(self, store):
        store.add_slide(SESSION, 1, content("A"))
        store.add_slide(SESSION, 4, content("B"))
        original = {s.slot: s.content.headline for s in store.get_presentation(SESSION).slides}

        store.reorder_slide(SESSION, 1, 4)
        presentation = store.reorder_slide(SESSION, 4, 1)

        assert {s.slot: s.content.headline for s in presentation.slides} == original

    def test_move_into_empty_slot(self, store):
        store.add_slide(SESSION, 1, content("A"))
        store.add_slide(SESSION, 2, content("B"))

        presentation = store.reorder_slide(SESSION, 1, 5)

        assert [(s.slot, s.content.headline) for s in presentation.slides] == [(2, "B"), (5, "A")]

    def test_move_from_empty_slot_is_noop(self, store):
        store.add_slide(SESSION, 2, content("B"))

        presentation = store.reorder_slide(SESSION, 1, 2)

        assert [(s.slot, s.content.headline) for s in presentation.slides] == [(2, "B")]

    def test_slots_stay_unique(self, store):
        for slot in (1, 2, 3):
            store.add_slide(SESSION, slot, content(f"Slide {slot}"))

        store.reorder_slide(SESSION, 3, 1)
        presentation = store.reorder_slide(SESSION, 2, 3)

        slots = [s.slot for s in presentation.slides]
        assert len(slots) == len(set(slots))


class TestStatusAndImage:
    """Tests for status and image transitions."""

    def test_set_status(self, store):
        store.add_slide(SESSION, 1, content("A"))

        presentation = store.set_slide_status(SESSION, 1, "generating")

        assert presentation.find_slide(1).status == "generating"

    def test_set_image_marks_done(self, store):
        store.add_slide(SESSION, 1, content("A"))

        presentation = store.set_slide_image(SESSION, 1, "https://img/a.png", "call-a")

        slide = presentation.find_slide(1)
        assert slide.status == "done"
        assert slide.image_url == "https://img/a.png"
        assert slide.image_tool_call_id == "call-a"

    def test_update_presentation_metadata(self, store):
        presentation = store.update_presentation(SESSION, title="Climate", style="bold")

        assert presentation.title == "Climate"
        assert presentation.style == "bold"


class TestNextSlot:
    """Tests for get_next_slot."""

    def test_empty_presentation(self, store):
        assert store.get_next_slot("unknown") == 1
        store.get_or_create_presentation(SESSION)
        assert store.get_next_slot(SESSION) == 1

    def test_after_highest_slot(self, store):
        store.add_slide(SESSION, 1, content("A"))
        store.add_slide(SESSION, 4, content("B"))

        assert store.get_next_slot(SESSION) == 5

    def test_never_returns_deleted_interior_slot(self, store):
        for slot in (1, 2, 3):
            store.add_slide(SESSION, slot, content(f"Slide {slot}"))

        store.delete_slide(SESSION, 2)

        assert store.get_next_slot(SESSION) == 4


class TestSessions:
    """Tests for session isolation and eviction."""

    def test_sessions_are_isolated(self, store):
        store.add_slide("a", 1, content("A"))
        store.add_slide("b", 1, content("B"))

        assert store.get_presentation("a").slides[0].content.headline == "A"
        assert store.get_presentation("b").slides[0].content.headline == "B"

    def test_clear_presentation(self, store):
        store.add_slide(SESSION, 1, content("A"))

        store.clear_presentation(SESSION)

        assert store.get_presentation(SESSION) is None
        assert SESSION not in store

    def test_least_recently_used_eviction(self):
        store = SlideStore(max_sessions=2)
        store.add_slide("a", 1, content("A"))
        store.add_slide("b", 1, content("B"))
        store.get_presentation("a")

        store.add_slide("c", 1, content("C"))

        assert len(store) == 2
        assert "b" not in store
        assert "a" in store and "c" in store
