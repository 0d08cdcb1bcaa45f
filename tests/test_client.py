"""Tests for the chat client and live deck tracking."""

import asyncio

import pytest

from slidefox.client import DeckTracker, SlidefoxError, classify_error
from slidefox.core.messages import ToolCallPart, iter_parts
from slidefox.core.models import Presentation


class FakeClient:
    """SlidefoxClient double with scripted trigger events and store snapshots."""

    def __init__(self, events=None, snapshot=None, error=None, block=False):
        self.events = events or []
        self.snapshot = snapshot
        self.error = error
        self.block = block
        self.blocked = asyncio.Event()
        self.fetches = 0
        self.triggers = []

    async def stream_trigger(self, session_id, trigger_name, trigger_input):
        self.triggers.append((session_id, trigger_name, trigger_input))
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error
        if self.block:
            self.blocked.set()
            await asyncio.Event().wait()

    async def fetch_presentation(self, session_id):
        self.fetches += 1
        if self.snapshot is None:
            return Presentation(session_id=session_id, exists=False)
        return self.snapshot


def deck_events():
    return [
        {"type": "start", "messageId": "m1"},
        {
            "type": "object",
            "typeName": "deck",
            "status": "done",
            "object": {"slides": [{"slot": 1, "headline": "Intro"}, {"slot": 2, "headline": "Data"}]},
        },
        {
            "type": "tool-call",
            "toolCallId": "c2",
            "toolName": "generate_image",
            "args": {"prompt": "# SLOT: 2\nchart"},
            "status": "running",
        },
        {"type": "file", "url": "https://img/2.png", "mediaType": "image/png", "toolCallId": "c2"},
        {"type": "tool-result", "toolCallId": "c2"},
        {"type": "text-delta", "delta": "Your deck is ready."},
        {"type": "finish"},
    ]


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize("message", ["Rate limit exceeded", "429: slow down", "Too Many Requests"])
    def test_rate_limit(self, message):
        assert classify_error(message).kind == "rate_limit"

    def test_generic_hides_details(self):
        error = classify_error("KeyError: 'slides' at line 42")

        assert error.kind == "generic"
        assert "KeyError" not in error.message


class TestDeckTracker:
    """Tests for DeckTracker."""

    @pytest.mark.asyncio
    async def test_send_builds_history_and_slides(self):
        client = FakeClient(events=deck_events())
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)

        await tracker.send("Make a deck")
        await tracker.wait_for_refetch()

        assert client.triggers == [("s1", "user-message", {"USER_MESSAGE": "Make a deck"})]
        assert [m.role for m in tracker.messages] == ["user", "agent"]
        assert tracker.messages[-1].text == "Your deck is ready."
        assert [(s.slot, s.status) for s in tracker.slides] == [(1, "pending"), (2, "done")]
        assert client.fetches >= 1
        assert tracker.error is None
        await tracker.close()

    @pytest.mark.asyncio
    async def test_snapshot_takes_over(self):
        snapshot = Presentation(session_id="s1", slides=[], exists=True)
        client = FakeClient(events=deck_events(), snapshot=snapshot)
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)

        await tracker.send("Make a deck")
        await tracker.wait_for_refetch()

        assert tracker.snapshot is snapshot
        assert tracker.slides == []
        await tracker.close()

    @pytest.mark.asyncio
    async def test_error_event_sets_banner(self):
        client = FakeClient(events=[{"type": "text-delta", "delta": "..."}, {"type": "error", "message": "Rate limit exceeded"}])
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)

        await tracker.send("Hi")

        assert tracker.error.kind == "rate_limit"
        assert all(m.status == "done" for m in tracker.messages)
        await tracker.close()

    @pytest.mark.asyncio
    async def test_request_failure_sets_banner(self):
        client = FakeClient(error=SlidefoxError(500, "500: Internal Server Error"))
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)

        await tracker.send("Hi")

        assert tracker.error.kind == "generic"
        await tracker.close()

    @pytest.mark.asyncio
    async def test_next_send_clears_error(self):
        client = FakeClient(events=[{"type": "error", "message": "boom"}])
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)
        await tracker.send("Hi")
        assert tracker.error is not None

        client.events = [{"type": "text-delta", "delta": "ok"}, {"type": "finish"}]
        await tracker.send("Again")

        assert tracker.error is None
        await tracker.close()

    @pytest.mark.asyncio
    async def test_cancel_keeps_partial_reply(self):
        client = FakeClient(
            events=[
                {"type": "text-delta", "delta": "Generating"},
                {
                    "type": "tool-call",
                    "toolCallId": "c1",
                    "toolName": "generate_image",
                    "args": {"prompt": "# SLOT: 1\nx"},
                    "status": "running",
                },
            ],
            block=True,
        )
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)

        task = asyncio.create_task(tracker.send("Hi"))
        await client.blocked.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert tracker.messages[-1].text == "Generating"
        assert tracker.messages[-1].status == "done"
        assert iter_parts(tracker.messages, ToolCallPart)[0].status == "cancelled"
        assert tracker.slides[0].status == "pending"
        await tracker.close()

    @pytest.mark.asyncio
    async def test_malformed_event_does_not_break_turn(self):
        client = FakeClient(
            events=[
                {"type": "text-delta", "delta": "Working"},
                {"type": "text-delta", "delta": None},
                {"type": "text-delta", "delta": " on it"},
                {"type": "finish"},
            ]
        )
        tracker = DeckTracker(client, "s1", streaming_delay=0, settled_delay=0)

        await tracker.send("Hi")

        assert tracker.messages[-1].text == "Working on it"
        assert tracker.messages[-1].status == "done"
        assert tracker.error is None
        await tracker.close()
