"""Tests for the inbound event queue and its cursor."""

from trading_e2e import InboundQueue


def filled(*types):
    queue = InboundQueue()
    for event_type in types:
        queue.push({"type": event_type})
    return queue


class TestInboundQueue:

    def test_push_keeps_arrival_order(self):
        queue = filled("a", "b", "c")
        assert [e["type"] for e in queue.events()] == ["a", "b", "c"]
        assert len(queue) == 3
        assert queue.cursor == 0

    def test_receipt_times_strictly_increase(self):
        queue = filled("a", "b", "c", "d")
        times = [received.received_at for received in queue.received()]
        assert times == sorted(times)
        assert len(set(times)) == len(times)

    def test_peek_is_relative_to_cursor(self):
        queue = filled("a", "b", "c")
        queue.advance(1)
        assert queue.peek(0) == {"type": "b"}
        assert queue.peek(1) == {"type": "c"}
        assert queue.peek(2) is None
        assert queue.peek(-1) is None

    def test_peek_window_does_not_consume(self):
        queue = filled("a", "b", "c")
        assert [e["type"] for e in queue.peek_window(2)] == ["a", "b"]
        assert queue.cursor == 0
        assert queue.unconsumed_count() == 3

    def test_advance_clamps_to_length(self):
        queue = filled("a", "b")
        assert queue.advance(5) == 2
        assert queue.unconsumed_count() == 0

    def test_rewind_keeps_events(self):
        queue = filled("a", "b")
        queue.advance(2)
        queue.rewind()
        assert queue.cursor == 0
        assert len(queue) == 2

    def test_splice_consumed_removes_prefix(self):
        queue = filled("a", "b", "c")
        queue.advance(2)
        removed = queue.splice_consumed()
        assert [e["type"] for e in removed] == ["a", "b"]
        assert queue.events() == [{"type": "c"}]
        assert queue.cursor == 0

    def test_take_keeps_cursor_on_same_event(self):
        queue = filled("a", "b", "c")
        queue.advance(2)
        assert queue.take(0) == {"type": "a"}
        assert queue.cursor == 1
        assert queue.peek(0) == {"type": "c"}

    def test_clear_is_idempotent(self):
        queue = filled("a", "b")
        queue.advance(1)
        assert len(queue.clear()) == 2
        assert queue.clear() == []
        assert queue.cursor == 0
