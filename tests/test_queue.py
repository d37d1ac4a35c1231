import pytest

from aiosyncroom.models import QueueEntry
from aiosyncroom.server.errors import QueueFullError, QueueIndexError
from aiosyncroom.server.queue import MAX_QUEUE_LENGTH, MediaQueue

from conftest import make_item


def entry(entry_id: str) -> QueueEntry:
    return QueueEntry(entry_id=entry_id, item=make_item(entry_id, entry_id), added_by="alice")


def ids(entries: list[QueueEntry]) -> list[str]:
    return [e.entry_id for e in entries]


def test_reorder_moves_single_entry() -> None:
    queue = MediaQueue([entry("A"), entry("B"), entry("C"), entry("D")])

    result = queue.reorder(0, 2)

    assert ids(result) == ["B", "C", "A", "D"]
    assert ids(queue.entries) == ["B", "C", "A", "D"]


def test_reorder_out_of_range_changes_nothing() -> None:
    queue = MediaQueue([entry("A"), entry("B")])

    with pytest.raises(QueueIndexError):
        queue.reorder(0, 2)
    with pytest.raises(QueueIndexError):
        queue.reorder(5, 0)

    assert ids(queue.entries) == ["A", "B"]


def test_enqueue_is_bounded() -> None:
    queue = MediaQueue()
    for index in range(MAX_QUEUE_LENGTH):
        queue.enqueue(entry(f"e{index}"))

    with pytest.raises(QueueFullError, match="max 50 items"):
        queue.enqueue(entry("overflow"))

    assert len(queue) == MAX_QUEUE_LENGTH
    assert not queue.contains("overflow")


def test_restored_queue_is_truncated() -> None:
    queue = MediaQueue(entry(f"e{index}") for index in range(MAX_QUEUE_LENGTH + 5))

    assert len(queue) == MAX_QUEUE_LENGTH
    assert queue.entries[-1].entry_id == f"e{MAX_QUEUE_LENGTH - 1}"


def test_dequeue_front_on_empty_queue() -> None:
    assert MediaQueue().dequeue_front() is None


def test_dequeue_front_returns_first_entry() -> None:
    queue = MediaQueue([entry("A"), entry("B")])

    first = queue.dequeue_front()

    assert first is not None
    assert first.entry_id == "A"
    assert ids(queue.entries) == ["B"]


def test_remove_unknown_entry_is_a_noop() -> None:
    queue = MediaQueue([entry("A")])

    assert ids(queue.remove("missing")) == ["A"]
    assert ids(queue.remove("A")) == []


def test_take_returns_removed_entry() -> None:
    queue = MediaQueue([entry("A"), entry("B"), entry("C")])

    taken = queue.take("B")

    assert taken is not None
    assert taken.entry_id == "B"
    assert ids(queue.entries) == ["A", "C"]
    assert queue.take("B") is None


def test_entries_is_a_copy() -> None:
    queue = MediaQueue([entry("A")])

    queue.entries.clear()

    assert len(queue) == 1
