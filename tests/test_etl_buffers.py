import pytest

from ledgerkit.etl_buffers import (
    BUFFER_OPTIMAL_SIZE,
    AppendBuffer,
    BufferEntry,
    BufferType,
    HeapElem,
    LoadHeap,
    OldestEntryBuffer,
    SortableBuffer,
    get_buffer_by_type,
    get_type_by_buffer,
)


def _reverse(k1, k2, v1, v2):
    return (k2 > k1) - (k2 < k1)


def test_sortable_buffer_sorts_by_key_and_tracks_size():
    buf = SortableBuffer(1000)
    pairs = [(b"c", b"3"), (b"a", b"1"), (b"b", b"22")]
    for k, v in pairs:
        buf.put(k, v)
    assert len(buf) == 3
    assert buf.size == sum(len(k) + len(v) for k, v in pairs)
    assert buf.get(0) == BufferEntry(b"c", b"3")
    buf.sort()
    assert [e.key for e in buf.entries()] == [b"a", b"b", b"c"]
    assert buf.get(1).value == b"22"


def test_sortable_buffer_is_stable_for_duplicate_keys():
    buf = SortableBuffer(1000)
    buf.put(b"k", b"first")
    buf.put(b"a", b"x")
    buf.put(b"k", b"second")
    buf.sort()
    assert [e.value for e in buf.entries()] == [b"x", b"first", b"second"]


def test_sortable_buffer_uses_comparator():
    buf = SortableBuffer(1000, comparator=_reverse)
    for k in (b"a", b"c", b"b"):
        buf.put(k, b"")
    buf.sort()
    assert [e.key for e in buf.entries()] == [b"c", b"b", b"a"]


def test_check_flush_size_and_reset():
    buf = SortableBuffer(4)
    buf.put(b"ab", b"c")
    assert not buf.check_flush_size()
    buf.put(b"d", b"")
    assert buf.check_flush_size()
    buf.reset()
    assert len(buf) == 0
    assert buf.size == 0
    assert buf.entries() == []


def test_append_buffer_concatenates_values():
    buf = AppendBuffer(1000)
    buf.put(b"k", b"ab")
    buf.put(b"j", b"x")
    buf.put(b"k", b"cd")
    assert len(buf) == 2
    assert buf.size == len(b"k") + len(b"ab") + len(b"cd") + len(b"j") + len(b"x")
    buf.sort()
    assert buf.entries() == [BufferEntry(b"j", b"x"), BufferEntry(b"k", b"abcd")]


def test_oldest_entry_buffer_keeps_first_value():
    buf = OldestEntryBuffer(1000)
    buf.put(b"k", b"old")
    buf.put(b"k", b"newer")
    buf.put(b"a", b"v")
    assert buf.size == len(b"k") + len(b"old") + len(b"a") + len(b"v")
    buf.sort()
    assert buf.get(0) == BufferEntry(b"a", b"v")
    assert buf.get(1) == BufferEntry(b"k", b"old")


def test_keyed_buffer_reset_clears_everything():
    buf = OldestEntryBuffer(10)
    buf.put(b"k", b"v")
    buf.sort()
    buf.reset()
    assert len(buf) == 0
    assert buf.entries() == []
    buf.put(b"k", b"again")
    buf.sort()
    assert buf.get(0).value == b"again"


@pytest.mark.parametrize(
    "buffer_type, cls",
    [
        (BufferType.SLICE, SortableBuffer),
        (BufferType.APPEND, AppendBuffer),
        (BufferType.OLDEST_APPEARED, OldestEntryBuffer),
    ],
)
def test_buffer_type_round_trip(buffer_type, cls):
    buf = get_buffer_by_type(buffer_type, 123)
    assert type(buf) is cls
    assert buf.optimal_size == 123
    assert get_type_by_buffer(buf) is buffer_type


def test_unknown_buffer_type_raises():
    with pytest.raises(ValueError):
        get_buffer_by_type(7, 1)


def test_unknown_buffer_instance_raises():
    class Other(SortableBuffer):
        pass

    with pytest.raises(TypeError):
        get_type_by_buffer(Other())


def test_default_optimal_size():
    assert SortableBuffer().optimal_size == 256 * 1024 * 1024 == BUFFER_OPTIMAL_SIZE


def test_load_heap_orders_by_key_then_time_index():
    heap = LoadHeap()
    heap.push(HeapElem(b"b", 0, b"1"))
    heap.push(HeapElem(b"a", 2, b"2"))
    heap.push(HeapElem(b"a", 1, b"3"))
    assert len(heap) == 3
    popped = [heap.pop() for _ in range(3)]
    assert [(e.key, e.time_idx) for e in popped] == [(b"a", 1), (b"a", 2), (b"b", 0)]
    assert len(heap) == 0


def test_load_heap_with_comparator():
    heap = LoadHeap(comparator=_reverse)
    for i, k in enumerate((b"a", b"c", b"b", b"c")):
        heap.push(HeapElem(k, i, b""))
    order = [(e.key, e.time_idx) for e in (heap.pop() for _ in range(4))]
    assert order == [(b"c", 1), (b"c", 3), (b"b", 2), (b"a", 0)]


def test_load_heap_pop_empty_raises():
    with pytest.raises(IndexError):
        LoadHeap().pop()