import pytest

from psyne.allocator import PoolAllocator, RingAllocator, SlabAllocator


def test_slab_offsets_are_aligned_and_disjoint():
    slab = SlabAllocator(1024)
    previous_end = 0
    for size, alignment in [(3, 1), (10, 8), (5, 64), (7, 4)]:
        offset = slab.allocate(size, alignment)
        assert offset % alignment == 0
        assert offset >= previous_end
        previous_end = offset + size
    assert slab.total_allocated == previous_end


def test_slab_first_allocation_at_zero():
    slab = SlabAllocator(256)
    assert slab.allocate(16, 64) == 0


def test_slab_out_of_space_returns_none_and_keeps_state():
    slab = SlabAllocator(100)
    assert slab.allocate(90, 1) is not None
    before = slab.total_allocated
    assert slab.allocate(20, 1) is None
    assert slab.total_allocated == before


def test_slab_exact_fit():
    slab = SlabAllocator(128)
    assert slab.allocate(128, 1) == 0
    assert slab.available == 0
    assert slab.utilization == 1.0


def test_slab_available_and_utilization():
    slab = SlabAllocator(200)
    slab.allocate(50, 1)
    assert slab.available == 150
    assert slab.utilization == pytest.approx(50 / 200)


def test_slab_name_default_and_custom():
    assert SlabAllocator(10).name == "Slab"
    assert SlabAllocator(10, "custom").name == "custom"


@pytest.mark.parametrize("alignment", [0, 3, 12, -8])
def test_bad_alignment_rejected(alignment):
    with pytest.raises(ValueError):
        SlabAllocator(64).allocate(4, alignment)


def test_ring_wraps_around():
    ring = RingAllocator(slab_size=32, ring_size=100, message_size=8)
    assert ring.max_messages == 32 // 8
    assert ring.ring_size == ring.max_messages
    offsets = [ring.allocate(8, 1) for _ in range(ring.max_messages * 2)]
    first = offsets[: ring.max_messages]
    assert offsets[ring.max_messages :] == first
    assert sorted(first) == [i * 8 for i in range(ring.max_messages)]
    assert ring.ring_position == ring.max_messages * 2


def test_ring_rejects_wrong_size():
    ring = RingAllocator(64, 4, 16)
    assert ring.allocate(15, 1) is None
    assert ring.ring_position == 0


def test_ring_needs_room_for_one_message():
    with pytest.raises(ValueError):
        RingAllocator(4, 1, 8)


def test_pool_bump_allocation():
    pool = PoolAllocator(64)
    a = pool.allocate(10, 1)
    b = pool.allocate(10, 16)
    assert a == 0
    assert b % 16 == 0 and b >= 10
    assert pool.total_allocated == b + 10
    assert pool.allocate(64, 1) is None
    assert pool.name == "Pool"