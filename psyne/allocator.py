"""Allocators that hand out offsets inside a fixed-size memory region.

An allocator does not hold the memory itself. It tracks which part of a
region of known size is in use and returns byte offsets into it. An
allocation that does not fit returns ``None``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


def _check_alignment(alignment: int) -> None:
    if alignment <= 0 or alignment & (alignment - 1):
        raise ValueError(f"alignment must be a positive power of two, got {alignment}")


def _align_up(position: int, alignment: int) -> int:
    _check_alignment(alignment)
    return (position + alignment - 1) & ~(alignment - 1)


class AllocatorBase(ABC):
    """Interface that messages use to obtain space for themselves."""

    name = "Base"
    is_zero_copy = True

    @abstractmethod
    def allocate(self, size_bytes: int, alignment: int) -> Optional[int]:
        """Return the offset of ``size_bytes`` bytes, or ``None`` when out of space."""

    def deallocate(self, offset: int) -> None:
        """Release an allocation; most allocators do not need to."""

    @property
    def total_allocated(self) -> int:
        """Bytes handed out so far."""
        return 0


class _BumpAllocator(AllocatorBase):
    """Hands out consecutive aligned ranges until the region is exhausted."""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError(f"region size must not be negative, got {size}")
        self._size = size
        self._allocated = 0

    def allocate(self, size_bytes: int, alignment: int = 1) -> Optional[int]:
        aligned = _align_up(self._allocated, alignment)
        if aligned + size_bytes > self._size:
            return None
        self._allocated = aligned + size_bytes
        return aligned

    @property
    def total_allocated(self) -> int:
        return self._allocated


class SlabAllocator(_BumpAllocator):
    """Allocates aligned ranges from a pre-allocated slab."""

    def __init__(self, slab_size: int, name: str = "Slab") -> None:
        super().__init__(slab_size)
        self.name = name

    @property
    def slab_size(self) -> int:
        return self._size

    def allocate(self, size_bytes: int, alignment: int = 1) -> Optional[int]:
        return super().allocate(size_bytes, alignment)

    @property
    def total_allocated(self) -> int:
        return self._allocated

    @property
    def available(self) -> int:
        """Bytes not yet handed out."""
        return self._size - self._allocated

    @property
    def utilization(self) -> float:
        """Fraction of the slab handed out."""
        return self._allocated / self._size


class RingAllocator(AllocatorBase):
    """Hands out fixed-size message slots in a ring over the slab."""

    name = "Ring"

    def __init__(self, slab_size: int, ring_size: int, message_size: int) -> None:
        if message_size <= 0:
            raise ValueError(f"message size must be positive, got {message_size}")
        self.slab_size = slab_size
        self.message_size = message_size
        self.max_messages = slab_size // message_size
        if self.max_messages == 0:
            raise ValueError("slab is too small to hold a single message")
        self.ring_size = min(ring_size, self.max_messages)
        self._position = 0

    def allocate(self, size_bytes: int, alignment: int = 1) -> Optional[int]:
        if size_bytes != self.message_size:
            return None
        offset = (self._position % self.max_messages) * self.message_size
        self._position += 1
        return offset

    @property
    def ring_position(self) -> int:
        """Number of slots handed out so far."""
        return self._position


class PoolAllocator(_BumpAllocator):
    """Bump allocator for messages of varying size."""

    name = "Pool"

    def __init__(self, total_size: int) -> None:
        super().__init__(total_size)

    def allocate(self, size_bytes: int, alignment: int = 1) -> Optional[int]:
        return super().allocate(size_bytes, alignment)

    @property
    def total_allocated(self) -> int:
        return self._allocated