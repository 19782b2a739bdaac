"""Backpressure policies applied when a channel cannot allocate a message slot.

A policy receives a ``retry_fn`` that attempts the allocation again and
returns the allocated slot, or ``None`` when the channel is still full.
"""

from __future__ import annotations

import random
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

RetryFn = Callable[[], Optional[T]]


class PolicyBase(ABC):
    """Common interface and pressure accounting for backpressure policies."""

    name = "Base"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pressure_events = 0

    def _increment(self, attribute: str) -> None:
        with self._lock:
            setattr(self, attribute, getattr(self, attribute) + 1)

    @abstractmethod
    def handle_full(self, retry_fn: RetryFn) -> Optional[T]:
        """Handle a failed allocation; return the slot or ``None`` to drop."""

    def record_pressure_event(self) -> None:
        """Count one backpressure event."""
        self._increment("_pressure_events")

    @property
    def pressure_events(self) -> int:
        """Total number of backpressure events seen by this policy."""
        return self._pressure_events


class DropPolicy(PolicyBase):
    """Drop the message whenever the channel is full."""

    name = "Drop"

    def __init__(self) -> None:
        super().__init__()
        self._dropped_messages = 0

    def handle_full(self, retry_fn: RetryFn) -> Optional[T]:
        self.record_pressure_event()
        self._increment("_dropped_messages")
        return None

    @property
    def dropped_messages(self) -> int:
        """Number of messages dropped."""
        return self._dropped_messages


class BlockPolicy(PolicyBase):
    """Keep retrying until space appears or ``max_wait`` seconds pass."""

    name = "Block"

    def __init__(self, max_wait: float = 1.0) -> None:
        super().__init__()
        self.max_wait = max_wait
        self._timeout_count = 0

    def handle_full(self, retry_fn: RetryFn) -> Optional[T]:
        self.record_pressure_event()
        start = time.monotonic()
        while True:
            result = retry_fn()
            if result is not None:
                return result
            if time.monotonic() - start >= self.max_wait:
                self._increment("_timeout_count")
                return None
            time.sleep(0)

    @property
    def timeout_count(self) -> int:
        """Number of waits that ended without space."""
        return self._timeout_count


class RetryPolicy(PolicyBase):
    """Retry with exponential backoff and up to 25% jitter."""

    name = "Retry"

    def __init__(self, max_retries: int = 10, initial_delay: float = 10e-6) -> None:
        super().__init__()
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._retry_count = 0
        self._failed_retries = 0

    def handle_full(self, retry_fn: RetryFn) -> Optional[T]:
        self.record_pressure_event()
        delay = self.initial_delay
        for _ in range(self.max_retries):
            result = retry_fn()
            if result is not None:
                return result
            self._increment("_retry_count")
            time.sleep(delay)
            delay *= 2
            delay += delay * random.randrange(250) / 1000
        self._increment("_failed_retries")
        return None

    @property
    def retry_count(self) -> int:
        """Number of unsuccessful attempts."""
        return self._retry_count

    @property
    def failed_retries(self) -> int:
        """Number of calls in which every retry failed."""
        return self._failed_retries


class CallbackPolicy(PolicyBase):
    """Ask the application whether to retry, then retry until ``timeout``."""

    name = "Callback"

    def __init__(self, callback: Callable[[], bool], timeout: float = 0.1) -> None:
        super().__init__()
        self.callback = callback
        self.timeout = timeout
        self._rejected_count = 0
        self._timeout_count = 0

    def handle_full(self, retry_fn: RetryFn) -> Optional[T]:
        self.record_pressure_event()
        if not self.callback():
            self._increment("_rejected_count")
            return None
        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            result = retry_fn()
            if result is not None:
                return result
            time.sleep(0)
        self._increment("_timeout_count")
        return None

    @property
    def rejected_count(self) -> int:
        """Number of times the callback declined a retry."""
        return self._rejected_count

    @property
    def timeout_count(self) -> int:
        """Number of retries that ran out of time."""
        return self._timeout_count


class AdaptivePolicy(PolicyBase):
    """Retry under low pressure, block briefly under medium, drop under high."""

    name = "Adaptive"

    def __init__(self) -> None:
        super().__init__()
        self.retry_policy = RetryPolicy(3)
        self.block_policy = BlockPolicy(0.05)
        self.drop_policy = DropPolicy()

    def handle_full(self, retry_fn: RetryFn) -> Optional[T]:
        self.record_pressure_event()
        pressure = self.pressure_events
        if pressure < 100:
            return self.retry_policy.handle_full(retry_fn)
        if pressure < 1000:
            return self.block_policy.handle_full(retry_fn)
        return self.drop_policy.handle_full(retry_fn)