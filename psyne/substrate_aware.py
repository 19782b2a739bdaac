"""Messages that use their substrate for extra resources.

Each message keeps a reference to the substrate it was created with and
uses whatever optional hooks that substrate offers: extra memory, string
compression, GPU memory, type registration or serialisation. A substrate
without a hook gets a plain fallback.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

_FLOAT_BYTES = np.dtype(np.float32).itemsize
_UNSET = object()


def _hook(substrate: Any, name: str):
    hook = getattr(substrate, name, None)
    return hook if callable(hook) else None


class DynamicVectorMessage:
    """Float32 vector whose storage may come from the substrate."""

    def __init__(
        self,
        substrate: Any,
        size: int = 0,
        initial_data: Optional[Sequence[float]] = None,
    ) -> None:
        self.substrate = substrate
        self._closed = False
        values = None
        if initial_data is not None:
            values = np.asarray(initial_data, dtype=np.float32).ravel()
            if size and size != len(values):
                raise ValueError(
                    f"size {size} does not match {len(values)} initial values"
                )
            size = len(values)
        if size < 0:
            raise ValueError(f"size must not be negative, got {size}")
        self.data = self._allocate(size)
        if values is not None:
            self.data[:] = values

    def _allocate(self, size: int) -> np.ndarray:
        if size == 0:
            return np.zeros(0, dtype=np.float32)
        allocate = _hook(self.substrate, "allocate_additional")
        if allocate is None:
            return np.zeros(size, dtype=np.float32)
        buffer = allocate(size * _FLOAT_BYTES)
        if buffer is None:
            raise MemoryError(f"substrate could not provide {size} floats")
        return np.frombuffer(buffer, dtype=np.float32, count=size)

    def __len__(self) -> int:
        return len(self.data)

    def __getitem__(self, index):
        return self.data[index]

    def __setitem__(self, index, value) -> None:
        self.data[index] = value

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Tell the substrate the message is gone; later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        destroyed = _hook(self.substrate, "on_message_destroyed")
        if destroyed is not None:
            destroyed()

    def __enter__(self) -> "DynamicVectorMessage":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class StringMessage:
    """Text message that keeps a compressed form when the substrate can."""

    def __init__(self, substrate: Any, content: Optional[str] = None) -> None:
        self.substrate = substrate
        self.content = ""
        self.compressed_content = b""
        if content is not None:
            self.set_content(content)

    def set_content(self, new_content: str) -> None:
        """Replace the text and refresh its compressed form."""
        self.content = new_content
        compress = _hook(self.substrate, "compress_string")
        if compress is not None:
            self.compressed_content = bytes(compress(new_content))


class GPUTensorMessage:
    """Tensor whose storage is GPU memory provided by the substrate."""

    def __init__(self, substrate: Any, shape: Optional[Sequence[int]] = None) -> None:
        self.substrate = substrate
        self.gpu_data = None
        if shape is None:
            self.shape: tuple[int, ...] = ()
            return
        self.shape = tuple(int(dim) for dim in shape)
        if any(dim < 0 for dim in self.shape):
            raise ValueError(f"dimensions must not be negative: {self.shape}")
        allocate = _hook(substrate, "allocate_gpu_memory")
        if allocate is not None:
            self.gpu_data = allocate(self.num_elements * _FLOAT_BYTES)

    @property
    def num_elements(self) -> int:
        count = 1
        for dim in self.shape:
            count *= dim
        return count

    def close(self) -> None:
        """Return the GPU memory to the substrate."""
        if self.gpu_data is None:
            return
        data, self.gpu_data = self.gpu_data, None
        deallocate = _hook(self.substrate, "deallocate_gpu_memory")
        if deallocate is not None:
            deallocate(data)

    def __enter__(self) -> "GPUTensorMessage":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class SelfDescribingMessage:
    """Message that carries any payload together with its type name."""

    def __init__(self, substrate: Any, payload: Any = _UNSET) -> None:
        self.substrate = substrate
        self._payload: Any = _UNSET
        self.type_name = ""
        self.serialized_data = b""
        if payload is _UNSET:
            register = _hook(substrate, "register_message_type")
            if register is not None:
                register("SelfDescribing")
        else:
            self.set_payload(payload)

    @property
    def has_payload(self) -> bool:
        return self._payload is not _UNSET

    def set_payload(self, payload: Any) -> None:
        """Store ``payload`` and serialise it when the substrate can."""
        self._payload = payload
        self.type_name = type(payload).__qualname__
        serialize = _hook(self.substrate, "serialize")
        if serialize is not None:
            self.serialized_data = bytes(serialize(payload))

    def get_payload(self, expected_type: type) -> Any:
        """Return the payload, which must be exactly of ``expected_type``."""
        if self._payload is _UNSET:
            raise TypeError("message holds no payload")
        if type(self._payload) is not expected_type:
            raise TypeError(
                f"payload is {self.type_name}, not {expected_type.__qualname__}"
            )
        return self._payload