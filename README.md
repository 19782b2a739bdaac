# psyne

Building blocks for message passing between producers and consumers, with
tensor-aware compression:

- `psyne.backpressure`: policies that decide what happens when a slot
  cannot be allocated.
- `psyne.allocator`: slab, ring and pool allocators that hand out byte
  offsets inside a fixed-size region.
- `psyne.substrate_aware`: messages that use optional hooks on the
  substrate they were created with.
- `psyne.tdt`: the TDT (Tensor Data Transform) compression protocol.
- `psyne.tdt_benchmark`: benchmarks of TDT on synthetic tensors, with the
  `psyne-tdt-bench` command.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Backpressure

A policy's `handle_full(retry_fn)` is called after an allocation has failed.
`retry_fn` attempts the allocation again and returns the slot, or `None` if
there is still no room. The policy returns a slot, or `None` to drop the
message.

```python
from psyne.backpressure import RetryPolicy

attempts = iter([None, None, 3])
policy = RetryPolicy(max_retries=5, initial_delay=0.00001)
slot = policy.handle_full(lambda: next(attempts))
assert slot == 3
assert policy.retry_count == 2
assert policy.pressure_events == 1
```

The following policies are available:

- `DropPolicy` drops the message and counts it in `dropped_messages`.
- `BlockPolicy(max_wait)` retries until `max_wait` seconds have passed. It
  counts `timeout_count`.
- `RetryPolicy(max_retries, initial_delay)` retries with exponential backoff
  and up to 25% jitter. It counts `retry_count` and `failed_retries`.
- `CallbackPolicy(callback, timeout)` asks `callback()` whether to retry. If
  the callback says yes, it retries for up to `timeout` seconds. It counts
  `rejected_count` and `timeout_count`.
- `AdaptivePolicy` retries up to 3 times while fewer than 100 pressure events
  have been seen. It then blocks for up to 50 ms each time until 1000 events
  have been seen, and drops after that.

## Allocators

Each allocator tracks a region of known size and returns offsets into it.
When a request does not fit, it returns `None`. An alignment that is not a
positive power of two raises `ValueError`.

```python
from psyne.allocator import PoolAllocator, RingAllocator, SlabAllocator

slab = SlabAllocator(1024)
assert slab.allocate(10, 8) == 0
assert slab.allocate(16, 8) == 16
assert slab.available == 992

ring = RingAllocator(slab_size=256, ring_size=8, message_size=64)
offsets = [ring.allocate(64, 1) for _ in range(5)]
assert offsets == [0, 64, 128, 192, 0]   # wraps after slab_size // message_size slots
assert ring.allocate(32, 1) is None      # only whole messages

pool = PoolAllocator(100)
assert pool.allocate(200, 1) is None
```

## Substrate-aware messages

Each message keeps the substrate it was given and uses a hook on it when the
hook exists:

- `DynamicVectorMessage` stores float32 values in memory from
  `allocate_additional(nbytes)`, or in a NumPy array when that hook is
  missing. `close()` calls `on_message_destroyed()`.
- `StringMessage` keeps `compressed_content` from `compress_string(text)`.
- `GPUTensorMessage` takes memory from `allocate_gpu_memory(nbytes)`, and
  `close()` returns it with `deallocate_gpu_memory(data)`.
- `SelfDescribingMessage` records the payload's type name and fills
  `serialized_data` from `serialize(payload)`. `get_payload(expected_type)`
  raises `TypeError` if the type is wrong.

```python
import zlib

from psyne.substrate_aware import DynamicVectorMessage, StringMessage


class Substrate:
    def compress_string(self, text):
        return zlib.compress(text.encode())


substrate = Substrate()
text = StringMessage(substrate, "hello hello hello")
assert zlib.decompress(text.compressed_content) == b"hello hello hello"

with DynamicVectorMessage(substrate, initial_data=[1.0, 2.0, 3.0]) as vector:
    vector[0] = 5.0
    assert len(vector) == 3
```

## TDT compression

`TDTCompressionProtocol` compresses only when all of these hold:

- the data is at least `min_tensor_size` bytes long,
- its size is a multiple of 4,
- CPU usage is at most `cpu_usage_threshold`,
- bandwidth is below `bandwidth_threshold_mbps`.

Otherwise, `encode` passes the bytes through behind an uncompressed marker.

```python
import numpy as np

from psyne.tdt import TDTCompressionProtocol

protocol = TDTCompressionProtocol(seed=1)
protocol.update_network_metrics(25.0, 10.0)   # slow link: compression pays off
protocol.update_system_metrics(0.4)

tensor = np.zeros(64 * 64, dtype=np.float32).tobytes()
encoded = protocol.encode(tensor)
assert protocol.decode(encoded) == tensor
print(protocol.transformation_ratio())
```

Encoding is lossless. Malformed input to `decode` raises `TDTError`. The
compressed wire form is available on its own through
`TDTEncodedData.serialize()` and `TDTEncodedData.deserialize(data)`. The
run-length coder is available as `rle_compress` and `rle_decompress`.
Settings are held in `TDTConfig`.

## Benchmark command

```
psyne-tdt-bench
psyne-tdt-bench --iterations 3
psyne-tdt-bench --sensitivity-only
```

This measures compression ratio, speed and correctness on synthetic weights,
gradients, activations and random data. It then checks whether the protocol
decides correctly when to compress under five network and CPU conditions.
Results are logged to standard error. The same functions can be called from
Python: `run_benchmark`, `run_comprehensive_benchmark` and
`benchmark_network_sensitivity`.

## What this package does not do

The package has no channel object that joins a substrate, a coordination
pattern and typed message views. It also has no ready-made substrates,
producer/consumer patterns, numeric message types or message-throughput
benchmark. Backpressure policies and allocators are meant to be plugged into
your own channel code. No transport is provided: nothing here sends data
between processes or over a network.