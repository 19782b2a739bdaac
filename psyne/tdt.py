"""Tensor Data Transform (TDT) compression protocol.

Floating-point tensors are split into byte streams by byte position within
each word. Positions with similar entropy share a stream, and each stream is
run-length encoded. Small inputs, non-tensor data, busy CPUs and fast
networks pass through uncompressed behind a marker.
"""

from __future__ import annotations

import logging
import math
import random
import struct
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

TDT_MAGIC = 0x54445444
UNCOMPRESSED_MARKER = 0x554E4350
_U32 = struct.Struct("<I")
_HEADER = struct.Struct("<5I")
_INT_BYTES = 4
_MAX_RUN = 255
# Fixed bookkeeping counted on top of the streams and the cluster mapping.
STRUCT_OVERHEAD = 72


class TDTError(RuntimeError):
    """Raised for malformed or undecodable TDT data."""


@dataclass
class TDTConfig:
    """Tuning of the TDT protocol."""

    sample_fraction: float = 0.3
    word_size: int = 4
    auto_detect_clusters: bool = True
    max_clusters: int = 4
    enable_simd: bool = True
    bandwidth_threshold_mbps: float = 100.0
    cpu_usage_threshold: float = 0.8
    min_tensor_size: int = 1024


@dataclass
class ByteFeatures:
    """Statistics of the bytes found at one position within each word."""

    entropy: float = 0.0
    autocorrelation: float = 0.0
    unique_count: int = 0
    mean: float = 0.0
    variance: float = 0.0
    histogram: tuple[int, ...] = field(default_factory=lambda: (0,) * 256)


@dataclass
class TDTEncodedData:
    """Byte streams of a compressed tensor and how to put them back together."""

    streams: list[bytes] = field(default_factory=list)
    cluster_mapping: list[int] = field(default_factory=list)
    original_size: int = 0
    word_size: int = 4
    compression_ratio: float = 1.0

    def encoded_size(self) -> int:
        """Size of the encoded form in bytes."""
        return (
            sum(len(stream) for stream in self.streams)
            + len(self.cluster_mapping) * _INT_BYTES
            + STRUCT_OVERHEAD
        )

    def serialize(self) -> bytes:
        """Wire form: little-endian header, cluster mapping, then each stream."""
        try:
            parts = [
                _HEADER.pack(
                    TDT_MAGIC,
                    self.original_size,
                    len(self.streams),
                    self.word_size,
                    len(self.cluster_mapping),
                ),
                np.asarray(self.cluster_mapping, dtype="<i4").tobytes(),
            ]
            for stream in self.streams:
                parts.append(_U32.pack(len(stream)))
                parts.append(bytes(stream))
        except (struct.error, OverflowError) as exc:
            raise TDTError(f"cannot serialise TDT data: {exc}") from exc
        return b"".join(parts)

    @classmethod
    def deserialize(cls, data) -> "TDTEncodedData":
        """Parse the wire form produced by :meth:`serialize`."""
        data = bytes(data)
        offset = 0

        def take(count: int) -> bytes:
            nonlocal offset
            if offset + count > len(data):
                raise TDTError("truncated TDT data")
            chunk = data[offset : offset + count]
            offset += count
            return chunk

        magic, original_size, num_streams, word_size, mapping_size = _HEADER.unpack(
            take(_HEADER.size)
        )
        if magic != TDT_MAGIC:
            raise TDTError("Invalid TDT magic number")
        mapping = np.frombuffer(take(mapping_size * _INT_BYTES), dtype="<i4")
        streams = []
        for _ in range(num_streams):
            (stream_size,) = _U32.unpack(take(_U32.size))
            streams.append(take(stream_size))
        result = cls(
            streams=streams,
            cluster_mapping=[int(value) for value in mapping],
            original_size=original_size,
            word_size=word_size,
        )
        result.compression_ratio = original_size / result.encoded_size()
        return result


def _byte_array(data) -> np.ndarray:
    if isinstance(data, np.ndarray):
        return np.ascontiguousarray(data).reshape(-1).view(np.uint8)
    return np.frombuffer(data, dtype=np.uint8)


def rle_compress(data) -> bytes:
    """Run-length encode as (count, value) pairs with runs of at most 255."""
    values = _byte_array(data)
    if values.size == 0:
        return b""
    starts = np.concatenate(([0], np.flatnonzero(values[1:] != values[:-1]) + 1))
    lengths = np.diff(np.concatenate((starts, [values.size])))
    run_values = values[starts]
    full, rest = np.divmod(lengths, _MAX_RUN)
    pieces = full + (rest > 0)
    piece_values = np.repeat(run_values, pieces)
    piece_counts = np.full(piece_values.size, _MAX_RUN, dtype=np.uint8)
    last = np.cumsum(pieces) - 1
    partial = rest > 0
    piece_counts[last[partial]] = rest[partial]
    out = np.empty(piece_values.size * 2, dtype=np.uint8)
    out[0::2] = piece_counts
    out[1::2] = piece_values
    return out.tobytes()


def rle_decompress(data) -> bytes:
    """Expand (count, value) pairs; a trailing odd byte is ignored."""
    values = _byte_array(data)
    pairs = values.size // 2
    counts = values[0 : 2 * pairs : 2]
    bytes_ = values[1 : 2 * pairs : 2]
    return np.repeat(bytes_, counts).tobytes()


class TDTCompressionProtocol:
    """Compresses tensor data when the network is slow and the CPU is free."""

    protocol_name = "TDT-Compression"
    is_lossless = True

    def __init__(self, config: Optional[TDTConfig] = None, seed=None) -> None:
        self.config = config if config is not None else TDTConfig()
        self._rng = random.Random(seed)
        self.bandwidth_mbps = 100.0
        self.latency_ms = 1.0
        self.cpu_usage = 0.5
        self._last_compression_ratio = 1.0
        self._last_encode_time_ms = 0.0
        self._last_decode_time_ms = 0.0
        self.average_entropy = 0.0

    def should_transform(self, data) -> bool:
        """Whether ``data`` would be compressed under current conditions."""
        size = _byte_array(data).size
        if size < self.config.min_tensor_size:
            return False
        if self.cpu_usage > self.config.cpu_usage_threshold:
            return False
        if not self._is_tensor_data(size):
            return False
        return self.bandwidth_mbps < self.config.bandwidth_threshold_mbps

    def analyze_data(self, data) -> None:
        """Estimate compressibility by the mean entropy per byte position."""
        values = _byte_array(data)
        if not self._is_tensor_data(values.size):
            return
        word_size = self.config.word_size
        indices = self._sample_indices(values.size // word_size)
        total = sum(
            self._extract_features(values, indices, position).entropy
            for position in range(word_size)
        )
        self.average_entropy = total / word_size
        logger.debug("TDT: Analyzed tensor data, avg entropy: %s", self.average_entropy)

    def encode(self, data) -> bytes:
        """Compress ``data``, or pass it through behind the uncompressed marker."""
        start = time.perf_counter()
        values = _byte_array(data)
        if not self.should_transform(values):
            return self._passthrough(values)
        try:
            compressed = self._compress(values)
        except (ValueError, TDTError) as exc:
            logger.warning("TDT: Compression failed, passing through: %s", exc)
            return self._passthrough(values)
        result = compressed.serialize()
        self._last_encode_time_ms = (time.perf_counter() - start) * 1000.0
        self._last_compression_ratio = compressed.compression_ratio
        logger.debug(
            "TDT: Compressed %d -> %d bytes (%sx) in %sms",
            values.size,
            len(result),
            compressed.compression_ratio,
            self._last_encode_time_ms,
        )
        return result

    def decode(self, encoded) -> bytes:
        """Restore the original bytes from the output of :meth:`encode`."""
        start = time.perf_counter()
        encoded = bytes(encoded)
        if len(encoded) < 4:
            raise TDTError("TDT: Invalid encoded data size")
        (magic,) = _U32.unpack_from(encoded)
        if magic == UNCOMPRESSED_MARKER:
            return encoded[4:]
        try:
            compressed = TDTEncodedData.deserialize(encoded)
            result = self._decompress(compressed)
        except TDTError as exc:
            logger.error("TDT: Decompression failed: %s", exc)
            raise
        self._last_decode_time_ms = (time.perf_counter() - start) * 1000.0
        logger.debug(
            "TDT: Decompressed %d -> %d bytes in %sms",
            len(encoded),
            len(result),
            self._last_decode_time_ms,
        )
        return result

    def update_network_metrics(self, bandwidth_mbps: float, latency_ms: float) -> None:
        """Record the current network bandwidth and latency."""
        self.bandwidth_mbps = bandwidth_mbps
        self.latency_ms = latency_ms

    def update_system_metrics(self, cpu_usage: float) -> None:
        """Record the current CPU usage as a fraction."""
        self.cpu_usage = cpu_usage

    def transformation_ratio(self) -> float:
        """Compression ratio of the last compressed encode."""
        return self._last_compression_ratio

    def processing_overhead_ms(self) -> float:
        """Mean of the last encode and decode times in milliseconds."""
        return (self._last_encode_time_ms + self._last_decode_time_ms) / 2.0

    @staticmethod
    def _is_tensor_data(size: int) -> bool:
        return size % 4 == 0 and size >= 64

    @staticmethod
    def _passthrough(values: np.ndarray) -> bytes:
        return _U32.pack(UNCOMPRESSED_MARKER) + values.tobytes()

    def _sample_indices(self, word_count: int) -> np.ndarray:
        count = int(word_count * self.config.sample_fraction)
        count = min(max(count, 100), word_count)
        return np.array(sorted(self._rng.sample(range(word_count), count)), dtype=np.int64)

    def _extract_features(
        self, values: np.ndarray, indices: np.ndarray, byte_offset: int
    ) -> ByteFeatures:
        word_size = self.config.word_size
        if indices.size == 0:
            return ByteFeatures()
        samples = values[indices * word_size + byte_offset]
        histogram = np.bincount(samples, minlength=256)
        total = samples.size
        probabilities = histogram[histogram > 0] / total
        entropy = float(-np.sum(probabilities * np.log2(probabilities)))
        as_float = samples.astype(np.float64)
        return ByteFeatures(
            entropy=entropy,
            autocorrelation=self._autocorrelation(as_float),
            unique_count=int(np.count_nonzero(histogram)),
            mean=float(as_float.mean()),
            variance=float(as_float.var()),
            histogram=tuple(int(count) for count in histogram),
        )

    @staticmethod
    def _autocorrelation(values: np.ndarray) -> float:
        if values.size < 2:
            return 0.0
        x = values[:-1]
        y = values[1:]
        n = x.size
        numerator = n * float(np.dot(x, y)) - float(x.sum()) * float(y.sum())
        spread = (n * float(np.dot(x, x)) - float(x.sum()) ** 2) * (
            n * float(np.dot(y, y)) - float(y.sum()) ** 2
        )
        denominator = math.sqrt(spread) if spread > 0 else 0.0
        return numerator / denominator if denominator > 0 else 0.0

    def _cluster(self, features: list[ByteFeatures]) -> list[int]:
        entropies = [feature.entropy for feature in features]
        threshold = sum(entropies) / len(entropies)
        return [1 if entropy > threshold else 0 for entropy in entropies]

    def _compress(self, values: np.ndarray) -> TDTEncodedData:
        word_size = self.config.word_size
        size = values.size
        if size == 0 or size % word_size != 0:
            raise ValueError("Data size must be multiple of word size")
        word_count = size // word_size
        indices = self._sample_indices(word_count)
        features = [
            self._extract_features(values, indices, position)
            for position in range(word_size)
        ]
        mapping = self._cluster(features)
        words = values.reshape(word_count, word_size)
        columns = np.asarray(mapping)
        streams = [
            rle_compress(words[:, columns == cluster].ravel())
            for cluster in range(max(mapping) + 1)
        ]
        result = TDTEncodedData(
            streams=streams,
            cluster_mapping=mapping,
            original_size=size,
            word_size=word_size,
        )
        result.compression_ratio = size / result.encoded_size()
        return result

    @staticmethod
    def _decompress(compressed: TDTEncodedData) -> bytes:
        word_size = compressed.word_size
        if word_size <= 0:
            raise TDTError(f"invalid word size {word_size}")
        mapping = np.asarray(compressed.cluster_mapping, dtype=np.int64)
        if mapping.size < word_size:
            raise TDTError("cluster mapping is shorter than the word size")
        mapping = mapping[:word_size]
        if mapping.size and (mapping.min() < 0 or mapping.max() >= len(compressed.streams)):
            raise TDTError("cluster mapping refers to a missing stream")
        streams = [
            np.frombuffer(rle_decompress(stream), dtype=np.uint8)
            for stream in compressed.streams
        ]
        word_count = compressed.original_size // word_size
        words = np.zeros((word_count, word_size), dtype=np.uint8)
        for cluster, stream in enumerate(streams):
            columns = np.flatnonzero(mapping == cluster)
            if columns.size == 0:
                continue
            block = np.zeros(word_count * columns.size, dtype=np.uint8)
            available = stream[: block.size]
            block[: available.size] = available
            words[:, columns] = block.reshape(word_count, columns.size)
        result = np.zeros(compressed.original_size, dtype=np.uint8)
        result[: words.size] = words.ravel()
        return result.tobytes()