"""Benchmarks of the TDT compression protocol on typical tensor workloads.

Generates tensors that resemble network weights, gradients, activations and
random noise, then measures compression ratio, speed and correctness. A
second benchmark checks when the protocol decides to compress under
different network and CPU conditions.
"""

from __future__ import annotations

import argparse
import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np

from .tdt import TDTCompressionProtocol

logger = logging.getLogger(__name__)

_FLOAT_BYTES = 4
_MB = 1024.0 * 1024.0


class DataType(enum.Enum):
    """Kind of tensor content to generate."""

    WEIGHTS = "weights"
    GRADIENTS = "gradients"
    ACTIVATIONS = "activations"
    RANDOM = "random"


def fill_tensor(
    count: int, data_type: DataType, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Return ``count`` float32 values typical of ``data_type``."""
    if count < 0:
        raise ValueError(f"count must not be negative, got {count}")
    rng = rng if rng is not None else np.random.default_rng()
    if data_type is DataType.WEIGHTS:
        values = rng.normal(0.0, 0.1, count)
    elif data_type is DataType.GRADIENTS:
        sparse = rng.random(count) < 0.7
        values = np.where(sparse, 0.0, rng.normal(0.0, 0.01, count))
    elif data_type is DataType.ACTIVATIONS:
        zeros = rng.random(count) < 0.4
        values = np.where(zeros, 0.0, rng.exponential(1.0 / 2.0, count))
    elif data_type is DataType.RANDOM:
        values = rng.uniform(-1.0, 1.0, count)
    else:
        raise ValueError(f"unknown data type: {data_type!r}")
    return np.asarray(values, dtype=np.float32)


@dataclass(frozen=True)
class TDTBenchmarkConfig:
    """Shape of the tensors and number of iterations of one benchmark."""

    name: str
    width: int
    height: int
    channels: int
    data_type: str
    iterations: int = 100

    @property
    def element_count(self) -> int:
        return self.width * self.height * self.channels

    @property
    def tensor_size(self) -> int:
        return self.element_count * _FLOAT_BYTES


@dataclass
class TDTBenchmarkResults:
    """Averages and extremes measured over a benchmark's iterations."""

    avg_compression_ratio: float = 0.0
    avg_compression_speed_mbps: float = 0.0
    avg_decompression_speed_mbps: float = 0.0
    min_compression_time_ms: float = 1e9
    max_compression_time_ms: float = 0.0
    min_decompression_time_ms: float = 1e9
    max_decompression_time_ms: float = 0.0
    all_correct: bool = True
    total_iterations: int = 0


DEFAULT_BENCHMARKS: list[tuple[TDTBenchmarkConfig, DataType]] = [
    (TDTBenchmarkConfig("Small Dense Layer", 32, 32, 16, "weights", 50), DataType.WEIGHTS),
    (TDTBenchmarkConfig("Small Gradient", 64, 64, 8, "gradients", 50), DataType.GRADIENTS),
    (TDTBenchmarkConfig("Conv Layer Weights", 128, 128, 32, "weights", 30), DataType.WEIGHTS),
    (TDTBenchmarkConfig("Feature Maps", 256, 256, 64, "activations", 30), DataType.ACTIVATIONS),
    (TDTBenchmarkConfig("Sparse Gradients", 256, 256, 32, "gradients", 30), DataType.GRADIENTS),
    (TDTBenchmarkConfig("Large Conv Weights", 512, 512, 128, "weights", 10), DataType.WEIGHTS),
    (
        TDTBenchmarkConfig("High-Res Feature Maps", 1024, 1024, 16, "activations", 10),
        DataType.ACTIVATIONS,
    ),
    (
        TDTBenchmarkConfig("Random Data (Worst Case)", 256, 256, 32, "random", 20),
        DataType.RANDOM,
    ),
]


def _speed_mbps(size: int, milliseconds: float) -> float:
    if milliseconds <= 0:
        return 0.0
    return (size / _MB) / (milliseconds / 1000.0)


def run_benchmark(
    config: TDTBenchmarkConfig,
    data_type: DataType,
    rng: Optional[np.random.Generator] = None,
) -> TDTBenchmarkResults:
    """Encode and decode fresh tensors ``config.iterations`` times and measure them."""
    if config.iterations <= 0:
        raise ValueError(f"iterations must be positive, got {config.iterations}")
    rng = rng if rng is not None else np.random.default_rng()
    results = TDTBenchmarkResults(total_iterations=config.iterations)
    tensor_size = config.tensor_size
    protocol = TDTCompressionProtocol()

    logger.info("Running benchmark: %s", config.name)
    logger.info(
        "  Tensor size: %dx%dx%d (%d KB)",
        config.width,
        config.height,
        config.channels,
        tensor_size // 1024,
    )
    logger.info("  Data type: %s", config.data_type)
    logger.info("  Iterations: %d", config.iterations)

    total_ratio = 0.0
    total_compression_speed = 0.0
    total_decompression_speed = 0.0
    progress_step = max(1, config.iterations // 10)

    for iteration in range(config.iterations):
        tensor = fill_tensor(config.element_count, data_type, rng)
        original = tensor.tobytes()

        start = time.perf_counter()
        encoded = protocol.encode(tensor)
        compression_ms = (time.perf_counter() - start) * 1000.0

        start = time.perf_counter()
        decoded = protocol.decode(encoded)
        decompression_ms = (time.perf_counter() - start) * 1000.0

        if len(decoded) != tensor_size or decoded != original:
            results.all_correct = False
            logger.error("  Iteration %d: Correctness check FAILED!", iteration)

        ratio = tensor_size / len(encoded)
        total_ratio += ratio
        total_compression_speed += _speed_mbps(tensor_size, compression_ms)
        total_decompression_speed += _speed_mbps(tensor_size, decompression_ms)

        results.min_compression_time_ms = min(results.min_compression_time_ms, compression_ms)
        results.max_compression_time_ms = max(results.max_compression_time_ms, compression_ms)
        results.min_decompression_time_ms = min(
            results.min_decompression_time_ms, decompression_ms
        )
        results.max_decompression_time_ms = max(
            results.max_decompression_time_ms, decompression_ms
        )

        if (iteration + 1) % progress_step == 0 or iteration == 0:
            logger.info(
                "  Progress: %d/%d (ratio: %.2fx)", iteration + 1, config.iterations, ratio
            )

    results.avg_compression_ratio = total_ratio / config.iterations
    results.avg_compression_speed_mbps = total_compression_speed / config.iterations
    results.avg_decompression_speed_mbps = total_decompression_speed / config.iterations
    return results


def assessment(ratio: float) -> str:
    """Describe how well a compression ratio did."""
    if ratio > 1.5:
        return "🟢 Excellent compression"
    if ratio > 1.1:
        return "🟡 Good compression"
    if ratio > 0.9:
        return "🟠 Slight compression"
    return "🔴 Expansion (overhead)"


def format_results(config: TDTBenchmarkConfig, results: TDTBenchmarkResults) -> list[str]:
    """Lines of a readable report of one benchmark."""
    return [
        f"Results for {config.name}:",
        f"  Compression Ratio:     {results.avg_compression_ratio:.2f}x",
        f"  Compression Speed:     {results.avg_compression_speed_mbps:.1f} MB/s",
        f"  Decompression Speed:   {results.avg_decompression_speed_mbps:.1f} MB/s",
        f"  Compression Time:      {results.min_compression_time_ms:.2f} - "
        f"{results.max_compression_time_ms:.2f} ms",
        f"  Decompression Time:    {results.min_decompression_time_ms:.2f} - "
        f"{results.max_decompression_time_ms:.2f} ms",
        f"  Correctness:           {'✅ PASS' if results.all_correct else '❌ FAIL'}",
        f"  Assessment:            {assessment(results.avg_compression_ratio)}",
    ]


def run_comprehensive_benchmark(
    configs: Optional[Sequence[tuple[TDTBenchmarkConfig, DataType]]] = None,
) -> list[TDTBenchmarkResults]:
    """Run every benchmark, log each report and a summary, and return the results."""
    if configs is None:
        configs = DEFAULT_BENCHMARKS
    logger.info("=== TDT Compression Protocol Benchmark Suite ===")
    logger.info("Testing realistic machine learning tensor workloads")

    all_results = []
    for config, data_type in configs:
        results = run_benchmark(config, data_type)
        logger.info("")
        for line in format_results(config, results):
            logger.info("%s", line)
        all_results.append(results)

    if not all_results:
        return all_results

    count = len(all_results)
    logger.info("=== BENCHMARK SUMMARY ===")
    logger.info(
        "Average Compression Ratio:    %.2fx",
        sum(r.avg_compression_ratio for r in all_results) / count,
    )
    logger.info(
        "Average Compression Speed:    %.1f MB/s",
        sum(r.avg_compression_speed_mbps for r in all_results) / count,
    )
    logger.info(
        "Average Decompression Speed:  %.1f MB/s",
        sum(r.avg_decompression_speed_mbps for r in all_results) / count,
    )
    all_passed = all(r.all_correct for r in all_results)
    logger.info(
        "Overall Correctness:          %s",
        "✅ ALL PASS" if all_passed else "❌ SOME FAILURES",
    )
    return all_results


@dataclass(frozen=True)
class NetworkCondition:
    """Network and CPU state with the compression decision expected under it."""

    name: str
    bandwidth_mbps: float
    cpu_usage: float
    should_compress: bool


NETWORK_CONDITIONS = [
    NetworkCondition("High-speed network", 1000.0, 0.3, False),
    NetworkCondition("Medium network", 100.0, 0.4, False),
    NetworkCondition("Slow network", 25.0, 0.4, True),
    NetworkCondition("Very slow network", 10.0, 0.5, True),
    NetworkCondition("Slow + high CPU", 25.0, 0.9, False),
]


def benchmark_network_sensitivity() -> list[tuple[NetworkCondition, bool]]:
    """Check the compression decision under each condition; return (condition, decision) pairs."""
    logger.info("=== Network Condition Sensitivity Benchmark ===")
    tensor = fill_tensor(256 * 256 * 32, DataType.WEIGHTS)
    outcomes = []
    for condition in NETWORK_CONDITIONS:
        protocol = TDTCompressionProtocol()
        protocol.update_network_metrics(condition.bandwidth_mbps, 10.0)
        protocol.update_system_metrics(condition.cpu_usage)
        will_compress = protocol.should_transform(tensor)
        logger.info("Condition: %s", condition.name)
        logger.info(
            "  Bandwidth: %s Mbps, CPU: %s%%",
            condition.bandwidth_mbps,
            condition.cpu_usage * 100,
        )
        logger.info("  Expected: %s", "COMPRESS" if condition.should_compress else "PASSTHROUGH")
        logger.info("  Actual: %s", "COMPRESS" if will_compress else "PASSTHROUGH")
        logger.info(
            "  Result: %s",
            "✅ CORRECT" if will_compress == condition.should_compress else "❌ WRONG",
        )
        outcomes.append((condition, will_compress))
    return outcomes


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the compression suite and the network sensitivity check."""
    parser = argparse.ArgumentParser(description="TDT compression benchmarks.")
    parser.add_argument("--iterations", type=int, help="iterations for every benchmark")
    parser.add_argument(
        "--sensitivity-only", action="store_true", help="only run the network sensitivity check"
    )
    args = parser.parse_args(argv)
    if args.iterations is not None and args.iterations <= 0:
        parser.error("--iterations must be positive")

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logger.info("TDT Compression Protocol Benchmark Suite")
    logger.info("========================================")

    try:
        if not args.sensitivity_only:
            configs = DEFAULT_BENCHMARKS
            if args.iterations is not None:
                configs = [
                    (replace(config, iterations=args.iterations), data_type)
                    for config, data_type in configs
                ]
            run_comprehensive_benchmark(configs)
        benchmark_network_sensitivity()
    except Exception as exc:
        logger.error("Benchmark failed: %s", exc)
        return 1
    logger.info("🎉 Benchmark suite completed successfully!")
    return 0