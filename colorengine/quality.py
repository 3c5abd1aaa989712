"""
Palette quality scoring and algorithm comparison.

A palette is judged on five painting-oriented criteria, each in [0, 1]:
hue diversity, luminance range, warm/cool/neutral balance, mean perceptual
distance and a 30/40/30 highlight/midtone/shadow distribution.
"""
import math
import time
import tracemalloc
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from colorengine.color_space import (
    classify_temperature, pairwise_delta_e76, relative_luminance, rgb_to_hue, rgb_to_lab_batch,
)
from colorengine.models import (
    Algorithm, ExtractedColor, ExtractionConfig, ExtractionResult, ImageBuffer, Temperature,
)
from colorengine.quantize import QUANTIZERS, as_rgb_array
from colorengine.sampling import sample_pixels

METRIC_WEIGHTS = {
    "color_diversity": 0.25,
    "luminance_range": 0.2,
    "temperature_balance": 0.15,
    "perceptual_distance": 0.2,
    "cluster_compactness": 0.2,
}
# Highlight / midtone / shadow shares a painter's palette should roughly follow
TONAL_BALANCE = (0.3, 0.4, 0.3)

PERFORMANCE_BUDGET_MS = 1000.0
MEMORY_BUDGET_BYTES = 100 * 1024 * 1024


@dataclass
class QualityMetrics:
    color_diversity: float = 0.0
    luminance_range: float = 0.0
    temperature_balance: float = 0.0
    perceptual_distance: float = 0.0
    cluster_compactness: float = 0.0
    overall: float = 0.0

    def to_dict(self) -> dict:
        return {
            "colorDiversity": self.color_diversity,
            "luminanceRange": self.luminance_range,
            "temperatureBalance": self.temperature_balance,
            "perceptualDistance": self.perceptual_distance,
            "clusterCompactness": self.cluster_compactness,
            "overallQuality": self.overall,
        }


def _rgb_list(colors: Sequence[ExtractedColor]) -> List[Tuple[int, int, int]]:
    return [c.color.as_tuple() for c in colors]


def circular_variance(angles_deg: Sequence[float]) -> float:
    """1 - mean resultant length: 0 when all angles agree, 1 when they cancel."""
    radians = np.radians(np.asarray(angles_deg, dtype=np.float64))
    if radians.size == 0:
        return 0.0
    resultant = math.hypot(np.cos(radians).sum(), np.sin(radians).sum()) / radians.size
    return 1.0 - resultant


def color_diversity(rgbs) -> float:
    hues = [h for h in (rgb_to_hue(c) for c in rgbs) if h is not None]
    if len(hues) < 2:
        return 0.0
    return min(1.0, circular_variance(hues) / 0.5)


def luminance_range(rgbs) -> float:
    if not rgbs:
        return 0.0
    values = [relative_luminance(c) for c in rgbs]
    return max(values) - min(values)


def temperature_balance(rgbs) -> float:
    if not rgbs:
        return 0.0
    total = len(rgbs)
    classes = [classify_temperature(c) for c in rgbs]
    deviation = sum(abs(classes.count(t) / total - 1.0 / 3.0) for t in Temperature)
    return max(0.0, 1.0 - deviation)


def perceptual_distance(rgbs) -> float:
    if len(rgbs) < 2:
        return 0.0
    average = float(pairwise_delta_e76(rgb_to_lab_batch(np.array(rgbs))).mean())
    return min(1.0, max(0.0, (average - 5.0) / 25.0))


def tonal_groups(rgbs):
    """Split colors, brightest first, into (highlights, midtones, shadows)."""
    ordered = sorted(rgbs, key=relative_luminance, reverse=True)
    total = len(ordered)
    highlight_n = math.ceil(total * TONAL_BALANCE[0])
    shadow_n = math.ceil(total * TONAL_BALANCE[2])
    return ordered[:highlight_n], ordered[highlight_n:total - shadow_n], ordered[total - shadow_n:]


def cluster_compactness(rgbs) -> float:
    if not rgbs:
        return 0.0
    total = len(rgbs)
    groups = tonal_groups(rgbs)
    deviation = sum(abs(len(group) / total - ideal) for group, ideal in zip(groups, TONAL_BALANCE))
    return max(0.0, 1.0 - deviation / 2.0)


def quality_metrics(colors: Sequence[ExtractedColor]) -> QualityMetrics:
    """Score a palette. An empty palette scores 0 on every metric."""
    if not colors:
        return QualityMetrics()
    rgbs = _rgb_list(colors)
    metrics = QualityMetrics(
        color_diversity=color_diversity(rgbs),
        luminance_range=luminance_range(rgbs),
        temperature_balance=temperature_balance(rgbs),
        perceptual_distance=perceptual_distance(rgbs),
        cluster_compactness=cluster_compactness(rgbs),
    )
    metrics.overall = sum(getattr(metrics, name) * weight for name, weight in METRIC_WEIGHTS.items())
    return metrics


def quality_score(colors: Sequence[ExtractedColor]) -> float:
    return quality_metrics(colors).overall


def measure(fn: Callable, *args, trace_memory: bool = True, **kwargs):
    """
    Call fn and report (result, elapsed milliseconds, peak traced bytes).

    tracemalloc is started for the call unless the caller already runs it, in
    which case only the peak is reset and tracing is left on afterwards. With
    trace_memory=False nothing is traced and the peak is reported as 0.
    """
    if not trace_memory:
        start = time.perf_counter()
        result = fn(*args, **kwargs)
        return result, (time.perf_counter() - start) * 1000.0, 0

    already_tracing = tracemalloc.is_tracing()
    if not already_tracing:
        tracemalloc.start()
    tracemalloc.reset_peak()
    start = time.perf_counter()
    try:
        result = fn(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000.0
        _, peak = tracemalloc.get_traced_memory()
    finally:
        if not already_tracing:
            tracemalloc.stop()
    return result, elapsed, peak


# ---------------------------------------------------------------------------
# Algorithm comparison
# ---------------------------------------------------------------------------

@dataclass
class AlgorithmComparison:
    octree: ExtractionResult
    median_cut: ExtractionResult
    kmeans: ExtractionResult
    hybrid: ExtractionResult
    comparison: Dict[str, Dict[str, float]] = field(default_factory=dict)
    winner: str = Algorithm.OCTREE.value

    def results(self) -> Dict[str, ExtractionResult]:
        return {
            Algorithm.OCTREE.value: self.octree,
            Algorithm.MEDIAN_CUT.value: self.median_cut,
            Algorithm.KMEANS.value: self.kmeans,
            Algorithm.HYBRID.value: self.hybrid,
        }


def overall_algorithm_score(quality: float, elapsed_ms: float, memory_bytes: int) -> float:
    performance = max(0.0, 1.0 - elapsed_ms / PERFORMANCE_BUDGET_MS)
    memory = max(0.0, 1.0 - memory_bytes / MEMORY_BUDGET_BYTES)
    return quality * 0.6 + performance * 0.3 + memory * 0.1


def compare_algorithms(image: ImageBuffer, config: Optional[ExtractionConfig] = None,
                       rng: Optional[np.random.Generator] = None) -> AlgorithmComparison:
    """
    Sample the image once and run all four quantizers on the same pixels.

    Each run is timed and its peak allocation traced. The winner is the
    algorithm with the strictly highest overall score; ties keep the earlier
    entry in octree, mediancut, kmeans, hybrid order.
    """
    config = config or ExtractionConfig()
    if rng is None:
        rng = np.random.default_rng(config.seed)
    samples = as_rgb_array(sample_pixels(image, config.sampling_strategy, config.sampling_config(), rng))

    results: Dict[str, ExtractionResult] = {}
    qualities, timings, memory, overall = {}, {}, {}, {}
    winner = None
    for algorithm in Algorithm:
        run_config = replace(config, algorithm=algorithm)
        colors, elapsed, peak = measure(QUANTIZERS[algorithm], samples, run_config, rng)
        score = quality_score(colors)
        results[algorithm.value] = ExtractionResult(
            colors=colors,
            algorithm=algorithm.value,
            extraction_time=elapsed,
            quality_score=score,
            memory_usage=peak,
            meets_quality_threshold=bool(colors) and score >= config.quality_threshold,
        )
        qualities[algorithm.value] = score
        timings[algorithm.value] = elapsed
        memory[algorithm.value] = peak
        overall[algorithm.value] = overall_algorithm_score(score, elapsed, peak)
        if winner is None or overall[algorithm.value] > overall[winner]:
            winner = algorithm.value

    return AlgorithmComparison(
        octree=results[Algorithm.OCTREE.value],
        median_cut=results[Algorithm.MEDIAN_CUT.value],
        kmeans=results[Algorithm.KMEANS.value],
        hybrid=results[Algorithm.HYBRID.value],
        comparison={
            "qualityScores": qualities,
            "performance": timings,
            "memoryUsage": memory,
            "overallScores": overall,
        },
        winner=winner,
    )


# ---------------------------------------------------------------------------
# Baseline vs candidate extractor comparison
# ---------------------------------------------------------------------------

@dataclass
class QualityComparison:
    original: QualityMetrics
    optimized: QualityMetrics
    performance_gain: float
    quality_retention: float


Extractor = Callable[[ImageBuffer], Union[ExtractionResult, Sequence[ExtractedColor]]]


def _colors_of(output) -> Sequence[ExtractedColor]:
    if isinstance(output, ExtractionResult):
        return output.colors
    return output


def compare_quality(image: ImageBuffer, baseline: Extractor, candidate: Extractor) -> QualityComparison:
    """
    Time two extractors on the same image and compare their palettes.

    performance_gain is baseline time / candidate time; quality_retention is
    candidate overall quality / baseline overall quality (1.0 when the
    baseline scores 0).
    """
    start = time.perf_counter()
    baseline_colors = _colors_of(baseline(image))
    baseline_time = time.perf_counter() - start

    start = time.perf_counter()
    candidate_colors = _colors_of(candidate(image))
    candidate_time = time.perf_counter() - start

    original = quality_metrics(baseline_colors)
    optimized = quality_metrics(candidate_colors)
    gain = baseline_time / candidate_time if candidate_time > 0 else float("inf")
    retention = optimized.overall / original.overall if original.overall > 0 else 1.0
    return QualityComparison(original, optimized, gain, retention)


def recommendation(comparison: QualityComparison) -> str:
    gain, retention = comparison.performance_gain, comparison.quality_retention
    if gain > 2 and retention > 0.95:
        return "Excellent optimization - significant speed improvement with minimal quality loss."
    if gain > 1.5 and retention > 0.9:
        return "Good optimization - noticeable speed improvement with acceptable quality retention."
    if retention < 0.85:
        return "Quality concerns - consider adjusting optimization parameters to maintain quality."
    return "Moderate improvement - optimization provides some benefits but consider further tuning."


_REPORT_ROWS = (
    ("Color Diversity", "color_diversity"),
    ("Luminance Range", "luminance_range"),
    ("Temperature Balance", "temperature_balance"),
    ("Perceptual Distance", "perceptual_distance"),
    ("Cluster Compactness", "cluster_compactness"),
)


def format_quality_report(comparison: QualityComparison) -> str:
    """Plain-text side-by-side report of a QualityComparison."""
    lines = [
        "Color Extraction Quality Comparison Report",
        "=" * 42,
        "",
        "Performance:",
        f"- Speed improvement: {comparison.performance_gain:.2f}x faster",
        f"- Quality retention: {comparison.quality_retention * 100:.1f}%",
        "",
        "Quality Metrics Comparison:",
        f"{'':<21}{'Original':>9}  {'Optimized':>9}  {'Change':>7}",
    ]

    def row(label, before, after):
        return f"{label + ':':<21}{before:>9.3f}  {after:>9.3f}  {(after - before) * 100:>6.1f}%"

    for label, name in _REPORT_ROWS:
        lines.append(row(label, getattr(comparison.original, name), getattr(comparison.optimized, name)))
    lines.append("")
    lines.append(row("Overall Quality", comparison.original.overall, comparison.optimized.overall))
    lines.append("")
    lines.append(f"Recommendation: {recommendation(comparison)}")
    return "\n".join(lines) + "\n"
