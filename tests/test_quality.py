# tests/test_quality.py
import tracemalloc

import numpy as np
import pytest

from colorengine import images, quality
from colorengine.models import Algorithm, ExtractedColor, ExtractionConfig, ExtractionResult, RGBColor


def palette(*rgbs):
    return [ExtractedColor(RGBColor(*rgb), 0.1, 0.8, 0.8) for rgb in rgbs]


def test_empty_palette_scores_zero():
    metrics = quality.quality_metrics([])
    assert metrics == quality.QualityMetrics()
    assert quality.quality_score([]) == 0.0


def test_circular_variance():
    assert quality.circular_variance([]) == 0.0
    assert quality.circular_variance([30, 30, 30]) == pytest.approx(0.0, abs=1e-12)
    # opposite hues cancel out
    assert quality.circular_variance([0, 180]) == pytest.approx(1.0)
    # 350 and 10 degrees sit close together on the wheel
    assert quality.circular_variance([350, 10]) < 0.02


def test_color_diversity():
    assert quality.color_diversity([(255, 0, 0), (0, 255, 0), (0, 0, 255)]) == pytest.approx(1.0)
    assert quality.color_diversity([(255, 0, 0), (128, 0, 0)]) == pytest.approx(0.0, abs=1e-12)
    # achromatic colors carry no hue
    assert quality.color_diversity([(0, 0, 0), (255, 255, 255), (255, 0, 0)]) == 0.0


def test_luminance_range_and_perceptual_distance():
    assert quality.luminance_range([(0, 0, 0), (255, 255, 255)]) == pytest.approx(1.0)
    assert quality.luminance_range([(10, 10, 10)]) == 0.0
    assert quality.perceptual_distance([(0, 0, 0), (255, 255, 255)]) == 1.0
    assert quality.perceptual_distance([(40, 40, 40), (40, 40, 40)]) == 0.0
    assert quality.perceptual_distance([(40, 40, 40)]) == 0.0


def test_temperature_balance():
    assert quality.temperature_balance([(255, 0, 0), (0, 0, 255), (128, 128, 128)]) == pytest.approx(1.0)
    assert quality.temperature_balance([(255, 0, 0), (200, 30, 30)]) == 0.0


def test_tonal_groups_and_cluster_compactness():
    grays = [(v, v, v) for v in range(0, 250, 25)]
    highlights, midtones, shadows = quality.tonal_groups(grays)
    assert (len(highlights), len(midtones), len(shadows)) == (3, 4, 3)
    assert highlights[0] == (225, 225, 225)
    assert quality.cluster_compactness(grays) == pytest.approx(1.0)
    # a lone color counts as both highlight and shadow
    assert quality.cluster_compactness([(90, 90, 90)]) == pytest.approx(0.1)
    assert quality.cluster_compactness([]) == 0.0


def test_overall_is_weighted_sum_of_metrics():
    metrics = quality.quality_metrics(palette((255, 0, 0), (0, 200, 40), (20, 20, 230), (250, 250, 250)))
    expected = sum(getattr(metrics, name) * weight for name, weight in quality.METRIC_WEIGHTS.items())
    assert metrics.overall == pytest.approx(expected)
    assert 0.0 < metrics.overall <= 1.0
    assert sum(quality.METRIC_WEIGHTS.values()) == pytest.approx(1.0)
    assert set(metrics.to_dict()) == {
        "colorDiversity", "luminanceRange", "temperatureBalance",
        "perceptualDistance", "clusterCompactness", "overallQuality",
    }


def test_overall_algorithm_score():
    assert quality.overall_algorithm_score(1.0, 0.0, 0) == pytest.approx(1.0)
    assert quality.overall_algorithm_score(0.5, 2000.0, 200 * 1024 * 1024) == pytest.approx(0.3)


def test_measure_reports_result_time_and_peak():
    result, elapsed, peak = quality.measure(lambda n: np.ones(n).sum(), 10000)
    assert result == 10000
    assert elapsed >= 0
    assert peak > 0
    assert not tracemalloc.is_tracing()


def test_measure_leaves_existing_tracing_on():
    tracemalloc.start()
    try:
        quality.measure(sum, [1, 2, 3])
        assert tracemalloc.is_tracing()
    finally:
        tracemalloc.stop()


def test_compare_algorithms_structure_and_winner():
    image = images.natural(48, 48)
    comparison = quality.compare_algorithms(image, ExtractionConfig(target_color_count=6, seed=3))
    results = comparison.results()
    assert list(results) == [a.value for a in Algorithm]
    assert set(comparison.comparison) == {"qualityScores", "performance", "memoryUsage", "overallScores"}

    overall = comparison.comparison["overallScores"]
    assert comparison.winner == max(overall, key=overall.get)
    for name, result in results.items():
        assert result.algorithm == name
        assert 0 < result.color_count <= 6
        assert comparison.comparison["qualityScores"][name] == result.quality_score
        assert overall[name] == pytest.approx(
            quality.overall_algorithm_score(result.quality_score, result.extraction_time, result.memory_usage))


def test_compare_quality_retention():
    image = images.solid(8, 8)
    colors = palette((0, 0, 0), (255, 255, 255), (255, 0, 0))
    same = quality.compare_quality(image, lambda img: colors, lambda img: list(colors))
    assert same.quality_retention == pytest.approx(1.0)
    assert same.original == same.optimized
    assert same.performance_gain > 0

    result = ExtractionResult(colors=colors[:1], algorithm="octree", extraction_time=1.0, quality_score=0.0)
    worse = quality.compare_quality(image, lambda img: colors, lambda img: result)
    assert worse.quality_retention < 1.0

    # a zero-scoring baseline counts as fully retained
    from_empty = quality.compare_quality(image, lambda img: [], lambda img: colors)
    assert from_empty.quality_retention == 1.0


@pytest.mark.parametrize("gain, retention, expected", [
    (3.0, 0.99, "Excellent optimization"),
    (1.6, 0.92, "Good optimization"),
    (1.0, 0.5, "Quality concerns"),
    (1.0, 0.9, "Moderate improvement"),
])
def test_recommendation(gain, retention, expected):
    comparison = quality.QualityComparison(quality.QualityMetrics(), quality.QualityMetrics(), gain, retention)
    assert quality.recommendation(comparison).startswith(expected)


def test_format_quality_report():
    before = quality.QualityMetrics(0.5, 0.5, 0.5, 0.5, 0.5, 0.5)
    after = quality.QualityMetrics(0.4, 0.5, 0.5, 0.5, 0.5, 0.48)
    report = quality.format_quality_report(quality.QualityComparison(before, after, 3.0, 0.96))
    assert "Speed improvement: 3.00x faster" in report
    assert "Quality retention: 96.0%" in report
    assert "Color Diversity:" in report
    assert "-10.0%" in report
    assert report.rstrip().endswith(quality.recommendation(quality.QualityComparison(before, after, 3.0, 0.96)))


def test_measure_without_memory_tracing():
    result, elapsed, peak = quality.measure(lambda n: np.ones(n).sum(), 100, trace_memory=False)
    assert (result, peak) == (100, 0)
    assert elapsed >= 0
    assert not tracemalloc.is_tracing()
