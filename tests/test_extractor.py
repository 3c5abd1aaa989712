# tests/test_extractor.py
import numpy as np
import pytest

from colorengine import extractor, images
from colorengine.color_space import relative_luminance
from colorengine.models import Algorithm, InvalidConfigurationError, RGBColor


def test_vertical_gradient_palette_spans_light_and_dark():
    image = images.vertical_gradient(64, 64)
    result = extractor.extract_palette(image, sampling_strategy="uniform", seed=1)
    assert 0 < result.color_count <= 8
    luminances = [relative_luminance(c.color) for c in result.colors]
    assert max(luminances) - min(luminances) > 0.6
    assert result.quality_score > 0.3
    assert result.algorithm == "hybrid"


def test_default_extraction_is_bounded():
    result = extractor.extract_palette(images.vertical_gradient(64, 64), seed=1)
    assert 0 < result.color_count <= 8
    assert 0.0 <= result.quality_score <= 1.0
    assert result.extraction_time >= 0
    assert result.memory_usage >= 0


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_transparent_image_gives_empty_palette(algorithm):
    result = extractor.extract_palette(images.transparent(32, 32), algorithm=algorithm, seed=0)
    assert result.colors == []
    assert result.quality_score == 0.0
    assert result.meets_quality_threshold is False


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_same_seed_gives_same_palette(algorithm):
    image = images.natural(64, 64)
    first = extractor.extract_palette(image, algorithm=algorithm, seed=7)
    second = extractor.extract_palette(image, algorithm=algorithm, seed=7)
    assert first.colors == second.colors


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_one_pixel_image(algorithm):
    pixel = np.array([[[10, 20, 30]]], dtype=np.uint8)
    result = extractor.extract_palette(pixel, algorithm=algorithm, sampling_strategy="uniform", seed=0)
    assert [c.color for c in result.colors] == [RGBColor(10, 20, 30)]


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_palette_size_and_scores_are_bounded(algorithm):
    result = extractor.extract_palette(images.random_palette(60, 40), algorithm=algorithm,
                                       target_color_count=5, seed=2)
    assert 0 < result.color_count <= 5
    for color in result.colors:
        for score in (color.frequency, color.importance, color.representativeness):
            assert 0.0 <= score <= 1.0
    assert result.to_dict()["colorCount"] == result.color_count


def test_quality_threshold_is_reported():
    image = images.color_blocks(60, 60)
    assert extractor.extract_palette(image, quality_threshold=0.0, seed=0).meets_quality_threshold
    assert not extractor.extract_palette(image, quality_threshold=1.0, seed=0).meets_quality_threshold


def test_invalid_config_and_input():
    image = images.solid(4, 4)
    with pytest.raises(InvalidConfigurationError):
        extractor.extract_palette(image, target_color_count=0)
    with pytest.raises(InvalidConfigurationError):
        extractor.extract_palette(image, target_color_count=20, max_color_count=10)
    with pytest.raises(InvalidConfigurationError):
        extractor.extract_palette(image, algorithm="popularity")
    with pytest.raises(TypeError):
        extractor.extract_palette([[1, 2, 3]])


def test_analyze_painting_colors():
    analysis = extractor.analyze_painting_colors([
        RGBColor(255, 255, 255),
        RGBColor(0, 0, 255),
        RGBColor(0, 255, 0),
    ])
    assert analysis.light == [RGBColor(255, 255, 255), RGBColor(0, 255, 0)]
    assert analysis.dark == [RGBColor(0, 0, 255)]
    assert analysis.mid == []
    # white has hue 0 and counts as warm
    assert analysis.warm == [RGBColor(255, 255, 255)]
    assert analysis.cool == [RGBColor(0, 0, 255)]
    assert analysis.neutral == [RGBColor(0, 255, 0)]
    assert analysis.coverage == pytest.approx(0.9278, abs=1e-4)
    assert 0.0 < analysis.diversity <= 1.0


def test_analyze_painting_colors_accepts_extraction_output():
    result = extractor.extract_palette(images.natural(40, 40), seed=0)
    analysis = extractor.analyze_painting_colors(result.colors)
    grouped = len(analysis.light) + len(analysis.mid) + len(analysis.dark)
    assert grouped == result.color_count
    assert extractor.analyze_painting_colors([]) == extractor.PaintingAnalysis()


def test_memory_tracing_can_be_switched_off():
    image = images.natural(48, 48)
    traced = extractor.extract_palette(image, seed=5)
    untraced = extractor.extract_palette(image, seed=5, measure_memory=False)
    assert untraced.memory_usage == 0
    assert traced.memory_usage > 0
    assert untraced.colors == traced.colors
