"""
One-call palette extraction: sample, quantize, score.
"""
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Union

import numpy as np

from colorengine.color_space import pairwise_delta_e76, relative_luminance, rgb_to_hsv, rgb_to_lab_batch
from colorengine.models import ExtractedColor, ExtractionConfig, ExtractionResult, ImageBuffer, RGBColor
from colorengine.quality import measure, quality_score
from colorengine.quantize import QUANTIZERS, as_rgb_array
from colorengine.sampling import sample_pixels


def _as_image(image) -> ImageBuffer:
    if isinstance(image, ImageBuffer):
        return image
    if isinstance(image, np.ndarray):
        return ImageBuffer.from_array(image)
    raise TypeError(f"Expected an ImageBuffer or an HxWx3/4 array, got {type(image).__name__}.")


def _run(image: ImageBuffer, config: ExtractionConfig, rng: np.random.Generator) -> List[ExtractedColor]:
    pixels = sample_pixels(image, config.sampling_strategy, config.sampling_config(), rng)
    return QUANTIZERS[config.algorithm](as_rgb_array(pixels), config, rng)


def extract_palette(
    image: Union[ImageBuffer, np.ndarray],
    config: Optional[ExtractionConfig] = None,
    rng: Optional[np.random.Generator] = None,
    measure_memory: bool = True,
    **overrides,
) -> ExtractionResult:
    """
    Extract a palette from an RGBA image.

    Args:
        image: an ImageBuffer, or an HxWx3 / HxWx4 uint8 array.
        config (ExtractionConfig, optional): defaults to ExtractionConfig().
        rng (np.random.Generator, optional): random source for sampling and
            K-means seeding. Defaults to default_rng(config.seed).
        measure_memory (bool): trace peak allocation with tracemalloc. When
            False the run is untraced and memory_usage is 0.
        **overrides: ExtractionConfig fields to replace, e.g. algorithm="octree".

    Returns:
        ExtractionResult: colors, timing (ms), peak traced memory and quality.
        A fully transparent image gives an empty, zero-scored result.

    Raises:
        InvalidConfigurationError: if the config (after overrides) is invalid.
    """
    config = config or ExtractionConfig()
    if overrides:
        config = replace(config, **overrides)
    if rng is None:
        rng = np.random.default_rng(config.seed)
    buffer = _as_image(image)

    colors, elapsed, peak = measure(_run, buffer, config, rng, trace_memory=measure_memory)
    score = quality_score(colors)
    return ExtractionResult(
        colors=colors,
        algorithm=config.algorithm.value,
        extraction_time=elapsed,
        quality_score=score,
        memory_usage=peak,
        meets_quality_threshold=bool(colors) and score >= config.quality_threshold,
    )


@dataclass
class PaintingAnalysis:
    light: List[RGBColor] = field(default_factory=list)
    mid: List[RGBColor] = field(default_factory=list)
    dark: List[RGBColor] = field(default_factory=list)
    warm: List[RGBColor] = field(default_factory=list)
    neutral: List[RGBColor] = field(default_factory=list)
    cool: List[RGBColor] = field(default_factory=list)
    diversity: float = 0.0
    coverage: float = 0.0


def analyze_painting_colors(colors: Sequence[Union[RGBColor, ExtractedColor]]) -> PaintingAnalysis:
    """
    Group palette colors the way a painter mixes them.

    Lightness: luminance > 0.7 is light, > 0.3 mid, else dark. Temperature by
    HSV hue: 0-60 and 300-360 warm, 180-240 cool, anything else neutral
    (achromatic colors have hue 0 and so count as warm). diversity is the mean
    pairwise Delta E 76 over 50, capped at 1; coverage is the luminance range.
    """
    rgbs = [c.color if isinstance(c, ExtractedColor) else c for c in colors]
    analysis = PaintingAnalysis()
    if not rgbs:
        return analysis

    luminances = []
    for color in rgbs:
        lum = relative_luminance(color)
        luminances.append(lum)
        if lum > 0.7:
            analysis.light.append(color)
        elif lum > 0.3:
            analysis.mid.append(color)
        else:
            analysis.dark.append(color)

        hue = rgb_to_hsv(color).h
        if hue <= 60 or hue >= 300:
            analysis.warm.append(color)
        elif 180 <= hue <= 240:
            analysis.cool.append(color)
        else:
            analysis.neutral.append(color)

    if len(rgbs) > 1:
        labs = rgb_to_lab_batch(np.array([c.as_tuple() for c in rgbs]))
        analysis.diversity = min(1.0, float(pairwise_delta_e76(labs).mean()) / 50.0)
    analysis.coverage = max(luminances) - min(luminances)
    return analysis
