"""
Pixel samplers: reduce an RGBA image buffer to a bounded list of candidate
pixels for the quantizers.

Every sampler has the same signature, `sampler(image, config, rng)`, and is
reachable through the SAMPLERS table keyed by SamplingStrategy. Transparent
pixels (alpha < 128) are never returned.
"""
import math
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

import numpy as np
from scipy import ndimage
from scipy.spatial.distance import pdist
from sklearn.neighbors import NearestNeighbors

from colorengine.models import ImageBuffer, Pixel, SamplingConfig, SamplingResult, SamplingStrategy

# Luma weights used for gradient detection (ITU-R BT.601)
LUMA_WEIGHTS = (0.299, 0.587, 0.114)
EDGE_STRENGTH_THRESHOLD = 0.1
DIVERSITY_SAMPLE_LIMIT = 500
MAX_RGB_DISTANCE = 255.0 * math.sqrt(3.0)

Sampler = Callable[[ImageBuffer, SamplingConfig, np.random.Generator], List[Pixel]]


def luma(image: ImageBuffer) -> np.ndarray:
    """HxW float array of BT.601 luma."""
    rgb = image.rgba()[:, :, :3].astype(np.float64)
    wr, wg, wb = LUMA_WEIGHTS
    return wr * rgb[:, :, 0] + wg * rgb[:, :, 1] + wb * rgb[:, :, 2]


def gradient_magnitude(image: ImageBuffer) -> np.ndarray:
    """
    Sobel gradient magnitude of the luma channel.

    Border pixels reuse their nearest in-image neighbour ('nearest' mode), so a
    flat image has zero gradient everywhere including its edges.

    Returns:
        np.ndarray: HxW float64 array, same shape as the image.
    """
    if image.total_pixels == 0:
        return np.zeros((image.height, image.width))
    gray = luma(image)
    gx = ndimage.sobel(gray, axis=1, mode="nearest")
    gy = ndimage.sobel(gray, axis=0, mode="nearest")
    return np.hypot(gx, gy)


def _pixels_at(image: ImageBuffer, indices: np.ndarray, importance: Optional[np.ndarray] = None) -> List[Pixel]:
    flat = image.flat_rgba()
    pixels = []
    for i in indices.tolist():
        r, g, b, a = flat[i].tolist()
        y, x = divmod(i, image.width)
        score = float(importance[i]) if importance is not None else 0.0
        pixels.append(Pixel(x, y, r, g, b, a, score))
    return pixels


def _evenly_spaced(indices: np.ndarray, limit: int) -> np.ndarray:
    if len(indices) <= limit:
        return indices
    picks = np.linspace(0, len(indices) - 1, limit).astype(np.intp)
    return indices[picks]


def _normalized(values: np.ndarray) -> np.ndarray:
    peak = values.max() if values.size else 0.0
    if peak <= 0:
        return np.zeros_like(values, dtype=np.float64)
    return values / peak


def uniform_sample(image: ImageBuffer, config: SamplingConfig, rng: Optional[np.random.Generator] = None) -> List[Pixel]:
    """Stride sampling: every `total // max_samples`-th opaque pixel, capped at max_samples."""
    total = image.total_pixels
    if total == 0:
        return []
    step = max(1, total // config.max_samples)
    indices = np.arange(0, total, step)
    indices = indices[image.opaque_mask()[indices]]
    return _pixels_at(image, indices[:config.max_samples])


def importance_sample(image: ImageBuffer, config: SamplingConfig, rng: Optional[np.random.Generator] = None) -> List[Pixel]:
    """
    Gradient-weighted sampling.

    Keeps every opaque pixel whose Sobel magnitude is strictly above the
    configured percentile of all magnitudes, plus a random baseline fraction of
    the rest so flat regions are still represented.
    """
    total = image.total_pixels
    if total == 0:
        return []
    rng = rng if rng is not None else np.random.default_rng()
    magnitude = gradient_magnitude(image).reshape(-1)
    opaque = image.opaque_mask()

    threshold = np.percentile(magnitude, config.importance_percentile)
    selected = (magnitude > threshold) | (rng.random(total) < config.baseline_fraction)
    selected &= opaque
    indices = np.flatnonzero(selected)

    if len(indices) == 0 and opaque.any():
        # tiny or perfectly flat images: fall back to the single strongest pixel
        candidates = np.flatnonzero(opaque)
        indices = candidates[[int(np.argmax(magnitude[candidates]))]]

    indices = _evenly_spaced(indices, config.max_samples)
    return _pixels_at(image, indices, _normalized(magnitude))


def edge_sample(image: ImageBuffer, config: SamplingConfig, rng: Optional[np.random.Generator] = None) -> List[Pixel]:
    """
    Edge-priority sampling.

    Pixels whose normalised edge strength exceeds 0.1 are taken strongest
    first, skipping any that fall closer than the minimum spacing to an
    already accepted pixel. Images without edges are sampled uniformly.
    """
    total = image.total_pixels
    if total == 0:
        return []
    strength = _normalized(gradient_magnitude(image).reshape(-1))
    candidates = np.flatnonzero(image.opaque_mask() & (strength > EDGE_STRENGTH_THRESHOLD))
    if len(candidates) == 0:
        return uniform_sample(image, config, rng)

    order = candidates[np.argsort(-strength[candidates], kind="stable")]
    spacing = 0.5 * math.sqrt(total / config.max_samples)

    if spacing <= 1.0:
        # distinct pixels are always at least 1 apart
        accepted = order[:config.max_samples]
        return _pixels_at(image, accepted, strength)

    spacing_sq = spacing * spacing
    grid: Dict[tuple, List[tuple]] = {}
    accepted = []
    for i in order.tolist():
        y, x = divmod(i, image.width)
        cx, cy = int(x // spacing), int(y // spacing)
        crowded = False
        for nx in (cx - 1, cx, cx + 1):
            for ny in (cy - 1, cy, cy + 1):
                for px, py in grid.get((nx, ny), ()):
                    if (px - x) ** 2 + (py - y) ** 2 < spacing_sq:
                        crowded = True
                        break
                if crowded:
                    break
            if crowded:
                break
        if crowded:
            continue
        grid.setdefault((cx, cy), []).append((x, y))
        accepted.append(i)
        if len(accepted) >= config.max_samples:
            break
    return _pixels_at(image, np.asarray(accepted, dtype=np.intp), strength)


def hybrid_sample(image: ImageBuffer, config: SamplingConfig, rng: Optional[np.random.Generator] = None) -> List[Pixel]:
    """
    Blend of uniform, importance and edge sampling.

    The sample budget is split by the spatial/color/edge weights (floors, the
    remainder goes to edge sampling); duplicate coordinates keep their first
    occurrence.
    """
    rng = rng if rng is not None else np.random.default_rng()
    spatial_w, color_w, _ = config.normalized_weights()
    uniform_n = int(math.floor(config.max_samples * spatial_w))
    importance_n = int(math.floor(config.max_samples * color_w))
    edge_n = config.max_samples - uniform_n - importance_n

    combined: List[Pixel] = []
    for sampler, count in ((uniform_sample, uniform_n), (importance_sample, importance_n), (edge_sample, edge_n)):
        if count > 0:
            combined.extend(sampler(image, replace(config, max_samples=count), rng))

    seen = set()
    unique = []
    for pixel in combined:
        key = (pixel.x, pixel.y)
        if key in seen:
            continue
        seen.add(key)
        unique.append(pixel)
    return unique


SAMPLERS: Dict[SamplingStrategy, Sampler] = {
    SamplingStrategy.UNIFORM: uniform_sample,
    SamplingStrategy.IMPORTANCE: importance_sample,
    SamplingStrategy.EDGE: edge_sample,
    SamplingStrategy.HYBRID: hybrid_sample,
}


def sample_pixels(image: ImageBuffer, strategy, config: Optional[SamplingConfig] = None,
                  rng: Optional[np.random.Generator] = None) -> List[Pixel]:
    config = config or SamplingConfig()
    return SAMPLERS[SamplingStrategy(strategy)](image, config, rng)


# ---------------------------------------------------------------------------
# Sampling quality metadata
# ---------------------------------------------------------------------------

def spatial_distribution_score(samples: List[Pixel]) -> float:
    """1 - coefficient of variation of nearest-neighbour spacing, floored at 0."""
    if len(samples) < 2:
        return 0.0
    coords = np.array([(p.x, p.y) for p in samples], dtype=np.float64)
    distances, _ = NearestNeighbors(n_neighbors=2).fit(coords).kneighbors(coords)
    spacing = distances[:, 1]
    mean = spacing.mean()
    if mean == 0:
        return 0.0
    return float(max(0.0, 1.0 - spacing.std() / mean))


def edge_coverage_score(image: ImageBuffer, samples: List[Pixel], percentile: float = 80.0) -> float:
    """Fraction of the image's high-gradient pixels that ended up in the sample."""
    if not samples or image.total_pixels == 0:
        return 0.0
    magnitude = gradient_magnitude(image).reshape(-1)
    opaque = image.opaque_mask()
    if not opaque.any():
        return 0.0
    threshold = np.percentile(magnitude[opaque], percentile)
    high = opaque & (magnitude > threshold) & (magnitude > 0)
    high_count = int(high.sum())
    if high_count == 0:
        return 0.0
    sampled = np.array([p.y * image.width + p.x for p in samples], dtype=np.intp)
    captured = int(high[np.unique(sampled)].sum())
    return captured / high_count


def representativeness_score(image: ImageBuffer, samples: List[Pixel]) -> float:
    """Share of the image's color variance retained by the sample, capped at 1."""
    if not samples:
        return 0.0
    flat = image.flat_rgba()
    opaque_rgb = flat[image.opaque_mask(), :3].astype(np.float64)
    image_variance = opaque_rgb.var(axis=0).sum() if len(opaque_rgb) else 0.0
    if image_variance == 0:
        return 1.0
    sample_rgb = np.array([(p.r, p.g, p.b) for p in samples], dtype=np.float64)
    return float(min(1.0, sample_rgb.var(axis=0).sum() / image_variance))


def diversity_score(samples: List[Pixel]) -> float:
    """Mean pairwise RGB distance of (at most 500) samples, normalised to [0, 1]."""
    if len(samples) < 2:
        return 0.0
    picks = _evenly_spaced(np.arange(len(samples)), DIVERSITY_SAMPLE_LIMIT)
    rgb = np.array([(samples[i].r, samples[i].g, samples[i].b) for i in picks.tolist()], dtype=np.float64)
    return float(min(1.0, pdist(rgb).mean() / MAX_RGB_DISTANCE))


def sample_image(image: ImageBuffer, strategy=SamplingStrategy.HYBRID, config: Optional[SamplingConfig] = None,
                 rng: Optional[np.random.Generator] = None) -> SamplingResult:
    """
    Run one sampling strategy and score the result.

    Returns:
        SamplingResult: the samples plus timing (ms) and the four quality scores.
    """
    strategy = SamplingStrategy(strategy)
    config = config or SamplingConfig()
    start = time.perf_counter()
    samples = SAMPLERS[strategy](image, config, rng)
    elapsed = (time.perf_counter() - start) * 1000.0
    return SamplingResult(
        samples=samples,
        strategy=strategy.value,
        sampling_time=elapsed,
        representativeness=representativeness_score(image, samples),
        diversity_score=diversity_score(samples),
        edge_coverage=edge_coverage_score(image, samples, config.importance_percentile),
        spatial_distribution=spatial_distribution_score(samples),
    )


@dataclass
class SamplingComparison:
    results: Dict[str, SamplingResult]
    scores: Dict[str, float]
    winner: str


def sampling_overall_score(result: SamplingResult) -> float:
    return (result.representativeness * 0.3
            + result.diversity_score * 0.25
            + result.edge_coverage * 0.25
            + result.spatial_distribution * 0.2)


def compare_sampling_strategies(image: ImageBuffer, config: Optional[SamplingConfig] = None,
                                rng: Optional[np.random.Generator] = None) -> SamplingComparison:
    """Run all four strategies on one image; the winner is the first strictly best score."""
    rng = rng if rng is not None else np.random.default_rng()
    results = {}
    scores = {}
    winner = None
    for strategy in SamplingStrategy:
        result = sample_image(image, strategy, config, rng)
        results[strategy.value] = result
        scores[strategy.value] = sampling_overall_score(result)
        if winner is None or scores[strategy.value] > scores[winner]:
            winner = strategy.value
    return SamplingComparison(results=results, scores=scores, winner=winner)
