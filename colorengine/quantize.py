"""
The four palette quantizers: Octree, Median-Cut, K-means (K-means++ seeding)
and a Hybrid combiner.

Each takes the sampled pixels (a list of Pixel, or an (N, 3) RGB array) and a
target color count and returns a list of ExtractedColor. All four are also
reachable through `quantize(pixels, config, rng)` and the QUANTIZERS table.
Octree and Median-Cut are fully deterministic; K-means only draws random
numbers from the Generator it is handed.
"""
import math
from typing import Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from colorengine.color_space import rgb_distance, rgb_to_lab_batch, fast_rgb_to_lab_batch
from colorengine.models import Algorithm, ExtractedColor, ExtractionConfig, Pixel, RGBColor, clamp_channel

# (importance, representativeness) each algorithm reports for its colors
OCTREE_CONFIDENCE = (0.8, 0.7)
MEDIAN_CUT_CONFIDENCE = (0.85, 0.9)
KMEANS_CONFIDENCE = (0.9, 0.95)

OCTREE_DEPTH = 8
HYBRID_SHARES = (0.4, 0.3)  # octree, median-cut; k-means gets the remainder
HYBRID_MERGE_DISTANCE = 15.0

PixelInput = Union[Sequence[Pixel], np.ndarray]


def as_rgb_array(pixels: PixelInput) -> np.ndarray:
    """
    Convert quantizer input to an (N, 3) float64 RGB array.

    Transparent Pixel objects are dropped; arrays are taken as-is (an alpha
    column, if present, is used the same way).
    """
    if isinstance(pixels, np.ndarray):
        arr = pixels.astype(np.float64).reshape(-1, pixels.shape[-1] if pixels.ndim > 1 else 3)
        if arr.shape[1] == 4:
            arr = arr[arr[:, 3] >= 128, :3]
        return np.clip(arr[:, :3], 0.0, 255.0)
    rows = [(p.r, p.g, p.b) for p in pixels if p.is_opaque]
    if not rows:
        return np.zeros((0, 3))
    return np.clip(np.array(rows, dtype=np.float64), 0.0, 255.0)


def _mean_color(rgb: np.ndarray) -> RGBColor:
    mean = rgb.mean(axis=0)
    return RGBColor(clamp_channel(mean[0]), clamp_channel(mean[1]), clamp_channel(mean[2]))


# ---------------------------------------------------------------------------
# Octree
# ---------------------------------------------------------------------------

class _OctreeArena:
    """
    Flat storage for one octree build. Node 0 is the root; children are
    addressed by integer id, -1 meaning absent.
    """

    def __init__(self):
        self.children: List[List[int]] = []
        self.count: List[int] = []
        self.sums: List[List[float]] = []
        self.new_node()

    def new_node(self) -> int:
        self.children.append([-1] * 8)
        self.count.append(0)
        self.sums.append([0.0, 0.0, 0.0])
        return len(self.count) - 1

    def insert(self, r: int, g: int, b: int, weight: int = 1):
        node = 0
        for level in range(OCTREE_DEPTH):
            shift = 7 - level
            index = (((r >> shift) & 1) << 2) | (((g >> shift) & 1) << 1) | ((b >> shift) & 1)
            child = self.children[node][index]
            if child < 0:
                child = self.new_node()
                self.children[node][index] = child
            node = child
        self.count[node] += weight
        sums = self.sums[node]
        sums[0] += r * weight
        sums[1] += g * weight
        sums[2] += b * weight

    def leaves(self) -> List[int]:
        """Leaf ids in depth-first, child-index order."""
        found = []
        stack = [(0, 0)]
        while stack:
            node, depth = stack.pop()
            if depth == OCTREE_DEPTH:
                found.append(node)
                continue
            for child in reversed(self.children[node]):
                if child >= 0:
                    stack.append((child, depth + 1))
        return found


def octree_quantize(pixels: PixelInput, target_colors: int) -> List[ExtractedColor]:
    """
    Octree quantization.

    Every distinct color lands in its own depth-8 leaf. While there are more
    leaves than `target_colors`, the leaves with the fewest pixels are dropped
    (ascending count, stable). Dropped pixels are not re-assigned, so the
    returned frequencies may sum to less than 1.
    """
    rgb = as_rgb_array(pixels)
    if target_colors <= 0 or len(rgb) == 0:
        return []
    total = len(rgb)
    colors, counts = np.unique(np.floor(rgb + 0.5).astype(np.int64), axis=0, return_counts=True)

    arena = _OctreeArena()
    for (r, g, b), n in zip(colors.tolist(), counts.tolist()):
        arena.insert(r, g, b, n)

    leaves = arena.leaves()
    excess = len(leaves) - target_colors
    if excess > 0:
        by_count = sorted(range(len(leaves)), key=lambda i: arena.count[leaves[i]])
        for i in by_count[:excess]:
            arena.count[leaves[i]] = 0

    importance, representativeness = OCTREE_CONFIDENCE
    result = []
    for leaf in leaves:
        n = arena.count[leaf]
        if n <= 0:
            continue
        r, g, b = (s / n for s in arena.sums[leaf])
        result.append(ExtractedColor(RGBColor(r, g, b), n / total, importance, representativeness))
    return result[:target_colors]


# ---------------------------------------------------------------------------
# Median-Cut
# ---------------------------------------------------------------------------

def _median_cut_point(values: np.ndarray) -> int:
    """
    Split index for sorted channel values: the median index, moved to the
    nearest edge of its run when it lands inside a run of equal values.
    """
    n = len(values)
    middle = n // 2
    if values[middle - 1] != values[middle]:
        return middle
    left = int(np.searchsorted(values, values[middle], side="left"))
    right = int(np.searchsorted(values, values[middle], side="right"))
    candidates = [c for c in (left, right) if 0 < c < n]
    return min(candidates, key=lambda c: abs(c - n / 2.0))


def median_cut_quantize(pixels: PixelInput, target_colors: int) -> List[ExtractedColor]:
    """
    Median-Cut quantization.

    Boxes are index arrays into the sample; only boxes holding more than one
    distinct color are split. The splittable box with the largest sum of
    channel ranges is cut at the median of its widest channel (ties go to red,
    then green, then blue). Unlike the textbook median split, the cut moves to
    the nearest edge of a run of equal channel values when the median falls
    inside one, so equal values always stay in the same box.
    """
    rgb = as_rgb_array(pixels)
    if target_colors <= 0 or len(rgb) == 0:
        return []
    total = len(rgb)

    boxes: List[np.ndarray] = [np.arange(total)]
    ranges: List[np.ndarray] = [np.ptp(rgb, axis=0)]

    while len(boxes) < target_colors:
        best = -1
        best_span = 0.0
        for i, span in enumerate(ranges):
            spread = float(span.sum())
            if spread > best_span:
                best, best_span = i, spread
        if best < 0:
            break

        box = boxes[best]
        channel = int(np.argmax(ranges[best]))
        ordered = box[np.argsort(rgb[box, channel], kind="stable")]
        middle = _median_cut_point(rgb[ordered, channel])
        low, high = ordered[:middle], ordered[middle:]

        boxes[best] = low
        ranges[best] = np.ptp(rgb[low], axis=0)
        boxes.append(high)
        ranges.append(np.ptp(rgb[high], axis=0))

    importance, representativeness = MEDIAN_CUT_CONFIDENCE
    return [
        ExtractedColor(_mean_color(rgb[box]), len(box) / total, importance, representativeness)
        for box in boxes
    ]


# ---------------------------------------------------------------------------
# K-means
# ---------------------------------------------------------------------------

def _squared_lab_distances(labs: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    diff = labs[:, None, :] - centroids[None, :, :]
    return np.einsum("ijk,ijk->ij", diff, diff)


def kmeans_plus_plus(labs: np.ndarray, k: int, rng: np.random.Generator) -> List[int]:
    """
    K-means++ seeding. Returns the sample indices chosen as initial centroids.

    The first index is uniform; each next one is drawn with probability
    proportional to its squared LAB distance from the nearest chosen centroid.
    """
    n = len(labs)
    chosen = [int(rng.integers(n))]
    nearest = np.sum((labs - labs[chosen[0]]) ** 2, axis=1)
    while len(chosen) < k:
        total = float(nearest.sum())
        if total <= 0:
            remaining = np.setdiff1d(np.arange(n), chosen)
            if len(remaining) == 0:
                break
            index = int(remaining[0])
        else:
            threshold = rng.random() * total
            index = int(np.searchsorted(np.cumsum(nearest), threshold, side="right"))
            index = min(index, n - 1)
        chosen.append(index)
        nearest = np.minimum(nearest, np.sum((labs - labs[index]) ** 2, axis=1))
    return chosen


def kmeans_quantize(
    pixels: PixelInput,
    target_colors: int,
    rng: Optional[np.random.Generator] = None,
    max_iterations: int = 100,
    convergence_threshold: float = 1.0,
    use_lab_lut: bool = False,
) -> List[ExtractedColor]:
    """
    K-means in LAB space with K-means++ initialisation.

    Args:
        pixels: sampled pixels or an (N, 3) RGB array.
        target_colors (int): requested k; clamped to the number of distinct colors.
        rng (np.random.Generator): random source for seeding. A fresh unseeded
            generator is used when omitted.
        max_iterations (int): hard cap on Lloyd iterations.
        convergence_threshold (float): stop once total RGB centroid movement / k
            drops below this.
        use_lab_lut (bool): use the table-driven LAB conversion.

    Returns:
        list[ExtractedColor]: one entry per centroid, frequency = cluster share.
    """
    rgb = as_rgb_array(pixels)
    if target_colors <= 0 or len(rgb) == 0:
        return []
    rng = rng if rng is not None else np.random.default_rng()
    to_lab = fast_rgb_to_lab_batch if use_lab_lut else rgb_to_lab_batch

    total = len(rgb)
    distinct = len(np.unique(rgb, axis=0))
    k = min(target_colors, distinct)

    labs = to_lab(rgb)
    seeds = kmeans_plus_plus(labs, k, rng)
    centroids = rgb[seeds].copy()
    k = len(centroids)

    for _ in range(max_iterations):
        labels = np.argmin(_squared_lab_distances(labs, to_lab(centroids)), axis=1)
        updated = centroids.copy()
        for j in range(k):
            members = rgb[labels == j]
            if len(members):
                updated[j] = members.mean(axis=0)
        movement = float(np.sqrt(np.sum((updated - centroids) ** 2, axis=1)).sum())
        centroids = updated
        if movement / k < convergence_threshold:
            break

    labels = np.argmin(_squared_lab_distances(labs, to_lab(centroids)), axis=1)
    sizes = np.bincount(labels, minlength=k)

    importance, representativeness = KMEANS_CONFIDENCE
    return [
        ExtractedColor(RGBColor(*centroids[j]), sizes[j] / total, importance, representativeness)
        for j in range(k)
    ]


# ---------------------------------------------------------------------------
# Hybrid
# ---------------------------------------------------------------------------

def hybrid_split(target_colors: int):
    """(octree, median-cut, k-means) sub-counts summing to target_colors."""
    octree_n = int(math.floor(target_colors * HYBRID_SHARES[0]))
    median_n = int(math.floor(target_colors * HYBRID_SHARES[1]))
    return octree_n, median_n, target_colors - octree_n - median_n


def merge_similar_colors(colors: List[ExtractedColor], threshold: float = HYBRID_MERGE_DISTANCE) -> List[ExtractedColor]:
    """
    Fold each color into an earlier kept color closer than `threshold` (RGB
    Euclidean), keeping the elementwise max of the three scores.
    """
    kept: List[ExtractedColor] = []
    for candidate in colors:
        for existing in kept:
            if rgb_distance(existing.color.as_tuple(), candidate.color.as_tuple()) < threshold:
                existing.frequency = max(existing.frequency, candidate.frequency)
                existing.importance = max(existing.importance, candidate.importance)
                existing.representativeness = max(existing.representativeness, candidate.representativeness)
                break
        else:
            kept.append(ExtractedColor(candidate.color, candidate.frequency,
                                       candidate.importance, candidate.representativeness))
    return kept


def hybrid_quantize(
    pixels: PixelInput,
    target_colors: int,
    rng: Optional[np.random.Generator] = None,
    max_iterations: int = 100,
    convergence_threshold: float = 1.0,
    use_lab_lut: bool = False,
    merge_distance: float = HYBRID_MERGE_DISTANCE,
) -> List[ExtractedColor]:
    """
    Run Octree, Median-Cut and K-means on 40/30/30 shares of the target count,
    merge near-duplicates and keep the best `target_colors` by weighted score.
    """
    rgb = as_rgb_array(pixels)
    if target_colors <= 0 or len(rgb) == 0:
        return []
    octree_n, median_n, kmeans_n = hybrid_split(target_colors)

    candidates = []
    candidates.extend(octree_quantize(rgb, octree_n))
    candidates.extend(median_cut_quantize(rgb, median_n))
    candidates.extend(kmeans_quantize(rgb, kmeans_n, rng, max_iterations, convergence_threshold, use_lab_lut))

    merged = merge_similar_colors(candidates, merge_distance)
    merged.sort(key=lambda c: c.weighted_score, reverse=True)
    return merged[:target_colors]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

Quantizer = Callable[[np.ndarray, ExtractionConfig, Optional[np.random.Generator]], List[ExtractedColor]]


def _octree(rgb, config, rng):
    return octree_quantize(rgb, config.target_color_count)


def _median_cut(rgb, config, rng):
    return median_cut_quantize(rgb, config.target_color_count)


def _kmeans(rgb, config, rng):
    return kmeans_quantize(rgb, config.target_color_count, rng, config.max_iterations,
                           config.convergence_threshold, config.use_lab_lut)


def _hybrid(rgb, config, rng):
    return hybrid_quantize(rgb, config.target_color_count, rng, config.max_iterations,
                           config.convergence_threshold, config.use_lab_lut, config.color_distance_threshold)


QUANTIZERS: Dict[Algorithm, Quantizer] = {
    Algorithm.OCTREE: _octree,
    Algorithm.MEDIAN_CUT: _median_cut,
    Algorithm.KMEANS: _kmeans,
    Algorithm.HYBRID: _hybrid,
}


def quantize(pixels: PixelInput, config: Optional[ExtractionConfig] = None,
             rng: Optional[np.random.Generator] = None) -> List[ExtractedColor]:
    """Quantize with the algorithm named in `config` (hybrid by default)."""
    config = config or ExtractionConfig()
    if rng is None:
        rng = np.random.default_rng(config.seed)
    return QUANTIZERS[config.algorithm](as_rgb_array(pixels), config, rng)
