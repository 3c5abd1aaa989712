from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Union, Sequence

import numpy as np

MAX_SAMPLE_COUNT = 15000
ALPHA_OPAQUE_THRESHOLD = 128


class InvalidConfigurationError(ValueError):
    """Raised when an extraction or sampling config cannot be honoured."""


class Algorithm(str, Enum):
    OCTREE = "octree"
    MEDIAN_CUT = "mediancut"
    KMEANS = "kmeans"
    HYBRID = "hybrid"


class SamplingStrategy(str, Enum):
    UNIFORM = "uniform"
    IMPORTANCE = "importance"
    EDGE = "edge"
    HYBRID = "hybrid"


class DeltaEMethod(str, Enum):
    CIE76 = "CIE76"
    CIE94 = "CIE94"
    CIEDE2000 = "CIEDE2000"


class Temperature(str, Enum):
    WARM = "warm"
    COOL = "cool"
    NEUTRAL = "neutral"


def clamp_channel(value: float) -> int:
    """Round half-up and clamp a channel value into [0, 255]."""
    if value != value:  # NaN
        return 0
    return int(min(255, max(0, int(np.floor(value + 0.5)))))


@dataclass(frozen=True)
class RGBColor:
    r: int
    g: int
    b: int

    def __post_init__(self):
        # Out-of-range channels are clamped, never rejected.
        object.__setattr__(self, "r", clamp_channel(self.r))
        object.__setattr__(self, "g", clamp_channel(self.g))
        object.__setattr__(self, "b", clamp_channel(self.b))

    def as_tuple(self):
        return (self.r, self.g, self.b)

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


@dataclass(frozen=True)
class LABColor:
    l: float
    a: float
    b: float

    def as_tuple(self):
        return (self.l, self.a, self.b)


@dataclass(frozen=True)
class XYZColor:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class HSVColor:
    h: float  # 0-360
    s: float  # 0-100
    v: float  # 0-100


@dataclass(frozen=True)
class Pixel:
    x: int
    y: int
    r: int
    g: int
    b: int
    alpha: int = 255
    importance: float = 0.0

    @property
    def color(self) -> RGBColor:
        return RGBColor(self.r, self.g, self.b)

    @property
    def is_opaque(self) -> bool:
        return self.alpha >= ALPHA_OPAQUE_THRESHOLD


@dataclass
class ExtractedColor:
    color: RGBColor
    frequency: float
    importance: float
    representativeness: float

    def __post_init__(self):
        self.frequency = _unit(self.frequency)
        self.importance = _unit(self.importance)
        self.representativeness = _unit(self.representativeness)

    @property
    def hex(self) -> str:
        return self.color.hex

    @property
    def weighted_score(self) -> float:
        return self.frequency * 0.4 + self.importance * 0.3 + self.representativeness * 0.3

    def to_dict(self) -> dict:
        return {
            "rgb": list(self.color.as_tuple()),
            "hex": self.hex,
            "frequency": self.frequency,
            "importance": self.importance,
            "representativeness": self.representativeness,
        }


def _unit(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def _clamped_bytes(arr: np.ndarray) -> np.ndarray:
    """Channel values as uint8 under the same round-and-clamp rule as clamp_channel."""
    if arr.dtype == np.uint8:
        return arr
    values = np.nan_to_num(arr.astype(np.float64), nan=0.0)
    return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


class ImageBuffer:
    """
    A raw RGBA pixel buffer: `width * height` pixels, 4 bytes each, row-major.

    The buffer is a caller contract: negative dimensions or a data length that
    doesn't match `width * height * 4` raise ValueError straight away. Non-uint8
    channel values are rounded and clamped into [0, 255], like RGBColor.
    """

    def __init__(self, width: int, height: int, data: Union[bytes, bytearray, Sequence[int], np.ndarray]):
        if width < 0 or height < 0:
            raise ValueError(f"Image dimensions must be non-negative, got {width}x{height}.")
        arr = np.asarray(data)
        if arr.dtype != np.uint8:
            if isinstance(data, (bytes, bytearray)):
                arr = np.frombuffer(bytes(data), dtype=np.uint8)
            else:
                arr = _clamped_bytes(arr)
        arr = arr.reshape(-1)
        expected = width * height * 4
        if arr.size != expected:
            raise ValueError(
                f"RGBA buffer length {arr.size} does not match {width}x{height}x4 = {expected}."
            )
        self.width = int(width)
        self.height = int(height)
        self.data = arr

    @classmethod
    def from_array(cls, array: np.ndarray) -> "ImageBuffer":
        """Build from an HxWx3 (opaque) or HxWx4 uint8 array."""
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise ValueError(f"Expected an HxWx3 or HxWx4 array, got shape {array.shape}.")
        h, w, channels = array.shape
        if channels == 3:
            alpha = np.full((h, w, 1), 255, dtype=np.uint8)
            array = np.concatenate([_clamped_bytes(array), alpha], axis=2)
        return cls(w, h, _clamped_bytes(array).reshape(-1))

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    def rgba(self) -> np.ndarray:
        """HxWx4 view of the buffer."""
        return self.data.reshape(self.height, self.width, 4)

    def flat_rgba(self) -> np.ndarray:
        return self.data.reshape(-1, 4)

    def opaque_mask(self) -> np.ndarray:
        return self.flat_rgba()[:, 3] >= ALPHA_OPAQUE_THRESHOLD

    def __repr__(self):
        return f"ImageBuffer({self.width}x{self.height})"


@dataclass(frozen=True)
class ExtractionConfig:
    target_color_count: int = 8
    max_color_count: int = 16
    quality_threshold: float = 0.8
    color_distance_threshold: float = 15.0
    algorithm: Algorithm = Algorithm.HYBRID
    sampling_strategy: SamplingStrategy = SamplingStrategy.HYBRID
    max_iterations: int = 100
    convergence_threshold: float = 1.0
    max_samples: Optional[int] = None
    use_lab_lut: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "algorithm", Algorithm(self.algorithm))
        except ValueError:
            raise InvalidConfigurationError(
                f"Unknown algorithm '{self.algorithm}'. Expected one of: "
                f"{', '.join(a.value for a in Algorithm)}."
            ) from None
        try:
            object.__setattr__(self, "sampling_strategy", SamplingStrategy(self.sampling_strategy))
        except ValueError:
            raise InvalidConfigurationError(
                f"Unknown sampling strategy '{self.sampling_strategy}'. Expected one of: "
                f"{', '.join(s.value for s in SamplingStrategy)}."
            ) from None

        if self.target_color_count <= 0:
            raise InvalidConfigurationError(
                f"target_color_count must be positive, got {self.target_color_count}."
            )
        if self.max_color_count < self.target_color_count:
            raise InvalidConfigurationError(
                f"max_color_count ({self.max_color_count}) is smaller than "
                f"target_color_count ({self.target_color_count})."
            )
        if self.max_iterations <= 0:
            raise InvalidConfigurationError(f"max_iterations must be positive, got {self.max_iterations}.")
        if self.convergence_threshold < 0 or self.color_distance_threshold < 0:
            raise InvalidConfigurationError("Distance and convergence thresholds must be non-negative.")
        if not 0.0 <= self.quality_threshold <= 1.0:
            raise InvalidConfigurationError(
                f"quality_threshold must lie in [0, 1], got {self.quality_threshold}."
            )
        if self.max_samples is not None and self.max_samples <= 0:
            raise InvalidConfigurationError(f"max_samples must be positive, got {self.max_samples}.")

    @property
    def sample_count(self) -> int:
        if self.max_samples is not None:
            return min(self.max_samples, MAX_SAMPLE_COUNT)
        return min(max(self.target_color_count * 100, 1000), MAX_SAMPLE_COUNT)

    def sampling_config(self) -> "SamplingConfig":
        return SamplingConfig(max_samples=self.sample_count)


@dataclass(frozen=True)
class SamplingConfig:
    max_samples: int = 10000
    spatial_weight: float = 0.4
    color_weight: float = 0.3
    edge_weight: float = 0.3
    importance_percentile: float = 80.0
    baseline_fraction: float = 0.1

    def __post_init__(self):
        if self.max_samples <= 0:
            raise InvalidConfigurationError(f"max_samples must be positive, got {self.max_samples}.")
        weights = (self.spatial_weight, self.color_weight, self.edge_weight)
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise InvalidConfigurationError(
                f"Sampling weights must be non-negative with a positive sum, got {weights}."
            )
        if not 0.0 <= self.importance_percentile <= 100.0:
            raise InvalidConfigurationError("importance_percentile must lie in [0, 100].")
        if not 0.0 <= self.baseline_fraction <= 1.0:
            raise InvalidConfigurationError("baseline_fraction must lie in [0, 1].")
        object.__setattr__(self, "max_samples", min(int(self.max_samples), MAX_SAMPLE_COUNT))

    def normalized_weights(self):
        total = self.spatial_weight + self.color_weight + self.edge_weight
        return (self.spatial_weight / total, self.color_weight / total, self.edge_weight / total)


@dataclass
class ExtractionResult:
    colors: List[ExtractedColor]
    algorithm: str
    extraction_time: float  # milliseconds
    quality_score: float
    memory_usage: int = 0  # bytes
    meets_quality_threshold: bool = False

    @property
    def color_count(self) -> int:
        return len(self.colors)

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm,
            "extractionTime": self.extraction_time,
            "qualityScore": self.quality_score,
            "memoryUsage": self.memory_usage,
            "colorCount": self.color_count,
            "meetsQualityThreshold": self.meets_quality_threshold,
            "colors": [c.to_dict() for c in self.colors],
        }


@dataclass
class SamplingResult:
    samples: List[Pixel]
    strategy: str
    sampling_time: float  # milliseconds
    representativeness: float = 0.0
    diversity_score: float = 0.0
    edge_coverage: float = 0.0
    spatial_distribution: float = 0.0

    @property
    def sample_count(self) -> int:
        return len(self.samples)
