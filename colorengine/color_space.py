"""
Color-space math: sRGB <-> linear RGB <-> XYZ <-> CIE LAB (D65), perceptual
distances (CIE76, CIE94, CIEDE2000), luminance and temperature classification.

Every function here clamps out-of-range input instead of rejecting it: sRGB
channels are clamped to [0, 255] and linear values to [0, 1] before any
transfer function is applied.

The *_batch variants take numpy buffers (N x 3, or flat with a stride of 3 or
4 where the 4th value is alpha and ignored) and return the same numbers the
per-pixel functions do.
"""
import math
import re
from typing import Optional, Tuple, Union

import numpy as np
from scipy.spatial.distance import pdist

from colorengine.models import (
    RGBColor, LABColor, XYZColor, HSVColor, DeltaEMethod, Temperature, clamp_channel,
)

# sRGB primaries, D65 white (IEC 61966-2-1)
RGB_TO_XYZ = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
])
XYZ_TO_RGB = np.linalg.inv(RGB_TO_XYZ)

D65_WHITE = (0.95047, 1.0, 1.08883)

LAB_EPSILON = 0.008856
LAB_KAPPA_SLOPE = 7.787
LAB_OFFSET = 16.0 / 116.0
# f(LAB_EPSILON), the break point of the inverse transfer
LAB_F_EPSILON = LAB_EPSILON ** (1.0 / 3.0)

SRGB_THRESHOLD = 0.04045
LINEAR_THRESHOLD = 0.0031308
SRGB_GAMMA = 2.4

LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)
TEMPERATURE_THRESHOLD = 20.0

RGBLike = Union[RGBColor, Tuple[int, int, int]]
LABLike = Union[LABColor, Tuple[float, float, float]]

_M = RGB_TO_XYZ.tolist()
_M_INV = XYZ_TO_RGB.tolist()


def _rgb_tuple(rgb: RGBLike) -> Tuple[float, float, float]:
    if isinstance(rgb, RGBColor):
        return float(rgb.r), float(rgb.g), float(rgb.b)
    r, g, b = rgb
    return float(r), float(g), float(b)


def _lab_tuple(lab: LABLike) -> Tuple[float, float, float]:
    if isinstance(lab, LABColor):
        return lab.l, lab.a, lab.b
    l, a, b = lab
    return float(l), float(a), float(b)


# ---------------------------------------------------------------------------
# Per-pixel conversions
# ---------------------------------------------------------------------------

def srgb_to_linear(c: float) -> float:
    """Gamma-expand one sRGB channel (0-255) to linear light (0-1)."""
    n = min(255.0, max(0.0, float(c))) / 255.0
    if n <= SRGB_THRESHOLD:
        return n / 12.92
    return ((n + 0.055) / 1.055) ** SRGB_GAMMA


def linear_to_srgb(c: float) -> int:
    """Gamma-compress one linear channel (0-1) to an sRGB byte."""
    c = min(1.0, max(0.0, float(c)))
    if c <= LINEAR_THRESHOLD:
        v = c * 12.92
    else:
        v = 1.055 * c ** (1.0 / SRGB_GAMMA) - 0.055
    return clamp_channel(v * 255.0)


def linear_rgb_to_xyz(r: float, g: float, b: float) -> XYZColor:
    return XYZColor(
        _M[0][0] * r + _M[0][1] * g + _M[0][2] * b,
        _M[1][0] * r + _M[1][1] * g + _M[1][2] * b,
        _M[2][0] * r + _M[2][1] * g + _M[2][2] * b,
    )


def xyz_to_linear_rgb(xyz: XYZColor) -> Tuple[float, float, float]:
    x, y, z = xyz.x, xyz.y, xyz.z
    return (
        _M_INV[0][0] * x + _M_INV[0][1] * y + _M_INV[0][2] * z,
        _M_INV[1][0] * x + _M_INV[1][1] * y + _M_INV[1][2] * z,
        _M_INV[2][0] * x + _M_INV[2][1] * y + _M_INV[2][2] * z,
    )


def _lab_f(t: float) -> float:
    if t > LAB_EPSILON:
        return t ** (1.0 / 3.0)
    return LAB_KAPPA_SLOPE * t + LAB_OFFSET


def _lab_f_inverse(f: float) -> float:
    if f > LAB_F_EPSILON:
        return f * f * f
    return (f - LAB_OFFSET) / LAB_KAPPA_SLOPE


def xyz_to_lab(x: float, y: float, z: float) -> LABColor:
    fx = _lab_f(x / D65_WHITE[0])
    fy = _lab_f(y / D65_WHITE[1])
    fz = _lab_f(z / D65_WHITE[2])
    return LABColor(116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz))


def lab_to_xyz(lab: LABLike) -> XYZColor:
    l, a, b = _lab_tuple(lab)
    fy = (l + 16.0) / 116.0
    fx = fy + a / 500.0
    fz = fy - b / 200.0
    return XYZColor(
        _lab_f_inverse(fx) * D65_WHITE[0],
        _lab_f_inverse(fy) * D65_WHITE[1],
        _lab_f_inverse(fz) * D65_WHITE[2],
    )


def rgb_to_xyz(rgb: RGBLike) -> XYZColor:
    r, g, b = _rgb_tuple(rgb)
    return linear_rgb_to_xyz(srgb_to_linear(r), srgb_to_linear(g), srgb_to_linear(b))


def rgb_to_lab(rgb: RGBLike) -> LABColor:
    xyz = rgb_to_xyz(rgb)
    return xyz_to_lab(xyz.x, xyz.y, xyz.z)


def lab_to_rgb(lab: LABLike) -> RGBColor:
    r, g, b = xyz_to_linear_rgb(lab_to_xyz(lab))
    return RGBColor(linear_to_srgb(r), linear_to_srgb(g), linear_to_srgb(b))


def relative_luminance(rgb: RGBLike) -> float:
    """ITU-R BT.709 relative luminance in [0, 1]."""
    r, g, b = _rgb_tuple(rgb)
    wr, wg, wb = LUMINANCE_WEIGHTS
    return wr * srgb_to_linear(r) + wg * srgb_to_linear(g) + wb * srgb_to_linear(b)


def classify_temperature(rgb: RGBLike) -> Temperature:
    r, g, b = _rgb_tuple(rgb)
    warmness = (r + g * 0.5) - (b + g * 0.5)
    if warmness > TEMPERATURE_THRESHOLD:
        return Temperature.WARM
    if warmness < -TEMPERATURE_THRESHOLD:
        return Temperature.COOL
    return Temperature.NEUTRAL


def rgb_to_hsv(rgb: RGBLike) -> HSVColor:
    r, g, b = (c / 255.0 for c in _rgb_tuple(rgb))
    high = max(r, g, b)
    low = min(r, g, b)
    diff = high - low

    h = 0.0
    s = 0.0 if high == 0 else diff / high * 100.0
    v = high * 100.0
    if diff != 0:
        if high == r:
            h = ((g - b) / diff + (6.0 if g < b else 0.0)) * 60.0
        elif high == g:
            h = ((b - r) / diff + 2.0) * 60.0
        else:
            h = ((r - g) / diff + 4.0) * 60.0
    return HSVColor(h % 360.0, s, v)


def rgb_to_hue(rgb: RGBLike) -> Optional[float]:
    """Hue angle in degrees, or None for achromatic (grey) colors."""
    r, g, b = _rgb_tuple(rgb)
    if max(r, g, b) == min(r, g, b):
        return None
    return rgb_to_hsv((r, g, b)).h


def rgb_distance(c1: RGBLike, c2: RGBLike) -> float:
    r1, g1, b1 = _rgb_tuple(c1)
    r2, g2, b2 = _rgb_tuple(c2)
    return math.sqrt((r1 - r2) ** 2 + (g1 - g2) ** 2 + (b1 - b2) ** 2)


def rgb_to_hex(rgb: RGBLike) -> str:
    r, g, b = _rgb_tuple(rgb)
    return RGBColor(r, g, b).hex


_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


def hex_to_rgb(value: str) -> Optional[RGBColor]:
    match = _HEX_RE.match(value.strip())
    if not match:
        return None
    return RGBColor(*(int(part, 16) for part in match.groups()))


# ---------------------------------------------------------------------------
# Delta E
# ---------------------------------------------------------------------------

def delta_e76(lab1: LABLike, lab2: LABLike) -> float:
    l1, a1, b1 = _lab_tuple(lab1)
    l2, a2, b2 = _lab_tuple(lab2)
    return math.sqrt((l1 - l2) ** 2 + (a1 - a2) ** 2 + (b1 - b2) ** 2)


def delta_e94(lab1: LABLike, lab2: LABLike, textiles: bool = False) -> float:
    """CIE94 with graphic-arts weights (or textile weights when asked)."""
    l1, a1, b1 = _lab_tuple(lab1)
    l2, a2, b2 = _lab_tuple(lab2)
    k_l = 2.0 if textiles else 1.0
    k1 = 0.048 if textiles else 0.045
    k2 = 0.014 if textiles else 0.015

    d_l = l1 - l2
    c1 = math.hypot(a1, b1)
    c2 = math.hypot(a2, b2)
    d_c = c1 - c2
    d_h_sq = max(0.0, (a1 - a2) ** 2 + (b1 - b2) ** 2 - d_c ** 2)

    s_c = 1.0 + k1 * c1
    s_h = 1.0 + k2 * c1
    return math.sqrt((d_l / k_l) ** 2 + (d_c / s_c) ** 2 + d_h_sq / (s_h * s_h))


def delta_e2000(lab1: LABLike, lab2: LABLike, k_l: float = 1.0, k_c: float = 1.0, k_h: float = 1.0) -> float:
    """CIEDE2000 following Sharma, Wu & Dalal (2005)."""
    l1, a1, b1 = _lab_tuple(lab1)
    l2, a2, b2 = _lab_tuple(lab2)

    c_bar = (math.hypot(a1, b1) + math.hypot(a2, b2)) / 2.0
    c_bar7 = c_bar ** 7
    g = 0.5 * (1.0 - math.sqrt(c_bar7 / (c_bar7 + 25.0 ** 7)))
    a1p = (1.0 + g) * a1
    a2p = (1.0 + g) * a2
    c1p = math.hypot(a1p, b1)
    c2p = math.hypot(a2p, b2)
    h1p = 0.0 if (a1p == 0 and b1 == 0) else math.degrees(math.atan2(b1, a1p)) % 360.0
    h2p = 0.0 if (a2p == 0 and b2 == 0) else math.degrees(math.atan2(b2, a2p)) % 360.0

    d_lp = l2 - l1
    d_cp = c2p - c1p
    chroma_product = c1p * c2p
    if chroma_product == 0:
        d_hp = 0.0
    else:
        d_hp = h2p - h1p
        if d_hp > 180.0:
            d_hp -= 360.0
        elif d_hp < -180.0:
            d_hp += 360.0
    d_big_hp = 2.0 * math.sqrt(chroma_product) * math.sin(math.radians(d_hp / 2.0))

    l_bar_p = (l1 + l2) / 2.0
    c_bar_p = (c1p + c2p) / 2.0
    if chroma_product == 0:
        h_bar_p = h1p + h2p
    elif abs(h1p - h2p) <= 180.0:
        h_bar_p = (h1p + h2p) / 2.0
    elif h1p + h2p < 360.0:
        h_bar_p = (h1p + h2p + 360.0) / 2.0
    else:
        h_bar_p = (h1p + h2p - 360.0) / 2.0

    t = (1.0
         - 0.17 * math.cos(math.radians(h_bar_p - 30.0))
         + 0.24 * math.cos(math.radians(2.0 * h_bar_p))
         + 0.32 * math.cos(math.radians(3.0 * h_bar_p + 6.0))
         - 0.20 * math.cos(math.radians(4.0 * h_bar_p - 63.0)))
    d_theta = 30.0 * math.exp(-(((h_bar_p - 275.0) / 25.0) ** 2))
    c_bar_p7 = c_bar_p ** 7
    r_c = 2.0 * math.sqrt(c_bar_p7 / (c_bar_p7 + 25.0 ** 7))
    l_term = (l_bar_p - 50.0) ** 2
    s_l = 1.0 + 0.015 * l_term / math.sqrt(20.0 + l_term)
    s_c = 1.0 + 0.045 * c_bar_p
    s_h = 1.0 + 0.015 * c_bar_p * t
    r_t = -math.sin(math.radians(2.0 * d_theta)) * r_c

    dl = d_lp / (k_l * s_l)
    dc = d_cp / (k_c * s_c)
    dh = d_big_hp / (k_h * s_h)
    return math.sqrt(max(0.0, dl * dl + dc * dc + dh * dh + r_t * dc * dh))


def delta_e(lab1: LABLike, lab2: LABLike, method: Union[DeltaEMethod, str] = DeltaEMethod.CIE76) -> float:
    method = DeltaEMethod(method)
    if method is DeltaEMethod.CIE94:
        return delta_e94(lab1, lab2)
    if method is DeltaEMethod.CIEDE2000:
        return delta_e2000(lab1, lab2)
    return delta_e76(lab1, lab2)


# ---------------------------------------------------------------------------
# Batch conversions
# ---------------------------------------------------------------------------

def as_rgb_rows(buffer, stride: int = 3) -> np.ndarray:
    """
    Normalise a color buffer to an (N, 3) float64 array.

    Accepts an (N, 3) / (N, 4) array or a flat buffer with the given stride
    (4 means RGBA; alpha is dropped).
    """
    arr = np.asarray(buffer, dtype=np.float64)
    if arr.ndim == 2 and arr.shape[1] in (3, 4):
        return arr[:, :3]
    if stride not in (3, 4):
        raise ValueError(f"stride must be 3 or 4, got {stride}")
    flat = arr.reshape(-1)
    if flat.size % stride:
        raise ValueError(f"Buffer length {flat.size} is not a multiple of stride {stride}.")
    return flat.reshape(-1, stride)[:, :3]


def srgb_to_linear_batch(values) -> np.ndarray:
    n = np.clip(np.asarray(values, dtype=np.float64), 0.0, 255.0) / 255.0
    return np.where(n <= SRGB_THRESHOLD, n / 12.92, np.power((n + 0.055) / 1.055, SRGB_GAMMA))


def linear_to_srgb_batch(values) -> np.ndarray:
    c = np.clip(np.asarray(values, dtype=np.float64), 0.0, 1.0)
    v = np.where(c <= LINEAR_THRESHOLD, c * 12.92, 1.055 * np.power(c, 1.0 / SRGB_GAMMA) - 0.055)
    return np.clip(np.floor(v * 255.0 + 0.5), 0, 255).astype(np.uint8)


def _lab_f_batch(t: np.ndarray) -> np.ndarray:
    return np.where(t > LAB_EPSILON, np.power(np.maximum(t, 0.0), 1.0 / 3.0), LAB_KAPPA_SLOPE * t + LAB_OFFSET)


def _xyz_rows_to_lab(xyz: np.ndarray) -> np.ndarray:
    f = _lab_f_batch(xyz / np.asarray(D65_WHITE))
    lab = np.empty_like(f)
    lab[:, 0] = 116.0 * f[:, 1] - 16.0
    lab[:, 1] = 500.0 * (f[:, 0] - f[:, 1])
    lab[:, 2] = 200.0 * (f[:, 1] - f[:, 2])
    return lab


def rgb_to_xyz_batch(buffer, stride: int = 3) -> np.ndarray:
    linear = srgb_to_linear_batch(as_rgb_rows(buffer, stride))
    return linear @ RGB_TO_XYZ.T


def rgb_to_lab_batch(buffer, stride: int = 3) -> np.ndarray:
    """Exact sRGB -> LAB for every row; returns an (N, 3) float64 array."""
    return _xyz_rows_to_lab(rgb_to_xyz_batch(buffer, stride))


def lab_to_rgb_batch(labs) -> np.ndarray:
    lab = np.asarray(labs, dtype=np.float64).reshape(-1, 3)
    fy = (lab[:, 0] + 16.0) / 116.0
    f = np.stack([fy + lab[:, 1] / 500.0, fy, fy - lab[:, 2] / 200.0], axis=1)
    t = np.where(f > LAB_F_EPSILON, f ** 3, (f - LAB_OFFSET) / LAB_KAPPA_SLOPE)
    xyz = t * np.asarray(D65_WHITE)
    return linear_to_srgb_batch(xyz @ XYZ_TO_RGB.T)


# Lookup tables for the accelerated path. The sRGB table is exact for byte
# input; the f(t) table is linearly interpolated.
_SRGB_LUT = srgb_to_linear_batch(np.arange(256))
_F_LUT_SIZE = 4096
_F_LUT_GRID = np.linspace(0.0, 1.0, _F_LUT_SIZE)
_F_LUT = _lab_f_batch(_F_LUT_GRID)


def fast_rgb_to_lab_batch(buffer, stride: int = 3) -> np.ndarray:
    """
    Table-driven approximation of rgb_to_lab_batch.

    Max deviation from the exact conversion is below 0.05 Delta E (CIE76) for
    every byte-valued input; fractional channels are rounded to bytes first.
    """
    rows = np.clip(np.floor(as_rgb_rows(buffer, stride) + 0.5), 0, 255).astype(np.intp)
    linear = _SRGB_LUT[rows]
    xyz = (linear @ RGB_TO_XYZ.T) / np.asarray(D65_WHITE)
    f = np.interp(np.clip(xyz, 0.0, 1.0), _F_LUT_GRID, _F_LUT)
    # values just above the white point fall outside the table
    over = xyz > 1.0
    if np.any(over):
        f[over] = np.power(xyz[over], 1.0 / 3.0)
    lab = np.empty_like(f)
    lab[:, 0] = 116.0 * f[:, 1] - 16.0
    lab[:, 1] = 500.0 * (f[:, 0] - f[:, 1])
    lab[:, 2] = 200.0 * (f[:, 1] - f[:, 2])
    return lab


def relative_luminance_batch(buffer, stride: int = 3) -> np.ndarray:
    linear = srgb_to_linear_batch(as_rgb_rows(buffer, stride))
    wr, wg, wb = LUMINANCE_WEIGHTS
    return wr * linear[:, 0] + wg * linear[:, 1] + wb * linear[:, 2]


def delta_e76_batch(labs_a, labs_b) -> np.ndarray:
    """Row-wise CIE76 distance; broadcasts like numpy subtraction."""
    diff = np.asarray(labs_a, dtype=np.float64) - np.asarray(labs_b, dtype=np.float64)
    return np.sqrt(np.sum(diff * diff, axis=-1))


def pairwise_delta_e76(labs) -> np.ndarray:
    """Condensed pairwise CIE76 distances (scipy pdist layout)."""
    labs = np.asarray(labs, dtype=np.float64).reshape(-1, 3)
    if len(labs) < 2:
        return np.zeros(0)
    return pdist(labs)
