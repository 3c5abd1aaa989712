# tests/test_color_space.py
import itertools

import numpy as np
import pytest
from skimage import color as skcolor

from colorengine import color_space as cs
from colorengine.models import DeltaEMethod, LABColor, RGBColor, Temperature

# Reference pairs from Sharma, Wu & Dalal (2005), table 1
SHARMA_PAIRS = [
    ((50.0, 2.6772, -79.7751), (50.0, 0.0, -82.7485), 2.0425),
    ((50.0, 3.1571, -77.2803), (50.0, 0.0, -82.7485), 2.8615),
    ((50.0, 2.8361, -74.0200), (50.0, 0.0, -82.7485), 3.4412),
    ((50.0, -1.3802, -84.2814), (50.0, 0.0, -82.7485), 1.0000),
    ((50.0, 0.0, 0.0), (50.0, -1.0, 2.0), 2.3669),
    ((50.0, 2.49, -0.001), (50.0, -2.49, 0.0009), 7.1792),
    ((50.0, 2.5, 0.0), (73.0, 25.0, -18.0), 27.1492),
]


def _grid(step=17):
    values = range(0, 256, step)
    return np.array(list(itertools.product(values, values, values)), dtype=np.float64)


def test_srgb_linear_round_trip_is_exact_for_every_byte():
    for value in range(256):
        assert cs.linear_to_srgb(cs.srgb_to_linear(value)) == value


def test_srgb_to_linear_endpoints_and_clamping():
    assert cs.srgb_to_linear(0) == 0.0
    assert cs.srgb_to_linear(255) == pytest.approx(1.0)
    # out of range input is clamped, not rejected
    assert cs.srgb_to_linear(300) == pytest.approx(1.0)
    assert cs.srgb_to_linear(-20) == 0.0
    assert cs.linear_to_srgb(1.7) == 255
    assert cs.linear_to_srgb(-0.2) == 0


def test_rgb_lab_round_trip_within_one_per_channel():
    rgb = _grid()
    back = cs.lab_to_rgb_batch(cs.rgb_to_lab_batch(rgb)).astype(int)
    assert np.max(np.abs(back - rgb.astype(int))) <= 1

    # per-pixel path on a handful of colors
    for sample in [(0, 0, 0), (255, 255, 255), (12, 200, 77), (250, 3, 128), (128, 128, 128)]:
        restored = cs.lab_to_rgb(cs.rgb_to_lab(sample))
        assert all(abs(a - b) <= 1 for a, b in zip(restored.as_tuple(), sample))


def test_rgb_to_lab_reference_values():
    white = cs.rgb_to_lab((255, 255, 255))
    assert white.l == pytest.approx(100.0, abs=1e-3)
    assert white.a == pytest.approx(0.0, abs=1e-3)
    assert white.b == pytest.approx(0.0, abs=1e-3)

    black = cs.rgb_to_lab(RGBColor(0, 0, 0))
    assert black.as_tuple() == pytest.approx((0.0, 0.0, 0.0), abs=1e-9)

    red = cs.rgb_to_lab((255, 0, 0))
    assert red.l == pytest.approx(53.24, abs=0.05)
    assert red.a == pytest.approx(80.09, abs=0.05)
    assert red.b == pytest.approx(67.20, abs=0.05)


def test_rgb_to_lab_agrees_with_skimage():
    rgb = _grid(step=51)
    ours = cs.rgb_to_lab_batch(rgb)
    theirs = skcolor.rgb2lab((rgb / 255.0).reshape(1, -1, 3)).reshape(-1, 3)
    assert np.max(np.abs(ours - theirs)) < 0.5


def test_batch_matches_per_pixel():
    rgb = _grid(step=51)
    batch = cs.rgb_to_lab_batch(rgb)
    for row, lab in zip(rgb, batch):
        single = cs.rgb_to_lab(tuple(row))
        assert single.as_tuple() == pytest.approx(tuple(lab), abs=1e-9)

    lum = cs.relative_luminance_batch(rgb)
    expected = np.array([cs.relative_luminance(tuple(row)) for row in rgb])
    assert np.allclose(lum, expected, atol=1e-12)


def test_batch_accepts_rgba_stride():
    rgba = np.array([255, 0, 0, 255, 0, 0, 255, 0], dtype=np.uint8)
    labs = cs.rgb_to_lab_batch(rgba, stride=4)
    assert labs.shape == (2, 3)
    assert tuple(labs[0]) == pytest.approx(cs.rgb_to_lab((255, 0, 0)).as_tuple())
    assert tuple(labs[1]) == pytest.approx(cs.rgb_to_lab((0, 0, 255)).as_tuple())

    with pytest.raises(ValueError):
        cs.rgb_to_lab_batch(np.zeros(7), stride=4)


def test_fast_lab_stays_within_tolerance():
    rgb = _grid(step=5)
    exact = cs.rgb_to_lab_batch(rgb)
    fast = cs.fast_rgb_to_lab_batch(rgb)
    assert np.max(cs.delta_e76_batch(exact, fast)) <= 0.05


@pytest.mark.parametrize("lab1, lab2, expected", SHARMA_PAIRS)
def test_ciede2000_reference_pairs(lab1, lab2, expected):
    assert cs.delta_e(lab1, lab2, DeltaEMethod.CIEDE2000) == pytest.approx(expected, abs=1e-4)
    # symmetric
    assert cs.delta_e2000(lab2, lab1) == pytest.approx(expected, abs=1e-4)


def test_delta_e_agrees_with_skimage():
    rng = np.random.default_rng(3)
    lab1 = np.column_stack([rng.uniform(0, 100, 50), rng.uniform(-100, 100, 50), rng.uniform(-100, 100, 50)])
    lab2 = np.column_stack([rng.uniform(0, 100, 50), rng.uniform(-100, 100, 50), rng.uniform(-100, 100, 50)])

    expected_2000 = skcolor.deltaE_ciede2000(lab1, lab2)
    expected_94 = skcolor.deltaE_ciede94(lab1, lab2)
    expected_76 = skcolor.deltaE_cie76(lab1, lab2)
    for i in range(len(lab1)):
        a, b = tuple(lab1[i]), tuple(lab2[i])
        assert cs.delta_e(a, b, "CIEDE2000") == pytest.approx(expected_2000[i], abs=1e-4)
        assert cs.delta_e(a, b, "CIE94") == pytest.approx(expected_94[i], abs=1e-6)
        assert cs.delta_e(a, b) == pytest.approx(expected_76[i], abs=1e-9)


@pytest.mark.parametrize("method", list(DeltaEMethod))
def test_delta_e_identity_is_zero(method):
    for rgb in [(0, 0, 0), (255, 255, 255), (30, 140, 220), (200, 10, 10)]:
        lab = cs.rgb_to_lab(rgb)
        assert cs.delta_e(lab, lab, method) == pytest.approx(0.0, abs=1e-9)


def test_delta_e_rejects_unknown_method():
    with pytest.raises(ValueError):
        cs.delta_e(LABColor(50, 0, 0), LABColor(60, 0, 0), "CMC")


def test_relative_luminance():
    assert cs.relative_luminance((255, 255, 255)) == pytest.approx(1.0)
    assert cs.relative_luminance((0, 0, 0)) == 0.0
    assert cs.relative_luminance((0, 255, 0)) == pytest.approx(0.7152)
    assert cs.relative_luminance((0, 0, 255)) == pytest.approx(0.0722)


def test_classify_temperature():
    assert cs.classify_temperature((255, 0, 0)) is Temperature.WARM
    assert cs.classify_temperature((0, 0, 255)) is Temperature.COOL
    assert cs.classify_temperature((128, 128, 128)) is Temperature.NEUTRAL
    # exactly on the threshold is still neutral
    assert cs.classify_temperature((20, 0, 0)) is Temperature.NEUTRAL
    assert cs.classify_temperature((21, 0, 0)) is Temperature.WARM


def test_rgb_to_hsv_and_hue():
    assert cs.rgb_to_hsv((255, 0, 0)).h == 0.0
    assert cs.rgb_to_hsv((0, 255, 0)).h == pytest.approx(120.0)
    blue = cs.rgb_to_hsv((0, 0, 255))
    assert (blue.h, blue.s, blue.v) == pytest.approx((240.0, 100.0, 100.0))
    # magenta wraps correctly (g < b branch)
    assert cs.rgb_to_hsv((255, 0, 128)).h == pytest.approx(329.88, abs=0.01)
    black = cs.rgb_to_hsv((0, 0, 0))
    assert (black.h, black.s, black.v) == (0.0, 0.0, 0.0)

    assert cs.rgb_to_hue((90, 90, 90)) is None
    assert cs.rgb_to_hue((0, 0, 255)) == pytest.approx(240.0)


def test_hex_conversions():
    assert cs.rgb_to_hex((255, 128, 0)) == "#ff8000"
    assert cs.hex_to_rgb("#FF8000") == RGBColor(255, 128, 0)
    assert cs.hex_to_rgb("00ff7f") == RGBColor(0, 255, 127)
    assert cs.hex_to_rgb("#abc") is None
    assert cs.hex_to_rgb("not a color") is None


def test_rgb_color_clamps_and_rounds():
    c = RGBColor(300, -5, 127.5)
    assert c.as_tuple() == (255, 0, 128)
    assert RGBColor(float("nan"), 1, 2).r == 0


def test_rgb_distance_and_pairwise():
    assert cs.rgb_distance((0, 0, 0), (255, 255, 255)) == pytest.approx(255 * np.sqrt(3))
    labs = [(0, 0, 0), (100, 0, 0), (50, 0, 0)]
    assert list(cs.pairwise_delta_e76(labs)) == pytest.approx([100.0, 50.0, 50.0])
    assert cs.pairwise_delta_e76([(1, 2, 3)]).size == 0
