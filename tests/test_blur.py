import math

import numpy as np
import pytest

from blurclust.config.schemas import BlurCfg
from blurclust.imaging.blur import (
    BlurParameters,
    convolve,
    find_blurring_parameters,
    gaussian_blur,
    kernel_shape,
    make_kernels,
    resolve_tier,
    tick_scale_of,
    trajectory_direction,
)
from blurclust.imaging.image import build_image


def _g(x, s):
    return math.exp(-x * x / (2.0 * s * s)) / math.sqrt(2.0 * math.pi * s * s)


def test_direction_along_wires():
    ux, uy = trajectory_direction([(0, 50), (1, 50), (2, 50), (7, 50)])
    assert ux == pytest.approx(1.0)
    assert uy == pytest.approx(0.0)


def test_direction_diagonal():
    ux, uy = trajectory_direction([(0, 0), (1, 1), (2, 2)])
    assert ux == pytest.approx(math.sqrt(0.5))
    assert uy == pytest.approx(math.sqrt(0.5))


@pytest.mark.parametrize("points", [[], [(4, 10)], [(4, 10), (4, 50), (4, 90)]])
def test_direction_degenerate_is_tick_aligned(points):
    assert trajectory_direction(points) == (0.0, 1.0)


def test_blurring_parameters_scaled_by_direction():
    cfg = BlurCfg(blur_wire=6, blur_tick=12, sigma_wire=4.0, sigma_tick=6.0)
    flat = find_blurring_parameters([(0, 5), (1, 5), (2, 5)], cfg)
    assert flat == BlurParameters(6, 1, 4, 1)

    diag = find_blurring_parameters([(0, 0), (1, 1), (2, 2)], cfg)
    assert diag == BlurParameters(4, 8, 3, 4)

    vertical = find_blurring_parameters([(3, 0), (3, 9)], cfg)
    assert vertical == BlurParameters(1, 12, 1, 6)


def test_blurring_parameters_round_half_away_from_zero():
    cfg = BlurCfg(blur_wire=3, blur_tick=3, sigma_wire=2.5, sigma_tick=1.0)
    params = find_blurring_parameters([(0, 0), (1, 0)], cfg)
    assert params.sigma_wire == 3


def test_kernel_values_and_layout():
    params = BlurParameters(blur_wire=2, blur_tick=3, sigma_wire=1, sigma_tick=2)
    kernels = make_kernels(params, [1, 2], max_tick_width_scale=2)
    width, height = kernel_shape(params, 2)
    assert (width, height) == (5, 13)
    assert set(kernels) == {1, 2}
    for k in kernels.values():
        assert k.shape == (width * height,)

    centre = width * (height // 2) + params.blur_wire
    assert kernels[1][centre] == pytest.approx(_g(0, 1) * _g(0, 2))
    assert kernels[2][centre] == pytest.approx(_g(0, 1) * _g(0, 4))

    # offset (i=1, j=-2)
    key = width * (-2 + height // 2) + (1 + params.blur_wire)
    assert kernels[1][key] == pytest.approx(_g(1, 1) * _g(-2, 2))


def test_kernels_not_renormalized():
    params = BlurParameters(1, 1, 1, 1)
    k = make_kernels(params, [1], max_tick_width_scale=1)[1]
    assert k.sum() < 1.0
    assert k.sum() == pytest.approx(sum(_g(i, 1) * _g(j, 1) for i in (-1, 0, 1) for j in (-1, 0, 1)))


def test_kernel_copies_are_independent():
    params = BlurParameters(1, 2, 1, 1)
    a = make_kernels(params, [1, 3], 3)
    a[1][:] = 0.0
    b = make_kernels(params, [1, 3], 3)
    assert b[1].max() > 0.0


def test_resolve_tier_falls_back_downward():
    tiers = [1, 3, 5]
    assert resolve_tier(5, tiers) == 5
    assert resolve_tier(4, tiers) == 3
    assert resolve_tier(2, tiers) == 1
    assert resolve_tier(1, tiers) == 1


@pytest.mark.parametrize("tiers", [[1], [1, 4], [1, 2, 3, 4, 5, 6], [1, 6]])
def test_every_legal_scale_finds_a_kernel(tiers):
    ceiling = 6
    for scale in range(1, ceiling + 1):
        assert resolve_tier(scale, tiers) in tiers
    for width in np.linspace(0.0, 500.0, 51):
        assert resolve_tier(tick_scale_of(width, 30.0, ceiling), tiers) in tiers


def test_tick_scale_clamped():
    assert tick_scale_of(0.0, 30.0, 5) == 1
    assert tick_scale_of(95.0, 30.0, 5) == 3
    assert tick_scale_of(1000.0, 30.0, 5) == 5


def test_convolve_single_cell():
    params = BlurParameters(1, 1, 1, 1)
    kernels = make_kernels(params, [1], 1)
    image = np.zeros((20, 30))
    image[10, 15] = 10.0
    blurred = convolve(image, np.zeros_like(image), kernels, params, 30.0, 1)

    assert blurred[10, 15] == pytest.approx(10.0 * _g(0, 1) ** 2)
    assert blurred[11, 15] == pytest.approx(10.0 * _g(1, 1) * _g(0, 1))
    assert blurred[9, 16] == pytest.approx(10.0 * _g(1, 1) ** 2)
    assert np.count_nonzero(blurred) == 9
    assert blurred.sum() == pytest.approx(10.0 * kernels[1].sum())


def test_convolve_drops_out_of_bounds():
    params = BlurParameters(1, 1, 1, 1)
    kernels = make_kernels(params, [1], 1)
    image = np.zeros((5, 5))
    image[0, 0] = 10.0
    blurred = convolve(image, np.zeros_like(image), kernels, params, 30.0, 1)

    assert np.count_nonzero(blurred) == 4
    expected = 10.0 * sum(_g(i, 1) * _g(j, 1) for i in (0, 1) for j in (0, 1))
    assert blurred.sum() == pytest.approx(expected)


def test_convolve_wide_hits_reach_further_in_ticks():
    params = BlurParameters(1, 1, 1, 1)
    image = np.zeros((10, 20))
    image[5, 10] = 10.0
    widths = np.zeros_like(image)
    widths[5, 10] = 60.0  # tick scale 2

    kernels = make_kernels(params, [1, 2], 2)
    blurred = convolve(image, widths, kernels, params, 30.0, 2)
    assert blurred[5, 12] == pytest.approx(10.0 * _g(0, 1) * _g(2, 2))
    assert blurred[5, 13] == 0.0
    assert np.count_nonzero(blurred) == 3 * 5

    # tier 2 not configured: tier 1 weights, same reach
    kernels = make_kernels(params, [1], 2)
    blurred = convolve(image, widths, kernels, params, 30.0, 2)
    assert blurred[5, 12] == pytest.approx(10.0 * _g(0, 1) * _g(2, 1))


def test_zero_sigmas_skip_blur(hit):
    img = build_image([hit(10, 100, 50), hit(11, 101, 40)])
    cfg = BlurCfg(sigma_wire=0.0, sigma_tick=0.0)
    blurred = gaussian_blur(img, cfg)
    assert np.array_equal(blurred, img.charge)


def test_blur_spreads_charge(hit):
    img = build_image([hit(10, 100, 50, rms=5.0)])
    cfg = BlurCfg(blur_wire=2, blur_tick=2, sigma_wire=1.0, sigma_tick=1.0, kernels=[1], max_tick_width_scale=1)
    blurred = gaussian_blur(img, cfg)
    assert blurred.shape == img.charge.shape
    assert np.count_nonzero(blurred) > 1
    x, y = 10 - img.bounds.lower_wire, 100 - img.bounds.lower_tick
    assert blurred[x, y] == blurred.max()
