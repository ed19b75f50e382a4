"""
blurclust.imaging.blur

Direction-adaptive Gaussian blurring of a HitImage.

The blur is anisotropic: radii and sigmas are scaled by the dominant
direction of the hit distribution, and the tick sigma additionally grows
with the width of each individual hit. Since the kernel depends on the
source cell, the blur is a scatter-add of per-cell kernel footprints rather
than a single convolution.

Kernels are not renormalized after discretization, so the
relative amplitude between width tiers is preserved; total charge is not
conserved and thresholds downstream are tuned against the raw blur.
"""
from __future__ import annotations
from functools import lru_cache
from typing import Dict, Iterable, NamedTuple, Sequence, Tuple
import math

import numpy as np

from ..config.schemas import BlurCfg
from .image import HitImage

class BlurParameters(NamedTuple):
    blur_wire: int
    blur_tick: int
    sigma_wire: int
    sigma_tick: int

def trajectory_direction(points: Iterable[Tuple[int, int]]) -> Tuple[float, float]:
    """
    Unit vector along the least-squares line tick(wire).

    Point sets with no spread in wire (empty, single hit, single wire) have no
    finite slope; they are treated as running purely along the tick axis.
    """
    n = sx = sy = sxx = sxy = 0.0
    for x, y in points:
        n += 1
        sx += x
        sy += y
        sxx += x * x
        sxy += x * y
    denom = n * sxx - sx * sx
    if denom == 0:
        return (0.0, 1.0)
    gradient = (n * sxy - sx * sy) / denom
    norm = math.hypot(1.0, gradient)
    return (1.0 / norm, gradient / norm)

def _scaled(base: float, component: float) -> int:
    # round half away from zero, never below 1
    return max(int(math.floor(abs(base * component) + 0.5)), 1)

def find_blurring_parameters(points: Iterable[Tuple[int, int]], cfg: BlurCfg) -> BlurParameters:
    ux, uy = trajectory_direction(points)
    return BlurParameters(
        blur_wire=_scaled(cfg.blur_wire, ux),
        blur_tick=_scaled(cfg.blur_tick, uy),
        sigma_wire=_scaled(cfg.sigma_wire, ux),
        sigma_tick=_scaled(cfg.sigma_tick, uy),
    )

def kernel_shape(params: BlurParameters, max_tick_width_scale: int) -> Tuple[int, int]:
    """(kernel_width, kernel_height); the height fits the widest tier so all tiers share addressing."""
    return 2 * params.blur_wire + 1, 2 * params.blur_tick * max_tick_width_scale + 1

def _gaussian(offsets: np.ndarray, sigma: float) -> np.ndarray:
    sig2 = 2.0 * sigma * sigma
    return np.exp(-offsets * offsets / sig2) / np.sqrt(sig2 * np.pi)

@lru_cache(maxsize=32)
def _kernel_table(
    params: BlurParameters,
    tiers: Tuple[int, ...],
    max_tick_width_scale: int,
) -> Tuple[Tuple[int, np.ndarray], ...]:
    kernel_width, kernel_height = kernel_shape(params, max_tick_width_scale)
    half_height = kernel_height // 2
    i = np.arange(-params.blur_wire, params.blur_wire + 1, dtype=np.float64)
    j = np.arange(-half_height, half_height + 1, dtype=np.float64)
    wire_profile = _gaussian(i, params.sigma_wire)

    table = []
    for tier in tiers:
        tick_profile = _gaussian(j, params.sigma_tick * tier)
        # flat index = kernel_width * (j + half_height) + (i + blur_wire)
        kernel = np.outer(tick_profile, wire_profile).ravel()
        kernel.setflags(write=False)
        table.append((tier, kernel))
    return tuple(table)

def make_kernels(
    params: BlurParameters,
    tiers: Sequence[int],
    max_tick_width_scale: int,
) -> Dict[int, np.ndarray]:
    """
    One flat Gaussian kernel per width tier.

    Tier t uses sigma_tick * t along ticks. Results are memoized on the
    parameter tuple; the returned arrays are private copies.
    """
    table = _kernel_table(params, tuple(sorted(set(tiers))), int(max_tick_width_scale))
    return {tier: kernel.copy() for tier, kernel in table}

def resolve_tier(tick_scale: int, tiers: Iterable[int]) -> int:
    """Largest configured tier not above tick_scale."""
    available = set(tiers)
    for k in range(int(tick_scale), 0, -1):
        if k in available:
            return k
    raise KeyError(f"No kernel tier <= {tick_scale} in {sorted(available)}")

def tick_scale_of(width: float, tick_width_rescale: float, max_tick_width_scale: int) -> int:
    scale = int(width / tick_width_rescale)
    return max(min(scale, max_tick_width_scale), 1)

def convolve(
    image: np.ndarray,
    widths: np.ndarray,
    kernels: Dict[int, np.ndarray],
    params: BlurParameters,
    tick_width_rescale: float,
    max_tick_width_scale: int,
) -> np.ndarray:
    """
    Scatter each non-zero cell's charge through its own kernel.

    The tick extent of the footprint grows with the cell's width scale.
    Contributions landing outside the image are dropped.
    """
    nbins_wire, nbins_tick = image.shape
    kernel_width, kernel_height = kernel_shape(params, max_tick_width_scale)
    half_height = kernel_height // 2
    bw, bt = params.blur_wire, params.blur_tick

    # (wire offset, tick offset) views of the flat kernels
    kernels_2d = {t: k.reshape(kernel_height, kernel_width).T for t, k in kernels.items()}

    blurred = np.zeros_like(image, dtype=np.float64)
    xs, ys = np.nonzero(image)
    for x, y in zip(xs.tolist(), ys.tolist()):
        q = image[x, y]
        scale = tick_scale_of(widths[x, y], tick_width_rescale, max_tick_width_scale)
        k2d = kernels_2d[resolve_tier(scale, kernels)]
        # tick reach follows the computed scale, not the full kernel window
        reach = bt * scale

        x0, x1 = max(x - bw, 0), min(x + bw + 1, nbins_wire)
        y0, y1 = max(y - reach, 0), min(y + reach + 1, nbins_tick)
        if x0 >= x1 or y0 >= y1:
            continue
        kx0 = x0 - x + bw
        ky0 = y0 - y + half_height
        blurred[x0:x1, y0:y1] += q * k2d[kx0:kx0 + (x1 - x0), ky0:ky0 + (y1 - y0)]

    return blurred

def gaussian_blur(image: HitImage, cfg: BlurCfg, verbose: bool = False) -> np.ndarray:
    """Blurred copy of image.charge; the unblurred charge when both sigmas are 0."""
    if cfg.sigma_wire == 0 and cfg.sigma_tick == 0:
        return image.charge

    params = find_blurring_parameters(image.hit_index.keys(), cfg)
    if verbose:
        print(f"[blur] wire {params.blur_wire} and tick {params.blur_tick}; "
              f"sigma: wire {params.sigma_wire} and tick {params.sigma_tick}")

    kernels = make_kernels(params, cfg.kernels, cfg.max_tick_width_scale)
    return convolve(
        image.charge,
        image.widths,
        kernels,
        params,
        cfg.tick_width_rescale,
        cfg.max_tick_width_scale,
    )
