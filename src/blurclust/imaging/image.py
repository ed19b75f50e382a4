from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, NamedTuple, Optional, Tuple

import numpy as np

from ..physics.hits import Hit
from ..geometry.wires import CoordinateNormalizer, local_wire

# Empty cells kept around the hit extent on every side, in both axes.
MARGIN = 20

class Bounds(NamedTuple):
    lower_wire: int
    upper_wire: int
    lower_tick: int
    upper_tick: int

    @property
    def shape(self) -> tuple[int, int]:
        return (self.upper_wire - self.lower_wire, self.upper_tick - self.lower_tick)

@dataclass
class HitImage:
    """
    Dense (wire, tick) rasterization of one plane's hits.

    charge[x, y] and widths[x, y] are indexed by local wire x and local tick y;
    hit_index maps global (wire, tick) back to the Hit that set the cell.
    Linear bins run along wire first: bin = y * nbins_wire + x.
    """
    charge: np.ndarray
    widths: np.ndarray
    hit_index: Dict[Tuple[int, int], Hit]
    bounds: Bounds

    @property
    def nbins_wire(self) -> int:
        return self.charge.shape[0]

    @property
    def nbins_tick(self) -> int:
        return self.charge.shape[1]

    def bin_of(self, x: int, y: int) -> int:
        return y * self.nbins_wire + x

    def cell_of(self, b: int) -> tuple[int, int]:
        return b % self.nbins_wire, b // self.nbins_wire

    def hit_at_bin(self, b: int) -> Optional[Hit]:
        x, y = self.cell_of(b)
        return self.hit_index.get((x + self.bounds.lower_wire, y + self.bounds.lower_tick))

    def time_of_bin(self, b: int) -> Optional[float]:
        """Peak time of the real hit behind this bin, None for empty/blurred-only bins."""
        hit = self.hit_at_bin(b)
        return None if hit is None else hit.peak_time

def compute_bounds(
    points: Iterable[Tuple[int, int]],
    readout_window_size: int,
    margin: int = MARGIN,
) -> Bounds:
    """Rectangle around all (wire, tick) points, widened by `margin` on every side."""
    lower_tick, upper_tick = readout_window_size, 0
    lower_wire, upper_wire = None, 0
    n = 0
    for wire, tick in points:
        n += 1
        lower_tick = min(lower_tick, tick)
        upper_tick = max(upper_tick, tick)
        lower_wire = wire if lower_wire is None else min(lower_wire, wire)
        upper_wire = max(upper_wire, wire)
    if n == 0:
        return Bounds(-margin, margin, -margin, margin)
    return Bounds(lower_wire - margin, upper_wire + margin, lower_tick - margin, upper_tick + margin)

def build_image(
    hits: Iterable[Hit],
    normalize: CoordinateNormalizer = local_wire,
    readout_window_size: int = 4492,
) -> HitImage:
    """
    Rasterize hits into charge and width images.

    When several hits fall into the same cell the highest-charge one wins:
    it sets charge and width and replaces the previous occupant in hit_index.
    """
    hits = list(hits)
    coords = [(int(normalize(h.wire_id)), int(h.peak_time)) for h in hits]
    bounds = compute_bounds(coords, readout_window_size)

    charge = np.zeros(bounds.shape, dtype=np.float64)
    widths = np.zeros(bounds.shape, dtype=np.float64)
    hit_index: Dict[Tuple[int, int], Hit] = {}

    for h, (wire, tick) in zip(hits, coords):
        x = wire - bounds.lower_wire
        y = tick - bounds.lower_tick
        if h.integral > charge[x, y]:
            charge[x, y] = h.integral
            widths[x, y] = h.rms
            hit_index[(wire, tick)] = h

    return HitImage(charge=charge, widths=widths, hit_index=hit_index, bounds=bounds)
