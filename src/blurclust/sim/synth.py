from __future__ import annotations
import numpy as np
from typing import List
from ..physics.hits import Hit, WireID

def synth_track_hits(
    wire0: int,
    tick0: float,
    slope: float,
    n_wires: int,
    charge: float = 100.0,
    rms: float = 5.0,
    plane: int = 0,
    tpc: int = 0,
    tick_jitter: float = 0.0,
    skip_fraction: float = 0.0,
    rng: np.random.Generator | None = None,
) -> List[Hit]:
    """
    One hit per wire along a straight line tick = tick0 + slope * (wire - wire0).

    skip_fraction drops wires at random to mimic dead channels / missed hits,
    which is exactly the gap structure the blurring is meant to bridge.
    """
    rng = rng or np.random.default_rng()
    hits: List[Hit] = []
    for k in range(n_wires):
        if skip_fraction > 0 and rng.uniform() < skip_fraction:
            continue
        tick = tick0 + slope * k
        if tick_jitter > 0:
            tick += rng.normal(0.0, tick_jitter)
        q = max(rng.normal(charge, 0.1 * charge), 1.0)
        hits.append(Hit(
            wire_id=WireID(0, tpc, plane, wire0 + k),
            peak_time=float(tick),
            integral=float(q),
            rms=float(rms),
        ))
    return hits

def synth_noise_hits(
    n_hits: int,
    wire_range: tuple[int, int],
    tick_range: tuple[float, float],
    charge: float = 10.0,
    rms: float = 3.0,
    plane: int = 0,
    tpc: int = 0,
    rng: np.random.Generator | None = None,
) -> List[Hit]:
    """Uniformly scattered low-charge hits."""
    rng = rng or np.random.default_rng()
    wires = rng.integers(wire_range[0], wire_range[1], size=n_hits)
    ticks = rng.uniform(tick_range[0], tick_range[1], size=n_hits)
    return [
        Hit(
            wire_id=WireID(0, tpc, plane, int(w)),
            peak_time=float(t),
            integral=float(max(rng.exponential(charge), 0.1)),
            rms=float(rms),
        )
        for w, t in zip(wires, ticks)
    ]

def synth_event(
    n_tracks: int = 2,
    n_noise: int = 20,
    plane: int = 0,
    rng: np.random.Generator | None = None,
) -> List[Hit]:
    """A few random straight tracks on top of uniform noise, all in one plane."""
    rng = rng or np.random.default_rng()
    hits: List[Hit] = []
    for _ in range(n_tracks):
        hits.extend(synth_track_hits(
            wire0=int(rng.integers(0, 200)),
            tick0=float(rng.uniform(200.0, 1500.0)),
            slope=float(rng.uniform(-3.0, 3.0)),
            n_wires=int(rng.integers(15, 60)),
            plane=plane,
            tick_jitter=0.5,
            skip_fraction=0.1,
            rng=rng,
        ))
    hits.extend(synth_noise_hits(n_noise, (0, 300), (0.0, 2000.0), plane=plane, rng=rng))
    return hits
