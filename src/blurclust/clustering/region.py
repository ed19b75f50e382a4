"""
blurclust.clustering.region

Seeded region growing on a blurred hit image.

Clusters are built one at a time from the highest unused bin:

  seed -> grow -> size cut -> fill holes -> remove peninsulas -> size cut

All bookkeeping is in linear bins (bin = tick * nbins_wire + wire) with a
flat `used` mask shared by every cluster of one run.
"""
from __future__ import annotations
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from ..config.schemas import ClusterCfg
from ..imaging.image import HitImage

_NEIGHBOURS = [(dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if dx or dy]

class ClusterResult(NamedTuple):
    clusters: List[List[int]]
    # blurred charge of each accepted cluster's seed, in acceptance order
    seeds: List[float]

def charge_order(flat_charge: np.ndarray) -> np.ndarray:
    """Bins sorted by (charge, bin), highest first."""
    bins = np.arange(flat_charge.size)
    return np.lexsort((bins, flat_charge))[::-1]

def is_border(b: int, nbins_wire: int, nbins_tick: int) -> bool:
    return (
        b < nbins_wire
        or b % nbins_wire == 0
        or b % nbins_wire == nbins_wire - 1
        or b >= nbins_wire * (nbins_tick - 1)
    )

def num_neighbours(used: np.ndarray, b: int, nbins_wire: int) -> int:
    """Used bins among the 8 direct neighbours of a non-border bin."""
    return sum(1 for dx, dy in _NEIGHBOURS if used[b + dx + dy * nbins_wire])

def passes_time_cut(times: Sequence[float], time: float, time_threshold: float) -> bool:
    return any(abs(time - t) < time_threshold for t in times)

def _time_ok(times: List[float], time: Optional[float], time_threshold: float) -> bool:
    # Blurred-only bins carry no time; a cluster without real hits yet accepts anything.
    if time is None or not times:
        return True
    return passes_time_cut(times, time, time_threshold)

def grow_cluster(
    cluster: List[int],
    times: List[float],
    used: np.ndarray,
    flat_charge: np.ndarray,
    image: HitImage,
    cfg: ClusterCfg,
) -> None:
    """Add neighbouring bins above the charge threshold until a full pass adds nothing."""
    nx, ny = image.nbins_wire, image.nbins_tick
    dw, dt = cfg.cluster_wire_distance, cfg.cluster_tick_distance

    while True:
        nadded = 0
        i = 0
        while i < len(cluster):
            bx, by = cluster[i] % nx, cluster[i] // nx
            for x in range(max(bx - dw, 0), min(bx + dw, nx - 1) + 1):
                for y in range(max(by - dt, 0), min(by + dt, ny - 1) + 1):
                    if x == bx and y == by:
                        continue
                    b = y * nx + x
                    if used[b]:
                        continue
                    time = image.time_of_bin(b)
                    if not _time_ok(times, time, cfg.time_threshold):
                        continue
                    if flat_charge[b] > cfg.charge_threshold:
                        used[b] = True
                        cluster.append(b)
                        nadded += 1
                        if time is not None:
                            times.append(time)
            i += 1
        if nadded == 0:
            break

def fill_holes(
    cluster: List[int],
    times: List[float],
    used: np.ndarray,
    image: HitImage,
    cfg: ClusterCfg,
) -> int:
    """
    Claim unused bins that are mostly surrounded by used bins.

    Bins appended during the pass are examined too. Returns the number added.
    """
    nx, ny = image.nbins_wire, image.nbins_tick
    nadded = 0
    i = 0
    while i < len(cluster):
        for dx, dy in _NEIGHBOURS:
            b = cluster[i] + dx + dy * nx
            if is_border(b, nx, ny) or used[b]:
                continue
            if num_neighbours(used, b, nx) <= cfg.neighbours_threshold:
                continue
            time = image.time_of_bin(b)
            if not _time_ok(times, time, cfg.time_threshold):
                continue
            used[b] = True
            cluster.append(b)
            nadded += 1
            if time is not None:
                times.append(time)
        i += 1
    return nadded

def remove_peninsulas(
    cluster: List[int],
    used: np.ndarray,
    nbins_wire: int,
    nbins_tick: int,
    min_neighbours: int,
) -> int:
    """Drop (and release) bins with fewer than min_neighbours used neighbours until stable."""
    total = 0
    while True:
        nremoved = 0
        for idx in range(len(cluster) - 1, -1, -1):
            b = cluster[idx]
            if is_border(b, nbins_wire, nbins_tick):
                continue
            if num_neighbours(used, b, nbins_wire) < min_neighbours:
                used[b] = False
                del cluster[idx]
                nremoved += 1
        total += nremoved
        if not nremoved:
            return total

def _release(cluster: List[int], used: np.ndarray) -> None:
    for b in cluster:
        used[b] = False

def find_clusters(
    blurred: np.ndarray,
    image: HitImage,
    cfg: ClusterCfg,
    verbose: bool = False,
) -> ClusterResult:
    """
    Cluster the blurred image; `image` supplies the hit lookup for time cuts.

    blurred has the same (nbins_wire, nbins_tick) shape as image.charge.
    """
    nx, ny = blurred.shape
    # flat view indexed by linear bin
    flat_charge = np.ascontiguousarray(blurred.T).ravel()
    used = np.zeros(nx * ny, dtype=bool)
    order = charge_order(flat_charge)

    clusters: List[List[int]] = []
    seeds: List[float] = []

    for seed in order.tolist():
        seed_charge = float(flat_charge[seed])
        if seed_charge < cfg.min_seed:
            break
        if used[seed]:
            continue
        used[seed] = True

        cluster = [seed]
        times: List[float] = []
        time = image.time_of_bin(seed)
        if time is not None:
            times.append(time)

        grow_cluster(cluster, times, used, flat_charge, image, cfg)

        if len(cluster) < cfg.min_size:
            _release(cluster, used)
            continue

        fill_holes(cluster, times, used, image, cfg)
        if verbose:
            print(f"[cluster] Size of cluster after filling in holes: {len(cluster)}")

        remove_peninsulas(cluster, used, nx, ny, cfg.min_neighbours)
        if verbose:
            print(f"[cluster] Size of cluster after removing peninsulas: {len(cluster)}")

        if len(cluster) < cfg.min_size:
            _release(cluster, used)
            continue

        clusters.append(cluster)
        seeds.append(seed_charge)

    return ClusterResult(clusters, seeds)
