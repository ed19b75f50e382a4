from __future__ import annotations
from typing import Iterable, List, Sequence

from ..physics.hits import Hit
from ..imaging.image import HitImage

def bins_to_hits(image: HitImage, bins: Iterable[int]) -> List[Hit]:
    """Real hits behind the given bins; bins filled only by blurring are skipped."""
    hits = []
    for b in bins:
        hit = image.hit_at_bin(b)
        if hit is not None:
            hits.append(hit)
    return hits

def bins_to_clusters(
    image: HitImage,
    cluster_bins: Sequence[Sequence[int]],
    min_size: int,
    verbose: bool = False,
) -> List[List[Hit]]:
    """
    Convert bin clusters to hit clusters, keeping those with at least min_size real hits.
    """
    clusters: List[List[Hit]] = []
    for bins in cluster_bins:
        hits = bins_to_hits(image, bins)
        if verbose:
            print(f"[cluster] Cluster made from {len(bins)} bins, of which {len(hits)} were real hits")
        if len(hits) < min_size:
            if verbose:
                print(f"[cluster] Cluster of size {len(hits)} not saved since it is smaller "
                      f"than the minimum cluster size, set to {min_size}")
            continue
        clusters.append(hits)
    return clusters
