from __future__ import annotations

from itertools import islice
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import typer

import numpy as np

from tqdm import tqdm

from blurclust.config.load import load_config, config_json
from blurclust.config.schemas import ClusteringCfg, Config
from blurclust.geometry.wires import (
    CoordinateNormalizer,
    DetectorProperties,
    GlobalWireMapper,
    local_wire,
)
from blurclust.io.adapters import make_adapter, write_hits_h5
from blurclust.imaging.image import HitImage, build_image
from blurclust.imaging.blur import gaussian_blur
from blurclust.clustering.region import ClusterResult, find_clusters
from blurclust.clustering.materialize import bins_to_clusters
from blurclust.physics.hits import Hit
from blurclust.vis.debug import DebugImageWriter, list_units, render_debug_png

View = Tuple[int, int]


def unit_name(view: View) -> str:
    return f"C{view[0]}_P{view[1]}"


class BlurredClustering:
    """
    Blurred clustering of the hits of one plane.

    Hits are rasterized into a (wire, tick) charge image, blurred with
    direction- and width-dependent Gaussian kernels, clustered by seeded
    region growing on the blurred image, and mapped back to the original
    hits. Each call works on its own images; an instance holds only
    configuration and collaborators, so one instance can serve many planes.
    """

    def __init__(
        self,
        cfg: ClusteringCfg,
        normalize: CoordinateNormalizer = local_wire,
        detprop: Optional[DetectorProperties] = None,
        debug: Optional[DebugImageWriter] = None,
        diagnostics_level: int = 0,
    ) -> None:
        self.cfg = cfg
        self.normalize = normalize
        self.detprop = detprop or DetectorProperties()
        self.debug = debug
        self.diagnostics_level = diagnostics_level

    @property
    def verbose(self) -> bool:
        return self.diagnostics_level >= 2

    def convert_hits_to_image(self, hits: Sequence[Hit]) -> HitImage:
        return build_image(hits, self.normalize, self.detprop.readout_window_size)

    def gaussian_blur(self, image: HitImage) -> np.ndarray:
        return gaussian_blur(image, self.cfg.blur, verbose=self.verbose)

    def find_clusters(self, blurred: np.ndarray, image: HitImage) -> ClusterResult:
        return find_clusters(blurred, image, self.cfg.cluster, verbose=self.verbose)

    def convert_bins_to_clusters(self, image: HitImage, cluster_bins: Sequence[Sequence[int]]) -> List[List[Hit]]:
        return bins_to_clusters(image, cluster_bins, self.cfg.cluster.min_size, verbose=self.verbose)

    def cluster_hits(self, hits: Sequence[Hit], unit: str = "plane") -> List[List[Hit]]:
        """Run the full chain on the hits of a single processing unit."""
        image = self.convert_hits_to_image(hits)
        if self.verbose:
            b = image.bounds
            print(f"[image] {unit}: {len(hits)} hits -> {len(image.hit_index)} cells, "
                  f"wires [{b.lower_wire}, {b.upper_wire}) ticks [{b.lower_tick}, {b.upper_tick})")

        blurred = self.gaussian_blur(image)
        result = self.find_clusters(blurred, image)
        clusters = self.convert_bins_to_clusters(image, result.clusters)

        if self.debug is not None:
            self.debug.write_stages(unit, image, blurred, result.clusters, self.cfg.cluster.min_size)

        if self.diagnostics_level >= 1:
            print(f"[cluster] {unit}: {len(result.clusters)} bin clusters -> {len(clusters)} hit clusters")
        return clusters

    def cluster_event(self, hits: Iterable[Hit], event: Optional[int] = None) -> Dict[View, List[List[Hit]]]:
        """Split an event's hits by (cryostat, plane) and cluster each view independently."""
        by_view: Dict[View, List[Hit]] = {}
        for h in hits:
            by_view.setdefault(h.view, []).append(h)

        out: Dict[View, List[List[Hit]]] = {}
        for view in sorted(by_view):
            unit = unit_name(view) if event is None else f"E{event}_{unit_name(view)}"
            out[view] = self.cluster_hits(by_view[view], unit=unit)
        return out


def _make_normalizer(cfg: Config) -> CoordinateNormalizer:
    if cfg.geometry.nwires or cfg.geometry.tpc_blocks:
        return GlobalWireMapper.from_cfg(cfg.geometry.nwires, cfg.geometry.tpc_blocks)
    return local_wire


def run_pipeline(
    cfg_path: str,
    *,
    debug_output: Optional[str] = None,
    diagnostics_level: Optional[int] = None,
) -> List[Dict[View, List[List[Hit]]]]:
    """
    Orchestrate clustering of every event in the configured hit source.

    CLI flags (--debug-output/--diagnostics) override the corresponding
    [vis]/[run] fields when not None.

    Returns
    -------
    One {(cryostat, plane): [cluster, ...]} mapping per event.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if debug_output is not None:
        cfg.vis.debug_output = debug_output
    if diagnostics_level is not None:
        cfg.run.diagnostics_level = diagnostics_level

    diag_level = cfg.run.diagnostics_level

    # Basic logging
    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] input={cfg.io.input_path} ({cfg.io.input_format})")
        print(f"[run] kernels={cfg.clustering.blur.kernels} "
              f"min_size={cfg.clustering.cluster.min_size} min_seed={cfg.clustering.cluster.min_seed}")

    adapter = make_adapter(cfg.io.input_format, cfg.io.adapter)
    events = list(islice(adapter.iter_events(cfg.io.input_path), cfg.run.max_events))
    if diag_level >= 1:
        print(f"[pipeline] Got {len(events)} events")

    debug = DebugImageWriter(cfg.vis.debug_output, config_json(cfg)) if cfg.vis.debug_output else None
    alg = BlurredClustering(
        cfg.clustering,
        normalize=_make_normalizer(cfg),
        detprop=DetectorProperties(cfg.geometry.readout_window_size),
        debug=debug,
        diagnostics_level=diag_level,
    )

    results: List[Dict[View, List[List[Hit]]]] = []
    try:
        it = tqdm(events, desc="cluster", unit="event") if cfg.run.progress else events
        for i, hits in enumerate(it):
            results.append(alg.cluster_event(hits, event=i if debug is not None else None))
    finally:
        if debug is not None:
            debug.close()

    n_clusters = sum(len(c) for r in results for c in r.values())
    if diag_level >= 1:
        print(f"[pipeline] Made {n_clusters} clusters from {len(events)} events")

    # Optional PNG export
    if debug is not None and cfg.vis.export_png:
        try:
            for unit in list_units(cfg.vis.debug_output):
                out_png = render_debug_png(cfg.vis.debug_output, unit)
                if diag_level >= 1:
                    print(f"[pipeline] Wrote PNG {out_png}")
        except Exception as e:
            if diag_level >= 1:
                print(f"[pipeline] PNG export failed: {e!r}")

    return results


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Blurred clustering of wire/tick hits (blurclust.pipelines.core)")


@app.command()
def run(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    debug_output: Optional[str] = typer.Option(
        None,
        "--debug-output",
        help="Override [vis].debug_output (HDF5 file for intermediate images)",
    ),
    diagnostics: Optional[int] = typer.Option(
        None,
        "--diagnostics",
        help="Override [run].diagnostics_level (0, 1 or 2)",
    ),
):
    """
    Cluster every event of the configured hit source and print a summary.
    """
    results = run_pipeline(cfg_path, debug_output=debug_output, diagnostics_level=diagnostics)
    for i, per_view in enumerate(results):
        for view, clusters in per_view.items():
            sizes = ",".join(str(len(c)) for c in clusters)
            typer.echo(f"event {i} {unit_name(view)}: {len(clusters)} clusters [{sizes}]")


@app.command()
def synth(
    out: Path = typer.Argument(..., help="Output HDF5 hit file"),
    n_events: int = typer.Option(5, "--events", "-n", help="Number of events"),
    seed: int = typer.Option(0, "--seed", help="RNG seed"),
):
    """Write synthetic track + noise events in the HDF5 hit layout."""
    import h5py
    from blurclust.sim.synth import synth_event

    rng = np.random.default_rng(seed)
    events = [synth_event(rng=rng) for _ in range(n_events)]
    out.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(out, "w") as f:
        write_hits_h5(f, events)
    typer.echo(f"Wrote {sum(len(e) for e in events)} hits in {n_events} events to {out}")


if __name__ == "__main__":
    app()
