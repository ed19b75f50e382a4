from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence

import h5py
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..imaging.image import HitImage

STAGES = (
    "Stage 1: Unblurred",
    "Stage 2: Blurred",
    "Stage 3: Blurred with clusters overlaid",
    "Stage 4: Output clusters",
)

def _write_ragged(grp: h5py.Group, name: str, lists: Sequence[Sequence[int]]) -> None:
    ptr = np.zeros(len(lists) + 1, dtype=np.int64)
    ptr[1:] = np.cumsum([len(x) for x in lists])
    flat = np.array([b for x in lists for b in x], dtype=np.int64)
    sub = grp.require_group(name)
    for key, arr in (("ptr", ptr), ("bins", flat)):
        if key in sub:
            del sub[key]
        sub.create_dataset(key, data=arr)

def _read_ragged(grp: h5py.Group, name: str) -> List[np.ndarray]:
    ptr = grp[name]["ptr"][...]
    flat = grp[name]["bins"][...]
    return [flat[a:b] for a, b in zip(ptr[:-1], ptr[1:])]

class DebugImageWriter:
    """
    Collects the intermediate images of each processing unit into one HDF5 file.

    Layout per unit:
      /debug/<unit>/unblurred       (nbins_wire, nbins_tick) float32
      /debug/<unit>/blurred         (nbins_wire, nbins_tick) float32
      /debug/<unit>/cell_clusters   ragged bins of every accepted bin cluster
      /debug/<unit>/output_clusters ragged bins of the real hits in each bin cluster
      /debug/<unit>/output_accepted (n_clusters,) bool, passed the real-hit size cut
    """

    def __init__(self, path: str | Path, config_text: Optional[str] = None) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._f = h5py.File(self.path, "w")
        if config_text is not None:
            self._f.attrs["config_json"] = config_text

    def __enter__(self) -> "DebugImageWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._f is not None:
            self._f.close()
            self._f = None

    def write_stages(
        self,
        unit: str,
        image: HitImage,
        blurred: np.ndarray,
        cell_clusters: Sequence[Sequence[int]],
        min_size: int,
    ) -> None:
        grp = self._f.require_group("debug").require_group(unit)
        grp.attrs["bounds"] = np.asarray(image.bounds, dtype=np.int64)
        for name, img in (("unblurred", image.charge), ("blurred", blurred)):
            if name in grp:
                del grp[name]
            grp.create_dataset(name, data=np.asarray(img, dtype=np.float32), compression="gzip")

        output_bins: List[List[int]] = []
        accepted: List[bool] = []
        for bins in cell_clusters:
            real = [b for b in bins if image.hit_at_bin(b) is not None]
            output_bins.append(real)
            accepted.append(len(real) >= min_size)
        _write_ragged(grp, "cell_clusters", cell_clusters)
        _write_ragged(grp, "output_clusters", output_bins)
        if "output_accepted" in grp:
            del grp["output_accepted"]
        grp.create_dataset("output_accepted", data=np.asarray(accepted, dtype=bool))

def list_units(h5_path: str | Path) -> List[str]:
    with h5py.File(str(h5_path), "r") as f:
        return sorted(f["debug"].keys()) if "debug" in f else []

def render_debug_png(h5_path: str | Path, unit: str, out_png: str | None = None) -> str:
    """Draw the four clustering stages of one unit as a 2x2 grid."""
    h5_path = str(h5_path)
    with h5py.File(h5_path, "r") as f:
        key = f"debug/{unit}"
        if key not in f:
            raise KeyError(f"{key} not found in {h5_path}")
        grp = f[key]
        lower_wire, upper_wire, lower_tick, upper_tick = (int(v) for v in grp.attrs["bounds"])
        unblurred = np.array(grp["unblurred"], dtype=np.float32)
        blurred = np.array(grp["blurred"], dtype=np.float32)
        cell_clusters = _read_ragged(grp, "cell_clusters")
        output_clusters = _read_ragged(grp, "output_clusters")
        accepted = grp["output_accepted"][...]

    if out_png is None:
        out_png = str(Path(h5_path).with_name(f"{Path(h5_path).stem}_{unit}.png"))

    nbins_wire = unblurred.shape[0]
    extent = [lower_wire - 0.5, upper_wire - 0.5, lower_tick - 0.5, upper_tick - 0.5]
    colours = plt.rcParams["axes.prop_cycle"].by_key()["color"]

    def _overlay(ax, clusters, passed=None):
        for k, bins in enumerate(clusters):
            if len(bins) == 0:
                continue
            wires = bins % nbins_wire + lower_wire
            ticks = bins // nbins_wire + lower_tick
            c = colours[k % len(colours)]
            if passed is not None and not passed[k]:
                ax.scatter(wires, ticks, s=6, facecolors="none", edgecolors=c, linewidths=0.5)
            else:
                ax.scatter(wires, ticks, s=2, color=c)

    fig, axes = plt.subplots(2, 2, figsize=(10, 8))
    panels = (
        (unblurred, None, None),
        (blurred, None, None),
        (blurred, cell_clusters, None),
        (unblurred, output_clusters, accepted),
    )
    for ax, title, (img, clusters, acc) in zip(axes.ravel(), STAGES, panels):
        ax.imshow(img.T, origin="lower", extent=extent, aspect="auto", cmap="gray_r")
        if clusters is not None:
            _overlay(ax, clusters, acc)
        ax.set_title(f"{title} -- {unit}", fontsize=8)
        ax.set_xlabel("Wire number")
        ax.set_ylabel("Tick number")
    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return out_png
