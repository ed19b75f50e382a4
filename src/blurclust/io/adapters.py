"""
blurclust.io.adapters

Readers that turn tabular hit dumps into physics-layer Hit lists, one list
per event.

Supported sources
-----------------
- CSV  (pandas): one row per hit, events keyed by an `event` column.
- HDF5 (h5py):   flat per-hit columns under a group plus a CSR-style
                 `event_ptr` (N_events+1) pointer, the same ragged layout
                 the list-mode writers use.

Column names are resolved through a small field map so that dumps from
different producers can be read without renaming columns.

Config (example)
----------------
[io]
input_path = "data/hits.csv"
input_format = "csv"

[io.adapter]
group = "/hits"               # HDF5 only
peak_time = "PeakTime"        # override any column name
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import h5py
import numpy as np
import pandas as pd

from blurclust.physics.hits import Hit, WireID

_DEFAULT_FIELDS: Dict[str, str] = {
    "event": "event",
    "cryostat": "cryostat",
    "tpc": "tpc",
    "plane": "plane",
    "wire": "wire",
    "peak_time": "peak_time",
    "integral": "integral",
    "rms": "rms",
    "start_tick": "start_tick",
    "end_tick": "end_tick",
}

_REQUIRED = ("wire", "peak_time", "integral")

def _resolve_fields(overrides: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    fields = dict(_DEFAULT_FIELDS)
    for k, v in (overrides or {}).items():
        if k in fields:
            fields[k] = str(v)
    return fields

def _optional(cols: Mapping[str, np.ndarray], key: str, i: int) -> Any:
    # absent column or blank cell (NaN after pandas/HDF5 float promotion)
    if key not in cols:
        return None
    v = cols[key][i]
    return None if pd.isna(v) else v

def _required(cols: Mapping[str, np.ndarray], key: str, i: int) -> Any:
    v = cols[key][i]
    if pd.isna(v):
        raise ValueError(f"blank value in required hit column '{key}' (row {i} of event)")
    return v

def _hits_from_columns(cols: Mapping[str, np.ndarray], n: int, extra_names: Sequence[str]) -> List[Hit]:
    hits: List[Hit] = []
    for i in range(n):
        cryostat, tpc, plane = (_optional(cols, k, i) for k in ("cryostat", "tpc", "plane"))
        rms = _optional(cols, "rms", i)
        start_tick = _optional(cols, "start_tick", i)
        end_tick = _optional(cols, "end_tick", i)
        wid = WireID(
            int(cryostat) if cryostat is not None else 0,
            int(tpc) if tpc is not None else 0,
            int(plane) if plane is not None else 0,
            int(_required(cols, "wire", i)),
        )
        hits.append(Hit(
            wire_id=wid,
            peak_time=float(_required(cols, "peak_time", i)),
            integral=float(_required(cols, "integral", i)),
            rms=float(rms) if rms is not None else 0.0,
            start_tick=int(start_tick) if start_tick is not None else None,
            end_tick=int(end_tick) if end_tick is not None else None,
            extras={name: cols[name][i].item() if hasattr(cols[name][i], "item") else cols[name][i]
                    for name in extra_names},
        ))
    return hits


class BaseAdapter:
    """
    Abstract adapter interface.

    Yields one list of Hit objects per event.
    """

    def iter_events(self, path: str) -> Iterator[List[Hit]]:
        raise NotImplementedError


class CSVAdapter(BaseAdapter):
    """
    Read hits from a CSV table (one row per hit).

    Parameters
    ----------
    fields : mapping of canonical name -> column name overrides
    keep_extras : bool
        If True, unrecognized columns are copied into Hit.extras.
    """

    def __init__(self, fields: Optional[Mapping[str, Any]] = None, keep_extras: bool = True) -> None:
        self.fields = _resolve_fields(fields)
        self.keep_extras = keep_extras

    def iter_events(self, path: str) -> Iterator[List[Hit]]:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Hit table not found: {p}")
        df = pd.read_csv(p)

        missing = [self.fields[k] for k in _REQUIRED if self.fields[k] not in df.columns]
        if missing:
            raise ValueError(f"{p}: missing required hit columns {missing}")

        rename = {col: key for key, col in self.fields.items() if col in df.columns}
        df = df.rename(columns=rename)
        extra_names = [c for c in df.columns if c not in _DEFAULT_FIELDS] if self.keep_extras else []
        if "event" not in df.columns:
            df["event"] = 0

        # groupby sorts by event id; row order is preserved within an event
        for _, grp in df.groupby("event", sort=True):
            cols = {c: grp[c].to_numpy() for c in grp.columns}
            yield _hits_from_columns(cols, len(grp), extra_names)


class HDF5Adapter(BaseAdapter):
    """
    Read hits stored as flat HDF5 columns with a CSR event pointer.

    Layout:
      <group>/event_ptr   (N_events+1,) int64
      <group>/<column>    (N_hits,)
    """

    def __init__(self, group: str = "/hits", fields: Optional[Mapping[str, Any]] = None, keep_extras: bool = True) -> None:
        self.group = group.rstrip("/") or "/"
        self.fields = _resolve_fields(fields)
        self.keep_extras = keep_extras

    def iter_events(self, path: str) -> Iterator[List[Hit]]:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Hit file not found: {p}")
        with h5py.File(p, "r") as f:
            if self.group not in f:
                raise ValueError(f"{p}: group {self.group} not found")
            g = f[self.group]
            missing = [self.fields[k] for k in _REQUIRED if self.fields[k] not in g]
            if missing:
                raise ValueError(f"{p}: missing required hit columns {missing}")

            cols: Dict[str, np.ndarray] = {}
            for key, name in self.fields.items():
                if key != "event" and name in g:
                    cols[key] = g[name][...]
            known = set(self.fields.values()) | {"event_ptr"}
            extra_names = []
            if self.keep_extras:
                for name, obj in g.items():
                    if isinstance(obj, h5py.Dataset) and name not in known:
                        cols[name] = obj[...]
                        extra_names.append(name)

            n_hits = len(cols["wire"])
            if "event_ptr" in g:
                ptr = g["event_ptr"][...].astype(np.int64)
            else:
                ptr = np.array([0, n_hits], dtype=np.int64)

        for start, end in zip(ptr[:-1].tolist(), ptr[1:].tolist()):
            sub = {k: v[start:end] for k, v in cols.items()}
            yield _hits_from_columns(sub, end - start, extra_names)


def write_hits_h5(h5: h5py.File, events: Sequence[Sequence[Hit]], *, group: str = "/hits") -> None:
    """Write events of hits in the layout HDF5Adapter reads."""
    g = h5.require_group(group)
    ptr = np.zeros(len(events) + 1, dtype=np.int64)
    ptr[1:] = np.cumsum([len(ev) for ev in events])
    flat = [h for ev in events for h in ev]

    columns = {
        "event_ptr": ptr,
        "cryostat": np.array([h.wire_id.cryostat for h in flat], dtype=np.int32),
        "tpc": np.array([h.wire_id.tpc for h in flat], dtype=np.int32),
        "plane": np.array([h.wire_id.plane for h in flat], dtype=np.int32),
        "wire": np.array([h.wire_id.wire for h in flat], dtype=np.int32),
        "peak_time": np.array([h.peak_time for h in flat], dtype=np.float64),
        "integral": np.array([h.integral for h in flat], dtype=np.float64),
        "rms": np.array([h.rms for h in flat], dtype=np.float64),
    }
    for key, arr in columns.items():
        if key in g:
            del g[key]
        g.create_dataset(key, data=arr)


def make_adapter(input_format: str, adapter_cfg: Optional[Mapping[str, Any]] = None) -> BaseAdapter:
    """
    Factory from the [io] section: input_format selects the reader and
    [io.adapter] supplies its options (column overrides, HDF5 group).
    """
    opts = dict(adapter_cfg or {})
    keep_extras = bool(opts.pop("keep_extras", True))
    if input_format == "csv":
        return CSVAdapter(fields=opts, keep_extras=keep_extras)
    if input_format == "hdf5":
        group = str(opts.pop("group", "/hits"))
        return HDF5Adapter(group=group, fields=opts, keep_extras=keep_extras)
    raise ValueError(f"Unknown input_format {input_format!r}")
