"""
blurclust.io.hits_io

Readers that turn tabular hit lists into physics-layer Hit objects.

Supported inputs
----------------
- CSV (.csv) via pandas
- HDF5 (.h5/.hdf5) via h5py, columns stored as 1D datasets under /hits

Required columns: cryostat, tpc, plane, wire, peak_time, integral, rms
Optional columns: start_tick, end_tick (any other column is kept in Hit.extras)
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List

import h5py
import numpy as np
import pandas as pd

from blurclust.physics.hits import Hit, WireID

REQUIRED_COLUMNS = ("cryostat", "tpc", "plane", "wire", "peak_time", "integral", "rms")
OPTIONAL_COLUMNS = ("start_tick", "end_tick")


def _read_table(path: str | Path) -> pd.DataFrame:
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(p)
    if suffix in {".h5", ".hdf5"}:
        with h5py.File(p, "r") as f:
            if "hits" not in f:
                raise KeyError(f"/hits group not found in {p}")
            grp = f["hits"]
            cols = {name: np.asarray(grp[name]) for name in grp.keys()}
        return pd.DataFrame(cols)
    raise ValueError(f"Unrecognized hit input: {p.name} (expected .csv or .h5/.hdf5)")


def hits_from_frame(df: pd.DataFrame) -> List[Hit]:
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"hit table is missing columns: {missing}")

    extra_cols = [c for c in df.columns if c not in REQUIRED_COLUMNS and c not in OPTIONAL_COLUMNS]
    hits: List[Hit] = []
    columns = list(df.columns)
    # plain tuples: itertuples renames columns that are not identifiers
    for values in df.itertuples(index=False, name=None):
        r: Dict[str, Any] = dict(zip(columns, values))
        start = r.get("start_tick")
        end = r.get("end_tick")
        hits.append(Hit(
            wire=WireID(int(r["cryostat"]), int(r["tpc"]), int(r["plane"]), int(r["wire"])),
            peak_time=float(r["peak_time"]),
            integral=float(r["integral"]),
            rms=float(r["rms"]),
            start_tick=None if start is None or pd.isna(start) else int(start),
            end_tick=None if end is None or pd.isna(end) else int(end),
            extras={c: r[c] for c in extra_cols},
        ))
    return hits


def read_hits(path: str | Path) -> List[Hit]:
    """Read a hit table from CSV or HDF5, preserving row order."""
    return hits_from_frame(_read_table(path))


def write_hits_h5(path: str | Path, hits: List[Hit]) -> None:
    """Write hits in the /hits column layout understood by read_hits."""
    cols = {
        "cryostat": np.array([h.wire.cryostat for h in hits], dtype=np.int32),
        "tpc": np.array([h.wire.tpc for h in hits], dtype=np.int32),
        "plane": np.array([h.wire.plane for h in hits], dtype=np.int32),
        "wire": np.array([h.wire.wire for h in hits], dtype=np.int32),
        "peak_time": np.array([h.peak_time for h in hits], dtype=np.float64),
        "integral": np.array([h.integral for h in hits], dtype=np.float64),
        "rms": np.array([h.rms for h in hits], dtype=np.float64),
    }
    with h5py.File(path, "w") as f:
        grp = f.require_group("hits")
        for name, arr in cols.items():
            grp.create_dataset(name, data=arr)
