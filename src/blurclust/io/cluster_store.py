from __future__ import annotations
from typing import Dict, List, Mapping, Sequence, Tuple
import h5py
import numpy as np
from datetime import datetime, timezone
from pathlib import Path
from blurclust.config.load import json_dumps, snapshot_config_toml
from blurclust.physics.hits import Hit

FORMAT_VERSION = "1.0"


def view_name(key: Tuple[int, ...]) -> str:
    """HDF5 group name for a view key, e.g. (0, 2) -> 'c0_p2', (0, 1, 2) -> 'c0_t1_p2'."""
    if len(key) == 2:
        return f"c{key[0]}_p{key[1]}"
    return f"c{key[0]}_t{key[1]}_p{key[2]}"


def write_init(path: str, cfg_path: str | None = None) -> h5py.File:
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = "blurclust 0.1.0"
    if cfg_path is not None:
        f.attrs["config_text"] = snapshot_config_toml(cfg_path)
    f.require_group("clusters")
    return f


def _flatten_clusters(
    clusters: Sequence[Sequence[Hit]],
    hit_index: Mapping[int, int],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    CSR layout of hit clusters.

    Returns:
      cluster_ptr: (N_clusters+1,) int64 pointers into hit_index
      flat: (M,) int64 row index of each clustered hit in the input hit list
    """
    ptr = np.zeros(len(clusters) + 1, dtype=np.int64)
    k = 0
    for i, cl in enumerate(clusters):
        k += len(cl)
        ptr[i + 1] = k
    flat = np.empty(k, dtype=np.int64)
    w = 0
    for cl in clusters:
        for h in cl:
            flat[w] = hit_index[id(h)]
            w += 1
    return ptr, flat


def write_view(
    f: h5py.File,
    key: Tuple[int, ...],
    clusters: Sequence[Sequence[Hit]],
    hit_index: Mapping[int, int],
    *,
    image: np.ndarray | None = None,
    blurred: np.ndarray | None = None,
    meta: Dict | None = None,
) -> None:
    """
    Store the clusters of one view under /clusters/<view>.

    Layout:
      /clusters/<view>/cluster_ptr  (N+1,) int64
      /clusters/<view>/hit_index    (M,)   int64   rows of the input hit table
      /clusters/<view>/image        optional unblurred image (float32)
      /clusters/<view>/blurred      optional blurred image (float32)

    hit_index maps id(hit) -> row of that hit in the input list.
    """
    grp = f.require_group("clusters")
    name = view_name(key)
    if name in grp:
        del grp[name]
    vg = grp.create_group(name)
    vg.attrs["view_key"] = np.asarray(key, dtype=np.int64)
    vg.attrs["n_clusters"] = len(clusters)
    if meta:
        vg.attrs["meta_json"] = json_dumps(meta)

    ptr, flat = _flatten_clusters(clusters, hit_index)
    vg.create_dataset("cluster_ptr", data=ptr, dtype="i8")
    vg.create_dataset("hit_index", data=flat, dtype="i8")
    if image is not None:
        vg.create_dataset("image", data=image.astype(np.float32), compression="gzip")
    if blurred is not None:
        vg.create_dataset("blurred", data=blurred.astype(np.float32), compression="gzip")


def read_clusters(path: str | Path) -> Dict[str, List[np.ndarray]]:
    """Return {view_name: [hit row indices per cluster]}."""
    out: Dict[str, List[np.ndarray]] = {}
    with h5py.File(str(path), "r") as f:
        grp = f["clusters"]
        for name in grp.keys():
            ptr = np.asarray(grp[name]["cluster_ptr"])
            flat = np.asarray(grp[name]["hit_index"])
            out[name] = [flat[ptr[i]:ptr[i + 1]] for i in range(len(ptr) - 1)]
    return out


def read_view_image(path: str | Path, view: str, dataset: str = "blurred") -> np.ndarray:
    with h5py.File(str(path), "r") as f:
        grp = f["clusters"]
        if view not in grp:
            raise KeyError(f"view {view} not found in /clusters of {path}")
        if dataset not in grp[view]:
            raise KeyError(f"{dataset} not stored for view {view} in {path}")
        return np.array(grp[view][dataset], dtype=np.float32)


def write_clusters(
    path: str | Path,
    views: Mapping[Tuple[int, ...], Sequence[Sequence[Hit]]],
    hit_index: Mapping[int, int],
    *,
    cfg_path: str | None = None,
    images: Mapping[Tuple[int, ...], Tuple[np.ndarray | None, np.ndarray | None]] | None = None,
    meta: Mapping[Tuple[int, ...], Dict] | None = None,
) -> Path:
    """
    Write every view's clusters to one HDF5 file.

    images maps a view key to its (unblurred, blurred) pair; meta maps a
    view key to extra attributes stored as JSON.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    images = images or {}
    meta = meta or {}
    f = write_init(str(out), cfg_path)
    try:
        for key, clusters in views.items():
            image, blurred = images.get(key, (None, None))
            write_view(f, key, clusters, hit_index, image=image, blurred=blurred, meta=meta.get(key))
    finally:
        f.close()
    return out
