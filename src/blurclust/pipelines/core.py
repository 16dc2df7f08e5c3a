from __future__ import annotations

from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
import typer

import numpy as np
from tqdm import tqdm

from blurclust.clustering.density import find_clusters
from blurclust.clustering.recovery import cells_to_clusters
from blurclust.config.load import load_config
from blurclust.config.schemas import BlurCfg, ClusterCfg, Config, DetectorCfg
from blurclust.geometry.wires import BlockGeometry, DetectorGeometry
from blurclust.imaging.blur import gaussian_blur
from blurclust.imaging.grid import Cell, HitImage, build_hit_image
from blurclust.io.cluster_store import view_name, write_clusters
from blurclust.io.hits_io import read_hits
from blurclust.physics.hits import Hit
from blurclust.vis.stages import save_stage_png

ViewKey = Tuple[int, ...]


class ClusteringResult(NamedTuple):
    clusters: List[List[Hit]]
    hit_image: Optional[HitImage]
    blurred: Optional[np.ndarray]
    cell_clusters: List[List[Cell]]


def blurred_cluster(
    hits: Sequence[Hit],
    geometry: DetectorGeometry,
    blur_cfg: BlurCfg,
    cluster_cfg: ClusterCfg,
    *,
    diagnostics_level: int = 0,
) -> ClusteringResult:
    """
    Cluster the hits of one view.

    hits → image → adaptive blur → seeded clustering → hit recovery.

    Every returned hit is one of the input objects, no hit is returned in two
    clusters, and every cluster holds at least cluster_cfg.min_size hits.
    An empty hit list gives no clusters.
    """
    if len(hits) == 0:
        if diagnostics_level >= 1:
            print("[pipeline] No hits in view; nothing to cluster")
        return ClusteringResult([], None, None, [])

    hit_image = build_hit_image(hits, geometry, diagnostics_level=diagnostics_level)
    blur = gaussian_blur(hit_image, blur_cfg, diagnostics_level=diagnostics_level)
    cell_clusters, _diag = find_clusters(
        blur.blurred, hit_image, cluster_cfg, diagnostics_level=diagnostics_level
    )
    clusters = cells_to_clusters(
        hit_image, cell_clusters, cluster_cfg.min_size, diagnostics_level=diagnostics_level
    )

    if diagnostics_level >= 1:
        n_clustered = sum(len(c) for c in clusters)
        print(f"[pipeline] {len(clusters)} clusters holding {n_clustered}/{len(hits)} hits")
    return ClusteringResult(clusters, hit_image, blur.blurred, cell_clusters)


def split_views(hits: Sequence[Hit], global_tpc_recon: bool = True) -> Dict[ViewKey, List[Hit]]:
    """
    Group hits into views, keeping input order within each view.

    global_tpc_recon=True merges TPCs: key (cryostat, plane); otherwise
    key (cryostat, tpc, plane). Keys come back sorted.
    """
    views: Dict[ViewKey, List[Hit]] = {}
    for h in hits:
        if global_tpc_recon:
            key: ViewKey = (h.wire.cryostat, h.wire.plane)
        else:
            key = (h.wire.cryostat, h.wire.tpc, h.wire.plane)
        views.setdefault(key, []).append(h)
    return {k: views[k] for k in sorted(views)}


def make_geometry(det: DetectorCfg) -> BlockGeometry:
    return BlockGeometry.from_cfg(det.n_wires, det.readout_window_size, det.tpc_blocks)


def cluster_views(
    hits: Sequence[Hit],
    cfg: Config,
    geometry: Optional[DetectorGeometry] = None,
) -> Dict[ViewKey, ClusteringResult]:
    """Run blurred clustering independently on every view of the event."""
    geometry = geometry or make_geometry(cfg.detector)
    views = split_views(hits, cfg.run.global_tpc_recon)
    diag_level = cfg.run.diagnostics_level

    results: Dict[ViewKey, ClusteringResult] = {}
    items = list(views.items())
    for key, view_hits in (tqdm(items, desc="views", unit="view") if cfg.run.progress else items):
        if diag_level >= 2:
            print(f"[pipeline] View {view_name(key)}: {len(view_hits)} hits")
        results[key] = blurred_cluster(
            view_hits, geometry, cfg.blur, cfg.cluster, diagnostics_level=diag_level
        )
    return results


def _hit_cells(result: ClusteringResult) -> List[List[Cell]]:
    img = result.hit_image
    out: List[List[Cell]] = []
    if img is None:
        return out
    for cl in result.clusters:
        members = set(cl)
        out.append([img.cell_of(w, t) for w, t in img.occupied() if img.hit_map[w][t] in members])
    return out


def run_pipeline(cfg_path: str, *, export_png: Optional[bool] = None) -> Path:
    """
    Orchestrate the full pipeline from a TOML config file.

    Reads the hit table, clusters each view and writes an HDF5 file with
    the clusters (as row indices into the hit table) and the view images.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path)
    if export_png is not None:
        cfg.vis.export_png = export_png
    diag_level = cfg.run.diagnostics_level

    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] input={cfg.io.input_path} -> output={cfg.io.output_path}")

    hits = read_hits(cfg.io.input_path)
    if diag_level >= 1:
        print(f"[pipeline] Read {len(hits)} hits")
    hit_index = {id(h): i for i, h in enumerate(hits)}

    results = cluster_views(hits, cfg)

    images = {}
    meta = {}
    for key, res in results.items():
        if res.hit_image is not None:
            images[key] = (res.hit_image.image, res.blurred)
            meta[key] = dict(n_hits=res.hit_image.n_hits_in,
                             lower_wire=res.hit_image.lower_wire, lower_tick=res.hit_image.lower_tick)
    out_path = write_clusters(
        cfg.io.output_path,
        {key: res.clusters for key, res in results.items()},
        hit_index,
        cfg_path=cfg_path,
        images=images,
        meta=meta,
    )
    if diag_level >= 1:
        print(f"[pipeline] Wrote {out_path}")

    if cfg.vis.export_png:
        png_dir = Path(cfg.vis.png_dir) if cfg.vis.png_dir else out_path.with_name(out_path.stem + "_png")
        png_dir.mkdir(parents=True, exist_ok=True)
        for key, res in results.items():
            if res.hit_image is None:
                continue
            out_png = save_stage_png(
                png_dir / f"{view_name(key)}.png",
                res.hit_image.image,
                res.blurred,
                res.cell_clusters,
                _hit_cells(res),
                (res.hit_image.lower_wire, res.hit_image.lower_tick),
                title=view_name(key),
            )
            if diag_level >= 1:
                print(f"[pipeline] Wrote PNG {out_png}")

    return out_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Blurred hit clustering (blurclust.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    png: Optional[bool] = typer.Option(
        None,
        "--png / --no-png",
        help="Write per-view debug PNGs; overrides [vis].export_png when set",
    ),
):
    """
    Run blurred clustering for a single config.
    """
    out_path = run_pipeline(cfg_path, export_png=png)
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
