from __future__ import annotations
from typing import List, Sequence

from blurclust.imaging.grid import Cell, HitImage
from blurclust.physics.hits import Hit


def cells_to_hits(hit_image: HitImage, cells: Sequence[Cell]) -> List[Hit]:
    """Real hits under the given cells; cells that only hold blurred charge are skipped."""
    hits: List[Hit] = []
    for cell in cells:
        hit = hit_image.hit_at(cell)
        if hit is not None:
            hits.append(hit)
    return hits


def cells_to_clusters(
    hit_image: HitImage,
    cell_clusters: Sequence[Sequence[Cell]],
    min_size: int,
    *,
    diagnostics_level: int = 0,
) -> List[List[Hit]]:
    """
    Convert cell clusters into hit clusters, dropping any that keep fewer
    than `min_size` real hits.
    """
    clusters: List[List[Hit]] = []
    for cells in cell_clusters:
        hits = cells_to_hits(hit_image, cells)
        if diagnostics_level >= 2:
            print(f"[recover] Cluster made from {len(cells)} cells, of which {len(hits)} were real hits")
        if len(hits) < min_size:
            if diagnostics_level >= 2:
                print(f"[recover] Cluster of size {len(hits)} not saved since it is smaller "
                      f"than the minimum cluster size, set to {min_size}")
            continue
        clusters.append(hits)
    return clusters
