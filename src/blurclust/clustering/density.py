from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from blurclust.config.schemas import ClusterCfg
from blurclust.imaging.grid import Cell, HitImage


@dataclass
class ClusterDiagnostics:
    seeds: int = 0
    accepted: int = 0
    rejected_after_growth: int = 0
    rejected_after_pruning: int = 0
    holes_filled: int = 0
    peninsulas_removed: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)

    def inc(self, reason: str) -> None:
        self.reasons[reason] = self.reasons.get(reason, 0) + 1


def passes_time_cut(times: Sequence[float], time: float, threshold: float) -> bool:
    """True if `time` lies within `threshold` of any time already in the cluster."""
    for t in times:
        if abs(time - t) < threshold:
            return True
    return False


def _time_consistent(time: Optional[float], times: Sequence[float], threshold: float) -> bool:
    # cells without a real hit, and any cell while the cluster has no times yet, pass
    if time is None or not times:
        return True
    return passes_time_cut(times, time, threshold)


def _num_used_neighbours(hit_image: HitImage, used: np.ndarray, cell: Cell) -> int:
    return sum(1 for nb in hit_image.neighbours8(cell) if used[nb])


def seed_order(blurred: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cells sorted by descending (charge, linear index), with the linear index
    tick * n_wires + wire.

    Returns (charges, linear_indices) in that order.
    """
    flat = blurred.T.ravel()  # index = y * nx + x
    idx = np.arange(flat.size, dtype=np.int64)
    order = np.lexsort((idx, flat))[::-1]
    return flat[order], idx[order]


def _grow(
    cluster: List[Cell],
    times: List[float],
    used: np.ndarray,
    blurred: np.ndarray,
    hit_image: HitImage,
    cfg: ClusterCfg,
) -> None:
    """Add window neighbours above the charge threshold until nothing changes."""
    while True:
        nadded = 0
        i = 0
        # cells appended during the scan are visited in the same pass
        while i < len(cluster):
            for nb in hit_image.window(cluster[i], cfg.cluster_wire_distance, cfg.cluster_tick_distance):
                if used[nb]:
                    continue
                time = hit_image.time_of(nb)
                if not _time_consistent(time, times, cfg.time_threshold):
                    continue
                if blurred[nb] > cfg.charge_threshold:
                    used[nb] = True
                    cluster.append(nb)
                    nadded += 1
                    if time is not None:
                        times.append(time)
            i += 1
        if nadded == 0:
            return


def _fill_holes(
    cluster: List[Cell],
    times: List[float],
    used: np.ndarray,
    hit_image: HitImage,
    cfg: ClusterCfg,
) -> int:
    """
    Absorb unused interior hits that are surrounded by more than
    cfg.neighbours_threshold used cells.

    Only cells holding a real hit whose time matches the cluster qualify;
    blur-only cells are never hole-filled.
    """
    nfilled = 0
    i = 0
    while i < len(cluster):
        for nb in hit_image.neighbours8(cluster[i]):
            if hit_image.is_border(nb) or used[nb]:
                continue
            time = hit_image.time_of(nb)
            if time is None or not passes_time_cut(times, time, cfg.time_threshold):
                continue
            if _num_used_neighbours(hit_image, used, nb) > cfg.neighbours_threshold:
                used[nb] = True
                cluster.append(nb)
                nfilled += 1
                times.append(time)
        i += 1
    return nfilled


def _remove_peninsulas(cluster: List[Cell], used: np.ndarray, hit_image: HitImage, cfg: ClusterCfg) -> int:
    """Drop interior cells with too few used neighbours, repeating until stable."""
    total = 0
    while True:
        nremoved = 0
        for i in range(len(cluster) - 1, -1, -1):
            cell = cluster[i]
            if hit_image.is_border(cell):
                continue
            if _num_used_neighbours(hit_image, used, cell) < cfg.min_neighbours:
                used[cell] = False
                del cluster[i]
                nremoved += 1
        total += nremoved
        if not nremoved:
            return total


def _release(cluster: Sequence[Cell], used: np.ndarray) -> None:
    for cell in cluster:
        used[cell] = False


def find_clusters(
    blurred: np.ndarray,
    hit_image: HitImage,
    cfg: ClusterCfg,
    *,
    diagnostics_level: int = 0,
) -> Tuple[List[List[Cell]], ClusterDiagnostics]:
    """
    Seeded clustering of a blurred image.

    Seeds are taken in descending blurred charge; each seed is grown over
    its (wire, tick) window, gated by hit time, then holes are filled and
    peninsulas pruned. Clusters smaller than cfg.min_size cells after growth
    or after pruning are released so their cells can seed or join later
    clusters. Clustering stops at the first candidate seed below cfg.min_seed.

    Returns the accepted clusters as lists of cells, plus diagnostics.
    """
    if blurred.shape != hit_image.shape:
        raise ValueError(f"blurred image shape {blurred.shape} != hit image shape {hit_image.shape}")

    diag = ClusterDiagnostics()
    nx = blurred.shape[0]
    used = np.zeros(blurred.shape, dtype=bool)
    charges, indices = seed_order(blurred)
    clusters: List[List[Cell]] = []

    for charge, index in zip(charges.tolist(), indices.tolist()):
        if charge < cfg.min_seed:
            break
        seed = (index % nx, index // nx)
        if used[seed]:
            continue
        used[seed] = True
        diag.seeds += 1

        cluster: List[Cell] = [seed]
        times: List[float] = []
        t = hit_image.time_of(seed)
        if t is not None:
            times.append(t)

        _grow(cluster, times, used, blurred, hit_image, cfg)

        if len(cluster) < cfg.min_size:
            _release(cluster, used)
            diag.rejected_after_growth += 1
            diag.inc("too_small_after_growth")
            continue

        diag.holes_filled += _fill_holes(cluster, times, used, hit_image, cfg)
        if diagnostics_level >= 2:
            print(f"[cluster] size after filling in holes: {len(cluster)}")

        diag.peninsulas_removed += _remove_peninsulas(cluster, used, hit_image, cfg)
        if diagnostics_level >= 2:
            print(f"[cluster] size after removing peninsulas: {len(cluster)}")

        if len(cluster) < cfg.min_size:
            _release(cluster, used)
            diag.rejected_after_pruning += 1
            diag.inc("too_small_after_pruning")
            continue

        clusters.append(cluster)
        diag.accepted += 1

    if diagnostics_level >= 1:
        print(f"[cluster] {diag.accepted} clusters from {diag.seeds} seeds "
              f"(rejected: growth={diag.rejected_after_growth}, pruning={diag.rejected_after_pruning})")
    return clusters, diag
