from __future__ import annotations
from pathlib import Path
from typing import Sequence, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from blurclust.imaging.grid import Cell

STAGES = (
    "Stage 1: Unblurred",
    "Stage 2: Blurred",
    "Stage 3: Blurred with clusters overlaid",
    "Stage 4: Output clusters",
)


def _draw(ax, img: np.ndarray, extent, title: str):
    im = ax.imshow(img.T, origin="lower", aspect="auto", cmap="Greys", extent=extent)
    ax.set_title(title, fontsize=9)
    ax.set_xlabel("Wire number")
    ax.set_ylabel("Tick number")
    return im


def _overlay(ax, cell_clusters: Sequence[Sequence[Cell]], lower_wire: int, lower_tick: int):
    cmap = plt.get_cmap("tab10")
    for i, cells in enumerate(cell_clusters):
        if not cells:
            continue
        arr = np.asarray(cells, dtype=float)
        ax.scatter(arr[:, 0] + lower_wire, arr[:, 1] + lower_tick, s=2, color=cmap(i % 10))


def save_stage_png(
    out_png: str | Path,
    image: np.ndarray,
    blurred: np.ndarray,
    cell_clusters: Sequence[Sequence[Cell]],
    hit_cells: Sequence[Sequence[Cell]],
    origin: Tuple[int, int],
    title: str = "",
) -> str:
    """
    2x2 debug figure of one view: unblurred, blurred, blurred with the
    clustered cells, and the unblurred image with the output hit clusters.
    """
    lower_wire, lower_tick = origin
    nx, ny = image.shape
    extent = (lower_wire - 0.5, lower_wire + nx - 0.5, lower_tick - 0.5, lower_tick + ny - 0.5)

    fig, axes = plt.subplots(2, 2, figsize=(10, 5))
    _draw(axes[0, 0], image, extent, STAGES[0])
    _draw(axes[0, 1], blurred, extent, STAGES[1])
    _draw(axes[1, 0], blurred, extent, STAGES[2])
    _overlay(axes[1, 0], cell_clusters, lower_wire, lower_tick)
    _draw(axes[1, 1], image, extent, STAGES[3])
    _overlay(axes[1, 1], hit_cells, lower_wire, lower_tick)
    if title:
        fig.suptitle(title)
    fig.tight_layout()
    fig.savefig(str(out_png), dpi=150)
    plt.close(fig)
    return str(out_png)


def save_image_png(img: np.ndarray, out_png: str | Path, title: str = "") -> str:
    plt.figure()
    plt.imshow(img.T, origin="lower", aspect="auto")
    plt.colorbar()
    plt.title(title)
    plt.tight_layout()
    plt.savefig(str(out_png), dpi=150)
    plt.close()
    return str(out_png)
