from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Sequence, Tuple

import numpy as np

from blurclust.errors import DegenerateInputError
from blurclust.geometry.wires import DetectorGeometry
from blurclust.physics.hits import Hit

# Empty wires/ticks added around the hits on each side of the image
IMAGE_MARGIN = 20

# (wire_index, tick_index) into the image arrays
Cell = Tuple[int, int]

_NEIGH8 = [(-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)]


@dataclass
class HitImage:
    """
    Dense wire x tick image of one view, owned by a single clustering call.

    image[x, y]  : max charge of the hits on global wire lower_wire+x, tick lower_tick+y
    widths[x, y] : RMS of the hit that won that cell (0 where empty)
    hit_map      : wire -> tick -> winning Hit
    """
    image: np.ndarray
    widths: np.ndarray
    hit_map: Dict[int, Dict[int, Hit]]
    lower_wire: int
    upper_wire: int
    lower_tick: int
    upper_tick: int
    n_hits_in: int = field(default=0)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.image.shape

    @property
    def n_wires(self) -> int:
        return self.image.shape[0]

    @property
    def n_ticks(self) -> int:
        return self.image.shape[1]

    # ---- cell <-> detector coordinates ----

    def wire_tick(self, cell: Cell) -> Tuple[int, int]:
        x, y = cell
        return x + self.lower_wire, y + self.lower_tick

    def cell_of(self, wire: int, tick: int) -> Cell:
        return wire - self.lower_wire, tick - self.lower_tick

    def hit_at(self, cell: Cell) -> Optional[Hit]:
        """Hit recorded on this cell, or None for cells that only carry blur."""
        wire, tick = self.wire_tick(cell)
        ticks = self.hit_map.get(wire)
        if ticks is None:
            return None
        return ticks.get(tick)

    def time_of(self, cell: Cell) -> Optional[float]:
        """Peak time of the hit on this cell; None for blur-only cells and for hits at time <= 0."""
        hit = self.hit_at(cell)
        if hit is None or hit.peak_time <= 0:
            return None
        return float(hit.peak_time)

    def occupied(self) -> Iterator[Tuple[int, int]]:
        """(wire, tick) of every hit kept in the hit map."""
        for wire, ticks in self.hit_map.items():
            for tick in ticks:
                yield wire, tick

    # ---- neighbourhoods ----

    def contains(self, cell: Cell) -> bool:
        x, y = cell
        return 0 <= x < self.n_wires and 0 <= y < self.n_ticks

    def is_border(self, cell: Cell) -> bool:
        x, y = cell
        return x <= 0 or y <= 0 or x >= self.n_wires - 1 or y >= self.n_ticks - 1

    def neighbours8(self, cell: Cell) -> Iterator[Cell]:
        """In-bounds direct neighbours of a cell (not the cell itself)."""
        x, y = cell
        for dx, dy in _NEIGH8:
            nb = (x + dx, y + dy)
            if self.contains(nb):
                yield nb

    def window(self, cell: Cell, half_wire: int, half_tick: int) -> Iterator[Cell]:
        """In-bounds cells of the (2*half_wire+1) x (2*half_tick+1) box, centre excluded."""
        x, y = cell
        for nx in range(max(0, x - half_wire), min(self.n_wires, x + half_wire + 1)):
            for ny in range(max(0, y - half_tick), min(self.n_ticks, y + half_tick + 1)):
                if nx == x and ny == y:
                    continue
                yield nx, ny


def image_bounds(
    wires: Sequence[int],
    ticks: Sequence[int],
    max_wires: int,
    readout_window: int,
    margin: int = IMAGE_MARGIN,
) -> Tuple[int, int, int, int]:
    """
    Bounding box of the hits, grown by `margin` on every side.

    The lower bounds start from the detector's wire count/readout window and
    the upper bounds from 0, so the box always covers at least those seeds
    that the hits themselves exceed.
    """
    lower_wire = min(int(max_wires), min(wires))
    upper_wire = max(0, max(wires))
    lower_tick = min(int(readout_window), min(ticks))
    upper_tick = max(0, max(ticks))
    return lower_wire - margin, upper_wire + margin, lower_tick - margin, upper_tick + margin


def build_hit_image(
    hits: Sequence[Hit],
    geometry: DetectorGeometry,
    *,
    margin: int = IMAGE_MARGIN,
    diagnostics_level: int = 0,
) -> HitImage:
    """
    Fill a dense image with the hits of one view.

    Several hits can land on the same (wire, int(tick)) cell; the cell keeps
    the largest charge and its width, and only that hit is kept in the hit
    map. On equal charge the first hit seen is kept.
    """
    if len(hits) == 0:
        raise DegenerateInputError("cannot build a hit image from an empty hit list")

    wires = [int(geometry.global_wire(h.wire)) for h in hits]
    ticks = [int(h.peak_time) for h in hits]

    lower_wire, upper_wire, lower_tick, upper_tick = image_bounds(
        wires, ticks, geometry.max_wires(), geometry.readout_window_size(), margin=margin
    )

    shape = (upper_wire - lower_wire, upper_tick - lower_tick)
    image = np.zeros(shape, dtype=np.float64)
    widths = np.zeros(shape, dtype=np.float64)
    hit_map: Dict[int, Dict[int, Hit]] = {}

    for hit, wire, tick in zip(hits, wires, ticks):
        x = wire - lower_wire
        y = tick - lower_tick
        charge = float(hit.integral)
        if charge > image[x, y]:
            image[x, y] = charge
            widths[x, y] = float(hit.rms)
            hit_map.setdefault(wire, {})[tick] = hit

    if diagnostics_level >= 2:
        n_kept = sum(len(t) for t in hit_map.values())
        print(f"[grid] {len(hits)} hits -> {n_kept} cells, "
              f"wires [{lower_wire}, {upper_wire}) ticks [{lower_tick}, {upper_tick})")

    return HitImage(
        image=image,
        widths=widths,
        hit_map=hit_map,
        lower_wire=lower_wire,
        upper_wire=upper_wire,
        lower_tick=lower_tick,
        upper_tick=upper_tick,
        n_hits_in=len(hits),
    )
