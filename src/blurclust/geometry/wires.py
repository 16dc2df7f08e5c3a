from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence

from blurclust.errors import GeometryError
from blurclust.physics.hits import WireID


class DetectorGeometry(Protocol):
    """What the clustering core needs to know about the detector."""

    def global_wire(self, wire_id: WireID) -> int:
        """Map a module-local wire to a wire index unique across TPCs."""

    def readout_window_size(self) -> int:
        """Number of ticks in one readout window."""

    def max_wires(self) -> int:
        """Upper bound on global wire numbers."""


@dataclass
class BlockGeometry:
    """
    Global wire numbering for drift volumes stacked along the wire direction.

    TPCs are grouped into blocks (e.g. [[0, 1], [2, 3, 4, 5], [6, 7]]); every
    TPC in block b shares the same wire range, offset by b * n_wires.
    """
    n_wires: int
    readout_window: int
    tpc_blocks: List[List[int]]
    _block_of: Dict[int, int] = field(init=False, repr=False)

    def __post_init__(self):
        if self.n_wires <= 0:
            raise ValueError("n_wires must be > 0")
        self._block_of = {}
        for b, tpcs in enumerate(self.tpc_blocks):
            for tpc in tpcs:
                if tpc in self._block_of:
                    raise ValueError(f"TPC {tpc} listed in more than one block")
                self._block_of[int(tpc)] = b

    @classmethod
    def from_cfg(cls, n_wires: int, readout_window_size: int, tpc_blocks: Sequence[Sequence[int]]):
        return cls(int(n_wires), int(readout_window_size), [list(map(int, b)) for b in tpc_blocks])

    def global_wire(self, wire_id: WireID) -> int:
        try:
            block = self._block_of[wire_id.tpc]
        except KeyError:
            raise GeometryError(
                f"No global wire coordinate for TPC {wire_id.tpc} ({wire_id})"
            ) from None
        return block * self.n_wires + int(wire_id.wire)

    def readout_window_size(self) -> int:
        return self.readout_window

    def max_wires(self) -> int:
        return len(self.tpc_blocks) * self.n_wires
