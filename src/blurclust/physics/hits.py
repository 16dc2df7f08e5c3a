from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True, slots=True)
class WireID:
    """Module-local wire locator (cryostat, TPC, plane, wire)."""
    cryostat: int
    tpc: int
    plane: int
    wire: int


@dataclass(slots=True, eq=False)
class Hit:
    """
    Reconstructed wire hit (physics layer).

    wire: module-local wire locator; mapped to a global wire by the geometry
    peak_time: peak time [ticks]
    integral: integrated charge (ADC x ticks)
    rms: time width of the pulse [ticks]
    extras: arbitrary per-hit fields preserved from input

    Hits compare and hash by identity, so the same object can be traced
    from the input list through to the output clusters.
    """
    wire: WireID
    peak_time: float
    integral: float
    rms: float = 0.0

    # Optional pulse extent; carried for output only
    start_tick: Optional[int] = None
    end_tick: Optional[int] = None

    extras: Dict[str, Any] = field(default_factory=dict)
