from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional

class WireID(NamedTuple):
    """Readout wire address: the wire number is local to its (cryostat, tpc, plane)."""
    cryostat: int
    tpc: int
    plane: int
    wire: int

@dataclass(slots=True, eq=False)
class Hit:
    """
    Reconstructed signal on a single wire (physics layer).

    wire_id: module-local wire address
    peak_time: peak position [ticks]
    integral: integrated charge [ADC x ticks]
    rms: temporal width of the pulse [ticks]
    extras: arbitrary per-hit fields preserved from input (hit id, truth info, raw columns...)

    Hits compare by identity so that clusters can be matched back to the
    records the hit source handed in.
    """
    wire_id: WireID
    peak_time: float
    integral: float
    rms: float = 0.0

    start_tick: Optional[int] = None
    end_tick: Optional[int] = None

    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def view(self) -> tuple[int, int]:
        """Processing-unit key: hits sharing (cryostat, plane) share one image."""
        return (self.wire_id.cryostat, self.wire_id.plane)
