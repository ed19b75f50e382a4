from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional

from blurclust.physics.hits import WireID

# Collection-plane layout: pairs of TPCs facing the same wire block.
DEFAULT_TPC_BLOCKS: Dict[int, int] = {0: 0, 1: 0, 2: 1, 3: 1, 4: 1, 5: 1, 6: 2, 7: 2}

CoordinateNormalizer = Callable[[WireID], int]

@dataclass
class GlobalWireMapper:
    """
    Map a module-local wire address onto one global wire coordinate per plane.

    global = block(tpc) * nwires(plane) + wire

    TPCs listed in the same block share wire numbers (drift volumes either
    side of a common wire plane), so their hits land in one image.
    """
    nwires: Dict[int, int]
    tpc_blocks: Dict[int, int] = field(default_factory=lambda: dict(DEFAULT_TPC_BLOCKS))

    @classmethod
    def from_cfg(cls, nwires: Mapping[int, int], tpc_blocks: Optional[Mapping[int, int]] = None):
        blocks = dict(tpc_blocks) if tpc_blocks is not None else dict(DEFAULT_TPC_BLOCKS)
        return cls(nwires=dict(nwires), tpc_blocks=blocks)

    def __call__(self, wire_id: WireID) -> int:
        return self.global_wire(wire_id)

    def global_wire(self, wire_id: WireID) -> int:
        try:
            block = self.tpc_blocks[wire_id.tpc]
        except KeyError:
            raise ValueError(f"No global wire coordinate known for TPC {wire_id.tpc}") from None
        if block == 0:
            return int(wire_id.wire)
        try:
            n = self.nwires[wire_id.plane]
        except KeyError:
            raise ValueError(f"Number of wires for plane {wire_id.plane} is not configured") from None
        return int(block * n + wire_id.wire)

@dataclass(frozen=True)
class DetectorProperties:
    """Time-sample window of the readout, used as the initial lower tick bound."""
    readout_window_size: int = 4492

def local_wire(wire_id: WireID) -> int:
    """Trivial normalizer for single-TPC detectors."""
    return int(wire_id.wire)
