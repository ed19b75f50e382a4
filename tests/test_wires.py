import pytest

from blurclust.geometry.wires import GlobalWireMapper, local_wire
from blurclust.physics.hits import WireID


def test_global_wire_blocks():
    m = GlobalWireMapper.from_cfg({0: 400, 2: 480})
    assert m(WireID(0, 0, 2, 17)) == 17
    assert m(WireID(0, 1, 2, 17)) == 17
    assert m(WireID(0, 3, 2, 17)) == 480 + 17
    assert m(WireID(0, 7, 2, 17)) == 2 * 480 + 17
    assert m(WireID(0, 4, 0, 5)) == 400 + 5


def test_unknown_tpc_or_plane():
    m = GlobalWireMapper.from_cfg({2: 480})
    with pytest.raises(ValueError):
        m(WireID(0, 9, 2, 1))
    with pytest.raises(ValueError):
        m(WireID(0, 2, 1, 1))


def test_custom_blocks_and_local():
    m = GlobalWireMapper.from_cfg({0: 100}, tpc_blocks={0: 0, 1: 1})
    assert m(WireID(0, 1, 0, 3)) == 103
    assert local_wire(WireID(0, 5, 1, 42)) == 42
