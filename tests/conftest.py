import pytest

from blurclust.physics.hits import Hit, WireID


def make_hit(wire, tick, charge, rms=0.0, plane=0, tpc=0, cryostat=0):
    return Hit(wire_id=WireID(cryostat, tpc, plane, wire), peak_time=float(tick), integral=float(charge), rms=float(rms))


@pytest.fixture
def hit():
    return make_hit
