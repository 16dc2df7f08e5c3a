import numpy as np
import pytest

from blurclust.errors import DegenerateInputError, GeometryError
from blurclust.geometry.wires import BlockGeometry
from blurclust.imaging.grid import IMAGE_MARGIN, build_hit_image
from blurclust.physics.hits import Hit, WireID

GEOM = BlockGeometry(n_wires=1000, readout_window=5000, tpc_blocks=[[0]])


def _hit(wire, t, q, rms=0.0, tpc=0):
    return Hit(wire=WireID(0, tpc, 2, wire), peak_time=t, integral=q, rms=rms)


def test_bounds_and_shape():
    hits = [_hit(10, 100.7, 5.0), _hit(15, 120.2, 3.0)]
    img = build_hit_image(hits, GEOM)
    assert (img.lower_wire, img.upper_wire) == (10 - IMAGE_MARGIN, 15 + IMAGE_MARGIN)
    assert (img.lower_tick, img.upper_tick) == (100 - IMAGE_MARGIN, 120 + IMAGE_MARGIN)
    assert img.shape == (5 + 2 * IMAGE_MARGIN, 20 + 2 * IMAGE_MARGIN)
    # origin maps index 0 to the lower bounds
    assert img.wire_tick((0, 0)) == (img.lower_wire, img.lower_tick)
    assert img.image[img.cell_of(10, 100)] == 5.0
    assert img.image.sum() == 8.0


def test_max_reduction_independent_of_order():
    a = _hit(30, 200.2, 5.0, rms=1.0)
    b = _hit(30, 200.9, 8.0, rms=3.0)  # same integer tick
    c = _hit(31, 201.0, 2.0)
    fwd = build_hit_image([a, b, c], GEOM)
    rev = build_hit_image([c, b, a], GEOM)

    np.testing.assert_array_equal(fwd.image, rev.image)
    np.testing.assert_array_equal(fwd.widths, rev.widths)
    cell = fwd.cell_of(30, 200)
    assert fwd.image[cell] == 8.0
    assert fwd.widths[cell] == 3.0
    assert fwd.hit_at(cell) is b
    assert rev.hit_at(cell) is b


def test_equal_charge_keeps_first_seen():
    a = _hit(30, 200.2, 5.0, rms=1.0)
    b = _hit(30, 200.6, 5.0, rms=2.0)
    img = build_hit_image([a, b], GEOM)
    assert img.hit_at(img.cell_of(30, 200)) is a
    img = build_hit_image([b, a], GEOM)
    assert img.hit_at(img.cell_of(30, 200)) is b


def test_blur_only_cells_have_no_hit():
    img = build_hit_image([_hit(50, 300.0, 1.0)], GEOM)
    assert img.hit_at(img.cell_of(51, 300)) is None
    assert img.time_of(img.cell_of(51, 300)) is None
    assert img.time_of(img.cell_of(50, 300)) == 300.0


def test_empty_hits_rejected():
    with pytest.raises(DegenerateInputError):
        build_hit_image([], GEOM)


def test_unknown_tpc_rejected():
    with pytest.raises(GeometryError):
        build_hit_image([_hit(50, 300.0, 1.0, tpc=7)], GEOM)


def test_neighbourhoods_and_border():
    img = build_hit_image([_hit(50, 300.0, 1.0)], GEOM)
    nx, ny = img.shape
    assert img.is_border((0, 10)) and img.is_border((nx - 1, 10))
    assert img.is_border((10, 0)) and img.is_border((10, ny - 1))
    assert not img.is_border((1, 1))
    assert len(list(img.neighbours8((0, 0)))) == 3
    assert len(list(img.neighbours8((5, 5)))) == 8
    win = list(img.window((5, 5), 2, 1))
    assert len(win) == 5 * 3 - 1 and (5, 5) not in win
    assert len(list(img.window((0, 0), 2, 1))) == 3 * 2 - 1


def test_non_positive_times_count_as_untimed():
    zero, negative = _hit(50, 0.0, 1.0), _hit(52, -3.0, 1.0)
    img = build_hit_image([zero, negative], GEOM)
    assert img.hit_at(img.cell_of(50, 0)) is zero
    assert img.time_of(img.cell_of(50, 0)) is None
    assert img.hit_at(img.cell_of(52, -3)) is negative
    assert img.time_of(img.cell_of(52, -3)) is None
