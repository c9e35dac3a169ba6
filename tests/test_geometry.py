import numpy as np
import pytest

from flashfinder.geometry.detector import DetectorGeometry


def test_line_geometry_positions():
    geo = DetectorGeometry.line(4, pitch_cm=5.0, axis=1)
    assert geo.n_channels == 4
    assert list(geo.channel_position(3)) == [0.0, 15.0, 0.0]
    with pytest.raises(ValueError):
        geo.positions[0, 0] = 1.0  # read-only


def test_from_cfg_list_and_csv(tmp_path):
    rows = [[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]]
    assert DetectorGeometry.from_cfg(rows).n_channels == 2

    p = tmp_path / "pos.csv"
    p.write_text("0,0,0\n1,2,3\n4,5,6\n")
    geo = DetectorGeometry.from_cfg(rows, str(p))
    assert geo.n_channels == 3
    assert np.array_equal(geo.channel_position(2), [4.0, 5.0, 6.0])


def test_bad_geometry_inputs():
    with pytest.raises(ValueError):
        DetectorGeometry(np.zeros((3, 2)))
    with pytest.raises(ValueError):
        DetectorGeometry.from_cfg()


def test_channel_outside_geometry_raises_index_error():
    geo = DetectorGeometry.line(2)
    with pytest.raises(IndexError):
        geo.channel_position(2)
    with pytest.raises(IndexError):
        geo.channel_position(-1)
