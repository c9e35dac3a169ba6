import numpy as np
import pytest

from flashfinder.errors import ConsistencyViolation
from flashfinder.filters.clustering import assign_hits_to_flash, refine_hits_to_flash
from flashfinder.geometry.detector import DetectorGeometry
from flashfinder.physics.hits import OpHit
from flashfinder.reco.flash_builder import construct_flashes
from flashfinder.reco.hit_builder import TriggerTime


def _hit(t, channel, pe, frame=0):
    return OpHit(channel=channel, frame=frame, start_time=t - 4.0, peak_time=t, peak_time_abs=t + 1000.0,
                 width=10.0, amplitude=pe * 20.0, area=pe * 100.0, amplitude_pe=pe, pe=pe)


GEO = DetectorGeometry.line(8, pitch_cm=10.0, axis=2)
BEAM_NS = 1600.0


def test_three_channel_flash_at_100ns():
    hits = [_hit(100.0, ch, 50.0) for ch in (0, 1, 2)]
    clusters = assign_hits_to_flash(hits, flash_width_ns=50.0)
    (flash,) = construct_flashes(clusters, hits, GEO, beam_window_ns=BEAM_NS)
    assert flash.time == pytest.approx(100.0)
    assert flash.total_pe == 150.0
    assert flash.pe_per_ch.shape == (8,)
    assert list(flash.pe_per_ch[:3]) == [50.0, 50.0, 50.0]
    assert flash.pe_per_ch[3:].sum() == 0.0
    assert flash.channels() == {0, 1, 2}
    assert flash.time_width == 0.0
    assert flash.frame == 0


def test_well_separated_groups_are_two_flashes():
    hits = [_hit(100.0, ch, 50.0) for ch in (0, 1, 2)] + [_hit(5000.0, ch, 20.0) for ch in (3, 4)]
    clusters = assign_hits_to_flash(hits, flash_width_ns=50.0)
    flashes = construct_flashes(clusters, hits, GEO, beam_window_ns=BEAM_NS)
    assert [f.total_pe for f in flashes] == [150.0, 40.0]
    assert [round(f.time) for f in flashes] == [100, 5000]


def test_flash_sums_and_time_bounds():
    rng = np.random.default_rng(3)
    hits = [_hit(float(t), int(ch), float(pe))
            for t, ch, pe in zip(rng.uniform(0, 3000, 300), rng.integers(0, 8, 300), rng.uniform(0.1, 30, 300))]
    clusters = refine_hits_to_flash(assign_hits_to_flash(hits, 60.0), hits, 30.0)
    flashes = construct_flashes(clusters, hits, GEO, beam_window_ns=BEAM_NS)
    assert len(flashes) == len(clusters)
    for flash, cluster in zip(flashes, clusters):
        assert flash.pe_per_ch.sum() == flash.total_pe
        assert flash.total_pe == pytest.approx(sum(hits[i].pe for i in cluster))
        times = [hits[i].peak_time for i in cluster]
        assert min(times) <= flash.time <= max(times)
    # every hit in at most one flash
    members = [i for c in clusters for i in c]
    assert len(members) == len(set(members))


def test_weighted_time_width_and_position():
    hits = [_hit(100.0, 0, 30.0), _hit(110.0, 2, 10.0)]
    (flash,) = construct_flashes([[0, 1]], hits, GEO, beam_window_ns=BEAM_NS)
    assert flash.time == pytest.approx(102.5)
    assert flash.time_abs == pytest.approx(1102.5)
    assert flash.time_width == pytest.approx(np.sqrt(0.75 * 2.5 ** 2 + 0.25 * 7.5 ** 2))
    # channels 0 and 2 sit at z = 0 and 20 cm
    assert flash.center == pytest.approx([0.0, 0.0, 5.0])
    assert flash.width == pytest.approx([0.0, 0.0, np.sqrt(0.75 * 25.0 + 0.25 * 225.0)])


def test_on_beam_flag_needs_trigger_and_window():
    hits = [_hit(100.0, 0, 5.0), _hit(5000.0, 1, 5.0)]
    flashes = construct_flashes([[0], [1]], hits, GEO, TriggerTime(True, 0.0), beam_window_ns=BEAM_NS)
    assert [f.on_beam_time for f in flashes] == [True, False]
    no_trig = construct_flashes([[0]], hits, GEO, beam_window_ns=BEAM_NS)
    assert no_trig[0].on_beam_time is False


def test_cluster_across_frames_is_a_consistency_violation():
    hits = [_hit(100.0, 0, 5.0, frame=0), _hit(101.0, 1, 5.0, frame=1)]
    with pytest.raises(ConsistencyViolation):
        construct_flashes([[0, 1]], hits, GEO, beam_window_ns=BEAM_NS)


def test_zero_pe_and_empty_cluster_are_consistency_violations():
    hits = [_hit(100.0, 0, 0.0), _hit(100.0, 1, 0.0)]
    with pytest.raises(ConsistencyViolation):
        construct_flashes([[0, 1]], hits, GEO, beam_window_ns=BEAM_NS)
    with pytest.raises(ConsistencyViolation):
        construct_flashes([[]], hits, GEO, beam_window_ns=BEAM_NS)


def test_channel_outside_geometry_is_rejected():
    hits = [_hit(100.0, 12, 5.0)]
    with pytest.raises(ConsistencyViolation):
        construct_flashes([[0]], hits, GEO, beam_window_ns=BEAM_NS)


def test_beam_window_must_be_given():
    hits = [_hit(100.0, 0, 5.0)]
    with pytest.raises(TypeError):
        construct_flashes([[0]], hits, GEO)
    (narrow,) = construct_flashes([[0]], hits, GEO, TriggerTime(True, 0.0), beam_window_ns=50.0)
    assert narrow.on_beam_time is False
