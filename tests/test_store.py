import h5py
import numpy as np
import pytest

from flashfinder.config.schemas import HitsCfg
from flashfinder.io.store import read_flashes, read_frames, read_hits, read_triggers, write_frames
from flashfinder.pipelines.core import run_pipeline
from flashfinder.physics.waveforms import Frame, Waveform
from flashfinder.sim.synth import pulse_template, synth_flash_frame
from flashfinder.vis.hdf import save_flash_png


def test_frames_roundtrip(tmp_path):
    path = tmp_path / "frames.h5"
    frames = [
        Frame(0, 0.0, [Waveform(0, 0, [1000, 1001, 999]), Waveform(3, 0, [998, 1200, 1000])]),
        Frame(1, 6.0, [Waveform(1, 1, [5, 6, 7])]),
    ]
    write_frames(str(path), frames, triggers=[12.5, 40.0])

    back = list(read_frames(str(path)))
    assert [fr.frame for fr in back] == [0, 1]
    assert back[1].start_time_ns == 6.0
    assert [wf.channel for wf in back[0].waveforms] == [0, 3]
    assert list(back[0].waveforms[1].adc) == [998, 1200, 1000]
    assert list(read_triggers(str(path))) == [12.5, 40.0]


def test_full_scale_unsigned_samples_survive_roundtrip(tmp_path):
    # 16-bit unsigned digitizers go up to 65535
    path = tmp_path / "frames.h5"
    samples = [1000, 40000, 65535, 1000]
    write_frames(str(path), [Frame(0, 0.0, [Waveform(0, 0, samples)])])
    (back,) = read_frames(str(path))
    assert list(back.waveforms[0].adc) == samples


def test_unequal_waveform_lengths_rejected(tmp_path):
    frame = Frame(0, 0.0, [Waveform(0, 0, [1, 2, 3]), Waveform(1, 0, [1, 2])])
    with pytest.raises(ValueError):
        write_frames(str(tmp_path / "x.h5"), [frame])


def test_missing_triggers_read_as_empty(tmp_path):
    path = tmp_path / "bare.h5"
    with h5py.File(path, "w") as f:
        f.create_group("frames")
    assert read_triggers(str(path)).size == 0


def _write_config(tmp_path, input_path, output_path, late_light=True):
    spe_area = 20.0 * float(pulse_template(60).sum())
    positions = ", ".join(f"[0.0, 0.0, {10.0 * i}]" for i in range(4))
    cfg = tmp_path / "ff.toml"
    cfg.write_text(f"""
[run]
diagnostics_level = 0

[io]
input_path = "{input_path}"
output_path = "{output_path}"

[hits]
spe_amplitude_adc = 20.0
spe_area_adc = {spe_area!r}

[late_light]
enabled = {str(late_light).lower()}

[geometry]
positions = [{positions}]
""")
    return cfg


def test_run_pipeline_writes_hits_and_flashes(tmp_path):
    hits_cfg = HitsCfg(spe_amplitude_adc=20.0)
    frames = [
        synth_flash_frame(0, 0.0, 4, 600, [(100.0, 30.0), (800.0, 20.0)], hits_cfg),
        synth_flash_frame(1, 1200.0, 4, 600, [(2000.0, 25.0)], hits_cfg, channels=[1, 2]),
    ]
    src = tmp_path / "in.h5"
    out = tmp_path / "out" / "flashes.h5"
    write_frames(str(src), frames, triggers=[50.0])

    written = run_pipeline(str(_write_config(tmp_path, src, out)))
    assert written == out

    hits = read_hits(str(out))
    fl = read_flashes(str(out))
    assert len(fl["time"]) == 3
    assert list(fl["frame"]) == [0, 0, 1]
    assert fl["pe_per_ch"].shape == (3, 4)
    assert np.allclose(fl["pe_per_ch"].sum(axis=1), fl["total_pe"])
    assert list(fl["hit_ptr"]) == [0, 4, 8, 10]
    for k, rows in enumerate(fl["hits_per_flash"]):
        assert np.all(hits["frame"][rows] == fl["frame"][k])
        assert np.isclose(hits["pe"][rows].sum(), fl["total_pe"][k])
    # trigger at 50 ns; flashes at 100, 800 and 2000 ns, beam window 1600 ns
    assert fl["time"][0] == pytest.approx(50.0)
    assert list(fl["on_beam_time"]) == [True, True, False]

    with h5py.File(out, "r") as f:
        assert f.attrs["trigger_found"]
        assert "late_light" in f.attrs["config_text"]

    png = save_flash_png(str(out), str(tmp_path / "flash.png"), flash=2)
    assert (tmp_path / "flash.png").exists() and png.endswith("flash.png")
    with pytest.raises(IndexError):
        save_flash_png(str(out), flash=3)


def test_run_pipeline_late_light_override(tmp_path):
    hits_cfg = HitsCfg(spe_amplitude_adc=20.0)
    frames = [synth_flash_frame(0, 0.0, 4, 600, [(100.0, 50.0), (500.0, 2.0)], hits_cfg)]
    src = tmp_path / "in.h5"
    out = tmp_path / "out.h5"
    write_frames(str(src), frames)
    cfg = _write_config(tmp_path, src, out)

    run_pipeline(str(cfg))
    assert len(read_flashes(str(out))["time"]) == 1
    run_pipeline(str(cfg), late_light=False)
    assert len(read_flashes(str(out))["time"]) == 2
    with h5py.File(out, "r") as f:
        assert not f.attrs["trigger_found"]
