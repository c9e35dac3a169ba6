from __future__ import annotations
from typing import Dict, Iterable, Iterator, Sequence
import h5py
import numpy as np
from datetime import datetime, timezone
from flashfinder.config.schemas import Config
from flashfinder.config.load import json_dumps, snapshot_config_toml
from flashfinder.physics.flashes import OpFlash
from flashfinder.physics.hits import OpHit
from flashfinder.physics.waveforms import Frame, Waveform

FORMAT_VERSION = "1.0"

_HIT_COLUMNS = (
    ("channel", np.int32),
    ("frame", np.int32),
    ("start_time", np.float64),
    ("peak_time", np.float64),
    ("peak_time_abs", np.float64),
    ("width", np.float32),
    ("amplitude", np.float32),
    ("area", np.float32),
    ("amplitude_pe", np.float32),
    ("pe", np.float64),
)

_FLASH_COLUMNS = (
    ("time", np.float64),
    ("time_abs", np.float64),
    ("time_width", np.float64),
    ("total_pe", np.float64),
    ("frame", np.int32),
    ("on_beam_time", np.bool_),
)


def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray, compress: bool = False) -> None:
    if name in grp:
        del grp[name]
    # empty datasets cannot be chunked
    if compress and data.size:
        grp.create_dataset(name, data=data, compression="gzip")
    else:
        grp.create_dataset(name, data=data)


# ---------------------------------------------------------------------------
# Input side: frames of waveforms + trigger markers
# ---------------------------------------------------------------------------

def write_frames(path: str, frames: Sequence[Frame], triggers: Iterable[float] = ()) -> None:
    """
    Store frames as /frames/<k> groups (attrs frame, start_time_ns; datasets
    channel (n,), adc (n, samples) int32) and trigger markers as
    /triggers/time_ns.
    All waveforms of one frame must share a length.
    """
    with h5py.File(path, "w") as f:
        f.attrs["format_version"] = FORMAT_VERSION
        grp = f.require_group("frames")
        for k, fr in enumerate(frames):
            lengths = {len(wf) for wf in fr.waveforms}
            if len(lengths) > 1:
                raise ValueError(f"frame {fr.frame}: waveforms of unequal length {sorted(lengths)}")
            g = grp.create_group(f"{k:06d}")
            g.attrs["frame"] = fr.frame
            g.attrs["start_time_ns"] = fr.start_time_ns
            channels = np.array([wf.channel for wf in fr.waveforms], dtype=np.int32)
            n_samples = lengths.pop() if lengths else 0
            adc = np.zeros((len(fr.waveforms), n_samples), dtype=np.int32)
            for i, wf in enumerate(fr.waveforms):
                adc[i] = wf.adc
            g.create_dataset("channel", data=channels)
            _replace_or_create(g, "adc", adc, compress=True)
        f.create_dataset("triggers/time_ns", data=np.asarray(list(triggers), dtype=np.float64))


def read_frames(path: str) -> Iterator[Frame]:
    """Stream frames from a file written by write_frames, in stored order."""
    with h5py.File(str(path), "r") as f:
        if "frames" not in f:
            raise KeyError(f"/frames not found in {path}")
        grp = f["frames"]
        for name in sorted(grp.keys()):
            g = grp[name]
            frame = int(g.attrs["frame"])
            channels = np.asarray(g["channel"])
            adc = np.asarray(g["adc"])
            waveforms = [
                Waveform(channel=int(ch), frame=frame, adc=adc[i])
                for i, ch in enumerate(channels)
            ]
            yield Frame(frame=frame, start_time_ns=float(g.attrs["start_time_ns"]), waveforms=waveforms)


def read_triggers(path: str) -> np.ndarray:
    with h5py.File(str(path), "r") as f:
        if "triggers/time_ns" not in f:
            return np.zeros(0, dtype=np.float64)
        return np.asarray(f["triggers/time_ns"], dtype=np.float64)


# ---------------------------------------------------------------------------
# Output side: hits, flashes, flash -> hit membership
# ---------------------------------------------------------------------------

def write_init(path: str, cfg_path: str, cfg: Config) -> h5py.File:
    f = h5py.File(path, "w")
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = "flash-finder 0.1.0"
    f.attrs["config_text"] = snapshot_config_toml(cfg_path)
    f.attrs["config_json"] = json_dumps(cfg.model_dump(mode="json"))
    return f


def write_hits(f: h5py.File, hits: Sequence[OpHit]) -> None:
    """
    One column per OpHit field under /hits; row i is hit i, the index used in
    /flashes/hit_index.
    """
    grp = f.require_group("hits")
    for name, dtype in _HIT_COLUMNS:
        col = np.array([getattr(h, name) for h in hits], dtype=dtype)
        _replace_or_create(grp, name, col, compress=True)


def write_flashes(
    f: h5py.File,
    flashes: Sequence[OpFlash],
    hits_per_flash: Sequence[Sequence[int]],
) -> None:
    """
    Store flashes under /flashes.

    /flashes/<column>     (N,)
    /flashes/pe_per_ch    (N, n_channels) float64
    /flashes/center       (N, 3), /flashes/width (N, 3)
    /flashes/hit_ptr      (N+1,) int64  CSR pointers into hit_index
    /flashes/hit_index    (M,)  int64   absolute rows of /hits
    """
    if len(flashes) != len(hits_per_flash):
        raise ValueError(f"{len(flashes)} flashes but {len(hits_per_flash)} hit lists")
    grp = f.require_group("flashes")
    for name, dtype in _FLASH_COLUMNS:
        col = np.array([getattr(fl, name) for fl in flashes], dtype=dtype)
        _replace_or_create(grp, name, col)

    n_ch = len(flashes[0].pe_per_ch) if flashes else 0
    pe = np.zeros((len(flashes), n_ch), dtype=np.float64)
    center = np.zeros((len(flashes), 3), dtype=np.float64)
    width = np.zeros((len(flashes), 3), dtype=np.float64)
    for i, fl in enumerate(flashes):
        pe[i] = fl.pe_per_ch
        center[i] = fl.center
        width[i] = fl.width
    _replace_or_create(grp, "pe_per_ch", pe, compress=True)
    _replace_or_create(grp, "center", center)
    _replace_or_create(grp, "width", width)

    ptr = np.zeros(len(hits_per_flash) + 1, dtype=np.int64)
    ptr[1:] = np.cumsum([len(c) for c in hits_per_flash])
    flat = np.array([i for c in hits_per_flash for i in c], dtype=np.int64)
    _replace_or_create(grp, "hit_ptr", ptr)
    _replace_or_create(grp, "hit_index", flat)


def read_flashes(path: str) -> Dict[str, np.ndarray]:
    """All /flashes datasets as arrays, plus 'hits_per_flash' rebuilt from the CSR pair."""
    with h5py.File(str(path), "r") as f:
        if "flashes" not in f:
            raise KeyError(f"/flashes not found in {path}")
        out = {name: np.array(ds) for name, ds in f["flashes"].items()}
    ptr, flat = out["hit_ptr"], out["hit_index"]
    out["hits_per_flash"] = [flat[ptr[i]:ptr[i + 1]] for i in range(len(ptr) - 1)]
    return out


def read_hits(path: str) -> Dict[str, np.ndarray]:
    with h5py.File(str(path), "r") as f:
        if "hits" not in f:
            raise KeyError(f"/hits not found in {path}")
        return {name: np.array(ds) for name, ds in f["hits"].items()}
