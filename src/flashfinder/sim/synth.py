from __future__ import annotations
import numpy as np
from typing import Iterable, List, Optional, Sequence, Tuple
from ..physics.waveforms import Frame, Waveform
from ..config.schemas import HitsCfg


def pulse_template(n: int, tau_rise: float = 1.0, tau_fall: float = 6.0) -> np.ndarray:
    """Fast-rise / exponential-fall shape over n samples, peak normalized to 1."""
    t = np.arange(n, dtype=np.float64)
    shape = np.exp(-t / tau_fall) - np.exp(-t / tau_rise)
    return shape / shape.max()


def synth_waveform(
    n_samples: int,
    pulses: Iterable[Tuple[float, float]] = (),
    baseline: float = 1000.0,
    noise_rms: float = 0.0,
    rng: np.random.Generator | None = None,
    tau_rise: float = 1.0,
    tau_fall: float = 6.0,
) -> np.ndarray:
    """
    Integer ADC trace: Gaussian pedestal plus one template per (sample, amplitude)
    pulse, the template shifted so its maximum lands on round(sample).
    """
    rng = rng or np.random.default_rng()
    v = np.full(n_samples, baseline, dtype=np.float64)
    if noise_rms > 0:
        v += rng.normal(0.0, noise_rms, size=n_samples)
    tmpl = pulse_template(max(8, int(10 * tau_fall)), tau_rise, tau_fall)
    lead = int(np.argmax(tmpl))
    for sample, amplitude in pulses:
        s0 = int(round(sample)) - lead
        lo, hi = max(0, s0), min(n_samples, s0 + tmpl.size)
        if lo < hi:
            v[lo:hi] += amplitude * tmpl[lo - s0:hi - s0]
    return np.rint(v).astype(np.int32)


def synth_flash_frame(
    frame: int,
    start_time_ns: float,
    n_channels: int,
    n_samples: int,
    flashes: Sequence[Tuple[float, float]],
    cfg_hits: HitsCfg,
    channels: Optional[Sequence[int]] = None,
    baseline: float = 1000.0,
    noise_rms: float = 0.0,
    rng: np.random.Generator | None = None,
) -> Frame:
    """
    One frame where every (time_ns, pe) flash puts a pulse of pe photoelectrons
    on each of `channels` (default: all). Pulse height uses spe_amplitude_adc.
    """
    rng = rng or np.random.default_rng()
    lit = set(range(n_channels) if channels is None else channels)
    waveforms: List[Waveform] = []
    for ch in range(n_channels):
        pulses = []
        if ch in lit:
            for t_ns, pe in flashes:
                sample = (t_ns - start_time_ns - cfg_hits.time_offset_ns) / cfg_hits.sample_period_ns
                pulses.append((sample, pe * cfg_hits.spe_amplitude_adc * cfg_hits.gain(ch)))
        adc = synth_waveform(n_samples, pulses, baseline=baseline, noise_rms=noise_rms, rng=rng)
        waveforms.append(Waveform(channel=ch, frame=frame, adc=adc))
    return Frame(frame=frame, start_time_ns=start_time_ns, waveforms=waveforms)


def synth_frames(
    n_frames: int,
    n_channels: int,
    n_samples: int,
    cfg_hits: HitsCfg,
    flashes_per_frame: int = 2,
    pe_range: Tuple[float, float] = (5.0, 50.0),
    noise_rms: float = 2.0,
    rng: np.random.Generator | None = None,
) -> list[Frame]:
    """
    Random toy readout: consecutive frames of n_samples each, with flashes at
    uniform times (kept away from the frame edges) lighting every channel.
    """
    rng = rng or np.random.default_rng()
    frame_len = n_samples * cfg_hits.sample_period_ns
    frames: list[Frame] = []
    for k in range(n_frames):
        start = k * frame_len
        margin = 0.1 * frame_len
        times = np.sort(rng.uniform(start + margin, start + frame_len - 2 * margin, size=flashes_per_frame))
        pes = rng.uniform(*pe_range, size=flashes_per_frame)
        frames.append(synth_flash_frame(
            k, start, n_channels, n_samples,
            list(zip(times.tolist(), pes.tolist())),
            cfg_hits, noise_rms=noise_rms, rng=rng,
        ))
    return frames
