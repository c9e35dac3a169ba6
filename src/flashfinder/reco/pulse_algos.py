from __future__ import annotations
from typing import Iterator, List, Tuple

import numpy as np

from flashfinder.config.schemas import PulseCfg
from flashfinder.physics.hits import Pulse

# lowest hysteresis end level above the pedestal, one digitizer count
END_FLOOR_ADC = 1.0

# --- Helpers ----------------------------------------------------------------

def _regions(v: np.ndarray, hi: float, lo: float) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) sample pairs, end inclusive. A region opens at the first
    sample >= hi and closes at the last sample of the contiguous run >= lo that
    contains it. Requires lo <= hi.
    """
    above_lo = v >= lo
    # pad with False so runs touching either edge of the trace are closed
    padded = np.concatenate(([False], above_lo, [False]))
    diffs = np.diff(padded.astype(np.int8))
    starts = np.flatnonzero(diffs == 1)
    ends = np.flatnonzero(diffs == -1) - 1
    above_hi = v >= hi
    for s, e in zip(starts, ends):
        fired = np.flatnonzero(above_hi[s:e + 1])
        if fired.size == 0:
            continue
        yield int(s + fired[0]), int(e)

# --- Interfaces -------------------------------------------------------------

class PulseRecoAlgorithm:
    """
    Base strategy: scan one waveform against pedestal-derived thresholds and
    collect Pulses. Subclasses only decide which sample is the pulse time.
    """
    name: str

    def __init__(self, cfg: PulseCfg):
        self.adc_threshold = cfg.adc_threshold
        self.nsigma = cfg.nsigma
        self.end_adc_threshold = cfg.end_adc_threshold
        self.end_nsigma = cfg.end_nsigma
        self.hysteresis = cfg.hysteresis
        self.min_width = cfg.min_width
        self.pulses: List[Pulse] = []

    def reset(self) -> None:
        """Drop the pulses of the previous waveform."""
        self.pulses = []

    def thresholds(self, ped_mean: float, ped_rms: float) -> Tuple[float, float]:
        """
        Return (start, end) threshold levels in ADC counts. The end level is
        kept at least END_FLOOR_ADC above the pedestal so a noiseless
        baseline never counts as signal.
        """
        hi = ped_mean + max(self.adc_threshold, self.nsigma * ped_rms)
        if not self.hysteresis:
            return hi, hi
        lo = ped_mean + max(
            self.end_adc_threshold or 0.0,
            (self.end_nsigma or 0.0) * ped_rms,
            END_FLOOR_ADC,
        )
        return hi, min(lo, hi)

    def reco_pulse(self, adc: np.ndarray, ped_mean: float, ped_rms: float) -> bool:
        """
        Find pulses in adc. Returns False (and no pulses) on an empty trace.
        """
        self.reset()
        v = np.asarray(adc, dtype=np.float64)
        if v.size == 0:
            return False

        hi, lo = self.thresholds(ped_mean, ped_rms)
        for start, end in _regions(v, hi, lo):
            if end - start + 1 < self.min_width:
                continue
            seg = v[start:end + 1] - ped_mean
            self.pulses.append(Pulse(
                start=start,
                peak=start + self._peak_offset(seg),
                end=end,
                amplitude=float(seg.max()),
                area=float(seg.sum()),
                baseline=float(ped_mean),
                baseline_rms=float(ped_rms),
            ))
        return True

    def _peak_offset(self, seg: np.ndarray) -> int:
        raise NotImplementedError

    @property
    def n_pulses(self) -> int:
        return len(self.pulses)

# --- Implementations --------------------------------------------------------

class AlgoThreshold(PulseRecoAlgorithm):
    """Pulse time at the largest sample of the region."""
    name = "threshold"

    def _peak_offset(self, seg):
        return int(np.argmax(seg))


class AlgoFirstPeak(PulseRecoAlgorithm):
    """
    Pulse time at the first rising-edge local maximum, so a later (even
    taller) bump inside the same region does not pull the hit time.
    """
    name = "first_peak"

    def _peak_offset(self, seg):
        falling = np.flatnonzero(np.diff(seg) < 0)
        if falling.size == 0:
            return seg.size - 1
        return int(falling[0])

# --- Factory ----------------------------------------------------------------

def make_pulse_algorithm(cfg_pulse: PulseCfg) -> PulseRecoAlgorithm:
    if cfg_pulse.algorithm == "threshold":
        return AlgoThreshold(cfg_pulse)
    elif cfg_pulse.algorithm == "first_peak":
        return AlgoFirstPeak(cfg_pulse)
    else:
        raise ValueError(f"Unknown pulse algorithm {cfg_pulse.algorithm}")
