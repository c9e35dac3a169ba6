from __future__ import annotations
from dataclasses import dataclass


@dataclass(slots=True)
class Pulse:
    """
    Contiguous above-threshold excursion in one waveform (sample indices,
    end inclusive). amplitude and area are measured above the baseline.
    """
    start: int
    peak: int
    end: int
    amplitude: float
    area: float
    baseline: float
    baseline_rms: float

    @property
    def width(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True, slots=True)
class OpHit:
    """
    Calibrated optical hit.

    peak_time: trigger-referenced time [ns], the time used for clustering
    peak_time_abs: time [ns] before the trigger reference is applied
    start_time: trigger-referenced pulse start [ns]
    width: pulse duration [ns]
    amplitude / area: ADC counts above baseline
    amplitude_pe / pe: the same in photoelectrons
    """
    channel: int
    frame: int
    start_time: float
    peak_time: float
    peak_time_abs: float
    width: float
    amplitude: float
    area: float
    amplitude_pe: float
    pe: float
