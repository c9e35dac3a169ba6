from __future__ import annotations
from dataclasses import dataclass

import numpy as np


@dataclass(slots=True)
class OpFlash:
    """
    Time-coincident cluster of optical hits.

    time: PE-weighted mean hit peak time [ns] (trigger-referenced)
    time_abs: PE-weighted mean absolute hit time [ns]
    time_width: PE-weighted standard deviation of hit times [ns]
    total_pe: sum of pe_per_ch
    pe_per_ch: (n_channels,) float64, dense over the detector channels
    center / width: (3,) PE-weighted mean / spread of channel positions [cm]
    frame: readout frame the hits came from
    on_beam_time: flash time within the beam window around the trigger
    """
    time: float
    time_abs: float
    time_width: float
    total_pe: float
    pe_per_ch: np.ndarray
    center: np.ndarray
    width: np.ndarray
    frame: int
    on_beam_time: bool = False

    def channels(self) -> set[int]:
        """Channels with non-zero PE."""
        return set(np.flatnonzero(self.pe_per_ch > 0).tolist())
