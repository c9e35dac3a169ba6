from __future__ import annotations
from typing import List, Optional, Tuple

import numpy as np

from flashfinder.config.schemas import PulseCfg
from flashfinder.physics.hits import Pulse
from flashfinder.physics.waveforms import Waveform
from .pulse_algos import PulseRecoAlgorithm, make_pulse_algorithm


def _mean_rms(v: np.ndarray) -> Tuple[float, float]:
    return float(v.mean()), float(v.std())


def estimate_pedestal(adc: np.ndarray, method: str = "head", n_samples: int = 20) -> Tuple[float, float]:
    """
    Pedestal (mean, rms) of a trace.

    head  : first n_samples (pre-pulse region)
    edges : first and last n_samples separately, the quieter one wins
    whole : the full trace
    Traces shorter than the requested region fall back to the full trace.
    """
    v = np.asarray(adc, dtype=np.float64)
    if v.size == 0:
        raise ValueError("Cannot estimate a pedestal on an empty trace")
    if method == "whole" or v.size <= n_samples:
        return _mean_rms(v)
    if method == "head":
        return _mean_rms(v[:n_samples])
    if method == "edges":
        head = _mean_rms(v[:n_samples])
        tail = _mean_rms(v[-n_samples:])
        return head if head[1] <= tail[1] else tail
    raise ValueError(f"Unknown pedestal method {method!r}")


class PulseRecoManager:
    """
    Owns pedestal estimation for one channel at a time and hands the trace to
    the configured pulse algorithm. After reconstruct(), .pulses holds the
    result for that waveform.

    Not shared between workers: each extraction task builds its own manager.
    """

    def __init__(self, cfg: PulseCfg, algo: Optional[PulseRecoAlgorithm] = None):
        self.cfg = cfg
        self.algo = algo if algo is not None else make_pulse_algorithm(cfg)
        self.ped_mean: float = 0.0
        self.ped_rms: float = 0.0

    def reconstruct(self, wf: Waveform | np.ndarray) -> bool:
        """
        Run pulse finding on one waveform. Returns False, with zero pulses,
        when the trace is shorter than pulse.min_samples.
        """
        adc = wf.adc if isinstance(wf, Waveform) else np.asarray(wf)
        self.algo.reset()
        if adc.size < self.cfg.min_samples:
            self.ped_mean, self.ped_rms = 0.0, 0.0
            return False
        self.ped_mean, self.ped_rms = estimate_pedestal(
            adc, self.cfg.pedestal_method, self.cfg.pedestal_samples
        )
        return self.algo.reco_pulse(adc, self.ped_mean, self.ped_rms)

    @property
    def pulses(self) -> List[Pulse]:
        return list(self.algo.pulses)
