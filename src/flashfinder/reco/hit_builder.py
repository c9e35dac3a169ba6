from __future__ import annotations
from typing import Iterable, List, NamedTuple, Sequence

from flashfinder.config.schemas import HitsCfg
from flashfinder.physics.hits import OpHit, Pulse


class TriggerTime(NamedTuple):
    found: bool
    time_ns: float

    @property
    def offset_ns(self) -> float:
        """Shift applied to hit times so they are measured from the trigger."""
        return -self.time_ns if self.found else 0.0


NO_TRIGGER = TriggerTime(False, 0.0)


def get_trigger_time(markers: Iterable[float], lower_bound_ns: float = 0.0) -> TriggerTime:
    """
    Earliest trigger/beam-gate marker at or after lower_bound_ns, or the
    NO_TRIGGER sentinel when there is none.
    """
    candidates = [float(t) for t in markers if float(t) >= lower_bound_ns]
    if not candidates:
        return NO_TRIGGER
    return TriggerTime(True, min(candidates))


def construct_hits(
    frame: int,
    frame_start_ns: float,
    trigger_offset_ns: float,
    channel: int,
    pulses: Sequence[Pulse],
    cfg: HitsCfg,
) -> List[OpHit]:
    """
    Turn one channel's pulses into OpHits.

    peak_time_abs = frame_start + time_offset + peak_sample * sample_period
    peak_time     = peak_time_abs + trigger_offset
    PE values use the single-PE calibration scaled by the channel gain.
    Hits below hits.hit_threshold_pe are dropped.
    """
    period = cfg.sample_period_ns
    t0 = frame_start_ns + cfg.time_offset_ns
    gain = cfg.gain(channel)
    spe_area = cfg.spe_area_adc * gain
    spe_amp = cfg.spe_amplitude_adc * gain

    hits: List[OpHit] = []
    for p in pulses:
        pe = p.area / spe_area
        if pe < cfg.hit_threshold_pe:
            continue
        peak_abs = t0 + p.peak * period
        hits.append(OpHit(
            channel=int(channel),
            frame=int(frame),
            start_time=t0 + p.start * period + trigger_offset_ns,
            peak_time=peak_abs + trigger_offset_ns,
            peak_time_abs=peak_abs,
            width=p.width * period,
            amplitude=p.amplitude,
            area=p.area,
            amplitude_pe=p.amplitude / spe_amp,
            pe=pe,
        ))
    return hits
