from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, Dict, List, Union


def _positive(name: str, v: float) -> float:
    if v <= 0:
        raise ValueError(f"{name} must be > 0 (got {v})")
    return v


def _non_negative(name: str, v: float) -> float:
    if v < 0:
        raise ValueError(f"{name} must be >= 0 (got {v})")
    return v


class RunCfg(BaseModel):
    """
    Global run controls.

    TOML:

    [run]
    workers = 0              # 0 = single process, "auto" = one per CPU
    diagnostics_level = 1    # 0=off, 1=summary, 2=verbose
    """

    workers: Union[int, Literal["auto"]] = 0
    # frames with fewer channels than this are extracted in-process
    parallel_min_channels: int = 8
    progress: bool = False
    diagnostics_level: int = 1

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("workers")
    def _workers_non_negative(cls, v):
        if isinstance(v, int) and v < 0:
            raise ValueError("workers must be >= 0 or 'auto'")
        return v


class IOCfg(BaseModel):
    """
    [io]
    input_path  = "frames.h5"
    output_path = "flashes.h5"
    """

    input_path: str = ""
    output_path: str = ""


class PulseCfg(BaseModel):
    """
    Per-channel pulse finding.

    The start threshold is baseline + max(adc_threshold, nsigma * rms). If
    either end_* value is set, pulses close on the (lower) hysteresis level
    baseline + max(end_adc_threshold, end_nsigma * rms, 1 ADC count) instead;
    the one-count floor keeps a noiseless baseline out of the pulse.
    """

    algorithm: Literal["threshold", "first_peak"] = "threshold"
    adc_threshold: float = 10.0
    nsigma: float = 5.0
    end_adc_threshold: Optional[float] = None
    end_nsigma: Optional[float] = None
    min_width: int = 2
    min_samples: int = 10
    pedestal_method: Literal["head", "edges", "whole"] = "head"
    pedestal_samples: int = 20

    @field_validator("adc_threshold")
    def _thr(cls, v: float) -> float:
        return _positive("pulse.adc_threshold", v)

    @field_validator("end_adc_threshold")
    def _end_thr(cls, v: Optional[float]) -> Optional[float]:
        return v if v is None else _positive("pulse.end_adc_threshold", v)

    @field_validator("nsigma")
    def _nsig(cls, v: float) -> float:
        return _non_negative("pulse.nsigma", v)

    @field_validator("end_nsigma")
    def _end_nsig(cls, v: Optional[float]) -> Optional[float]:
        return v if v is None else _non_negative("pulse.end_nsigma", v)

    @field_validator("min_width", "min_samples", "pedestal_samples")
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"pulse sample counts must be >= 1 (got {v})")
        return v

    @property
    def hysteresis(self) -> bool:
        return self.end_adc_threshold is not None or self.end_nsigma is not None


class HitsCfg(BaseModel):
    """
    Calibration from pulses to hits: sample period, time offset, single-PE
    area/amplitude and optional per-channel relative gains.
    """

    sample_period_ns: float = 2.0
    time_offset_ns: float = 0.0
    spe_area_adc: float = 100.0
    spe_amplitude_adc: float = 20.0
    hit_threshold_pe: float = 0.0
    channel_gain: Dict[int, float] = Field(default_factory=dict)

    @field_validator("sample_period_ns")
    def _period(cls, v: float) -> float:
        return _positive("hits.sample_period_ns", v)

    @field_validator("spe_area_adc", "spe_amplitude_adc")
    def _spe(cls, v: float) -> float:
        return _positive("hits.spe_*", v)

    @field_validator("hit_threshold_pe")
    def _hit_thr(cls, v: float) -> float:
        return _non_negative("hits.hit_threshold_pe", v)

    @field_validator("channel_gain")
    def _gains(cls, v: Dict[int, float]) -> Dict[int, float]:
        for ch, g in v.items():
            if g <= 0:
                raise ValueError(f"hits.channel_gain[{ch}] must be > 0 (got {g})")
        return v

    def gain(self, channel: int) -> float:
        return self.channel_gain.get(channel, 1.0)


class TriggerCfg(BaseModel):
    lower_bound_ns: float = 0.0
    # |flash time - trigger| inside this window marks the flash on-beam
    beam_window_ns: float = 1600.0

    @field_validator("beam_window_ns")
    def _window(cls, v: float) -> float:
        return _positive("trigger.beam_window_ns", v)


class ClusterCfg(BaseModel):
    flash_width_ns: float = 50.0
    refine_width_ns: float = 25.0
    min_hits: int = 1
    min_channels: int = 1
    min_pe: float = 0.0

    @field_validator("flash_width_ns", "refine_width_ns")
    def _widths(cls, v: float) -> float:
        return _positive("cluster window", v)

    @field_validator("min_hits", "min_channels")
    def _counts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"cluster minimum counts must be >= 1 (got {v})")
        return v

    @field_validator("min_pe")
    def _min_pe(cls, v: float) -> float:
        return _non_negative("cluster.min_pe", v)


class LateLightCfg(BaseModel):
    """
    Suppression of flashes that look like the delayed tail of an earlier,
    larger flash.

    policy = "fraction"        drop B if PE(B) < pe_fraction * PE(A)
    policy = "slow_component"  drop B if PE(B) is within nsigma of the
                               exponential slow-light expectation from A
    """

    enabled: bool = True
    policy: Literal["fraction", "slow_component"] = "fraction"
    window_ns: float = 5000.0
    pe_fraction: float = 0.2
    overlap_fraction: float = 0.5
    slow_tau_ns: float = 1600.0
    nsigma: float = 3.0

    @field_validator("window_ns", "slow_tau_ns")
    def _positive_times(cls, v: float) -> float:
        return _positive("late_light time constant", v)

    @field_validator("pe_fraction")
    def _pe_fraction(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError(f"late_light.pe_fraction must be in (0, 1] (got {v})")
        return v

    @field_validator("overlap_fraction")
    def _overlap(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError(f"late_light.overlap_fraction must be in [0, 1] (got {v})")
        return v

    @field_validator("nsigma")
    def _nsig(cls, v: float) -> float:
        return _non_negative("late_light.nsigma", v)


class GeometryCfg(BaseModel):
    """
    Channel positions [cm], index = channel id.

    [geometry]
    positions = [[0, 0, 0], [0, 10, 0], ...]
    # or
    positions_path = "positions.csv"   # one "x,y,z" row per channel
    """

    positions: List[List[float]] = Field(default_factory=list)
    positions_path: Optional[str] = None

    @field_validator("positions")
    def _xyz(cls, v: List[List[float]]) -> List[List[float]]:
        for row in v:
            if len(row) != 3:
                raise ValueError(f"geometry.positions rows must be [x, y, z] (got {row})")
        return v


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg = Field(default_factory=IOCfg)
    pulse: PulseCfg = Field(default_factory=PulseCfg)
    hits: HitsCfg = Field(default_factory=HitsCfg)
    trigger: TriggerCfg = Field(default_factory=TriggerCfg)
    cluster: ClusterCfg = Field(default_factory=ClusterCfg)
    late_light: LateLightCfg = Field(default_factory=LateLightCfg)
    geometry: GeometryCfg = Field(default_factory=GeometryCfg)

    @model_validator(mode="after")
    def _refine_inside_window(self) -> "Config":
        if self.cluster.refine_width_ns > self.cluster.flash_width_ns:
            raise ValueError(
                f"cluster.refine_width_ns ({self.cluster.refine_width_ns}) must not exceed "
                f"cluster.flash_width_ns ({self.cluster.flash_width_ns})"
            )
        return self
