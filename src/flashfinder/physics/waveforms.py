from __future__ import annotations
from dataclasses import dataclass, field
from typing import List

import numpy as np


@dataclass(frozen=True, slots=True)
class Waveform:
    """
    Digitized trace of one optical channel over one frame.

    channel: optical channel id (index into the geometry)
    frame: readout frame index
    adc: signed ADC samples; stored as a read-only int32 copy
    """
    channel: int
    frame: int
    adc: np.ndarray

    def __post_init__(self) -> None:
        adc = np.array(self.adc, dtype=np.int32).reshape(-1)
        adc.setflags(write=False)
        object.__setattr__(self, "adc", adc)

    def __len__(self) -> int:
        return int(self.adc.size)


@dataclass(slots=True)
class Frame:
    """
    One readout frame: its start time [ns] and the waveforms recorded in it.
    """
    frame: int
    start_time_ns: float
    waveforms: List[Waveform] = field(default_factory=list)

    def validate(self) -> None:
        """
        Raise ValueError if a waveform is tagged with another frame index or
        a channel appears twice.
        """
        seen: set[int] = set()
        for wf in self.waveforms:
            if wf.frame != self.frame:
                raise ValueError(
                    f"Frame {self.frame} holds a waveform of frame {wf.frame} "
                    f"(channel {wf.channel})"
                )
            if wf.channel in seen:
                raise ValueError(f"Frame {self.frame} holds channel {wf.channel} twice")
            seen.add(wf.channel)
