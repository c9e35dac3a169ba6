from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np


class Geometry(Protocol):
    """Channel id -> position lookup used to place flashes."""

    @property
    def n_channels(self) -> int: ...

    def channel_position(self, channel: int) -> np.ndarray: ...


@dataclass
class DetectorGeometry:
    positions: np.ndarray  # (n_channels, 3) [cm], row = channel id

    def __post_init__(self) -> None:
        pos = np.asarray(self.positions, dtype=np.float64)
        if pos.ndim != 2 or pos.shape[1] != 3:
            raise ValueError(f"positions must have shape (n, 3), got {pos.shape}")
        pos.setflags(write=False)
        self.positions = pos

    @classmethod
    def from_cfg(cls, positions=None, positions_path=None):
        """
        Build from an explicit [[x, y, z], ...] list or a CSV file with one
        x,y,z row per channel. The file wins when both are given.
        """
        if positions_path:
            pos = np.loadtxt(Path(positions_path), delimiter=",", ndmin=2)
            return cls(pos)
        if positions:
            return cls(np.asarray(positions, dtype=np.float64))
        raise ValueError("geometry needs positions or positions_path")

    @classmethod
    def line(cls, n_channels: int, pitch_cm: float = 10.0, axis: int = 2):
        """n channels evenly spaced along one axis, first at the origin."""
        pos = np.zeros((n_channels, 3), dtype=np.float64)
        pos[:, axis] = np.arange(n_channels) * pitch_cm
        return cls(pos)

    @property
    def n_channels(self) -> int:
        return int(self.positions.shape[0])

    def channel_position(self, channel: int) -> np.ndarray:
        if not 0 <= channel < self.n_channels:
            raise IndexError(f"channel {channel} outside geometry (n_channels={self.n_channels})")
        return self.positions[channel]
