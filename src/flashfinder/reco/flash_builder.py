from __future__ import annotations
from typing import List, Sequence

import numpy as np

from flashfinder.errors import ConsistencyViolation
from flashfinder.geometry.detector import Geometry
from flashfinder.physics.flashes import OpFlash
from flashfinder.physics.hits import OpHit
from .hit_builder import NO_TRIGGER, TriggerTime


def _positions(geometry: Geometry) -> np.ndarray:
    pos = getattr(geometry, "positions", None)
    if pos is not None:
        return np.asarray(pos, dtype=np.float64)
    return np.stack([geometry.channel_position(c) for c in range(geometry.n_channels)], axis=0)


def construct_flashes(
    clusters: Sequence[Sequence[int]],
    hits: Sequence[OpHit],
    geometry: Geometry,
    trigger: TriggerTime = NO_TRIGGER,
    *,
    beam_window_ns: float,
) -> List[OpFlash]:
    """
    Build one OpFlash per hit cluster.

    Per-channel PE is accumulated into a dense vector over the geometry
    channels; total_pe is that vector's sum. Times and positions are PE
    weighted. Raises ConsistencyViolation for an empty cluster, a cluster
    mixing frames, a channel outside the geometry or a non-positive PE sum.
    beam_window_ns comes from [trigger].beam_window_ns and has no default.
    """
    pos = _positions(geometry)
    n_ch = pos.shape[0]
    flashes: List[OpFlash] = []

    for k, cluster in enumerate(clusters):
        if len(cluster) == 0:
            raise ConsistencyViolation(f"cluster {k} has no hits")
        members = [hits[i] for i in cluster]
        frames = {h.frame for h in members}
        if len(frames) != 1:
            raise ConsistencyViolation(f"cluster {k} spans frames {sorted(frames)}")
        frame = frames.pop()

        ch = np.array([h.channel for h in members], dtype=np.int64)
        pe = np.array([h.pe for h in members], dtype=np.float64)
        t = np.array([h.peak_time for h in members], dtype=np.float64)
        t_abs = np.array([h.peak_time_abs for h in members], dtype=np.float64)

        if ch.min() < 0 or ch.max() >= n_ch:
            raise ConsistencyViolation(
                f"cluster {k} has channels outside the geometry (n_channels={n_ch})", frame=frame
            )

        pe_per_ch = np.zeros(n_ch, dtype=np.float64)
        np.add.at(pe_per_ch, ch, pe)
        total_pe = float(pe_per_ch.sum())
        if not total_pe > 0.0 or pe.sum() <= 0.0:
            raise ConsistencyViolation(f"cluster {k} accumulated {total_pe} PE", frame=frame)

        # rounding can push a weighted mean just outside [min, max]
        time = float(np.clip(np.average(t, weights=pe), t.min(), t.max()))
        time_abs = float(np.clip(np.average(t_abs, weights=pe), t_abs.min(), t_abs.max()))
        time_width = float(np.sqrt(np.average((t - time) ** 2, weights=pe)))

        center = (pe_per_ch @ pos) / total_pe
        second = (pe_per_ch @ (pos * pos)) / total_pe
        width = np.sqrt(np.clip(second - center * center, 0.0, None))

        flashes.append(OpFlash(
            time=time,
            time_abs=time_abs,
            time_width=time_width,
            total_pe=total_pe,
            pe_per_ch=pe_per_ch,
            center=center,
            width=width,
            frame=int(frame),
            on_beam_time=bool(trigger.found and abs(time) <= beam_window_ns),
        ))
    return flashes
