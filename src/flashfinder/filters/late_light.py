# src/flashfinder/filters/late_light.py
from __future__ import annotations
import math
from typing import List, Sequence, Set, Tuple

from flashfinder.config.schemas import LateLightCfg
from flashfinder.physics.flashes import OpFlash


def _overlap(later: Set[int], earlier: Set[int]) -> float:
    """Fraction of the later flash's channels also lit in the earlier one."""
    if not later:
        return 0.0
    return len(later & earlier) / len(later)


def _is_late_light(a: OpFlash, b: OpFlash, dt: float, cfg: LateLightCfg) -> bool:
    if cfg.policy == "fraction":
        return b.total_pe < cfg.pe_fraction * a.total_pe
    if cfg.policy == "slow_component":
        hyp = a.total_pe * math.exp(-dt / cfg.slow_tau_ns)
        if a.time_width > 0 and b.time_width > 0:
            hyp *= b.time_width / a.time_width
        return b.total_pe < hyp + cfg.nsigma * math.sqrt(hyp)
    raise ValueError(f"Unknown late-light policy {cfg.policy}")


def remove_late_light(
    flashes: Sequence[OpFlash],
    hits_per_flash: Sequence[Sequence[int]],
    cfg: LateLightCfg,
) -> Tuple[List[OpFlash], List[List[int]]]:
    """
    Drop flashes that look like the delayed scintillation tail of an earlier,
    larger flash on largely the same channels.

    Returns new (flashes, hits_per_flash) lists ordered by flash time; the hit
    lists are reordered with their flashes. A flash B is removed when some
    surviving earlier flash A has 0 < B.time - A.time <= window_ns,
    B.total_pe < A.total_pe, channel overlap >= overlap_fraction, and the
    configured policy accepts B as late light.
    """
    if len(flashes) != len(hits_per_flash):
        raise ValueError(
            f"{len(flashes)} flashes but {len(hits_per_flash)} hit lists"
        )
    order = sorted(range(len(flashes)), key=lambda i: (flashes[i].time, -flashes[i].total_pe, i))
    flashes = [flashes[i] for i in order]
    clusters = [list(hits_per_flash[i]) for i in order]
    if not cfg.enabled:
        return flashes, clusters

    channels = [f.channels() for f in flashes]
    removed = [False] * len(flashes)
    for a, fa in enumerate(flashes):
        if removed[a]:
            continue
        for b in range(a + 1, len(flashes)):
            fb = flashes[b]
            dt = fb.time - fa.time
            if dt > cfg.window_ns:
                break
            if removed[b] or dt <= 0 or not fb.total_pe < fa.total_pe:
                continue
            if _overlap(channels[b], channels[a]) < cfg.overlap_fraction:
                continue
            if _is_late_light(fa, fb, dt, cfg):
                removed[b] = True

    keep = [i for i, r in enumerate(removed) if not r]
    return [flashes[i] for i in keep], [clusters[i] for i in keep]
