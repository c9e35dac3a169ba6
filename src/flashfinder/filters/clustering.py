# src/flashfinder/filters/clustering.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from flashfinder.physics.hits import OpHit

Cluster = List[int]


@dataclass
class ClusterDiagnostics:
    hits_in: int = 0
    clusters_opened: int = 0
    clusters_split: int = 0
    clusters_kept: int = 0
    clusters_rejected: int = 0
    reasons: Dict[str, int] = field(default_factory=dict)

    def inc(self, reason: str) -> None:
        self.reasons[reason] = self.reasons.get(reason, 0) + 1


def _time_order(hits: Sequence[OpHit]) -> List[int]:
    return sorted(range(len(hits)), key=lambda i: (hits[i].peak_time, hits[i].channel, i))


def assign_hits_to_flash(
    hits: Sequence[OpHit],
    flash_width_ns: float,
    diag: Optional[ClusterDiagnostics] = None,
) -> List[Cluster]:
    """
    Group hits into time-coincident clusters (lists of hit indices, time ordered).

    One sweep over the time-sorted hits. A cluster is opened by the first
    unassigned hit at t0 and takes every following hit with
    peak_time - t0 <= flash_width_ns (closed interval). The window is fixed
    from the cluster origin; gaps between neighbouring hits do not chain.
    """
    if diag is not None:
        diag.hits_in += len(hits)
    clusters: List[Cluster] = []
    current: Cluster = []
    t0 = 0.0
    for i in _time_order(hits):
        t = hits[i].peak_time
        if current and t - t0 <= flash_width_ns:
            current.append(i)
            continue
        if current:
            clusters.append(current)
        current = [i]
        t0 = t
    if current:
        clusters.append(current)
    if diag is not None:
        diag.clusters_opened += len(clusters)
    return clusters


def _split_on_gaps(cluster: Cluster, hits: Sequence[OpHit], refine_width_ns: float) -> List[Cluster]:
    ordered = sorted(cluster, key=lambda i: (hits[i].peak_time, hits[i].channel, i))
    parts: List[Cluster] = [[ordered[0]]]
    for prev, cur in zip(ordered, ordered[1:]):
        if hits[cur].peak_time - hits[prev].peak_time > refine_width_ns:
            parts.append([cur])
        else:
            parts[-1].append(cur)
    return parts


def refine_hits_to_flash(
    clusters: Sequence[Cluster],
    hits: Sequence[OpHit],
    refine_width_ns: float,
    min_hits: int = 1,
    min_channels: int = 1,
    min_pe: float = 0.0,
    diag: Optional[ClusterDiagnostics] = None,
) -> List[Cluster]:
    """
    Split clusters at internal gaps wider than refine_width_ns, then drop the
    pieces with too few hits, too few distinct channels, or too little PE.
    Hits of a dropped piece are not handed to any other cluster.
    """
    if diag is None:
        diag = ClusterDiagnostics()
    refined: List[Cluster] = []
    for cluster in clusters:
        if not cluster:
            continue
        parts = _split_on_gaps(cluster, hits, refine_width_ns)
        if len(parts) > 1:
            diag.clusters_split += 1
        for part in parts:
            if len(part) < min_hits:
                diag.inc("too_few_hits")
            elif len({hits[i].channel for i in part}) < min_channels:
                diag.inc("too_few_channels")
            elif sum(hits[i].pe for i in part) < min_pe:
                diag.inc("below_min_pe")
            else:
                refined.append(part)
                diag.clusters_kept += 1
                continue
            diag.clusters_rejected += 1
    return refined
