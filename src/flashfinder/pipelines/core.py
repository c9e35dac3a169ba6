from __future__ import annotations

import os
from concurrent.futures import Executor, ProcessPoolExecutor
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional, Sequence

import typer
from tqdm import tqdm

from flashfinder.config.load import load_config
from flashfinder.config.schemas import Config, HitsCfg, PulseCfg
from flashfinder.errors import ConfigurationError, ConsistencyViolation
from flashfinder.filters.clustering import (
    ClusterDiagnostics,
    assign_hits_to_flash,
    refine_hits_to_flash,
)
from flashfinder.filters.late_light import remove_late_light
from flashfinder.geometry.detector import DetectorGeometry, Geometry
from flashfinder.io.store import read_frames, read_triggers, write_flashes, write_hits, write_init
from flashfinder.physics.flashes import OpFlash
from flashfinder.physics.hits import OpHit
from flashfinder.physics.waveforms import Frame, Waveform
from flashfinder.reco.flash_builder import construct_flashes
from flashfinder.reco.hit_builder import NO_TRIGGER, TriggerTime, construct_hits, get_trigger_time
from flashfinder.reco.manager import PulseRecoManager


class FrameResult(NamedTuple):
    hits: List[OpHit]
    flashes: List[OpFlash]
    hits_per_flash: List[List[int]]  # frame-local hit indices
    diag: ClusterDiagnostics


class FlashFinderResult(NamedTuple):
    hits: List[OpHit]
    flashes: List[OpFlash]
    hits_per_flash: List[List[int]]  # absolute indices into hits
    trigger: TriggerTime


def extract_channel_hits(
    wf: Waveform,
    frame_start_ns: float,
    trigger_offset_ns: float,
    cfg_pulse: PulseCfg,
    cfg_hits: HitsCfg,
) -> List[OpHit]:
    """
    Worker: pedestal + pulse finding + calibration for one waveform.
    Builds its own PulseRecoManager so no state is shared between channels.
    """
    manager = PulseRecoManager(cfg_pulse)
    manager.reconstruct(wf)
    return construct_hits(
        wf.frame, frame_start_ns, trigger_offset_ns, wf.channel, manager.pulses, cfg_hits
    )


def offset_clusters(clusters: Sequence[Sequence[int]], offset: int) -> List[List[int]]:
    """Shift frame-local hit indices by the number of hits already collected."""
    return [[i + offset for i in c] for c in clusters]


def process_frame(
    frame: Frame,
    cfg: Config,
    geometry: Geometry,
    trigger: TriggerTime = NO_TRIGGER,
    executor: Optional[Executor] = None,
) -> FrameResult:
    """
    Hits -> clusters -> flashes -> late-light removal for one frame.

    Per-channel extraction goes to the executor (if any) and is joined, in
    waveform order, before clustering starts. A ConsistencyViolation aborts
    the frame and is re-raised tagged with the frame index.
    """
    frame.validate()
    diag_level = cfg.run.diagnostics_level

    if diag_level >= 2:
        short = [wf.channel for wf in frame.waveforms if len(wf) < cfg.pulse.min_samples]
        if short:
            print(f"[hits] frame {frame.frame}: no pulses from short/empty traces on channels {short}")

    args = (frame.start_time_ns, trigger.offset_ns, cfg.pulse, cfg.hits)
    if executor is not None and len(frame.waveforms) >= cfg.run.parallel_min_channels:
        futs = [executor.submit(extract_channel_hits, wf, *args) for wf in frame.waveforms]
        per_channel = [fut.result() for fut in futs]
    else:
        per_channel = [extract_channel_hits(wf, *args) for wf in frame.waveforms]
    hits = [h for channel_hits in per_channel for h in channel_hits]

    diag = ClusterDiagnostics()
    clusters = assign_hits_to_flash(hits, cfg.cluster.flash_width_ns, diag)
    clusters = refine_hits_to_flash(
        clusters,
        hits,
        cfg.cluster.refine_width_ns,
        min_hits=cfg.cluster.min_hits,
        min_channels=cfg.cluster.min_channels,
        min_pe=cfg.cluster.min_pe,
        diag=diag,
    )

    try:
        flashes = construct_flashes(
            clusters, hits, geometry, trigger, beam_window_ns=cfg.trigger.beam_window_ns
        )
    except ConsistencyViolation as exc:
        if exc.frame is None:
            raise ConsistencyViolation(str(exc), frame=frame.frame) from exc
        raise

    n_built = len(flashes)
    flashes, clusters = remove_late_light(flashes, clusters, cfg.late_light)

    if diag_level >= 2:
        print(f"[frame] {frame.frame}: {len(frame.waveforms)} channels, {len(hits)} hits, "
              f"{diag.clusters_opened} clusters ({diag.clusters_split} split, "
              f"{diag.clusters_rejected} rejected {diag.reasons}), "
              f"{n_built} flashes, {n_built - len(flashes)} late-light removed")
    return FrameResult(hits, flashes, clusters, diag)


def _resolve_workers(workers) -> int:
    if workers == "auto":
        return max(1, os.cpu_count() or 1)
    if isinstance(workers, int):
        return max(0, workers)
    raise ValueError("workers must be int or 'auto'")


def _run_frames(
    frames: Iterable[Frame],
    cfg: Config,
    geometry: Geometry,
    trigger: TriggerTime,
    executor: Optional[Executor],
) -> FlashFinderResult:
    hits: List[OpHit] = []
    flashes: List[OpFlash] = []
    hits_per_flash: List[List[int]] = []

    it = tqdm(frames, desc="frames", unit="frame") if cfg.run.progress else frames
    for frame in it:
        res = process_frame(frame, cfg, geometry, trigger, executor)
        # frame-local -> absolute hit indices, before the frame's hits are appended
        hits_per_flash.extend(offset_clusters(res.hits_per_flash, len(hits)))
        hits.extend(res.hits)
        flashes.extend(res.flashes)
    return FlashFinderResult(hits, flashes, hits_per_flash, trigger)


def run_flash_finder(
    frames: Iterable[Frame],
    cfg: Config,
    geometry: Geometry,
    triggers: Iterable[float] = (),
    executor: Optional[Executor] = None,
) -> FlashFinderResult:
    """
    Run the flash finder over a readout.

    The trigger reference is the first marker at or after
    trigger.lower_bound_ns. Results of all frames are concatenated; every
    hits_per_flash entry holds absolute indices into the returned hit list.

    With run.workers > 0 (or "auto") and no executor given, a process pool is
    created for the duration of the call.
    """
    trigger = get_trigger_time(triggers, cfg.trigger.lower_bound_ns)
    if cfg.run.diagnostics_level >= 1:
        if trigger.found:
            print(f"[run] trigger at {trigger.time_ns:.1f} ns")
        else:
            print("[run] no trigger marker found; hit times are not trigger-referenced")

    workers = _resolve_workers(cfg.run.workers)
    if executor is None and workers > 0:
        with ProcessPoolExecutor(max_workers=workers) as ex:
            result = _run_frames(frames, cfg, geometry, trigger, ex)
    else:
        result = _run_frames(frames, cfg, geometry, trigger, executor)

    if cfg.run.diagnostics_level >= 1:
        print(f"[run] {len(result.hits)} hits, {len(result.flashes)} flashes")
    return result


def geometry_from_cfg(cfg: Config) -> DetectorGeometry:
    try:
        return DetectorGeometry.from_cfg(cfg.geometry.positions, cfg.geometry.positions_path)
    except (ValueError, OSError) as exc:
        raise ConfigurationError(f"geometry: {exc}") from exc


def run_pipeline(
    cfg_path: str,
    *,
    workers: Optional[int] = None,
    late_light: Optional[bool] = None,
) -> Path:
    """
    Orchestrate the full pipeline from a TOML config file.

    CLI flags (--workers, --late-light/--no-late-light) override the
    corresponding config fields when not None.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if workers is not None:
        cfg.run.workers = workers
    if late_light is not None:
        cfg.late_light.enabled = late_light

    diag_level = cfg.run.diagnostics_level
    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] algorithm={cfg.pulse.algorithm} workers={cfg.run.workers} "
              f"late_light={cfg.late_light.enabled}")
        print(f"[run] input={cfg.io.input_path} -> output={cfg.io.output_path}")

    geometry = geometry_from_cfg(cfg)
    triggers = read_triggers(cfg.io.input_path)
    result = run_flash_finder(read_frames(cfg.io.input_path), cfg, geometry, triggers)

    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with write_init(str(out_path), cfg_path, cfg) as f:
        write_hits(f, result.hits)
        write_flashes(f, result.flashes, result.hits_per_flash)
        f.attrs["trigger_found"] = result.trigger.found
        f.attrs["trigger_time_ns"] = result.trigger.time_ns

    if diag_level >= 1:
        print(f"[run] wrote {out_path}")
    return out_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Optical flash finder (flashfinder.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        min=0,
        help="Override [run].workers (0 = single process)",
    ),
    late_light: Optional[bool] = typer.Option(
        None,
        "--late-light / --no-late-light",
        help="Enable or disable late-light removal; overrides [late_light].enabled when set",
    ),
):
    """
    Find hits and flashes in the frames of [io].input_path.
    """
    out_path = run_pipeline(cfg_path, workers=workers, late_light=late_light)
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
