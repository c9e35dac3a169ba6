from __future__ import annotations

from typing import List, Optional

import numpy as np
import typer

from flashfinder.config.load import load_config
from flashfinder.config.schemas import HitsCfg
from flashfinder.io.store import write_frames
from flashfinder.sim.synth import synth_frames

app = typer.Typer(help="Write a synthetic flash-finder input file")


@app.command()
def main(
    out: str = typer.Argument(..., help="Output HDF5 path"),
    frames: int = typer.Option(4, "--frames", min=1, help="Number of frames"),
    channels: int = typer.Option(16, "--channels", min=1, help="Channels per frame"),
    samples: int = typer.Option(1000, "--samples", min=16, help="Samples per waveform"),
    flashes: int = typer.Option(2, "--flashes", min=0, help="Flashes per frame"),
    noise: float = typer.Option(2.0, "--noise", min=0.0, help="Pedestal noise RMS [ADC]"),
    trigger: List[float] = typer.Option([], "--trigger", help="Trigger marker time [ns]; repeatable"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="TOML config providing [hits] calibration"),
    seed: Optional[int] = typer.Option(None, "--seed", help="RNG seed"),
):
    """
    Toy readout: flashes at random times on every channel, noisy pedestal.
    """
    cfg_hits = load_config(config).hits if config else HitsCfg()
    rng = np.random.default_rng(seed)
    data = synth_frames(frames, channels, samples, cfg_hits,
                        flashes_per_frame=flashes, noise_rms=noise, rng=rng)
    write_frames(out, data, trigger)
    typer.echo(f"Wrote {frames} frames x {channels} channels to {out}")


if __name__ == "__main__":
    app()
