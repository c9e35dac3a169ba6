from __future__ import annotations

import typer
from typing import Optional

from flashfinder.vis.hdf import save_flash_png

app = typer.Typer(help="Flash finder visualization tools")

@app.command("flash-png")
def flash_png(
    h5_path: str = typer.Argument(..., help="Path to HDF5 file written by flashfinder-run"),
    flash: int = typer.Option(0, "--flash", "-k", help="Flash row in /flashes"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.flash<k>.png)"),
):
    """Render one flash (PE per channel, hit times) to a PNG."""
    out_png = save_flash_png(h5_path, out_png=out, flash=flash)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
