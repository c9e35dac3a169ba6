import h5py
import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path


def save_flash_png(h5_path: str, out_png: str | None = None, flash: int = 0):
    """
    Two panels for one stored flash: PE per channel, and the peak times of its
    hits against channel (marker size ~ hit PE).
    """
    h5_path = str(h5_path)
    with h5py.File(h5_path, "r") as f:
        if "flashes" not in f or "hits" not in f:
            raise KeyError(f"/flashes or /hits not found in {h5_path}")
        n_flash = f["flashes/time"].shape[0]
        if not 0 <= flash < n_flash:
            raise IndexError(f"flash {flash} out of range ({n_flash} flashes in {h5_path})")
        pe = np.array(f["flashes/pe_per_ch"][flash], dtype=np.float64)
        time = float(f["flashes/time"][flash])
        ptr = np.array(f["flashes/hit_ptr"])
        rows = np.array(f["flashes/hit_index"][ptr[flash]:ptr[flash + 1]])
        hit_ch = np.array(f["hits/channel"])[rows]
        hit_t = np.array(f["hits/peak_time"])[rows]
        hit_pe = np.array(f["hits/pe"])[rows]

    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(f".flash{flash}.png"))

    fig, (ax_pe, ax_t) = plt.subplots(2, 1, figsize=(7, 6))
    ax_pe.bar(np.arange(pe.size), pe)
    ax_pe.set_xlabel("channel")
    ax_pe.set_ylabel("PE")
    ax_pe.set_title(f"{Path(h5_path).name} : flash {flash}, t={time:.1f} ns, {pe.sum():.1f} PE")
    ax_t.scatter(hit_ch, hit_t, s=10 + 2 * hit_pe)
    ax_t.axhline(time, color="k", lw=0.8)
    ax_t.set_xlabel("channel")
    ax_t.set_ylabel("hit peak time [ns]")
    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
    return out_png
