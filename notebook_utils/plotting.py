#!/usr/bin/env python3
"""
Shared figure handling for the training pipelines
"""

from pathlib import Path

import matplotlib.pyplot as plt


def save_or_show(fig, save_dir, filename, dpi=300):
    """Save a figure under `save_dir`, or show it when no directory is given

    Args:
        fig: Matplotlib figure
        save_dir: Directory to save plots (optional). If provided, plots are saved without display.
        filename: File name inside `save_dir`
        dpi: Output resolution

    Returns:
        Path of the saved file, or None when the figure was shown
    """
    if not save_dir:
        plt.show()
        return None

    save_dir = Path(save_dir)
    save_dir.mkdir(parents=True, exist_ok=True)
    out_path = save_dir / filename
    fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    print(f"  Saved: {out_path}")
    plt.close(fig)
    return out_path
