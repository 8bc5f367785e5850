"""Shared matplotlib style for solution plots."""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt

log = logging.getLogger(__name__)

STYLE_PATH = Path(__file__).resolve().parent / "fem.mplstyle"


def setup_style():
    """Apply the package style sheet shipped next to this module."""
    plt.style.use(STYLE_PATH)


def save_figure(fig, filename: str | Path, close: bool = True) -> Path:
    """Save ``fig`` to ``filename``, creating parent directories, and close it."""
    filepath = Path(filename)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(filepath)
    if close:
        plt.close(fig)
    log.info(f"Saved figure {filepath}")
    return filepath
