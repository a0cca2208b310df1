"""
Figure wrapper shared by compdiff's diagnostic plots.

Plot functions return a ``Figure`` rather than a bare matplotlib figure, so
the CLI and the t-test engine's ``hist_plot`` hook save and release every
plot the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

import matplotlib.figure
import matplotlib.pyplot as plt

OutputFormat = Literal["png", "pdf", "svg"]
_FORMATS = ("png", "pdf", "svg")


@dataclass
class Figure:
    """
    A matplotlib figure plus a title, a description and run metadata.

    Attributes
    ----------
    fig : matplotlib.figure.Figure
        The rendered figure
    title : str
        Short label, e.g. "P-value histograms (instance 1)"
    description : str
        What the panels show
    metadata : dict
        Plot parameters; ``created_at`` is filled in automatically
    """
    fig: matplotlib.figure.Figure
    title: str
    description: str
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.metadata.setdefault("created_at", datetime.now().isoformat())

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
    ) -> Path:
        """
        Write the figure to ``path``, creating parent directories.

        The format is taken from the file suffix when not given; unknown
        suffixes are written as PNG.

        Returns
        -------
        Path
            ``path`` as a Path.
        """
        path = Path(path)
        if format is None:
            suffix = path.suffix.lstrip(".").lower()
            format = suffix if suffix in _FORMATS else "png"

        path.parent.mkdir(parents=True, exist_ok=True)
        self.fig.savefig(path, format=format, dpi=dpi, bbox_inches="tight", facecolor="white")
        return path

    def close(self) -> None:
        """Release the matplotlib figure."""
        plt.close(self.fig)
