"""
Result writers.

Tables and parameter records are written through a temporary file in the
destination directory followed by ``os.replace()``, so an interrupted run
never leaves a truncated output behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, TextIO

import pandas as pd

__all__ = ['write_result_table', 'write_parameters']


def _atomic_write(path: Path, writer: Callable[[TextIO], None]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w", dir=path.parent, suffix=".tmp", delete=False
        ) as tmp:
            tmp_path = tmp.name
            writer(tmp)
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    return path


def write_result_table(table: pd.DataFrame, path: Path | str) -> Path:
    """Write a per-feature result table as CSV with a ``feature_id`` index column."""
    table = table.rename_axis("feature_id")
    return _atomic_write(Path(path), lambda f: table.to_csv(f))


def write_parameters(params: dict[str, Any], path: Path | str) -> Path:
    """Write a JSON record of run parameters (non-JSON values are stringified)."""
    return _atomic_write(
        Path(path),
        lambda f: json.dump(params, f, indent=2, default=str),
    )
