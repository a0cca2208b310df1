"""
Loaders for count tables and sample condition metadata.

Expected count table layout (CSV or TSV, delimiter auto-detected):

    "",sample_1,sample_2,...
    feature_1,612,1056,...
    feature_2,0,1,...

- First column: unique feature IDs (taxa, genes, ...)
- Remaining columns: one per sample, non-negative integer read counts

Metadata tables have sample IDs in the first column and one column holding
the condition label used for testing.
"""

from __future__ import annotations

import csv
import warnings
from pathlib import Path

import numpy as np
import pandas as pd

__all__ = ['load_counts', 'load_conditions', 'sniff_delimiter']


def sniff_delimiter(path: Path, sample_size: int = 8192) -> str:
    """
    Auto-detect delimiter from file content.

    Uses csv.Sniffer, falling back to counting candidates in the header line.

    Raises:
        ValueError: If no delimiter can be determined
    """
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        sample = f.read(sample_size)

    try:
        return csv.Sniffer().sniff(sample, delimiters='\t,;').delimiter
    except csv.Error:
        pass

    first_line = sample.split('\n')[0]
    counts = {d: first_line.count(d) for d in ('\t', ',', ';')}
    if max(counts.values()) == 0:
        raise ValueError(f"Could not detect delimiter in {path}")
    return max(counts, key=counts.get)


def _read_table(path: Path | str) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    try:
        df = pd.read_csv(path, sep=sniff_delimiter(path), index_col=0)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"File is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse {path}: {e}") from e

    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    return df


def load_counts(path: Path | str) -> pd.DataFrame:
    """
    Load a features × samples count table.

    Args:
        path: CSV/TSV file, first column feature IDs.

    Returns:
        DataFrame of float counts (features × samples).

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the table is empty, non-numeric, negative, or has
            duplicate sample IDs
    """
    df = _read_table(path)

    if df.shape[0] == 0 or df.shape[1] == 0:
        raise ValueError(f"Count table has no features or no samples: {path}")

    if df.columns.duplicated().any():
        dupes = list(df.columns[df.columns.duplicated()][:5])
        raise ValueError(f"Duplicate sample IDs in count table: {dupes}")

    if df.index.duplicated().any():
        n_duplicates = int(df.index.duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate feature IDs. Using first occurrence of each.",
            UserWarning,
        )
        df = df[~df.index.duplicated(keep='first')]

    try:
        data = df.to_numpy(dtype=np.float64)
    except ValueError as e:
        raise ValueError(f"Count table contains non-numeric values: {e}") from e

    if np.isnan(data).any():
        raise ValueError(f"Count table contains {int(np.isnan(data).sum())} missing values")
    if (data < 0).any():
        raise ValueError("Count table contains negative values")

    return pd.DataFrame(data, index=df.index, columns=df.columns)


def load_conditions(
    path: Path | str,
    condition_col: str,
    sample_ids: pd.Index | list[str],
) -> list[str]:
    """
    Read condition labels for ``sample_ids`` from a metadata table.

    Args:
        path: Metadata CSV/TSV, first column sample IDs.
        condition_col: Column holding the condition labels.
        sample_ids: Samples to return labels for, in this order.

    Returns:
        List of condition labels aligned to ``sample_ids``.

    Raises:
        ValueError: If the column is missing, or samples are missing or
            unlabelled in the metadata.
    """
    meta = _read_table(path)
    if condition_col not in meta.columns:
        raise ValueError(
            f"Condition column {condition_col!r} not in metadata. "
            f"Available: {list(meta.columns)}"
        )

    sample_ids = [str(s) for s in sample_ids]
    missing = [s for s in sample_ids if s not in meta.index]
    if missing:
        raise ValueError(
            f"{len(missing)} samples missing from metadata: {missing[:5]}"
        )

    labels = meta.loc[sample_ids, condition_col]
    if labels.isna().any():
        unlabelled = list(labels.index[labels.isna()][:5])
        raise ValueError(f"Samples without a condition label: {unlabelled}")

    return [str(v) for v in labels.tolist()]
