"""
I/O for count tables, sample metadata and result tables.
"""

from compdiff.io.loaders import load_counts, load_conditions, sniff_delimiter
from compdiff.io.writers import write_result_table, write_parameters

__all__ = [
    "load_counts",
    "load_conditions",
    "sniff_delimiter",
    "write_result_table",
    "write_parameters",
]
