#!/usr/bin/env python3
"""
data_utils.py - Shared Data Processing Utilities

Spreadsheet reading and small helpers shared by the survey processing steps.
"""

import math
from pathlib import Path
from typing import Any, Iterator, List, Sequence, TypeVar, Union

import pandas as pd
from loguru import logger

T = TypeVar("T")

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def clean_cell(value: Any) -> str:
    """Render a spreadsheet cell as a trimmed string; blanks and NaN become ''."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def read_raw_grid(file_path: Union[str, Path], sheet_name: Union[int, str] = 0) -> List[List[str]]:
    """Read a survey workbook into a raw grid of strings.

    No header inference is done: the category, reserved and question rows are
    returned as ordinary rows so the schema mapper can interpret them.

    Args:
        file_path: Path to an .xlsx/.xls workbook or a .csv file
        sheet_name: Sheet to read from a workbook (default: the first one)

    Returns:
        List of rows, each a list of cell strings
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Survey file not found: {file_path}")

    logger.info(f"📖 Reading survey grid from {file_path.name}")

    if file_path.suffix.lower() in EXCEL_SUFFIXES:
        df = pd.read_excel(file_path, sheet_name=sheet_name, header=None, dtype=str)
    else:
        df = pd.read_csv(file_path, header=None, dtype=str, keep_default_na=False)

    grid = [[clean_cell(value) for value in row] for row in df.itertuples(index=False, name=None)]
    logger.info(f"  ✅ Read {len(grid):,} rows x {df.shape[1]} columns")
    return grid


def chunk_records(records: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield contiguous slices of at most ``size`` items, in order."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(records), size):
        yield records[start : start + size]
