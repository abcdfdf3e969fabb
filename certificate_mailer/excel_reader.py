"""
Participant file reading.

Reads the first sheet of an Excel workbook (or a CSV file) into an ordered
list of raw rows, one mapping of column name to value per row.
"""

import logging
import os
from typing import Any, Dict, List, Tuple

import pandas as pd

from .errors import SourceReadError
from .normalizer import EMAIL_ALIASES, NAME_ALIASES

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = (".xlsx", ".xls")


def _read_frame(path: str) -> pd.DataFrame:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
    if ext in EXCEL_EXTENSIONS:
        return pd.read_excel(path, sheet_name=0, dtype=str)
    raise SourceReadError(f"Unsupported participant file type '{ext}' (use .xlsx, .xls or .csv)")


def read_rows(path: str) -> List[Dict[str, Any]]:
    """
    Read participant rows from a spreadsheet.

    Args:
        path: Path to the .xlsx/.xls/.csv file

    Returns:
        Raw rows in file order; empty cells are None

    Raises:
        SourceReadError: If the file is missing, unreadable or has no rows
    """
    logger.info(f"Reading participant file: {path}")
    if not os.path.exists(path):
        raise SourceReadError(f"Participant file not found: {path}")

    try:
        df = _read_frame(path)
    except SourceReadError:
        raise
    except pd.errors.EmptyDataError as e:
        raise SourceReadError(f"Participant file is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise SourceReadError(f"Error parsing participant file: {e}") from e
    except Exception as e:
        raise SourceReadError(f"Unexpected error reading participant file: {e}") from e

    df = df.dropna(how="all")
    if df.empty:
        raise SourceReadError(f"Participant file is empty: {path}")

    df = df.astype(object).where(pd.notna(df), None)
    rows = df.to_dict(orient="records")
    logger.info(f"Read {len(rows)} rows with {len(df.columns)} columns from {path}")
    return rows


def validate_file_structure(path: str) -> Tuple[bool, str]:
    """
    Check that a participant file has rows and a name and email column.

    Returns:
        (valid, message)
    """
    try:
        rows = read_rows(path)
    except SourceReadError as e:
        return False, str(e)

    columns = set(rows[0])
    has_name = any(alias in columns for alias in NAME_ALIASES)
    has_email = any(alias in columns for alias in EMAIL_ALIASES)
    if not has_name or not has_email:
        return False, 'Participant file must contain "Name" and "Email" columns'
    return True, "File structure is valid"
