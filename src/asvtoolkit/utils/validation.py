"""Input validation utilities for asvToolkit."""

import logging
from pathlib import Path
from typing import Iterable, List

import pandas as pd

logger = logging.getLogger(__name__)


def validate_columns(df: pd.DataFrame, required_cols: List[str], description: str = "Table") -> bool:
    """
    Validate that a DataFrame has the required columns.

    Returns:
        True if valid, raises ValueError otherwise
    """
    missing = [col for col in required_cols if col not in df.columns]
    if missing:
        raise ValueError(f"{description} is missing required columns: {missing}")
    return True


def validate_file_exists(filepath: str, description: str = "File") -> None:
    """
    Validate that a file exists.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    if not Path(filepath).exists():
        raise FileNotFoundError(f"{description} not found: {filepath}")


def validate_files_exist(filepaths: Iterable[str], description: str = "File") -> None:
    for filepath in filepaths:
        validate_file_exists(filepath, description)
