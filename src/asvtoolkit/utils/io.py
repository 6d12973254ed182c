"""File I/O utilities for asvToolkit."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd

from asvtoolkit.utils.validation import validate_columns

logger = logging.getLogger(__name__)

# Column names of a dereplicated uniques table
UNIQUES_REQUIRED_COLS = ["sample", "sequence", "abundance", "quality"]


def _sep_for(path: Path) -> str:
    suffixes = path.suffixes
    return "," if ".csv" in suffixes else "\t"


def create_output_dirs(output_dir: Union[str, Path]) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def _read_count(value):
    # whole numbers become int; anything else is left for UniqueSequence.validate
    try:
        if float(value).is_integer():
            return int(value)
    except (TypeError, ValueError):
        pass
    return value


def load_uniques_table(filepath: Union[str, Path]) -> Dict[str, List]:
    """
    Load dereplicated unique sequences from a CSV/TSV table.

    The `quality` column holds comma-separated per-base mean qualities.
    Row order within a sample is preserved.

    Returns:
        Sample name -> list of UniqueSequence
    """
    from asvtoolkit.denoise.models import UniqueSequence

    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    df = pd.read_csv(filepath, sep=_sep_for(filepath), dtype={"sample": str, "sequence": str})
    validate_columns(df, UNIQUES_REQUIRED_COLS, "Uniques table")

    samples: Dict[str, List] = {}
    for row in df.itertuples(index=False):
        quality = tuple(float(q) for q in str(row.quality).split(",") if q != "")
        samples.setdefault(row.sample, []).append(
            UniqueSequence(sequence=row.sequence, abundance=_read_count(row.abundance), quality=quality)
        )

    logger.info(f"Loaded {len(df)} unique sequences for {len(samples)} samples from {filepath.name}")
    return samples


def save_uniques_table(samples: Dict[str, List], filepath: Union[str, Path]) -> None:
    filepath = Path(filepath)
    rows = []
    for name, uniques in samples.items():
        for u in uniques:
            rows.append({
                "sample": name,
                "sequence": u.sequence,
                "abundance": u.abundance,
                "quality": ",".join(f"{q:.2f}" for q in u.quality),
            })
    pd.DataFrame(rows, columns=UNIQUES_REQUIRED_COLS).to_csv(filepath, sep=_sep_for(filepath), index=False)
    logger.info(f"Saved {len(rows)} unique sequences to {filepath}")


def save_error_model(model, filepath: Union[str, Path]) -> None:
    """Write an ErrorModel as a long TSV table."""
    filepath = Path(filepath)
    df = model.to_frame()
    df.insert(0, "max_quality", model.max_quality)
    df.to_csv(filepath, sep="\t", index=False)
    logger.info(f"Saved error model ({model.n_buckets} quality buckets) to {filepath}")


def load_error_model(filepath: Union[str, Path]):
    """Read an ErrorModel written by save_error_model."""
    from asvtoolkit.denoise.error_model import ErrorModel

    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    df = pd.read_csv(filepath, sep="\t")
    validate_columns(df, ["max_quality"], "Error model table")
    model = ErrorModel.from_frame(df, max_quality=int(df["max_quality"].iloc[0]))
    logger.info(f"Loaded {model} from {filepath.name}")
    return model


def save_table(df: pd.DataFrame, filepath: Union[str, Path], index: bool = False) -> None:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(filepath, sep=_sep_for(filepath), index=index)
    logger.info(f"Saved {len(df)} rows to {filepath}")


def save_json(data: dict, filepath: Union[str, Path]) -> None:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as f:
        json.dump(data, f, indent=2)
