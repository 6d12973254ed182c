"""
FASTQ reading and writing.

- Plain and gzip files (chosen by the .gz suffix)
- Phred+33 quality encoding
"""

import gzip
import logging
from pathlib import Path
from typing import Generator, Iterable, List, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

PHRED_OFFSET = 33
FASTQ_SUFFIXES = (".fastq", ".fq")


def decode_quality(encoded: str) -> List[int]:
    """Phred+33 string -> integer scores."""
    scores = [ord(c) - PHRED_OFFSET for c in encoded]
    if any(q < 0 for q in scores):
        raise ValueError(f"Invalid Phred+33 quality string: {encoded!r}")
    return scores


def encode_quality(scores: Sequence[float]) -> str:
    """Integer (or mean) scores -> Phred+33 string; values are rounded and capped at 93."""
    return "".join(chr(min(93, max(0, int(round(q)))) + PHRED_OFFSET) for q in scores)


def sample_name_from_path(path: Union[str, Path]) -> str:
    """reads/S1.fastq.gz -> S1"""
    name = Path(path).name
    if name.endswith(".gz"):
        name = name[:-3]
    for suffix in FASTQ_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return Path(name).stem


def _open(path: Path, mode: str):
    if path.suffix == ".gz":
        return gzip.open(path, mode + "t")
    return open(path, mode)


def iter_fastq(path: Union[str, Path]) -> Generator[Tuple[str, str, str], None, None]:
    """
    Iterate over a FASTQ file.

    Yields:
        (read_id, sequence, quality)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"FASTQ file not found: {path}")

    with _open(path, "r") as f:
        line_no = 0
        while True:
            header = f.readline().strip()
            if not header:
                break
            seq = f.readline().strip()
            plus = f.readline().strip()
            qual = f.readline().strip()
            line_no += 4
            if not header.startswith("@") or not plus.startswith("+"):
                raise ValueError(f"Malformed FASTQ record ending at line {line_no} of {path}")
            if len(seq) != len(qual):
                raise ValueError(
                    f"Sequence and quality lengths differ in record ending at line {line_no} of {path}"
                )

            read_id = header[1:].split()[0]
            yield read_id, seq.upper(), qual


def write_fastq(
    records: Iterable[Tuple[str, str, str]],
    path: Union[str, Path],
    compress: bool = False,
) -> Path:
    """
    Write (read_id, sequence, quality) records.

    Args:
        records: Records with Phred+33 quality strings
        path: Output path
        compress: gzip the output (adds .gz if missing)

    Returns:
        The path written
    """
    path = Path(path)
    if compress and path.suffix != ".gz":
        path = Path(str(path) + ".gz")
    path.parent.mkdir(parents=True, exist_ok=True)

    n = 0
    with _open(path, "w") as f:
        for read_id, seq, qual in records:
            f.write(f"@{read_id}\n{seq}\n+\n{qual}\n")
            n += 1
    logger.debug(f"Wrote {n} reads to {path}")
    return path
