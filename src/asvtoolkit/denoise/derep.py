"""Dereplication of reads into unique sequences."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import numpy as np

from asvtoolkit.utils.fastq import decode_quality, iter_fastq, sample_name_from_path
from .models import UniqueSequence

logger = logging.getLogger(__name__)


def dereplicate(reads: Iterable[Tuple[str, Sequence[float]]]) -> List[UniqueSequence]:
    """
    Collapse identical reads.

    Args:
        reads: (sequence, per-base quality scores) pairs

    Returns:
        Unique sequences with read counts and per-position mean quality,
        ordered by decreasing abundance, then first appearance
    """
    sums: Dict[str, np.ndarray] = {}
    counts: Dict[str, int] = {}
    first_seen: Dict[str, int] = {}

    for i, (seq, quality) in enumerate(reads):
        seq = seq.upper()
        quality = np.asarray(quality, dtype=float)
        if len(quality) != len(seq):
            raise ValueError(f"Read {i}: quality length {len(quality)} != sequence length {len(seq)}")
        if seq in sums:
            sums[seq] += quality
            counts[seq] += 1
        else:
            sums[seq] = quality.copy()
            counts[seq] = 1
            first_seen[seq] = i

    order = sorted(counts, key=lambda s: (-counts[s], first_seen[s]))
    return [
        UniqueSequence(sequence=seq, abundance=counts[seq], quality=tuple(sums[seq] / counts[seq]))
        for seq in order
    ]


def derep_fastq(path: Union[str, Path]) -> List[UniqueSequence]:
    """Dereplicate a FASTQ file (Phred+33)."""
    uniques = dereplicate(
        (seq, decode_quality(qual)) for _, seq, qual in iter_fastq(path)
    )
    n_reads = sum(u.abundance for u in uniques)
    logger.info(f"Dereplicated {n_reads} reads into {len(uniques)} unique sequences from {Path(path).name}")
    return uniques


def derep_fastq_files(paths: Iterable[Union[str, Path]]) -> Dict[str, List[UniqueSequence]]:
    """Sample name (from the file name) -> unique sequences."""
    samples: Dict[str, List[UniqueSequence]] = {}
    for path in paths:
        name = sample_name_from_path(path)
        if name in samples:
            raise ValueError(f"Duplicate sample name '{name}' derived from {path}")
        samples[name] = derep_fastq(path)
    return samples
