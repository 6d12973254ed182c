"""
Pairwise comparison of unique sequences.

Equal-length sequences are compared column by column. Sequences of
different lengths are globally aligned with edlib (mode="NW"); the
extended CIGAR of the path gives the aligned (non-gap) columns and the
number of gap columns.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple

import edlib
import numpy as np

_CIGAR_OP = re.compile(r"(\d+)([=XID])")


@dataclass(frozen=True)
class AlignedPairs:
    """Aligned column positions of a reference and a query."""
    ref_pos: np.ndarray
    query_pos: np.ndarray
    n_indels: int = 0

    def __len__(self) -> int:
        return len(self.ref_pos)

    def hamming(self, ref_codes: np.ndarray, query_codes: np.ndarray) -> int:
        """Mismatched aligned columns plus indel columns."""
        mismatches = int((ref_codes[self.ref_pos] != query_codes[self.query_pos]).sum())
        return mismatches + self.n_indels


def ungapped_pairs(length: int) -> AlignedPairs:
    idx = np.arange(length)
    return AlignedPairs(ref_pos=idx, query_pos=idx, n_indels=0)


def parse_cigar(cigar: str) -> List[Tuple[int, str]]:
    """
    Split an extended CIGAR string into (length, operation) runs.

    With the reference passed to edlib as its query:
    - '=' / 'X': aligned column
    - 'I': reference base with no query base
    - 'D': query base with no reference base
    """
    return [(int(n), op) for n, op in _CIGAR_OP.findall(cigar)]


def global_align(ref: str, query: str) -> AlignedPairs:
    """
    Global alignment of two sequences with edlib.

    Args:
        ref: Reference (center) sequence
        query: Query sequence

    Returns:
        AlignedPairs for the non-gap columns
    """
    if not ref or not query:
        raise ValueError("Sequences must be non-empty")

    result = edlib.align(ref.upper(), query.upper(), mode="NW", task="path")
    if result["editDistance"] == -1:
        raise ValueError(f"edlib alignment failed for lengths {len(ref)} and {len(query)}")

    ref_pos: List[np.ndarray] = []
    query_pos: List[np.ndarray] = []
    n_indels = 0
    i = j = 0
    for n, op in parse_cigar(result["cigar"]):
        if op in "=X":
            ref_pos.append(np.arange(i, i + n))
            query_pos.append(np.arange(j, j + n))
            i += n
            j += n
        elif op == "I":
            n_indels += n
            i += n
        else:
            n_indels += n
            j += n

    empty = np.empty(0, dtype=np.intp)
    return AlignedPairs(
        ref_pos=np.concatenate(ref_pos).astype(np.intp) if ref_pos else empty,
        query_pos=np.concatenate(query_pos).astype(np.intp) if query_pos else empty,
        n_indels=n_indels,
    )


def compare(ref: str, query: str) -> AlignedPairs:
    """Column pairs between two sequences, aligning only when lengths differ."""
    if len(ref) == len(query):
        return ungapped_pairs(len(ref))
    return global_align(ref, query)
