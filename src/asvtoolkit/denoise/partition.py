"""
Sample inference: divisive partitioning of unique sequences.

Starting from a single partition centered on the most abundant unique,
the engine repeatedly:
1. Computes, for every non-center unique, the reads expected under the
   hypothesis that it is an error copy of its partition center:
       E = lambda * partition_abundance
   with lambda the product of P(obs | center base, quality) over aligned
   positions, times indel_probability for each gap column.
2. Scores the candidates with the significance policy and picks the most
   significant (ties: higher abundance, then lower input index).
3. Promotes it to a new center if the policy admits it, then reassigns
   every unique to the center that best explains it.

It stops when no candidate is admitted, or at max_partition_iterations
promotions (not converged; best partition is returned).
"""

import logging
import warnings
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .alignment import compare, global_align
from .config import DenoiseConfig
from .error_model import ErrorModel
from .exceptions import DataError, NonConvergenceWarning
from .models import InferredVariant, Partition, SampleResult, UniqueSequence, encode_sequence
from .significance import SignificancePolicy, get_significance_policy

logger = logging.getLogger(__name__)


class _SampleState:
    """Encoded sample plus the per-center comparison rows."""

    def __init__(self, sample: str, uniques: Sequence[UniqueSequence], model: ErrorModel, config: DenoiseConfig):
        self.sample = sample
        self.uniques = list(uniques)
        self.model = model
        self.config = config
        self.n = len(self.uniques)

        self.abundance = np.array([int(u.abundance) for u in self.uniques], dtype=np.int64)
        self.codes = [encode_sequence(u.sequence) for u in self.uniques]
        self.quality = [np.asarray(u.quality, dtype=float) for u in self.uniques]
        self.buckets = [model.bucket(q) for q in self.quality]
        self.lengths = np.array([len(c) for c in self.codes])

        # length -> (indices, code matrix, bucket matrix)
        self.groups: Dict[int, Tuple[np.ndarray, np.ndarray, np.ndarray]] = {}
        for length in np.unique(self.lengths):
            idx = np.nonzero(self.lengths == length)[0]
            self.groups[int(length)] = (
                idx,
                np.vstack([self.codes[i] for i in idx]),
                np.vstack([self.buckets[i] for i in idx]),
            )

        self.centers: List[int] = []
        self.log_lambda = np.empty((0, self.n))
        self.hamming = np.empty((0, self.n), dtype=np.int64)
        self.assignment = np.zeros(self.n, dtype=np.int64)
        self.is_center = np.zeros(self.n, dtype=bool)

    def _compare_row(self, center: int) -> Tuple[np.ndarray, np.ndarray]:
        """log lambda and hamming distance of every unique against `center`."""
        cc = self.codes[center]
        row = np.empty(self.n)
        ham = np.empty(self.n, dtype=np.int64)

        idx, Q, B = self.groups[len(cc)]
        lp = self.model.log_lookup(cc[None, :], Q, B)
        row[idx] = lp.sum(axis=1)
        ham[idx] = (Q != cc[None, :]).sum(axis=1)

        log_indel = np.log(self.config.indel_probability)
        ref = self.uniques[center].sequence
        for i in np.nonzero(self.lengths != len(cc))[0]:
            qc = self.codes[i]
            pairs = global_align(ref, self.uniques[i].sequence)
            row[i] = self.model.log_lookup(
                cc[pairs.ref_pos], qc[pairs.query_pos], self.buckets[i][pairs.query_pos]
            ).sum() + pairs.n_indels * log_indel
            ham[i] = pairs.hamming(cc, qc)
        return row, ham

    def add_center(self, index: int) -> int:
        row, ham = self._compare_row(index)
        self.centers.append(index)
        self.log_lambda = np.vstack([self.log_lambda, row])
        self.hamming = np.vstack([self.hamming, ham])
        self.is_center[index] = True
        k = len(self.centers) - 1
        self.assignment[index] = k
        return k

    def partition_abundance(self) -> np.ndarray:
        return np.bincount(
            self.assignment, weights=self.abundance, minlength=len(self.centers)
        ).astype(np.int64)

    def reassign(self, max_shuffles: int) -> int:
        """Move uniques to their most probable center until stable."""
        centers = np.array(self.centers)
        k_of_center = np.arange(len(centers))
        shuffles = 0
        for shuffles in range(1, max_shuffles + 1):
            with np.errstate(divide="ignore"):
                log_totals = np.log(self.partition_abundance().astype(float))
            score = self.log_lambda + log_totals[:, None]
            best = np.argmax(score, axis=0)
            best[centers] = k_of_center
            if np.array_equal(best, self.assignment):
                break
            self.assignment = best
        return shuffles


class PartitionEngine:
    """
    Denoise one sample at a time against a fixed error model.

    The engine holds no per-sample state between runs, so one instance can
    be reused for many samples.

    Args:
        error_model: Error model used read-only for the whole run
        config: Denoising configuration
        policy: Significance policy (default from config.significance)
    """

    def __init__(
        self,
        error_model: ErrorModel,
        config: Optional[DenoiseConfig] = None,
        policy: Optional[SignificancePolicy] = None,
    ):
        self.error_model = error_model
        self.config = config if config is not None else DenoiseConfig()
        self.policy = policy if policy is not None else get_significance_policy(
            self.config.significance, omega_a=self.config.omega_a
        )

    def run(self, sample: str, uniques: Sequence[UniqueSequence]) -> SampleResult:
        """
        Partition a sample's unique sequences into inferred variants.

        Raises:
            DataError: If the sample is empty or any unique is malformed
            ConfigurationError: If the error model cannot score a base
        """
        if len(uniques) == 0:
            raise DataError("sample has no unique sequences", sample)
        for i, uniq in enumerate(uniques):
            uniq.validate(sample, i)

        cfg = self.config
        state = _SampleState(sample, uniques, self.error_model, cfg)
        self.error_model.check_coverage(np.unique(np.concatenate(state.codes)))

        first = int(np.argmax(state.abundance))
        state.add_center(first)
        log_pvalues = {first: 0.0}

        rounds = 0
        converged = False
        while True:
            candidate = self._best_candidate(state)
            if candidate is None or not self.policy.admits(candidate[1], state.n):
                converged = True
                break
            if rounds >= cfg.max_partition_iterations:
                break
            index, log_p = candidate
            state.add_center(index)
            log_pvalues[index] = log_p
            rounds += 1
            logger.debug(
                f"[{sample}] round {rounds}: promoted unique #{index} "
                f"(abundance={state.abundance[index]}, log p={log_p:.2f})"
            )
            state.reassign(cfg.max_shuffles)

        if not converged:
            warnings.warn(
                f"Sample '{sample}' stopped after {rounds} promotions with admissible "
                f"candidates remaining; returning best partition",
                NonConvergenceWarning,
            )

        result = self._emit(state, log_pvalues, converged, rounds)
        logger.info(
            f"[{sample}] {state.n} uniques -> {len(result.variants)} variants "
            f"({result.total_abundance} reads, {rounds} promotions"
            f"{'' if converged else ', not converged'})"
        )
        return result

    def _best_candidate(self, state: _SampleState) -> Optional[Tuple[int, float]]:
        cfg = self.config
        cols = np.arange(state.n)
        totals = state.partition_abundance()
        own_lambda = state.log_lambda[state.assignment, cols]
        own_hamming = state.hamming[state.assignment, cols]
        parent_totals = totals[state.assignment]
        with np.errstate(divide="ignore"):
            log_expected = own_lambda + np.log(parent_totals.astype(float))

        eligible = (
            ~state.is_center
            & (own_hamming >= cfg.min_hamming)
            & (state.abundance >= cfg.min_fold * np.exp(log_expected))
        )
        idx = np.nonzero(eligible)[0]
        if len(idx) == 0:
            return None

        log_p = self.policy.log_pvalues(state.abundance[idx], log_expected[idx], parent_totals[idx])
        order = np.lexsort((idx, -state.abundance[idx], log_p))
        best = order[0]
        return int(idx[best]), float(log_p[best])

    def _emit(self, state: _SampleState, log_pvalues: Dict[int, float], converged: bool, rounds: int) -> SampleResult:
        counts = self.error_model.empty_counts()
        for i in range(state.n):
            center = state.centers[state.assignment[i]]
            cc, qc = state.codes[center], state.codes[i]
            pairs = compare(state.uniques[center].sequence, state.uniques[i].sequence)
            counts.add(
                cc[pairs.ref_pos], qc[pairs.query_pos],
                state.quality[i][pairs.query_pos], int(state.abundance[i]),
            )

        partitions = []
        variants = []
        for k, center in enumerate(state.centers):
            members = tuple(int(i) for i in np.nonzero(state.assignment == k)[0])
            abundance = int(state.abundance[list(members)].sum())
            partitions.append(Partition(center=center, members=members, abundance=abundance))
            variants.append(InferredVariant(
                sequence=state.uniques[center].sequence,
                abundance=abundance,
                sample=state.sample,
                center_index=center,
                members=members,
                log_pvalue=log_pvalues[center],
            ))

        return SampleResult(
            sample=state.sample,
            variants=variants,
            partitions=partitions,
            counts=counts,
            converged=converged,
            rounds=rounds,
            promotion_order=list(state.centers[1:]),
            n_uniques=state.n,
            total_abundance=int(state.abundance.sum()),
        )


def partition_sample(
    sample: str,
    uniques: Sequence[UniqueSequence],
    error_model: ErrorModel,
    config: Optional[DenoiseConfig] = None,
) -> SampleResult:
    """Convenience wrapper around PartitionEngine.run."""
    return PartitionEngine(error_model, config).run(sample, uniques)
