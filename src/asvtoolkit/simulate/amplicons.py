"""
Synthetic amplicon datasets with known true sequences.

A set of true variants is drawn around a random template, each sample gets
a multinomial allocation of reads over the variants (geometric weights, so
the variants differ in abundance), and every read is passed through a read
error model. Output is raw reads, the dereplicated uniques and the truth
table, so denoising results can be checked exactly.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from asvtoolkit.denoise.derep import dereplicate
from asvtoolkit.denoise.models import UniqueSequence
from asvtoolkit.utils.config import DEFAULT_RANDOM_SEED
from asvtoolkit.utils.fastq import encode_quality, write_fastq
from .read_errors import get_read_error_model

logger = logging.getLogger(__name__)

_BASES = np.array(list("ACGT"))


def _hamming(a: str, b: str) -> int:
    return sum(x != y for x, y in zip(a, b))


def random_variants(
    n: int,
    length: int,
    rng: np.random.Generator,
    n_differences: int = 8,
    min_distance: Optional[int] = None,
    max_attempts: int = 1000,
) -> List[str]:
    """
    Draw `n` distinct true sequences.

    The first is a uniform random template; the others carry
    `n_differences` substitutions relative to it.

    Args:
        n: Number of variants
        length: Sequence length
        rng: Random generator
        n_differences: Substitutions per variant relative to the template
        min_distance: Minimum pairwise Hamming distance (default n_differences)
        max_attempts: Draws per variant before giving up

    Returns:
        List of sequences, template first
    """
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")
    if not 0 < n_differences <= length:
        raise ValueError(f"n_differences must lie in [1, length], got {n_differences}")
    if min_distance is None:
        min_distance = n_differences

    template = rng.choice(_BASES, size=length)
    variants = ["".join(template)]
    for _ in range(n - 1):
        for _attempt in range(max_attempts):
            seq = template.copy()
            positions = rng.choice(length, size=n_differences, replace=False)
            for pos in positions:
                seq[pos] = rng.choice(_BASES[_BASES != template[pos]])
            candidate = "".join(seq)
            if all(_hamming(candidate, v) >= min_distance for v in variants):
                variants.append(candidate)
                break
        else:
            raise ValueError(
                f"Could not draw {n} variants of length {length} at distance >= {min_distance}"
            )
    return variants


@dataclass
class SimulatedSample:
    """Reads of one sample and the true read count of each variant."""
    name: str
    truth: Dict[str, int]
    reads: List[Tuple[str, List[int]]] = field(default_factory=list)

    def uniques(self) -> List[UniqueSequence]:
        return dereplicate(self.reads)

    def fastq_records(self):
        for i, (seq, quals) in enumerate(self.reads):
            yield f"{self.name}_{i}", seq, encode_quality(quals)


@dataclass
class SimulatedDataset:
    variants: List[str]
    samples: Dict[str, SimulatedSample]
    error_model: str
    error_rate: Optional[float] = None

    def uniques(self) -> Dict[str, List[UniqueSequence]]:
        """Sample name -> dereplicated unique sequences."""
        return {name: s.uniques() for name, s in self.samples.items()}

    def truth_frame(self) -> pd.DataFrame:
        rows = []
        for name, sample in self.samples.items():
            for seq, count in sample.truth.items():
                rows.append({
                    "sample": name,
                    "variant": self.variants.index(seq),
                    "sequence": seq,
                    "reads": count,
                })
        return pd.DataFrame(rows, columns=["sample", "variant", "sequence", "reads"])


def simulate_dataset(
    n_variants: int = 3,
    n_samples: int = 2,
    reads_per_sample: int = 2000,
    length: int = 150,
    error_model: str = "fixed",
    error_rate: float = 0.01,
    quality: int = 30,
    n_differences: int = 8,
    decay: float = 0.5,
    seed: Optional[int] = DEFAULT_RANDOM_SEED,
) -> SimulatedDataset:
    """
    Simulate amplicon reads for several samples sharing one set of variants.

    Args:
        n_variants: Number of true sequences
        n_samples: Number of samples
        reads_per_sample: Reads drawn per sample
        length: Amplicon length
        error_model: Read error model name (fixed, quality_aware)
        error_rate: Substitution rate for the fixed model
        quality: Quality score for the fixed model
        n_differences: Substitutions separating each variant from the template
        decay: Ratio between consecutive variant weights
        seed: Random seed

    Returns:
        SimulatedDataset
    """
    if not 0 < decay <= 1:
        raise ValueError(f"decay must lie in (0, 1], got {decay}")

    rng = np.random.default_rng(seed)
    variants = random_variants(n_variants, length, rng, n_differences=n_differences)

    kwargs = {"rng": rng}
    if error_model == "fixed":
        kwargs.update(error_rate=error_rate, quality=quality)
    model = get_read_error_model(error_model, **kwargs)

    weights = decay ** np.arange(n_variants)
    weights = weights / weights.sum()

    samples: Dict[str, SimulatedSample] = {}
    for s in range(n_samples):
        name = f"sample{s + 1}"
        allocation = rng.multinomial(reads_per_sample, weights)
        sample = SimulatedSample(
            name=name,
            truth={seq: int(k) for seq, k in zip(variants, allocation) if k > 0},
        )
        for seq, k in zip(variants, allocation):
            for _ in range(k):
                sample.reads.append(model.apply(seq))
        # shuffle so first-seen order is random
        order = rng.permutation(len(sample.reads))
        sample.reads = [sample.reads[i] for i in order]
        samples[name] = sample
        logger.debug(f"{name}: {len(sample.reads)} reads over {len(sample.truth)} variants")

    logger.info(
        f"Simulated {n_samples} samples x {reads_per_sample} reads "
        f"from {n_variants} variants ({model.name} errors)"
    )
    return SimulatedDataset(
        variants=variants,
        samples=samples,
        error_model=model.name,
        error_rate=error_rate if error_model == "fixed" else None,
    )


def run_amplicon_simulation(
    output_dir: str,
    n_variants: int = 3,
    n_samples: int = 2,
    reads_per_sample: int = 2000,
    length: int = 150,
    error_model: str = "fixed",
    error_rate: float = 0.01,
    quality: int = 30,
    seed: Optional[int] = DEFAULT_RANDOM_SEED,
    compress: bool = False,
) -> SimulatedDataset:
    """
    Simulate a dataset and write it to disk.

    Outputs:
        - <sample>.fastq[.gz]: Reads per sample
        - truth.tsv: True read count of every variant per sample
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Output: {output_dir}")

    dataset = simulate_dataset(
        n_variants=n_variants,
        n_samples=n_samples,
        reads_per_sample=reads_per_sample,
        length=length,
        error_model=error_model,
        error_rate=error_rate,
        quality=quality,
        seed=seed,
    )

    for name, sample in dataset.samples.items():
        path = write_fastq(sample.fastq_records(), output_dir / f"{name}.fastq", compress=compress)
        logger.info(f"  {name}: {len(sample.reads)} reads -> {path.name}")

    dataset.truth_frame().to_csv(output_dir / "truth.tsv", sep="\t", index=False)
    logger.info("Simulation completed successfully!")
    return dataset
