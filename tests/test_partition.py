"""Tests for sample inference (Partition Engine) and pairwise comparison."""

import warnings

import numpy as np
import pytest

from asvtoolkit.denoise import (
    ConfigurationError,
    DataError,
    DenoiseConfig,
    ErrorModel,
    NonConvergenceWarning,
    PartitionEngine,
    SubstitutionCounts,
    UniqueSequence,
    partition_sample,
)
from asvtoolkit.denoise.alignment import compare, global_align, parse_cigar
from asvtoolkit.denoise.models import encode_sequence
from asvtoolkit.simulate import simulate_dataset


def _random_seq(length, seed=1):
    rng = np.random.default_rng(seed)
    return "".join(rng.choice(list("ACGT"), size=length))


def _substitute(seq, pos, base):
    return seq[:pos] + base + seq[pos + 1:]


def _mutate(seq, positions):
    out = list(seq)
    for pos in positions:
        out[pos] = "A" if seq[pos] != "A" else "C"
    return "".join(out)


def _unique(seq, abundance, q=30):
    return UniqueSequence(seq, abundance, (q,) * len(seq))


def _model_without_t():
    counts = SubstitutionCounts(30)
    codes = encode_sequence("ACG")
    counts.add(codes, codes, np.full(3, 30.0), 100)
    return ErrorModel.from_counts(counts)


@pytest.fixture
def model():
    return ErrorModel.from_error_rate(0.01, max_quality=30)


@pytest.fixture(scope="module")
def simulated():
    return simulate_dataset(
        n_variants=3, n_samples=1, reads_per_sample=600, length=100, seed=7,
    )


class TestAlignment:
    """Test pairwise comparison of sequences."""

    def test_equal_length_is_ungapped(self):
        """Test equal lengths are compared column by column."""
        pairs = compare("ACGTACGT", "ACGAACGT")
        assert pairs.ref_pos.tolist() == list(range(8))
        assert pairs.n_indels == 0
        assert pairs.hamming(encode_sequence("ACGTACGT"), encode_sequence("ACGAACGT")) == 1

    def test_single_deletion(self):
        """Test a one-base deletion leaves one gap column."""
        ref, query = "ACGTTGCAACGT", "ACGTTGAACGT"
        pairs = global_align(ref, query)
        assert len(pairs) == 11
        assert pairs.n_indels == 1
        assert pairs.hamming(encode_sequence(ref), encode_sequence(query)) == 1

    def test_insertion_in_query(self):
        """Test query-only bases are gaps and keep positions in order."""
        ref, query = "ACGTACGT", "ACGTTTACGT"
        pairs = global_align(ref, query)
        assert len(pairs) == 8
        assert pairs.n_indels == 2
        assert np.all(np.diff(pairs.ref_pos) == 1)
        assert np.all(np.diff(pairs.query_pos) > 0)

    def test_large_length_difference(self):
        """Test a long length difference is aligned globally."""
        pairs = compare("ACGT" * 5, "ACGT" * 3)
        assert len(pairs) == 12
        assert pairs.n_indels == 8

    def test_lowercase_input(self):
        """Test case does not create mismatches."""
        pairs = global_align("acgtacgt", "ACGACGT")
        assert pairs.n_indels == 1
        assert pairs.hamming(encode_sequence("acgtacgt"), encode_sequence("ACGACGT")) == 1

    def test_parse_cigar(self):
        """Test extended CIGAR strings are split into runs."""
        assert parse_cigar("5=1X2I3D") == [(5, "="), (1, "X"), (2, "I"), (3, "D")]

    def test_empty_sequence(self):
        """Test empty sequences are rejected."""
        with pytest.raises(ValueError):
            global_align("", "ACGT")


class TestPartitionBasics:
    """Test small hand-built samples."""

    def test_single_sequence_sample(self, model):
        """Test a one-unique sample yields one variant and no substitutions."""
        seq = _random_seq(80)
        result = partition_sample("s1", [_unique(seq, 25)], model)
        assert result.converged
        assert len(result.variants) == 1
        assert result.variants[0].sequence == seq
        assert result.variants[0].abundance == 25
        assert result.counts.substitutions == 0
        assert result.rounds == 0

    def test_distinct_variants_are_separated(self, model):
        """Test two real variants and their error copies."""
        x = _random_seq(100)
        y = _mutate(x, [5, 20, 40, 60, 61, 80, 90, 95])
        uniques = [
            _unique(x, 1000),
            _unique(y, 300),
            _unique(_substitute(x, 10, "A" if x[10] != "A" else "G"), 2),
            _unique(_substitute(y, 50, "T" if y[50] != "T" else "C"), 1),
        ]
        result = partition_sample("s1", uniques, model)
        assert result.converged
        assert {v.sequence for v in result.variants} == {x, y}
        assignment = result.assignment()
        assert assignment[2] == assignment[0]
        assert assignment[3] == assignment[1]

    def test_error_copies_are_absorbed(self, model):
        """Test low-abundance one-substitution copies join the center."""
        x = _random_seq(100)
        uniques = [_unique(x, 500)]
        for pos in (3, 30, 70):
            uniques.append(_unique(_substitute(x, pos, "A" if x[pos] != "A" else "T"), 2))
        result = partition_sample("s1", uniques, model)
        assert len(result.variants) == 1
        assert result.variants[0].abundance == 506
        assert result.counts.substitutions == 6

    def test_rare_length_variant_is_absorbed(self, model):
        """Test a rare one-base deletion stays with its center."""
        x = _random_seq(100)
        shorter = x[:40] + x[41:]
        result = partition_sample("s1", [_unique(x, 800), _unique(shorter, 2)], model)
        assert len(result.variants) == 1
        assert result.variants[0].members == (0, 1)

    def test_abundant_deletion_variant_is_promoted(self, model):
        """Test a 3-bp deletion at about a quarter of the reads is a variant."""
        x = _random_seq(150, seed=11)
        deleted = x[:70] + x[73:]
        result = partition_sample("s1", [_unique(x, 1000), _unique(deleted, 300)], model)
        assert result.converged
        assert sorted(v.abundance for v in result.variants) == [300, 1000]
        assert {v.sequence for v in result.variants} == {x, deleted}

    def test_gap_columns_lower_lambda(self, model):
        """Test each gap column multiplies lambda by indel_probability."""
        x = _random_seq(150, seed=11)
        deleted = x[:70] + x[73:]
        uniques = [_unique(x, 1000), _unique(deleted, 10)]
        lenient = partition_sample("s1", uniques, model, DenoiseConfig(indel_probability=0.5))
        strict = partition_sample("s1", uniques, model, DenoiseConfig(indel_probability=1e-4))
        assert len(lenient.variants) == 1
        assert len(strict.variants) == 2

    def test_tie_break_prefers_lower_index(self, model):
        """Test equally significant candidates promote the lower index first."""
        x = _random_seq(100, seed=3)
        pos = 50
        others = [b for b in "ACGT" if b != x[pos]]
        y1 = _substitute(x, pos, others[0])
        y2 = _substitute(x, pos, others[1])
        for order in ([y1, y2], [y2, y1]):
            uniques = [_unique(x, 1000), _unique(order[0], 100), _unique(order[1], 100)]
            result = partition_sample("s1", uniques, model)
            assert result.promotion_order[0] == 1
            assert len(result.variants) == 3


class TestPartitionInvariants:
    """Test coverage, conservation and determinism on simulated data."""

    def test_every_unique_in_exactly_one_partition(self, simulated, model):
        """Test partitions cover every unique once."""
        sample = simulated.samples["sample1"]
        uniques = sample.uniques()
        result = partition_sample("sample1", uniques, model)
        members = sorted(i for p in result.partitions for i in p.members)
        assert members == list(range(len(uniques)))
        for p in result.partitions:
            assert p.center in p.members

    def test_abundance_is_conserved(self, simulated, model):
        """Test variant abundances sum to the sample's reads."""
        uniques = simulated.samples["sample1"].uniques()
        result = partition_sample("sample1", uniques, model)
        assert sum(v.abundance for v in result.variants) == sum(u.abundance for u in uniques)
        assert result.total_abundance == 600

    def test_true_variants_recovered(self, simulated, model):
        """Test inferred variants equal the simulated truth."""
        sample = simulated.samples["sample1"]
        result = partition_sample("sample1", sample.uniques(), model)
        assert result.converged
        assert {v.sequence for v in result.variants} == set(sample.truth)

    def test_deterministic(self, simulated, model):
        """Test repeated runs give identical results."""
        uniques = simulated.samples["sample1"].uniques()
        first = partition_sample("sample1", uniques, model)
        second = partition_sample("sample1", uniques, model)
        assert first.variants == second.variants
        assert first.promotion_order == second.promotion_order
        assert np.array_equal(first.counts.counts, second.counts.counts)

    def test_promotion_cap(self, simulated, model):
        """Test the promotion cap warns and keeps a full partition."""
        uniques = simulated.samples["sample1"].uniques()
        config = DenoiseConfig(max_partition_iterations=1)
        with pytest.warns(NonConvergenceWarning):
            result = PartitionEngine(model, config).run("sample1", uniques)
        assert not result.converged
        assert len(result.variants) == 2
        members = sorted(i for p in result.partitions for i in p.members)
        assert members == list(range(len(uniques)))


class TestPartitionErrors:
    """Test per-sample data errors and fatal model errors."""

    def test_empty_sample(self, model):
        """Test an empty sample is a DataError."""
        with pytest.raises(DataError):
            partition_sample("s1", [], model)

    def test_invalid_symbol(self, model):
        """Test non-ACGT symbols name the offending unique."""
        with pytest.raises(DataError, match="unique #1"):
            partition_sample("s1", [_unique("ACGTACGT", 10), _unique("ACGNACGT", 2)], model)

    def test_quality_length_mismatch(self, model):
        """Test quality and sequence lengths must agree."""
        bad = UniqueSequence("ACGTACGT", 3, (30,) * 7)
        with pytest.raises(DataError):
            partition_sample("s1", [bad], model)

    def test_non_positive_abundance(self, model):
        """Test zero abundance is rejected."""
        with pytest.raises(DataError):
            partition_sample("s1", [_unique("ACGT", 0)], model)

    def test_fractional_abundance(self, model):
        """Test a non-integer abundance is rejected, not truncated."""
        with pytest.raises(DataError, match="whole number"):
            partition_sample("s1", [_unique("ACGT", 10), _unique("ACGA", 2.5)], model)

    def test_model_missing_reference_base(self):
        """Test a model with no bucket for a needed base fails the run."""
        engine = PartitionEngine(_model_without_t())
        with pytest.raises(ConfigurationError, match="'T'"):
            engine.run("s1", [_unique("ACGTACGT", 10)])

    def test_model_without_unused_base(self):
        """Test a missing base row is fine when no sequence needs it."""
        result = PartitionEngine(_model_without_t()).run("s1", [_unique("ACGACG", 10)])
        assert len(result.variants) == 1

    def test_no_warning_when_converged(self, model):
        """Test a converged run emits no NonConvergenceWarning."""
        with warnings.catch_warnings():
            warnings.simplefilter("error", NonConvergenceWarning)
            partition_sample("s1", [_unique(_random_seq(50), 10)], model)
