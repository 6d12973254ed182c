"""Tests for the asv command line."""

import json
import logging

import pandas as pd
import pytest
from click.testing import CliRunner

from asvtoolkit import __version__
from asvtoolkit.cli import main


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logging.getLogger("asvtoolkit").handlers.clear()
    logging.getLogger("py.warnings").handlers.clear()
    logging.captureWarnings(False)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def reads_dir(tmp_path, runner):
    out = tmp_path / "reads"
    result = runner.invoke(main, [
        "sim-amplicons", "-o", str(out), "-n", "2", "-s", "2", "-r", "300", "-l", "80", "--seed", "3",
    ])
    assert result.exit_code == 0, result.output
    return out


class TestCLICommands:
    """Test CLI command availability."""

    def test_version(self, runner):
        """Test version output."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize("command,text", [
        ("denoise", "infer sequence variants"),
        ("learn-errors", "error model"),
        ("sim-amplicons", "Simulate amplicon reads"),
    ])
    def test_help(self, runner, command, text):
        """Test each command has help."""
        result = runner.invoke(main, [command, "--help"])
        assert result.exit_code == 0
        assert text in result.output


class TestDenoiseCommand:
    """Test end-to-end runs on simulated reads."""

    def test_denoise_outputs(self, runner, reads_dir, tmp_path):
        """Test denoise writes all outputs and recovers the truth."""
        out = tmp_path / "asv"
        result = runner.invoke(main, [
            "denoise",
            "-i", str(reads_dir / "sample1.fastq"),
            "-i", str(reads_dir / "sample2.fastq"),
            "-o", str(out),
        ])
        assert result.exit_code == 0, result.output
        for name in ("variants.tsv", "sequence_table.csv", "error_model.tsv", "summary.json"):
            assert (out / name).exists()

        summary = json.loads((out / "summary.json").read_text())
        assert summary["n_samples"] == 2
        assert summary["converged"] is True

        truth = pd.read_csv(reads_dir / "truth.tsv", sep="\t")
        variants = pd.read_csv(out / "variants.tsv", sep="\t")
        for sample, group in truth.groupby("sample"):
            inferred = set(variants.loc[variants["sample"] == sample, "sequence"])
            assert inferred == set(group["sequence"])

        table = pd.read_csv(out / "sequence_table.csv", index_col=0)
        assert table.sum(axis=1).tolist() == [300, 300]

    def test_learn_then_denoise(self, runner, reads_dir, tmp_path):
        """Test a learned model can be reused."""
        model_path = tmp_path / "model.tsv"
        inputs = ["-i", str(reads_dir / "sample1.fastq"), "-i", str(reads_dir / "sample2.fastq")]
        result = runner.invoke(main, ["learn-errors", *inputs, "-o", str(model_path)])
        assert result.exit_code == 0, result.output
        assert model_path.exists()

        out = tmp_path / "asv"
        result = runner.invoke(main, ["denoise", *inputs, "-o", str(out), "-e", str(model_path)])
        assert result.exit_code == 0, result.output
        summary = json.loads((out / "summary.json").read_text())
        assert summary["iterations"] == 0

    def test_config_file(self, runner, reads_dir, tmp_path):
        """Test options are read from a config file."""
        config = tmp_path / "config.yaml"
        config.write_text("max_iterations: 1\n")
        out = tmp_path / "asv"
        result = runner.invoke(main, [
            "denoise", "-i", str(reads_dir / "sample1.fastq"), "-o", str(out), "-c", str(config),
        ])
        assert result.exit_code == 0, result.output
        summary = json.loads((out / "summary.json").read_text())
        assert summary["iterations"] == 1
        assert summary["learning_converged"] is False

    def test_invalid_option_value(self, runner, reads_dir, tmp_path):
        """Test invalid values are reported."""
        result = runner.invoke(main, [
            "denoise", "-i", str(reads_dir / "sample1.fastq"), "-o", str(tmp_path / "asv"),
            "--omega-a", "5",
        ])
        assert result.exit_code != 0
        assert "omega_a" in result.output

    def test_missing_input(self, runner, tmp_path):
        """Test a missing input fails."""
        result = runner.invoke(main, [
            "denoise", "-i", str(tmp_path / "absent.fastq"), "-o", str(tmp_path / "asv"),
        ])
        assert result.exit_code != 0

    def test_uniques_table_input(self, runner, tmp_path):
        """Test a uniques table as input."""
        from asvtoolkit.denoise import UniqueSequence
        from asvtoolkit.utils.io import save_uniques_table

        x = "ACGTTGCAGGTACCATGATC" * 3
        y = "T" + x[1:20] + "C" + x[21:]
        q = (30,) * len(x)
        table = tmp_path / "uniques.tsv"
        save_uniques_table({"s1": [UniqueSequence(x, 200, q), UniqueSequence(y, 90, q)]}, table)

        out = tmp_path / "asv"
        result = runner.invoke(main, ["denoise", "-i", str(table), "-o", str(out)])
        assert result.exit_code == 0, result.output
        variants = pd.read_csv(out / "variants.tsv", sep="\t")
        assert set(variants["sequence"]) == {x, y}


class TestLogging:
    """Test log configuration from the command line."""

    def test_log_file(self, runner, reads_dir, tmp_path):
        """Test the log file receives progress and warnings."""
        log_file = tmp_path / "logs" / "run.log"
        result = runner.invoke(main, [
            "denoise", "-i", str(reads_dir / "sample1.fastq"), "-o", str(tmp_path / "asv"),
            "--max-iterations", "1", "--log-file", str(log_file), "-v",
        ])
        assert result.exit_code == 0, result.output
        text = log_file.read_text()
        assert "Iteration 1" in text
        assert "NonConvergenceWarning" in text
