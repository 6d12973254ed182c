"""
asvToolkit CLI - Command Line Interface for amplicon denoising.

Usage:
    asv <command> [options]
"""

import logging

import click

from asvtoolkit import __version__
from asvtoolkit.utils.config import DEFAULT_RANDOM_SEED


def _configure_logging(verbose: bool, log_file) -> None:
    from asvtoolkit.utils.logging_utils import setup_logger
    setup_logger("asvtoolkit", log_file=log_file, level=logging.DEBUG if verbose else logging.INFO)


@click.group()
@click.version_option(version=__version__, prog_name="asvToolkit")
def main():
    """asvToolkit - Amplicon sequence variant inference.

    Use 'asv <command> --help' for detailed usage of each command.
    """
    pass


# ============================================================================
# Denoising Commands
# ============================================================================

@main.command()
@click.option("-i", "--input", "input_files", required=True, multiple=True,
              help="FASTQ file per sample (repeatable), or one uniques table (TSV/CSV)")
@click.option("-o", "--output", required=True, help="Output directory")
@click.option("-c", "--config", "config_file", help="Denoising config (YAML or JSON)")
@click.option("-e", "--error-model", "error_model_file", help="Pre-learned error model TSV (skips learning)")
@click.option("-t", "--threads", type=int, help="Number of sample workers")
@click.option("--max-iterations", type=int, help="Error-model learning iteration cap")
@click.option("--omega-a", type=float, help="Abundance p-value threshold for new variants")
@click.option("--tolerance", type=float, help="Error-model convergence tolerance")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--log-file", help="Also write the log to this file")
def denoise(input_files, output, config_file, error_model_file, threads, max_iterations,
            omega_a, tolerance, verbose, log_file):
    """Learn error rates and infer sequence variants for every sample.

    Writes variants.tsv, sequence_table.csv, error_model.tsv and
    summary.json to the output directory.
    """
    from asvtoolkit.utils.config import setup_thread_limits
    setup_thread_limits(1)
    _configure_logging(verbose, log_file)

    from asvtoolkit.denoise.exceptions import DenoiseError
    from asvtoolkit.pipeline import run_denoise
    try:
        run_denoise(
            list(input_files),
            output,
            config_file=config_file,
            error_model_file=error_model_file,
            threads=threads,
            max_iterations=max_iterations,
            omega_a=omega_a,
            tolerance=tolerance,
        )
    except (DenoiseError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


@main.command("learn-errors")
@click.option("-i", "--input", "input_files", required=True, multiple=True,
              help="FASTQ file per sample (repeatable), or one uniques table (TSV/CSV)")
@click.option("-o", "--output", required=True, help="Output error model TSV")
@click.option("-c", "--config", "config_file", help="Denoising config (YAML or JSON)")
@click.option("-t", "--threads", type=int, help="Number of sample workers")
@click.option("--max-iterations", type=int, help="Learning iteration cap")
@click.option("--tolerance", type=float, help="Convergence tolerance")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--log-file", help="Also write the log to this file")
def learn_errors(input_files, output, config_file, threads, max_iterations, tolerance, verbose, log_file):
    """Learn a quality-aware substitution error model from all samples."""
    from asvtoolkit.utils.config import setup_thread_limits
    setup_thread_limits(1)
    _configure_logging(verbose, log_file)

    from asvtoolkit.denoise.exceptions import DenoiseError
    from asvtoolkit.pipeline import run_error_learning
    try:
        run_error_learning(
            list(input_files),
            output,
            config_file=config_file,
            threads=threads,
            max_iterations=max_iterations,
            tolerance=tolerance,
        )
    except (DenoiseError, FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


# ============================================================================
# Simulation Commands
# ============================================================================

@main.command("sim-amplicons")
@click.option("-o", "--output", required=True, help="Output directory")
@click.option("-n", "--num-variants", default=3, help="Number of true sequences")
@click.option("-s", "--num-samples", default=2, help="Number of samples")
@click.option("-r", "--reads", default=2000, help="Reads per sample")
@click.option("-l", "--length", default=150, help="Amplicon length")
@click.option("--error-model", type=click.Choice(["fixed", "quality_aware"]), default="fixed",
              help="Read error model")
@click.option("--error-rate", default=0.01, help="Substitution rate (fixed model)")
@click.option("--quality", default=30, help="Quality score (fixed model)")
@click.option("--seed", default=DEFAULT_RANDOM_SEED, help="Random seed")
@click.option("--compress", is_flag=True, help="Compress output files (gzip)")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def sim_amplicons(output, num_variants, num_samples, reads, length, error_model,
                  error_rate, quality, seed, compress, verbose):
    """Simulate amplicon reads from known variants with a known error process.

    Writes one FASTQ per sample and truth.tsv.
    """
    _configure_logging(verbose, None)
    from asvtoolkit.simulate.amplicons import run_amplicon_simulation
    run_amplicon_simulation(
        output,
        n_variants=num_variants,
        n_samples=num_samples,
        reads_per_sample=reads,
        length=length,
        error_model=error_model,
        error_rate=error_rate,
        quality=quality,
        seed=seed,
        compress=compress,
    )


if __name__ == "__main__":
    main()
