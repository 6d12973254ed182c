"""
End-to-end denoising runs used by the command line.

Inputs are FASTQ files (one sample per file, named after the file) or a
dereplicated uniques table (.tsv/.csv with sample, sequence, abundance and
quality columns).
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from asvtoolkit.denoise import (
    ConfigurationError,
    DenoiseConfig,
    DenoiseResult,
    ErrorModel,
    UniqueSequence,
    denoise,
    derep_fastq_files,
    learn_errors,
)
from asvtoolkit.process.tables import make_sequence_table, summarize_result, variants_frame
from asvtoolkit.utils.config import (
    ERROR_MODEL_FILE,
    SEQUENCE_TABLE_FILE,
    SUMMARY_FILE,
    VARIANTS_FILE,
)
from asvtoolkit.utils.io import (
    create_output_dirs,
    load_error_model,
    load_uniques_table,
    save_error_model,
    save_json,
    save_table,
)
from asvtoolkit.utils.validation import validate_files_exist

logger = logging.getLogger(__name__)

_TABLE_SUFFIXES = (".tsv", ".csv", ".txt")


def load_samples(input_files: Sequence[str]) -> Dict[str, List[UniqueSequence]]:
    """Dereplicate FASTQ inputs, or read a single uniques table."""
    validate_files_exist(list(input_files))
    tables = [f for f in input_files if Path(f).suffix in _TABLE_SUFFIXES]
    if tables:
        if len(input_files) != 1:
            raise ConfigurationError("A uniques table must be the only input")
        return load_uniques_table(tables[0])
    return derep_fastq_files(input_files)


def load_config(
    config_file: Optional[str] = None,
    threads: Optional[int] = None,
    max_iterations: Optional[int] = None,
    omega_a: Optional[float] = None,
    tolerance: Optional[float] = None,
) -> DenoiseConfig:
    """Config file (YAML or JSON) overlaid with command-line values."""
    if config_file is None:
        config = DenoiseConfig()
    elif Path(config_file).suffix == ".json":
        config = DenoiseConfig.from_json(config_file)
    else:
        config = DenoiseConfig.from_yaml(config_file)
    return config.replace(
        threads=threads,
        max_iterations=max_iterations,
        omega_a=omega_a,
        convergence_tolerance=tolerance,
    )


def run_denoise(
    input_files: Sequence[str],
    output_dir: str,
    config_file: Optional[str] = None,
    error_model_file: Optional[str] = None,
    threads: Optional[int] = None,
    max_iterations: Optional[int] = None,
    omega_a: Optional[float] = None,
    tolerance: Optional[float] = None,
) -> DenoiseResult:
    """
    Learn an error model (unless one is given) and denoise every sample.

    Outputs:
        - variants.tsv: One row per inferred variant
        - sequence_table.csv: Samples x variant sequences abundance matrix
        - error_model.tsv: The final error model
        - summary.json: Convergence flags, failures and iteration history
    """
    config = load_config(config_file, threads, max_iterations, omega_a, tolerance)
    output_dir = create_output_dirs(output_dir)

    logger.info("Amplicon denoising")
    logger.info(f"Inputs: {len(input_files)} file(s)")
    logger.info(f"Output: {output_dir}")

    samples = load_samples(input_files)
    error_model: Optional[ErrorModel] = None
    if error_model_file is not None:
        error_model = load_error_model(error_model_file)

    result = denoise(samples, error_model=error_model, config=config)

    save_table(variants_frame(result), output_dir / VARIANTS_FILE)
    save_table(make_sequence_table(result), output_dir / SEQUENCE_TABLE_FILE, index=True)
    save_error_model(result.error_model, output_dir / ERROR_MODEL_FILE)
    save_json(summarize_result(result), output_dir / SUMMARY_FILE)

    for name, message in result.failures.items():
        logger.warning(f"Sample {name} failed: {message}")
    if not result.converged:
        logger.warning("Results are best-effort: denoising did not converge")
    logger.info("Denoising completed successfully!")
    return result


def run_error_learning(
    input_files: Sequence[str],
    output_file: str,
    config_file: Optional[str] = None,
    threads: Optional[int] = None,
    max_iterations: Optional[int] = None,
    tolerance: Optional[float] = None,
) -> ErrorModel:
    """Learn an error model from all inputs and write it as a TSV table."""
    config = load_config(config_file, threads, max_iterations, tolerance=tolerance)
    samples = load_samples(input_files)
    model = learn_errors(samples, config)
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    save_error_model(model, output_file)
    return model
