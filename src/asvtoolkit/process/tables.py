"""Variant tables, the samples x ASV sequence table, and run summaries."""

import logging
import math

import pandas as pd

logger = logging.getLogger(__name__)

VARIANT_COLS = ["sample", "sequence", "abundance", "n_uniques", "center_index", "log_pvalue", "converged"]


def variants_frame(result) -> pd.DataFrame:
    """One row per inferred variant of every sample."""
    rows = []
    for name, sample_result in result.samples.items():
        for variant in sample_result.variants:
            rows.append({
                "sample": name,
                "sequence": variant.sequence,
                "abundance": variant.abundance,
                "n_uniques": variant.n_uniques,
                "center_index": variant.center_index,
                "log_pvalue": variant.log_pvalue,
                "converged": sample_result.converged,
            })
    df = pd.DataFrame(rows, columns=VARIANT_COLS)
    if not df.empty:
        df = df.sort_values(["sample", "abundance", "center_index"], ascending=[True, False, True])
        df = df.reset_index(drop=True)
    return df


def make_sequence_table(result) -> pd.DataFrame:
    """
    Abundance matrix with samples as rows and variant sequences as columns.

    Columns are ordered by total abundance across samples (descending),
    then by sequence; samples keep their input order.
    """
    df = variants_frame(result)
    samples = list(result.samples.keys())
    if df.empty:
        return pd.DataFrame(index=pd.Index(samples, name="sample"))

    table = df.pivot_table(index="sample", columns="sequence", values="abundance", aggfunc="sum", fill_value=0)
    totals = table.sum(axis=0)
    order = sorted(table.columns, key=lambda seq: (-totals[seq], seq))
    table = table.reindex(index=samples, columns=order, fill_value=0).astype(int)
    table.index.name = "sample"
    table.columns.name = None
    return table


def _finite(value):
    if value is None or (isinstance(value, float) and not math.isfinite(value)):
        return None
    return value


def summarize_result(result) -> dict:
    """JSON-serialisable summary of a denoising run."""
    samples = {}
    for name, res in result.samples.items():
        samples[name] = {
            "n_uniques": res.n_uniques,
            "n_reads": res.total_abundance,
            "n_variants": len(res.variants),
            "rounds": res.rounds,
            "converged": res.converged,
            "substitutions": res.counts.substitutions,
        }
    return {
        "converged": result.converged,
        "learning_converged": result.learning_converged,
        "iterations": result.iterations,
        "n_samples": len(result.samples),
        "n_failed": len(result.failures),
        "failures": dict(result.failures),
        "n_variants": sum(len(r.variants) for r in result.samples.values()),
        "mean_error_rate": _finite(result.error_model.mean_error_rate()),
        "history": [
            {
                "iteration": rec.iteration,
                "max_change": _finite(rec.max_change),
                "n_samples": rec.n_samples,
                "n_failed": rec.n_failed,
                "n_variants": rec.n_variants,
                "n_substitutions": rec.n_substitutions,
                "mean_error_rate": _finite(rec.mean_error_rate),
            }
            for rec in result.history
        ],
        "samples": samples,
    }
