"""
asvToolkit: amplicon sequence variant inference.

This package provides tools for:
- Dereplication of amplicon reads into unique sequences
- Learning quality-aware substitution error models across samples
- Denoising samples into exact sequence variants (ASVs)
- Sequence tables and run summaries
- Simulation of amplicon communities with known error processes
"""

__version__ = "0.3.0"
__author__ = "asvToolkit Team"
