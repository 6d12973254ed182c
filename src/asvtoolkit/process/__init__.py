"""Result tables and reporting."""

from asvtoolkit.process.tables import make_sequence_table, summarize_result, variants_frame

__all__ = [
    "make_sequence_table",
    "summarize_result",
    "variants_frame",
]
