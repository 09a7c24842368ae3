"""Pandas DataFrame adapters for the sales metric engine."""

from .datasets import cohort_matrix_to_dataframe, dataset_to_dataframe
from .facts import dataframe_to_facts, dataframes_to_dimensions, facts_to_dataframe

__all__ = [
    # Fact provider adapters
    "dataframe_to_facts",
    "dataframes_to_dimensions",
    "facts_to_dataframe",
    # Dataset adapters
    "dataset_to_dataframe",
    "cohort_matrix_to_dataframe",
]
