"""Entry point for the decode pipeline: stages, context and orchestrator."""

from __future__ import annotations

from .aggregation import AggregationPipe, aggregate, count_number_of_index_in_cohort, estimate_expected_true_counts
from .base import BasePipe
from .context import DecodeContext, PipelineState
from .debias import (
    DebiasPipe,
    build_bin_map,
    build_design_matrix,
    convert_classes_to_array,
    map_candidate_strings_to_index,
)
from .regression import (
    LassoFit,
    RefinementPipe,
    RegressionPipe,
    get_coefficient_based_matrix,
    get_probability_for_class,
    predict_final_class_counts,
    predict_most_likely_classes,
    select_model,
)
from .service import DecoderService, build_probability_table, calculate_max_range, validate_reports

__all__ = [
    "AggregationPipe",
    "BasePipe",
    "DebiasPipe",
    "DecodeContext",
    "DecoderService",
    "LassoFit",
    "PipelineState",
    "RefinementPipe",
    "RegressionPipe",
    "aggregate",
    "build_bin_map",
    "build_design_matrix",
    "build_probability_table",
    "calculate_max_range",
    "convert_classes_to_array",
    "count_number_of_index_in_cohort",
    "estimate_expected_true_counts",
    "get_coefficient_based_matrix",
    "get_probability_for_class",
    "map_candidate_strings_to_index",
    "predict_final_class_counts",
    "predict_most_likely_classes",
    "select_model",
    "validate_reports",
]
