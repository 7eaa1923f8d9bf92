"""Data module for precision formats and tolerances."""

from stable_svd.data.precision_types import (
    HAS_ML_DTYPES,
    PrecisionFormat,
    PrecisionSpec,
    as_compute_array,
    format_for_dtype,
    get_compute_dtype,
    get_default_rcond,
    get_dtype,
    get_eps,
    get_spec,
    get_tolerance,
    list_available_formats,
)

__all__ = [
    "HAS_ML_DTYPES",
    "PrecisionFormat",
    "PrecisionSpec",
    "as_compute_array",
    "format_for_dtype",
    "get_compute_dtype",
    "get_default_rcond",
    "get_dtype",
    "get_eps",
    "get_spec",
    "get_tolerance",
    "list_available_formats",
]
