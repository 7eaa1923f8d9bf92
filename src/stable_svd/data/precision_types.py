"""
Precision Format Definitions - Single Source of Truth

This module defines the floating-point element types the stabilized SVD
operations accept, with their machine epsilon, the dtype used for storage,
the dtype LAPACK actually computes in, and default accuracy tolerances.

Storage-only formats (FP16, BF16) are promoted to FP32 before any
decomposition, since LAPACK has no half-precision drivers. The MPMATH format
covers NumPy object arrays holding mpmath ``mpf``/``mpc`` values; its epsilon
follows the current ``mpmath.mp`` working precision.

References:
    - IEEE 754-2019 Standard for Floating-Point Arithmetic
    - Higham: "Accuracy and Stability of Numerical Algorithms" (2nd ed.)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, cast

import mpmath
import numpy as np
from numpy.typing import DTypeLike

from stable_svd.errors import InvalidArgumentError

# Try to import ml_dtypes for bfloat16 support
try:
    import ml_dtypes

    HAS_ML_DTYPES = True
except ImportError:
    ml_dtypes = None  # type: ignore[assignment,unused-ignore]
    HAS_ML_DTYPES = False


class PrecisionFormat(Enum):
    """Supported element types."""

    FP64 = "fp64"
    FP32 = "fp32"
    COMPLEX128 = "complex128"
    COMPLEX64 = "complex64"
    FP16 = "fp16"  # storage only, computed in FP32
    BF16 = "bf16"  # storage only, computed in FP32 (needs ml_dtypes)
    MPMATH = "mpmath"  # arbitrary precision object arrays


@dataclass(frozen=True, slots=True)
class PrecisionSpec:
    """Specification for an element type."""

    format: PrecisionFormat
    bits: int  # 0 for arbitrary precision
    mantissa_bits: int
    machine_epsilon: float
    is_complex: bool
    compute_format: PrecisionFormat

    @property
    def bytes(self) -> int:
        """Number of bytes per element (0 for arbitrary precision)."""
        return self.bits // 8

    @property
    def storage_only(self) -> bool:
        """True if LAPACK cannot compute in this format directly."""
        return self.compute_format is not self.format


# =============================================================================
# PRECISION SPECIFICATIONS
# =============================================================================
# Machine epsilon: 2^(-mantissa_bits). Complex formats share the epsilon of
# their real component type.

_PRECISION_SPECS: dict[PrecisionFormat, PrecisionSpec] = {
    PrecisionFormat.FP64: PrecisionSpec(
        format=PrecisionFormat.FP64,
        bits=64,
        mantissa_bits=52,
        machine_epsilon=2.22e-16,  # 2^(-52)
        is_complex=False,
        compute_format=PrecisionFormat.FP64,
    ),
    PrecisionFormat.FP32: PrecisionSpec(
        format=PrecisionFormat.FP32,
        bits=32,
        mantissa_bits=23,
        machine_epsilon=1.19e-7,  # 2^(-23)
        is_complex=False,
        compute_format=PrecisionFormat.FP32,
    ),
    PrecisionFormat.COMPLEX128: PrecisionSpec(
        format=PrecisionFormat.COMPLEX128,
        bits=128,
        mantissa_bits=52,
        machine_epsilon=2.22e-16,
        is_complex=True,
        compute_format=PrecisionFormat.COMPLEX128,
    ),
    PrecisionFormat.COMPLEX64: PrecisionSpec(
        format=PrecisionFormat.COMPLEX64,
        bits=64,
        mantissa_bits=23,
        machine_epsilon=1.19e-7,
        is_complex=True,
        compute_format=PrecisionFormat.COMPLEX64,
    ),
    PrecisionFormat.FP16: PrecisionSpec(
        format=PrecisionFormat.FP16,
        bits=16,
        mantissa_bits=10,
        machine_epsilon=9.77e-4,  # 2^(-10)
        is_complex=False,
        compute_format=PrecisionFormat.FP32,
    ),
    PrecisionFormat.BF16: PrecisionSpec(
        format=PrecisionFormat.BF16,
        bits=16,
        mantissa_bits=7,
        machine_epsilon=7.81e-3,  # 2^(-7)
        is_complex=False,
        compute_format=PrecisionFormat.FP32,
    ),
    PrecisionFormat.MPMATH: PrecisionSpec(
        format=PrecisionFormat.MPMATH,
        bits=0,
        mantissa_bits=52,  # mpmath default: 53 bits including the implicit one
        machine_epsilon=2.22e-16,  # at default precision, see get_eps()
        is_complex=False,
        compute_format=PrecisionFormat.MPMATH,
    ),
}


# =============================================================================
# ACCURACY TOLERANCES
# =============================================================================
# Relative (Frobenius) error bounds used by tests and diagnostics.
# reconstruction_tol: ||U diag(S) Vt - A|| / ||A|| for a single factorization
# inverse_tol: relative error of a stabilized inverse against a well
#              conditioned dense reference

_TOLERANCES: dict[PrecisionFormat, dict[str, float]] = {
    PrecisionFormat.FP64: {"reconstruction_tol": 1e-12, "inverse_tol": 1e-8},
    PrecisionFormat.FP32: {"reconstruction_tol": 1e-4, "inverse_tol": 1e-2},
    PrecisionFormat.COMPLEX128: {"reconstruction_tol": 1e-12, "inverse_tol": 1e-8},
    PrecisionFormat.COMPLEX64: {"reconstruction_tol": 1e-4, "inverse_tol": 1e-2},
    PrecisionFormat.FP16: {"reconstruction_tol": 1e-4, "inverse_tol": 1e-2},
    PrecisionFormat.BF16: {"reconstruction_tol": 1e-4, "inverse_tol": 1e-2},
    PrecisionFormat.MPMATH: {"reconstruction_tol": 1e-12, "inverse_tol": 1e-8},
}


# =============================================================================
# PUBLIC API
# =============================================================================


def get_spec(fmt: PrecisionFormat | str) -> PrecisionSpec:
    """
    Get the full specification for a precision format.

    Args:
        fmt: Precision format (enum or string like 'fp32', 'COMPLEX128', 'bf-16')

    Returns:
        PrecisionSpec with all format properties

    Raises:
        InvalidArgumentError: If format is unknown

    Example:
        >>> get_spec("fp32").machine_epsilon
        1.19e-07
    """
    if isinstance(fmt, str):
        fmt = _parse_format(fmt)
    return _PRECISION_SPECS[fmt]


def get_dtype(fmt: PrecisionFormat | str) -> DTypeLike:
    """
    Get the numpy storage dtype for a precision format.

    Raises:
        InvalidArgumentError: If format is unknown
        ImportError: If BF16 requested but ml_dtypes not installed

    Example:
        >>> get_dtype("complex64")
        dtype('complex64')
    """
    if isinstance(fmt, str):
        fmt = _parse_format(fmt)

    dtype_map: dict[PrecisionFormat, Any] = {
        PrecisionFormat.FP64: np.float64,
        PrecisionFormat.FP32: np.float32,
        PrecisionFormat.COMPLEX128: np.complex128,
        PrecisionFormat.COMPLEX64: np.complex64,
        PrecisionFormat.FP16: np.float16,
        PrecisionFormat.MPMATH: object,
    }

    if fmt in dtype_map:
        return cast("DTypeLike", np.dtype(dtype_map[fmt]))

    if not HAS_ML_DTYPES:
        raise ImportError(
            f"Format '{fmt.value}' requires ml_dtypes package. "
            "Install with: pip install ml-dtypes"
        )

    return cast("DTypeLike", np.dtype(ml_dtypes.bfloat16))


def get_compute_dtype(fmt: PrecisionFormat | str) -> DTypeLike:
    """Get the dtype decompositions are computed in for a format."""
    return get_dtype(get_spec(fmt).compute_format)


def get_eps(fmt: PrecisionFormat | str) -> float:
    """
    Get machine epsilon for a precision format.

    For MPMATH the value tracks the current ``mpmath.mp.prec``.

    Example:
        >>> get_eps("fp64")
        2.22e-16
    """
    spec = get_spec(fmt)
    if spec.format is PrecisionFormat.MPMATH:
        return float(mpmath.mp.eps)
    return spec.machine_epsilon


def get_tolerance(
    fmt: PrecisionFormat | str,
    tolerance_type: str = "inverse_tol",
) -> float:
    """
    Get an accuracy tolerance for a precision format.

    Args:
        fmt: Precision format
        tolerance_type: One of 'reconstruction_tol', 'inverse_tol'

    Example:
        >>> get_tolerance("fp32", "reconstruction_tol")
        0.0001
    """
    if isinstance(fmt, str):
        fmt = _parse_format(fmt)

    tols = _TOLERANCES[fmt]
    if tolerance_type not in tols:
        valid = list(tols.keys())
        msg = f"Unknown tolerance type: {tolerance_type}. Valid: {valid}"
        raise InvalidArgumentError(msg)

    return tols[tolerance_type]


def format_for_dtype(dtype: DTypeLike) -> PrecisionFormat:
    """
    Map a numpy dtype to its precision format.

    Integer and boolean dtypes map to FP64, object dtype maps to MPMATH.

    Raises:
        InvalidArgumentError: For dtypes with no supported format
    """
    dtype = np.dtype(dtype)

    if dtype == np.dtype(object):
        return PrecisionFormat.MPMATH
    if dtype.kind in "biu":
        return PrecisionFormat.FP64
    if dtype.name == "bfloat16":
        return PrecisionFormat.BF16

    by_dtype = {
        np.dtype(np.float64): PrecisionFormat.FP64,
        np.dtype(np.float32): PrecisionFormat.FP32,
        np.dtype(np.complex128): PrecisionFormat.COMPLEX128,
        np.dtype(np.complex64): PrecisionFormat.COMPLEX64,
        np.dtype(np.float16): PrecisionFormat.FP16,
    }
    if dtype not in by_dtype:
        msg = f"Unsupported element type: {dtype}"
        raise InvalidArgumentError(msg)
    return by_dtype[dtype]


def get_default_rcond(dtype: DTypeLike) -> float:
    """
    Default relative singular value threshold for intermediate inversions.

    Equal to the machine epsilon of the format the dtype is computed in.
    """
    return get_eps(get_spec(format_for_dtype(dtype)).compute_format)


def as_compute_array(a: Any) -> np.ndarray:
    """
    Return ``a`` as an array in a dtype decompositions can run in.

    Storage-only formats are promoted (FP16/BF16 to FP32), integers to FP64.
    Arrays already in a compute dtype are returned without copying.
    """
    a = np.asarray(a)
    fmt = format_for_dtype(a.dtype)
    compute = np.dtype(get_compute_dtype(fmt))
    if a.dtype == compute:
        return a
    return a.astype(compute)


def list_available_formats() -> list[PrecisionFormat]:
    """
    List all precision formats available in current environment.

    BF16 is only available if ml_dtypes is installed.
    """
    available = [
        PrecisionFormat.FP64,
        PrecisionFormat.FP32,
        PrecisionFormat.COMPLEX128,
        PrecisionFormat.COMPLEX64,
        PrecisionFormat.FP16,
        PrecisionFormat.MPMATH,
    ]

    if HAS_ML_DTYPES:
        available.append(PrecisionFormat.BF16)

    return available


# =============================================================================
# INTERNAL HELPERS
# =============================================================================


def _parse_format(name: str) -> PrecisionFormat:
    """Parse a string into a PrecisionFormat enum."""
    normalized = name.lower().replace("-", "").replace("_", "").replace(" ", "")

    for fmt in PrecisionFormat:
        if fmt.value == normalized:
            return fmt

    valid = [f.value for f in PrecisionFormat]
    msg = f"Unknown precision format: '{name}'. Valid: {valid}"
    raise InvalidArgumentError(msg)
