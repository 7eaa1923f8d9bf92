"""Accuracy diagnostics for the stabilized operations.

Dense double precision cannot serve as ground truth for matrices whose
singular values span many decades: forming U @ diag(S) @ Vt already rounds
away the small scales. References here are therefore computed with mpmath at
high working precision from the exact float factors, then rounded once.

Provides:
- naive_inv_one_plus / naive_inv_sum: the unstable dense formulas
- exact_inv_one_plus / exact_inv_sum: high precision references
- exact_inv_sum_singular_values: reference spectrum of [A + B]^-1
- relative_error, singular_value_error, inverse_residual: error metrics
- compare_methods: one-shot comparison used by the CLI and experiments
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import mpmath
import numpy as np

from stable_svd.algorithms.factorization import SVDFactorization, materialize
from stable_svd.algorithms.matrices import DEFAULT_SEED, create_factorization
from stable_svd.algorithms.providers import SVDProvider
from stable_svd.algorithms.stabilized import (
    svd_inv_one_plus,
    svd_inv_one_plus_loh,
    svd_inv_sum_loh,
)
from stable_svd.errors import IllConditionedIntermediateError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

REFERENCE_DPS: int = 60
"""Decimal digits used for mpmath references."""


# =============================================================================
# ERROR METRICS
# =============================================================================


def relative_error(approx: ArrayLike, exact: ArrayLike) -> float:
    """Frobenius norm relative error ||approx - exact|| / ||exact||."""
    approx = np.asarray(approx, dtype=np.complex128)
    exact = np.asarray(exact, dtype=np.complex128)
    return float(np.linalg.norm(approx - exact) / np.linalg.norm(exact))


def singular_value_error(computed: ArrayLike, exact: ArrayLike) -> float:
    """Largest relative error between two spectra, compared in sorted order."""
    computed = np.sort(np.asarray(computed, dtype=np.float64))[::-1]
    exact = np.sort(np.asarray(exact, dtype=np.float64))[::-1]
    return float(np.max(np.abs(computed - exact) / exact))


def inverse_residual(inverse: ArrayLike, matrix: ArrayLike) -> float:
    """Relative residual ||inverse @ matrix - I|| / ||I|| (Frobenius)."""
    inverse = np.asarray(inverse)
    identity = np.eye(inverse.shape[0])
    return float(np.linalg.norm(inverse @ np.asarray(matrix) - identity) / np.sqrt(len(identity)))


# =============================================================================
# NAIVE DENSE FORMULAS
# =============================================================================


def naive_inv_one_plus(F: SVDFactorization) -> NDArray[Any]:
    """[1 + U S Vt]^-1 by forming the dense matrix first."""
    dense = materialize(F)
    return np.linalg.inv(np.eye(dense.shape[0], dtype=dense.dtype) + dense)


def naive_inv_sum(A: SVDFactorization, B: SVDFactorization) -> NDArray[Any]:
    """[Ua Sa Vta + Ub Sb Vtb]^-1 by summing dense matrices first."""
    return np.linalg.inv(materialize(A) + materialize(B))


# =============================================================================
# HIGH PRECISION REFERENCES
# =============================================================================


def exact_inv_one_plus(F: SVDFactorization, *, dps: int = REFERENCE_DPS) -> NDArray[Any]:
    """[1 + U S Vt]^-1 evaluated in mpmath at ``dps`` digits."""
    with mpmath.workdps(dps):
        M = _to_mp(F.U) * mpmath.diag(F.S.tolist()) * _to_mp(F.Vt)
        inverse = mpmath.inverse(mpmath.eye(M.rows) + M)
        return _from_mp(inverse, _is_complex(F))


def exact_inv_sum(
    A: SVDFactorization, B: SVDFactorization, *, dps: int = REFERENCE_DPS
) -> NDArray[Any]:
    """[Ua Sa Vta + Ub Sb Vtb]^-1 evaluated in mpmath at ``dps`` digits."""
    with mpmath.workdps(dps):
        inverse = mpmath.inverse(_mp_sum(A, B))
        return _from_mp(inverse, _is_complex(A) or _is_complex(B))


def exact_inv_sum_singular_values(
    A: SVDFactorization, B: SVDFactorization, *, dps: int = REFERENCE_DPS
) -> NDArray[np.float64]:
    """Singular values of [A + B]^-1 in mpmath, descending."""
    with mpmath.workdps(dps):
        S = mpmath.svd(_mp_sum(A, B), compute_uv=False)
        values = [1 / S[i] for i in range(S.rows)]
    return np.sort(np.array([float(v) for v in values]))[::-1]


def _mp_sum(A: SVDFactorization, B: SVDFactorization) -> Any:
    dense_a = _to_mp(A.U) * mpmath.diag(A.S.tolist()) * _to_mp(A.Vt)
    dense_b = _to_mp(B.U) * mpmath.diag(B.S.tolist()) * _to_mp(B.Vt)
    return dense_a + dense_b


def _to_mp(a: NDArray[Any]) -> Any:
    return mpmath.matrix(np.asarray(a).tolist())


def _from_mp(M: Any, complex_: bool) -> NDArray[Any]:
    convert = complex if complex_ else float
    rows = [[convert(M[i, j]) for j in range(M.cols)] for i in range(M.rows)]
    return np.array(rows, dtype=np.complex128 if complex_ else np.float64)


def _is_complex(F: SVDFactorization) -> bool:
    return np.iscomplexobj(F.U) or np.iscomplexobj(F.Vt)


# =============================================================================
# METHOD COMPARISON
# =============================================================================


@dataclass(frozen=True, slots=True)
class ComparisonReport:
    """Relative errors of each method against the mpmath reference."""

    matrix_size: int
    """Dimension n of the factorizations."""

    decades: float
    """log10(max S / min S) of each input."""

    seed: int
    """Random seed used for the inputs."""

    provider: str
    """Name of the SVD provider."""

    one_plus_naive: float
    """Error of inv(1 + dense M)."""

    one_plus_plain: float
    """Error of svd_inv_one_plus."""

    one_plus_loh: float
    """Error of svd_inv_one_plus_loh."""

    sum_naive: float
    """Error of inv(dense A + dense B)."""

    sum_loh: float
    """Error of svd_inv_sum_loh."""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "matrix_size": self.matrix_size,
            "decades": self.decades,
            "seed": self.seed,
            "provider": self.provider,
            "one_plus": {
                "naive": self.one_plus_naive,
                "plain": self.one_plus_plain,
                "loh": self.one_plus_loh,
            },
            "sum": {
                "naive": self.sum_naive,
                "loh": self.sum_loh,
            },
        }


def compare_methods(
    n: int,
    decades: float,
    *,
    seed: int = DEFAULT_SEED,
    provider: SVDProvider | str | None = None,
    complex_: bool = False,
) -> ComparisonReport:
    """Measure every inverse method on random factorizations.

    Builds M, A and B with singular values spanning ``decades`` orders of
    magnitude and compares each method against the mpmath reference.

    Example:
        >>> report = compare_methods(8, decades=16)
        >>> report.one_plus_loh < report.one_plus_plain
        True
    """
    F = create_factorization(n, decades, seed=seed, complex_=complex_)
    A = create_factorization(n, decades, seed=seed + 1, complex_=complex_)
    B = create_factorization(n, decades, seed=seed + 2, complex_=complex_)

    one_plus_exact = exact_inv_one_plus(F)
    sum_exact = exact_inv_sum(A, B)

    def one_plus_error(method: Any) -> float:
        try:
            result = method(F, provider=provider)
        except IllConditionedIntermediateError as exc:
            logger.info("%s rejected input: %s", method.__name__, exc)
            return float("nan")
        return relative_error(materialize(result), one_plus_exact)

    if isinstance(provider, SVDProvider):
        provider_name = provider.name
    else:
        provider_name = provider or "gesdd"

    return ComparisonReport(
        matrix_size=n,
        decades=decades,
        seed=seed,
        provider=provider_name,
        one_plus_naive=relative_error(naive_inv_one_plus(F), one_plus_exact),
        one_plus_plain=one_plus_error(svd_inv_one_plus),
        one_plus_loh=one_plus_error(svd_inv_one_plus_loh),
        sum_naive=relative_error(naive_inv_sum(A, B), sum_exact),
        sum_loh=relative_error(
            materialize(svd_inv_sum_loh(A, B, provider=provider)), sum_exact
        ),
    )


__all__ = [
    "REFERENCE_DPS",
    "ComparisonReport",
    "compare_methods",
    "exact_inv_one_plus",
    "exact_inv_sum",
    "exact_inv_sum_singular_values",
    "inverse_residual",
    "naive_inv_one_plus",
    "naive_inv_sum",
    "relative_error",
    "singular_value_error",
]
