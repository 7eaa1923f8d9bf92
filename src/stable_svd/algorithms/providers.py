"""Pluggable SVD providers.

Every stabilized operation needs a black-box dense SVD. Providers implement
that capability behind one interface, so callers choose the algorithm per
call instead of through a global default.

Key Strategies:
- LapackSVD: scipy.linalg.svd with the 'gesdd' (divide and conquer) or
  'gesvd' (classical QR iteration) LAPACK driver
- JacobiSVD: one-sided Hestenes-Jacobi rotations, high relative accuracy
  for small singular values, real and complex input
- MpmathSVD: arbitrary precision via mpmath, for NumPy object arrays

Contract:
- decompose() returns a thin SVDFactorization with len(S) == min(m, n);
  singular values come in whatever order the algorithm produces
- non-convergence raises DecompositionFailure
- inv() inverts a square matrix over the same field and raises
  IllConditionedIntermediateError if it is singular

References:
- Demmel & Veselić, "Jacobi's method is more accurate than QR" (1992)
- Golub & Van Loan: "Matrix Computations" (4th ed.), §8.6
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import mpmath
import numpy as np
import scipy.linalg

from stable_svd.algorithms.factorization import SVDFactorization
from stable_svd.data.precision_types import as_compute_array
from stable_svd.errors import (
    DecompositionFailure,
    IllConditionedIntermediateError,
    InvalidArgumentError,
)

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, DTypeLike, NDArray

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER: str = "gesdd"
"""Provider used when none is given for non-object dtypes."""


class SVDProvider(ABC):
    """Abstract base class for SVD strategies.

    All provider implementations must:
    1. Implement decompose()
    2. Expose a registry name
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of the provider."""

    @abstractmethod
    def decompose(self, matrix: ArrayLike) -> SVDFactorization:
        """Compute the thin SVD of a dense matrix.

        Args:
            matrix: m×n matrix.

        Returns:
            SVDFactorization with k = min(m, n) singular values.

        Raises:
            DecompositionFailure: If the algorithm does not converge.
        """

    def inv(self, matrix: NDArray[Any]) -> NDArray[Any]:
        """Invert a square matrix over the provider's field."""
        try:
            return np.linalg.inv(matrix)
        except np.linalg.LinAlgError as exc:
            raise IllConditionedIntermediateError(
                "dense inverse", float("inf"), 0.0
            ) from exc

    def __call__(self, matrix: ArrayLike) -> SVDFactorization:
        return self.decompose(matrix)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


@dataclass
class LapackSVD(SVDProvider):
    """SVD through scipy's LAPACK bindings.

    Args:
        driver: 'gesdd' (divide and conquer, default) or 'gesvd' (classical).
        overwrite_input: Allow LAPACK to destroy the input matrix when it is
            already in a compute dtype.
        check_finite: Reject inputs containing inf/nan before calling LAPACK.
    """

    driver: str = "gesdd"
    overwrite_input: bool = False
    check_finite: bool = True

    def __post_init__(self) -> None:
        if self.driver not in ("gesdd", "gesvd"):
            msg = f"Unknown LAPACK driver: {self.driver}. Valid: ['gesdd', 'gesvd']"
            raise InvalidArgumentError(msg)

    @property
    def name(self) -> str:
        return self.driver

    def decompose(self, matrix: ArrayLike) -> SVDFactorization:
        a = _as_numeric(matrix, self.name)
        try:
            U, S, Vt = scipy.linalg.svd(
                a,
                full_matrices=False,
                overwrite_a=self.overwrite_input,
                check_finite=self.check_finite,
                lapack_driver=self.driver,
            )
        except (np.linalg.LinAlgError, ValueError) as exc:
            msg = f"{self.driver} failed on {a.shape} {a.dtype} matrix: {exc}"
            raise DecompositionFailure(msg, provider=self.name) from exc
        return SVDFactorization(U, S, Vt)

    def __repr__(self) -> str:
        return f"LapackSVD(driver={self.driver!r})"


@dataclass
class JacobiSVD(SVDProvider):
    """One-sided Jacobi SVD.

    Orthogonalizes the columns of A by plane rotations applied from the
    right, accumulating the rotations in V. On convergence the column norms
    are the singular values and the normalized columns form U. Singular
    values are returned in column order, not sorted.

    Args:
        max_sweeps: Sweeps over all column pairs before giving up.
        tol: Orthogonality threshold |a_p^H a_q| <= tol ||a_p|| ||a_q||
            (default: m * machine epsilon).
    """

    max_sweeps: int = 60
    tol: float | None = None

    @property
    def name(self) -> str:
        return "jacobi"

    def decompose(self, matrix: ArrayLike) -> SVDFactorization:
        a = _as_numeric(matrix, self.name)
        if not np.all(np.isfinite(a)):
            msg = f"jacobi got non-finite entries in {a.shape} matrix"
            raise DecompositionFailure(msg, provider=self.name)

        m, n = a.shape
        if m < n:
            F = self.decompose(a.conj().T)
            return SVDFactorization(F.Vt.conj().T, F.S, F.U.conj().T)

        work = np.array(a, copy=True)
        V = np.eye(n, dtype=a.dtype)
        tol = self.tol if self.tol is not None else m * float(np.finfo(a.dtype).eps)

        for sweep in range(self.max_sweeps):
            rotated = False
            for p in range(n - 1):
                for q in range(p + 1, n):
                    if _rotate_pair(work, V, p, q, tol):
                        rotated = True
            if not rotated:
                logger.debug("jacobi converged after %d sweeps (n=%d)", sweep + 1, n)
                break
        else:
            msg = f"jacobi did not converge in {self.max_sweeps} sweeps"
            raise DecompositionFailure(msg, provider=self.name)

        S = np.linalg.norm(work, axis=0)
        U = np.divide(work, S, out=np.zeros_like(work), where=S > 0)
        return SVDFactorization(U, S, V.conj().T)

    def __repr__(self) -> str:
        return f"JacobiSVD(max_sweeps={self.max_sweeps})"


def _rotate_pair(
    work: NDArray[Any], V: NDArray[Any], p: int, q: int, tol: float
) -> bool:
    """Orthogonalize columns p and q in place. Returns False if already orthogonal."""
    ap = work[:, p]
    aq = work[:, q]
    alpha = float(np.vdot(ap, ap).real)
    beta = float(np.vdot(aq, aq).real)
    gamma = np.vdot(ap, aq)
    g = float(abs(gamma))

    if g == 0.0 or g <= tol * math.sqrt(alpha * beta):
        return False

    # Rotate a complex pair into a real one first: phase-shift column q so
    # that a_p^H a_q = |gamma|, then apply the real Jacobi rotation.
    phase = np.conj(gamma / g)
    zeta = (beta - alpha) / (2.0 * g)
    t = math.copysign(1.0, zeta) / (abs(zeta) + math.sqrt(1.0 + zeta * zeta))
    c = 1.0 / math.sqrt(1.0 + t * t)
    s = c * t

    for cols in (work, V):
        xp = cols[:, p].copy()
        xq = cols[:, q] * phase
        cols[:, p] = c * xp - s * xq
        cols[:, q] = s * xp + c * xq

    return True


@dataclass
class MpmathSVD(SVDProvider):
    """Arbitrary precision SVD via mpmath.

    Works on NumPy object arrays of mpf/mpc (plain floats are converted).
    Results are object arrays.

    Args:
        dps: Decimal digits to compute with (default: current mpmath.mp.dps).
    """

    dps: int | None = None

    @property
    def name(self) -> str:
        return "mpmath"

    def decompose(self, matrix: ArrayLike) -> SVDFactorization:
        a = np.asarray(matrix)
        if a.ndim != 2:
            msg = f"mpmath expects a 2-D matrix, got shape {a.shape}"
            raise InvalidArgumentError(msg)

        with mpmath.workdps(self.dps or mpmath.mp.dps):
            try:
                U, S, Vt = mpmath.svd(
                    mpmath.matrix(a.tolist()), full_matrices=False, compute_uv=True
                )
            except (RuntimeError, ValueError, ZeroDivisionError) as exc:
                msg = f"mpmath svd failed on {a.shape} matrix: {exc}"
                raise DecompositionFailure(msg, provider=self.name) from exc

        return SVDFactorization(
            _from_mp(U),
            np.array([S[i] for i in range(S.rows)], dtype=object),
            _from_mp(Vt),
        )

    def inv(self, matrix: NDArray[Any]) -> NDArray[Any]:
        with mpmath.workdps(self.dps or mpmath.mp.dps):
            try:
                inverse = mpmath.inverse(mpmath.matrix(np.asarray(matrix).tolist()))
            except ZeroDivisionError as exc:
                raise IllConditionedIntermediateError(
                    "dense inverse", float("inf"), 0.0
                ) from exc
        return _from_mp(inverse)

    def __repr__(self) -> str:
        return f"MpmathSVD(dps={self.dps})"


def _from_mp(M: Any) -> NDArray[Any]:
    return np.array(M.tolist(), dtype=object).reshape(M.rows, M.cols)


def _as_numeric(matrix: ArrayLike, name: str) -> NDArray[Any]:
    a = as_compute_array(matrix)
    if a.dtype == np.dtype(object):
        msg = f"Provider '{name}' cannot decompose object arrays; use 'mpmath'"
        raise InvalidArgumentError(msg)
    if a.ndim != 2:
        msg = f"Provider '{name}' expects a 2-D matrix, got shape {a.shape}"
        raise InvalidArgumentError(msg)
    return a


# =============================================================================
# REGISTRY
# =============================================================================

_PROVIDERS: dict[str, tuple[type[SVDProvider], dict[str, Any]]] = {
    "gesdd": (LapackSVD, {"driver": "gesdd"}),
    "gesvd": (LapackSVD, {"driver": "gesvd"}),
    "jacobi": (JacobiSVD, {}),
    "mpmath": (MpmathSVD, {}),
}


def create_provider(provider_type: str = DEFAULT_PROVIDER, **kwargs: Any) -> SVDProvider:
    """Factory function to create SVD providers.

    Args:
        provider_type: One of 'gesdd', 'gesvd', 'jacobi', 'mpmath'.
        **kwargs: Provider-specific parameters.

    Example:
        >>> provider = create_provider('gesvd')
        >>> provider = create_provider('mpmath', dps=50)
    """
    if provider_type not in _PROVIDERS:
        msg = f"Unknown provider: {provider_type}. Available: {list(_PROVIDERS.keys())}"
        raise InvalidArgumentError(msg)

    cls, defaults = _PROVIDERS[provider_type]
    return cls(**{**defaults, **kwargs})


def list_providers() -> list[str]:
    """Names accepted by create_provider()."""
    return list(_PROVIDERS.keys())


def resolve_provider(
    provider: SVDProvider | str | None,
    dtype: DTypeLike | None = None,
) -> SVDProvider:
    """Turn a provider argument into a provider instance.

    ``None`` picks mpmath for object dtypes and the default LAPACK driver
    otherwise; strings go through create_provider().
    """
    if isinstance(provider, SVDProvider):
        return provider
    if provider is None:
        if dtype is not None and np.dtype(dtype) == np.dtype(object):
            return MpmathSVD()
        return create_provider(DEFAULT_PROVIDER)
    if isinstance(provider, str):
        return create_provider(provider)

    msg = f"Expected an SVDProvider, a provider name or None, got {type(provider).__name__}"
    raise InvalidArgumentError(msg)


def factorize(
    matrix: ArrayLike, provider: SVDProvider | str | None = None
) -> SVDFactorization:
    """Decompose a dense matrix into an SVDFactorization.

    Example:
        >>> F = factorize(np.eye(3))
        >>> F.rank
        3
    """
    a = np.asarray(matrix)
    return resolve_provider(provider, a.dtype).decompose(a)


__all__ = [
    "DEFAULT_PROVIDER",
    "JacobiSVD",
    "LapackSVD",
    "MpmathSVD",
    "SVDProvider",
    "create_provider",
    "factorize",
    "list_providers",
    "resolve_provider",
]
