"""Matrix generation utilities for stabilization experiments.

This module provides functions for creating SVD factorizations with
controlled singular value spreads, the inputs on which naive dense formulas
lose precision.

Key Features:
- Reproducible generation with seed control
- Log-uniform singular values spanning a given number of decades
- Real orthogonal or complex unitary bases
- The fixed two-by-two scale-extremity pair used for regression checks

References:
- Mezzadri: "How to generate random matrices from the classical compact
  groups", Notices of the AMS (2007)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from stable_svd.algorithms.factorization import SVDFactorization

if TYPE_CHECKING:
    from numpy.typing import DTypeLike, NDArray


DEFAULT_SEED: int = 42
"""Default random seed for reproducible experiments."""


def random_unitary(
    n: int,
    *,
    complex_: bool = False,
    seed: int | None = None,
) -> NDArray[np.floating] | NDArray[np.complexfloating]:
    """Create a Haar-distributed orthogonal (or unitary) n×n matrix.

    Mathematical Construction:
        Z = standard normal (complex if requested), Z = Q R
        Q · diag(R_ii / |R_ii|) is Haar distributed

    Args:
        n: Matrix dimension.
        complex_: Return a complex unitary matrix.
        seed: Random seed for reproducibility.

    Example:
        >>> Q = random_unitary(4, seed=42)
        >>> np.allclose(Q.T @ Q, np.eye(4))
        True
    """
    return _random_unitary(np.random.default_rng(seed), n, complex_)


def create_spread_singular_values(
    n: int,
    decades: float,
    *,
    seed: int | None = None,
    shuffle: bool = True,
) -> NDArray[np.float64]:
    """Create n singular values log-uniformly spaced over ``decades``.

    Distribution: 10^(-decades/2), ..., 10^(decades/2), centered on 1 so
    that both scale separation branches are exercised.

    Args:
        n: Number of singular values.
        decades: log10(max / min).
        seed: Random seed for the shuffle.
        shuffle: Return the values in random order instead of ascending.

    Example:
        >>> S = create_spread_singular_values(5, 8, shuffle=False)
        >>> round(float(np.log10(S.max() / S.min())))
        8
    """
    if shuffle:
        return _spread(np.random.default_rng(seed), n, decades)
    return np.logspace(-decades / 2, decades / 2, n)


def create_factorization(
    n: int,
    decades: float,
    *,
    seed: int = DEFAULT_SEED,
    complex_: bool = False,
    dtype: DTypeLike | None = None,
) -> SVDFactorization:
    """Create a random square factorization with a given singular value spread.

    Args:
        n: Matrix dimension.
        decades: log10(max S / min S).
        seed: Random seed (default: 42 for reproducibility).
        complex_: Use complex unitary bases.
        dtype: Optional dtype to cast U and Vt to (S gets the matching real
            dtype).

    Returns:
        SVDFactorization with unsorted singular values.

    Example:
        >>> F = create_factorization(6, decades=12)
        >>> F.shape
        (6, 6)
    """
    rng = np.random.default_rng(seed)
    U = _random_unitary(rng, n, complex_)
    Vt = _random_unitary(rng, n, complex_)
    S = _spread(rng, n, decades)

    if dtype is not None:
        U = U.astype(dtype)
        Vt = Vt.astype(dtype)
        S = S.astype(np.finfo(dtype).dtype)

    return SVDFactorization(U, S, Vt)


def create_extreme_pair(
    scale: float = 1e8,
    *,
    rotated: bool = False,
) -> tuple[SVDFactorization, SVDFactorization]:
    """Create the scale-extremity pair A, B of 2×2 factorizations.

    A has singular values [scale, 1], B has [1, 1/scale].

    Args:
        scale: Largest singular value of A.
        rotated: Use fixed plane rotations as bases. Otherwise the bases are
            signed permutations, which are exactly orthogonal in floating
            point.

    Example:
        >>> A, B = create_extreme_pair()
        >>> A.S, B.S
        (array([1.e+08, 1.e+00]), array([1.e+00, 1.e-08]))
    """
    if rotated:
        Ua, Vta, Ub, Vtb = (_rotation(angle) for angle in (0.3, 1.1, 2.0, 2.7))
    else:
        Ua = np.eye(2)
        Vta = np.array([[0.0, 1.0], [1.0, 0.0]])
        Ub = np.array([[0.0, -1.0], [1.0, 0.0]])
        Vtb = np.eye(2)

    A = SVDFactorization(Ua, np.array([scale, 1.0]), Vta)
    B = SVDFactorization(Ub, np.array([1.0, 1.0 / scale]), Vtb)
    return A, B


def _random_unitary(
    rng: np.random.Generator, n: int, complex_: bool
) -> NDArray[np.floating] | NDArray[np.complexfloating]:
    Z = rng.standard_normal((n, n))
    if complex_:
        Z = (Z + 1j * rng.standard_normal((n, n))) / np.sqrt(2.0)

    Q, R = np.linalg.qr(Z)
    d = np.diag(R)
    return Q * (d / np.abs(d))


def _spread(rng: np.random.Generator, n: int, decades: float) -> NDArray[np.float64]:
    return rng.permutation(np.logspace(-decades / 2, decades / 2, n))


def _rotation(angle: float) -> NDArray[np.float64]:
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s], [s, c]])


__all__ = [
    "DEFAULT_SEED",
    "create_extreme_pair",
    "create_factorization",
    "create_spread_singular_values",
    "random_unitary",
]
