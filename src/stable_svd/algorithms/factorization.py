"""SVD factorization value type and materialization.

An SVDFactorization holds the thin decomposition

    A = U @ diag(S) @ Vt

with orthonormal columns in U, orthonormal rows in Vt and nonnegative S.
Nothing here assumes S is sorted.

Factorizations are immutable by convention: the arrays are stored without
copying, and no operation in this package writes into an input
factorization's arrays.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from stable_svd.errors import InvalidArgumentError

if TYPE_CHECKING:
    from numpy.typing import DTypeLike, NDArray


@dataclass(frozen=True, slots=True)
class SVDFactorization:
    """Thin singular value decomposition ``U @ diag(S) @ Vt``.

    Supports tuple unpacking, ``U, S, Vt = F``. There is no
    ``@`` operator; use ``svd_mult`` for products.

    Raises:
        InvalidArgumentError: If the three factors have inconsistent shapes.
    """

    U: NDArray[Any]
    """m×k matrix with orthonormal columns."""

    S: NDArray[Any]
    """Length-k vector of nonnegative singular values (any order)."""

    Vt: NDArray[Any]
    """k×n matrix with orthonormal rows (conjugate transpose of V)."""

    def __post_init__(self) -> None:
        if self.U.ndim != 2 or self.Vt.ndim != 2 or self.S.ndim != 1:
            msg = (
                "Expected U and Vt 2-D and S 1-D, got "
                f"U.ndim={self.U.ndim}, S.ndim={self.S.ndim}, Vt.ndim={self.Vt.ndim}"
            )
            raise InvalidArgumentError(msg)

        k = self.S.shape[0]
        if self.U.shape[1] != k or self.Vt.shape[0] != k:
            msg = (
                f"Inconsistent factor shapes: U{self.U.shape}, S({k},), "
                f"Vt{self.Vt.shape}"
            )
            raise InvalidArgumentError(msg)

    def __iter__(self) -> Iterator[NDArray[Any]]:
        return iter((self.U, self.S, self.Vt))

    @property
    def V(self) -> NDArray[Any]:
        """Right singular vectors as columns (conjugate transpose of Vt)."""
        return self.Vt.conj().T

    @property
    def shape(self) -> tuple[int, int]:
        """Shape (m, n) of the represented matrix."""
        return (self.U.shape[0], self.Vt.shape[1])

    @property
    def rank(self) -> int:
        """Number of singular values k."""
        return self.S.shape[0]

    @property
    def dtype(self) -> np.dtype:
        """Element type of the represented matrix."""
        return np.result_type(self.U, self.S, self.Vt)

    @property
    def is_square(self) -> bool:
        """True if the represented matrix and its core are both k×k."""
        m, n = self.shape
        return m == n == self.rank


def materialize(F: SVDFactorization) -> NDArray[Any]:
    """Collapse a factorization to the dense matrix ``U @ diag(S) @ Vt``.

    Example:
        >>> U, S, Vt = np.linalg.svd(A, full_matrices=False)
        >>> np.allclose(materialize(SVDFactorization(U, S, Vt)), A)
        True
    """
    return (F.U * F.S) @ F.Vt


def materialize_into(out: NDArray[Any], F: SVDFactorization) -> NDArray[Any]:
    """Write ``U @ diag(S) @ Vt`` into ``out`` and return it.

    Args:
        out: Caller-owned m×n buffer. Must not share memory with F.
        F: Factorization to collapse.

    Raises:
        InvalidArgumentError: On shape or dtype mismatch, or if ``out``
            aliases one of F's arrays.
    """
    check_buffer(out, F.shape, "out", inputs=(F.U, F.S, F.Vt), dtype=F.dtype)
    np.matmul(F.U * F.S, F.Vt, out=out)
    return out


def check_buffer(
    buffer: NDArray[Any],
    shape: tuple[int, ...],
    name: str,
    *,
    inputs: Sequence[NDArray[Any]] = (),
    dtype: DTypeLike | None = None,
) -> None:
    """Validate a caller-supplied output/scratch buffer.

    Raises:
        InvalidArgumentError: If the shape differs, the result dtype cannot
            be stored in the buffer, or the buffer shares memory with any of
            ``inputs``.
    """
    if buffer.shape != tuple(shape):
        msg = f"Buffer '{name}' has shape {buffer.shape}, expected {tuple(shape)}"
        raise InvalidArgumentError(msg)

    if dtype is not None and not np.can_cast(dtype, buffer.dtype, casting="same_kind"):
        msg = f"Buffer '{name}' of dtype {buffer.dtype} cannot hold {np.dtype(dtype)}"
        raise InvalidArgumentError(msg)

    for array in inputs:
        if np.shares_memory(buffer, array):
            msg = f"Buffer '{name}' aliases an input factorization"
            raise InvalidArgumentError(msg)


__all__ = [
    "SVDFactorization",
    "check_buffer",
    "materialize",
    "materialize_into",
]
