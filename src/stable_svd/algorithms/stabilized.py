"""Stabilized products and inverses of SVD factorizations.

Implements the operations used in determinant Monte Carlo codes to combine
matrices whose singular values span many orders of magnitude:

- svd_mult: U_a S_a Vt_a · U_b S_b Vt_b through one k×k re-decomposition
- svd_inv_one_plus: [1 + U S Vt]^-1 through one intermediate SVD
- svd_inv_one_plus_loh: same, with scales above and below unity separated
  first and two intermediate SVDs
- svd_inv_sum_loh: [U_a S_a Vt_a + U_b S_b Vt_b]^-1 with scale separation
  and two intermediate SVDs

Each returns an SVDFactorization; the dense variants (inv_one_plus,
inv_one_plus_into, ...) materialize that result once, allocating or writing
into a caller buffer.

Scale separation splits every singular value into S+ = max(S, 1) and
S- = min(S, 1), so no single addition ever combines terms more than a factor
of one apart in scale. The split compares against 1 only and never relies on
S being sorted.

References:
- Loh & Gubernatis, "Stable numerical simulations of models of interacting
  electrons in condensed-matter physics" (1992)
- Bauer, "Stable numerical simulations in DQMC", SciPost Phys. Core (2020)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from stable_svd.algorithms.factorization import (
    SVDFactorization,
    check_buffer,
    materialize,
    materialize_into,
)
from stable_svd.algorithms.providers import SVDProvider, resolve_provider
from stable_svd.data.precision_types import (
    format_for_dtype,
    get_compute_dtype,
    get_default_rcond,
)
from stable_svd.errors import IllConditionedIntermediateError, InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

ProviderLike = SVDProvider | str | None


@dataclass(slots=True)
class Workspace:
    """Caller-owned scratch buffers for svd_inv_one_plus_loh.

    Reusing one workspace across many calls on same-shaped factorizations
    avoids reallocating the four intermediates. All buffers are overwritten
    by every call. After a call:

    - Sp holds 1 / max(S, 1)
    - Sm holds min(S, 1)
    - l holds V · diag(Sp)
    - r holds U · diag(Sm)

    Buffers must not share memory with each other or with the factorization
    passed to the call.
    """

    Sp: NDArray[Any]
    Sm: NDArray[Any]
    l: NDArray[Any]  # noqa: E741
    r: NDArray[Any]

    @classmethod
    def for_factorization(cls, F: SVDFactorization) -> Workspace:
        """Allocate buffers matching F's shapes in its compute dtypes."""
        scale_dtype, basis_dtype = _scratch_dtypes(F)
        k = F.rank
        return cls(
            Sp=np.empty(k, dtype=scale_dtype),
            Sm=np.empty(k, dtype=scale_dtype),
            l=np.empty((F.Vt.shape[1], k), dtype=basis_dtype),
            r=np.empty(F.U.shape, dtype=basis_dtype),
        )

    def validate(self, F: SVDFactorization) -> None:
        """Check shapes, dtypes and aliasing against F.

        Raises:
            InvalidArgumentError: On any mismatch or overlap.
        """
        scale_dtype, basis_dtype = _scratch_dtypes(F)
        inputs = (F.U, F.S, F.Vt)
        k = F.rank
        check_buffer(self.Sp, (k,), "Sp", inputs=inputs, dtype=scale_dtype)
        check_buffer(self.Sm, (k,), "Sm", inputs=inputs, dtype=scale_dtype)
        check_buffer(self.l, (F.Vt.shape[1], k), "l", inputs=inputs, dtype=basis_dtype)
        check_buffer(self.r, F.U.shape, "r", inputs=inputs, dtype=basis_dtype)

        buffers = {"Sp": self.Sp, "Sm": self.Sm, "l": self.l, "r": self.r}
        names = list(buffers)
        for i, first in enumerate(names):
            for second in names[i + 1 :]:
                if np.shares_memory(buffers[first], buffers[second]):
                    msg = f"Workspace buffers '{first}' and '{second}' overlap"
                    raise InvalidArgumentError(msg)


# =============================================================================
# FACTORIZATION-PRODUCING OPERATIONS
# =============================================================================


def svd_mult(
    A: SVDFactorization,
    B: SVDFactorization,
    *,
    provider: ProviderLike = None,
) -> SVDFactorization:
    """Stabilized multiplication of two SVD factorizations.

    Algorithm:
        1. mid = diag(Sa) · (Vta · Ub) · diag(Sb)   (ka×kb)
        2. mid = Um · diag(Sm) · Vtm                 (intermediate SVD)
        3. A·B = (Ua·Um) · diag(Sm) · (Vtm·Vtb)

    Only the diagonal factors carry the conditioning, so it is confined to a
    single small decomposition.

    Raises:
        InvalidArgumentError: If the inner dimensions differ.
        DecompositionFailure: If the intermediate SVD fails.
    """
    if A.shape[1] != B.shape[0]:
        msg = f"Cannot multiply factorizations of shape {A.shape} and {B.shape}"
        raise InvalidArgumentError(msg)

    svd = resolve_provider(provider, np.result_type(A.dtype, B.dtype))
    logger.debug("svd_mult %s x %s with %s", A.shape, B.shape, svd.name)

    mid = A.Vt @ B.U
    mid = mid * A.S[:, None]
    mid = mid * B.S[None, :]
    M = svd.decompose(mid)

    return SVDFactorization(A.U @ M.U, M.S, M.Vt @ B.Vt)


def svd_inv_one_plus(
    F: SVDFactorization,
    *,
    provider: ProviderLike = None,
    rcond: float | None = None,
) -> SVDFactorization:
    """Stabilized calculation of [1 + U S Vt]^-1 with one intermediate SVD.

    Algorithm:
        1. t = U^H · V + diag(S), so 1 + U S Vt = U · t · V^H
        2. t = u · diag(s) · v^H
        3. [1 + U S Vt]^-1 = (V·v) · diag(1/s) · (U·u)^-1

    Args:
        F: Square factorization of M.
        provider: SVD provider, name or None for the default.
        rcond: Smallest admissible min(s)/max(s) for t.

    Raises:
        InvalidArgumentError: If F is not square.
        IllConditionedIntermediateError: If t or U·u is numerically singular.
        DecompositionFailure: If the intermediate SVD fails.
    """
    _require_square(F, "svd_inv_one_plus")
    svd = resolve_provider(provider, F.dtype)
    rcond = _resolve_rcond(rcond, F)
    logger.debug("svd_inv_one_plus n=%d with %s", F.rank, svd.name)

    U, S, _ = F
    V = F.V

    t = U.conj().T @ V
    t = t + np.diag(S)
    T = svd.decompose(t)
    _check_conditioning(T.S, "svd_inv_one_plus: U^H V + diag(S)", rcond)

    return SVDFactorization(V @ T.V, 1 / T.S, svd.inv(U @ T.U))


def svd_inv_one_plus_loh(
    F: SVDFactorization,
    *,
    provider: ProviderLike = None,
    workspace: Workspace | None = None,
    rcond: float | None = None,
) -> SVDFactorization:
    """Stabilized calculation of [1 + U S Vt]^-1 with scale separation.

    Algorithm:
        1. Sp = 1/max(S, 1), Sm = min(S, 1)
        2. l = V · diag(Sp), r = U · diag(Sm)
           so that 1 + U S Vt = (l + r) · diag(max(S, 1)) · V^H
        3. m = diag(Sp) · (l + r)^-1, the inverse taken through an SVD of l + r
        4. m = u · diag(s) · v^H
        5. [1 + U S Vt]^-1 = (V·u) · diag(s) · v^H

    Args:
        F: Square factorization of M.
        provider: SVD provider, name or None for the default.
        workspace: Optional preallocated buffers, overwritten by this call.
        rcond: Smallest admissible min/max singular value ratio of l + r.

    Raises:
        InvalidArgumentError: If F is not square or the workspace does not fit.
        IllConditionedIntermediateError: If l + r is numerically singular.
        DecompositionFailure: If an intermediate SVD fails.
    """
    _require_square(F, "svd_inv_one_plus_loh")
    if workspace is None:
        workspace = Workspace.for_factorization(F)
    else:
        workspace.validate(F)

    svd = resolve_provider(provider, F.dtype)
    rcond = _resolve_rcond(rcond, F)
    logger.debug("svd_inv_one_plus_loh n=%d with %s", F.rank, svd.name)

    U, S, _ = F
    V = F.V
    Sp, Sm, l, r = workspace.Sp, workspace.Sm, workspace.l, workspace.r

    np.maximum(S, 1, out=Sp)
    np.minimum(S, 1, out=Sm)
    np.divide(1, Sp, out=Sp)  # Sp now holds the inverse
    np.multiply(V, Sp, out=l)
    np.multiply(U, Sm, out=r)

    M = svd.decompose(l + r)
    m = _inverse_of(M, "svd_inv_one_plus_loh: V/S+ + U S-", rcond)
    m = Sp[:, None] * m

    W = svd.decompose(m)
    return SVDFactorization(V @ W.U, W.S, W.Vt)


def svd_inv_sum_loh(
    A: SVDFactorization,
    B: SVDFactorization,
    *,
    provider: ProviderLike = None,
    rcond: float | None = None,
) -> SVDFactorization:
    """Stabilized calculation of [Ua Sa Vta + Ub Sb Vtb]^-1.

    Algorithm:
        1. Split Sa and Sb into S+ = max(S, 1) and S- = min(S, 1)
        2. X = diag(Sa-) · Va^H Vb · diag(1/Sb+) + diag(1/Sa+) · Ua^H Ub · diag(Sb-)
           so that A + B = Ua · diag(Sa+) · X · diag(Sb+) · Vb^H
        3. Y = diag(1/Sb+) · X^-1 · diag(1/Sa+), X inverted through its SVD
        4. Y = u · diag(s) · v^H
        5. [A + B]^-1 = (Vb·u) · diag(s) · (v^H · Ua^H)

    Raises:
        InvalidArgumentError: If A and B differ in shape or rank, or are not
            square.
        IllConditionedIntermediateError: If X is numerically singular.
        DecompositionFailure: If an intermediate SVD fails.
    """
    _require_square(A, "svd_inv_sum_loh")
    _require_square(B, "svd_inv_sum_loh")
    if A.rank != B.rank:
        msg = f"svd_inv_sum_loh needs equal ranks, got {A.rank} and {B.rank}"
        raise InvalidArgumentError(msg)

    svd = resolve_provider(provider, np.result_type(A.dtype, B.dtype))
    rcond = _resolve_rcond(rcond, A, B)
    logger.debug("svd_inv_sum_loh n=%d with %s", A.rank, svd.name)

    Ua, Sa, _ = A
    Ub, Sb, _ = B
    Va, Vb = A.V, B.V

    Sap = np.maximum(Sa, 1)
    Sam = np.minimum(Sa, 1)
    Sbp = np.maximum(Sb, 1)
    Sbm = np.minimum(Sb, 1)

    mat1 = (Va.conj().T @ Vb) * Sam[:, None] / Sbp[None, :]
    mat2 = (Ua.conj().T @ Ub) * Sbm[None, :] / Sap[:, None]
    mat1 = mat1 + mat2

    M = svd.decompose(mat1)
    mat1 = _inverse_of(M, "svd_inv_sum_loh: scaled Va^H Vb + Ua^H Ub", rcond)
    mat1 = mat1 / Sbp[:, None] / Sap[None, :]

    W = svd.decompose(mat1)
    return SVDFactorization(Vb @ W.U, W.S, W.Vt @ Ua.conj().T)


# =============================================================================
# DENSE CONVENIENCE ENTRY POINTS
# =============================================================================


def mult(A: SVDFactorization, B: SVDFactorization, **kwargs: Any) -> NDArray[Any]:
    """Dense A·B via svd_mult."""
    return materialize(svd_mult(A, B, **kwargs))


def mult_into(
    out: NDArray[Any], A: SVDFactorization, B: SVDFactorization, **kwargs: Any
) -> NDArray[Any]:
    """Write A·B into ``out`` via svd_mult."""
    return _into(out, (A.shape[0], B.shape[1]), (A, B), lambda: svd_mult(A, B, **kwargs))


def inv_one_plus(F: SVDFactorization, **kwargs: Any) -> NDArray[Any]:
    """Dense [1 + U S Vt]^-1 via svd_inv_one_plus."""
    return materialize(svd_inv_one_plus(F, **kwargs))


def inv_one_plus_into(
    out: NDArray[Any], F: SVDFactorization, **kwargs: Any
) -> NDArray[Any]:
    """Write [1 + U S Vt]^-1 into ``out`` via svd_inv_one_plus."""
    return _into(out, F.shape, (F,), lambda: svd_inv_one_plus(F, **kwargs))


def inv_one_plus_loh(F: SVDFactorization, **kwargs: Any) -> NDArray[Any]:
    """Dense [1 + U S Vt]^-1 via svd_inv_one_plus_loh.

    See svd_inv_one_plus_loh for the ``workspace`` preallocation option.
    """
    return materialize(svd_inv_one_plus_loh(F, **kwargs))


def inv_one_plus_loh_into(
    out: NDArray[Any], F: SVDFactorization, **kwargs: Any
) -> NDArray[Any]:
    """Write [1 + U S Vt]^-1 into ``out`` via svd_inv_one_plus_loh."""
    return _into(out, F.shape, (F,), lambda: svd_inv_one_plus_loh(F, **kwargs))


def inv_sum_loh(
    A: SVDFactorization, B: SVDFactorization, **kwargs: Any
) -> NDArray[Any]:
    """Dense [Ua Sa Vta + Ub Sb Vtb]^-1 via svd_inv_sum_loh."""
    return materialize(svd_inv_sum_loh(A, B, **kwargs))


def inv_sum_loh_into(
    out: NDArray[Any], A: SVDFactorization, B: SVDFactorization, **kwargs: Any
) -> NDArray[Any]:
    """Write [Ua Sa Vta + Ub Sb Vtb]^-1 into ``out`` via svd_inv_sum_loh."""
    return _into(out, A.shape, (A, B), lambda: svd_inv_sum_loh(A, B, **kwargs))


# =============================================================================
# INTERNAL HELPERS
# =============================================================================


def _into(
    out: NDArray[Any],
    shape: tuple[int, int],
    inputs: tuple[SVDFactorization, ...],
    compute: Callable[[], SVDFactorization],
) -> NDArray[Any]:
    # Validate against the inputs before doing any work.
    arrays = [array for F in inputs for array in F]
    check_buffer(out, shape, "out", inputs=arrays)
    return materialize_into(out, compute())


def _require_square(F: SVDFactorization, operation: str) -> None:
    if not F.is_square:
        msg = (
            f"{operation} needs a square full-rank factorization, got shape "
            f"{F.shape} with rank {F.rank}"
        )
        raise InvalidArgumentError(msg)


def _scratch_dtypes(F: SVDFactorization) -> tuple[np.dtype, np.dtype]:
    """Compute dtypes of the scale buffers (Sp, Sm) and basis buffers (l, r)."""
    scale = np.dtype(get_compute_dtype(format_for_dtype(F.S.dtype)))
    basis = np.result_type(F.U.dtype, F.Vt.dtype, scale)
    return scale, np.dtype(get_compute_dtype(format_for_dtype(basis)))


def _resolve_rcond(rcond: float | None, *factors: SVDFactorization) -> float:
    if rcond is not None:
        return rcond
    return max(get_default_rcond(F.dtype) for F in factors)


def _check_conditioning(s: NDArray[Any], stage: str, rcond: float) -> None:
    """Raise if min(s) <= rcond * max(s)."""
    if s.shape[0] == 0:
        return

    smax = np.max(s)
    smin = np.min(s)
    condition = float(smax / smin) if smin > 0 else float("inf")
    logger.debug("%s: condition number %.3e", stage, condition)

    if not smin > rcond * smax:
        raise IllConditionedIntermediateError(stage, condition, float(rcond))


def _inverse_of(M: SVDFactorization, stage: str, rcond: float) -> NDArray[Any]:
    """Dense inverse V · diag(1/S) · U^H of a square factorization."""
    _check_conditioning(M.S, stage, rcond)
    return (M.V / M.S[None, :]) @ M.U.conj().T


__all__ = [
    "Workspace",
    "inv_one_plus",
    "inv_one_plus_into",
    "inv_one_plus_loh",
    "inv_one_plus_loh_into",
    "inv_sum_loh",
    "inv_sum_loh_into",
    "mult",
    "mult_into",
    "svd_inv_one_plus",
    "svd_inv_one_plus_loh",
    "svd_inv_sum_loh",
    "svd_mult",
]
