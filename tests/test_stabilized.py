"""Tests for stabilized products and inverses of SVD factorizations."""

import mpmath
import numpy as np
import pytest

from stable_svd.algorithms.diagnostics import (
    exact_inv_one_plus,
    exact_inv_sum,
    relative_error,
)
from stable_svd.algorithms.factorization import SVDFactorization, materialize
from stable_svd.algorithms.matrices import create_factorization
from stable_svd.algorithms.providers import JacobiSVD, factorize
from stable_svd.algorithms.stabilized import (
    Workspace,
    inv_one_plus,
    inv_one_plus_into,
    inv_one_plus_loh,
    inv_one_plus_loh_into,
    inv_sum_loh,
    inv_sum_loh_into,
    mult,
    mult_into,
    svd_inv_one_plus,
    svd_inv_one_plus_loh,
    svd_inv_sum_loh,
    svd_mult,
)
from stable_svd.errors import (
    DecompositionFailure,
    IllConditionedIntermediateError,
    InvalidArgumentError,
)

to_mpf = np.frompyfunc(mpmath.mpf, 1, 1)
to_mpc = np.frompyfunc(mpmath.mpc, 1, 1)


def _dense_inv_one_plus(F: SVDFactorization) -> np.ndarray:
    return np.linalg.inv(np.eye(F.shape[0]) + materialize(F))


def _thin(shape: tuple[int, int], seed: int) -> SVDFactorization:
    rng = np.random.default_rng(seed)
    return factorize(rng.standard_normal(shape))


def _singular_pair() -> SVDFactorization:
    """Factorization of -I, for which 1 + M is exactly zero."""
    return SVDFactorization(np.eye(2), np.ones(2), -np.eye(2))


class TestSvdMult:
    """Tests for svd_mult and its dense variants."""

    @pytest.mark.parametrize("complex_", [False, True])
    def test_matches_dense_product(self, complex_: bool) -> None:
        """Product agrees with the dense product at moderate spread."""
        A = create_factorization(5, decades=4, seed=1, complex_=complex_)
        B = create_factorization(5, decades=4, seed=2, complex_=complex_)
        dense_a, dense_b = materialize(A), materialize(B)

        C = svd_mult(A, B)
        diff = np.linalg.norm(materialize(C) - dense_a @ dense_b)
        assert diff <= 1e-12 * np.linalg.norm(dense_a) * np.linalg.norm(dense_b)

    def test_result_is_svd(self) -> None:
        """The product is itself a valid thin SVD."""
        C = svd_mult(create_factorization(4, 6, seed=1), create_factorization(4, 6, seed=2))
        assert np.allclose(C.U.T @ C.U, np.eye(4), atol=1e-12)
        assert np.allclose(C.Vt @ C.Vt.T, np.eye(4), atol=1e-12)
        assert np.all(C.S >= 0)

    def test_rectangular(self) -> None:
        """6×4 times 4×3 gives a 6×3 factorization of rank 3."""
        A = _thin((6, 4), seed=3)
        B = _thin((4, 3), seed=4)
        C = svd_mult(A, B)
        assert C.shape == (6, 3)
        assert C.rank == 3
        assert np.allclose(materialize(C), materialize(A) @ materialize(B), atol=1e-12)

    def test_incompatible_shapes(self) -> None:
        """Inner dimensions must match."""
        with pytest.raises(InvalidArgumentError, match="Cannot multiply"):
            svd_mult(_thin((6, 4), seed=3), _thin((5, 3), seed=4))

    def test_mult_dense(self) -> None:
        """mult returns the dense product."""
        A = create_factorization(3, 2, seed=1)
        B = create_factorization(3, 2, seed=2)
        assert np.allclose(mult(A, B), materialize(A) @ materialize(B))

    def test_mult_into(self) -> None:
        """mult_into writes into and returns the caller buffer."""
        A = _thin((6, 4), seed=3)
        B = _thin((4, 3), seed=4)
        out = np.empty((6, 3))
        assert mult_into(out, A, B) is out
        assert np.allclose(out, mult(A, B))

    def test_mult_into_aliasing(self) -> None:
        """out may not alias either input."""
        A = create_factorization(3, 2, seed=1)
        B = create_factorization(3, 2, seed=2)
        with pytest.raises(InvalidArgumentError, match="aliases"):
            mult_into(B.Vt, A, B)

    def test_inputs_not_modified(self) -> None:
        """No input array is written to."""
        A = create_factorization(4, 8, seed=1)
        B = create_factorization(4, 8, seed=2)
        before = [a.copy() for a in (*A, *B)]
        svd_mult(A, B)
        for original, current in zip(before, (*A, *B), strict=True):
            assert np.array_equal(original, current)

    def test_single_precision(self) -> None:
        """float32 factorizations multiply in float32."""
        A = create_factorization(4, decades=2, seed=1, dtype=np.float32)
        B = create_factorization(4, decades=2, seed=2, dtype=np.float32)
        C = svd_mult(A, B)
        assert C.dtype == np.float32
        expected = materialize(A).astype(np.float64) @ materialize(B).astype(np.float64)
        assert relative_error(materialize(C), expected) < 1e-5

    @pytest.mark.parametrize("complex_", [False, True])
    def test_mpmath_object_arrays(self, complex_: bool) -> None:
        """Object arrays of mpf and mpc multiply through the mpmath provider."""
        convert = to_mpc if complex_ else to_mpf
        A = create_factorization(3, decades=4, seed=1, complex_=complex_)
        B = create_factorization(3, decades=4, seed=2, complex_=complex_)
        A_mp = SVDFactorization(convert(A.U), to_mpf(A.S), convert(A.Vt))
        B_mp = SVDFactorization(convert(B.U), to_mpf(B.S), convert(B.Vt))

        with mpmath.workdps(30):
            result = materialize(svd_mult(A_mp, B_mp))

        assert result.dtype == object
        expected = materialize(A) @ materialize(B)
        assert relative_error(result.astype(np.complex128), expected) < 1e-12


class TestInvOnePlus:
    """Tests for svd_inv_one_plus and svd_inv_one_plus_loh."""

    @pytest.mark.parametrize("method", [svd_inv_one_plus, svd_inv_one_plus_loh])
    @pytest.mark.parametrize("complex_", [False, True])
    def test_matches_dense_inverse(self, method, complex_: bool) -> None:
        """Both methods agree with the dense inverse at small spread."""
        F = create_factorization(6, decades=2, complex_=complex_)
        result = materialize(method(F))
        assert relative_error(result, _dense_inv_one_plus(F)) < 1e-10

    def test_loh_more_accurate_than_plain(self) -> None:
        """Scale separation wins when S spans 16 decades."""
        F = create_factorization(6, decades=16)
        exact = exact_inv_one_plus(F)

        err_plain = relative_error(materialize(svd_inv_one_plus(F)), exact)
        err_loh = relative_error(materialize(svd_inv_one_plus_loh(F)), exact)

        assert err_loh <= err_plain
        assert err_loh < 1e-10

    def test_inverts_dense_matrix(self) -> None:
        """Factorizing G - 1 and applying [1 + M]^-1 inverts G."""
        rng = np.random.default_rng(7)
        G = rng.standard_normal((5, 5)) + 5 * np.eye(5)
        F = factorize(G - np.eye(5))
        assert np.allclose(inv_one_plus_loh(F), np.linalg.inv(G), atol=1e-12)

    @pytest.mark.parametrize(
        "method,tol", [(svd_inv_one_plus, 1e-5), (svd_inv_one_plus_loh, 1e-9)]
    )
    def test_round_trip(self, method, tol: float) -> None:
        """Applying the inverse to a factorization of G - 1 recovers M."""
        F = create_factorization(5, decades=8)
        identity = np.eye(5)

        G = materialize(method(F))
        recovered = materialize(method(factorize(G - identity))) - identity

        assert relative_error(recovered, materialize(F)) < tol

    @pytest.mark.parametrize("method", [svd_inv_one_plus, svd_inv_one_plus_loh])
    def test_ordering_independent(self, method) -> None:
        """Permuting the singular triples does not change the result."""
        F = create_factorization(5, decades=10)
        perm = np.argsort(F.S)
        G = SVDFactorization(F.U[:, perm], F.S[perm], F.Vt[perm, :])
        assert relative_error(materialize(method(G)), materialize(method(F))) < 1e-9

    @pytest.mark.parametrize("method", [svd_inv_one_plus, svd_inv_one_plus_loh])
    def test_rejects_rectangular(self, method) -> None:
        """[1 + M]^-1 needs a square factorization."""
        with pytest.raises(InvalidArgumentError, match="square full-rank"):
            method(_thin((4, 3), seed=0))

    @pytest.mark.parametrize("method", [svd_inv_one_plus, svd_inv_one_plus_loh])
    def test_singular_intermediate(self, method) -> None:
        """1 + M = 0 raises IllConditionedIntermediateError."""
        with pytest.raises(IllConditionedIntermediateError) as exc_info:
            method(_singular_pair())
        assert exc_info.value.condition == float("inf")
        assert method.__name__ in exc_info.value.stage

    def test_singular_is_linalg_error(self) -> None:
        """Callers catching LinAlgError see ill-conditioned intermediates."""
        with pytest.raises(np.linalg.LinAlgError):
            svd_inv_one_plus_loh(_singular_pair())

    def test_rcond_threshold(self) -> None:
        """A strict rcond rejects a mildly conditioned intermediate."""
        F = SVDFactorization(np.eye(2), np.array([1.0, 1e-3]), np.eye(2))
        with pytest.raises(IllConditionedIntermediateError) as exc_info:
            svd_inv_one_plus_loh(F, rcond=0.9)
        assert exc_info.value.rcond == 0.9

        result = inv_one_plus_loh(F, rcond=0.0)
        assert np.allclose(result, np.diag([0.5, 1 / 1.001]))

    @pytest.mark.parametrize("provider", ["gesdd", "gesvd", "jacobi"])
    def test_providers_agree(self, provider: str) -> None:
        """Every numeric provider gives the same answer."""
        F = create_factorization(5, decades=8)
        reference = inv_one_plus_loh(F, provider="gesdd")
        result = inv_one_plus_loh(F, provider=provider)
        assert relative_error(result, reference) < 1e-10

    def test_single_precision(self) -> None:
        """float32 factorizations stay in float32."""
        F = create_factorization(4, decades=2, dtype=np.float32)
        result = inv_one_plus_loh(F)
        assert result.dtype == np.float32
        assert relative_error(result, _dense_inv_one_plus(F)) < 1e-4

    def test_single_precision_complex(self) -> None:
        """complex64 factorizations stay in complex64."""
        F = create_factorization(4, decades=2, complex_=True, dtype=np.complex64)
        result = inv_one_plus_loh(F)
        assert result.dtype == np.complex64
        assert relative_error(result, _dense_inv_one_plus(F)) < 1e-4

    def test_mixed_precision_promotes(self) -> None:
        """complex64 combined with complex128 computes in complex128."""
        A = create_factorization(4, decades=2, complex_=True, dtype=np.complex64)
        B = create_factorization(4, decades=2, seed=1, complex_=True)
        assert inv_sum_loh(A, B).dtype == np.complex128

    @pytest.mark.parametrize("method", [svd_inv_one_plus, svd_inv_one_plus_loh])
    def test_mpmath_object_arrays(self, method) -> None:
        """Object arrays of mpf run through the mpmath provider."""
        F = create_factorization(3, decades=4)
        G = SVDFactorization(to_mpf(F.U), to_mpf(F.S), to_mpf(F.Vt))

        with mpmath.workdps(30):
            result = materialize(method(G))

        assert result.dtype == object
        assert relative_error(result.astype(np.float64), exact_inv_one_plus(F)) < 1e-12

    @pytest.mark.parametrize("method", [svd_inv_one_plus, svd_inv_one_plus_loh])
    def test_mpmath_complex_object_arrays(self, method) -> None:
        """Object arrays of mpc bases run through the mpmath provider."""
        F = create_factorization(3, decades=4, complex_=True)
        G = SVDFactorization(to_mpc(F.U), to_mpf(F.S), to_mpc(F.Vt))

        with mpmath.workdps(30):
            result = materialize(method(G))

        assert result.dtype == object
        expected = exact_inv_one_plus(F)
        assert relative_error(result.astype(np.complex128), expected) < 1e-12

    def test_inputs_not_modified(self) -> None:
        """No input array is written to."""
        F = create_factorization(4, decades=8)
        before = [a.copy() for a in F]
        svd_inv_one_plus_loh(F)
        svd_inv_one_plus(F)
        for original, current in zip(before, F, strict=True):
            assert np.array_equal(original, current)


class TestDenseInvOnePlus:
    """Tests for the dense and buffer-writing [1 + M]^-1 variants."""

    @pytest.mark.parametrize(
        "dense,into",
        [(inv_one_plus, inv_one_plus_into), (inv_one_plus_loh, inv_one_plus_loh_into)],
    )
    def test_into_matches_dense(self, dense, into) -> None:
        """The _into variant writes the dense result into out."""
        F = create_factorization(4, decades=6)
        out = np.empty((4, 4))
        assert into(out, F) is out
        assert np.allclose(out, dense(F))

    @pytest.mark.parametrize("into", [inv_one_plus_into, inv_one_plus_loh_into])
    def test_into_aliasing(self, into) -> None:
        """out may not share memory with the factorization."""
        F = create_factorization(4, decades=6)
        with pytest.raises(InvalidArgumentError, match="aliases"):
            into(F.U, F)

    @pytest.mark.parametrize("into", [inv_one_plus_into, inv_one_plus_loh_into])
    def test_into_wrong_shape(self, into) -> None:
        """out must be n×n."""
        F = create_factorization(4, decades=6)
        with pytest.raises(InvalidArgumentError, match="has shape"):
            into(np.empty((4, 3)), F)

    def test_into_complex_needs_complex_buffer(self) -> None:
        """A real buffer cannot hold a complex inverse."""
        F = create_factorization(3, decades=2, complex_=True)
        with pytest.raises(InvalidArgumentError, match="cannot hold"):
            inv_one_plus_loh_into(np.empty((3, 3)), F)


class TestWorkspace:
    """Tests for Workspace preallocation."""

    def test_contents_after_call(self) -> None:
        """Buffers hold the scale-separated intermediates."""
        F = create_factorization(5, decades=8)
        ws = Workspace.for_factorization(F)
        svd_inv_one_plus_loh(F, workspace=ws)

        Sp = 1 / np.maximum(F.S, 1)
        Sm = np.minimum(F.S, 1)
        assert np.allclose(ws.Sp, Sp)
        assert np.allclose(ws.Sm, Sm)
        assert np.allclose(ws.l, F.V * Sp)
        assert np.allclose(ws.r, F.U * Sm)

    def test_reuse_matches_fresh(self) -> None:
        """Reusing a workspace gives the same results as allocating."""
        F1 = create_factorization(4, decades=10, seed=1)
        F2 = create_factorization(4, decades=10, seed=2)
        ws = Workspace.for_factorization(F1)

        for F in (F1, F2):
            reused = materialize(svd_inv_one_plus_loh(F, workspace=ws))
            fresh = materialize(svd_inv_one_plus_loh(F))
            assert relative_error(reused, fresh) < 1e-14

    def test_dense_variant_accepts_workspace(self) -> None:
        """inv_one_plus_loh forwards the workspace."""
        F = create_factorization(4, decades=4)
        ws = Workspace.for_factorization(F)
        assert np.allclose(inv_one_plus_loh(F, workspace=ws), inv_one_plus_loh(F))

    def test_wrong_shape(self) -> None:
        """Workspace sized for another n is rejected."""
        ws = Workspace.for_factorization(create_factorization(3, 2))
        with pytest.raises(InvalidArgumentError, match="has shape"):
            svd_inv_one_plus_loh(create_factorization(4, 2), workspace=ws)

    def test_overlapping_buffers(self) -> None:
        """Sp and Sm must be distinct arrays."""
        F = create_factorization(3, 2)
        ws = Workspace.for_factorization(F)
        ws.Sm = ws.Sp
        with pytest.raises(InvalidArgumentError, match="overlap"):
            svd_inv_one_plus_loh(F, workspace=ws)

    def test_aliasing_input(self) -> None:
        """Workspace buffers may not alias the factorization."""
        F = create_factorization(3, 2)
        ws = Workspace.for_factorization(F)
        ws.r = F.U
        with pytest.raises(InvalidArgumentError, match="aliases"):
            svd_inv_one_plus_loh(F, workspace=ws)

    def test_complex_needs_complex_buffers(self) -> None:
        """Real l and r buffers cannot hold complex intermediates."""
        F = create_factorization(3, 2, complex_=True)
        ws = Workspace.for_factorization(create_factorization(3, 2))
        with pytest.raises(InvalidArgumentError, match="cannot hold"):
            svd_inv_one_plus_loh(F, workspace=ws)

    @pytest.mark.parametrize("basis_dtype", [np.float64, np.int64])
    def test_integer_factorization(self, basis_dtype) -> None:
        """Integer singular values get floating point buffers."""
        F = SVDFactorization(
            np.eye(2, dtype=basis_dtype), np.array([2, 3]), np.eye(2, dtype=basis_dtype)
        )
        ws = Workspace.for_factorization(F)
        assert ws.Sp.dtype == np.float64
        assert ws.l.dtype == np.float64

        expected = np.diag([1 / 3, 1 / 4])
        assert np.allclose(inv_one_plus_loh(F), expected)
        assert np.allclose(inv_one_plus_loh(F), inv_one_plus(F))

    def test_integer_buffers_rejected(self) -> None:
        """Integer buffers cannot hold the floating point intermediates."""
        F = SVDFactorization(np.eye(2), np.array([2, 3]), np.eye(2))
        ws = Workspace.for_factorization(F)
        ws.Sp = np.empty(2, dtype=np.int64)
        with pytest.raises(InvalidArgumentError, match="cannot hold"):
            svd_inv_one_plus_loh(F, workspace=ws)

    def test_half_precision_buffers(self) -> None:
        """float16 factorizations get float32 buffers."""
        F = create_factorization(3, decades=2, dtype=np.float16)
        ws = Workspace.for_factorization(F)
        assert ws.Sp.dtype == np.float32
        assert ws.r.dtype == np.float32


class TestInvSumLoh:
    """Tests for svd_inv_sum_loh and its dense variants."""

    @pytest.mark.parametrize("complex_", [False, True])
    def test_matches_dense_inverse(self, complex_: bool) -> None:
        """Agrees with inv(A + B) at small spread."""
        A = create_factorization(5, decades=2, seed=1, complex_=complex_)
        B = create_factorization(5, decades=2, seed=2, complex_=complex_)
        expected = np.linalg.inv(materialize(A) + materialize(B))
        assert relative_error(inv_sum_loh(A, B), expected) < 1e-10

    def test_matches_reference_at_wide_spread(self) -> None:
        """Agrees with the mpmath reference when S spans 8 decades."""
        A = create_factorization(5, decades=8, seed=1)
        B = create_factorization(5, decades=8, seed=2)
        assert relative_error(inv_sum_loh(A, B), exact_inv_sum(A, B)) < 1e-9

    def test_symmetric_in_arguments(self) -> None:
        """[A + B]^-1 equals [B + A]^-1."""
        A = create_factorization(4, decades=6, seed=1)
        B = create_factorization(4, decades=6, seed=2)
        assert relative_error(inv_sum_loh(A, B), inv_sum_loh(B, A)) < 1e-10

    def test_ordering_independent(self) -> None:
        """Permuting the singular triples of A does not change the result."""
        A = create_factorization(4, decades=8, seed=1)
        B = create_factorization(4, decades=8, seed=2)
        perm = np.argsort(A.S)
        A2 = SVDFactorization(A.U[:, perm], A.S[perm], A.Vt[perm, :])
        assert relative_error(inv_sum_loh(A2, B), inv_sum_loh(A, B)) < 1e-10

    def test_rank_mismatch(self) -> None:
        """A and B must have the same size."""
        with pytest.raises(InvalidArgumentError, match="needs equal ranks"):
            svd_inv_sum_loh(create_factorization(3, 2), create_factorization(4, 2))

    def test_rejects_rectangular(self) -> None:
        """Both inputs must be square."""
        with pytest.raises(InvalidArgumentError, match="square full-rank"):
            svd_inv_sum_loh(create_factorization(3, 2), _thin((3, 2), seed=0))

    def test_singular_sum(self) -> None:
        """A + B = 0 raises IllConditionedIntermediateError."""
        A = SVDFactorization(np.eye(2), np.ones(2), np.eye(2))
        B = SVDFactorization(np.eye(2), np.ones(2), -np.eye(2))
        with pytest.raises(IllConditionedIntermediateError, match="svd_inv_sum_loh"):
            svd_inv_sum_loh(A, B)

    def test_into(self) -> None:
        """inv_sum_loh_into writes into and returns out."""
        A = create_factorization(4, decades=6, seed=1)
        B = create_factorization(4, decades=6, seed=2)
        out = np.empty((4, 4))
        assert inv_sum_loh_into(out, A, B) is out
        assert np.allclose(out, inv_sum_loh(A, B))

    def test_into_aliasing_second_input(self) -> None:
        """out may not alias B either."""
        A = create_factorization(4, decades=6, seed=1)
        B = create_factorization(4, decades=6, seed=2)
        with pytest.raises(InvalidArgumentError, match="aliases"):
            inv_sum_loh_into(B.U, A, B)

    def test_mpmath_object_arrays(self) -> None:
        """Object arrays of mpf run through the mpmath provider."""
        A = create_factorization(3, decades=4, seed=1)
        B = create_factorization(3, decades=4, seed=2)
        A_mp = SVDFactorization(to_mpf(A.U), to_mpf(A.S), to_mpf(A.Vt))
        B_mp = SVDFactorization(to_mpf(B.U), to_mpf(B.S), to_mpf(B.Vt))

        with mpmath.workdps(30):
            result = inv_sum_loh(A_mp, B_mp)

        assert relative_error(result.astype(np.float64), exact_inv_sum(A, B)) < 1e-12

    def test_inputs_not_modified(self) -> None:
        """No input array is written to."""
        A = create_factorization(4, decades=8, seed=1)
        B = create_factorization(4, decades=8, seed=2)
        before = [a.copy() for a in (*A, *B)]
        svd_inv_sum_loh(A, B)
        for original, current in zip(before, (*A, *B), strict=True):
            assert np.array_equal(original, current)


OPERATIONS = {
    "svd_mult": lambda A, B, provider: svd_mult(A, B, provider=provider),
    "svd_inv_one_plus": lambda A, B, provider: svd_inv_one_plus(A, provider=provider),
    "svd_inv_one_plus_loh": lambda A, B, provider: svd_inv_one_plus_loh(
        A, provider=provider
    ),
    "svd_inv_sum_loh": lambda A, B, provider: svd_inv_sum_loh(A, B, provider=provider),
}


class TestDecompositionFailure:
    """Failed intermediate SVDs reach the caller unchanged."""

    @pytest.mark.parametrize("provider", ["gesdd", "jacobi"])
    @pytest.mark.parametrize("operation", list(OPERATIONS))
    def test_non_finite_input(self, operation: str, provider: str) -> None:
        """A NaN singular value fails the intermediate decomposition."""
        F = create_factorization(4, decades=4, seed=1)
        S = F.S.copy()
        S[0] = np.nan
        A = SVDFactorization(F.U, S, F.Vt)
        B = create_factorization(4, decades=4, seed=2)

        with pytest.raises(DecompositionFailure) as exc_info:
            OPERATIONS[operation](A, B, provider)
        assert exc_info.value.provider == provider

    @pytest.mark.parametrize("operation", list(OPERATIONS))
    def test_non_convergence(self, operation: str) -> None:
        """Jacobi running out of sweeps is not wrapped in another error."""
        A = create_factorization(6, decades=8, seed=1)
        B = create_factorization(6, decades=8, seed=2)

        with pytest.raises(DecompositionFailure, match="did not converge") as exc_info:
            OPERATIONS[operation](A, B, JacobiSVD(max_sweeps=1))
        assert type(exc_info.value) is DecompositionFailure
        assert exc_info.value.provider == "jacobi"
