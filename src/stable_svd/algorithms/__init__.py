"""Numerical algorithms module.

This module contains implementations of:
- The SVD factorization value type and materialization
- Pluggable SVD providers (LAPACK, Jacobi, mpmath)
- Stabilized products and inverses of factorizations
- Matrix generation utilities with controlled singular value spreads
- Accuracy diagnostics against high precision references
"""

from stable_svd.algorithms.diagnostics import (
    ComparisonReport,
    compare_methods,
    exact_inv_one_plus,
    exact_inv_sum,
    exact_inv_sum_singular_values,
    inverse_residual,
    naive_inv_one_plus,
    naive_inv_sum,
    relative_error,
    singular_value_error,
)
from stable_svd.algorithms.factorization import (
    SVDFactorization,
    materialize,
    materialize_into,
)
from stable_svd.algorithms.matrices import (
    DEFAULT_SEED,
    create_extreme_pair,
    create_factorization,
    create_spread_singular_values,
    random_unitary,
)
from stable_svd.algorithms.providers import (
    DEFAULT_PROVIDER,
    JacobiSVD,
    LapackSVD,
    MpmathSVD,
    SVDProvider,
    create_provider,
    factorize,
    list_providers,
    resolve_provider,
)
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

__all__ = [
    # Factorization
    "SVDFactorization",
    "materialize",
    "materialize_into",
    # Providers
    "DEFAULT_PROVIDER",
    "JacobiSVD",
    "LapackSVD",
    "MpmathSVD",
    "SVDProvider",
    "create_provider",
    "factorize",
    "list_providers",
    "resolve_provider",
    # Stabilized operations
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
    # Matrix generation
    "DEFAULT_SEED",
    "create_extreme_pair",
    "create_factorization",
    "create_spread_singular_values",
    "random_unitary",
    # Diagnostics
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
