"""Stable SVD: numerically stabilized products and inverses of SVD factorizations."""

__version__ = "0.1.0"

from stable_svd.algorithms.factorization import (
    SVDFactorization,
    materialize,
    materialize_into,
)
from stable_svd.algorithms.providers import (
    SVDProvider,
    create_provider,
    factorize,
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
from stable_svd.errors import (
    DecompositionFailure,
    IllConditionedIntermediateError,
    InvalidArgumentError,
    StableSVDError,
)

__all__ = [
    "__version__",
    "DecompositionFailure",
    "IllConditionedIntermediateError",
    "InvalidArgumentError",
    "SVDFactorization",
    "SVDProvider",
    "StableSVDError",
    "Workspace",
    "create_provider",
    "factorize",
    "inv_one_plus",
    "inv_one_plus_into",
    "inv_one_plus_loh",
    "inv_one_plus_loh_into",
    "inv_sum_loh",
    "inv_sum_loh_into",
    "materialize",
    "materialize_into",
    "mult",
    "mult_into",
    "svd_inv_one_plus",
    "svd_inv_one_plus_loh",
    "svd_inv_sum_loh",
    "svd_mult",
]
