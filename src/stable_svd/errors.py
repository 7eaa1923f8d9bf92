"""Exception hierarchy for stable-svd.

All errors raised by the stabilized operations derive from StableSVDError,
and additionally from the builtin/NumPy exception a caller would already be
catching for the same kind of failure:

- InvalidArgumentError (ValueError): bad shapes, ranks, buffers or names.
  Raised before any computation starts.
- DecompositionFailure (LinAlgError): an SVD did not converge.
- IllConditionedIntermediateError (LinAlgError): a matrix that has to be
  inverted inside a stabilized operation is numerically singular.
"""

from __future__ import annotations

from numpy.linalg import LinAlgError


class StableSVDError(Exception):
    """Base class for all stable-svd errors."""


class InvalidArgumentError(StableSVDError, ValueError):
    """Precondition violation detected before computation."""


class DecompositionFailure(StableSVDError, LinAlgError):
    """An SVD provider failed to decompose its input."""

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class IllConditionedIntermediateError(StableSVDError, LinAlgError):
    """An intermediate matrix is singular or too ill-conditioned to invert.

    Attributes:
        stage: Where in the stabilized operation the matrix appeared.
        condition: Estimated 2-norm condition number (inf if singular).
    """

    def __init__(self, stage: str, condition: float, rcond: float) -> None:
        msg = (
            f"Ill-conditioned intermediate in {stage}: "
            f"condition number {condition:.3e} exceeds 1/rcond = {_inverse(rcond):.3e}"
        )
        super().__init__(msg)
        self.stage = stage
        self.condition = condition
        self.rcond = rcond


def _inverse(value: float) -> float:
    return float("inf") if value == 0 else 1.0 / value


__all__ = [
    "StableSVDError",
    "InvalidArgumentError",
    "DecompositionFailure",
    "IllConditionedIntermediateError",
]
