"""Generate accuracy reports for the stabilized SVD operations.

This script sweeps the singular value spread and records, for every method
and provider, the relative error against the mpmath reference:
- [1 + M]^-1 via the dense formula, one intermediate SVD, and scale separation
- [A + B]^-1 via the dense formula and scale separation

Output JSON files are suitable for plotting error versus spread.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import numpy as np

from stable_svd import __version__
from stable_svd.algorithms.diagnostics import REFERENCE_DPS, compare_methods
from stable_svd.algorithms.providers import list_providers


def generate_spread_sweep(
    matrix_size: int = 8,
    max_decades: float = 24.0,
    steps: int = 13,
    provider: str = "gesdd",
    seed: int = 42,
    output_dir: Path | None = None,
) -> None:
    """Record method errors for spreads from 0 to ``max_decades``.

    Args:
        matrix_size: Matrix dimension.
        max_decades: Largest log10(max S / min S) in the sweep.
        steps: Number of spreads, evenly spaced.
        provider: SVD provider name.
        seed: Random seed for reproducibility.
        output_dir: Output directory (defaults to experiments/reports/).
    """
    if output_dir is None:
        output_dir = Path(__file__).parent / "reports"

    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"Sweeping spreads with {provider} (n={matrix_size}, up to {max_decades:g} decades)...")

    reports = []
    for decades in np.linspace(0.0, max_decades, steps):
        report = compare_methods(
            matrix_size, float(decades), seed=seed, provider=provider
        )
        reports.append(report.to_dict())
        print(
            f"  {decades:5.1f} decades: "
            f"naive={report.one_plus_naive:.1e} "
            f"plain={report.one_plus_plain:.1e} "
            f"loh={report.one_plus_loh:.1e}"
        )

    output = {
        "metadata": {
            "version": __version__,
            "provider": provider,
            "matrix_size": matrix_size,
            "seed": seed,
            "reference_dps": REFERENCE_DPS,
            "timestamp": datetime.now(UTC).isoformat(),
        },
        "reports": reports,
    }

    output_file = output_dir / f"spread_{provider}.json"
    with output_file.open("w") as f:
        json.dump(output, f, indent=2)

    print(f"Report saved to: {output_file}")


def main() -> None:
    """Generate spread sweeps for every numeric provider."""
    print("=" * 70)
    print("Stable SVD - Accuracy Report Generation")
    print("=" * 70)

    for provider in list_providers():
        # mpmath needs object arrays; the sweep uses float64 inputs
        if provider == "mpmath":
            continue
        generate_spread_sweep(provider=provider)

    print("\n" + "=" * 70)
    print("✓ All reports generated successfully")
    print("=" * 70)


if __name__ == "__main__":
    main()
