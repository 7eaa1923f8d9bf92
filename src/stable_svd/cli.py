"""
Command-line interface for Stable SVD.

Usage:
    stable-svd info           Show supported element types
    stable-svd providers      Show registered SVD providers
    stable-svd compare        Compare naive and stabilized inverses
"""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from stable_svd import __version__
from stable_svd.algorithms.diagnostics import compare_methods
from stable_svd.algorithms.providers import DEFAULT_PROVIDER, create_provider, list_providers
from stable_svd.data import (
    PrecisionFormat,
    get_eps,
    get_spec,
    list_available_formats,
)
from stable_svd.errors import StableSVDError

app = typer.Typer(
    name="stable-svd",
    help="Numerically stabilized products and inverses of SVD factorizations",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"stable-svd version {__version__}")
        raise typer.Exit()


@app.callback()  # type: ignore[misc]
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log intermediate condition numbers."),
    ] = False,
) -> None:
    """Stable SVD - stabilized linear algebra on SVD factorizations."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()  # type: ignore[misc]
def info() -> None:
    """Display information about supported element types."""
    table = Table(title="Supported Element Types")

    table.add_column("Format", style="cyan", no_wrap=True)
    table.add_column("Bits", justify="right")
    table.add_column("Machine ε", justify="right")
    table.add_column("Computed in", justify="right")
    table.add_column("Complex", justify="center")
    table.add_column("Available", justify="center")

    available = set(list_available_formats())

    for fmt in PrecisionFormat:
        spec = get_spec(fmt)
        is_available = "✓" if fmt in available else "✗"
        style = "" if fmt in available else "dim"

        table.add_row(
            fmt.value.upper(),
            str(spec.bits) if spec.bits else "arbitrary",
            f"{get_eps(fmt):.2e}",
            spec.compute_format.value.upper(),
            "✓" if spec.is_complex else "",
            is_available,
            style=style,
        )

    console.print(table)

    if PrecisionFormat.BF16 not in available:
        console.print(
            "\n[yellow]Note:[/] BF16 requires ml-dtypes package. "
            "Install with: [bold]pip install ml-dtypes[/]"
        )


@app.command()  # type: ignore[misc]
def providers() -> None:
    """List the registered SVD providers."""
    table = Table(title="SVD Providers")

    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Implementation")
    table.add_column("Default", justify="center")

    for name in list_providers():
        table.add_row(
            name,
            repr(create_provider(name)),
            "✓" if name == DEFAULT_PROVIDER else "",
        )

    console.print(table)


@app.command()  # type: ignore[misc]
def compare(
    matrix_size: Annotated[
        int,
        typer.Option("--size", "-n", help="Matrix dimension"),
    ] = 8,
    decades: Annotated[
        float,
        typer.Option("--decades", "-d", help="Singular value spread (log10)"),
    ] = 16.0,
    seed: Annotated[
        int,
        typer.Option("--seed", "-s", help="Random seed"),
    ] = 42,
    provider: Annotated[
        str,
        typer.Option("--provider", "-p", help="SVD provider name"),
    ] = DEFAULT_PROVIDER,
    complex_: Annotated[
        bool,
        typer.Option("--complex", help="Use complex unitary bases"),
    ] = False,
) -> None:
    """Compare naive and stabilized inverses against an mpmath reference."""
    try:
        report = compare_methods(
            matrix_size, decades, seed=seed, provider=provider, complex_=complex_
        )
    except StableSVDError as exc:
        console.print(f"[red]Error:[/] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc

    table = Table(
        title=(
            f"Relative error, n={report.matrix_size}, "
            f"{report.decades:g} decades, provider={report.provider}"
        )
    )

    table.add_column("Operation", style="bold")
    table.add_column("Naive", justify="right")
    table.add_column("Plain", justify="right")
    table.add_column("Loh", justify="right")

    table.add_row(
        "(1 + M)^-1",
        f"{report.one_plus_naive:.2e}",
        f"{report.one_plus_plain:.2e}",
        f"{report.one_plus_loh:.2e}",
    )
    table.add_row(
        "(A + B)^-1",
        f"{report.sum_naive:.2e}",
        "-",
        f"{report.sum_loh:.2e}",
    )

    console.print(table)


if __name__ == "__main__":
    app()
