"""Tests for the command-line interface."""

from typer.testing import CliRunner

from stable_svd import __version__
from stable_svd.cli import app

runner = CliRunner()


class TestCli:
    """Tests for the stable-svd commands."""

    def test_version(self) -> None:
        """--version prints the package version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_info(self) -> None:
        """info lists the element types."""
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "FP64" in result.output
        assert "MPMATH" in result.output

    def test_providers(self) -> None:
        """providers lists every registered provider."""
        result = runner.invoke(app, ["providers"])
        assert result.exit_code == 0
        for name in ("gesdd", "gesvd", "jacobi", "mpmath"):
            assert name in result.output

    def test_compare(self) -> None:
        """compare prints an error table."""
        result = runner.invoke(app, ["compare", "-n", "3", "-d", "4"])
        assert result.exit_code == 0
        assert "Naive" in result.output
        assert "Loh" in result.output

    def test_compare_verbose(self) -> None:
        """--verbose enables debug logging without failing."""
        result = runner.invoke(
            app, ["--verbose", "compare", "-n", "3", "-d", "2", "-p", "jacobi"]
        )
        assert result.exit_code == 0

    def test_compare_unknown_provider(self) -> None:
        """An unknown provider exits with code 1."""
        result = runner.invoke(app, ["compare", "-n", "3", "-p", "lanczos"])
        assert result.exit_code == 1
        assert "Unknown provider" in result.output
