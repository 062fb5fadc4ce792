"""Nox configuration for Storefront Admin quality assurance tasks."""

import nox  # pyright: ignore[reportMissingImports] # noqa: I001

# Configure nox to use uv for faster package installs
nox.options.default_venv_backend = "uv"

PYTHON_VERSIONS = ["3.13"]

LINT_TOOL = ["uv", "tool", "run", "ruff", "check"]
FORMAT_TOOL = ["uv", "tool", "run", "ruff", "format"]
TYPECHECK_TOOL = ["uv", "tool", "run", "mypy"]
SOURCE_PATHS = ["storefront/", "tests/"]


def get_lint_command(fix: bool = False) -> list[str]:
    cmd = LINT_TOOL + SOURCE_PATHS
    if fix:
        cmd.append("--fix")
    return cmd


def get_format_command(check: bool = False) -> list[str]:
    cmd = FORMAT_TOOL + SOURCE_PATHS
    if check:
        cmd.extend(["--check", "--diff"])
    return cmd


@nox.session(python=PYTHON_VERSIONS)
def lint(session: nox.Session) -> None:
    """Run linting with ruff check."""
    session.install("-e", ".[dev]")
    session.run(*get_lint_command(), external=True)


@nox.session(python=PYTHON_VERSIONS)
def mypy(session: nox.Session) -> None:
    """Run type checking with mypy."""
    session.install("-e", ".[dev]")
    session.run(*TYPECHECK_TOOL, *SOURCE_PATHS, external=True)


@nox.session(python=PYTHON_VERSIONS)
def format_check(session: nox.Session) -> None:
    """Check code formatting with ruff format."""
    session.install("-e", ".[dev]")
    session.run(*get_format_command(check=True), external=True)


@nox.session(python=PYTHON_VERSIONS)
def format(session: nox.Session) -> None:
    """Format code with ruff format."""
    session.install("-e", ".[dev]")
    session.run(*get_format_command(), external=True)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run tests with pytest against in-memory SQLite."""
    session.install("-e", ".[dev]")
    session.run("pytest", "--verbose", *session.posargs)
