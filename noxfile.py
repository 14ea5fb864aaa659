"""Nox sessions for testing and quality checks."""

import nox

PYTHON_VERSIONS = ["3.13", "3.14"]


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run unit and property tests with coverage.

    Args:
        session: The nox session object.
    """
    session.install("-e", ".[test]")
    session.run(
        "pytest",
        "--cov=notify_dispatch",
        "--cov-report=term-missing:skip-covered",
        "--cov-fail-under=85",
        *session.posargs,
    )


@nox.session(python=PYTHON_VERSIONS[-1])
def property_tests(session: nox.Session) -> None:
    """Run only the Hypothesis suites with a fixed seed."""
    session.install("-e", ".[test]")
    session.run("pytest", "-m", "property", "--hypothesis-seed=0")


@nox.session(python=PYTHON_VERSIONS[-1])
def lint(session: nox.Session) -> None:
    """Run ruff lint and format checks."""
    session.install("-e", ".[dev]")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(python=PYTHON_VERSIONS[-1])
def typecheck(session: nox.Session) -> None:
    """Run basedpyright over src and tests."""
    session.install("-e", ".[dev,test]")
    session.run("basedpyright")


@nox.session(python=PYTHON_VERSIONS[-1])
def check_isolation(session: nox.Session) -> None:
    """Check that core, types and utils name no vendors.

    Args:
        session: The nox session object.
    """
    session.install("-e", ".")
    session.run("python", "scripts/check_provider_isolation.py")
