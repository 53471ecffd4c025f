import os
from pathlib import Path
import nox

# Reuse existing virtualenvs for faster runs
nox.options.reuse_existing_virtualenvs = True
# Default sessions when running "nox"
nox.options.sessions = ["lint", "unit", "e2e"]

# Common dependencies for test sessions
COMMON_DEPS = ["-e", ".[test]"]

# Environment variables to propagate
PASSED_ENV_VARS = [
    "DATABASE_URL",
    "SECRET_KEY",
    "ADMIN_PASSWORD",
    "ELECTION_TIMEZONE",
    "LOG_LEVEL",
]


def _set_env(session):
    """
    Propagate database and test-related environment variables into the session.
    Also ensure the project root is on PYTHONPATH so ``tests.utils`` imports.
    """
    session.env["PYTHONPATH"] = str(Path.cwd())
    session.env["ENVIRONMENT"] = "testing"
    for var in PASSED_ENV_VARS:
        if var in os.environ:
            session.env[var] = os.environ[var]


@nox.session(name="lint")
def lint(session):
    """
    Code formatting, linting, and type-checks:
      - isort
      - black
      - flake8
      - mypy
    """
    _set_env(session)
    session.install("isort", "black", "flake8", "mypy")
    session.run("isort", "ballotguard/", "tests/")
    session.run("black", "ballotguard/", "tests/")
    session.run("flake8", "ballotguard/", "tests/")
    session.run("mypy", "ballotguard/")


@nox.session(name="unit")
def unit(session):
    """
    Run unit and API integration tests with coverage.
    Pass positional args to target specific tests.
    Usage:
      nox -s unit             # runs tests/unit and tests/integration
      nox -s unit -- tests/unit/test_services/test_ballot.py::TestAtomicity
    """
    _set_env(session)
    session.install(*COMMON_DEPS)
    tests = session.posargs or ["tests/unit", "tests/integration"]
    # Reporting paths (relative)
    htmlcov_path = ".nox/htmlcov"
    session.run(
        "pytest",
        *tests,
        "--maxfail=1",
        "-vv",
        "--tb=short",
        "--cov=ballotguard",
        "--cov-report=term-missing",
        "--cov-report=html:" + htmlcov_path,
        "--cov-report=xml",
        "--cov-fail-under=80",
    )


@nox.session(name="e2e")
def e2e(session):
    """
    Run the concurrent-submission tests against a file-backed database.
    Usage:
      nox -s e2e
      nox -s e2e -- tests/e2e/test_concurrent_voting.py::TestConcurrentVoting
    """
    _set_env(session)
    session.install(*COMMON_DEPS)
    tests = session.posargs or ["tests/e2e"]
    session.run(
        "pytest",
        *tests,
        "--maxfail=1",
        "-vv",
        "--tb=short",
    )
