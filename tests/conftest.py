"""Shared test fixtures for specgen.

Provides reusable fixtures for loading the fixture documents, running the
front half of the pipeline, creating isolated config environments,
managing output state, and running CLI commands.  These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from specgen.diagnostics import DiagnosticCollector
from specgen.models import GeneratorConfig
from specgen.output import OutputFormat, OutputManager, reset_output, set_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Raw document fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def petstore_30_raw() -> dict[str, Any]:
    """Raw petstore 3.0 document (YAML)."""
    with open(FIXTURES_DIR / "petstore_3.0.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def zoo_31_raw() -> dict[str, Any]:
    """Raw 3.1 document with a discriminated union and a recursive type."""
    with open(FIXTURES_DIR / "zoo_3.1.json", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def legacy_20_raw() -> dict[str, Any]:
    """Raw Swagger 2.0 document."""
    with open(FIXTURES_DIR / "legacy_2.0.json", encoding="utf-8") as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_loader() -> Callable[[dict[str, dict[str, Any]]], Callable[..., dict[str, Any]]]:
    """Factory for loaders that serve documents from a dict.

    Unknown locations raise :class:`~specgen.exceptions.DocumentError`,
    exactly like the real loader does for a missing file.
    """
    from specgen.exceptions import DocumentError

    def factory(documents: dict[str, dict[str, Any]]) -> Callable[..., dict[str, Any]]:
        def load(location: str, timeout: float = 30.0) -> dict[str, Any]:
            if location not in documents:
                raise DocumentError(f"Document not found: {location}")
            return documents[location]

        return load

    return factory


@pytest.fixture
def analyze_fixture() -> Callable[..., Any]:
    """Run load, normalize, resolve, analyze and name on a fixture file.

    Returns:
        A callable ``(filename, **config) -> (Analysis, DiagnosticCollector)``.
    """
    from specgen.pipeline import analyze

    def run(filename: str, **overrides: Any) -> Any:
        diagnostics = DiagnosticCollector()
        config = GeneratorConfig(
            input=str(FIXTURES_DIR / filename), output_dir=Path("."), **overrides
        )
        return analyze(config, diagnostics=diagnostics), diagnostics

    return run


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Clears all SPECGEN_* environment variables and changes the working
    directory to tmp_path, so no ``specgen.json`` from the real working
    directory is picked up.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    for var in [
        "SPECGEN_INPUT",
        "SPECGEN_OUTPUT",
        "SPECGEN_PACKAGE",
        "SPECGEN_STRICT",
        "SPECGEN_FORCE_VALIDATION",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
