"""Tests for the specgen CLI (``generate`` and ``inspect``)."""

from __future__ import annotations

import json
from pathlib import Path

from specgen import __version__
from specgen.app import app
from specgen.exit_codes import (
    EXIT_DOCUMENT_ERROR,
    EXIT_GENERATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SUCCESS,
)

FIXTURES = Path(__file__).parent / "fixtures"
PETSTORE = str(FIXTURES / "petstore_3.0.yaml")


class TestVersion:
    def test_version_flag(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == EXIT_SUCCESS
        assert f"specgen {__version__}" in result.output


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    """``specgen generate``."""

    def test_writes_package(self, cli_runner, isolated_config: Path) -> None:
        out = isolated_config / "out"
        result = cli_runner.invoke(
            app, ["--no-color", "generate", PETSTORE, "-o", str(out), "--server"]
        )
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert "Generated 3 types and 5 operations" in result.output
        assert (out / "api" / "__init__.py").is_file()
        assert (out / "api" / "operations" / "list_pets.py").is_file()
        assert "def validate_request(" in (out / "api" / "operations" / "health.py").read_text(
            encoding="utf-8"
        )

    def test_package_name_and_client_only(self, cli_runner, isolated_config: Path) -> None:
        out = isolated_config / "out"
        result = cli_runner.invoke(
            app, ["--no-color", "generate", PETSTORE, "-o", str(out), "-p", "petstore"]
        )
        assert result.exit_code == EXIT_SUCCESS, result.output
        unit = (out / "petstore" / "operations" / "health.py").read_text(encoding="utf-8")
        assert "def health(" in unit
        assert "def validate_request(" not in unit

    def test_quiet_suppresses_success(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "-q", "generate", PETSTORE, "-o", str(isolated_config / "out")]
        )
        assert result.exit_code == EXIT_SUCCESS
        assert "Generated" not in result.output

    def test_project_config_supplies_input(self, cli_runner, isolated_config: Path) -> None:
        (isolated_config / "specgen.json").write_text(
            json.dumps({"input": PETSTORE, "output_dir": "gen", "package": "pets"}),
            encoding="utf-8",
        )
        result = cli_runner.invoke(app, ["--no-color", "generate"])
        assert result.exit_code == EXIT_SUCCESS, result.output
        assert (isolated_config / "gen" / "pets" / "__init__.py").is_file()

    def test_skips_reported_without_failing(self, cli_runner, isolated_config: Path) -> None:
        main = str(FIXTURES / "external" / "main.yaml")
        result = cli_runner.invoke(
            app, ["--no-color", "generate", main, "-o", str(isolated_config / "out")]
        )
        assert result.exit_code == EXIT_SUCCESS
        assert "Error: [resolution-skip]" in result.output
        assert "[dependency-skip] Skipping operation 'listGhosts'" in result.output

    def test_missing_input(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "generate", "-o", "out"])
        assert result.exit_code == EXIT_GENERIC_FAILURE
        assert "No input configured" in result.output

    def test_nothing_selected(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "generate", PETSTORE, "-o", "out", "--no-client"]
        )
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_unreadable_document(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "generate", str(isolated_config / "nope.yaml"), "-o", "out"]
        )
        assert result.exit_code == EXIT_DOCUMENT_ERROR
        assert "Error:" in result.output
        assert not (isolated_config / "out").exists()

    def test_malformed_document(self, cli_runner, isolated_config: Path) -> None:
        bad = isolated_config / "bad.yaml"
        bad.write_text("info:\n  title: T\n", encoding="utf-8")
        result = cli_runner.invoke(app, ["--no-color", "generate", str(bad), "-o", "out"])
        assert result.exit_code == EXIT_DOCUMENT_ERROR

    def test_unwritable_output(self, cli_runner, isolated_config: Path) -> None:
        blocker = isolated_config / "blocker"
        blocker.write_text("", encoding="utf-8")
        result = cli_runner.invoke(app, ["--no-color", "generate", PETSTORE, "-o", str(blocker)])
        assert result.exit_code == EXIT_GENERATION_ERROR


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------


class TestInspect:
    """``specgen inspect``."""

    def test_json(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["inspect", PETSTORE, "--json"])
        assert result.exit_code == EXIT_SUCCESS
        data = json.loads(result.stdout)
        assert data["title"] == "Petstore"
        assert data["dialect"] == "3.0"
        names = [t["name"] for t in data["types"]]
        assert sorted(names) == ["Error", "NewPet", "Pet"]
        assert names.index("NewPet") < names.index("Pet")
        assert data["types"][names.index("Pet")]["location"].endswith(
            "petstore_3.0.yaml#/components/schemas/Pet"
        )
        assert data["operations"][0] == {
            "id": "listPets",
            "method": "get",
            "path": "/pets",
            "responses": ["200", "default"],
        }
        assert data["diagnostics"] == []

    def test_plain_tables(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "inspect", PETSTORE])
        assert result.exit_code == EXIT_SUCCESS
        lines = result.stdout.splitlines()
        assert "Type\tModule\tKind\tLocation" in lines
        assert any(
            line.startswith("Pet\tpet\tcomposition\t") and line.endswith("#/components/schemas/Pet")
            for line in lines
        )
        assert "showPetById\tGET\t/pets/{petId}\t200, 404" in lines

    def test_diagnostics_in_json(self, cli_runner, isolated_config: Path) -> None:
        main = str(FIXTURES / "external" / "main.yaml")
        result = cli_runner.invoke(app, ["inspect", main, "--json"])
        assert result.exit_code == EXIT_SUCCESS
        codes = {d["code"] for d in json.loads(result.stdout)["diagnostics"]}
        assert {"resolution-skip", "dependency-skip"} <= codes

    def test_missing_document(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["inspect", "missing.yaml"])
        assert result.exit_code == EXIT_DOCUMENT_ERROR
