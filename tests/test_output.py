"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet mode suppression rules
- Verbose mode debug output
- print_table in all three modes
- Diagnostic rendering by severity
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from specgen import output as output_module
from specgen.diagnostics import DiagnosticCode, DiagnosticCollector, Severity
from specgen.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("specgen.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("specgen.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    """Test that AUTO format resolves correctly based on environment."""

    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_tty_but_no_color(self, tty, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        mgr = OutputManager(format=OutputFormat.AUTO)
        assert mgr.format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        assert mgr.format == OutputFormat.JSON

    def test_explicit_rich_stays_rich(self, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH)
        assert mgr.format == OutputFormat.RICH


# ------------------------------------------------------------------ #
# NO_COLOR / TERM=dumb detection
# ------------------------------------------------------------------ #


class TestColorDisabling:
    """Test that NO_COLOR and TERM=dumb are respected."""

    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False

    def test_no_color_flag_overrides(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        mgr = OutputManager(format=OutputFormat.AUTO, no_color=True)
        assert mgr.format == OutputFormat.PLAIN


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    """Test that data goes to stdout and diagnostics go to stderr."""

    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_data("hello world")
        captured = capfd.readouterr()
        assert "hello world" in captured.out
        assert captured.err == ""

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error"])
    def test_messages_go_to_stderr(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        getattr(mgr, method)("a message")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "a message" in captured.err

    def test_error_prefix(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.error("something broke")
        assert "Error: something broke" in capfd.readouterr().err

    def test_print_json_is_indented(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_json({"types": ["Pet"]})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"types": ["Pet"]}
        assert "\n" in captured.out.strip()


# ------------------------------------------------------------------ #
# Quiet and verbose modes
# ------------------------------------------------------------------ #


class TestQuietMode:
    """Test that --quiet suppresses info/success but not warning/error."""

    @pytest.mark.parametrize("method", ["info", "success"])
    def test_quiet_suppresses(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        getattr(mgr, method)("should not appear")
        assert capfd.readouterr().err == ""

    @pytest.mark.parametrize("method", ["warning", "error"])
    def test_quiet_keeps(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        getattr(mgr, method)("important")
        assert "important" in capfd.readouterr().err

    def test_quiet_does_not_suppress_stdout_data(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.print_data("important data")
        assert "important data" in capfd.readouterr().out


class TestVerboseMode:
    """Test that --verbose enables debug output."""

    def test_debug_hidden_by_default(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.debug("should not appear")
        assert capfd.readouterr().err == ""

    def test_debug_shown_with_verbose(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        mgr.debug("trace info")
        assert "[debug] trace info" in capfd.readouterr().err

    def test_flags_exposed(self, non_tty):
        assert OutputManager(verbose=True).is_verbose is True
        assert OutputManager(quiet=True).is_quiet is True
        assert OutputManager().is_verbose is False


# ------------------------------------------------------------------ #
# Tables
# ------------------------------------------------------------------ #


class TestPrintTable:
    """print_table in every format."""

    HEADERS = ["Type", "Module"]
    ROWS = [["Pet", "pet"], ["NewPet", "new_pet"]]

    def test_plain_is_tab_separated(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_table(self.HEADERS, self.ROWS)
        lines = capfd.readouterr().out.strip().split("\n")
        assert lines == ["Type\tModule", "Pet\tpet", "NewPet\tnew_pet"]

    def test_json_is_list_of_objects(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(self.HEADERS, self.ROWS)
        assert json.loads(capfd.readouterr().out) == [
            {"Type": "Pet", "Module": "pet"},
            {"Type": "NewPet", "Module": "new_pet"},
        ]

    def test_rich_contains_cells(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.print_table(self.HEADERS, self.ROWS, title="Petstore")
        out = capfd.readouterr().out
        assert "Petstore" in out
        assert "new_pet" in out


# ------------------------------------------------------------------ #
# Diagnostics
# ------------------------------------------------------------------ #


class TestDiagnostics:
    """Collected diagnostics are routed by severity."""

    def _collector(self) -> DiagnosticCollector:
        collector = DiagnosticCollector()
        collector.report(
            DiagnosticCode.RESOLUTION_SKIP,
            "Skipping 'Ghost'",
            severity=Severity.ERROR,
            location="#/components/schemas/Ghost",
        )
        collector.report(DiagnosticCode.IDENTIFIER_COLLISION, "Type 'Pet' renamed to 'Pet2'")
        collector.report(DiagnosticCode.UNKNOWN_DIALECT, "just so you know", severity=Severity.INFO)
        return collector

    def test_rendering(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.diagnostics(self._collector())
        err = capfd.readouterr().err
        assert (
            "Error: [resolution-skip] Skipping 'Ghost' (at #/components/schemas/Ghost)" in err
        )
        assert "Warning: [identifier-collision] Type 'Pet' renamed to 'Pet2'" in err
        assert "just so you know" not in err

    def test_info_diagnostics_shown_when_verbose(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        mgr.diagnostics(self._collector())
        assert "[debug] [unknown-dialect] just so you know" in capfd.readouterr().err

    def test_quiet_still_reports_skips(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.diagnostics(self._collector())
        err = capfd.readouterr().err
        assert "resolution-skip" in err
        assert "identifier-collision" in err


# ------------------------------------------------------------------ #
# Global instance management
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    """get_output / set_output / reset_output and the module helpers."""

    def test_get_output_creates_default(self, non_tty):
        first = get_output()
        assert isinstance(first, OutputManager)
        assert get_output() is first

    def test_set_and_reset(self, non_tty):
        custom = OutputManager(format=OutputFormat.JSON)
        set_output(custom)
        assert get_output() is custom
        reset_output()
        assert get_output() is not custom

    def test_helpers_delegate(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True))
        output_module.info("info line")
        output_module.warning("warn line")
        output_module.debug("debug line")
        get_output().print_table(["A"], [["1"]])
        captured = capfd.readouterr()
        assert "info line" in captured.err
        assert "Warning: warn line" in captured.err
        assert "[debug] debug line" in captured.err
        assert captured.out == "A\n1\n"
