"""Typer application and CLI entry point for specgen.

Two commands are registered on the root application:

* ``generate`` -- compile an API description into a Python package.
* ``inspect`` -- show the named types and operations a description yields,
  without writing anything.

Diagnostics collected during a run are printed on stderr once the run ends.
Skipped types and operations do not change the exit status; only a
:class:`~specgen.exceptions.SpecgenError` does, through its ``exit_code``.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.

See Also:
    :mod:`specgen.config`: Precedence resolution for the run settings.
    :mod:`specgen.pipeline`: The generation stages themselves.
"""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import typer

from specgen import __version__
from specgen.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="specgen",
    help="Compile OpenAPI 2.0/3.0/3.1 descriptions into typed Python bindings.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"specgen {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~specgen.output.OutputManager` from the
    CLI flags and, with ``--verbose``, routes ``logging`` debug records to
    stderr.
    """
    from specgen.output import OutputManager, set_output

    set_output(OutputManager(no_color=no_color, quiet=quiet, verbose=verbose))
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="[debug] %(name)s: %(message)s",
        )


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("generate")
def generate_command(
    source: Optional[str] = typer.Argument(
        None, metavar="INPUT", help="Path or URL of the API description ('-' for stdin)."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Directory that receives the package."
    ),
    package: Optional[str] = typer.Option(
        None, "--package", "-p", help="Name of the generated package."
    ),
    client: Optional[bool] = typer.Option(
        None, "--client/--no-client", help="Emit client call functions."
    ),
    server: Optional[bool] = typer.Option(
        None, "--server/--no-server", help="Emit server validation wrappers."
    ),
    strict: Optional[bool] = typer.Option(
        None,
        "--strict/--no-strict",
        help="Reject unknown keys on objects without additionalProperties.",
    ),
    force_validation: Optional[bool] = typer.Option(
        None,
        "--force-validation/--lazy-validation",
        help="Validate response bodies as soon as they arrive.",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds allowed per document fetch."
    ),
) -> None:
    """Generate a Python package from an API description."""
    from specgen.config import resolve_config
    from specgen.diagnostics import DiagnosticCollector
    from specgen.exceptions import SpecgenError
    from specgen.output import debug, error, info, report_diagnostics, success
    from specgen.pipeline import generate

    diagnostics = DiagnosticCollector()
    try:
        config = resolve_config(
            cli_input=source,
            cli_output=output,
            cli_package=package,
            cli_client=client,
            cli_server=server,
            cli_strict=strict,
            cli_force_validation=force_validation,
            cli_timeout=timeout,
        )
        debug(f"Generating {config.package} from {config.input}")
        result = generate(config, diagnostics=diagnostics)
    except SpecgenError as exc:
        report_diagnostics(diagnostics)
        error(str(exc))
        raise typer.Exit(exc.exit_code) from exc

    report_diagnostics(diagnostics)
    analysis = result.analysis
    info(f"Read {analysis.fetch_count} document(s), wrote {len(result.files)} files")
    success(
        f"Generated {len(analysis.named_types)} types and {len(analysis.operations)} "
        f"operations into {result.package_dir}"
    )


@app.command("inspect")
def inspect_command(
    source: str = typer.Argument(..., metavar="INPUT", help="Path or URL of the API description."),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    timeout: float = typer.Option(30.0, "--timeout", help="Seconds allowed per document fetch."),
) -> None:
    """List the named types and operations a description yields."""
    from specgen.diagnostics import DiagnosticCollector
    from specgen.exceptions import SpecgenError
    from specgen.models import GeneratorConfig
    from specgen.output import error, get_output, report_diagnostics
    from specgen.pipeline import analyze

    diagnostics = DiagnosticCollector()
    config = GeneratorConfig(input=source, output_dir=Path("."), fetch_timeout=timeout)
    try:
        analysis = analyze(config, diagnostics=diagnostics)
    except SpecgenError as exc:
        report_diagnostics(diagnostics)
        error(str(exc))
        raise typer.Exit(exc.exit_code) from exc

    out = get_output()
    if json_output:
        out.print_json(_inspection(analysis, diagnostics))
        return

    out.print_table(
        ["Type", "Module", "Kind", "Location"],
        [[t.name, t.module, t.node.node, t.location] for t in analysis.named_types],
        title=f"{analysis.document.title} ({analysis.document.source_dialect.value})",
    )
    out.print_table(
        ["Operation", "Method", "Path", "Responses"],
        [
            [
                op.id,
                op.method.value.upper(),
                op.path_template,
                ", ".join(r.status_code for r in op.responses),
            ]
            for op in analysis.operations
        ],
    )
    report_diagnostics(diagnostics)


def _inspection(analysis: Any, diagnostics: Any) -> dict[str, Any]:
    return {
        "title": analysis.document.title,
        "dialect": analysis.document.source_dialect.value,
        "types": [
            {"name": t.name, "module": t.module, "kind": t.node.node, "location": t.location}
            for t in analysis.named_types
        ],
        "operations": [
            {
                "id": op.id,
                "method": op.method.value,
                "path": op.path_template,
                "responses": [r.status_code for r in op.responses],
            }
            for op in analysis.operations
        ],
        "diagnostics": [d.model_dump(mode="json") for d in diagnostics],
    }


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``specgen`` console script.

    Unhandled :class:`~specgen.exceptions.SpecgenError` instances cause a
    clean exit with the error's ``exit_code``; any other exception exits
    with :data:`~specgen.exit_codes.EXIT_GENERIC_FAILURE`.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from specgen.exceptions import SpecgenError
        from specgen.output import error

        if isinstance(exc, SpecgenError):
            error(str(exc))
            sys.exit(exc.exit_code)
        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
