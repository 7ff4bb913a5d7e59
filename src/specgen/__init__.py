"""specgen -- Compile OpenAPI 2.0/3.0/3.1 documents into typed Python bindings.

This package reads an API description, normalizes it to the OpenAPI 3.1
shape, resolves every ``$ref`` into a cycle-safe graph of named types, and
emits a self-contained Python package: pydantic validators for every named
schema, a client function per operation and, optionally, a server-side
request validation wrapper per operation.

Typical workflow::

    specgen generate openapi.yaml -o build/ --package petstore --server

Modules:
    app: Typer application and CLI entry point.
    pipeline: ``generate(config)`` orchestration of a single run.
    models: Pydantic models shared across the entire package.
    config: Precedence resolution for :class:`~specgen.models.GeneratorConfig`.
    diagnostics: Non-fatal conditions collected during a run.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
