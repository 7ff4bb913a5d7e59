"""Render compiled schemas and operation bindings into Python source units.

The emitter is the only stage that produces text.  It lays the generated
package out as::

    <package>/
        __init__.py          re-exports, OPERATIONS
        _runtime.py          validation combinators (pydantic)
        _support.py          client transport (httpx), server request types
        schemas/<type>.py    one unit per named type
        operations/<op>.py   one unit per operation

Every unit is rendered from a Jinja2 template in ``generator/templates/`` and
passed through the configured formatter.  Before rendering, the emitter
checks that every dependency of every fragment has a unit of its own; a
dangling name raises :class:`~specgen.exceptions.GenerationError` instead of
producing a package that fails on import.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from specgen import __version__
from specgen.compiler.naming import RUNTIME_NAMES
from specgen.exceptions import GenerationError
from specgen.generator.wrapper import OperationBinding
from specgen.models import CodeFragment, NamedType, NormalizedDocument

TEMPLATE_DIR = Path(__file__).parent / "templates"
"""Path to the Jinja2 template directory (``generator/templates/``)."""

Formatter = Callable[[str], str]

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_STAGE_CALLS = {
    "query": "check(QueryParams, dict(request.query))",
    "path": "check(PathParams, dict(request.path))",
    "headers": "check(Headers, {str(k).lower(): v for k, v in request.headers.items()})",
    "body": "check_body(REQUEST_BODY, request.body, request.content_type, required=BODY_REQUIRED)",
}

_ARGUMENT_GROUPS = (
    ("path", "path_params"),
    ("query", "query"),
    ("header", "headers"),
    ("cookie", "cookies"),
)

_CLIENT_SUPPORT = ("ApiResponse", "ClientConfig", "send")
_SERVER_SUPPORT = (
    "RawRequest", "Route", "ValidatedRequest", "ValidationFailure", "ValidationOk", "check_body",
)


@dataclass(frozen=True)
class SourceUnit:
    """One file of the generated package, path relative to the package root."""

    path: str
    content: str


def _docline(value: Any) -> str:
    """First line of *value*, safe inside a triple-quoted docstring."""
    text = str(value).strip().splitlines()[0] if str(value).strip() else ""
    return text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')


def _create_jinja_env() -> Environment:
    """Create the Jinja2 environment for the package templates.

    Autoescape is disabled for ``.py.j2`` templates, which produce Python
    source rather than HTML.
    """
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(disabled_extensions=("py.j2",)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["pyrepr"] = repr
    env.filters["docline"] = _docline
    return env


def runtime_names(codes: Iterable[str]) -> list[str]:
    """Runtime names the given expressions mention, sorted."""
    found: set[str] = set()
    for code in codes:
        found.update(_IDENTIFIER.findall(code))
    return sorted(found & RUNTIME_NAMES)


class Emitter:
    """Renders the generated package.

    Args:
        document: The normalized document (title, servers, location).
        formatter: Applied to every rendered unit.
    """

    def __init__(self, document: NormalizedDocument, formatter: Formatter) -> None:
        self._document = document
        self._formatter = formatter
        self._env = _create_jinja_env()

    def emit(
        self,
        named_types: list[NamedType],
        fragments: dict[str, CodeFragment],
        bindings: list[OperationBinding],
        *,
        server: bool = False,
    ) -> list[SourceUnit]:
        """Render every unit of the package.

        Args:
            named_types: In dependency order.
            fragments: Compiled body of each named type, by name.
            bindings: One per operation, in document order.
            server: Whether the server surface is generated.

        Raises:
            GenerationError: A fragment depends on a type with no unit.
        """
        modules = {t.name: t.module for t in named_types}
        self._check_dependencies(modules, fragments, bindings)

        base = self._base_context()
        units = [
            self._render("_runtime.py.j2", "_runtime.py", base),
            self._render(
                "_support.py.j2", "_support.py", {**base, "servers": repr(self._servers())}
            ),
        ]
        for named in named_types:
            units.append(self._schema_unit(named, fragments[named.name], modules, base))
        for binding in bindings:
            units.append(self._operation_unit(binding, modules, base))

        units.append(
            self._render("schemas_init.py.j2", "schemas/__init__.py", {**base, "types": named_types})
        )
        units.append(
            self._render(
                "operations_init.py.j2",
                "operations/__init__.py",
                {
                    **base,
                    "bindings": bindings,
                    "client": any(b.client for b in bindings),
                    "server": server,
                },
            )
        )
        units.append(
            self._render(
                "package_init.py.j2",
                "__init__.py",
                {
                    **base,
                    "api_version": self._document.tree.get("info", {}).get("version"),
                    "source": self._document.location,
                    "server": server,
                },
            )
        )
        return units

    # ------------------------------------------------------------------ #
    # Units
    # ------------------------------------------------------------------ #

    def _schema_unit(
        self,
        named: NamedType,
        fragment: CodeFragment,
        modules: dict[str, str],
        base: dict[str, Any],
    ) -> SourceUnit:
        runtime = sorted(set(runtime_names([fragment.code])) | {"register"})
        context = {
            **base,
            "named": named,
            "fragment": fragment,
            "description": named.node.description,
            "runtime_imports": runtime,
            "schema_imports": _schema_imports(fragment.imports, modules),
        }
        return self._render("schema.py.j2", f"schemas/{named.module}.py", context)

    def _operation_unit(
        self, binding: OperationBinding, modules: dict[str, str], base: dict[str, Any]
    ) -> SourceUnit:
        codes = [f.code for f in binding.fragments()]
        codes.extend(arg.annotation for arg in binding.arguments)
        runtime = set(runtime_names(codes)) | {"Any"}
        if binding.client:
            runtime.add("Optional")
        typing_imports: list[str] = []
        support: list[str] = []
        if binding.client:
            support.extend(_CLIENT_SUPPORT)
        if binding.server:
            runtime.update({"check", "CheckError"})
            support.extend(_SERVER_SUPPORT)
            typing_imports = ["Callable", "Union"]

        grouped = []
        for location, keyword in _ARGUMENT_GROUPS:
            args = [a for a in binding.arguments if a.location.value == location]
            if args:
                grouped.append((keyword, args))

        context = {
            **base,
            "binding": binding,
            "op": binding.operation,
            "runtime_imports": sorted(runtime),
            "support_imports": sorted(support),
            "typing_imports": typing_imports,
            "schema_imports": _schema_imports(binding.merged().imports, modules),
            "security_headers": tuple(h.name for h in binding.security_headers),
            "grouped_arguments": grouped,
            "arguments_doc": [
                (a.name, _docline(a.description)) for a in binding.arguments if a.description
            ],
            "stages": [
                {
                    "section": stage.section,
                    "error_type": stage.error_type,
                    "call": _STAGE_CALLS[stage.section],
                }
                for stage in binding.pipeline.stages
            ],
        }
        return self._render("operation.py.j2", f"operations/{binding.module}.py", context)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _base_context(self) -> dict[str, Any]:
        return {"title": self._document.title or "API", "version": __version__}

    def _servers(self) -> list[str]:
        return [server.url for server in self._document.servers]

    def _render(self, template_name: str, path: str, context: dict[str, Any]) -> SourceUnit:
        template = self._env.get_template(template_name)
        return SourceUnit(path=path, content=self._formatter(template.render(**context)))

    @staticmethod
    def _check_dependencies(
        modules: dict[str, str],
        fragments: dict[str, CodeFragment],
        bindings: list[OperationBinding],
    ) -> None:
        missing: Optional[tuple[str, str]] = None
        for name, fragment in fragments.items():
            for dependency in sorted(fragment.dependencies - modules.keys()):
                missing = missing or (name, dependency)
        for binding in bindings:
            for dependency in sorted(binding.merged().dependencies - modules.keys()):
                missing = missing or (f"operation {binding.operation.id}", dependency)
        if missing is not None:
            raise GenerationError(
                f"{missing[0]} depends on '{missing[1]}', which has no emitted unit"
            )


def _schema_imports(names: Iterable[str], modules: dict[str, str]) -> list[tuple[str, str]]:
    return sorted((modules[name], name) for name in names)
