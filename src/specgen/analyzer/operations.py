"""Walk the normalized path table and build operation descriptors.

Each path + HTTP method pair becomes one immutable
:class:`~specgen.models.OperationDescriptor`.  Paths are visited in document
order and methods in the order the path item lists them.

For every operation the analyzer:

* merges path-level and operation-level parameters (operation-level wins on
  a matching ``name`` + ``in``) and groups them by location.  Path
  parameters are always required;
* groups request and response bodies by content type, keeping document
  order, so the first content type is the default;
* builds the response union: one member per status code and content type,
  including a ``void`` member for every status declared without content;
* resolves security through :mod:`specgen.analyzer.security`;
* assigns a unique operation id.

Schemas are parsed through the
:class:`~specgen.parser.resolver.ReferenceResolver`, so ``$ref`` targets met
here are registered as named types like any other.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from specgen.analyzer.security import resolve_security
from specgen.compiler.naming import camel_case, pascal_case, snake_case
from specgen.diagnostics import DiagnosticCode, DiagnosticCollector, Severity
from specgen.exceptions import ResolutionError
from specgen.models import (
    ContentTypeMapping,
    HTTPMethod,
    OperationDescriptor,
    ParameterDescriptor,
    ParameterGroups,
    ParameterLocation,
    RequestBodyDescriptor,
    ResponseDescriptor,
    ResponseUnionMember,
)
from specgen.parser.resolver import ReferenceResolver
from specgen.parser.schema import reference_targets

_HTTP_METHODS = frozenset(m.value for m in HTTPMethod)

# Header parameters with these names are controlled by the transport.
_IGNORED_HEADERS = frozenset({"accept", "content-type", "authorization"})

_RANGE = re.compile(r"^[1-5]XX$", re.IGNORECASE)


class OperationAnalyzer:
    """Builds :class:`OperationDescriptor` values for one document.

    Args:
        resolver: Resolver over the normalized document.
        diagnostics: Receives skip diagnostics for operations whose
            parameters, bodies or responses cannot be dereferenced.
    """

    def __init__(self, resolver: ReferenceResolver, diagnostics: DiagnosticCollector) -> None:
        self._resolver = resolver
        self._diagnostics = diagnostics
        self._document = resolver.document
        self._taken_ids: set[str] = set()
        self._taken_modules: set[str] = set()

    def analyze(self) -> list[OperationDescriptor]:
        """Return every operation, in document order."""
        operations: list[OperationDescriptor] = []
        for path, raw_item in self._document.paths.items():
            where = f"#/paths/{path}"
            try:
                path_item, base = self._resolver.deref(raw_item)
            except ResolutionError as exc:
                self._skip(where, exc)
                continue
            if not isinstance(path_item, dict):
                continue

            for method_str, operation in path_item.items():
                if method_str not in _HTTP_METHODS or not isinstance(operation, dict):
                    continue
                location = f"{method_str.upper()} {path}"
                try:
                    operations.append(
                        self._operation(path, HTTPMethod(method_str), path_item, operation, base)
                    )
                except ResolutionError as exc:
                    self._skip(location, exc)
        return operations

    def _skip(self, location: str, exc: ResolutionError) -> None:
        self._diagnostics.report(
            DiagnosticCode.RESOLUTION_SKIP,
            f"Skipping operation: {exc}",
            severity=Severity.ERROR,
            location=location,
        )

    # ------------------------------------------------------------------ #
    # One operation
    # ------------------------------------------------------------------ #

    def _operation(
        self,
        path: str,
        method: HTTPMethod,
        path_item: dict[str, Any],
        operation: dict[str, Any],
        base: str,
    ) -> OperationDescriptor:
        where = f"{method.value.upper()} {path}"

        path_level = self._deref_all(path_item.get("parameters") or [], base)
        op_level = self._deref_all(operation.get("parameters") or [], base)
        path_level_descriptors = self._parameters(path_level, where)
        merged = self._parameters(_merge_parameters(path_level, op_level), where)

        responses = self._responses(operation.get("responses") or {}, base, where)
        security = resolve_security(
            operation.get("security"),
            self._document.security,
            self._document.components.get("securitySchemes") or {},
        )

        return OperationDescriptor(
            id=self._unique_id(operation_id(operation, method.value, path)),
            method=method,
            path_template=path,
            summary=operation.get("summary"),
            description=operation.get("description"),
            deprecated=bool(operation.get("deprecated", False)),
            tags=[str(t) for t in operation.get("tags") or []],
            path_level_parameters=path_level_descriptors,
            parameters=_group(merged),
            request_body=self._request_body(operation.get("requestBody"), base, where),
            responses=responses,
            response_union=response_union(responses),
            security=security,
        )

    def _deref_all(self, params: list[Any], base: str) -> list[tuple[dict[str, Any], str]]:
        resolved = []
        for param in params:
            target, target_base = self._resolver.deref(param, base)
            if isinstance(target, dict):
                resolved.append((target, target_base))
        return resolved

    def _parameters(
        self, params: list[tuple[dict[str, Any], str]], where: str
    ) -> list[ParameterDescriptor]:
        descriptors: list[ParameterDescriptor] = []
        for param, base in params:
            name = param.get("name", "")
            try:
                location = ParameterLocation(param.get("in", "query"))
            except ValueError:
                continue
            if location == ParameterLocation.HEADER and name.lower() in _IGNORED_HEADERS:
                continue

            schema = param.get("schema")
            if schema is None and isinstance(param.get("content"), dict):
                for media in param["content"].values():
                    if isinstance(media, dict) and "schema" in media:
                        schema = media["schema"]
                        break

            required = bool(param.get("required", False))
            if location == ParameterLocation.PATH:
                required = True

            descriptors.append(
                ParameterDescriptor(
                    name=name,
                    location=location,
                    required=required,
                    description=param.get("description"),
                    deprecated=bool(param.get("deprecated", False)),
                    schema=self._resolver.parse(schema or {}, base, f"{where} parameter {name}"),
                )
            )
        return descriptors

    def _content(self, content: Any, base: str, where: str) -> list[ContentTypeMapping]:
        if not isinstance(content, dict):
            return []
        return [
            ContentTypeMapping(
                content_type=content_type,
                schema=self._resolver.parse(
                    media.get("schema", {}) if isinstance(media, dict) else {},
                    base,
                    f"{where} {content_type}",
                ),
            )
            for content_type, media in content.items()
        ]

    def _request_body(self, raw: Any, base: str, where: str) -> Optional[RequestBodyDescriptor]:
        if raw is None:
            return None
        body, body_base = self._resolver.deref(raw, base)
        if not isinstance(body, dict):
            return None
        return RequestBodyDescriptor(
            required=bool(body.get("required", False)),
            description=body.get("description"),
            content=self._content(body.get("content"), body_base, f"{where} request body"),
        )

    def _responses(self, raw: dict[str, Any], base: str, where: str) -> list[ResponseDescriptor]:
        responses: list[ResponseDescriptor] = []
        for status_code, raw_response in raw.items():
            response, response_base = self._resolver.deref(raw_response, base)
            if not isinstance(response, dict):
                continue
            status = str(status_code)
            responses.append(
                ResponseDescriptor(
                    status_code=status,
                    description=response.get("description"),
                    content=self._content(
                        response.get("content"), response_base, f"{where} response {status}"
                    ),
                )
            )
        return responses

    def _unique_id(self, base: str) -> str:
        name, n = base, 1
        while name in self._taken_ids or snake_case(name) in self._taken_modules:
            n += 1
            name = f"{base}{n}"
        self._taken_ids.add(name)
        self._taken_modules.add(snake_case(name))
        return name


# --- Helpers ---


def operation_id(operation: dict[str, Any], method: str, path: str) -> str:
    """Sanitized ``operationId``, or ``method`` + PascalCase path segments."""
    raw = operation.get("operationId")
    if isinstance(raw, str) and raw.strip():
        return camel_case(raw)
    segments = [s for s in path.split("/") if s]
    return method + "".join(pascal_case(s, "Root") for s in segments)


def _merge_parameters(
    path_params: list[tuple[dict[str, Any], str]],
    op_params: list[tuple[dict[str, Any], str]],
) -> list[tuple[dict[str, Any], str]]:
    """Merge path-level and operation-level parameters.

    Operation-level parameters override path-level parameters with the same
    name and location (``in`` field).
    """
    op_keys = {(p.get("name", ""), p.get("in", "")) for p, _ in op_params}
    merged = [
        (param, base)
        for param, base in path_params
        if (param.get("name", ""), param.get("in", "")) not in op_keys
    ]
    merged.extend(op_params)
    return merged


def _group(params: list[ParameterDescriptor]) -> ParameterGroups:
    groups: dict[str, list[ParameterDescriptor]] = {loc.value: [] for loc in ParameterLocation}
    for param in params:
        groups[param.location.value].append(param)
    return ParameterGroups(**groups)


def _status_sort_key(status: str) -> tuple[int, int]:
    if status.isdigit():
        return (0, int(status))
    if _RANGE.match(status):
        return (1, int(status[0]))
    return (2, 0)


def response_union(responses: Iterable[ResponseDescriptor]) -> list[ResponseUnionMember]:
    """One member per declared status and content type; content-less -> void.

    Members are ordered by status: explicit codes ascending, then ranges
    (``2XX``), then ``default``.
    """
    members: list[ResponseUnionMember] = []
    for response in sorted(responses, key=lambda r: _status_sort_key(r.status_code)):
        if not response.content:
            members.append(ResponseUnionMember(status_code=response.status_code))
            continue
        for mapping in response.content:
            members.append(
                ResponseUnionMember(
                    status_code=response.status_code,
                    content_type=mapping.content_type,
                    schema=mapping.schema_,
                )
            )
    return members


def operation_references(operation: OperationDescriptor) -> set[str]:
    """Every named type the operation's schemas mention."""
    nodes = [p.schema_ for group in (
        operation.parameters.query,
        operation.parameters.path,
        operation.parameters.header,
        operation.parameters.cookie,
    ) for p in group]
    if operation.request_body is not None:
        nodes.extend(m.schema_ for m in operation.request_body.content)
    for response in operation.responses:
        nodes.extend(m.schema_ for m in response.content)

    targets: set[str] = set()
    for node in nodes:
        targets.update(reference_targets(node))
    return targets


def drop_dependent_operations(
    operations: list[OperationDescriptor],
    skipped: set[str],
    diagnostics: DiagnosticCollector,
) -> list[OperationDescriptor]:
    """Remove operations that reference a skipped named type."""
    kept: list[OperationDescriptor] = []
    for operation in operations:
        missing = operation_references(operation) & skipped
        if missing:
            diagnostics.report(
                DiagnosticCode.DEPENDENCY_SKIP,
                f"Skipping operation '{operation.id}': depends on skipped type "
                f"'{sorted(missing)[0]}'",
                severity=Severity.ERROR,
                location=f"{operation.method.value.upper()} {operation.path_template}",
            )
            continue
        kept.append(operation)
    return kept
