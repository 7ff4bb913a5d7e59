"""Tests for specgen.analyzer.operations.

Covers:
- Operation discovery order and id assignment
- Path-level / operation-level parameter merging and grouping
- Request bodies and the response union
- Skipping unresolvable operations and their dependents
"""

from __future__ import annotations

from typing import Any

import pytest

from specgen.analyzer.operations import (
    OperationAnalyzer,
    operation_id,
    response_union,
)
from specgen.diagnostics import DiagnosticCode, DiagnosticCollector
from specgen.models import (
    ArrayNode,
    ContentTypeMapping,
    HTTPMethod,
    OperationDescriptor,
    PrimitiveNode,
    ReferenceNode,
    ResponseDescriptor,
)
from specgen.parser.normalizer import normalize
from specgen.parser.resolver import DocumentCache, ReferenceResolver


def _analyze(paths: dict[str, Any], **extra: Any) -> tuple[list[OperationDescriptor], DiagnosticCollector]:
    raw = {"openapi": "3.1.0", "info": {"title": "T", "version": "1"}, "paths": paths, **extra}
    diagnostics = DiagnosticCollector()
    resolver = ReferenceResolver(normalize(raw), DocumentCache(), diagnostics)
    return OperationAnalyzer(resolver, diagnostics).analyze(), diagnostics


def _by_id(operations: list[OperationDescriptor]) -> dict[str, OperationDescriptor]:
    return {op.id: op for op in operations}


_OK = {"200": {"description": "ok"}}


# ---------------------------------------------------------------------------
# Petstore
# ---------------------------------------------------------------------------


class TestPetstore:
    """End-to-end analysis of the petstore fixture."""

    @pytest.fixture
    def operations(self, analyze_fixture) -> dict[str, OperationDescriptor]:
        analysis, _ = analyze_fixture("petstore_3.0.yaml")
        return _by_id(analysis.operations)

    def test_document_order(self, analyze_fixture) -> None:
        analysis, diagnostics = analyze_fixture("petstore_3.0.yaml")
        assert [op.id for op in analysis.operations] == [
            "listPets",
            "createPet",
            "showPetById",
            "deletePet",
            "health",
        ]
        assert not diagnostics.has_errors

    def test_parameters_grouped(self, operations: dict[str, OperationDescriptor]) -> None:
        params = operations["listPets"].parameters
        assert [p.name for p in params.query] == ["limit", "tag"]
        assert [p.name for p in params.header] == ["X-Request-ID"]
        assert params.path == []
        assert params.header[0].required is True
        assert params.query[0].description == "How many items to return at one time"

    def test_path_level_parameter_inherited(self, operations: dict[str, OperationDescriptor]) -> None:
        for op_id in ("showPetById", "deletePet"):
            op = operations[op_id]
            assert [p.name for p in op.parameters.path] == ["petId"]
            assert [p.name for p in op.path_level_parameters] == ["petId"]
            assert op.parameters.path[0].required is True

    def test_metadata(self, operations: dict[str, OperationDescriptor]) -> None:
        assert operations["listPets"].method == HTTPMethod.GET
        assert operations["listPets"].summary == "List all pets"
        assert operations["listPets"].tags == ["pets"]
        assert operations["deletePet"].deprecated is True
        assert operations["showPetById"].path_template == "/pets/{petId}"

    def test_request_body(self, operations: dict[str, OperationDescriptor]) -> None:
        body = operations["createPet"].request_body
        assert body is not None
        assert body.required is True
        assert body.default_content_type == "application/json"
        assert body.content[0].schema_ == ReferenceNode(target="NewPet")
        assert operations["listPets"].request_body is None

    def test_response_union(self, operations: dict[str, OperationDescriptor]) -> None:
        union = operations["listPets"].response_union
        assert [m.status_code for m in union] == ["200", "default"]
        assert isinstance(union[0].schema_, ArrayNode)
        assert union[0].schema_.items == ReferenceNode(target="Pet")
        assert union[1].schema_ == ReferenceNode(target="Error")

    def test_void_member(self, operations: dict[str, OperationDescriptor]) -> None:
        union = operations["showPetById"].response_union
        assert [(m.status_code, m.is_void) for m in union] == [("200", False), ("404", True)]
        assert [m.is_void for m in operations["deletePet"].response_union] == [True]

    def test_non_json_content(self, operations: dict[str, OperationDescriptor]) -> None:
        [member] = operations["health"].response_union
        assert member.content_type == "text/plain"
        assert isinstance(member.schema_, PrimitiveNode)

    def test_security(self, operations: dict[str, OperationDescriptor]) -> None:
        assert [h.name for h in operations["listPets"].security.headers] == ["X-API-Key"]
        assert operations["listPets"].security.requires_auth is True
        assert operations["health"].security.overrides_global is True
        assert operations["health"].security.alternatives == []


# ---------------------------------------------------------------------------
# Operation ids
# ---------------------------------------------------------------------------


class TestOperationIds:
    """Sanitized, unique identifiers."""

    def test_sanitized(self) -> None:
        assert operation_id({"operationId": "list-all pets"}, "get", "/pets") == "listAllPets"

    def test_derived_from_method_and_path(self) -> None:
        assert operation_id({}, "get", "/users/{id}/posts") == "getUsersIdPosts"
        assert operation_id({"operationId": "  "}, "post", "/") == "post"

    def test_duplicates_suffixed(self) -> None:
        operations, _ = _analyze(
            {
                "/a": {"get": {"operationId": "dup", "responses": _OK}},
                "/b": {"get": {"operationId": "dup", "responses": _OK}},
                "/c": {"get": {"operationId": "Dup", "responses": _OK}},
            }
        )
        assert [op.id for op in operations] == ["dup", "dup2", "dup3"]

    def test_non_method_keys_ignored(self) -> None:
        operations, _ = _analyze(
            {"/a": {"summary": "x", "servers": [], "get": {"responses": _OK}}}
        )
        assert [op.id for op in operations] == ["getA"]


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


class TestParameters:
    """Merging, required path parameters and ignored headers."""

    def test_operation_level_overrides_path_level(self) -> None:
        operations, _ = _analyze(
            {
                "/a": {
                    "parameters": [
                        {"name": "q", "in": "query", "schema": {"type": "string"}},
                        {"name": "q", "in": "header", "schema": {"type": "string"}},
                    ],
                    "get": {
                        "parameters": [{"name": "q", "in": "query", "schema": {"type": "integer"}}],
                        "responses": _OK,
                    },
                }
            }
        )
        [op] = operations
        [query] = op.parameters.query
        assert query.schema_.type == "integer"
        assert [p.name for p in op.parameters.header] == ["q"]
        assert len(op.path_level_parameters) == 2

    def test_path_parameter_always_required(self) -> None:
        operations, _ = _analyze(
            {
                "/a/{id}": {
                    "get": {
                        "parameters": [{"name": "id", "in": "path", "schema": {"type": "string"}}],
                        "responses": _OK,
                    }
                }
            }
        )
        assert operations[0].parameters.path[0].required is True

    @pytest.mark.parametrize("header", ["Accept", "content-type", "Authorization"])
    def test_transport_headers_ignored(self, header: str) -> None:
        operations, _ = _analyze(
            {
                "/a": {
                    "get": {
                        "parameters": [{"name": header, "in": "header", "schema": {"type": "string"}}],
                        "responses": _OK,
                    }
                }
            }
        )
        assert operations[0].parameters.header == []

    def test_parameter_reference_and_content_schema(self) -> None:
        operations, _ = _analyze(
            {
                "/a": {
                    "get": {
                        "parameters": [
                            {"$ref": "#/components/parameters/Filter"},
                            {
                                "name": "c",
                                "in": "cookie",
                                "content": {"application/json": {"schema": {"type": "boolean"}}},
                            },
                        ],
                        "responses": _OK,
                    }
                }
            },
            components={
                "parameters": {"Filter": {"name": "filter", "in": "query", "schema": {"type": "string"}}}
            },
        )
        params = operations[0].parameters
        assert [p.name for p in params.query] == ["filter"]
        assert params.cookie[0].schema_.type == "boolean"


# ---------------------------------------------------------------------------
# Bodies and responses
# ---------------------------------------------------------------------------


class TestBodiesAndResponses:
    """Content type order and status ordering."""

    def test_content_type_order_kept(self) -> None:
        operations, _ = _analyze(
            {
                "/a": {
                    "post": {
                        "requestBody": {
                            "content": {
                                "application/xml": {"schema": {"type": "string"}},
                                "application/json": {"schema": {"type": "object"}},
                            }
                        },
                        "responses": _OK,
                    }
                }
            }
        )
        body = operations[0].request_body
        assert [c.content_type for c in body.content] == ["application/xml", "application/json"]
        assert body.default_content_type == "application/xml"
        assert body.required is False

    def test_status_ordering(self) -> None:
        responses = [
            ResponseDescriptor(status_code=code)
            for code in ("default", "5XX", "2XX", "404", "200")
        ]
        assert [m.status_code for m in response_union(responses)] == [
            "200",
            "404",
            "2XX",
            "5XX",
            "default",
        ]

    def test_one_member_per_content_type(self) -> None:
        string = PrimitiveNode(type="string")
        responses = [
            ResponseDescriptor(
                status_code="200",
                content=[
                    ContentTypeMapping(content_type="application/json", schema=string),
                    ContentTypeMapping(content_type="text/plain", schema=string),
                ],
            )
        ]
        union = response_union(responses)
        assert [(m.status_code, m.content_type) for m in union] == [
            ("200", "application/json"),
            ("200", "text/plain"),
        ]


# ---------------------------------------------------------------------------
# Skips
# ---------------------------------------------------------------------------


class TestSkips:
    """Unresolvable operations are skipped, never fatal."""

    def test_unresolvable_parameter(self) -> None:
        operations, diagnostics = _analyze(
            {
                "/a": {
                    "get": {"parameters": [{"$ref": "#/components/parameters/Nope"}], "responses": _OK},
                    "post": {"responses": _OK},
                }
            }
        )
        assert [op.id for op in operations] == ["postA"]
        [diagnostic] = diagnostics.by_code(DiagnosticCode.RESOLUTION_SKIP)
        assert diagnostic.location == "GET /a"

    def test_operation_depending_on_skipped_type(self, analyze_fixture) -> None:
        analysis, diagnostics = analyze_fixture("external/main.yaml")
        assert [op.id for op in analysis.operations] == ["listDogs"]
        messages = [d.message for d in diagnostics.by_code(DiagnosticCode.DEPENDENCY_SKIP)]
        assert "Skipping operation 'listGhosts': depends on skipped type" in " ".join(messages)
        dependency_locations = [d.location for d in diagnostics.by_code(DiagnosticCode.DEPENDENCY_SKIP)]
        assert "GET /ghosts" in dependency_locations
