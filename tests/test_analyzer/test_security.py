"""Tests for specgen.analyzer.security."""

from __future__ import annotations

from typing import Any, Optional

import pytest

from specgen.analyzer.security import document_auth_headers, resolve_security, scheme_header

SCHEMES: dict[str, Any] = {
    "apiKey": {"type": "apiKey", "in": "header", "name": "X-API-Key"},
    "queryKey": {"type": "apiKey", "in": "query", "name": "key"},
    "basic": {"type": "http", "scheme": "basic"},
    "bearer": {"type": "http", "scheme": "bearer"},
    "oauth": {"type": "oauth2", "flows": {}},
}


# ---------------------------------------------------------------------------
# scheme_header
# ---------------------------------------------------------------------------


class TestSchemeHeader:
    """Which header a scheme travels in."""

    @pytest.mark.parametrize(
        "scheme, expected",
        [
            ({"type": "apiKey", "in": "header", "name": "X-Key"}, "X-Key"),
            ({"type": "apiKey", "in": "query", "name": "key"}, None),
            ({"type": "apiKey", "in": "cookie", "name": "sid"}, None),
            ({"type": "http", "scheme": "bearer"}, "Authorization"),
            ({"type": "oauth2"}, "Authorization"),
            ({"type": "openIdConnect"}, "Authorization"),
            ({"type": "mutualTLS"}, None),
        ],
    )
    def test_mapping(self, scheme: dict[str, Any], expected: Optional[str]) -> None:
        assert scheme_header(scheme) == expected


# ---------------------------------------------------------------------------
# resolve_security
# ---------------------------------------------------------------------------


class TestResolveSecurity:
    """The override rule and required header computation."""

    def test_global_applies_when_operation_silent(self) -> None:
        resolved = resolve_security(None, [{"apiKey": []}], SCHEMES)
        assert resolved.overrides_global is False
        assert resolved.alternatives == [["apiKey"]]
        assert [(h.name, h.required, h.schemes) for h in resolved.headers] == [
            ("X-API-Key", True, ["apiKey"])
        ]

    def test_empty_operation_security_overrides(self) -> None:
        resolved = resolve_security([], [{"apiKey": []}], SCHEMES)
        assert resolved.overrides_global is True
        assert resolved.alternatives == []
        assert resolved.headers == []
        assert resolved.requires_auth is False

    def test_operation_security_replaces_global(self) -> None:
        resolved = resolve_security([{"bearer": []}], [{"apiKey": []}], SCHEMES)
        assert [h.name for h in resolved.headers] == ["Authorization"]

    def test_alternatives_make_headers_optional(self) -> None:
        resolved = resolve_security([{"apiKey": []}, {"bearer": []}], [], SCHEMES)
        assert [(h.name, h.required) for h in resolved.headers] == [
            ("X-API-Key", False),
            ("Authorization", False),
        ]
        assert resolved.requires_auth is True

    def test_schemes_within_one_alternative_all_required(self) -> None:
        resolved = resolve_security([{"apiKey": [], "bearer": []}], [], SCHEMES)
        assert [(h.name, h.required) for h in resolved.headers] == [
            ("X-API-Key", True),
            ("Authorization", True),
        ]

    def test_shared_header_required_across_alternatives(self) -> None:
        resolved = resolve_security([{"basic": []}, {"oauth": ["read"]}], [], SCHEMES)
        [header] = resolved.headers
        assert header.name == "Authorization"
        assert header.required is True
        assert header.schemes == ["basic", "oauth"]

    def test_empty_alternative_is_optional_auth(self) -> None:
        resolved = resolve_security([{}, {"apiKey": []}], [], SCHEMES)
        assert resolved.requires_auth is False
        assert resolved.headers[0].required is False

    def test_query_key_needs_no_header(self) -> None:
        resolved = resolve_security([{"queryKey": []}], [], SCHEMES)
        assert resolved.headers == []
        assert resolved.requires_auth is True

    def test_unknown_scheme_ignored(self) -> None:
        resolved = resolve_security([{"nope": []}], [], SCHEMES)
        assert resolved.alternatives == [["nope"]]
        assert resolved.headers == []


class TestDocumentAuthHeaders:
    """Every header any scheme may carry."""

    def test_distinct_in_declaration_order(self) -> None:
        assert document_auth_headers(SCHEMES) == ["X-API-Key", "Authorization"]

    def test_case_insensitive_first_spelling_wins(self) -> None:
        schemes = {
            "a": {"type": "apiKey", "in": "header", "name": "X-Token"},
            "b": {"type": "apiKey", "in": "header", "name": "x-token"},
        }
        assert document_auth_headers(schemes) == ["X-Token"]

    def test_empty(self) -> None:
        assert document_auth_headers({}) == []
