"""Resolve an operation's security requirements to concrete request headers.

The override rule: an operation-level ``security`` array, when present (even
if empty), fully replaces the document-level one.  Each requirement object is
one alternative; the schemes inside an alternative must all be satisfied.

Header mapping:

* ``apiKey`` with ``in: header`` -- the key's ``name``.
* ``http`` (basic, bearer, ...), ``oauth2`` and ``openIdConnect`` --
  ``Authorization``.
* ``apiKey`` in query or cookie -- no header.

A header is *required* only if every alternative needs it.
"""

from __future__ import annotations

from typing import Any, Optional

from specgen.models import ResolvedSecurity, SecurityHeader

AUTHORIZATION = "Authorization"


def scheme_header(scheme: dict[str, Any]) -> Optional[str]:
    """Header a security scheme is carried in, or ``None``."""
    kind = scheme.get("type")
    if kind == "apiKey":
        if scheme.get("in") == "header" and isinstance(scheme.get("name"), str):
            return scheme["name"]
        return None
    if kind in ("http", "oauth2", "openIdConnect"):
        return AUTHORIZATION
    return None


def resolve_security(
    operation_security: Optional[list[Any]],
    global_security: list[Any],
    schemes: dict[str, Any],
) -> ResolvedSecurity:
    """Apply the override rule and compute the header set.

    Args:
        operation_security: The operation's ``security`` value, or ``None``
            when the operation does not declare one.
        global_security: The document-level ``security`` value.
        schemes: ``components.securitySchemes``.

    Returns:
        The :class:`~specgen.models.ResolvedSecurity` for the operation.
        An explicit ``security: []`` yields no alternatives and no headers.
    """
    overrides = operation_security is not None
    requirements = operation_security if overrides else global_security
    alternatives = [
        [str(name) for name in requirement]
        for requirement in requirements or []
        if isinstance(requirement, dict)
    ]

    # header (lower-cased) -> [spelling, schemes]
    found: dict[str, tuple[str, list[str]]] = {}
    per_alternative: list[set[str]] = []
    for alternative in alternatives:
        needed: set[str] = set()
        for scheme_name in alternative:
            scheme = schemes.get(scheme_name)
            header = scheme_header(scheme) if isinstance(scheme, dict) else None
            if header is None:
                continue
            key = header.lower()
            needed.add(key)
            spelling, names = found.setdefault(key, (header, []))
            if scheme_name not in names:
                names.append(scheme_name)
        per_alternative.append(needed)

    headers = [
        SecurityHeader(
            name=spelling,
            required=all(key in needed for needed in per_alternative),
            schemes=names,
        )
        for key, (spelling, names) in found.items()
    ]
    return ResolvedSecurity(
        alternatives=alternatives, headers=headers, overrides_global=overrides
    )


def document_auth_headers(schemes: dict[str, Any]) -> list[str]:
    """Every distinct header carried by any of *schemes*, first spelling wins."""
    found: dict[str, str] = {}
    for scheme in schemes.values():
        header = scheme_header(scheme) if isinstance(scheme, dict) else None
        if header is not None:
            found.setdefault(header.lower(), header)
    return list(found.values())
