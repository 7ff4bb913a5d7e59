"""Identifier sanitization and the deterministic renaming pass.

Every named type gets its final Python identifier here, once, after
resolution and before any code is compiled.  :func:`assign_names` walks the
registry in discovery order (``components.schemas`` first, in document
order) and gives each type a PascalCase name.  A name that collides with an
earlier type, with an earlier type's module name, or with an identifier the
emitted code reserves gets a numeric suffix (``Pet2``, ``Pet3``), and the
rename is reported as an ``identifier-collision`` diagnostic.

:func:`rewrite_references` then replaces registry keys with final names in
any node or descriptor, so later stages only ever see final names.
"""

from __future__ import annotations

import builtins
import keyword
import re
from typing import Any

from pydantic import BaseModel

from specgen.diagnostics import DiagnosticCode, DiagnosticCollector
from specgen.models import Discriminator, NamedType, ReferenceNode
from specgen.parser.resolver import SchemaRegistry

# Names imported into every emitted schema and operation unit.
RUNTIME_NAMES = frozenset(
    {
        "Annotated", "Any", "Literal", "Optional", "Field",
        "StrictStr", "StrictInt", "StrictFloat", "StrictBool",
        "UUID", "datetime", "date", "time", "timedelta",
        "AnyUrl", "IPv4Address", "IPv6Address",
        "union", "one_of", "all_of", "tagged", "lazy", "model", "prop",
        "pattern", "email", "unique", "choice", "formatted", "from_text",
        "register", "check", "CheckError",
    }
)

SUPPORT_NAMES = frozenset(
    {
        "ApiResponse", "ClientConfig", "RawRequest", "Route", "ValidatedRequest",
        "ValidationOk", "ValidationFailure", "UnexpectedResponseError",
        "check_body", "send", "functools", "Callable", "Union",
        "QueryParams", "PathParams", "Headers", "OPERATION_ID", "METHOD", "PATH",
        "REQUEST_BODY", "BODY_REQUIRED", "RESPONSES", "SECURITY_HEADERS",
        "EXPLICIT_NO_AUTH", "OPERATIONS", "SERVERS",
    }
)

RESERVED = (
    RUNTIME_NAMES
    | SUPPORT_NAMES
    | frozenset(keyword.kwlist)
    | frozenset(name for name in dir(builtins) if not name.startswith("_"))
)

_WORD = re.compile(r"[A-Za-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def pascal_case(raw: str, fallback: str = "Schema") -> str:
    """``"pet-owner.v2"`` -> ``"PetOwnerV2"``; keeps existing inner capitals."""
    words = _WORD.findall(raw)
    name = "".join(w[0].upper() + w[1:] for w in words)
    if not name:
        return fallback
    if name[0].isdigit():
        name = fallback[0] + name
    return name


def camel_case(raw: str, fallback: str = "operation") -> str:
    name = pascal_case(raw, fallback.capitalize())
    return name[0].lower() + name[1:]


def snake_case(raw: str) -> str:
    """``"PetOwnerV2"`` -> ``"pet_owner_v2"``; ``"X-Request-ID"`` -> ``"x_request_id"``."""
    parts: list[str] = []
    for word in _WORD.findall(raw):
        parts.extend(_CAMEL_BOUNDARY.split(word))
    name = "_".join(p.lower() for p in parts if p)
    if not name:
        return "value"
    if name[0].isdigit():
        name = "n" + name
    return name


def python_identifier(raw: str, taken: set[str]) -> str:
    """snake_case *raw* into an identifier not in *taken* (which is updated)."""
    base = snake_case(raw)
    if keyword.iskeyword(base) or base in RESERVED:
        base += "_"
    name, n = base, 1
    while name in taken:
        n += 1
        name = f"{base}{n}"
    taken.add(name)
    return name


def assign_names(registry: SchemaRegistry, diagnostics: DiagnosticCollector) -> dict[str, str]:
    """Map every registry key to its final type name.

    Returns:
        ``{registry key: final PascalCase name}``.
    """
    names: dict[str, str] = {}
    taken_names: set[str] = set()
    taken_modules: set[str] = set()

    for entry in registry.entries:
        base = pascal_case(entry.proposed)
        name, n = base, 1
        while _unavailable(name, taken_names, taken_modules):
            n += 1
            name = f"{base}{n}"

        if name != base:
            diagnostics.report(
                DiagnosticCode.IDENTIFIER_COLLISION,
                f"Type '{base}' renamed to '{name}'",
                location=entry.key,
            )
        names[entry.key] = name
        taken_names.add(name)
        taken_modules.add(snake_case(name))
    return names


def _unavailable(name: str, taken_names: set[str], taken_modules: set[str]) -> bool:
    module = snake_case(name)
    return (
        name in RESERVED
        or name in taken_names
        or module in taken_modules
        or keyword.iskeyword(module)
        or module.startswith("_")
    )


def rewrite_references(value: Any, names: dict[str, str]) -> Any:
    """Return *value* with every reference target replaced through *names*.

    Works on schema nodes, descriptors, and lists or dicts of them.
    Unchanged sub-objects are returned as-is.
    """
    if isinstance(value, ReferenceNode):
        target = names.get(value.target, value.target)
        return value if target == value.target else value.model_copy(update={"target": target})

    if isinstance(value, Discriminator):
        if not value.mapping:
            return value
        mapping = {tag: names.get(t, t) for tag, t in value.mapping.items()}
        return value if mapping == value.mapping else value.model_copy(update={"mapping": mapping})

    if isinstance(value, BaseModel):
        updates = {}
        for field_name in type(value).model_fields:
            current = getattr(value, field_name)
            rewritten = rewrite_references(current, names)
            if rewritten is not current:
                updates[field_name] = rewritten
        return value.model_copy(update=updates) if updates else value

    if isinstance(value, list):
        items = [rewrite_references(item, names) for item in value]
        return items if any(a is not b for a, b in zip(items, value)) else value

    if isinstance(value, dict):
        rewritten_dict = {k: rewrite_references(v, names) for k, v in value.items()}
        if any(rewritten_dict[k] is not v for k, v in value.items()):
            return rewritten_dict
        return value

    return value


def build_named_types(registry: SchemaRegistry, names: dict[str, str]) -> list[NamedType]:
    """Materialize :class:`NamedType` values in dependency (completion) order."""
    by_key = {entry.key: entry for entry in registry.entries}
    named: list[NamedType] = []
    for key in registry.completion_order:
        entry = by_key.get(key)
        if entry is None or entry.node is None:
            continue
        name = names[key]
        named.append(
            NamedType(
                name=name,
                module=snake_case(name),
                node=rewrite_references(entry.node, names),
                location=key,
            )
        )
    return named
