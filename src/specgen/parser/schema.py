"""Turn untyped schema dictionaries into :data:`~specgen.models.SchemaNode` values.

The parser is the boundary past which no plain-dict schema travels: the
resolver and the operation analyzer call :func:`parse_schema` on every schema
they meet, and everything downstream works on the tagged node union.

``$ref`` handling is delegated to a callback so that naming, caching and
cycle detection stay in :mod:`specgen.parser.resolver`.  The parser expects
3.1-shaped input (see :mod:`specgen.parser.normalizer`); the one 3.0 leftover
it accepts is ``nullable: true`` on a schema without ``type``.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from specgen.diagnostics import DiagnosticCode, DiagnosticCollector
from specgen.models import (
    AdditionalPolicy,
    AnyNode,
    ArrayNode,
    CompositionNode,
    Constraints,
    Discriminator,
    EnumNode,
    NullNode,
    ObjectNode,
    PrimitiveNode,
    ReferenceNode,
    SchemaNode,
    TypeArrayNode,
)

RefHandler = Callable[[str], ReferenceNode]

_PRIMITIVES = ("string", "number", "integer", "boolean")
_COMPOSITIONS = ("allOf", "anyOf", "oneOf")
_UNSUPPORTED = ("not", "if", "patternProperties", "prefixItems", "dependentSchemas")

_CONSTRAINT_KEYS = {
    "minLength": "min_length",
    "maxLength": "max_length",
    "pattern": "pattern",
    "minimum": "minimum",
    "maximum": "maximum",
    "exclusiveMinimum": "exclusive_minimum",
    "exclusiveMaximum": "exclusive_maximum",
    "multipleOf": "multiple_of",
}


def parse_schema(
    schema: Any,
    resolve_ref: RefHandler,
    *,
    location: str = "#",
    diagnostics: Optional[DiagnosticCollector] = None,
) -> SchemaNode:
    """Parse *schema* into a :data:`SchemaNode`.

    Args:
        schema: A schema object from a normalized document.
        resolve_ref: Called with the raw ``$ref`` string; returns the
            :class:`ReferenceNode` standing for the target.
        location: JSON pointer of *schema*, used in diagnostics.
        diagnostics: Receives ``unsupported-keyword`` reports.

    Returns:
        The parsed node.  Empty, boolean or unrecognised schemas become
        :class:`AnyNode`.
    """
    return _SchemaParser(resolve_ref, diagnostics).parse(schema, location)


class _SchemaParser:
    def __init__(
        self, resolve_ref: RefHandler, diagnostics: Optional[DiagnosticCollector]
    ) -> None:
        self._resolve_ref = resolve_ref
        self._diagnostics = diagnostics

    def parse(self, schema: Any, location: str) -> SchemaNode:
        if not isinstance(schema, dict):
            return AnyNode()

        common = _common(schema)

        if isinstance(schema.get("$ref"), str):
            node: SchemaNode = self._resolve_ref(schema["$ref"])
            if common:
                node = node.model_copy(update=common)
            if schema.get("nullable") is True:
                return TypeArrayNode(members=[node, NullNode()])
            return node

        if schema.get("nullable") is True:
            inner = {k: v for k, v in schema.items() if k != "nullable"}
            return TypeArrayNode(
                members=[self.parse(inner, location), NullNode()], **_common(inner)
            )

        self._report_unsupported(schema, location)

        if isinstance(schema.get("x-extensible-enum"), list):
            return EnumNode(values=list(schema["x-extensible-enum"]), extensible=True, **common)
        if isinstance(schema.get("enum"), list):
            return EnumNode(values=list(schema["enum"]), **common)
        if "const" in schema:
            return EnumNode(values=[schema["const"]], **common)

        for composition in _COMPOSITIONS:
            if isinstance(schema.get(composition), list):
                return self._composition(schema, composition, location)

        kind = schema.get("type")
        if isinstance(kind, list):
            return self._type_array(schema, kind, location)
        if kind is None:
            if "properties" in schema or "additionalProperties" in schema:
                kind = "object"
            elif "items" in schema:
                kind = "array"

        if kind in _PRIMITIVES:
            return self._primitive(schema, kind)
        if kind == "null":
            return NullNode(**common)
        if kind == "array":
            return self._array(schema, location)
        if kind == "object":
            return self._object(schema, location)
        return AnyNode(**common)

    # --- Node builders ---

    def _primitive(self, schema: dict[str, Any], kind: str) -> PrimitiveNode:
        values = {
            field: schema[key]
            for key, field in _CONSTRAINT_KEYS.items()
            if key in schema and not isinstance(schema[key], bool)
        }
        fmt = schema.get("format")
        return PrimitiveNode(
            type=kind,
            format=fmt if isinstance(fmt, str) else None,
            constraints=Constraints(**values),
            **_common(schema),
        )

    def _array(self, schema: dict[str, Any], location: str) -> ArrayNode:
        items = schema.get("items")
        return ArrayNode(
            items=self.parse(items, f"{location}/items") if isinstance(items, dict) else None,
            min_items=schema.get("minItems"),
            max_items=schema.get("maxItems"),
            unique_items=bool(schema.get("uniqueItems", False)),
            **_common(schema),
        )

    def _object(self, schema: dict[str, Any], location: str) -> ObjectNode:
        properties = {
            name: self.parse(sub, f"{location}/properties/{name}")
            for name, sub in (schema.get("properties") or {}).items()
        }

        additional_schema: Optional[SchemaNode] = None
        declared = "additionalProperties" in schema
        extra = schema.get("additionalProperties")
        if extra is False:
            policy = AdditionalPolicy.CLOSED
        elif isinstance(extra, dict) and extra:
            policy = AdditionalPolicy.TYPED
            additional_schema = self.parse(extra, f"{location}/additionalProperties")
        else:
            policy = AdditionalPolicy.OPEN

        return ObjectNode(
            properties=properties,
            required=[r for r in schema.get("required") or [] if isinstance(r, str)],
            additional_policy=policy,
            additional_schema=additional_schema,
            additional_declared=declared,
            title=schema.get("title"),
            **_common(schema),
        )

    def _type_array(self, schema: dict[str, Any], kinds: list[Any], location: str) -> SchemaNode:
        base = {k: v for k, v in schema.items() if k not in _UNSUPPORTED}
        if len(kinds) == 1:
            return self.parse({**base, "type": kinds[0]}, location)
        members: list[SchemaNode] = []
        for kind in kinds:
            if kind == "null":
                members.append(NullNode())
            else:
                member = {k: v for k, v in base.items() if k not in ("default", "description")}
                members.append(self.parse({**member, "type": kind}, location))
        return TypeArrayNode(members=members, **_common(schema))

    def _composition(self, schema: dict[str, Any], composition: str, location: str) -> SchemaNode:
        members = [
            self.parse(sub, f"{location}/{composition}/{i}")
            for i, sub in enumerate(schema[composition])
        ]
        own = {
            k: v
            for k, v in schema.items()
            if k not in (composition, "discriminator", "description", "default", "title")
        }
        own_shape = any(k in own for k in ("properties", "additionalProperties", "required"))

        if composition == "allOf":
            if own_shape:
                members.append(self._object({**own, "type": "object"}, location))
            return CompositionNode(composition="allOf", members=members, **_common(schema))

        union = CompositionNode(
            composition=composition,
            members=members,
            discriminator=self._discriminator(schema.get("discriminator")),
            **({} if own_shape else _common(schema)),
        )
        if own_shape:
            own_node = self._object({**own, "type": "object"}, location)
            return CompositionNode(
                composition="allOf", members=[own_node, union], **_common(schema)
            )
        return union

    def _discriminator(self, raw: Any) -> Optional[Discriminator]:
        if not isinstance(raw, dict) or not isinstance(raw.get("propertyName"), str):
            return None
        mapping: Optional[dict[str, str]] = None
        if isinstance(raw.get("mapping"), dict):
            mapping = {}
            for tag, target in raw["mapping"].items():
                ref = target if ("#" in target or "/" in target) else f"#/components/schemas/{target}"
                mapping[str(tag)] = self._resolve_ref(ref).target
        return Discriminator(property_name=raw["propertyName"], mapping=mapping)

    def _report_unsupported(self, schema: dict[str, Any], location: str) -> None:
        if self._diagnostics is None:
            return
        for keyword in _UNSUPPORTED:
            if keyword in schema:
                self._diagnostics.report(
                    DiagnosticCode.UNSUPPORTED_KEYWORD,
                    f"Keyword '{keyword}' is not enforced by generated validators",
                    location=location,
                )


def _common(schema: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if isinstance(schema.get("description"), str):
        out["description"] = schema["description"]
    if "default" in schema:
        out["default"] = schema["default"]
        out["has_default"] = True
    return out


def reference_targets(node: Any) -> list[str]:
    """Every named-type target *node* mentions, in first-seen order.

    Discriminator mapping targets are included.  ``forward`` references
    count too; use :func:`import_targets` for the non-deferred subset.
    """
    return list(dict.fromkeys(_walk_references(node, include_forward=True)))


def import_targets(node: Any) -> list[str]:
    """Targets referenced without deferral, i.e. those that must be imported."""
    return list(dict.fromkeys(_walk_references(node, include_forward=False)))


def _walk_references(node: Any, include_forward: bool):
    if isinstance(node, ReferenceNode):
        if include_forward or not node.forward:
            yield node.target
    elif isinstance(node, ArrayNode):
        if node.items is not None:
            yield from _walk_references(node.items, include_forward)
    elif isinstance(node, ObjectNode):
        for prop in node.properties.values():
            yield from _walk_references(prop, include_forward)
        if node.additional_schema is not None:
            yield from _walk_references(node.additional_schema, include_forward)
    elif isinstance(node, (CompositionNode, TypeArrayNode)):
        for member in node.members:
            yield from _walk_references(member, include_forward)
        discriminator = getattr(node, "discriminator", None)
        if include_forward and discriminator is not None and discriminator.mapping:
            yield from discriminator.mapping.values()
