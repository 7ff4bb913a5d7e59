"""Compile schema nodes into Python type expressions.

:meth:`SchemaCompiler.compile` is a recursive descent over the
:data:`~specgen.models.SchemaNode` union.  Every call returns a
:class:`~specgen.models.CodeFragment` whose ``code`` is a complete Python
expression that pydantic's ``TypeAdapter`` understands, together with the
named types the expression mentions.  Fragments never share mutable state;
a parent's dependencies are the union of its children's.

The expressions use the combinators of the emitted ``_runtime`` module:

==================  ==============================================
Schema shape        Emitted expression
==================  ==============================================
primitive           ``StrictStr`` / ``StrictInt`` / ``StrictFloat`` /
                    ``StrictBool``, with constraints in
                    ``Annotated[..., Field(...)]``
string format       ``formatted(UUID, StrictStr)``: the string and its
                    constraints are checked before it is parsed
enum                ``Literal[...]``; extensible: ``union(Literal[...], StrictStr)``;
                    parameters parse text first with ``from_text(int)``
array               ``list[T]``
object              ``model("Name", {...}, extra=...)``
``[T, null]``       ``Optional[T]``
other type arrays   ``union(A, B, ...)`` (first match wins)
anyOf               ``union(A, B, ...)``
oneOf               ``one_of(A, B, ...)`` (exactly one branch must match)
allOf               ``all_of(A, B, ...)``
discriminated       ``tagged("prop", {"tag": T, ...})``
reference           ``Name``, or ``lazy("Name")`` across a cycle
anything else       ``Any``
==================  ==============================================

Compilation never fails: unknown formats degrade to the bare primitive,
and unusable keywords are reported and dropped.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Optional

from specgen.diagnostics import DiagnosticCode, DiagnosticCollector
from specgen.models import (
    AdditionalPolicy,
    AnyNode,
    ArrayNode,
    CodeFragment,
    CompositionNode,
    EnumNode,
    NamedType,
    NullNode,
    ObjectNode,
    PrimitiveNode,
    ReferenceNode,
    SchemaNode,
    TypeArrayNode,
)
from specgen.compiler.naming import pascal_case

_STRING_FORMATS = {
    "uuid": "UUID",
    "date-time": "datetime",
    "date": "date",
    "time": "time",
    "duration": "timedelta",
    "uri": "AnyUrl",
    "url": "AnyUrl",
    "ipv4": "IPv4Address",
    "ipv6": "IPv6Address",
}

_STRICT = {"string": "StrictStr", "integer": "StrictInt", "number": "StrictFloat", "boolean": "StrictBool"}
_COERCING = {"string": "str", "integer": "int", "number": "float", "boolean": "bool"}

_NUMERIC_BOUNDS = (
    ("minimum", "ge"),
    ("maximum", "le"),
    ("exclusive_minimum", "gt"),
    ("exclusive_maximum", "lt"),
    ("multiple_of", "multiple_of"),
)

_NO_TAG = object()

ANY = CodeFragment(code="Any")


def combine(code: str, parts: Iterable[CodeFragment] = (), **extra: Any) -> CodeFragment:
    """Build a fragment for *code* whose dependencies are those of *parts*.

    A name stays ``forward`` only if no part needs it imported.
    """
    parts = list(parts)
    direct = frozenset().union(*(p.imports for p in parts))
    forward = frozenset().union(*(p.forward for p in parts)) - direct
    return CodeFragment(code=code, dependencies=direct | forward, forward=forward, **extra)


def _literal(value: Any) -> str:
    return repr(value)


def _is_literal_value(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, bool))


class SchemaCompiler:
    """Turns schema nodes into :class:`CodeFragment` values.

    Args:
        named_types: Every emitted named type, by final name.  Used to look
            through references when inferring discriminator tags and
            checking ``anyOf`` overlap.
        strict_objects: Reject unknown keys on objects that do not declare
            ``additionalProperties``.
        diagnostics: Receives ambiguity and unsupported-keyword reports.
    """

    def __init__(
        self,
        named_types: Iterable[NamedType] = (),
        *,
        strict_objects: bool = False,
        diagnostics: Optional[DiagnosticCollector] = None,
    ) -> None:
        self._types = {t.name: t for t in named_types}
        self._strict_objects = strict_objects
        self._diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self._handlers: dict[str, Callable[[Any, str, bool], CodeFragment]] = {
            "primitive": self._primitive,
            "null": lambda node, hint, coerce: CodeFragment(code="None"),
            "any": lambda node, hint, coerce: ANY,
            "array": self._array,
            "object": self._object,
            "composition": self._composition,
            "reference": self._reference,
            "enum": self._enum,
            "type_array": self._type_array,
        }

    def compile_named(self, named: NamedType) -> CodeFragment:
        """Compile the body of a named type; object models take its name."""
        return self.compile(named.node, hint=named.name)

    def compile(self, node: SchemaNode, *, hint: str = "Model", coerce: bool = False) -> CodeFragment:
        """Compile *node*.

        Args:
            node: The schema node.
            hint: Base name for object models created inside *node*.
            coerce: Use coercing primitives (``int`` rather than
                ``StrictInt``); set for parameters, which arrive as strings.
        """
        fragment = self._handlers[node.node](node, hint, coerce)
        if node.has_default and not fragment.has_default:
            fragment = fragment.model_copy(update={"default": node.default, "has_default": True})
        return fragment

    # ------------------------------------------------------------------ #
    # Leaves
    # ------------------------------------------------------------------ #

    def _primitive(self, node: PrimitiveNode, hint: str, coerce: bool) -> CodeFragment:
        c = node.constraints
        field_args: list[str] = []
        metadata: list[str] = []

        if node.type != "string":
            base = (_COERCING if coerce else _STRICT)[node.type]
            if node.type in ("integer", "number"):
                for attr, keyword in _NUMERIC_BOUNDS:
                    value = getattr(c, attr)
                    if value is not None:
                        field_args.append(f"{keyword}={_literal(_tidy_number(value))}")
            return CodeFragment(code=_annotated(base, field_args, metadata))

        if c.min_length is not None:
            field_args.append(f"min_length={c.min_length}")
        if c.max_length is not None:
            field_args.append(f"max_length={c.max_length}")
        if node.format == "binary":
            return CodeFragment(code=_annotated("bytes", field_args, metadata))

        if c.pattern is not None:
            if _valid_pattern(c.pattern):
                metadata.append(f"pattern({c.pattern!r})")
            else:
                self._diagnostics.report(
                    DiagnosticCode.UNSUPPORTED_KEYWORD,
                    f"Pattern {c.pattern!r} is not a valid Python regular expression; ignored",
                    location=hint,
                )
        if node.format == "email":
            metadata.append("email")

        text = _annotated(_COERCING["string"] if coerce else _STRICT["string"], field_args, metadata)
        parsed = _STRING_FORMATS.get(node.format or "")
        if parsed is None:
            return CodeFragment(code=text)
        return CodeFragment(code=f"formatted({parsed}, {text})")

    def _enum(self, node: EnumNode, hint: str, coerce: bool) -> CodeFragment:
        if not node.values:
            return ANY
        values = ", ".join(_literal(v) for v in node.values)
        if all(_is_literal_value(v) for v in node.values):
            code = f"Literal[{values}]"
        else:
            code = f"choice({values})"
        if coerce:
            kinds = _text_kinds(node.values)
            if kinds:
                code = f"Annotated[{code}, from_text({', '.join(kinds)})]"
        if node.extensible:
            code = f"union({code}, {'str' if coerce else 'StrictStr'})"
        return CodeFragment(code=code)

    def _reference(self, node: ReferenceNode, hint: str, coerce: bool) -> CodeFragment:
        if coerce:
            named = self._types.get(node.target)
            if named is not None and isinstance(named.node, (PrimitiveNode, EnumNode)):
                return self.compile(named.node, hint=named.name, coerce=True)
        name = frozenset({node.target})
        if node.forward:
            return CodeFragment(code=f"lazy({node.target!r})", dependencies=name, forward=name)
        return CodeFragment(code=node.target, dependencies=name)

    # ------------------------------------------------------------------ #
    # Containers
    # ------------------------------------------------------------------ #

    def _array(self, node: ArrayNode, hint: str, coerce: bool) -> CodeFragment:
        items = self.compile(node.items, hint=f"{hint}Item", coerce=coerce) if node.items else ANY
        code = f"list[{items.code}]"
        field_args = []
        if node.min_items is not None:
            field_args.append(f"min_length={node.min_items}")
        if node.max_items is not None:
            field_args.append(f"max_length={node.max_items}")
        metadata = [f"Field({', '.join(field_args)})"] if field_args else []
        if node.unique_items:
            metadata.append("unique")
        if metadata:
            code = f"Annotated[{code}, {', '.join(metadata)}]"
        return combine(code, [items])

    def _object(self, node: ObjectNode, hint: str, coerce: bool) -> CodeFragment:
        if node.additional_policy == AdditionalPolicy.CLOSED:
            extra = "forbid"
        elif (
            node.additional_policy == AdditionalPolicy.OPEN
            and self._strict_objects
            and not node.additional_declared
        ):
            extra = "forbid"
        else:
            extra = "allow"

        additional: Optional[CodeFragment] = None
        if node.additional_policy == AdditionalPolicy.TYPED and node.additional_schema is not None:
            additional = self.compile(node.additional_schema, hint=f"{hint}Value", coerce=coerce)

        if not node.properties and extra == "allow":
            value = additional or ANY
            return combine(f"dict[str, {value.code}]", [value])

        parts: list[CodeFragment] = []
        entries: list[str] = []
        required = set(node.required)
        for name, prop_node in node.properties.items():
            fragment = self.compile(prop_node, hint=f"{hint}{pascal_case(name, 'Field')}", coerce=coerce)
            parts.append(fragment)
            if name in required:
                entries.append(f"{name!r}: prop({fragment.code}, required=True)")
            elif fragment.has_default:
                entries.append(f"{name!r}: prop({fragment.code}, default={_literal(fragment.default)})")
            else:
                entries.append(f"{name!r}: prop({fragment.code})")

        args = [repr(hint), "{" + ", ".join(entries) + "}", f"extra={extra!r}"]
        if additional is not None:
            args.append(f"extra_type={additional.code}")
            parts.append(additional)
        return combine(f"model({', '.join(args)})", parts)

    def _type_array(self, node: TypeArrayNode, hint: str, coerce: bool) -> CodeFragment:
        non_null = [m for m in node.members if not isinstance(m, NullNode)]
        if len(node.members) == 2 and len(non_null) == 1:
            inner = self.compile(non_null[0], hint=hint, coerce=coerce)
            return combine(f"Optional[{inner.code}]", [inner])
        members = [self.compile(m, hint=hint, coerce=coerce) for m in node.members]
        if len(members) == 1:
            return members[0]
        return combine(f"union({', '.join(m.code for m in members)})", members)

    # ------------------------------------------------------------------ #
    # Compositions
    # ------------------------------------------------------------------ #

    def _composition(self, node: CompositionNode, hint: str, coerce: bool) -> CodeFragment:
        label = "Part" if node.composition == "allOf" else "Option"
        members = [
            self.compile(m, hint=f"{hint}{label}{i + 1}", coerce=coerce)
            for i, m in enumerate(node.members)
        ]
        if not members:
            return ANY
        if len(members) == 1:
            return members[0]

        codes = ", ".join(m.code for m in members)
        if node.composition == "allOf":
            return combine(f"all_of({codes})", members)

        if node.discriminator is not None:
            tagged = self._tagged(node, members, hint)
            if tagged is not None:
                return tagged

        if node.composition == "anyOf":
            self._check_overlap(node, hint)
            return combine(f"union({codes})", members)
        return combine(f"one_of({codes})", members)

    def _tagged(
        self, node: CompositionNode, members: list[CodeFragment], hint: str
    ) -> Optional[CodeFragment]:
        discriminator = node.discriminator
        if discriminator is None:
            return None
        prop = discriminator.property_name
        branches: dict[Any, CodeFragment] = {}

        if discriminator.mapping:
            by_target = {
                m.target: fragment
                for m, fragment in zip(node.members, members)
                if isinstance(m, ReferenceNode)
            }
            for tag, target in discriminator.mapping.items():
                fragment = by_target.get(target)
                if fragment is None:
                    name = frozenset({target})
                    fragment = CodeFragment(code=f"lazy({target!r})", dependencies=name, forward=name)
                branches[tag] = fragment
            mapped = set(discriminator.mapping.values())
            for i, (member, fragment) in enumerate(zip(node.members, members)):
                if isinstance(member, ReferenceNode):
                    if member.target not in mapped:
                        branches.setdefault(self._infer_tag(member, prop), fragment)
                    continue
                tag = self._literal_tag(member, prop, frozenset())
                if tag is _NO_TAG or tag in branches:
                    self._untaggable(i, hint, prop, tag)
                    return None
                branches[tag] = fragment
        else:
            for i, (member, fragment) in enumerate(zip(node.members, members)):
                tag = self._infer_tag(member, prop)
                if tag is _NO_TAG or tag in branches:
                    self._untaggable(i, hint, prop, tag)
                    return None
                branches[tag] = fragment

        entries = ", ".join(f"{_literal(tag)}: {f.code}" for tag, f in branches.items())
        return combine(f"tagged({prop!r}, {{{entries}}})", branches.values())

    def _untaggable(self, index: int, hint: str, prop: str, tag: Any) -> None:
        reason = "has no literal value" if tag is _NO_TAG else "repeats a tag value"
        self._diagnostics.report(
            DiagnosticCode.COMPILATION_AMBIGUITY,
            f"Member {index + 1} of '{hint}' {reason} for discriminator '{prop}'; "
            "compiled as an untagged union",
            location=hint,
        )

    def _infer_tag(self, member: SchemaNode, prop: str) -> Any:
        tag = self._literal_tag(member, prop, frozenset())
        if tag is _NO_TAG and isinstance(member, ReferenceNode):
            return member.target
        return tag

    def _literal_tag(self, node: SchemaNode, prop: str, seen: frozenset[str]) -> Any:
        if isinstance(node, ReferenceNode):
            named = self._types.get(node.target)
            if named is None or node.target in seen:
                return _NO_TAG
            return self._literal_tag(named.node, prop, seen | {node.target})
        if isinstance(node, ObjectNode):
            value = node.properties.get(prop)
            if isinstance(value, EnumNode) and len(value.values) == 1:
                return value.values[0]
            return _NO_TAG
        if isinstance(node, CompositionNode) and node.composition == "allOf":
            for member in node.members:
                tag = self._literal_tag(member, prop, seen)
                if tag is not _NO_TAG:
                    return tag
        return _NO_TAG

    # ------------------------------------------------------------------ #
    # Overlap detection
    # ------------------------------------------------------------------ #

    def _check_overlap(self, node: CompositionNode, hint: str) -> None:
        shapes = [self._look_through(m) for m in node.members]
        for i, a in enumerate(shapes):
            for j in range(i + 1, len(shapes)):
                if _overlaps(a, shapes[j]):
                    self._diagnostics.report(
                        DiagnosticCode.COMPILATION_AMBIGUITY,
                        f"anyOf members {i + 1} and {j + 1} of '{hint}' overlap; "
                        "the first matching member wins",
                        location=hint,
                    )
                    return

    def _look_through(self, node: SchemaNode) -> SchemaNode:
        seen: set[str] = set()
        while isinstance(node, ReferenceNode) and node.target in self._types and node.target not in seen:
            seen.add(node.target)
            node = self._types[node.target].node
        return node


def _overlaps(a: SchemaNode, b: SchemaNode) -> bool:
    if isinstance(a, AnyNode) or isinstance(b, AnyNode):
        return True
    if isinstance(a, PrimitiveNode) and isinstance(b, PrimitiveNode):
        return a.type == b.type or {a.type, b.type} == {"integer", "number"}
    if isinstance(a, ObjectNode) and isinstance(b, ObjectNode):
        return _admits(a, b) or _admits(b, a)
    if isinstance(a, ArrayNode) and isinstance(b, ArrayNode):
        return True
    return isinstance(a, NullNode) and isinstance(b, NullNode)


def _admits(outer: ObjectNode, inner: ObjectNode) -> bool:
    """True if an object valid for *inner* can also satisfy open *outer*."""
    if outer.additional_policy == AdditionalPolicy.CLOSED:
        return False
    return set(outer.required) <= set(inner.properties)


def _valid_pattern(pattern: str) -> bool:
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True


def _tidy_number(value: float) -> Any:
    return int(value) if isinstance(value, float) and value.is_integer() else value


def _annotated(base: str, field_args: list[str], metadata: list[str]) -> str:
    if not field_args and not metadata:
        return base
    parts = [base]
    if field_args:
        parts.append(f"Field({', '.join(field_args)})")
    parts.extend(metadata)
    return f"Annotated[{', '.join(parts)}]"


def _text_kinds(values: list[Any]) -> list[str]:
    """Types a textual parameter value is parsed into before matching *values*."""
    kinds = []
    if any(isinstance(v, int) and not isinstance(v, bool) for v in values):
        kinds.append("int")
    if any(isinstance(v, float) for v in values):
        kinds.append("float")
    if any(isinstance(v, bool) for v in values):
        kinds.append("bool")
    return kinds
