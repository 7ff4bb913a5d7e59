"""Canonical Pydantic models shared across all specgen modules.

This is the single source of truth for data shapes in the project.  Every
other module imports from here rather than defining its own models.  The
models fall into four groups:

**Configuration** -- :class:`GeneratorConfig`, read once per run and frozen.

**Documents** -- :class:`Dialect`, :class:`ServerInfo` and
:class:`NormalizedDocument`, the Normalizer's output.

**Schema graph** -- the tagged :data:`SchemaNode` union
(:class:`PrimitiveNode`, :class:`NullNode`, :class:`AnyNode`,
:class:`ArrayNode`, :class:`ObjectNode`, :class:`CompositionNode`,
:class:`ReferenceNode`, :class:`EnumNode`, :class:`TypeArrayNode`),
:class:`NamedType` and :class:`CodeFragment`.

**Operations** -- :class:`OperationDescriptor` and its parts, produced by the
Operation Analyzer, plus the :class:`ValidationPipeline` built from it by the
wrapper synthesizer.

Everything downstream of the Normalizer is immutable (``frozen=True``): a
descriptor is built once per document pass and consumed independently by the
client and server emitters.
"""

from __future__ import annotations

import enum
import keyword
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Configuration ---


class GeneratorConfig(BaseModel):
    """Invocation settings for one generation run.

    Built by :func:`~specgen.config.resolve_config` from CLI flags,
    ``SPECGEN_*`` environment variables and ``./specgen.json``.  Immutable
    for the duration of the run.

    Example::

        GeneratorConfig(input="petstore.yaml", output_dir=Path("out"), server=True)
    """

    model_config = ConfigDict(frozen=True)

    input: str = Field(description="Path or URL of the API description")
    output_dir: Path = Field(description="Directory that receives the emitted package")
    package: str = Field(default="api", description="Name of the emitted Python package")
    client: bool = Field(default=True, description="Emit client call functions")
    server: bool = Field(default=False, description="Emit server validation wrappers")
    strict_objects: bool = Field(
        default=False,
        description="Reject unknown keys on objects that do not declare additionalProperties",
    )
    force_validation: bool = Field(
        default=False,
        description="Validate response bodies eagerly instead of on parse()",
    )
    fetch_timeout: float = Field(default=30.0, description="Seconds allowed per document fetch")

    @field_validator("package")
    @classmethod
    def _package_is_identifier(cls, value: str) -> str:
        if not value.isidentifier() or keyword.iskeyword(value):
            raise ValueError(f"package name {value!r} is not a valid Python identifier")
        return value


# --- Documents ---


class Dialect(str, enum.Enum):
    """API description dialects recognised by the version sniff."""

    SWAGGER_2_0 = "2.0"
    OPENAPI_3_0 = "3.0"
    OPENAPI_3_1 = "3.1"
    UNKNOWN = "unknown"


class ServerInfo(BaseModel):
    """A ``servers`` entry of the normalized document."""

    url: str
    description: Optional[str] = None


class NormalizedDocument(BaseModel):
    """A document rewritten into the OpenAPI 3.1 shape.

    ``tree`` holds the canonical document; schemas inside it are turned into
    :data:`SchemaNode` values by the resolver and never travel further as
    plain dicts.
    """

    location: str = Field(description="Absolute path or URL the document was loaded from")
    source_dialect: Dialect
    tree: dict[str, Any]

    @property
    def openapi(self) -> str:
        return str(self.tree.get("openapi", ""))

    @property
    def title(self) -> str:
        info = self.tree.get("info") or {}
        return str(info.get("title", "Untitled API"))

    @property
    def servers(self) -> list[ServerInfo]:
        return [
            ServerInfo(url=s.get("url", "/"), description=s.get("description"))
            for s in self.tree.get("servers", []) or []
            if isinstance(s, dict)
        ]

    @property
    def paths(self) -> dict[str, Any]:
        return self.tree.get("paths") or {}

    @property
    def components(self) -> dict[str, Any]:
        return self.tree.get("components") or {}

    @property
    def security(self) -> list[dict[str, list[str]]]:
        return self.tree.get("security") or []


# --- Schema graph ---


class _Node(BaseModel):
    """Fields shared by every schema node."""

    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    default: Any = None
    has_default: bool = False


class Constraints(BaseModel):
    """Numeric and string constraints of a primitive schema."""

    model_config = ConfigDict(frozen=True)

    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


class PrimitiveNode(_Node):
    node: Literal["primitive"] = "primitive"
    type: Literal["string", "number", "integer", "boolean"]
    format: Optional[str] = None
    constraints: Constraints = Field(default_factory=Constraints)


class NullNode(_Node):
    node: Literal["null"] = "null"


class AnyNode(_Node):
    """Unrecognised or empty schema; validates anything."""

    node: Literal["any"] = "any"


class ArrayNode(_Node):
    node: Literal["array"] = "array"
    items: Optional[SchemaNode] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: bool = False


class AdditionalPolicy(str, enum.Enum):
    """How an object treats keys it does not declare."""

    CLOSED = "closed"
    OPEN = "open"
    TYPED = "typed"


class ObjectNode(_Node):
    node: Literal["object"] = "object"
    properties: dict[str, SchemaNode] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    additional_policy: AdditionalPolicy = AdditionalPolicy.OPEN
    additional_schema: Optional[SchemaNode] = None
    additional_declared: bool = Field(
        default=False,
        description="True when the document spelled out additionalProperties",
    )
    title: Optional[str] = None


class Discriminator(BaseModel):
    model_config = ConfigDict(frozen=True)

    property_name: str
    mapping: Optional[dict[str, str]] = Field(
        default=None, description="Tag value -> named type (registry key, then final name)"
    )


class CompositionNode(_Node):
    node: Literal["composition"] = "composition"
    composition: Literal["allOf", "anyOf", "oneOf"]
    members: list[SchemaNode] = Field(default_factory=list)
    discriminator: Optional[Discriminator] = None


class ReferenceNode(_Node):
    """Points at a :class:`NamedType`.

    ``forward`` marks a back-edge found while the target was still being
    resolved; the compiler defers such references instead of importing them.
    """

    node: Literal["reference"] = "reference"
    target: str
    forward: bool = False


class EnumNode(_Node):
    node: Literal["enum"] = "enum"
    values: list[Any]
    extensible: bool = False


class TypeArrayNode(_Node):
    """``type: [A, B, ...]`` split into one member node per listed type."""

    node: Literal["type_array"] = "type_array"
    members: list[SchemaNode]


SchemaNode = Annotated[
    Union[
        PrimitiveNode,
        NullNode,
        AnyNode,
        ArrayNode,
        ObjectNode,
        CompositionNode,
        ReferenceNode,
        EnumNode,
        TypeArrayNode,
    ],
    Field(discriminator="node"),
]

for _model in (ArrayNode, ObjectNode, CompositionNode, TypeArrayNode):
    _model.model_rebuild()


class NamedType(BaseModel):
    """A schema registered once per distinct reachable location.

    ``module`` is the snake_case module name of its emitted source unit.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    module: str
    node: SchemaNode
    location: str


class CodeFragment(BaseModel):
    """A compiled Python type expression plus the named types it needs.

    ``dependencies`` lists every named type the expression mentions;
    ``forward`` is the subset referenced lazily (no import needed).  ``code``
    is always a complete expression, so fragments compose by substitution.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    dependencies: frozenset[str] = frozenset()
    forward: frozenset[str] = frozenset()
    default: Any = None
    has_default: bool = False

    @property
    def imports(self) -> frozenset[str]:
        """Named types that must be imported for ``code`` to evaluate."""
        return self.dependencies - self.forward


# --- Operations ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods recognised on OpenAPI path items."""

    GET = "get"
    PUT = "put"
    POST = "post"
    DELETE = "delete"
    OPTIONS = "options"
    HEAD = "head"
    PATCH = "patch"
    TRACE = "trace"


class ParameterLocation(str, enum.Enum):
    QUERY = "query"
    PATH = "path"
    HEADER = "header"
    COOKIE = "cookie"


class ParameterDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    location: ParameterLocation
    required: bool = False
    description: Optional[str] = None
    deprecated: bool = False
    schema_: SchemaNode = Field(alias="schema")


class ParameterGroups(BaseModel):
    """Parameters split by their ``in`` location, document order preserved."""

    model_config = ConfigDict(frozen=True)

    query: list[ParameterDescriptor] = Field(default_factory=list)
    path: list[ParameterDescriptor] = Field(default_factory=list)
    header: list[ParameterDescriptor] = Field(default_factory=list)
    cookie: list[ParameterDescriptor] = Field(default_factory=list)


class ContentTypeMapping(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content_type: str
    schema_: SchemaNode = Field(alias="schema")


class RequestBodyDescriptor(BaseModel):
    """A request body; ``content[0]`` is the default content type."""

    model_config = ConfigDict(frozen=True)

    required: bool = False
    description: Optional[str] = None
    content: list[ContentTypeMapping] = Field(default_factory=list)

    @property
    def default_content_type(self) -> Optional[str]:
        return self.content[0].content_type if self.content else None


class ResponseDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: str
    description: Optional[str] = None
    content: list[ContentTypeMapping] = Field(default_factory=list)


class ResponseUnionMember(BaseModel):
    """One branch of an operation's response union.

    ``content_type`` and ``schema_`` are ``None`` for a status code declared
    without content (a ``void`` data slot).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: str
    content_type: Optional[str] = None
    schema_: Optional[SchemaNode] = Field(default=None, alias="schema")

    @property
    def is_void(self) -> bool:
        return self.schema_ is None


class SecurityHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    required: bool
    schemes: list[str] = Field(default_factory=list)


class ResolvedSecurity(BaseModel):
    """Security in effect for one operation after the override rule.

    ``alternatives`` lists, per requirement object, the scheme names that
    must all be satisfied.  An empty ``alternatives`` list is the explicit
    "no authentication required" outcome.
    """

    model_config = ConfigDict(frozen=True)

    alternatives: list[list[str]] = Field(default_factory=list)
    headers: list[SecurityHeader] = Field(default_factory=list)
    overrides_global: bool = False

    @property
    def requires_auth(self) -> bool:
        return bool(self.alternatives) and all(self.alternatives)


class OperationDescriptor(BaseModel):
    """One HTTP method bound to one path template."""

    model_config = ConfigDict(frozen=True)

    id: str
    method: HTTPMethod
    path_template: str
    summary: Optional[str] = None
    description: Optional[str] = None
    deprecated: bool = False
    tags: list[str] = Field(default_factory=list)
    path_level_parameters: list[ParameterDescriptor] = Field(default_factory=list)
    parameters: ParameterGroups = Field(default_factory=ParameterGroups)
    request_body: Optional[RequestBodyDescriptor] = None
    responses: list[ResponseDescriptor] = Field(default_factory=list)
    response_union: list[ResponseUnionMember] = Field(default_factory=list)
    security: ResolvedSecurity


class PipelineStage(BaseModel):
    """One validation step of a request pipeline."""

    model_config = ConfigDict(frozen=True)

    section: Literal["query", "path", "headers", "body"]
    error_type: Literal["query_error", "path_error", "headers_error", "body_error"]
    validator: str = Field(description="Name of the emitted validator for this section")


class ValidationPipeline(BaseModel):
    """Ordered request validation for one operation.

    The stage order is fixed (query, path, headers, body) and evaluation
    stops at the first failing stage.
    """

    model_config = ConfigDict(frozen=True)

    operation_id: str
    stages: list[PipelineStage]
    body_required: bool = False
    default_content_type: Optional[str] = None

    @property
    def error_types(self) -> list[str]:
        return [stage.error_type for stage in self.stages]
