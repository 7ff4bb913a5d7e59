"""Synthesize the per-operation wrapper: request pipeline, client call and route.

:func:`synthesize_pipeline` fixes the order in which a request is checked
(query, path, headers, body) and the error type each stage reports.
:func:`bind_operation` compiles everything the emitted operation unit needs
on top of that: the parameter models, the request body and response schemas
per content type, and the keyword arguments of the client function.

Parameters arrive as strings, so their schemas are compiled with
``coerce=True``.  Header names are matched case-insensitively: the headers
model is keyed by lower-cased names and tolerates headers it does not
declare.
"""

from __future__ import annotations

import keyword
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from specgen.compiler.naming import pascal_case, python_identifier, snake_case
from specgen.compiler.schema_compiler import SchemaCompiler, combine
from specgen.models import (
    AdditionalPolicy,
    CodeFragment,
    GeneratorConfig,
    ObjectNode,
    OperationDescriptor,
    ParameterDescriptor,
    ParameterLocation,
    PipelineStage,
    SecurityHeader,
    ValidationPipeline,
)

_STAGES = (
    ("query", "query_error", "QueryParams"),
    ("path", "path_error", "PathParams"),
    ("headers", "headers_error", "Headers"),
    ("body", "body_error", "check_body"),
)

# Module-level names of an operation unit that client arguments must avoid.
_UNIT_NAMES = {"config", "body", "content_type", "validate_request", "wrap", "route"}


class BodyVariant(BaseModel):
    """A schema for one content type of a request or response body."""

    model_config = ConfigDict(frozen=True)

    content_type: str
    fragment: CodeFragment


class ResponseSlot(BaseModel):
    """One declared status; ``variants`` is ``None`` for a void response."""

    model_config = ConfigDict(frozen=True)

    status_code: str
    description: Optional[str] = None
    variants: Optional[list[BodyVariant]] = None


class ClientArgument(BaseModel):
    """A keyword argument of the emitted client function."""

    model_config = ConfigDict(frozen=True)

    name: str
    wire_name: str
    location: ParameterLocation
    required: bool
    annotation: str
    description: Optional[str] = None


class OperationBinding(BaseModel):
    """Everything the emitter needs to write one operation unit."""

    model_config = ConfigDict(frozen=True)

    operation: OperationDescriptor
    module: str
    function_name: str
    pipeline: ValidationPipeline
    query_model: CodeFragment
    path_model: CodeFragment
    header_model: CodeFragment
    request_body: list[BodyVariant] = Field(default_factory=list)
    responses: list[ResponseSlot] = Field(default_factory=list)
    security_headers: list[SecurityHeader] = Field(default_factory=list)
    strip_headers: list[str] = Field(default_factory=list)
    arguments: list[ClientArgument] = Field(default_factory=list)
    client: bool = True
    server: bool = False
    force_validation: bool = False

    def fragments(self) -> list[CodeFragment]:
        """Every compiled fragment the unit embeds."""
        parts = [self.query_model, self.path_model, self.header_model]
        parts.extend(v.fragment for v in self.request_body)
        for slot in self.responses:
            parts.extend(v.fragment for v in slot.variants or ())
        return parts

    def merged(self) -> CodeFragment:
        """All fragments combined; its ``imports`` are the unit's schema imports."""
        return combine("", self.fragments())


def synthesize_pipeline(operation: OperationDescriptor) -> ValidationPipeline:
    """Build the fixed four-stage validation pipeline for *operation*.

    Stages always run in the order query, path, headers, body, each
    reporting its own error type; the first failing stage ends the request.
    """
    body = operation.request_body
    return ValidationPipeline(
        operation_id=operation.id,
        stages=[
            PipelineStage(section=section, error_type=error_type, validator=validator)
            for section, error_type, validator in _STAGES
        ],
        body_required=bool(body and body.required),
        default_content_type=body.default_content_type if body else None,
    )


def bind_operation(
    operation: OperationDescriptor,
    compiler: SchemaCompiler,
    config: GeneratorConfig,
    auth_headers: Sequence[str] = (),
) -> OperationBinding:
    """Compile the schemas of *operation* into an :class:`OperationBinding`.

    Args:
        operation: Descriptor with final type names in its references.
        compiler: Compiler over the emitted named types.
        config: Selects the client and server surfaces.
        auth_headers: Every header the document's security schemes use.
            An operation with an explicit empty ``security`` strips these
            from outgoing requests.
    """
    hint = pascal_case(operation.id, "Operation")
    params = operation.parameters

    query_model = _parameter_model(params.query, f"{hint}Query", compiler)
    path_model = _parameter_model(params.path, f"{hint}Path", compiler)
    header_model = _parameter_model(params.header, f"{hint}Headers", compiler, headers=True)

    request_body: list[BodyVariant] = []
    if operation.request_body is not None:
        request_body = [
            BodyVariant(
                content_type=mapping.content_type,
                fragment=compiler.compile(mapping.schema_, hint=f"{hint}Body"),
            )
            for mapping in operation.request_body.content
        ]

    module = snake_case(operation.id)
    if keyword.iskeyword(module):
        module += "_"

    taken = set(_UNIT_NAMES)
    return OperationBinding(
        operation=operation,
        module=module,
        function_name=python_identifier(operation.id, taken),
        pipeline=synthesize_pipeline(operation),
        query_model=query_model,
        path_model=path_model,
        header_model=header_model,
        request_body=request_body,
        responses=_response_slots(operation, compiler, hint),
        security_headers=operation.security.headers,
        strip_headers=list(auth_headers) if _explicitly_public(operation) else [],
        arguments=_client_arguments(operation, compiler, taken),
        client=config.client,
        server=config.server,
        force_validation=config.force_validation,
    )


# --- Helpers ---


def _explicitly_public(operation: OperationDescriptor) -> bool:
    security = operation.security
    return security.overrides_global and not security.alternatives


def _parameter_model(
    params: list[ParameterDescriptor],
    hint: str,
    compiler: SchemaCompiler,
    *,
    headers: bool = False,
) -> CodeFragment:
    node = ObjectNode(
        properties={(p.name.lower() if headers else p.name): p.schema_ for p in params},
        required=[(p.name.lower() if headers else p.name) for p in params if p.required],
        additional_policy=AdditionalPolicy.OPEN,
        additional_declared=headers,
    )
    return compiler.compile(node, hint=hint, coerce=True)


def _response_slots(
    operation: OperationDescriptor, compiler: SchemaCompiler, hint: str
) -> list[ResponseSlot]:
    descriptions = {r.status_code: r.description for r in operation.responses}
    slots: dict[str, Optional[list[BodyVariant]]] = {}
    for member in operation.response_union:
        if member.is_void or member.content_type is None:
            slots.setdefault(member.status_code, None)
            continue
        status_hint = pascal_case(member.status_code, "Status")
        fragment = compiler.compile(member.schema_, hint=f"{hint}Response{status_hint}")
        variants = slots.setdefault(member.status_code, [])
        if variants is not None:
            variants.append(BodyVariant(content_type=member.content_type, fragment=fragment))
    return [
        ResponseSlot(status_code=status, description=descriptions.get(status), variants=variants)
        for status, variants in slots.items()
    ]


def _client_arguments(
    operation: OperationDescriptor, compiler: SchemaCompiler, taken: set[str]
) -> list[ClientArgument]:
    params = operation.parameters
    arguments: list[ClientArgument] = []
    for group in (params.path, params.query, params.header, params.cookie):
        for param in group:
            fragment = compiler.compile(
                param.schema_, hint=pascal_case(param.name, "Param"), coerce=True
            )
            annotation = fragment.code if param.required else f"Optional[{fragment.code}]"
            arguments.append(
                ClientArgument(
                    name=python_identifier(param.name, taken),
                    wire_name=param.name,
                    location=param.location,
                    required=param.required,
                    annotation=annotation,
                    description=param.description,
                )
            )
    return arguments
