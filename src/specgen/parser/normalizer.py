"""Rewrite Swagger 2.0 and OpenAPI 3.0 documents into the OpenAPI 3.1 shape.

Normalization is a pipeline of two pure tree rewrites:

* :func:`swagger_to_openapi30` -- lifts ``host``/``basePath``/``schemes``
  into ``servers``, moves ``body`` and ``formData`` parameters into
  ``requestBody``, spreads ``consumes``/``produces`` over per-content-type
  maps, and hoists ``definitions``, ``parameters``, ``responses`` and
  ``securityDefinitions`` into ``components``.
* :func:`openapi30_to_31` -- turns ``nullable: true`` into a ``"null"``
  member of a type array, converts boolean ``exclusiveMinimum`` /
  ``exclusiveMaximum`` into their numeric form, and moves a schema's
  singular ``example`` into ``examples``.

A 2.0 document runs through both rewrites in that order; a 3.0 document
through the second only; a 3.1 document is copied unchanged, so
``normalize(normalize(d).tree) == normalize(d)``.  Input is never mutated.

Only structurally malformed documents raise
:class:`~specgen.exceptions.DocumentError`.  An unrecognised version string
is recorded as an ``unknown-dialect`` diagnostic and the tree passes through.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Optional

from specgen.diagnostics import DiagnosticCode, DiagnosticCollector
from specgen.exceptions import DocumentError
from specgen.models import Dialect, NormalizedDocument
from specgen.parser.loader import detect_dialect

OPENAPI_31_VERSION = "3.1.0"

_HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

_DEFAULT_MEDIA_TYPE = "application/json"
_MULTIPART = "multipart/form-data"
_URLENCODED = "application/x-www-form-urlencoded"

# Keywords a 2.0 non-body parameter carries inline that belong in ``schema``.
_PARAMETER_SCHEMA_KEYS = (
    "type",
    "format",
    "items",
    "default",
    "enum",
    "minimum",
    "maximum",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "minLength",
    "maxLength",
    "pattern",
    "minItems",
    "maxItems",
    "uniqueItems",
    "multipleOf",
    "x-nullable",
)

_REF_PREFIXES_20 = {
    "#/definitions/": "#/components/schemas/",
    "#/parameters/": "#/components/parameters/",
    "#/responses/": "#/components/responses/",
}

_OAUTH2_FLOWS_20 = {
    "implicit": "implicit",
    "password": "password",
    "application": "clientCredentials",
    "accessCode": "authorizationCode",
}


# --- Entry point ---


def normalize(
    document: dict[str, Any],
    *,
    location: str = "<memory>",
    diagnostics: Optional[DiagnosticCollector] = None,
) -> NormalizedDocument:
    """Normalize *document* into the 3.1 shape.

    Args:
        document: The parsed document tree.
        location: Where the document was loaded from; used for diagnostics
            and as the base for relative external references.
        diagnostics: Collector for the ``unknown-dialect`` diagnostic.

    Returns:
        A :class:`~specgen.models.NormalizedDocument` wrapping the rewritten
        tree and recording the dialect it came from.

    Raises:
        DocumentError: If the root is not a mapping, has no version key, has
            no ``info`` mapping, or ``paths`` is not a mapping.
    """
    check_structure(document)
    dialect = detect_dialect(document)

    if dialect == Dialect.SWAGGER_2_0:
        tree = openapi30_to_31(swagger_to_openapi30(document))
    elif dialect == Dialect.OPENAPI_3_0:
        tree = openapi30_to_31(document)
    else:
        tree = copy.deepcopy(document)
        if dialect == Dialect.UNKNOWN and diagnostics is not None:
            version = document.get("openapi", document.get("swagger"))
            diagnostics.report(
                DiagnosticCode.UNKNOWN_DIALECT,
                f"Unrecognised version {version!r}; document passed through unchanged",
                location=location,
            )

    return NormalizedDocument(location=location, source_dialect=dialect, tree=tree)


def check_structure(document: Any) -> None:
    """Raise :class:`DocumentError` if *document* lacks required top-level keys."""
    if not isinstance(document, dict):
        raise DocumentError("Document root must be a mapping")
    if "swagger" not in document and "openapi" not in document:
        raise DocumentError(
            "Missing 'openapi' or 'swagger' field. Is this an API description?"
        )
    if not isinstance(document.get("info"), dict):
        raise DocumentError("Missing or invalid 'info' object")
    if "paths" in document and not isinstance(document["paths"], (dict, type(None))):
        raise DocumentError("'paths' must be a mapping of path templates to path items")


def convert_schema(schema: Any, dialect: Dialect) -> Any:
    """Bring a single schema fragment from *dialect* into the 3.1 shape.

    Used for schemas pulled out of external documents, which are not
    normalized as a whole.
    """
    if dialect == Dialect.SWAGGER_2_0:
        return _upgrade_schema_30(_convert_schema_20(schema))
    if dialect == Dialect.OPENAPI_3_0:
        return _upgrade_schema_30(schema)
    return copy.deepcopy(schema)


# --- Schema walking ---


def _walk_schema(schema: Any, transform: Callable[[dict[str, Any]], dict[str, Any]]) -> Any:
    """Apply *transform* to every schema object in *schema*, children first."""
    if not isinstance(schema, dict):
        return copy.deepcopy(schema)

    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key in ("properties", "patternProperties", "$defs", "definitions") and isinstance(value, dict):
            out[key] = {name: _walk_schema(sub, transform) for name, sub in value.items()}
        elif key in ("items", "additionalProperties", "not", "contains") and isinstance(value, dict):
            out[key] = _walk_schema(value, transform)
        elif key in ("allOf", "anyOf", "oneOf", "prefixItems") and isinstance(value, list):
            out[key] = [_walk_schema(sub, transform) for sub in value]
        elif key == "items" and isinstance(value, list):
            out[key] = [_walk_schema(sub, transform) for sub in value]
        else:
            out[key] = copy.deepcopy(value)
    return transform(out)


# --- 2.0 -> 3.0 ---


def _schema_node_20(node: dict[str, Any]) -> dict[str, Any]:
    if node.pop("x-nullable", False) is True:
        node["nullable"] = True
    if node.get("type") == "file":
        node["type"] = "string"
        node["format"] = "binary"
    if isinstance(node.get("discriminator"), str):
        node["discriminator"] = {"propertyName": node["discriminator"]}
    return node


def _convert_schema_20(schema: Any) -> Any:
    return _walk_schema(schema, _schema_node_20)


def _rewrite_refs_20(obj: Any) -> Any:
    """Point internal 2.0 ``$ref`` strings at their 3.0 component locations."""
    if isinstance(obj, dict):
        out = {}
        for key, value in obj.items():
            if key == "$ref" and isinstance(value, str):
                for old, new in _REF_PREFIXES_20.items():
                    if value.startswith(old):
                        value = new + value[len(old):]
                        break
                out[key] = value
            else:
                out[key] = _rewrite_refs_20(value)
        return out
    if isinstance(obj, list):
        return [_rewrite_refs_20(item) for item in obj]
    return obj


def _servers_20(document: dict[str, Any]) -> list[dict[str, Any]]:
    host = document.get("host")
    base_path = (document.get("basePath") or "").rstrip("/")
    if not host:
        return [{"url": base_path or "/"}]
    schemes = document.get("schemes") or ["https"]
    return [{"url": f"{scheme}://{host}{base_path}"} for scheme in schemes]


def _deref_parameter_20(param: dict[str, Any], document: dict[str, Any]) -> dict[str, Any]:
    ref = param.get("$ref")
    if isinstance(ref, str) and ref.startswith("#/parameters/"):
        target = (document.get("parameters") or {}).get(ref[len("#/parameters/"):])
        if isinstance(target, dict):
            return target
    return param


def _convert_parameter_20(param: dict[str, Any]) -> dict[str, Any]:
    """Move inline type keywords of a non-body parameter into ``schema``."""
    if "$ref" in param:
        return copy.deepcopy(param)

    out: dict[str, Any] = {}
    schema: dict[str, Any] = {}
    for key, value in param.items():
        if key in _PARAMETER_SCHEMA_KEYS:
            schema[key] = copy.deepcopy(value)
        elif key == "collectionFormat":
            if value == "multi":
                out["explode"] = True
            elif value == "csv":
                out["explode"] = False
        elif key == "allowEmptyValue" and param.get("in") != "query":
            continue
        else:
            out[key] = copy.deepcopy(value)
    if schema:
        out["schema"] = _convert_schema_20(schema)
    return out


def _form_body_20(form_params: list[dict[str, Any]], consumes: list[str]) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    has_file = False
    for param in form_params:
        prop = {k: copy.deepcopy(v) for k, v in param.items() if k in _PARAMETER_SCHEMA_KEYS}
        if param.get("description"):
            prop["description"] = param["description"]
        has_file = has_file or prop.get("type") == "file"
        properties[param["name"]] = _convert_schema_20(prop)
        if param.get("required"):
            required.append(param["name"])

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required

    media_type = _MULTIPART if has_file or _MULTIPART in consumes else _URLENCODED
    return {"content": {media_type: {"schema": schema}}, "required": bool(required)}


def _json_body_20(body: dict[str, Any], consumes: list[str]) -> dict[str, Any]:
    schema = _convert_schema_20(body.get("schema", {}))
    request_body: dict[str, Any] = {
        "content": {ct: {"schema": copy.deepcopy(schema)} for ct in consumes},
        "required": bool(body.get("required", False)),
    }
    if body.get("description"):
        request_body["description"] = body["description"]
    return request_body


def _convert_response_20(response: dict[str, Any], produces: list[str]) -> dict[str, Any]:
    if "$ref" in response:
        return copy.deepcopy(response)

    out: dict[str, Any] = {"description": response.get("description", "")}
    if "schema" in response:
        schema = _convert_schema_20(response["schema"])
        out["content"] = {ct: {"schema": copy.deepcopy(schema)} for ct in produces}
        for ct, example in (response.get("examples") or {}).items():
            if ct in out["content"]:
                out["content"][ct]["example"] = copy.deepcopy(example)
    if response.get("headers"):
        out["headers"] = {
            name: _convert_header_20(header) for name, header in response["headers"].items()
        }
    return out


def _convert_header_20(header: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if header.get("description"):
        out["description"] = header["description"]
    schema = {k: copy.deepcopy(v) for k, v in header.items() if k in _PARAMETER_SCHEMA_KEYS}
    out["schema"] = _convert_schema_20(schema)
    return out


def _convert_security_scheme_20(scheme: dict[str, Any]) -> dict[str, Any]:
    kind = scheme.get("type")
    out: dict[str, Any]
    if kind == "basic":
        out = {"type": "http", "scheme": "basic"}
    elif kind == "apiKey":
        out = {"type": "apiKey", "name": scheme.get("name"), "in": scheme.get("in")}
    elif kind == "oauth2":
        flow: dict[str, Any] = {"scopes": copy.deepcopy(scheme.get("scopes") or {})}
        for key in ("authorizationUrl", "tokenUrl"):
            if key in scheme:
                flow[key] = scheme[key]
        flow_name = _OAUTH2_FLOWS_20.get(scheme.get("flow", ""), "implicit")
        out = {"type": "oauth2", "flows": {flow_name: flow}}
    else:
        out = copy.deepcopy(scheme)
    if scheme.get("description"):
        out["description"] = scheme["description"]
    return out


def _convert_operation_20(
    operation: dict[str, Any],
    document: dict[str, Any],
    inherited_body: list[dict[str, Any]],
) -> dict[str, Any]:
    consumes = operation.get("consumes") or document.get("consumes") or [_DEFAULT_MEDIA_TYPE]
    produces = operation.get("produces") or document.get("produces") or [_DEFAULT_MEDIA_TYPE]

    out: dict[str, Any] = {}
    for key, value in operation.items():
        if key in ("parameters", "responses", "consumes", "produces", "schemes"):
            continue
        out[key] = copy.deepcopy(value)

    params: list[dict[str, Any]] = []
    body: Optional[dict[str, Any]] = None
    form: list[dict[str, Any]] = []
    for raw in list(inherited_body) + list(operation.get("parameters") or []):
        param = _deref_parameter_20(raw, document)
        location = param.get("in")
        if location == "body":
            body = param
        elif location == "formData":
            form = [p for p in form if p.get("name") != param.get("name")] + [param]
        else:
            params.append(_convert_parameter_20(raw))

    if params:
        out["parameters"] = params
    if body is not None:
        out["requestBody"] = _json_body_20(body, consumes)
    elif form:
        out["requestBody"] = _form_body_20(form, consumes)

    out["responses"] = {
        str(code): _convert_response_20(response, produces)
        for code, response in (operation.get("responses") or {}).items()
        if isinstance(response, dict)
    }
    return out


def _convert_path_item_20(item: dict[str, Any], document: dict[str, Any]) -> dict[str, Any]:
    if "$ref" in item:
        return copy.deepcopy(item)

    out: dict[str, Any] = {}
    shared: list[dict[str, Any]] = []
    shared_body: list[dict[str, Any]] = []
    for raw in item.get("parameters") or []:
        param = _deref_parameter_20(raw, document)
        if param.get("in") in ("body", "formData"):
            shared_body.append(param)
        else:
            shared.append(_convert_parameter_20(raw))
    if shared:
        out["parameters"] = shared

    for key, value in item.items():
        if key == "parameters":
            continue
        if key in _HTTP_METHODS and isinstance(value, dict):
            out[key] = _convert_operation_20(value, document, shared_body)
        else:
            out[key] = copy.deepcopy(value)
    return out


def swagger_to_openapi30(document: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a Swagger 2.0 document into the OpenAPI 3.0 shape."""
    out: dict[str, Any] = {"openapi": "3.0.3"}
    for key, value in document.items():
        if key in (
            "swagger", "host", "basePath", "schemes", "consumes", "produces",
            "paths", "definitions", "parameters", "responses",
            "securityDefinitions",
        ):
            continue
        out[key] = copy.deepcopy(value)

    out["servers"] = _servers_20(document)
    out["paths"] = {
        path: _convert_path_item_20(item, document)
        for path, item in (document.get("paths") or {}).items()
        if isinstance(item, dict)
    }

    components: dict[str, Any] = {}
    if document.get("definitions"):
        components["schemas"] = {
            name: _convert_schema_20(schema) for name, schema in document["definitions"].items()
        }
    global_params = {
        name: _convert_parameter_20(param)
        for name, param in (document.get("parameters") or {}).items()
        if param.get("in") not in ("body", "formData")
    }
    if global_params:
        components["parameters"] = global_params
    if document.get("responses"):
        produces = document.get("produces") or [_DEFAULT_MEDIA_TYPE]
        components["responses"] = {
            name: _convert_response_20(resp, produces)
            for name, resp in document["responses"].items()
        }
    if document.get("securityDefinitions"):
        components["securitySchemes"] = {
            name: _convert_security_scheme_20(scheme)
            for name, scheme in document["securityDefinitions"].items()
        }
    if components:
        out["components"] = components

    return _rewrite_refs_20(out)


# --- 3.0 -> 3.1 ---


def _schema_node_30(node: dict[str, Any]) -> dict[str, Any]:
    nullable = node.pop("nullable", None)
    if nullable is True:
        if "type" in node:
            types = node["type"] if isinstance(node["type"], list) else [node["type"]]
            if "null" not in types:
                types = list(types) + ["null"]
            node["type"] = types
            if isinstance(node.get("enum"), list) and None not in node["enum"]:
                node["enum"] = node["enum"] + [None]
        else:
            # No type to extend (e.g. allOf); the schema parser honours the flag.
            node["nullable"] = True

    for exclusive, bound in (("exclusiveMinimum", "minimum"), ("exclusiveMaximum", "maximum")):
        flag = node.get(exclusive)
        if isinstance(flag, bool):
            if flag and bound in node:
                node[exclusive] = node.pop(bound)
            else:
                del node[exclusive]

    if "example" in node and "examples" not in node:
        node["examples"] = [node.pop("example")]
    return node


def _upgrade_schema_30(schema: Any) -> Any:
    return _walk_schema(schema, _schema_node_30)


def _upgrade_content(content: Any) -> Any:
    if not isinstance(content, dict):
        return copy.deepcopy(content)
    out = {}
    for media_type, media in content.items():
        media = copy.deepcopy(media)
        if isinstance(media, dict) and "schema" in media:
            media["schema"] = _upgrade_schema_30(media["schema"])
        out[media_type] = media
    return out


def _upgrade_with_schema(obj: Any) -> Any:
    """Upgrade a parameter or header object: its ``schema`` and ``content``."""
    if not isinstance(obj, dict) or "$ref" in obj:
        return copy.deepcopy(obj)
    out = copy.deepcopy(obj)
    if "schema" in out:
        out["schema"] = _upgrade_schema_30(obj["schema"])
    if "content" in out:
        out["content"] = _upgrade_content(obj["content"])
    return out


def _upgrade_request_body(body: Any) -> Any:
    if not isinstance(body, dict) or "$ref" in body:
        return copy.deepcopy(body)
    out = copy.deepcopy(body)
    if "content" in out:
        out["content"] = _upgrade_content(body["content"])
    return out


def _upgrade_response(response: Any) -> Any:
    if not isinstance(response, dict) or "$ref" in response:
        return copy.deepcopy(response)
    out = copy.deepcopy(response)
    if "content" in out:
        out["content"] = _upgrade_content(response["content"])
    if isinstance(out.get("headers"), dict):
        out["headers"] = {
            name: _upgrade_with_schema(header) for name, header in response["headers"].items()
        }
    return out


def _upgrade_operation(operation: dict[str, Any]) -> dict[str, Any]:
    out = copy.deepcopy(operation)
    if isinstance(operation.get("parameters"), list):
        out["parameters"] = [_upgrade_with_schema(p) for p in operation["parameters"]]
    if "requestBody" in operation:
        out["requestBody"] = _upgrade_request_body(operation["requestBody"])
    if isinstance(operation.get("responses"), dict):
        out["responses"] = {
            code: _upgrade_response(resp) for code, resp in operation["responses"].items()
        }
    return out


def _upgrade_path_item(item: Any) -> Any:
    if not isinstance(item, dict) or "$ref" in item:
        return copy.deepcopy(item)
    out = {}
    for key, value in item.items():
        if key in _HTTP_METHODS and isinstance(value, dict):
            out[key] = _upgrade_operation(value)
        elif key == "parameters" and isinstance(value, list):
            out[key] = [_upgrade_with_schema(p) for p in value]
        else:
            out[key] = copy.deepcopy(value)
    return out


def openapi30_to_31(document: dict[str, Any]) -> dict[str, Any]:
    """Rewrite an OpenAPI 3.0 document into the 3.1 shape."""
    out = copy.deepcopy(document)
    out["openapi"] = OPENAPI_31_VERSION

    if isinstance(document.get("paths"), dict):
        out["paths"] = {
            path: _upgrade_path_item(item) for path, item in document["paths"].items()
        }

    components = document.get("components")
    if isinstance(components, dict):
        upgraded = copy.deepcopy(components)
        sections: dict[str, Callable[[Any], Any]] = {
            "schemas": _upgrade_schema_30,
            "parameters": _upgrade_with_schema,
            "headers": _upgrade_with_schema,
            "requestBodies": _upgrade_request_body,
            "responses": _upgrade_response,
        }
        for section, upgrade in sections.items():
            if isinstance(components.get(section), dict):
                upgraded[section] = {
                    name: upgrade(value) for name, value in components[section].items()
                }
        out["components"] = upgraded
    return out
