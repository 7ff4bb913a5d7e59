"""Document front end -- load, normalize, and resolve ``$ref`` pointers.

This sub-package turns an API description (JSON or YAML; file, URL or stdin;
Swagger 2.0, OpenAPI 3.0 or 3.1) into a canonical 3.1-shaped
:class:`~specgen.models.NormalizedDocument` and a registry of named schema
types.

Typical usage::

    from specgen.parser import DocumentCache, ReferenceResolver, load_document, normalize

    document = normalize(load_document("petstore.yaml"), location="petstore.yaml")
    resolver = ReferenceResolver(document, DocumentCache(), DiagnosticCollector())
    resolver.prefetch_external()
    resolver.resolve_components()
    registry = resolver.finish()

Sub-modules:

* :mod:`~specgen.parser.loader` -- I/O layer (URL, file, stdin) plus format
  and dialect detection.
* :mod:`~specgen.parser.normalizer` -- Swagger 2.0 -> 3.0 -> 3.1 rewriting.
* :mod:`~specgen.parser.schema` -- Schema dictionaries to
  :data:`~specgen.models.SchemaNode` values.
* :mod:`~specgen.parser.resolver` -- Cross-document ``$ref`` resolution,
  named-type registration and cycle detection.
"""

from specgen.parser.loader import detect_dialect, load_document
from specgen.parser.normalizer import normalize
from specgen.parser.resolver import DocumentCache, ReferenceResolver, SchemaRegistry

__all__ = [
    "load_document",
    "detect_dialect",
    "normalize",
    "DocumentCache",
    "ReferenceResolver",
    "SchemaRegistry",
]
