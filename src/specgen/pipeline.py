"""Orchestrate one generation run, from input location to written package.

The stages run strictly in this order, each consuming the previous stage's
complete output:

1. load and normalize the document (:mod:`specgen.parser`);
2. prefetch external documents, then resolve ``components.schemas``;
3. analyze operations, registering any schema they reference inline;
4. propagate skips, assign final type names and rewrite references;
5. compile every named type and bind every operation;
6. render the package and write it to disk in one step.

Nothing is written when a stage raises.  Skipped types and operations do
not fail the run; they are reported through the returned diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from specgen.analyzer.operations import OperationAnalyzer, drop_dependent_operations
from specgen.analyzer.security import document_auth_headers
from specgen.compiler.naming import assign_names, build_named_types, rewrite_references
from specgen.compiler.schema_compiler import SchemaCompiler
from specgen.diagnostics import DiagnosticCollector
from specgen.generator.emitter import Emitter, Formatter
from specgen.generator.wrapper import OperationBinding, bind_operation
from specgen.generator.writer import format_source, write_units
from specgen.models import GeneratorConfig, NamedType, NormalizedDocument, OperationDescriptor
from specgen.parser.loader import absolute_location, load_document
from specgen.parser.normalizer import normalize
from specgen.parser.resolver import DocumentCache, Loader, ReferenceResolver

logger = logging.getLogger(__name__)


@dataclass
class Analysis:
    """A resolved document with final names, ready to compile."""

    document: NormalizedDocument
    named_types: list[NamedType]
    operations: list[OperationDescriptor]
    skipped: set[str] = field(default_factory=set)
    fetch_count: int = 0


@dataclass
class GenerationResult:
    """Outcome of :func:`generate`."""

    package_dir: Path
    analysis: Analysis
    bindings: list[OperationBinding]
    files: list[str]
    diagnostics: DiagnosticCollector


def analyze(
    config: GeneratorConfig,
    *,
    loader: Loader = load_document,
    diagnostics: Optional[DiagnosticCollector] = None,
) -> Analysis:
    """Run stages 1-4: load, normalize, resolve, analyze and name.

    Raises:
        DocumentError: The root document cannot be loaded or is malformed.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()

    raw = loader(config.input, config.fetch_timeout)
    location = absolute_location(config.input)
    document = normalize(raw, location=location, diagnostics=diagnostics)
    logger.debug("Normalized %s from dialect %s", location, document.source_dialect.value)

    cache = DocumentCache(loader=loader, timeout=config.fetch_timeout)
    resolver = ReferenceResolver(document, cache, diagnostics)
    resolver.prefetch_external()
    resolver.resolve_components()

    operations = OperationAnalyzer(resolver, diagnostics).analyze()
    registry = resolver.finish()
    operations = drop_dependent_operations(operations, registry.skipped, diagnostics)

    names = assign_names(registry, diagnostics)
    named_types = build_named_types(registry, names)
    operations = [rewrite_references(op, names) for op in operations]
    logger.debug(
        "Resolved %d named types and %d operations (%d external fetches)",
        len(named_types),
        len(operations),
        cache.fetch_count,
    )
    return Analysis(
        document=document,
        named_types=named_types,
        operations=operations,
        skipped=registry.skipped,
        fetch_count=cache.fetch_count,
    )


def generate(
    config: GeneratorConfig,
    *,
    loader: Loader = load_document,
    formatter: Formatter = format_source,
    diagnostics: Optional[DiagnosticCollector] = None,
) -> GenerationResult:
    """Generate the package described by *config*.

    Args:
        config: Run settings.
        loader: ``(location, timeout) -> dict`` used for the root document
            and every external reference.
        formatter: ``str -> str`` applied to every emitted unit.
        diagnostics: Collector to report into; a new one is created if
            omitted.

    Raises:
        DocumentError: The root document cannot be loaded or is malformed.
        GenerationError: The emitted units are inconsistent or cannot be
            written.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
    analysis = analyze(config, loader=loader, diagnostics=diagnostics)

    compiler = SchemaCompiler(
        analysis.named_types,
        strict_objects=config.strict_objects,
        diagnostics=diagnostics,
    )
    fragments = {t.name: compiler.compile_named(t) for t in analysis.named_types}

    schemes = analysis.document.components.get("securitySchemes") or {}
    auth_headers = document_auth_headers(schemes)
    bindings = [
        bind_operation(op, compiler, config, auth_headers) for op in analysis.operations
    ]

    units = Emitter(analysis.document, formatter).emit(
        analysis.named_types, fragments, bindings, server=config.server
    )
    package_dir = write_units(units, config.output_dir, config.package)
    logger.debug("Wrote %d files to %s", len(units), package_dir)

    return GenerationResult(
        package_dir=package_dir,
        analysis=analysis,
        bindings=bindings,
        files=[unit.path for unit in units],
        diagnostics=diagnostics,
    )
