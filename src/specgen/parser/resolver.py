"""Resolve ``$ref`` pointers into a cycle-safe graph of named schemas.

The resolver works on a :class:`~specgen.models.NormalizedDocument` and
produces a :class:`SchemaRegistry`: every schema reachable from
``components.schemas`` or through a ``$ref`` (same-document ``#/...`` or
cross-document ``other.yaml#/...``) is registered once, keyed by its absolute
location, and parsed into a :data:`~specgen.models.SchemaNode`.

Cross-document sources are loaded through :class:`DocumentCache`, which
parses each location at most once and can prefetch a batch of locations
concurrently.  Concurrent fetches of the same location converge on the first
successful parse.

Cycles are broken during a depth-first walk: a ``$ref`` whose target is still
being resolved (it is on the resolution stack) becomes a
:class:`~specgen.models.ReferenceNode` with ``forward=True``.  Dropping those
back-edges leaves an acyclic import graph, which the emitter relies on.

A ``$ref`` that cannot be resolved never aborts the run.  The target is
marked failed with a ``resolution-skip`` diagnostic, and
:meth:`ReferenceResolver.finish` skips every named type that depends on it
with a ``dependency-skip`` diagnostic.

Non-schema references (parameters, request bodies, responses, headers, path
items) are inlined by :meth:`ReferenceResolver.deref`.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Iterable, Iterator, Optional
from urllib.parse import unquote, urljoin, urlparse

from specgen.diagnostics import DiagnosticCode, DiagnosticCollector, Severity
from specgen.exceptions import DocumentError, ResolutionError
from specgen.models import (
    CompositionNode,
    Dialect,
    NormalizedDocument,
    ReferenceNode,
    SchemaNode,
)
from specgen.parser.loader import absolute_location, detect_dialect, is_url, load_document
from specgen.parser.normalizer import convert_schema
from specgen.parser.schema import parse_schema, reference_targets

Loader = Callable[[str, float], dict[str, Any]]

_MAX_DEREF_DEPTH = 64


# --- Locations and pointers ---


def join_location(base: str, target: str) -> str:
    """Resolve *target* (a path or URL, no fragment) relative to *base*."""
    if is_url(target):
        return target
    if is_url(base):
        return urljoin(base, target)
    if base in ("-", "<memory>"):
        return absolute_location(target)
    return str((Path(base).parent / target).resolve())


def split_ref(ref: str, base: str) -> tuple[str, str]:
    """Split *ref* into ``(absolute document location, JSON pointer)``."""
    target, _, fragment = ref.partition("#")
    location = join_location(base, target) if target else base
    return location, unquote(fragment)


def resolve_pointer(document: Any, pointer: str, ref: str) -> Any:
    """Navigate *document* along the RFC 6901 *pointer*.

    Raises:
        ResolutionError: If any segment does not exist.
    """
    if pointer in ("", "/"):
        return document

    current = document
    for segment in pointer.lstrip("/").split("/"):
        segment = segment.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict):
            if segment not in current:
                raise ResolutionError(
                    f"Cannot resolve $ref '{ref}': key '{segment}' not found", ref=ref
                )
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError) as exc:
                raise ResolutionError(
                    f"Cannot resolve $ref '{ref}': invalid array index '{segment}'", ref=ref
                ) from exc
        else:
            raise ResolutionError(
                f"Cannot resolve $ref '{ref}': cannot navigate into {type(current).__name__}",
                ref=ref,
            )
    return current


def proposed_name(location: str, pointer: str) -> str:
    """Raw name for a named type: last pointer segment, else the file stem."""
    segments = [s for s in pointer.split("/") if s]
    if segments:
        return segments[-1].replace("~1", "/").replace("~0", "~")
    path = urlparse(location).path if is_url(location) else location
    return PurePosixPath(path.replace("\\", "/")).stem or "Schema"


def iter_external_refs(obj: Any) -> Iterator[str]:
    """Yield every ``$ref`` in *obj* that points outside its own document."""
    if isinstance(obj, dict):
        ref = obj.get("$ref")
        if isinstance(ref, str) and not ref.startswith("#"):
            yield ref
        for value in obj.values():
            yield from iter_external_refs(value)
    elif isinstance(obj, list):
        for item in obj:
            yield from iter_external_refs(item)


# --- Document cache ---


class DocumentCache:
    """Thread-safe store of parsed documents keyed by absolute location.

    Args:
        loader: ``(location, timeout) -> dict``; defaults to
            :func:`~specgen.parser.loader.load_document`.
        timeout: Per-fetch timeout handed to the loader.
        max_workers: Upper bound on concurrent prefetches.
    """

    def __init__(
        self,
        loader: Loader = load_document,
        timeout: float = 30.0,
        max_workers: int = 8,
    ) -> None:
        self._loader = loader
        self._timeout = timeout
        self._max_workers = max_workers
        self._documents: dict[str, dict[str, Any]] = {}
        self._errors: dict[str, ResolutionError] = {}
        self._lock = threading.Lock()
        self.fetch_count = 0

    def add(self, location: str, document: dict[str, Any]) -> dict[str, Any]:
        """Store *document*; an earlier entry for *location* wins."""
        with self._lock:
            return self._documents.setdefault(location, document)

    def __contains__(self, location: str) -> bool:
        with self._lock:
            return location in self._documents

    def get(self, location: str) -> dict[str, Any]:
        """Return the document at *location*, loading it on first use.

        Raises:
            ResolutionError: If the document cannot be loaded.
        """
        with self._lock:
            document = self._documents.get(location)
            error = self._errors.get(location)
        if document is not None:
            return document
        if error is not None:
            raise error
        return self._fetch(location)

    def _fetch(self, location: str) -> dict[str, Any]:
        with self._lock:
            self.fetch_count += 1
        try:
            document = self._loader(location, self._timeout)
        except DocumentError as exc:
            error = ResolutionError(f"Cannot load {location}: {exc}", ref=location)
            with self._lock:
                error = self._errors.setdefault(location, error)
            raise error from exc
        return self.add(location, document)

    def prefetch(self, locations: Iterable[str]) -> list[str]:
        """Load *locations* concurrently; return those that were fetched.

        Failures are remembered and re-raised by :meth:`get` when the
        location is actually needed.
        """
        with self._lock:
            pending = [
                loc
                for loc in dict.fromkeys(locations)
                if loc not in self._documents and loc not in self._errors
            ]
        if not pending:
            return []

        fetched: list[str] = []
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(pending))) as pool:
            futures = {loc: pool.submit(self._fetch, loc) for loc in pending}
            for loc, future in futures.items():
                try:
                    future.result()
                except ResolutionError:
                    continue  # kept in self._errors
                fetched.append(loc)
        return fetched


# --- Registry ---


@dataclass
class RegistryEntry:
    """One registered schema location and its resolution state."""

    key: str
    location: str
    proposed: str
    state: str = "pending"
    node: Optional[SchemaNode] = None
    error: Optional[str] = None


@dataclass
class SchemaRegistry:
    """Resolved schemas, before final names are assigned.

    ``entries`` is in discovery order (``components.schemas`` first, in
    document order); ``completion_order`` lists the same keys in the order
    their resolution finished, which is a topological order of the
    non-deferred references.
    """

    entries: list[RegistryEntry] = field(default_factory=list)
    completion_order: list[str] = field(default_factory=list)
    skipped: set[str] = field(default_factory=set)

    def get(self, key: str) -> Optional[RegistryEntry]:
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None


class ReferenceResolver:
    """Depth-first ``$ref`` resolution over one normalized document.

    Args:
        document: The normalized root document.
        cache: Document cache shared with the loader; the root tree is
            added to it under ``document.location``.
        diagnostics: Receives skip diagnostics.
    """

    def __init__(
        self,
        document: NormalizedDocument,
        cache: DocumentCache,
        diagnostics: DiagnosticCollector,
    ) -> None:
        self._document = document
        self._cache = cache
        self._diagnostics = diagnostics
        self._root = document.location
        self._cache.add(self._root, document.tree)
        self._entries: dict[str, RegistryEntry] = {}
        self._completion: list[str] = []
        self._fallback_dialect = document.source_dialect

    @property
    def document(self) -> NormalizedDocument:
        return self._document

    @property
    def root_location(self) -> str:
        return self._root

    # ------------------------------------------------------------------ #
    # External documents
    # ------------------------------------------------------------------ #

    def prefetch_external(self) -> None:
        """Fetch every transitively referenced external document.

        Each round collects the external ``$ref`` targets of the documents
        fetched in the previous round and loads them concurrently.
        """
        frontier = [self._root]
        seen = {self._root}
        while frontier:
            wanted: list[str] = []
            for location in frontier:
                if location not in self._cache:
                    continue
                for ref in iter_external_refs(self._cache.get(location)):
                    target, _ = split_ref(ref, location)
                    if target not in seen:
                        seen.add(target)
                        wanted.append(target)
            frontier = self._cache.prefetch(wanted)

    def _dialect_of(self, location: str) -> Dialect:
        if location == self._root:
            return Dialect.OPENAPI_3_1
        dialect = detect_dialect(self._cache.get(location))
        return self._fallback_dialect if dialect == Dialect.UNKNOWN else dialect

    # ------------------------------------------------------------------ #
    # Schemas
    # ------------------------------------------------------------------ #

    def resolve_components(self) -> None:
        """Register every ``components.schemas`` entry, in document order."""
        schemas = self._document.components.get("schemas") or {}
        for name in schemas:
            pointer = "/components/schemas/" + name.replace("~", "~0").replace("/", "~1")
            self.reference("#" + pointer, self._root)

    def parse(self, schema: Any, base: Optional[str] = None, location: str = "#") -> SchemaNode:
        """Parse an inline schema found in the document at *base*."""
        base = base or self._root
        return parse_schema(
            schema,
            lambda ref: self.reference(ref, base),
            location=location,
            diagnostics=self._diagnostics,
        )

    def reference(self, ref: str, base: str) -> ReferenceNode:
        """Return the :class:`ReferenceNode` for *ref*, resolving it if new."""
        location, pointer = split_ref(ref, base)
        key = f"{location}#{pointer}"

        entry = self._entries.get(key)
        if entry is not None:
            return ReferenceNode(target=key, forward=entry.state == "pending")

        entry = RegistryEntry(key=key, location=location, proposed=proposed_name(location, pointer))
        self._entries[key] = entry
        try:
            target = resolve_pointer(self._cache.get(location), pointer, ref)
            schema = convert_schema(target, self._dialect_of(location))
            node = parse_schema(
                schema,
                lambda inner: self.reference(inner, location),
                location=_pointer_location(location, pointer, self._root),
                diagnostics=self._diagnostics,
            )
            if isinstance(node, ReferenceNode):
                # A pure alias; wrap it so a named type never is a bare reference.
                node = CompositionNode(composition="allOf", members=[node])
            entry.node = node
            entry.state = "done"
            self._completion.append(key)
        except ResolutionError as exc:
            entry.state = "failed"
            entry.error = str(exc)
            self._diagnostics.report(
                DiagnosticCode.RESOLUTION_SKIP,
                f"Skipping '{entry.proposed}': {exc}",
                severity=Severity.ERROR,
                location=_pointer_location(location, pointer, self._root),
            )
        return ReferenceNode(target=key)

    # ------------------------------------------------------------------ #
    # Non-schema objects
    # ------------------------------------------------------------------ #

    def deref(self, obj: Any, base: Optional[str] = None) -> tuple[Any, str]:
        """Inline a chain of non-schema ``$ref`` objects.

        Returns:
            ``(target object, location of the document it lives in)``.

        Raises:
            ResolutionError: On a missing target or a reference cycle.
        """
        base = base or self._root
        visited: set[str] = set()
        while isinstance(obj, dict) and isinstance(obj.get("$ref"), str):
            ref = obj["$ref"]
            location, pointer = split_ref(ref, base)
            key = f"{location}#{pointer}"
            if key in visited or len(visited) >= _MAX_DEREF_DEPTH:
                raise ResolutionError(f"Reference cycle through '{ref}'", ref=ref)
            visited.add(key)
            obj = resolve_pointer(self._cache.get(location), pointer, ref)
            base = location
        return obj, base

    # ------------------------------------------------------------------ #
    # Completion
    # ------------------------------------------------------------------ #

    def finish(self) -> SchemaRegistry:
        """Propagate skips to dependents and return the registry."""
        skipped = {key for key, e in self._entries.items() if e.state == "failed"}
        dependencies = {
            key: set(reference_targets(e.node))
            for key, e in self._entries.items()
            if e.state == "done"
        }

        changed = True
        while changed:
            changed = False
            for key, deps in dependencies.items():
                if key in skipped:
                    continue
                missing = deps & skipped
                if missing:
                    skipped.add(key)
                    changed = True
                    entry = self._entries[key]
                    culprit = sorted(self._entries[m].proposed for m in missing)[0]
                    self._diagnostics.report(
                        DiagnosticCode.DEPENDENCY_SKIP,
                        f"Skipping '{entry.proposed}': depends on skipped type '{culprit}'",
                        severity=Severity.ERROR,
                        location=_pointer_location(entry.location, key.partition("#")[2], self._root),
                    )

        return SchemaRegistry(
            entries=[e for key, e in self._entries.items() if key not in skipped],
            completion_order=[key for key in self._completion if key not in skipped],
            skipped=skipped,
        )


def _pointer_location(location: str, pointer: str, root: str) -> str:
    return f"#{pointer}" if location == root else f"{location}#{pointer}"
