"""Load API descriptions from a URL, local file, or stdin.

This module handles all I/O for fetching raw documents and converting them
into Python dictionaries.  It is used both for the root document and, through
:class:`~specgen.parser.resolver.DocumentCache`, for every external document
a ``$ref`` points into.

The public functions are:

* :func:`load_document` -- Load and parse a document from any supported source.
* :func:`absolute_location` -- Canonical cache key for a path or URL.
* :func:`detect_dialect` -- Sniff the ``swagger`` / ``openapi`` version key.

Format detection: a ``.json`` extension means JSON, ``.yaml``/``.yml`` means
YAML.  Anything else (stdin, remote content, unknown extensions) is tried as
YAML first and then as JSON.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import httpx
import yaml

from specgen.exceptions import DocumentError
from specgen.models import Dialect


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def absolute_location(source: str) -> str:
    """Return the absolute form of *source* used to key cached documents.

    URLs are returned unchanged minus any fragment; file paths are resolved
    against the current directory.
    """
    if source == "-":
        return source
    if is_url(source):
        return source.split("#", 1)[0]
    return str(Path(source).expanduser().resolve())


def load_document(source: str, timeout: float = 30.0) -> dict[str, Any]:
    """Load a document from URL, file path, or stdin ('-').

    Args:
        source: A URL (http/https), file path, or '-' for stdin.
        timeout: Seconds allowed for a remote fetch.

    Returns:
        The parsed document as a dictionary.

    Raises:
        DocumentError: If the source cannot be loaded or parsed, or its root
            is not a mapping.
    """
    if source == "-":
        return _load_from_stdin()
    elif is_url(source):
        return _load_from_url(source, timeout)
    else:
        return _load_from_file(source)


def _load_from_stdin() -> dict[str, Any]:
    try:
        content = sys.stdin.read()
    except OSError as exc:
        raise DocumentError(f"Failed to read from stdin: {exc}") from exc

    if not content.strip():
        raise DocumentError("No input received from stdin")

    return _parse_content(content, hint="", origin="stdin")


def _load_from_url(url: str, timeout: float) -> dict[str, Any]:
    """Fetch a document over HTTP(S).

    The response content type is not trusted as a format hint; the body is
    tried as YAML and then as JSON.
    """
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise DocumentError(
            f"HTTP {exc.response.status_code} fetching document from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise DocumentError(f"Failed to fetch document from {url}: {exc}") from exc

    hint = "json" if url.split("?", 1)[0].lower().endswith(".json") else ""
    return _parse_content(response.text, hint=hint, origin=url)


def _load_from_file(path: str) -> dict[str, Any]:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise DocumentError(f"Document not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentError(f"Failed to read document {path}: {exc}") from exc

    if not content.strip():
        raise DocumentError(f"Document is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"

    return _parse_content(content, hint=hint, origin=path)


def _parse_content(content: str, hint: str, origin: str) -> dict[str, Any]:
    """Parse content as YAML or JSON.

    With no hint, YAML is tried first and JSON second; a hint restricts
    parsing to that one format.

    Raises:
        DocumentError: If the content cannot be parsed or is not a mapping.
    """
    errors: list[str] = []
    result: Any = None
    parsed = False

    if hint in ("", "yaml"):
        try:
            result = yaml.safe_load(content)
            parsed = True
        except yaml.YAMLError as exc:
            errors.append(f"YAML error: {exc}")

    if not parsed and hint in ("", "json"):
        try:
            result = json.loads(content)
            parsed = True
        except json.JSONDecodeError as exc:
            errors.append(f"JSON error: {exc}")

    if not parsed:
        raise DocumentError(
            f"Failed to parse {origin}\n  " + "\n  ".join(errors)
        )

    if not isinstance(result, dict):
        kind = type(result).__name__ if result is not None else "empty document"
        raise DocumentError(f"{origin} must contain a mapping at its root (got {kind})")
    return result


def detect_dialect(document: dict[str, Any]) -> Dialect:
    """Return the dialect declared by *document*'s version key.

    ``swagger: "2.0"`` maps to 2.0, ``openapi: "3.0.x"`` to 3.0 and
    ``openapi: "3.1.x"`` to 3.1.  Anything else, including a missing key,
    is :attr:`~specgen.models.Dialect.UNKNOWN`.
    """
    swagger = document.get("swagger")
    if swagger is not None:
        return Dialect.SWAGGER_2_0 if str(swagger).startswith("2.0") else Dialect.UNKNOWN

    version = str(document.get("openapi", ""))
    if version.startswith("3.0"):
        return Dialect.OPENAPI_3_0
    if version.startswith("3.1"):
        return Dialect.OPENAPI_3_1
    return Dialect.UNKNOWN
