"""Format and write the emitted package to disk, all or nothing.

Units are first written into a temporary directory created next to the
target, so that the final ``os.replace`` is a rename on the same file
system.  An existing package directory is moved aside first and removed only
after the new one is in place; on any failure the previous package is
restored and nothing partial is left behind, including output directories
created by the failed run.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Optional

from specgen.exceptions import GenerationError
from specgen.generator.emitter import SourceUnit


def format_source(code: str) -> str:
    """Default formatter: normalize trailing whitespace to a single newline.

    Any ``str -> str`` callable can take its place, e.g. a wrapper around an
    external code formatter.
    """
    return code.rstrip() + "\n"


def write_units(units: Iterable[SourceUnit], output_dir: Path, package: str) -> Path:
    """Write *units* as ``output_dir/package`` and return that directory.

    Raises:
        GenerationError: The package could not be written.  The previous
            contents of ``output_dir/package``, if any, are left untouched.
    """
    target = output_dir / package
    created = _first_missing(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{package}.", suffix=".tmp", dir=output_dir))
    except OSError as exc:
        _discard(created)
        raise GenerationError(f"Cannot create output directory {output_dir}: {exc}") from exc

    backup: Optional[Path] = None
    try:
        for unit in units:
            path = staging / unit.path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(unit.content, encoding="utf-8")

        if target.exists():
            backup = Path(tempfile.mkdtemp(prefix=f".{package}.", suffix=".old", dir=output_dir))
            os.replace(target, backup / package)
        os.replace(staging, target)
    except BaseException as exc:
        shutil.rmtree(staging, ignore_errors=True)
        if backup is not None and not target.exists():
            os.replace(backup / package, target)
        if backup is not None:
            shutil.rmtree(backup, ignore_errors=True)
        _discard(created)
        if isinstance(exc, OSError):
            raise GenerationError(f"Cannot write package {target}: {exc}") from exc
        raise

    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)
    return target


def _first_missing(path: Path) -> Optional[Path]:
    """The outermost directory ``mkdir(parents=True)`` would create for *path*."""
    missing = None
    while not path.exists() and path.parent != path:
        missing = path
        path = path.parent
    return missing


def _discard(created: Optional[Path]) -> None:
    if created is not None:
        shutil.rmtree(created, ignore_errors=True)
