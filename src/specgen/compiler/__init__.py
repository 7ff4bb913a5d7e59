"""Schema compiler -- named types to Python type expressions.

Sub-modules:

* :mod:`~specgen.compiler.naming` -- Identifier sanitization and the
  deterministic renaming pass.
* :mod:`~specgen.compiler.schema_compiler` -- Recursive compilation of
  :data:`~specgen.models.SchemaNode` values into
  :class:`~specgen.models.CodeFragment` expressions.
"""

from specgen.compiler.naming import assign_names, build_named_types, rewrite_references
from specgen.compiler.schema_compiler import SchemaCompiler

__all__ = ["assign_names", "build_named_types", "rewrite_references", "SchemaCompiler"]
