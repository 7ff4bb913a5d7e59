"""Code generation -- operation wrappers, rendering, and writing.

Typical usage::

    from specgen.generator import Emitter, bind_operation, format_source, write_units

    bindings = [bind_operation(op, compiler, config) for op in operations]
    units = Emitter(document, format_source).emit(named_types, fragments, bindings)
    write_units(units, config.output_dir, config.package)

Sub-modules:

* :mod:`~specgen.generator.wrapper` -- The per-operation validation pipeline
  and client signature.
* :mod:`~specgen.generator.emitter` -- Jinja2 rendering of the package units.
* :mod:`~specgen.generator.writer` -- Formatting and all-or-nothing output.
"""

from specgen.generator.emitter import Emitter, SourceUnit
from specgen.generator.wrapper import OperationBinding, bind_operation, synthesize_pipeline
from specgen.generator.writer import format_source, write_units

__all__ = [
    "Emitter",
    "SourceUnit",
    "OperationBinding",
    "bind_operation",
    "synthesize_pipeline",
    "format_source",
    "write_units",
]
