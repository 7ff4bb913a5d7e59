"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~specgen.exceptions.SpecgenError` subclass.
CI scripts and build wrappers can inspect the exit code to tell a malformed
input document from a broken reference without parsing stderr.

Example::

    $ specgen generate broken.yaml -o out/
    $ echo $?
    7   # EXIT_DOCUMENT_ERROR -- the document could not be parsed
"""

EXIT_SUCCESS = 0
"""Generation completed and the output directory was written."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an unusable configuration."""

EXIT_DOCUMENT_ERROR = 7
"""The API description could not be loaded, parsed, or is structurally malformed."""

EXIT_RESOLUTION_ERROR = 8
"""A ``$ref`` pointer could not be resolved and nothing could be generated."""

EXIT_GENERATION_ERROR = 9
"""Emitted sources were inconsistent or the output directory could not be written."""
