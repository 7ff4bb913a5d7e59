"""Exception hierarchy for specgen.

All exceptions inherit from :class:`SpecgenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`specgen.exit_codes`.
The top-level handler in :func:`specgen.app.main` catches ``SpecgenError``
and exits with the appropriate code, while unexpected exceptions produce a
crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    SpecgenError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- DocumentError       (exit 7)
    +-- ResolutionError     (exit 8)
    +-- GenerationError     (exit 9)
    +-- ConfigError         (exit 1)

``ResolutionError`` is normally caught inside the resolver and turned into a
diagnostic for the affected named type; it only reaches the top level when
the root document itself cannot be resolved.
"""

from __future__ import annotations

from specgen.exit_codes import (
    EXIT_DOCUMENT_ERROR,
    EXIT_GENERATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_RESOLUTION_ERROR,
)


class SpecgenError(Exception):
    """Base exception for all specgen errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(SpecgenError):
    """Raised for invalid CLI arguments or an unusable flag combination."""

    exit_code = EXIT_INVALID_USAGE


class DocumentError(SpecgenError):
    """Raised when the input document cannot be read, parsed, or is malformed."""

    exit_code = EXIT_DOCUMENT_ERROR


class ResolutionError(SpecgenError):
    """Raised when a ``$ref`` target does not exist or cannot be fetched.

    Args:
        message: Human-readable error description.
        ref: The offending ``$ref`` string, when known.
    """

    exit_code = EXIT_RESOLUTION_ERROR

    def __init__(self, message: str, ref: str | None = None):
        super().__init__(message)
        self.ref = ref


class GenerationError(SpecgenError):
    """Raised when emitted units are inconsistent or cannot be written."""

    exit_code = EXIT_GENERATION_ERROR


class ConfigError(SpecgenError):
    """Raised for configuration problems (invalid project file, bad env values)."""

    exit_code = EXIT_GENERIC_FAILURE
