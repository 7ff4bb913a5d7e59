"""Operation analyzer -- path items to :class:`~specgen.models.OperationDescriptor` values."""

from specgen.analyzer.operations import OperationAnalyzer, drop_dependent_operations
from specgen.analyzer.security import resolve_security

__all__ = ["OperationAnalyzer", "drop_dependent_operations", "resolve_security"]
