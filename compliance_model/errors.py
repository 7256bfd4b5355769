# compliance_model/errors.py
"""
Exception classes for the compliance engine.

Pure evaluation errors (``InvalidInput``) are never retried; only the
persistence boundary retries on ``PersistenceConflict``.
"""


class ComplianceModelError(Exception):
    """Base exception for all compliance engine errors."""

    pass


class InvalidInput(ComplianceModelError, ValueError):
    """Raised when dates, ids or required employee fields are invalid."""

    pass


class NotFound(ComplianceModelError, LookupError):
    """Raised when an organization or employee id is unknown."""

    pass


class ExternalProviderUnavailable(ComplianceModelError):
    """Raised when the residency fact provider cannot resolve an address."""

    pass


class PersistenceConflict(ComplianceModelError):
    """Raised by a repository when a snapshot append conflicts with a concurrent write."""

    pass


__all__ = [
    "ComplianceModelError",
    "InvalidInput",
    "NotFound",
    "ExternalProviderUnavailable",
    "PersistenceConflict",
]
