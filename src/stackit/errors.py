"""Domain errors raised by service modules and mapped to HTTP status codes."""

from __future__ import annotations


class ContentNotFoundError(LookupError):
    """A referenced user, question, answer, comment or notification does not exist."""


class PermissionDeniedError(ValueError):
    """The acting user may not perform this operation on the target."""


class ConflictError(ValueError):
    """The write would violate a uniqueness rule (username, email, ...)."""
