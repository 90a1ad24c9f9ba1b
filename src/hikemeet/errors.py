"""Domain error taxonomy.

Services raise these; routers map them to HTTP responses with
``raise HTTPException(status_code=e.status_code, detail=str(e)) from e``.
They subclass ValueError so call sites that only know about
ValueError keep working.
"""

from __future__ import annotations


class DomainError(ValueError):
    """Base class for errors a route turns into a 4xx response."""

    status_code = 400


class ValidationError(DomainError):
    """Missing or malformed input."""

    status_code = 400


class ForbiddenError(DomainError):
    """The caller is not allowed to perform the action."""

    status_code = 403


class NotFoundError(DomainError):
    """The target entity does not exist."""

    status_code = 404


class ConflictError(DomainError):
    """The action clashes with the current relationship or membership state."""

    status_code = 409
