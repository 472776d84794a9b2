"""Domain errors raised by the crud layer.

Each carries the HTTP status it maps to; the API renders them as
`{"message": str(error)}`.
"""


class DomainError(ValueError):
    status_code = 400


class NotFound(DomainError):
    status_code = 404


class Conflict(DomainError):
    """Duplicate email, ownership clash, self-delete and similar."""
