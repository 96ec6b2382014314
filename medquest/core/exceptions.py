"""Exception hierarchy for the progression service.

Every error carries the HTTP status it maps to so the API layer can render
it with a single handler.
"""

from fastapi import status


class ProgressionError(Exception):
    """Base exception for progression errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Progression error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(ProgressionError):
    """An account, achievement or badge does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ConflictError(ProgressionError):
    """The requested change collides with existing state."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists"


class ValidationError(ProgressionError):
    """Malformed input, such as an unknown activity category or a negative count."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid input"


class LookupUnavailableError(ProgressionError):
    """An external lookup needed by a badge predicate could not answer."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Lookup unavailable"


class CatalogError(ProgressionError):
    """The achievement catalog failed its startup validation."""

    default_detail = "Invalid achievement catalog"
