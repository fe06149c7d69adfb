"""
Error taxonomy for the article API.

Every error carries the HTTP status and the error name that the exception
handler in ``app.main`` renders into the standard error envelope::

    {"data": null, "error": {"status": 404, "name": "NotFoundError", "message": "..."}}

Services and policies raise these directly; nothing in the core catches
or retries them.
"""


class ArticleAPIError(Exception):
    """Base class for all errors surfaced to API clients."""

    status_code: int = 500
    error_name: str = "ApplicationError"
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(ArticleAPIError):
    """Malformed query parameters, filters or derived values."""

    status_code = 400
    error_name = "ValidationError"
    default_message = "Invalid request"


class UnauthorizedError(ArticleAPIError):
    status_code = 401
    error_name = "UnauthorizedError"
    default_message = "You must be authenticated"


class ForbiddenError(ArticleAPIError):
    status_code = 403
    error_name = "ForbiddenError"
    default_message = "Forbidden"


class NotFoundError(ArticleAPIError):
    status_code = 404
    error_name = "NotFoundError"
    default_message = "Not Found"


class StoreError(ArticleAPIError):
    """
    Failure inside the data store.

    The original driver exception is chained as ``__cause__``; the message
    is logged but never sent to clients.
    """


class ConflictError(StoreError):
    """A write violated a uniqueness constraint (e.g. a duplicate slug)."""

    status_code = 409
    error_name = "ConflictError"
    default_message = "This attribute must be unique"
