"""Custom exceptions for the SnapName application."""


class SnapNameException(Exception):
    """Base class for application exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)


class InvalidRequestError(SnapNameException):
    """Raised when a request is missing required input.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400


class InvalidImageError(InvalidRequestError):
    """Raised when an uploaded image fails validation."""


class ImageNotFoundError(SnapNameException):
    """Raised when the image store has no image with the given id.

    Maps to HTTP 404 Not Found.
    """
    status_code = 404

    def __init__(self, public_id: str):
        self.public_id = public_id
        super().__init__("Image not found or already deleted")


class UpstreamServiceError(SnapNameException):
    """Raised when an upstream service answers with an unusable payload.

    Never retried: the upstream call itself succeeded.
    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502

    def __init__(self, upstream: str, message: str):
        self.upstream = upstream
        super().__init__(message)


class RetryAbortedError(SnapNameException):
    """Raised when a retry sequence is stopped before it could finish.

    The failure that preceded the abort, if any, is kept in
    ``last_error`` and chained as ``__cause__``.
    """

    def __init__(self, message: str, attempts: int, last_error: BaseException | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)


class RetryCancelledError(RetryAbortedError):
    """Raised when the caller cancels a retry sequence.

    Maps to HTTP 499 Client Closed Request.
    """
    status_code = 499

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        super().__init__("Request cancelled.", attempts, last_error)


class RetryTimeoutError(RetryAbortedError):
    """Raised when the caller's deadline expires during a retry sequence.

    Maps to HTTP 408 Request Timeout.
    """
    status_code = 408

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        super().__init__("Request timeout. Please try again.", attempts, last_error)
