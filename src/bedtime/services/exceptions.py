"""Service error hierarchy for the generation pipeline.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, malformed output, missing input)

The job processor consumes an attempt and requeues on TransientError (and on
any unclassified exception), and fails the job immediately on PermanentError.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (5xx)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400, 422)
    - Model output that cannot be parsed
    - Required input data missing from the book record
    """

    pass


# Generation capability errors
class GenerationTimeoutError(TransientError):
    """Generation call exceeded its configured timeout."""

    pass


class GenerationRateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class GenerationUnavailableError(TransientError):
    """Upstream 5xx or connection failure."""

    pass


class GenerationAuthError(PermanentError):
    """Authentication failure (401, 403) or missing API credentials."""

    pass


class GenerationRequestError(PermanentError):
    """Request rejected by the provider (400, 422, content policy)."""

    pass


class MalformedGenerationResponseError(PermanentError):
    """Provider answered but the payload has no usable text or image."""

    pass


class StoryParseError(PermanentError):
    """Story model output is not valid JSON or lacks required fields."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


# Artifact storage errors
class StorageNetworkError(TransientError):
    """Network timeout or connection failure talking to storage."""

    pass


class StorageUnavailableError(TransientError):
    """Storage returned 429 or 5xx."""

    pass


class StorageAuthError(PermanentError):
    """Authentication failure (401, 403)."""

    pass


class StorageNotFoundError(PermanentError):
    """Requested object does not exist (404)."""

    pass


class StorageRequestError(PermanentError):
    """Bad request (400) or other non-retryable storage response."""

    pass


# Pipeline precondition errors
class MissingInputError(PermanentError):
    """A step's required input (photo, character sheet, page text) is absent."""

    pass


class BookNotFoundError(PermanentError):
    """Job (or status request) references a book that does not exist."""

    pass


class BookAlreadyExistsError(ServiceError):
    """Enqueue was called with a book id that is already taken."""

    pass
