"""Custom exception hierarchy for the repo-planner bot.

This module defines a structured exception hierarchy that separates the
error classes the planning pipeline reacts to differently: rate limiting,
transient external failures, domain failures and malformed AI output.

Exception Hierarchy:
    RepoPlannerError (base)
    ├── ConfigurationError
    ├── RateLimitExceededError
    ├── ExternalServiceError
    │   └── AIResponseError
    ├── DomainError
    │   ├── NotFoundError
    │   └── PermissionDeniedError
    ├── IngestionError
    ├── WorkflowError
    └── TemplateError

Example Usage:
    >>> from repo_planner.exceptions import ExternalServiceError
    >>> try:
    ...     await completion.complete(system, user)
    ... except ExternalServiceError as e:
    ...     if not e.retryable:
    ...         raise
"""

from typing import Any


class RepoPlannerError(Exception):
    """Base exception for all repo-planner errors.

    All custom exceptions inherit from this base class, allowing callers to
    catch every planner-specific error with a single except clause.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(RepoPlannerError):
    """Configuration-related errors.

    Raised when configuration files are invalid, missing, or contain
    incompatible settings.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Unset environment variable referenced without a default
    """

    pass


class RateLimitExceededError(RepoPlannerError):
    """A rate-limit key has exhausted its allowance for the current window.

    The caller must abort the run and report this to the user. It is never
    queued or retried.

    Attributes:
        message: Human-readable error description
        key: The rate-limit key that was denied
        limit: Allowed calls per window
        window_seconds: Length of the sliding window
    """

    def __init__(self, key: str, limit: int, window_seconds: float) -> None:
        """Initialize exception.

        Args:
            key: Rate-limit key
            limit: Allowed calls per window
            window_seconds: Window length in seconds
        """
        self.key = key
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(
            f"Rate limit exceeded for {key}: at most {limit} runs per {window_seconds:g} seconds"
        )


class ExternalServiceError(RepoPlannerError):
    """External service communication errors.

    Raised when a call to the code-hosting platform or the AI completion
    service fails in a way that may be transient. Whether a retry makes
    sense is exposed through ``retryable``.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code, None for network errors and timeouts
        response_text: Raw response body, if any

    Examples:
        - HTTP 429 rate limiting from the AI service
        - HTTP 5xx from the platform
        - Connection reset or request timeout
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient (429, 5xx, network, timeout)."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class AIResponseError(ExternalServiceError):
    """The AI service answered, but not with the expected structure.

    Parse and shape failures are retried like transient failures and then
    fall back to a deterministic default.

    Examples:
        - Empty completion content
        - No JSON object in the completion
        - Required analysis lists missing or not arrays
    """

    def __init__(self, message: str, response_text: str | None = None) -> None:
        super().__init__(message, status_code=None, response_text=response_text)


class DomainError(RepoPlannerError):
    """Non-retryable failures reported by the platform.

    Attributes:
        message: Human-readable error description
        details: Additional context about the failing call
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class NotFoundError(DomainError):
    """The requested repository, file, issue or milestone does not exist (404)."""

    pass


class PermissionDeniedError(DomainError):
    """The bot lacks permission for the requested operation (403)."""

    pass


class IngestionError(RepoPlannerError):
    """Repository ingestion could not produce a usable summary.

    Raised when repository metadata or the file tree cannot be read at all.
    Individual key-file failures never raise this.
    """

    pass


class WorkflowError(RepoPlannerError):
    """Pipeline stage execution errors.

    Examples:
        - Milestone description cannot be parsed back into an analysis
        - Every repository in a multi-repository plan failed
    """

    pass


class TemplateError(RepoPlannerError):
    """Template rendering errors.

    Examples:
        - Template file not found
        - Missing template variables
    """

    pass
