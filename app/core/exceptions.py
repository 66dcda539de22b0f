"""Custom exception hierarchy."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class NotFoundError(AppError):
    """Raised when an engagement, session or job does not exist."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class APIClientError(AppError):
    """Raised when an external API call fails."""
    def __init__(self, message: str, original_error: Exception = None, status_code: int = None):
        super().__init__(message, original_error)
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        if self.status_code == 429:
            return True
        text = self.message.lower()
        return "rate limit" in text or "resource_exhausted" in text or "429" in text


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class AnalysisError(AppError):
    """Raised when content analysis fails or returns unparseable output."""
    pass


class StorageError(AppError):
    """Raised when the artifact store cannot read or write an object."""
    pass


class PersistenceError(AppError):
    """Raised when a database operation fails."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    def __init__(self, message: str, stage: str = None, original_error: Exception = None):
        super().__init__(message, original_error)
        self.stage = stage


class StageTimeoutError(PipelineError):
    """A stage did not finish within the configured bound."""
    pass


class JobCancelledError(PipelineError):
    """The job reached a terminal state while the pipeline was still running."""
    pass
