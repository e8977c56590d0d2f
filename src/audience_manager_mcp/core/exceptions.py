"""Custom exceptions for Audience Manager."""


class AudienceManagerError(Exception):
    """Base exception for all Audience Manager errors."""

    pass


class APIError(AudienceManagerError):
    """Raised when API calls fail."""

    def __init__(self, message: str = "", status_code: int | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code of the failed response (if any)
        """
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Raised when authentication fails."""

    pass


class RateLimitError(APIError):
    """Raised when API rate limits are exceeded."""

    pass


class ValidationError(AudienceManagerError):
    """Raised when arguments violate a helper's contract."""

    pass


class ConfigurationError(AudienceManagerError):
    """Raised when configuration is invalid."""

    pass


class DataError(AudienceManagerError):
    """Raised when sheet data is missing or malformed."""

    pass


class ResourceNotFoundError(AudienceManagerError):
    """Raised when requested resource is not found."""

    pass


class AudienceProcessingError(AudienceManagerError):
    """Raised when creating, updating or sharing an audience fails."""

    def __init__(self, audience_name: str, error: str):
        """Initialize audience processing error.

        Args:
            audience_name: Name of the audience that failed
            error: Original error message
        """
        self.audience_name = audience_name
        self.original_error = error
        super().__init__(f"Error while processing audience '{audience_name}': {error}")
