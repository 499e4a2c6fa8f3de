"""
Exceptions shared by the external service adapters.
"""

from typing import Optional


class AdapterError(Exception):
    """Base exception for adapter errors."""
    pass


class ConfigurationMissingError(AdapterError):
    """Raised when a required credential or endpoint is not configured."""
    pass


class ExternalServiceError(AdapterError):
    """Raised when an external API returns an error or cannot be reached."""
    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class SchemaValidationError(AdapterError):
    """Raised when an external API response does not have the expected shape."""
    pass


class ResponseParseError(AdapterError):
    """Raised when structured data cannot be extracted from generated text."""
    pass


__all__ = [
    "AdapterError",
    "ConfigurationMissingError",
    "ExternalServiceError",
    "SchemaValidationError",
    "ResponseParseError",
]
