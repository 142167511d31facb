from typing import Any, Dict, List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass

class PlatformServiceError(BaseServiceError):
    """Base exception for platform service errors."""
    pass

class ConnectionNotFoundError(PlatformServiceError):
    """Raised when a store connection is missing or inactive."""
    pass

class ScheduleNotFoundError(PlatformServiceError):
    """Raised when a connection has no sync schedule."""
    pass

class TokenDecryptionError(PlatformServiceError):
    """Raised when a stored access token cannot be decrypted."""

    DEFAULT_MESSAGE = (
        "Failed to decrypt access token. The encryption key may have changed. "
        "Please go to Settings and update this connection with a new access token."
    )

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.DEFAULT_MESSAGE)

class ShopifyServiceError(PlatformServiceError):
    """Base exception for Shopify-specific errors."""
    pass

class ShopifyAPIError(ShopifyServiceError):
    """Raised when a Shopify Admin API call fails at transport or GraphQL level."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None, status_code: Optional[int] = None):
        self.errors = errors or []
        self.status_code = status_code
        super().__init__(message)

class ShopifyUserError(ShopifyServiceError):
    """Raised when a mutation returns userErrors."""

    DUPLICATE_CODES = {"TAKEN", "FILENAME_ALREADY_EXISTS", "DUPLICATE", "ALREADY_EXISTS"}

    def __init__(self, operation: str, user_errors: List[Dict[str, Any]]):
        self.operation = operation
        self.user_errors = user_errors
        parts = []
        for error in user_errors:
            field = error.get("field")
            code = error.get("code")
            text = error.get("message", "Unknown error")
            if field:
                text = f"{'.'.join(str(f) for f in field) if isinstance(field, list) else field}: {text}"
            if code:
                text = f"{text} ({code})"
            parts.append(text)
        super().__init__(f"{operation} failed: {', '.join(parts)}")

    @property
    def is_duplicate(self) -> bool:
        """True when the remote side reports the resource already exists."""
        for error in self.user_errors:
            if error.get("code") in self.DUPLICATE_CODES:
                return True
        # Fall back to wording when no dedicated code is returned
        return any("already exists" in (error.get("message") or "").lower() for error in self.user_errors)

    def contains(self, *phrases: str) -> bool:
        text = " ".join((error.get("message") or "").lower() for error in self.user_errors)
        return any(phrase.lower() in text for phrase in phrases)
