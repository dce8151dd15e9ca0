"""Domain-specific exceptions with user-ready messages."""


class ConfigurationError(Exception):
    """Raised when application configuration is invalid."""

    pass


class DiscoveryError(Exception):
    """Raised when the provider's OpenID configuration can't be loaded."""

    pass


class BusinessLogicException(Exception):
    """Base exception class for per-request authentication failures."""

    def __init__(self, message: str, error_code: str) -> None:
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class TokenExchangeError(BusinessLogicException):
    """Exception raised when the authorization code can't be exchanged or verified."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="TOKEN_EXCHANGE_FAILED")


class MissingEmailError(BusinessLogicException):
    """Exception raised when the provider's claims carry no email address."""

    def __init__(
        self, message: str = "Cannot locate email address from the user profile."
    ) -> None:
        super().__init__(message, error_code="MISSING_EMAIL")


class IdentityResolutionError(BusinessLogicException):
    """Exception raised when the authorization API can't resolve or create the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="IDENTITY_RESOLUTION_FAILED")


class InvalidStateError(BusinessLogicException):
    """Exception raised when the echoed state parameter is missing or tampered with."""

    def __init__(self, message: str = "Invalid or missing authentication state.") -> None:
        super().__init__(message, error_code="INVALID_STATE")
