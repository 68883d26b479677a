"""Authentication error taxonomy.

Each class carries the HTTP status and a stable error code so the API layer
can render it without knowing which internal check failed.
"""


class AuthError(Exception):
    """Base authentication error."""

    status_code: int = 400
    error_code: str = "auth_error"
    default_message: str = "Authentication error"

    def __init__(self, message: str | None = None, *, errors: dict | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed input."""

    status_code = 422
    error_code = "validation_error"
    default_message = "Invalid request"


class AuthenticationError(AuthError):
    """Bad credential or invalid/expired/revoked token.

    The public message is always generic.
    """

    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized"


class InvalidCredentialsError(AuthenticationError):
    """Wrong phone/email or PIN/password."""

    default_message = "Invalid credentials"


class TokenError(AuthenticationError):
    """JWT token error."""

    default_message = "Invalid or expired token"


class InvalidTokenError(TokenError):
    """JWT token is invalid, revoked or stale."""

    pass


class TokenExpiredError(TokenError):
    """JWT token has expired."""

    pass


class AuthorizationError(AuthError):
    """Banned or unverified account."""

    status_code = 403
    error_code = "forbidden"
    default_message = "Account is not allowed to sign in"


class RateLimitError(AuthError):
    """Too many requests for a throttled operation."""

    status_code = 429
    error_code = "rate_limited"
    default_message = "Too many requests. Please try again later."


class AccountLockedError(RateLimitError):
    """Lockout threshold reached; the account has been deactivated."""

    status_code = 403
    error_code = "account_locked"
    default_message = "Account has been locked after too many failed login attempts."


class MalformedPrincipal(AuthError):
    """A required token claim cannot be resolved from the principal."""

    status_code = 500
    error_code = "malformed_principal"
    default_message = "Principal cannot be issued credentials"
