"""
Identity service settings.

Extends the base settings with credential lifetimes, the active auth scheme
and the behaviour switches for account rules that differ between
deployments.
"""

from typing import Optional
from common.config import BaseAppSettings


AUTH_SCHEMES = ("jwt", "session")


class Settings(BaseAppSettings):
    """Identity-specific settings."""

    # ==========================================================================
    # Auth Scheme
    # ==========================================================================
    AUTH_SCHEME: str = "jwt"  # "jwt" (bearer + refresh) or "session" (cookie + CSRF)

    # Refresh tokens ("one month")
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Cookie sessions
    SESSION_EXPIRE_HOURS: int = 24
    SESSION_ROTATE_ON_ME: bool = False

    # ==========================================================================
    # Account Rules
    # ==========================================================================
    ADMIN_BLOCK_EXEMPT: bool = True
    TRIM_IDENTIFIERS: bool = True
    LOWERCASE_EMAIL: bool = False

    # Password policy
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = 100
    PASSWORD_BCRYPT_ROUNDS: int = 12

    # ==========================================================================
    # Search Collaborator
    # ==========================================================================
    SEARCH_SERVICE_URL: Optional[str] = None
    SEARCH_TIMEOUT_SECONDS: float = 5.0
    REINDEX_ON_STARTUP: bool = True

    # ==========================================================================
    # Email Settings (welcome email)
    # ==========================================================================
    EMAIL_MODE: str = "console"  # console, smtp, resend
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_FROM_NAME: str = "Identity Service"
    APP_URL: str = "http://localhost:3000"

    def collect_errors(self) -> list:
        errors = super().collect_errors()

        if self.AUTH_SCHEME not in AUTH_SCHEMES:
            errors.append(
                f"AUTH_SCHEME must be one of {', '.join(AUTH_SCHEMES)}, got {self.AUTH_SCHEME!r}"
            )

        # jwtAuth and userRoles verify access tokens under either scheme
        if not self.JWT_SECRET:
            errors.append("JWT_SECRET is required to sign access tokens")

        if self.PASSWORD_MIN_LENGTH > self.PASSWORD_MAX_LENGTH:
            errors.append("PASSWORD_MIN_LENGTH must not exceed PASSWORD_MAX_LENGTH")

        return errors

    def uses_sessions(self) -> bool:
        """True when cookie sessions are the active auth scheme."""
        return self.AUTH_SCHEME == "session"


# Global settings instance
settings = Settings()
