"""
Domain exceptions for the identity service.

Each one is a specialisation of the shared ``APIException`` family, so the
status and code travel with the exception up to the operation boundary.
"""

from typing import Optional, Any

from common.utils.exceptions import (
    APIException,
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
)

SESSION_EXPIRED_STATUS = 440


class SessionExpiredException(APIException):
    """440 Session Expired - kept apart from 401 so clients can re-prompt."""

    def __init__(
        self,
        message: str = "Session expired",
        code: str = "SESSION_EXPIRED",
        details: Optional[Any] = None,
    ):
        super().__init__(SESSION_EXPIRED_STATUS, message, code, details)


class AccountNotFound(NotFoundException):
    def __init__(self, message: str = "Account not found"):
        super().__init__(message=message, code="ACCOUNT_NOT_FOUND")


class EmailTaken(ConflictException):
    def __init__(self, message: str = "Email already registered"):
        super().__init__(message=message, code="EMAIL_TAKEN")


class ProviderMismatch(ConflictException):
    def __init__(self, message: str = "Account is registered with a different provider"):
        super().__init__(message=message, code="PROVIDER_MISMATCH")


class AdminProtected(ConflictException):
    def __init__(self, message: str = "Operation not allowed on an admin account"):
        super().__init__(message=message, code="ADMIN_PROTECTED")


class RoleAlreadyAssigned(ConflictException):
    def __init__(self, message: str = "Role already assigned"):
        super().__init__(message=message, code="ROLE_ALREADY_ASSIGNED")


class AccountBlocked(ForbiddenException):
    def __init__(self, message: str = "Account is blocked"):
        super().__init__(message=message, code="ACCOUNT_BLOCKED")


class CsrfMismatch(ForbiddenException):
    def __init__(self, message: str = "CSRF token mismatch"):
        super().__init__(message=message, code="CSRF_MISMATCH")


class InvalidCredentials(UnauthorizedException):
    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, code="INVALID_CREDENTIALS")


class InvalidAccessToken(UnauthorizedException):
    def __init__(self, message: str = "Invalid or expired access token"):
        super().__init__(message=message, code="INVALID_ACCESS_TOKEN")


class RefreshTokenNotFound(NotFoundException):
    def __init__(self, message: str = "Refresh token not found"):
        super().__init__(message=message, code="REFRESH_TOKEN_NOT_FOUND")


class RefreshTokenExpired(UnauthorizedException):
    def __init__(self, message: str = "Refresh token expired"):
        super().__init__(message=message, code="REFRESH_TOKEN_EXPIRED")


class SessionNotFound(UnauthorizedException):
    def __init__(self, message: str = "Session not found"):
        super().__init__(message=message, code="SESSION_NOT_FOUND")


class InvalidInput(BadRequestException):
    def __init__(self, message: str = "Invalid input", details: Optional[Any] = None):
        super().__init__(message=message, code="INVALID_INPUT", details=details)
