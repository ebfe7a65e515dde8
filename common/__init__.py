"""
Common library for reusable infrastructure components.

- database: Async MongoDB connection with Motor
- auth: JWT signing and verification
- utils: Standard responses, exceptions, password policy
- config: Base settings class
"""

from common.database import MongoDB
from common.auth import JWTCodec
from common.utils import (
    success_response,
    error_response,
    APIException,
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    InternalServerException,
    validate_password,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    # Auth
    "JWTCodec",
    # Utils
    "success_response",
    "error_response",
    "APIException",
    "BadRequestException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "InternalServerException",
    "validate_password",
    # Config
    "BaseAppSettings",
]
