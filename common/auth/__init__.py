"""
Authentication primitives - JWT signing and verification.
"""

from common.auth.jwt_auth import JWTCodec

__all__ = ["JWTCodec"]
