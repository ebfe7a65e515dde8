"""
Token generation and hashing utilities.

Refresh tokens and session ids are handed to clients in the clear and
stored only as SHA-256 hashes.
"""

import hashlib
import hmac
import secrets


class TokenHasher:
    """
    Handles token generation, hashing and comparison.
    """

    @staticmethod
    def generate_token(length: int = 32) -> str:
        """
        Generate a cryptographically secure random token.

        Args:
            length: Number of random bytes (output will be hex, so 2x length)

        Returns:
            Hex-encoded random string
        """
        return secrets.token_hex(length)

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Create SHA-256 hash of a token.
        Used for secure storage (never store plain tokens).
        """
        return hashlib.sha256(token.encode()).hexdigest()

    @staticmethod
    def matches(expected: str, presented: str) -> bool:
        """Constant-time comparison of two secrets."""
        if not expected or not presented:
            return False
        return hmac.compare_digest(expected.encode(), presented.encode())
