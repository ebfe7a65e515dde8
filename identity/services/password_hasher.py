"""
Password hashing.

New hashes are bcrypt over a SHA-256 pre-hash of the password. Verification
also accepts the legacy ``<salt>:<hex digest>`` PBKDF2-SHA512 format written
by earlier session-based deployments, so those accounts keep working until
their password is next set.
"""

import base64
import hashlib
import hmac
import logging

import bcrypt as bcrypt_lib

logger = logging.getLogger(__name__)

LEGACY_PBKDF2_ITERATIONS = 1000
LEGACY_PBKDF2_KEY_LENGTH = 64


class PasswordHasher:
    """Salted one-way password hashing. ``verify`` never raises."""

    def __init__(self, rounds: int = 12):
        self._rounds = rounds

    @staticmethod
    def _prehash_password(password: str) -> str:
        """
        Pre-hash password with SHA-256 before bcrypt.

        This handles bcrypt's 72-byte limit and ensures consistent
        behavior across all password lengths.
        """
        sha256_hash = hashlib.sha256(password.encode("utf-8")).digest()
        return base64.b64encode(sha256_hash).decode("utf-8")

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt with SHA-256 pre-hashing."""
        prehashed = self._prehash_password(password)
        salt = bcrypt_lib.gensalt(rounds=self._rounds)
        return bcrypt_lib.hashpw(prehashed.encode("utf-8"), salt).decode("utf-8")

    def verify(self, stored: str, password: str) -> bool:
        """Check ``password`` against a stored hash in either supported format."""
        if not isinstance(stored, str) or not isinstance(password, str) or not stored:
            return False

        if stored.startswith("$2"):
            return self._verify_bcrypt(stored, password)
        if ":" in stored:
            return self._verify_legacy(stored, password)

        logger.warning("Unrecognised password hash format")
        return False

    def _verify_bcrypt(self, stored: str, password: str) -> bool:
        prehashed = self._prehash_password(password)
        try:
            return bcrypt_lib.checkpw(prehashed.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            # Malformed salt or hash
            return False

    @staticmethod
    def _verify_legacy(stored: str, password: str) -> bool:
        salt, _, expected = stored.partition(":")
        if not salt or not expected:
            return False
        digest = hashlib.pbkdf2_hmac(
            "sha512",
            password.encode("utf-8"),
            salt.encode("utf-8"),
            LEGACY_PBKDF2_ITERATIONS,
            dklen=LEGACY_PBKDF2_KEY_LENGTH,
        ).hex()
        return hmac.compare_digest(digest, expected.lower())

    def needs_rehash(self, stored: str) -> bool:
        """True for hashes that are not bcrypt (legacy PBKDF2)."""
        return not (isinstance(stored, str) and stored.startswith("$2"))
