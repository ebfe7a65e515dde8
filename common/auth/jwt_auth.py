"""
JWT signing and verification.

Thin wrapper over python-jose that owns the secret, algorithm and lifetime
of short-lived bearer tokens. Persistence and revocation are the caller's
concern; a token issued here is valid until it expires.

Example:
    codec = JWTCodec(secret="your-secret-key", expire_minutes=5)

    token = codec.encode("65f0c0...", email="a@x.com", roles=["USER"])
    claims = codec.decode(token)
    print(claims["sub"])
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from jose import jwt, JWTError, ExpiredSignatureError


class JWTCodec:
    """
    Encodes and decodes signed JWTs.

    ``decode`` raises ``ValueError`` for every failure mode (bad signature,
    malformed token, expired claim) so callers only handle one type.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expire_minutes: int = 5,
        issuer: Optional[str] = None,
    ):
        """
        Initialize the codec.

        Args:
            secret: Secret key for JWT signing (keep this secure!)
            algorithm: JWT algorithm (default: HS256)
            expire_minutes: Token lifetime
            issuer: Optional ``iss`` claim written and enforced
        """
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self.secret = secret
        self.algorithm = algorithm
        self.expire = timedelta(minutes=expire_minutes)
        self.issuer = issuer

    def encode(self, subject: str, **claims: Any) -> str:
        """Create a signed token for ``subject`` with extra claims."""
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            **claims,
            "sub": subject,
            "iat": now,
            "exp": now + self.expire,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry, returning the claims.

        Raises:
            ValueError: If the token is expired, malformed or forged
        """
        if not token:
            raise ValueError("Token is empty")

        options = {"verify_iss": bool(self.issuer)}
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options=options,
            )
        except ExpiredSignatureError as e:
            raise ValueError("Token has expired") from e
        except JWTError as e:
            raise ValueError(f"Invalid token: {e}") from e
