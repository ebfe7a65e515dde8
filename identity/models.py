"""
Pydantic models for accounts, credentials and operation payloads.

Field names follow the stored document keys (camelCase) so a model can be
dumped straight into a Mongo document and read back without a mapping layer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Union

from pydantic import BaseModel, Field, model_validator


# Device string used when a caller sends no (or a blank) user agent.
NO_USER_AGENT = "unknown"


def utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def normalize_device(device: Optional[str]) -> str:
    """Collapse a missing or blank device string to ``NO_USER_AGENT``."""
    if device is None:
        return NO_USER_AGENT
    device = device.strip()
    return device or NO_USER_AGENT


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class Provider(str, Enum):
    LOCAL = "LOCAL"
    GOOGLE = "GOOGLE"
    YANDEX = "YANDEX"


# =============================================================================
# Persisted entities
# =============================================================================

class Account(BaseModel):
    """A user account. ``id`` is opaque to everything above the stores."""
    id: str
    name: str
    surname: str
    email: str
    passwordHash: Optional[str] = None
    phoneNumber: Optional[str] = None
    activated: bool = False
    isBlocked: bool = False
    roles: List[Role] = Field(default_factory=lambda: [Role.USER])
    provider: Provider = Provider.LOCAL
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Account":
        if self.provider != Provider.LOCAL and self.passwordHash:
            raise ValueError("Provider-backed accounts cannot carry a password")
        # Roles behave as a set; keep first-seen order for stable output.
        deduped = list(dict.fromkeys(self.roles))
        if len(deduped) != len(self.roles):
            self.roles = deduped
        return self

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(Role.ADMIN)

    @property
    def has_usable_password(self) -> bool:
        return self.provider == Provider.LOCAL and bool(self.passwordHash)

    def with_role(self, role: Role) -> "Account":
        """Return a copy holding ``role``. Adding a held role is a no-op."""
        if self.has_role(role):
            return self
        return self.model_copy(update={"roles": [*self.roles, role], "updatedAt": utcnow()})

    def to_view(self, tokens_count: Optional[int] = None) -> "AccountView":
        return AccountView(
            id=self.id,
            name=self.name,
            surname=self.surname,
            email=self.email,
            phoneNumber=self.phoneNumber,
            activated=self.activated,
            isBlocked=self.isBlocked,
            roles=list(self.roles),
            provider=self.provider,
            createdAt=self.createdAt,
            tokensCount=tokens_count,
        )


class RefreshToken(BaseModel):
    """
    Stored refresh token. Only the SHA-256 hash of the client value is kept;
    (accountId, device) is unique.
    """
    valueHash: str
    accountId: str
    device: str
    expiresAt: datetime
    createdAt: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expiresAt <= (now or utcnow())


class Session(BaseModel):
    """Stored cookie session, keyed by the hash of the session id."""
    sessionIdHash: str
    accountId: str
    csrfToken: str
    expiresAt: datetime
    createdAt: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expiresAt <= (now or utcnow())


# =============================================================================
# Credentials handed to clients
# =============================================================================

class TokenPair(BaseModel):
    """Bearer-scheme credentials."""
    accessToken: str
    refreshToken: str
    refreshExpiresAt: datetime
    tokenType: str = "Bearer"


class SessionCredentials(BaseModel):
    """Session-scheme credentials; ``sessionId`` goes into the cookie."""
    sessionId: str
    csrfToken: str
    expiresAt: datetime


Credentials = Union[TokenPair, SessionCredentials]


class AccessClaims(BaseModel):
    """Claims carried by an access token."""
    id: str
    email: str
    roles: List[Role]


# =============================================================================
# Operation inputs / outputs
# =============================================================================

class AccountView(BaseModel):
    """Account as returned to callers (never includes the password hash)."""
    id: str
    name: str
    surname: str
    email: str
    phoneNumber: Optional[str] = None
    activated: bool = False
    isBlocked: bool = False
    roles: List[Role]
    provider: Provider
    createdAt: Optional[datetime] = None
    tokensCount: Optional[int] = None


class AccountWithCredentials(BaseModel):
    account: AccountView
    credentials: Credentials


class ProviderProfile(BaseModel):
    """Identity asserted by a federated provider after its own login flow."""
    email: str = ""
    name: str = ""
    surname: str = ""


class PresentedCredential(BaseModel):
    """
    Whatever the caller presented for an authenticated operation.

    Bearer mode reads ``token`` (refresh or access token, depending on the
    operation); session mode reads ``sessionId`` and ``csrfToken``. A missing
    ``device`` means "no user agent" for ``me`` and "the token's own device"
    for ``refresh``.
    """
    token: Optional[str] = None
    sessionId: Optional[str] = None
    csrfToken: Optional[str] = None
    device: Optional[str] = None


class UsersPage(BaseModel):
    total: int
    page: int
    limit: int
    users: List[AccountView]


class UsersStats(BaseModel):
    total: int
    blocked: int
    admins: int
    activated: int
    activeSessions: int
