"""
Cookie session management.

A session is a random id (held by the client in a cookie) paired with a CSRF
token that must accompany state-changing calls. Only the SHA-256 hash of the
session id is stored. Expired sessions are removed when they are next seen.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from identity.errors import (
    AccountNotFound,
    CsrfMismatch,
    SessionExpiredException,
    SessionNotFound,
)
from identity.models import Account, Session, SessionCredentials, utcnow
from identity.services.token_hasher import TokenHasher
from identity.stores.base import IdentityStore, SessionStore

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Creates, validates, extends and destroys cookie sessions.

    Usage:
        credentials = await manager.create_session(account)
        account = await manager.validate_session(credentials.sessionId)
        await manager.authorize(credentials.sessionId, credentials.csrfToken)
    """

    def __init__(
        self,
        session_store: SessionStore,
        identity_store: IdentityStore,
        expire_hours: int = 24,
    ):
        self._sessions = session_store
        self._accounts = identity_store
        self._ttl = timedelta(hours=expire_hours)

    async def create_session(self, account: Account) -> SessionCredentials:
        session_id = TokenHasher.generate_token()
        csrf_token = TokenHasher.generate_token()
        session = Session(
            sessionIdHash=TokenHasher.hash_token(session_id),
            accountId=account.id,
            csrfToken=csrf_token,
            expiresAt=utcnow() + self._ttl,
        )
        await self._sessions.create(session)

        logger.info(f"Created session for account {account.id}")
        return SessionCredentials(
            sessionId=session_id,
            csrfToken=csrf_token,
            expiresAt=session.expiresAt,
        )

    async def _load(self, session_id: Optional[str]) -> Session:
        """
        Fetch a live session.

        Raises:
            SessionNotFound: Unknown session id
            SessionExpiredException: Session past expiry (it is deleted)
        """
        if not session_id:
            raise SessionNotFound()

        session_id_hash = TokenHasher.hash_token(session_id)
        session = await self._sessions.find(session_id_hash)
        if session is None:
            raise SessionNotFound()

        if session.is_expired():
            await self._sessions.delete(session_id_hash)
            logger.info(f"Session expired for account {session.accountId}")
            raise SessionExpiredException()

        return session

    async def _load_with_account(self, session_id: Optional[str]) -> Tuple[Session, Account]:
        session = await self._load(session_id)
        account = await self._accounts.get_by_id(session.accountId)
        if account is None:
            raise AccountNotFound()
        return session, account

    async def validate_session(self, session_id: Optional[str]) -> Account:
        """Return the account owning a live session."""
        _, account = await self._load_with_account(session_id)
        return account

    async def current_session(self, session_id: Optional[str]) -> Tuple[Account, SessionCredentials]:
        """
        The owning account plus the session's current credentials, so a
        client holding only the cookie can recover its CSRF token.
        """
        session, account = await self._load_with_account(session_id)
        return account, SessionCredentials(
            sessionId=session_id,
            csrfToken=session.csrfToken,
            expiresAt=session.expiresAt,
        )

    async def refresh_session(self, session_id: Optional[str]) -> SessionCredentials:
        """Push the expiry out by one lifetime; id and CSRF token are unchanged."""
        session = await self._load(session_id)
        expires_at = utcnow() + self._ttl
        if not await self._sessions.extend(session.sessionIdHash, expires_at):
            raise SessionNotFound()

        logger.debug(f"Extended session for account {session.accountId}")
        return SessionCredentials(
            sessionId=session_id,
            csrfToken=session.csrfToken,
            expiresAt=expires_at,
        )

    async def rotate_session(self, session_id: Optional[str]) -> Tuple[Account, SessionCredentials]:
        """Replace a live session with a new id and CSRF token."""
        session, account = await self._load_with_account(session_id)
        await self._sessions.delete(session.sessionIdHash)
        credentials = await self.create_session(account)
        return account, credentials

    async def authorize(self, session_id: Optional[str], csrf_token: Optional[str]) -> Session:
        """
        Check a session and its CSRF token.

        A CSRF mismatch leaves the session in place.

        Raises:
            CsrfMismatch: The CSRF token does not belong to the session
        """
        session = await self._load(session_id)
        if not TokenHasher.matches(session.csrfToken, csrf_token or ""):
            logger.warning(f"CSRF mismatch for account {session.accountId}")
            raise CsrfMismatch()
        return session

    async def authorized_account(self, session_id: Optional[str], csrf_token: Optional[str]) -> Account:
        """``authorize`` and return the owning account."""
        session = await self.authorize(session_id, csrf_token)
        account = await self._accounts.get_by_id(session.accountId)
        if account is None:
            raise AccountNotFound()
        return account

    async def destroy_session(self, session_id: Optional[str], csrf_token: Optional[str]) -> None:
        session = await self.authorize(session_id, csrf_token)
        await self._sessions.delete(session.sessionIdHash)
        logger.info(f"Session destroyed for account {session.accountId}")

    async def destroy_all_for_account(self, account_id: str) -> int:
        removed = await self._sessions.delete_for_account(account_id)
        logger.info(f"Destroyed {removed} session(s) for account {account_id}")
        return removed

    async def count_active(self) -> int:
        return await self._sessions.count_all()
