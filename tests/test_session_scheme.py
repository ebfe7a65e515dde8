"""Behaviour tests for AuthGateway with the cookie session scheme."""

from datetime import timedelta

import pytest

from identity.dependencies import build_gateway
from identity.models import AccountWithCredentials, PresentedCredential, SessionCredentials, utcnow
from identity.results import ResultStatus
from identity.services.token_hasher import TokenHasher


async def signup(gateway, email="a@x.com"):
    result = await gateway.signup(email, "pw123456", "A", "B", "ua-1")
    assert result.status == ResultStatus.CREATED, result.message
    return result.data


def presented(credentials: SessionCredentials, csrf: str = None) -> PresentedCredential:
    return PresentedCredential(
        sessionId=credentials.sessionId,
        csrfToken=credentials.csrfToken if csrf is None else csrf,
    )


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_signup_issues_session(self, session_gateway, session_store):
        created = await signup(session_gateway)

        assert session_gateway.scheme_name == "session"
        assert isinstance(created.credentials, SessionCredentials)
        assert await session_store.count_all() == 1

    @pytest.mark.asyncio
    async def test_me_returns_account(self, session_gateway):
        created = await signup(session_gateway)

        cookie_only = PresentedCredential(sessionId=created.credentials.sessionId)
        result = await session_gateway.me(cookie_only)

        assert result.status == ResultStatus.OK
        assert isinstance(result.data, AccountWithCredentials)
        assert result.data.account.id == created.account.id
        assert result.data.credentials.sessionId == created.credentials.sessionId
        assert result.data.credentials.csrfToken == created.credentials.csrfToken

    @pytest.mark.asyncio
    async def test_csrf_from_me_authorizes(self, session_gateway):
        created = await signup(session_gateway)

        me = await session_gateway.me(PresentedCredential(sessionId=created.credentials.sessionId))
        result = await session_gateway.authorize(presented(me.data.credentials))

        assert result.status == ResultStatus.NO_CONTENT

    @pytest.mark.asyncio
    async def test_refresh_keeps_ids(self, session_gateway):
        created = await signup(session_gateway)

        result = await session_gateway.refresh(presented(created.credentials))

        assert result.data.sessionId == created.credentials.sessionId
        assert result.data.csrfToken == created.credentials.csrfToken
        assert result.data.expiresAt >= created.credentials.expiresAt

    @pytest.mark.asyncio
    async def test_authorize_with_wrong_csrf(self, session_gateway, session_store):
        created = await signup(session_gateway)

        wrong = await session_gateway.authorize(presented(created.credentials, csrf="wrong"))
        right = await session_gateway.authorize(presented(created.credentials))

        assert wrong.status == ResultStatus.FORBIDDEN
        assert right.status == ResultStatus.NO_CONTENT
        assert await session_store.count_all() == 1

    @pytest.mark.asyncio
    async def test_logout(self, session_gateway):
        created = await signup(session_gateway)

        forbidden = await session_gateway.logout(presented(created.credentials, csrf="wrong"))
        done = await session_gateway.logout(presented(created.credentials))
        me = await session_gateway.me(presented(created.credentials))

        assert forbidden.status == ResultStatus.FORBIDDEN
        assert done.status == ResultStatus.NO_CONTENT
        assert me.status == ResultStatus.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_expired_session(self, session_gateway, session_store):
        created = await signup(session_gateway)
        session_hash = TokenHasher.hash_token(created.credentials.sessionId)
        await session_store.extend(session_hash, utcnow() - timedelta(seconds=1))

        first = await session_gateway.me(presented(created.credentials))
        second = await session_gateway.me(presented(created.credentials))

        assert first.status == ResultStatus.SESSION_EXPIRED
        assert int(first.status) == 440
        assert second.status == ResultStatus.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_block_destroys_sessions(self, session_gateway, session_store):
        created = await signup(session_gateway)

        await session_gateway.block_user(created.account.id)
        result = await session_gateway.me(presented(created.credentials))

        assert result.status == ResultStatus.UNAUTHORIZED
        assert await session_store.count_all() == 0

    @pytest.mark.asyncio
    async def test_delete_with_session_credentials(self, session_gateway, identity_store, session_store):
        created = await signup(session_gateway)

        no_session = await session_gateway.delete_user(created.account.id, "garbage")
        wrong_csrf = await session_gateway.delete_user(created.account.id, presented(created.credentials, csrf="x"))
        deleted = await session_gateway.delete_user(created.account.id, presented(created.credentials))

        assert no_session.status == ResultStatus.UNAUTHORIZED
        assert wrong_csrf.status == ResultStatus.FORBIDDEN
        assert deleted.status == ResultStatus.OK
        assert deleted.data.id == created.account.id
        assert await identity_store.get_by_id(created.account.id) is None
        assert await session_store.count_all() == 0


class TestRotateOnMe:
    @pytest.mark.asyncio
    async def test_me_rotates_when_enabled(
        self, identity_store, token_store, session_store, settings_factory, search_index, email_service, dispatcher
    ):
        gateway = build_gateway(
            identity_store,
            token_store,
            session_store,
            config=settings_factory(AUTH_SCHEME="session", SESSION_ROTATE_ON_ME=True),
            search_index=search_index,
            email_service=email_service,
            dispatcher=dispatcher,
        )
        created = await signup(gateway)

        result = await gateway.me(presented(created.credentials))
        stale = await gateway.me(presented(created.credentials))

        assert isinstance(result.data, AccountWithCredentials)
        assert result.data.credentials.sessionId != created.credentials.sessionId
        assert stale.status == ResultStatus.UNAUTHORIZED
        assert await session_store.count_all() == 1
