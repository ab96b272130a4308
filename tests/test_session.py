"""
Test per il contesto di sessione (token JWT, refresh silenzioso, listener).
"""
import time
from unittest.mock import MagicMock, patch

import jwt
import pytest

from core.session import SessionContext, decode_access_token, require_session
from ingest.errors import NotAuthenticated

SECRET = "test-secret-key-for-session-tokens-0123456789"


def _token(sub="user-1", exp_delta=3600, secret=SECRET, **claims):
    payload = {"exp": int(time.time()) + exp_delta, **claims}
    if sub is not None:
        payload["sub"] = sub
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def jwt_config():
    """Config con secret JWT di test."""
    with patch("core.session.get_config") as mock:
        config = MagicMock()
        config.jwt_secret_key = SECRET
        config.jwt_algorithm = "HS256"
        mock.return_value = config
        yield config


class TestDecodeAccessToken:

    def test_valid_token(self, jwt_config):
        payload = decode_access_token(_token(aud="authenticated"))
        assert payload["sub"] == "user-1"

    def test_expired_token(self, jwt_config):
        assert decode_access_token(_token(exp_delta=-60)) is None

    def test_wrong_secret(self, jwt_config):
        assert decode_access_token(_token(secret="another-secret-key-for-session-tokens-987654")) is None

    def test_missing_sub(self, jwt_config):
        assert decode_access_token(_token(sub=None)) is None

    def test_missing_secret_rejects(self, jwt_config):
        jwt_config.jwt_secret_key = ""
        assert decode_access_token(_token()) is None

    def test_explicit_secret(self):
        assert decode_access_token(_token(), secret=SECRET, algorithm="HS256")["sub"] == "user-1"


class TestSessionContext:

    def test_from_bearer(self, jwt_config):
        session = SessionContext.from_bearer(f"Bearer {_token()}")
        assert session.get_current_user_id() == "user-1"
        assert session.is_authenticated()

    def test_from_bearer_missing_or_malformed(self, jwt_config):
        assert not SessionContext.from_bearer(None).is_authenticated()
        assert not SessionContext.from_bearer("Basic abc").is_authenticated()

    @pytest.mark.asyncio
    async def test_server_side_session(self):
        session = SessionContext(user_id="user-1")
        assert await session.validate_session()

    @pytest.mark.asyncio
    async def test_expired_token_refreshed(self, jwt_config):
        async def refresher():
            return _token(sub="user-1")

        session = SessionContext(user_id="user-1", access_token=_token(exp_delta=-60), refresher=refresher)

        assert await session.validate_session()
        assert decode_access_token(session.access_token) is not None

    @pytest.mark.asyncio
    async def test_expired_token_without_refresh(self, jwt_config):
        session = SessionContext(user_id="user-1", access_token=_token(exp_delta=-60))
        changes = []
        session.subscribe(lambda s: changes.append(s.get_current_user_id()))

        assert not await session.validate_session()
        assert session.get_current_user_id() is None
        assert changes == [None]

    def test_sign_out_notifies(self):
        session = SessionContext(user_id="user-1")
        changes = []
        unsubscribe = session.subscribe(lambda s: changes.append(s.user_id))

        session.sign_out()
        unsubscribe()
        session.sign_out()

        assert changes == [None]


class TestRequireSession:

    @pytest.mark.asyncio
    async def test_returns_user_id(self):
        assert await require_session(SessionContext(user_id="user-1")) == "user-1"

    @pytest.mark.asyncio
    async def test_rejects_missing_session(self):
        with pytest.raises(NotAuthenticated):
            await require_session(None)
        with pytest.raises(NotAuthenticated):
            await require_session(SessionContext())
