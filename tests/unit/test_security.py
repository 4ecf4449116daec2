"""
Unit Tests for Bearer Token Handling
"""

from datetime import timedelta

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from config.settings import get_settings
from core.exceptions import AuthorizationError
from security import (
    create_access_token,
    decode_access_token,
    get_optional_user_id,
    require_reconcile_token,
    require_user_id,
)


def credentials(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def legacy_token(claims):
    settings = get_settings()
    return jwt.encode(claims, settings.secret_key.get_secret_value(), algorithm=settings.jwt_algorithm)


class TestTokens:
    def test_round_trip(self):
        token = create_access_token({"sub": "user-1"})

        data = decode_access_token(token)

        assert data.user_id == "user-1"
        assert data.expires_at is not None

    def test_legacy_user_id_claim(self):
        assert decode_access_token(legacy_token({"userId": 42})).user_id == "42"

    def test_expired_token_is_rejected(self):
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-5))

        with pytest.raises(AuthorizationError) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401

    def test_token_without_subject_is_rejected(self):
        with pytest.raises(AuthorizationError):
            decode_access_token(legacy_token({"scope": "read"}))


class TestDependencies:
    @pytest.mark.asyncio
    async def test_optional_user_ignores_bad_tokens(self):
        assert await get_optional_user_id(None) is None
        assert await get_optional_user_id(credentials("garbage")) is None
        assert await get_optional_user_id(credentials(create_access_token({"sub": "u"}))) == "u"

    @pytest.mark.asyncio
    async def test_required_user_needs_token(self):
        with pytest.raises(AuthorizationError) as exc_info:
            await require_user_id(None)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_reconcile_token(self):
        await require_reconcile_token(credentials("test-reconcile-token"))

        with pytest.raises(AuthorizationError) as exc_info:
            await require_reconcile_token(credentials("test-reconcile-tokeN"))
        assert exc_info.value.status_code == 403
