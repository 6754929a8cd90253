from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import insert

from app.auth import extract_token, resolve_caller
from app.tables import auth_tokens

from conftest import LONG_AGO


@pytest.mark.parametrize(
    "authorization, cookie, expected",
    [
        ("Bearer abc", None, "abc"),
        ("bearer  abc ", "cookie", "abc"),
        ("abc", None, "abc"),
        (None, "cookie", "cookie"),
        ("Bearer ", "cookie", None),
        (None, None, None),
    ],
)
def test_extract_token(authorization, cookie, expected):
    assert extract_token(authorization, cookie) == expected


class TestResolveCaller:
    async def test_known_token(self, ctx, store):
        user_id, token = await store.user(role="ADMIN")

        async with ctx.session_factory() as session:
            caller = await resolve_caller(session, token)

        assert caller.user_id == user_id
        assert caller.is_admin

    async def test_unknown_token(self, ctx):
        async with ctx.session_factory() as session:
            assert await resolve_caller(session, "nope") is None
            assert await resolve_caller(session, None) is None

    async def test_expired_token(self, ctx, store):
        user_id, _ = await store.user()
        async with ctx.session_factory() as session:
            async with session.begin():
                await session.execute(
                    insert(auth_tokens).values(token="old", user_id=user_id, expires_at=LONG_AGO)
                )
                await session.execute(
                    insert(auth_tokens).values(
                        token="fresh",
                        user_id=user_id,
                        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
                    )
                )

        async with ctx.session_factory() as session:
            assert await resolve_caller(session, "old") is None
            caller = await resolve_caller(session, "fresh")

        assert caller.user_id == user_id
        assert not caller.is_admin
