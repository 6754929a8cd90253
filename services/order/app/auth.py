"""
呼び出し元の解決

トークンの発行はこのサービスの責務ではない。発行済みのトークンを
auth_tokens から引き、ユーザー ID とロールだけを返す。
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .tables import auth_tokens, users


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def extract_token(authorization: str | None, cookie_token: str | None = None) -> str | None:
    """Authorization: Bearer <token> を優先し、無ければ token クッキーを使う。"""
    if authorization and authorization.strip():
        scheme, _, credentials = authorization.strip().partition(" ")
        if scheme.lower() == "bearer":
            return credentials.strip() or None
        return authorization.strip()
    return cookie_token or None


async def resolve_caller(
    session: AsyncSession,
    token: str | None,
    now: datetime | None = None,
) -> Caller | None:
    if not token:
        return None
    result = await session.execute(
        select(users.c.id, users.c.role, auth_tokens.c.expires_at)
        .select_from(auth_tokens)
        .join(users, users.c.id == auth_tokens.c.user_id)
        .where(auth_tokens.c.token == token)
    )
    row = result.fetchone()
    if row is None:
        return None
    if row.expires_at is not None:
        expires_at = row.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= (now or datetime.now(timezone.utc)):
            return None
    return Caller(user_id=row.id, role=row.role)
