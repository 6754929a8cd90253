import io
import uuid
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import func, insert, select, update
from starlette.datastructures import Headers, UploadFile

from app.config import Settings
from app.context import StorefrontContext
from app.db import create_schema
from app.main import create_app
from app.normalizer import normalize_order_request
from app.tables import auth_tokens, coupons, product_translations, products, users

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def make_upload(filename="slip.png", content_type="image/png", data=PNG_BYTES) -> UploadFile:
    headers = Headers({"content-type": content_type}) if content_type else None
    return UploadFile(file=io.BytesIO(data), filename=filename, headers=headers)


def order_fields(items, **overrides) -> dict:
    fields = {
        "recipient": "Somchai Jaidee",
        "line1": "99/1 Sukhumvit Rd",
        "city": "Bangkok",
        "postalCode": "10110",
        "country": "Thailand",
        "paymentMethod": "cod",
        "items": items,
    }
    fields.update(overrides)
    return fields


def make_command(items, **overrides):
    return normalize_order_request(order_fields(items, **overrides))


class Store:
    """テスト用のデータ投入・確認ヘルパー"""

    def __init__(self, ctx: StorefrontContext) -> None:
        self.ctx = ctx

    async def _insert(self, table, **values) -> None:
        async with self.ctx.session_factory() as session:
            async with session.begin():
                await session.execute(insert(table).values(**values))

    async def user(self, role: str = "USER") -> tuple[str, str]:
        user_id = str(uuid.uuid4())
        token = uuid.uuid4().hex
        await self._insert(users, id=user_id, email=f"{user_id}@example.com", role=role)
        await self._insert(auth_tokens, token=token, user_id=user_id)
        return user_id, token

    async def product(
        self,
        *,
        price: int,
        stock: int,
        sale_price: int | None = None,
        names: dict[str, str] | None = None,
    ) -> str:
        product_id = str(uuid.uuid4())
        await self._insert(
            products, id=product_id, price=price, sale_price=sale_price, stock=stock
        )
        for locale, name in (names or {}).items():
            await self._insert(
                product_translations, product_id=product_id, locale=locale, name=name
            )
        return product_id

    async def coupon(
        self,
        code: str,
        *,
        discount_type: str = "percent",
        discount_value: int = 10,
        usage_limit: int | None = None,
        used_count: int = 0,
        expires_at: datetime | None = None,
    ) -> str:
        coupon_id = str(uuid.uuid4())
        await self._insert(
            coupons,
            id=coupon_id,
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            usage_limit=usage_limit,
            used_count=used_count,
            expires_at=expires_at,
        )
        return coupon_id

    async def stock_of(self, product_id: str) -> int:
        async with self.ctx.session_factory() as session:
            return await session.scalar(select(products.c.stock).where(products.c.id == product_id))

    async def set_stock(self, product_id: str, stock: int) -> None:
        async with self.ctx.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(products).where(products.c.id == product_id).values(stock=stock)
                )

    async def used_count(self, code: str) -> int:
        async with self.ctx.session_factory() as session:
            return await session.scalar(select(coupons.c.used_count).where(coupons.c.code == code))

    async def set_used_count(self, code: str, used_count: int) -> None:
        async with self.ctx.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(coupons).where(coupons.c.code == code).values(used_count=used_count)
                )

    async def count(self, table) -> int:
        async with self.ctx.session_factory() as session:
            return await session.scalar(select(func.count()).select_from(table))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        upload_root=tmp_path / "uploads",
        log_level="WARNING",
    )


@pytest.fixture
async def ctx(settings):
    ctx = StorefrontContext.from_settings(settings)
    await create_schema(ctx.engine)
    yield ctx
    await ctx.aclose()


@pytest.fixture
def store(ctx) -> Store:
    return Store(ctx)


@pytest.fixture
async def client(ctx):
    app = create_app(context=ctx)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)
