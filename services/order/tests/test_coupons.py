from datetime import datetime, timedelta, timezone

import pytest

from app.coupons import compute_discount, evaluate_coupon, reserve_coupon_usage
from app.errors import CouponExhaustedError, ExpiredCouponError, InvalidCouponError

from conftest import LONG_AGO


@pytest.mark.parametrize(
    "discount_type, value, subtotal, expected",
    [
        ("percent", 10, 10000, 1000),
        ("percent", 10, 12345, 1235),
        ("percent", 15, 999, 150),
        ("percent", 150, 10000, 10000),
        ("percent", 0, 10000, 0),
        ("fixed", 2500, 10000, 2500),
        ("fixed", 50000, 10000, 10000),
        ("fixed", -100, 10000, 0),
        ("fixed", 500, 0, 0),
    ],
)
def test_compute_discount(discount_type, value, subtotal, expected):
    assert compute_discount(discount_type, value, subtotal) == expected


class TestEvaluateCoupon:
    async def test_no_code(self, ctx):
        async with ctx.session_factory() as session:
            assert await evaluate_coupon(session, None, 10000) is None

    async def test_valid_coupon(self, ctx, store):
        coupon_id = await store.coupon("SAVE10", usage_limit=5, used_count=4)

        async with ctx.session_factory() as session:
            quote = await evaluate_coupon(session, "SAVE10", 10000)

        assert quote.coupon_id == coupon_id
        assert quote.discount == 1000
        assert quote.usage_limit == 5

    async def test_unknown_code(self, ctx):
        async with ctx.session_factory() as session:
            with pytest.raises(InvalidCouponError):
                await evaluate_coupon(session, "NOPE", 10000)

    async def test_codes_are_case_sensitive(self, ctx, store):
        await store.coupon("SAVE10")

        async with ctx.session_factory() as session:
            with pytest.raises(InvalidCouponError):
                await evaluate_coupon(session, "save10", 10000)

    async def test_expired(self, ctx, store):
        await store.coupon("OLD", expires_at=LONG_AGO)

        async with ctx.session_factory() as session:
            with pytest.raises(ExpiredCouponError):
                await evaluate_coupon(session, "OLD", 10000)

    async def test_not_yet_expired(self, ctx, store):
        expires_at = datetime.now(timezone.utc) + timedelta(days=1)
        await store.coupon("SOON", expires_at=expires_at)

        async with ctx.session_factory() as session:
            quote = await evaluate_coupon(session, "SOON", 10000)
        assert quote.discount == 1000

    async def test_exhausted(self, ctx, store):
        await store.coupon("USED", usage_limit=3, used_count=3)

        async with ctx.session_factory() as session:
            with pytest.raises(CouponExhaustedError):
                await evaluate_coupon(session, "USED", 10000)


class TestReserveCouponUsage:
    async def _quote(self, ctx, code):
        async with ctx.session_factory() as session:
            return await evaluate_coupon(session, code, 10000)

    async def test_increments_used_count(self, ctx, store):
        await store.coupon("SAVE10", usage_limit=2)
        quote = await self._quote(ctx, "SAVE10")

        async with ctx.session_factory() as session:
            async with session.begin():
                await reserve_coupon_usage(session, quote)

        assert await store.used_count("SAVE10") == 1

    async def test_unlimited_coupon(self, ctx, store):
        await store.coupon("FOREVER", used_count=1000)
        quote = await self._quote(ctx, "FOREVER")

        async with ctx.session_factory() as session:
            async with session.begin():
                await reserve_coupon_usage(session, quote)

        assert await store.used_count("FOREVER") == 1001

    async def test_fails_when_the_last_use_was_taken(self, ctx, store):
        await store.coupon("LAST", usage_limit=1)
        quote = await self._quote(ctx, "LAST")
        await store.set_used_count("LAST", 1)

        async with ctx.session_factory() as session:
            with pytest.raises(CouponExhaustedError):
                async with session.begin():
                    await reserve_coupon_usage(session, quote)

        assert await store.used_count("LAST") == 1
