"""
Order Service — クーポン

2 段階で扱う:
  1. evaluate_coupon   トランザクション前の検証と割引額の計算（読み取りのみ）
  2. reserve_coupon_usage  トランザクション内の条件付き UPDATE で使用枠を 1 つ確保

1 の検証を通っても、同時に別の注文が最後の枠を使えば 2 は 0 行更新になる。
その場合はトランザクションごと CouponExhaustedError で中断する。
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import CouponExhaustedError, ExpiredCouponError, InvalidCouponError
from .tables import coupons

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponQuote:
    coupon_id: str
    code: str
    discount: int  # サタン
    usage_limit: int | None


def compute_discount(discount_type: str, discount_value: int, subtotal: int) -> int:
    """
    percent: subtotal × value / 100（サタン未満は四捨五入）
    fixed  : value（サタン）
    どちらも 0 〜 subtotal に収める。
    """
    if discount_type == "percent":
        discount = (subtotal * discount_value + 50) // 100
    else:
        discount = discount_value
    return max(0, min(discount, subtotal))


def _aware(value: datetime) -> datetime:
    # SQLite はタイムゾーンを保持しないので UTC とみなす
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


async def evaluate_coupon(
    session: AsyncSession,
    code: str | None,
    subtotal: int,
    now: datetime | None = None,
) -> CouponQuote | None:
    if not code:
        return None
    now = now or datetime.now(timezone.utc)

    result = await session.execute(select(coupons).where(coupons.c.code == code))
    coupon = result.fetchone()
    if coupon is None:
        logger.warning("Unknown coupon code: %s", code)
        raise InvalidCouponError(code)
    if coupon.expires_at is not None and _aware(coupon.expires_at) < now:
        raise ExpiredCouponError(code)
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponExhaustedError(code)

    return CouponQuote(
        coupon_id=coupon.id,
        code=coupon.code,
        discount=compute_discount(coupon.discount_type, coupon.discount_value, subtotal),
        usage_limit=coupon.usage_limit,
    )


async def reserve_coupon_usage(session: AsyncSession, quote: CouponQuote) -> None:
    """
    使用回数を条件付きで +1 する (compare-and-swap)。
    上限付きクーポンで used_count が既に上限に達していれば 0 行更新になる。
    """
    result = await session.execute(
        text("""
            UPDATE coupons
            SET used_count = used_count + 1, updated_at = CURRENT_TIMESTAMP
            WHERE id = :id
              AND (usage_limit IS NULL OR used_count < usage_limit)
        """),
        {"id": quote.coupon_id},
    )
    if result.rowcount != 1:
        logger.warning("Coupon %s exhausted at reservation time", quote.code)
        raise CouponExhaustedError(quote.code)
