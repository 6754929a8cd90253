"""
Order Service — クエリ (読み取り側)

注文をレスポンス用の dict に整形する。明細の商品名は
「リクエストのロケール → 注文作成時のロケール → 最初の翻訳 → 仮の名前」で解決する。
金額は DB のサタン整数をバーツの数値に直して返す。
"""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .localization import group_translations, resolve_display_name
from .money import as_number, format_amount
from .tables import coupons, order_items, orders, product_translations


async def get_order(
    session: AsyncSession,
    order_id: str,
    *,
    user_id: str | None = None,
    requested_locale: str | None = None,
) -> dict | None:
    """注文を 1 件取得する。user_id を渡すと本人の注文以外は None。"""
    query = select(orders).where(orders.c.id == order_id)
    if user_id is not None:
        query = query.where(orders.c.user_id == user_id)
    result = await session.execute(query)
    row = result.fetchone()
    if not row:
        return None
    return (await _serialize(session, [row], requested_locale))[0]


async def list_orders(
    session: AsyncSession,
    user_id: str,
    requested_locale: str | None = None,
) -> list[dict]:
    """注文履歴（新しい順）"""
    result = await session.execute(
        select(orders)
        .where(orders.c.user_id == user_id)
        .order_by(orders.c.created_at.desc())
    )
    return await _serialize(session, result.fetchall(), requested_locale)


async def _serialize(
    session: AsyncSession,
    rows: Sequence,
    requested_locale: str | None,
) -> list[dict]:
    if not rows:
        return []
    order_ids = [row.id for row in rows]

    result = await session.execute(
        select(order_items)
        .where(order_items.c.order_id.in_(order_ids))
        .order_by(order_items.c.order_id, order_items.c.line_no)
    )
    items_by_order: dict[str, list] = {}
    for item in result.fetchall():
        items_by_order.setdefault(item.order_id, []).append(item)

    product_ids = {item.product_id for items in items_by_order.values() for item in items}
    names: dict[str, dict[str, str]] = {}
    if product_ids:
        result = await session.execute(
            select(product_translations)
            .where(product_translations.c.product_id.in_(sorted(product_ids)))
        )
        names = group_translations(result.fetchall())

    coupon_ids = {row.coupon_id for row in rows if row.coupon_id}
    coupon_codes: dict[str, str] = {}
    if coupon_ids:
        result = await session.execute(
            select(coupons.c.id, coupons.c.code).where(coupons.c.id.in_(sorted(coupon_ids)))
        )
        coupon_codes = {c.id: c.code for c in result.fetchall()}

    return [
        serialize_order(
            row,
            items_by_order.get(row.id, []),
            names,
            coupon_codes.get(row.coupon_id) if row.coupon_id else None,
            requested_locale or row.locale,
        )
        for row in rows
    ]


def serialize_order(
    row,
    items: Sequence,
    names: dict[str, dict[str, str]],
    coupon_code: str | None,
    locale: str,
) -> dict:
    amount_due = row.total_amount + (row.delivery_fee or 0)
    return {
        "id": row.id,
        "userId": row.user_id,
        "locale": row.locale,
        "status": row.status,
        "recipient": row.recipient,
        "line1": row.line1,
        "line2": row.line2,
        "line3": row.line3,
        "city": row.city,
        "postalCode": row.postal_code,
        "country": row.country,
        "paymentMethod": row.payment_method,
        "slipUrl": row.slip_url,
        "subtotal": as_number(row.subtotal),
        "discountAmount": as_number(row.discount_amount),
        "totalAmount": as_number(row.total_amount),
        "deliveryFee": as_number(row.delivery_fee),
        "amountDue": as_number(amount_due),
        "totalDisplay": format_amount(amount_due, locale),
        "coupon": {"id": row.coupon_id, "code": coupon_code} if row.coupon_id else None,
        "originProvince": row.origin_province,
        "destinationProvince": row.destination_province,
        "distanceKm": round(row.distance_km, 2) if row.distance_km is not None else None,
        "items": [
            {
                "id": item.id,
                "productId": item.product_id,
                "quantity": item.quantity,
                "priceAtPurchase": as_number(item.price_at_purchase),
                "lineTotal": as_number(item.price_at_purchase * item.quantity),
                "product": {
                    "id": item.product_id,
                    "name": resolve_display_name(
                        names.get(item.product_id, {}), locale, row.locale
                    ),
                },
            }
            for item in items
        ],
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }
