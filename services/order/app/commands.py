"""
Order Service — コマンドハンドラ (書き込み側)

注文作成の流れ:
  1. スリップの有無・形式の確認          (DB アクセスなし)
  2. 価格の再計算・在庫の事前確認         (読み取りのみ)
  3. 配送料の見積もり
  4. クーポンの検証と割引額の計算         (読み取りのみ)
  5. スリップの保存                      (ファイル I/O, DB とは非連動)
  6. 注文トランザクション                 (すべて成功 or すべて取り消し)
       a. クーポン使用枠の条件付き確保
       b. orders 行の作成
       c. order_items 行の作成（購入時価格を固定）
       d. 在庫の条件付き減算
  7. コミット後、Redis Pub/Sub でイベントを発行

6 が失敗した場合は 5 で保存したファイルを削除する。
"""

import json
import logging
from datetime import datetime, timezone
from uuid import uuid4

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import insert, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .aggregate import SLIP_ACCEPTING, OrderStatus, ensure_transition
from .context import StorefrontContext
from .coupons import CouponQuote, evaluate_coupon, reserve_coupon_usage
from .errors import (
    InsufficientStockError,
    InvalidStatusTransitionError,
    MissingSlipError,
    OrderError,
    OrderNotFoundError,
    TransactionFailure,
    ValidationError,
)
from .events import OrderPlaced, OrderPlacedItem, OrderSlipAttached, OrderStatusChanged
from .normalizer import PlaceOrderCommand
from .pricing import DeliveryQuote, PricedCart, quote_delivery, resolve_lines
from .queries import get_order
from .slips import Upload
from .tables import order_items, orders, products

logger = logging.getLogger(__name__)

ORDER_EVENTS_CHANNEL = "order_events"


async def place_order(
    ctx: StorefrontContext,
    *,
    user_id: str,
    command: PlaceOrderCommand,
    slip: Upload | None = None,
) -> dict:
    """注文作成コマンド。作成した注文をレスポンス用の dict で返す。"""
    if command.payment_method == "bank_transfer" and slip is None and not command.slip_url:
        raise MissingSlipError()

    store = ctx.slip_store
    staged = await store.stage(slip) if slip is not None else None
    try:
        async with ctx.session_factory() as session:
            cart = await resolve_lines(session, command.items, command.locale)
            coupon = await evaluate_coupon(session, command.coupon_code, cart.subtotal)

        delivery = await quote_delivery(command, ctx.locator, ctx.settings.delivery_base_fee)

        slip_url = command.slip_url
        if staged is not None:
            slip_url = await store.persist(staged)

        committed = False
        try:
            order_id = await execute_order_transaction(
                ctx.session_factory,
                user_id=user_id,
                command=command,
                cart=cart,
                coupon=coupon,
                delivery=delivery,
                slip_url=slip_url,
            )
            committed = True
        finally:
            # 失敗・キャンセルのどちらでも、保存したスリップを残さない
            if not committed and staged is not None and slip_url:
                store.discard(slip_url)
    finally:
        store.release(staged)

    logger.info(
        "Order %s placed by %s: subtotal=%d discount=%d items=%d",
        order_id, user_id, cart.subtotal, coupon.discount if coupon else 0, len(cart.lines),
    )

    await publish_event(ctx.redis, "OrderPlaced", OrderPlaced(
        order_id=order_id,
        user_id=user_id,
        payment_method=command.payment_method,
        items=[
            OrderPlacedItem(
                product_id=line.product_id,
                quantity=line.quantity,
                price_at_purchase=line.unit_price,
            )
            for line in cart.lines
        ],
        subtotal=cart.subtotal,
        discount_amount=coupon.discount if coupon else 0,
        total_amount=max(cart.subtotal - (coupon.discount if coupon else 0), 0),
        delivery_fee=delivery.fee,
        coupon_code=coupon.code if coupon else None,
        status=OrderStatus.PENDING.value,
        timestamp=datetime.now(timezone.utc),
    ))

    async with ctx.session_factory() as session:
        return await get_order(session, order_id, requested_locale=command.locale)


async def execute_order_transaction(
    session_factory: sessionmaker,
    *,
    user_id: str,
    command: PlaceOrderCommand,
    cart: PricedCart,
    coupon: CouponQuote | None,
    delivery: DeliveryQuote,
    slip_url: str | None,
    now: datetime | None = None,
) -> str:
    """
    注文・明細の作成と在庫減算を 1 つのトランザクションで行う。

    クーポンも在庫も「条件を満たす場合のみ更新」する UPDATE で確保し、
    0 行更新ならトランザクション全体をロールバックする。
    事前確認（pricing / coupons）を通っていても、同時実行された別の注文が
    先に枠や在庫を使っていればここで失敗する。
    """
    order_id = str(uuid4())
    now = now or datetime.now(timezone.utc)
    discount = coupon.discount if coupon else 0
    total = max(cart.subtotal - discount, 0)

    try:
        async with session_factory() as session:
            async with session.begin():
                if coupon is not None:
                    await reserve_coupon_usage(session, coupon)

                await session.execute(
                    insert(orders).values(
                        id=order_id,
                        user_id=user_id,
                        locale=command.locale,
                        recipient=command.recipient,
                        line1=command.line1,
                        line2=command.line2,
                        line3=command.line3,
                        city=command.city,
                        postal_code=command.postal_code,
                        country=command.country,
                        payment_method=command.payment_method,
                        slip_url=slip_url,
                        subtotal=cart.subtotal,
                        discount_amount=discount,
                        total_amount=total,
                        coupon_id=coupon.coupon_id if coupon else None,
                        origin_province=delivery.origin_province,
                        destination_province=delivery.destination_province,
                        distance_km=delivery.distance_km,
                        delivery_fee=delivery.fee,
                        status=OrderStatus.PENDING.value,
                        created_at=now,
                        updated_at=now,
                    )
                )

                await session.execute(
                    insert(order_items),
                    [
                        {
                            "id": str(uuid4()),
                            "order_id": order_id,
                            "line_no": line_no,
                            "product_id": line.product_id,
                            "quantity": line.quantity,
                            "price_at_purchase": line.unit_price,
                        }
                        for line_no, line in enumerate(cart.lines, start=1)
                    ],
                )

                for line in cart.lines:
                    result = await session.execute(
                        text("""
                            UPDATE products
                            SET stock = stock - :qty, updated_at = CURRENT_TIMESTAMP
                            WHERE id = :id AND stock >= :qty
                        """),
                        {"id": line.product_id, "qty": line.quantity},
                    )
                    if result.rowcount != 1:
                        available = await session.scalar(
                            select(products.c.stock).where(products.c.id == line.product_id)
                        )
                        logger.warning(
                            "Stock for %s changed before commit: requested=%d available=%s",
                            line.product_id, line.quantity, available,
                        )
                        raise InsufficientStockError(line.name, line.quantity, available or 0)
    except OrderError:
        raise
    except SQLAlchemyError as e:
        logger.exception("Order transaction failed for user %s", user_id)
        raise TransactionFailure() from e

    return order_id


async def attach_slip(
    ctx: StorefrontContext,
    *,
    user_id: str,
    order_id: str,
    slip: Upload | None,
) -> dict:
    """
    作成済みの振込注文にスリップを添付し、PENDING → PROCESSING に進める。
    PROCESSING 中の再アップロードはスリップの差し替えのみ。
    """
    if slip is None:
        raise ValidationError("slip", "file is required")

    async with ctx.session_factory() as session:
        result = await session.execute(
            select(orders.c.payment_method, orders.c.status)
            .where(orders.c.id == order_id, orders.c.user_id == user_id)
        )
        row = result.fetchone()
    if row is None:
        raise OrderNotFoundError()
    if row.payment_method != "bank_transfer":
        raise ValidationError(
            "paymentMethod", "slip upload is only available for bank transfer orders"
        )
    if row.status not in {s.value for s in SLIP_ACCEPTING}:
        raise InvalidStatusTransitionError(row.status, OrderStatus.PROCESSING.value)

    store = ctx.slip_store
    staged = await store.stage(slip)
    try:
        slip_url = await store.persist(staged)
    finally:
        store.release(staged)

    committed = False
    try:
        async with ctx.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    text("""
                        UPDATE orders
                        SET slip_url = :slip_url, status = :processing,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE id = :id AND status IN (:pending, :processing)
                    """),
                    {
                        "id": order_id,
                        "slip_url": slip_url,
                        "pending": OrderStatus.PENDING.value,
                        "processing": OrderStatus.PROCESSING.value,
                    },
                )
                if result.rowcount != 1:
                    raise InvalidStatusTransitionError(row.status, OrderStatus.PROCESSING.value)
        committed = True
    finally:
        if not committed:
            store.discard(slip_url)

    logger.info("Slip attached to order %s", order_id)
    await publish_event(ctx.redis, "OrderSlipAttached", OrderSlipAttached(
        order_id=order_id,
        slip_url=slip_url,
        status=OrderStatus.PROCESSING.value,
        timestamp=datetime.now(timezone.utc),
    ))

    async with ctx.session_factory() as session:
        return await get_order(session, order_id)


async def change_order_status(
    ctx: StorefrontContext,
    *,
    order_id: str,
    target: str,
) -> dict:
    """管理者によるステータス変更。現在のステータスを条件にして更新する。"""
    async with ctx.session_factory() as session:
        async with session.begin():
            current = await session.scalar(select(orders.c.status).where(orders.c.id == order_id))
            if current is None:
                raise OrderNotFoundError()
            status = ensure_transition(current, target)
            result = await session.execute(
                text("""
                    UPDATE orders
                    SET status = :target, updated_at = CURRENT_TIMESTAMP
                    WHERE id = :id AND status = :current
                """),
                {"id": order_id, "target": status.value, "current": current},
            )
            if result.rowcount != 1:
                raise InvalidStatusTransitionError(current, status.value)

    logger.info("Order %s status %s -> %s", order_id, current, status.value)
    await publish_event(ctx.redis, "OrderStatusChanged", OrderStatusChanged(
        order_id=order_id,
        previous_status=current,
        status=status.value,
        timestamp=datetime.now(timezone.utc),
    ))

    async with ctx.session_factory() as session:
        return await get_order(session, order_id)


async def publish_event(
    redis: aioredis.Redis | None,
    event_type: str,
    event: BaseModel,
) -> None:
    """
    コミット済みの事実を order_events に発行する。
    発行に失敗しても注文自体は確定しているので、ログに残すだけにする。
    """
    if redis is None:
        return
    try:
        await redis.publish(ORDER_EVENTS_CHANNEL, json.dumps({
            "event_type": event_type,
            "data": event.model_dump(mode="json"),
        }, default=str))
    except RedisError as e:
        logger.warning("Failed to publish %s: %s", event_type, e)
