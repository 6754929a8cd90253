"""
Order Service — 在庫確認と価格の再計算

クライアントが送ってきた価格は一切信用しない。
各明細の単価は DB 上の商品レコード (sale_price があればそれ、なければ price)
から取り直し、在庫が足りるかをここで事前に確認する。

ここでの在庫確認はトランザクション外で行う読み取りにすぎない。
実際の減算はトランザクション内の条件付き UPDATE で再度検証される
(commands.execute_order_transaction)。
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .distance import compute_distance_and_fee
from .errors import InsufficientStockError, UnknownProductError
from .geocoding import ProvinceLocator
from .localization import group_translations, resolve_display_name
from .money import to_satang
from .normalizer import OrderLineRequest, PlaceOrderCommand
from .tables import product_translations, products

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    name: str
    quantity: int
    unit_price: int  # サタン

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PricedCart:
    lines: tuple[PricedLine, ...]

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self.lines)


@dataclass(frozen=True)
class DeliveryQuote:
    origin_province: str | None
    destination_province: str | None
    distance_km: float | None
    fee: int  # サタン


async def resolve_lines(
    session: AsyncSession,
    items: Sequence[OrderLineRequest],
    locale: str,
) -> PricedCart:
    """商品を読み込み、存在・在庫を確認し、サーバー側の単価で明細を作る。"""
    ids = [item.product_id for item in items]

    result = await session.execute(
        select(products.c.id, products.c.price, products.c.sale_price, products.c.stock)
        .where(products.c.id.in_(ids))
    )
    found = {row.id: row for row in result.fetchall()}

    result = await session.execute(
        select(product_translations).where(product_translations.c.product_id.in_(ids))
    )
    names = group_translations(result.fetchall())

    lines = []
    for item in items:
        product = found.get(item.product_id)
        if product is None:
            raise UnknownProductError(item.product_id)

        name = resolve_display_name(names.get(item.product_id, {}), locale)
        if product.stock < item.quantity:
            logger.warning(
                "Insufficient stock for %s: requested=%d available=%d",
                item.product_id, item.quantity, product.stock,
            )
            raise InsufficientStockError(name, item.quantity, product.stock)

        unit_price = product.sale_price if product.sale_price is not None else product.price
        lines.append(PricedLine(item.product_id, name, item.quantity, unit_price))

    return PricedCart(tuple(lines))


async def quote_delivery(
    command: PlaceOrderCommand,
    locator: ProvinceLocator,
    base_fee: int,
) -> DeliveryQuote:
    """
    倉庫と配送先の座標が解決できれば距離ティアで配送料を計算する。
    解決できない場合は、申告された配送料（正規化で有限・非負を確認済み）を採用し、
    それも無ければ 0 とする。
    """
    origin_province = command.origin_province or locator.warehouse_province
    destination_province = command.destination_province or command.city

    origin = await locator.locate_origin(command.origin_province)
    destination = await locator.locate(destination_province)

    if origin is not None and destination is not None:
        distance_km, fee = compute_distance_and_fee(origin, destination, base_fee)
        return DeliveryQuote(origin_province, destination_province, distance_km, to_satang(fee))

    declared = command.declared_delivery_fee
    logger.info(
        "Could not resolve coordinates (%s -> %s), using declared fee %s",
        origin_province, destination_province, declared,
    )
    return DeliveryQuote(
        origin_province,
        destination_province,
        None,
        to_satang(declared) if declared is not None else 0,
    )
