"""
Order Service — イベント定義

コミット後に Redis Pub/Sub (order_events) へ発行する事実。
イベントは過去形で命名し、不変(immutable)として扱う。
金額はサタン単位の整数。
"""

from datetime import datetime

from pydantic import BaseModel


class OrderPlacedItem(BaseModel):
    product_id: str
    quantity: int
    price_at_purchase: int


class OrderPlaced(BaseModel):
    """注文が作成された"""
    order_id: str
    user_id: str
    payment_method: str
    items: list[OrderPlacedItem]
    subtotal: int
    discount_amount: int
    total_amount: int
    delivery_fee: int | None
    coupon_code: str | None
    status: str
    timestamp: datetime


class OrderSlipAttached(BaseModel):
    """振込スリップが添付された（PENDING → PROCESSING）"""
    order_id: str
    slip_url: str
    status: str
    timestamp: datetime


class OrderStatusChanged(BaseModel):
    order_id: str
    previous_status: str
    status: str
    timestamp: datetime
