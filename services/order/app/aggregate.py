"""
Order Service — 注文ステータスの状態遷移

    PENDING ──▶ PROCESSING ──▶ SHIPPED ──▶ COMPLETED
       │             │
       └─────────────┴──▶ CANCELLED

PENDING   : 作成直後。振込の場合は入金確認待ち
PROCESSING: スリップ受領 / 入金確認済み
作成以降の遷移でも、明細の購入時価格とクーポンの紐付けは変更しない。
"""

from enum import Enum

from .errors import InvalidStatusTransitionError


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# スリップの(再)アップロードを受け付けるステータス
SLIP_ACCEPTING = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def can_transition(current: str, target: str) -> bool:
    try:
        return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def ensure_transition(current: str, target: str) -> OrderStatus:
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(current, target)
    return OrderStatus(target)
