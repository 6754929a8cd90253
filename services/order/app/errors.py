"""
Order Service — 例外定義

注文処理で発生するドメインエラー。
各例外は HTTP ステータスを持ち、main.py の例外ハンドラが
{"error": message} の形に変換してクライアントへ返す。
"""


class OrderError(Exception):
    """注文処理エラーの基底クラス"""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ── 400: リクエスト・在庫・クーポン・スリップ ────────


class ValidationError(OrderError):
    """リクエストの必須項目欠落・形式不正"""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class UnknownProductError(OrderError):
    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class InsufficientStockError(OrderError):
    def __init__(self, product_name: str, requested: int, available: int) -> None:
        shortfall = requested - max(available, 0)
        super().__init__(
            f"Insufficient stock for {product_name}: "
            f"requested {requested}, available {max(available, 0)} (short by {shortfall})"
        )
        self.product_name = product_name
        self.shortfall = shortfall


class InvalidCouponError(OrderError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Invalid coupon code: {code}")


class ExpiredCouponError(OrderError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Coupon has expired: {code}")


class CouponExhaustedError(OrderError):
    def __init__(self, code: str) -> None:
        super().__init__(f"Coupon usage limit reached: {code}")


class UnsupportedSlipTypeError(OrderError):
    pass


class SlipTooLargeError(OrderError):
    pass


class MissingSlipError(OrderError):
    def __init__(self) -> None:
        super().__init__("A payment slip is required for bank transfer orders")


class InvalidStatusTransitionError(OrderError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot change order status from {current} to {target}")
        self.current = current
        self.target = target


# ── 401 / 403 / 404 ──────────────────────────────


class Unauthorized(OrderError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Unauthorized")


class Forbidden(OrderError):
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Forbidden")


class OrderNotFoundError(OrderError):
    status_code = 404

    def __init__(self) -> None:
        super().__init__("Order not found")


# ── 500: 永続化エラー ────────────────────────────


class TransactionFailure(OrderError):
    """DB への書き込みに失敗した。詳細はログのみに残す。"""

    status_code = 500

    def __init__(self) -> None:
        super().__init__("Could not save the order, please try again")
