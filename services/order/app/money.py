"""
金額ユーティリティ

DB 上の金額はすべてサタン (1/100 THB) の整数で保持する。
Decimal との相互変換と表示用フォーマットをここに集める。
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

SATANG_PER_BAHT = 100


def to_satang(amount: Decimal | int | str) -> int:
    """バーツ金額をサタン整数に変換する（0.5 サタンは切り上げ）。"""
    try:
        value = Decimal(str(amount)) * SATANG_PER_BAHT
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValueError(f"Amount cannot be represented in satang: {amount}") from None


def from_satang(amount: int) -> Decimal:
    return (Decimal(amount) / SATANG_PER_BAHT).quantize(Decimal("0.01"))


def as_number(amount: int | None) -> float | None:
    """JSON レスポンス用 (バーツ, 数値)"""
    if amount is None:
        return None
    return float(from_satang(amount))


def format_amount(amount: int, locale: str) -> str:
    baht = from_satang(amount)
    if locale == "en":
        return f"THB {baht:,.2f}"
    return f"฿{baht:,.2f}"
