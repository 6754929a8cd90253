"""
Order Service — リクエスト正規化

注文作成リクエストは 2 種類の形で届く:
  - JSON ボディ（クレジットカード決済のクライアント）
  - multipart フォーム（スリップ画像を添付するクライアント）
    値は文字列または文字列配列で、items は JSON 文字列として埋め込まれる

ここで 1 つの PlaceOrderCommand に変換し、以降の処理では
入力の形による分岐を一切しない。I/O は行わない。
"""

import json
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict

from .errors import ValidationError
from .localization import parse_locale

PAYMENT_METHODS = ("bank_transfer", "credit_card", "cod")

REQUIRED_FIELDS = ("recipient", "line1", "city", "country", "paymentMethod")

MAX_TEXT_LENGTH = 500

# THB
MAX_DECLARED_DELIVERY_FEE = Decimal("100000")


class OrderLineRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    quantity: int


class PlaceOrderCommand(BaseModel):
    model_config = ConfigDict(frozen=True)

    recipient: str
    line1: str
    line2: str | None = None
    line3: str | None = None
    city: str
    postal_code: str | None = None
    country: str
    payment_method: str
    items: tuple[OrderLineRequest, ...]
    coupon_code: str | None = None
    origin_province: str | None = None
    destination_province: str | None = None
    declared_delivery_fee: Decimal | None = None
    locale: str = "th"
    slip_url: str | None = None


def normalize_order_request(
    fields: Any,
    *,
    query_locale: str | None = None,
    default_locale: str = "th",
    slip_url_prefix: str = "/uploads/slips/",
) -> PlaceOrderCommand:
    """JSON オブジェクト / フォームフィールドを PlaceOrderCommand に変換する。"""
    if not isinstance(fields, Mapping):
        raise ValidationError("body", "must be a JSON object")

    values = {name: _text(fields, name) for name in REQUIRED_FIELDS}
    for name in REQUIRED_FIELDS:
        if not values[name]:
            raise ValidationError(name, "is required")

    payment_method = values["paymentMethod"]
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            "paymentMethod", f"must be one of {', '.join(PAYMENT_METHODS)}"
        )

    locale_raw = _text(fields, "locale") or query_locale
    slip_url = _text(fields, "slipUrl")
    if slip_url and not (slip_url.startswith(slip_url_prefix) or slip_url.startswith("https://")):
        raise ValidationError("slipUrl", "must reference an uploaded slip")

    return PlaceOrderCommand(
        recipient=values["recipient"],
        line1=values["line1"],
        line2=_text(fields, "line2"),
        line3=_text(fields, "line3"),
        city=values["city"],
        postal_code=_text(fields, "postalCode"),
        country=values["country"],
        payment_method=payment_method,
        items=parse_items(fields.get("items")),
        coupon_code=_text(fields, "couponCode"),
        origin_province=_text(fields, "originProvince"),
        destination_province=_text(fields, "destinationProvince"),
        declared_delivery_fee=_delivery_fee(fields.get("deliveryFee")),
        locale=parse_locale(locale_raw, default_locale),
        slip_url=slip_url,
    )


def parse_items(raw: Any) -> tuple[OrderLineRequest, ...]:
    """
    items は以下のいずれでも受け付ける:
      '[{"productId": ..}]'            JSON 文字列
      ['[{"productId": ..}]']          JSON 文字列 1 つの配列（multipart）
      ['{"productId": ..}', ...]       1 明細ずつ JSON 文字列化した配列
      [{"productId": ..}, ...]         構造化済みの配列
    同じ商品が複数行あれば数量を合算する。クライアントの価格は読まない。
    """
    if raw is None or raw == "":
        raise ValidationError("items", "is required")

    entries: list[Any] = []
    for part in raw if isinstance(raw, list) else [raw]:
        if isinstance(part, str):
            decoded = _decode_json(part)
            if isinstance(decoded, list):
                entries.extend(decoded)
            else:
                entries.append(decoded)
        else:
            entries.append(part)

    if not entries:
        raise ValidationError("items", "must not be empty")

    merged: dict[str, int] = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ValidationError(f"items[{index}]", "must be an object")
        product_id = _product_id(entry.get("productId"))
        if not product_id:
            raise ValidationError(f"items[{index}].productId", "is required")
        quantity = _quantity(entry.get("quantity"))
        if quantity is None:
            raise ValidationError(f"items[{index}].quantity", "must be a positive integer")
        merged[product_id] = merged.get(product_id, 0) + quantity

    return tuple(
        OrderLineRequest(product_id=product_id, quantity=quantity)
        for product_id, quantity in merged.items()
    )


# ── 値の変換 ─────────────────────────────────────


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _text(fields: Mapping, name: str) -> str | None:
    value = _first(fields.get(name))
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value).strip()
    if len(text) > MAX_TEXT_LENGTH:
        raise ValidationError(name, f"is too long (max {MAX_TEXT_LENGTH} characters)")
    return text or None


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        raise ValidationError("items", "must be valid JSON") from None


def _product_id(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _quantity(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        value = int(value.strip())
    if isinstance(value, int) and value >= 1:
        return value
    return None


def _delivery_fee(value: Any) -> Decimal | None:
    """
    申告された配送料。有限かつ 0 以上、MAX_DECLARED_DELIVERY_FEE 以下でなければ
    「不明」として捨てる。
    """
    value = _first(value)
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        fee = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not fee.is_finite() or fee < 0 or fee > MAX_DECLARED_DELIVERY_FEE:
        return None
    return fee
