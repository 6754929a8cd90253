"""
ロケール解決

表示名は「指定ロケール → レコード上の最初の翻訳 → 仮の名前」の順で決める。
各呼び出し箇所で個別に分岐させず、必ずこの関数を使う。
"""

from collections.abc import Iterable, Mapping

SUPPORTED_LOCALES = ("th", "en")

PLACEHOLDER_NAMES = {"th": "สินค้า", "en": "Product"}


def parse_locale(value: object, default: str = "th") -> str:
    if isinstance(value, str) and value.strip().lower() in SUPPORTED_LOCALES:
        return value.strip().lower()
    return default


def resolve_display_name(translations: Mapping[str, str], *locales: str) -> str:
    """
    translations: {locale: name}（挿入順 = レコード上の順序）
    locales: 優先順に並べたロケール。先頭のロケールが仮の名前の言語になる。
    """
    for locale in locales:
        name = translations.get(locale)
        if name:
            return name
    for name in translations.values():
        if name:
            return name
    first = locales[0] if locales else "th"
    return PLACEHOLDER_NAMES.get(first, PLACEHOLDER_NAMES["en"])


def group_translations(rows: Iterable) -> dict[str, dict[str, str]]:
    """product_translations の行を {product_id: {locale: name}} にまとめる。"""
    grouped: dict[str, dict[str, str]] = {}
    for row in rows:
        grouped.setdefault(row.product_id, {})[row.locale] = row.name
    return grouped
