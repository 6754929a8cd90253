"""
Order Service — テーブル定義

金額カラムはすべてサタン (1/100 THB) の整数。
商品・翻訳・ユーザーは他の管理画面が書き込み、このサービスは読むだけ
（在庫の減算を除く）。
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    func,
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("role", String(20), nullable=False, server_default="USER"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

auth_tokens = Table(
    "auth_tokens",
    metadata,
    Column("token", String(128), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=True),
)

products = Table(
    "products",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("price", Integer, nullable=False),
    Column("sale_price", Integer, nullable=True),
    Column("stock", Integer, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
)

product_translations = Table(
    "product_translations",
    metadata,
    Column("product_id", String(36), ForeignKey("products.id"), nullable=False),
    Column("locale", String(8), nullable=False),
    Column("name", String(255), nullable=False),
    PrimaryKeyConstraint("product_id", "locale"),
)

coupons = Table(
    "coupons",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("code", String(64), nullable=False, unique=True),
    # percent: 整数パーセント / fixed: サタン
    Column("discount_type", String(16), nullable=False),
    Column("discount_value", Integer, nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=True),
    Column("usage_limit", Integer, nullable=True),
    Column("used_count", Integer, nullable=False, server_default="0"),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("discount_type IN ('percent', 'fixed')", name="ck_coupons_discount_type"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id"), nullable=False, index=True),
    Column("locale", String(8), nullable=False),
    Column("recipient", String(255), nullable=False),
    Column("line1", Text, nullable=False),
    Column("line2", Text, nullable=True),
    Column("line3", Text, nullable=True),
    Column("city", String(255), nullable=False),
    Column("postal_code", String(20), nullable=True),
    Column("country", String(100), nullable=False),
    Column("payment_method", String(20), nullable=False),
    Column("slip_url", Text, nullable=True),
    Column("subtotal", Integer, nullable=False),
    Column("discount_amount", Integer, nullable=False, server_default="0"),
    Column("total_amount", Integer, nullable=False),
    Column("coupon_id", String(36), ForeignKey("coupons.id"), nullable=True),
    Column("origin_province", String(255), nullable=True),
    Column("destination_province", String(255), nullable=True),
    Column("distance_km", Float, nullable=True),
    Column("delivery_fee", Integer, nullable=True),
    Column("status", String(20), nullable=False, server_default="PENDING"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
)

order_items = Table(
    "order_items",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("order_id", String(36), ForeignKey("orders.id"), nullable=False, index=True),
    Column("line_no", Integer, nullable=False),
    Column("product_id", String(36), ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price_at_purchase", Integer, nullable=False),
    CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
)
