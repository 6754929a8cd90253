"""
Order Service — FastAPI エントリーポイント

起動: uvicorn --factory app.main:create_app

注文作成 (POST /api/orders) は JSON と multipart フォームの両方を受け付ける。
どちらの形でもここで normalizer に渡し、以降は同じ処理になる。
エラーはすべて {"error": message} の形で返す。
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import commands, queries
from .auth import Caller, extract_token, resolve_caller
from .config import Settings
from .context import StorefrontContext
from .db import create_schema
from .distance import compute_distance_and_fee, estimate_delivery_days, get_distance_tier
from .errors import Forbidden, OrderError, OrderNotFoundError, Unauthorized, ValidationError
from .localization import parse_locale
from .normalizer import normalize_order_request

logger = logging.getLogger(__name__)

# 注文作成フォームでスリップ画像を受け取るフィールド名
ORDER_SLIP_FIELDS = ("slipFile", "slip")


def create_app(
    settings: Settings | None = None,
    context: StorefrontContext | None = None,
) -> FastAPI:
    if settings is None:
        settings = context.settings if context is not None else Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx = context or StorefrontContext.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_schema:
            await create_schema(ctx.engine)
        yield
        await ctx.aclose()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.state.ctx = ctx

    app.add_exception_handler(OrderError, _handle_order_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)

    app.include_router(router)

    settings.upload_root.mkdir(parents=True, exist_ok=True)
    app.mount(
        settings.public_upload_prefix,
        StaticFiles(directory=settings.upload_root),
        name="uploads",
    )
    return app


# ── 例外ハンドラ ─────────────────────────────────


async def _handle_order_error(request: Request, exc: OrderError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        {"error": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
    return JSONResponse(
        {"error": f"{field}: {first.get('msg', 'invalid value')}"},
        status_code=400,
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ── 依存関係 ─────────────────────────────────────


def get_context(request: Request) -> StorefrontContext:
    return request.app.state.ctx


async def current_caller(
    request: Request,
    ctx: StorefrontContext = Depends(get_context),
) -> Caller:
    """トークンから呼び出し元を解決する。解決できなければ 401。"""
    token = extract_token(
        request.headers.get("authorization"),
        request.cookies.get("token"),
    )
    async with ctx.session_factory() as session:
        caller = await resolve_caller(session, token)
    if caller is None:
        raise Unauthorized()
    return caller


async def admin_caller(caller: Caller = Depends(current_caller)) -> Caller:
    if not caller.is_admin:
        raise Forbidden()
    return caller


async def read_payload(request: Request, file_fields: tuple[str, ...]) -> tuple[Any, UploadFile | None]:
    """
    JSON ボディ、または multipart / urlencoded フォームを読み込む。
    フォームの値は常に文字列の配列として返す（normalizer が先頭を取る）。
    """
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        fields: dict[str, list[str]] = {}
        uploads: list[UploadFile] = []
        for key in form.keys():
            for value in form.getlist(key):
                if isinstance(value, UploadFile):
                    if key in file_fields:
                        uploads.append(value)
                else:
                    fields.setdefault(key, []).append(value)
        if len(uploads) > 1:
            raise ValidationError(file_fields[0], "only one file may be uploaded")
        return fields, uploads[0] if uploads else None

    try:
        return await request.json(), None
    except ValueError:
        raise ValidationError("body", "must be valid JSON") from None


# ── ルーティング ─────────────────────────────────

router = APIRouter()


class ShippingQuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin_province: str | None = Field(default=None, alias="originProvince")
    destination_province: str = Field(alias="destinationProvince")
    shipping_method: Literal["standard", "express"] = Field(
        default="standard", alias="shippingMethod"
    )


class StatusChangeRequest(BaseModel):
    status: str


@router.post("/api/orders", status_code=201)
async def cmd_place_order(
    request: Request,
    caller: Caller = Depends(current_caller),
    ctx: StorefrontContext = Depends(get_context),
):
    """注文作成コマンド"""
    fields, slip = await read_payload(request, ORDER_SLIP_FIELDS)
    command = normalize_order_request(
        fields,
        query_locale=request.query_params.get("locale"),
        default_locale=ctx.settings.default_locale,
        slip_url_prefix=ctx.slip_store.public_prefix,
    )
    return await commands.place_order(ctx, user_id=caller.user_id, command=command, slip=slip)


@router.api_route("/api/orders", methods=["PUT", "PATCH", "DELETE"], include_in_schema=False)
async def orders_method_not_allowed():
    raise HTTPException(
        status_code=405,
        detail="Method Not Allowed",
        headers={"Allow": "GET, POST"},
    )


@router.get("/api/orders")
async def query_list_orders(
    locale: str | None = None,
    caller: Caller = Depends(current_caller),
    ctx: StorefrontContext = Depends(get_context),
):
    """注文履歴（本人の注文のみ）"""
    async with ctx.session_factory() as session:
        orders = await queries.list_orders(
            session,
            caller.user_id,
            parse_locale(locale, ctx.settings.default_locale) if locale else None,
        )
    return {"orders": orders}


@router.get("/api/orders/{order_id}")
async def query_get_order(
    order_id: str,
    locale: str | None = None,
    caller: Caller = Depends(current_caller),
    ctx: StorefrontContext = Depends(get_context),
):
    async with ctx.session_factory() as session:
        order = await queries.get_order(
            session,
            order_id,
            user_id=caller.user_id,
            requested_locale=parse_locale(locale, ctx.settings.default_locale) if locale else None,
        )
    if not order:
        raise OrderNotFoundError()
    return order


@router.post("/api/orders/{order_id}/slip")
async def cmd_attach_slip(
    order_id: str,
    request: Request,
    caller: Caller = Depends(current_caller),
    ctx: StorefrontContext = Depends(get_context),
):
    """振込スリップのアップロード (PENDING → PROCESSING)"""
    _, slip = await read_payload(request, ("slip", "slipFile"))
    return await commands.attach_slip(
        ctx, user_id=caller.user_id, order_id=order_id, slip=slip
    )


@router.patch("/api/admin/orders/{order_id}/status")
async def cmd_change_status(
    order_id: str,
    req: StatusChangeRequest,
    _admin: Caller = Depends(admin_caller),
    ctx: StorefrontContext = Depends(get_context),
):
    return await commands.change_order_status(ctx, order_id=order_id, target=req.status)


@router.post("/api/shipping/calculate")
async def calculate_shipping(
    req: ShippingQuoteRequest,
    ctx: StorefrontContext = Depends(get_context),
):
    """配送料と到着日数の見積もり"""
    origin = await ctx.locator.locate_origin(req.origin_province)
    destination = await ctx.locator.locate(req.destination_province)
    if origin is None or destination is None:
        raise ValidationError("destinationProvince", "could not resolve provinces to coordinates")
    distance_km, fee = compute_distance_and_fee(origin, destination, ctx.settings.delivery_base_fee)
    min_days, max_days = estimate_delivery_days(req.shipping_method, distance_km)
    return {
        "distanceKm": round(distance_km, 2),
        "deliveryFee": fee,
        "tier": get_distance_tier(distance_km).tier,
        "estimatedDays": {"min": min_days, "max": max_days},
    }


@router.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
