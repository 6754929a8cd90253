"""
Order Service — 共有リソース

DB エンジン・Redis 接続・スリップ保存先などプロセスで 1 つだけ持つものを
まとめ、明示的に各コマンドへ渡す。テストでは差し替えたものを渡せる。
"""

from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from .config import Settings
from .db import create_engine, create_session_factory
from .distance import Coordinates
from .geocoding import ProvinceLocator
from .slips import SlipStore


@dataclass
class StorefrontContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: sessionmaker
    redis: aioredis.Redis | None
    slip_store: SlipStore
    locator: ProvinceLocator

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorefrontContext":
        engine = create_engine(settings.database_url)
        warehouse = None
        if settings.warehouse_latitude is not None and settings.warehouse_longitude is not None:
            warehouse = Coordinates(settings.warehouse_latitude, settings.warehouse_longitude)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            redis=(
                aioredis.from_url(settings.redis_url, decode_responses=True)
                if settings.redis_url
                else None
            ),
            slip_store=SlipStore(
                settings.upload_root,
                settings.public_upload_prefix,
                settings.max_slip_bytes,
            ),
            locator=ProvinceLocator(
                warehouse_province=settings.warehouse_province,
                warehouse=warehouse,
                geocoding_enabled=settings.geocoding_enabled,
                geocoder_url=settings.geocoder_url,
            ),
        )

    async def aclose(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
        await self.engine.dispose()
