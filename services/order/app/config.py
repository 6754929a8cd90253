"""
Order Service — 設定

環境変数から設定を読み込む。DATABASE_URL だけは必須。
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/search.php"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    database_url: str
    redis_url: str | None = None
    warehouse_province: str = "Bangkok"
    warehouse_latitude: float | None = None
    warehouse_longitude: float | None = None
    # THB
    delivery_base_fee: int = 20
    upload_root: Path = field(default_factory=lambda: Path("public") / "uploads")
    public_upload_prefix: str = "/uploads"
    max_slip_bytes: int = 10 * 1024 * 1024
    default_locale: str = "th"
    geocoding_enabled: bool = False
    geocoder_url: str = DEFAULT_GEOCODER_URL
    auto_create_schema: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ["DATABASE_URL"],
            redis_url=os.environ.get("REDIS_URL") or None,
            warehouse_province=os.environ.get("WAREHOUSE_PROVINCE", "Bangkok"),
            warehouse_latitude=_env_float("WAREHOUSE_LATITUDE"),
            warehouse_longitude=_env_float("WAREHOUSE_LONGITUDE"),
            delivery_base_fee=int(os.environ.get("DELIVERY_BASE_FEE", "20")),
            upload_root=Path(os.environ.get("UPLOAD_ROOT", "public/uploads")),
            max_slip_bytes=int(os.environ.get("MAX_SLIP_BYTES", str(10 * 1024 * 1024))),
            default_locale=os.environ.get("DEFAULT_LOCALE", "th"),
            geocoding_enabled=_env_bool("GEOCODING_ENABLED"),
            geocoder_url=os.environ.get("GEOCODER_URL", DEFAULT_GEOCODER_URL),
            auto_create_schema=_env_bool("AUTO_CREATE_SCHEMA"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
