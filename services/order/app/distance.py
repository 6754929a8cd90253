"""
配送料計算 — 距離ティア方式

倉庫から配送先までの大圏距離 (haversine) を求め、
距離ティアごとの加算額を基本料金に足す。km 単価は持たない。

  near   :   0 – 150 km → +0
  medium : 150 – 400 km → +10
  far    :       >400 km → +20

副作用のない純粋関数のみ。
"""

import math
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0
DEFAULT_BASE_FEE = 20

NEAR_LIMIT_KM = 150
MEDIUM_LIMIT_KM = 400


class Coordinates(NamedTuple):
    latitude: float
    longitude: float


class DistanceTier(NamedTuple):
    tier: str
    surcharge: int


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def get_distance_tier(distance_km: float) -> DistanceTier:
    d = max(0.0, distance_km)
    if d <= NEAR_LIMIT_KM:
        return DistanceTier("near", 0)
    if d <= MEDIUM_LIMIT_KM:
        return DistanceTier("medium", 10)
    return DistanceTier("far", 20)


def calculate_delivery_fee(distance_km: float, base: int = DEFAULT_BASE_FEE) -> int:
    return base + get_distance_tier(distance_km).surcharge


def compute_distance_and_fee(
    origin: Coordinates,
    destination: Coordinates,
    base: int = DEFAULT_BASE_FEE,
) -> tuple[float, int]:
    distance_km = haversine_km(
        origin.latitude, origin.longitude, destination.latitude, destination.longitude
    )
    return distance_km, calculate_delivery_fee(distance_km, base)


def estimate_delivery_days(shipping_method: str, distance_km: float = 0) -> tuple[int, int]:
    """
    お届け日数の目安 (最短, 最長)。配送は土日も稼働する前提。

    express : near は 1 日、それ以外は 1–2 日
    standard: near 5 日 / medium 6 日 / far 7 日
    """
    tier = get_distance_tier(distance_km).tier
    if shipping_method == "express":
        return (1, 1) if tier == "near" else (1, 2)
    days = {"near": 5, "medium": 6, "far": 7}[tier]
    return days, days
