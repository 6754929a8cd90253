"""
県名 → 座標の解決

内蔵の県庁所在地テーブルを優先し、見つからない場合のみ
（設定で有効化されていれば）Nominatim 互換のジオコーダへ問い合わせる。
ジオコーダの結果は失敗も含めてプロセス内にキャッシュする。
"""

import logging

import httpx

from .distance import Coordinates

logger = logging.getLogger(__name__)

PROVINCES: dict[str, Coordinates] = {
    "Bangkok": Coordinates(13.7563, 100.5018),
    "Nonthaburi": Coordinates(13.8621, 100.5144),
    "Pathum Thani": Coordinates(14.0208, 100.5250),
    "Samut Prakan": Coordinates(13.5991, 100.5998),
    "Samut Sakhon": Coordinates(13.5475, 100.2744),
    "Nakhon Pathom": Coordinates(13.8199, 100.0622),
    "Phra Nakhon Si Ayutthaya": Coordinates(14.3532, 100.5689),
    "Chonburi": Coordinates(13.3611, 100.9847),
    "Rayong": Coordinates(12.6814, 101.2816),
    "Chanthaburi": Coordinates(12.6113, 102.1039),
    "Trat": Coordinates(12.2428, 102.5175),
    "Chachoengsao": Coordinates(13.6904, 101.0780),
    "Prachin Buri": Coordinates(14.0509, 101.3717),
    "Saraburi": Coordinates(14.5289, 100.9101),
    "Lopburi": Coordinates(14.7995, 100.6534),
    "Kanchanaburi": Coordinates(14.0228, 99.5328),
    "Ratchaburi": Coordinates(13.5283, 99.8134),
    "Phetchaburi": Coordinates(13.1119, 99.9398),
    "Prachuap Khiri Khan": Coordinates(11.8124, 99.7973),
    "Chumphon": Coordinates(10.4930, 99.1800),
    "Surat Thani": Coordinates(9.1382, 99.3215),
    "Nakhon Si Thammarat": Coordinates(8.4304, 99.9631),
    "Krabi": Coordinates(8.0863, 98.9063),
    "Phuket": Coordinates(7.8804, 98.3923),
    "Phang Nga": Coordinates(8.4509, 98.5253),
    "Trang": Coordinates(7.5563, 99.6114),
    "Songkhla": Coordinates(7.1756, 100.6143),
    "Pattani": Coordinates(6.8692, 101.2550),
    "Yala": Coordinates(6.5411, 101.2804),
    "Narathiwat": Coordinates(6.4255, 101.8253),
    "Nakhon Ratchasima": Coordinates(14.9799, 102.0977),
    "Khon Kaen": Coordinates(16.4322, 102.8236),
    "Udon Thani": Coordinates(17.4138, 102.7870),
    "Nong Khai": Coordinates(17.8783, 102.7420),
    "Ubon Ratchathani": Coordinates(15.2287, 104.8564),
    "Buriram": Coordinates(14.9930, 103.1029),
    "Surin": Coordinates(14.8818, 103.4936),
    "Sisaket": Coordinates(15.1186, 104.3220),
    "Roi Et": Coordinates(16.0538, 103.6520),
    "Sakon Nakhon": Coordinates(17.1545, 104.1348),
    "Nakhon Phanom": Coordinates(17.3920, 104.7695),
    "Mukdahan": Coordinates(16.5436, 104.7235),
    "Chaiyaphum": Coordinates(15.8068, 102.0316),
    "Maha Sarakham": Coordinates(16.1851, 103.3007),
    "Loei": Coordinates(17.4860, 101.7223),
    "Nakhon Sawan": Coordinates(15.7047, 100.1372),
    "Phitsanulok": Coordinates(16.8211, 100.2659),
    "Sukhothai": Coordinates(17.0070, 99.8230),
    "Tak": Coordinates(16.8840, 99.1258),
    "Phetchabun": Coordinates(16.4190, 101.1591),
    "Uttaradit": Coordinates(17.6201, 100.0993),
    "Chiang Mai": Coordinates(18.7883, 98.9853),
    "Chiang Rai": Coordinates(19.9105, 99.8406),
    "Lampang": Coordinates(18.2888, 99.4908),
    "Lamphun": Coordinates(18.5745, 99.0087),
    "Nan": Coordinates(18.7756, 100.7730),
    "Phrae": Coordinates(18.1446, 100.1403),
    "Phayao": Coordinates(19.1665, 99.9019),
    "Mae Hong Son": Coordinates(19.3020, 97.9654),
}

ALIASES: dict[str, str] = {
    "krung thep": "Bangkok",
    "krung thep maha nakhon": "Bangkok",
    "กรุงเทพ": "Bangkok",
    "กรุงเทพฯ": "Bangkok",
    "กรุงเทพมหานคร": "Bangkok",
    "ayutthaya": "Phra Nakhon Si Ayutthaya",
    "chon buri": "Chonburi",
    "korat": "Nakhon Ratchasima",
    "hat yai": "Songkhla",
    "เชียงใหม่": "Chiang Mai",
    "เชียงราย": "Chiang Rai",
    "ภูเก็ต": "Phuket",
    "ขอนแก่น": "Khon Kaen",
    "ชลบุรี": "Chonburi",
    "นครราชสีมา": "Nakhon Ratchasima",
    "สงขลา": "Songkhla",
    "นนทบุรี": "Nonthaburi",
    "ปทุมธานี": "Pathum Thani",
    "สมุทรปราการ": "Samut Prakan",
}

_BY_LOWER = {name.lower(): coords for name, coords in PROVINCES.items()}


def lookup_province(name: str | None) -> Coordinates | None:
    """内蔵テーブルのみを引く（大文字小文字を区別しない）。"""
    if not name:
        return None
    key = name.strip().lower()
    if key in _BY_LOWER:
        return _BY_LOWER[key]
    alias = ALIASES.get(key)
    return PROVINCES[alias] if alias else None


class ProvinceLocator:
    """倉庫（発送元）と配送先の座標を解決する。"""

    def __init__(
        self,
        *,
        warehouse_province: str = "Bangkok",
        warehouse: Coordinates | None = None,
        geocoding_enabled: bool = False,
        geocoder_url: str | None = None,
    ) -> None:
        self.warehouse_province = warehouse_province
        self.warehouse = warehouse
        self.geocoding_enabled = geocoding_enabled
        self.geocoder_url = geocoder_url
        self._cache: dict[str, Coordinates | None] = {}

    async def locate(self, province: str | None) -> Coordinates | None:
        if not province or not province.strip():
            return None
        found = lookup_province(province)
        if found or not self.geocoding_enabled:
            return found
        return await self._geocode(province.strip())

    async def locate_origin(self, province: str | None) -> Coordinates | None:
        if province and province.strip():
            return await self.locate(province)
        if self.warehouse is not None:
            return self.warehouse
        return await self.locate(self.warehouse_province)

    async def _geocode(self, province: str) -> Coordinates | None:
        key = province.lower()
        if key in self._cache:
            return self._cache[key]

        coords: Coordinates | None = None
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(
                    self.geocoder_url,
                    params={"q": f"{province}, Thailand", "format": "jsonv2", "limit": 1},
                    headers={"User-Agent": "storefront-order-service/1.0"},
                )
                resp.raise_for_status()
                data = resp.json()
            if isinstance(data, list) and data:
                coords = Coordinates(float(data[0]["lat"]), float(data[0]["lon"]))
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("Geocoding failed for %s: %s", province, e)

        self._cache[key] = coords
        return coords
