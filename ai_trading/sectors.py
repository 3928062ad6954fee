"""Static symbol to sector lookup used for concentration metrics."""

from __future__ import annotations

from typing import Callable, Mapping

DEFAULT_SECTOR = "Others"

SECTOR_MAP: Mapping[str, str] = {
    "005930": "Technology",  # Samsung Electronics
    "000660": "Technology",  # SK Hynix
    "035420": "Technology",  # NAVER
    "051910": "Chemical",  # LG Chem
    "068270": "Healthcare",  # Celltrion
    "035720": "Healthcare",  # Kakao
    "207940": "Technology",  # Samsung Biologics
    "006400": "Steel",  # Samsung SDI
    "028260": "Consumer",  # Samsung C&T
    "012330": "Mobile",  # Hyundai Mobis
}

SectorLookup = Callable[[str], str]


def lookup_sector(symbol: str) -> str:
    """Return the sector for ``symbol``; unknown symbols map to ``Others``."""

    code = str(symbol or "").strip().upper()
    # Accept exchange suffixed tickers such as ``005930.KS``.
    base = code.split(".", 1)[0]
    return SECTOR_MAP.get(code) or SECTOR_MAP.get(base) or DEFAULT_SECTOR


__all__ = ["DEFAULT_SECTOR", "SECTOR_MAP", "SectorLookup", "lookup_sector"]
