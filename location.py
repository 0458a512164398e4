"""Best-effort location hint for assistant queries."""

from __future__ import annotations

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class IpLocationProvider:
    def __init__(self, url: str = "http://ip-api.com/json/") -> None:
        self._url = url

    def locate(self, timeout_s: float) -> Optional[str]:
        response = requests.get(self._url, timeout=timeout_s)
        response.raise_for_status()
        data = response.json()
        if data.get("status", "success") != "success":
            raise LookupError(data.get("message") or "location lookup failed")
        lat = data.get("lat")
        lon = data.get("lon")
        if lat is None or lon is None:
            return None
        hint = f"Lat: {float(lat):.2f}, Lon: {float(lon):.2f}"
        city = data.get("city")
        if city:
            hint += f" ({city}, {data.get('country', '')})".replace(", )", ")")
        logger.debug("Location hint: %s", hint)
        return hint
