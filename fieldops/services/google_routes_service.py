import logging
import math
from datetime import datetime
from typing import Any, Optional

import httpx
from dateutil import tz

from ..config import GOOGLE_ROUTES_API_KEY, ROUTING_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class GoogleRoutesService:
    """Client for the Google Routes API computeRoutes endpoint"""

    BASE_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
    FIELD_MASK = "routes.duration,routes.distanceMeters,routes.polyline.encodedPolyline"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = ROUTING_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else GOOGLE_ROUTES_API_KEY
        self.timeout = timeout
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def build_request_body(
        self, origin: str, destination: str, departure_utc: Optional[datetime]
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "origin": {"address": origin},
            "destination": {"address": destination},
            "travelMode": "DRIVE",
            "routingPreference": "TRAFFIC_AWARE",
        }
        # Traffic-aware routing rejects departure times in the past
        if departure_utc is not None:
            body["departureTime"] = (
                departure_utc.astimezone(tz.UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z")
            )
        return body

    async def compute_route(
        self, origin: str, destination: str, departure_utc: Optional[datetime] = None
    ) -> Optional[dict[str, Any]]:
        """
        Drive time and distance between two addresses.

        Returns:
            {"minutes", "km", "polyline"} or None when the provider cannot answer
        """
        if not self.is_configured:
            logger.warning("⚠️ GOOGLE_ROUTES_API_KEY not configured - skipping route lookup")
            return None

        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": self.FIELD_MASK,
        }
        body = self.build_request_body(origin, destination, departure_utc)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.BASE_URL, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Routes API request failed: {type(e).__name__}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"⚠️ Routes API returned {response.status_code}: {response.text[:200]}")
            return None

        try:
            return self.parse_route(response.json())
        except ValueError as e:
            logger.warning(f"⚠️ Routes API returned malformed payload: {e}")
            return None

    @staticmethod
    def parse_route(payload: dict[str, Any]) -> Optional[dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        routes = payload.get("routes") or []
        if not routes or not isinstance(routes[0], dict):
            return None

        route = routes[0]
        duration = str(route.get("duration") or "").strip()
        if not duration.endswith("s"):
            return None

        seconds = float(duration[:-1])
        meters = float(route.get("distanceMeters") or 0)
        if not math.isfinite(seconds):
            return None

        return {
            "minutes": seconds / 60,
            "km": meters / 1000,
            "polyline": (route.get("polyline") or {}).get("encodedPolyline"),
        }
