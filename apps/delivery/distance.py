import logging
from dataclasses import dataclass
from decimal import Decimal

import requests
from django.conf import settings

from apps.common.exceptions import UpstreamProviderError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class DistanceResult:
    distance_km: Decimal
    distance_text: str
    duration_seconds: int
    duration_text: str

    def as_dict(self):
        return {
            "success": True,
            "distanceKm": float(self.distance_km),
            "distanceText": self.distance_text,
            "durationSeconds": self.duration_seconds,
            "durationText": self.duration_text,
        }


class GoogleDistanceClient:
    provider = "google_maps"

    def __init__(self, api_key=None, url=None, timeout=None):
        self.api_key = settings.GOOGLE_MAPS_API_KEY if api_key is None else api_key
        self.url = url or settings.GOOGLE_MAPS_DISTANCE_URL
        self.timeout = timeout or settings.GOOGLE_MAPS_TIMEOUT_SECONDS

    def measure(self, origin, destination):
        if not isinstance(origin or "", str) or not isinstance(destination or "", str):
            raise ValidationError("origin and destination must be addresses")
        origin = (origin or "").strip()
        destination = (destination or "").strip()
        if not origin or not destination:
            raise ValidationError("Missing origin or destination")
        if not self.api_key:
            raise UpstreamProviderError("Google Maps API key not configured", provider=self.provider, status_code=500)

        params = {"origins": origin, "destinations": destination, "key": self.api_key}
        try:
            response = requests.get(self.url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("Distance lookup failed origin=%r destination=%r: %s", origin, destination, exc)
            raise UpstreamProviderError("Failed to calculate distance", provider=self.provider)

        if not response.ok:
            logger.error("Distance lookup HTTP %s origin=%r destination=%r", response.status_code, origin, destination)
            raise UpstreamProviderError("Failed to calculate distance", provider=self.provider)

        try:
            data = response.json()
        except ValueError:
            raise UpstreamProviderError("Invalid response from mapping provider", provider=self.provider)

        rows = data.get("rows") or [{}]
        element = (rows[0].get("elements") or [{}])[0]
        if data.get("status") != "OK" or element.get("status") != "OK":
            status = element.get("status") or data.get("status")
            logger.info("Distance lookup unresolvable origin=%r destination=%r status=%s", origin, destination, status)
            raise ValidationError(f"Address not found or unreachable ({status})")

        meters = Decimal(str(element["distance"]["value"]))
        return DistanceResult(
            distance_km=meters / Decimal("1000"),
            distance_text=element["distance"].get("text", ""),
            duration_seconds=int(element["duration"]["value"]),
            duration_text=element["duration"].get("text", ""),
        )
