"""Record types shared by the crawler, the geocoder and the pipeline.

``RawRecord`` is one row of the Active Asbestos Projects report as it comes off
the wire. ``EnrichedRecord`` adds an optional coordinate pair; ``lat`` and
``lng`` are either both present or both absent.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

RAW_FIELDS = ("contractor", "start", "end", "street", "city", "zip")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Coordinates"]:
        """Build coordinates from ``{"lat": .., "lng": ..}`` or return None."""

        if not isinstance(data, dict):
            return None
        lat = data.get("lat")
        lng = data.get("lng")
        if isinstance(lat, bool) or isinstance(lng, bool):
            return None
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            return None
        return cls(lat=float(lat), lng=float(lng))


@dataclass(frozen=True)
class RawRecord:
    contractor: str
    start: str = ""
    end: str = ""
    street: str = ""
    city: str = ""
    zip: str = ""
    county: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.county is None:
            data.pop("county")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawRecord":
        values = {name: str(data.get(name) or "") for name in RAW_FIELDS}
        county = data.get("county")
        return cls(county=str(county) if county else None, **values)

    def address(self, state_suffix: str) -> str:
        """Return the single-line address used for geocoding."""

        return f"{self.street}, {self.city}, {self.zip}, {state_suffix}"


@dataclass(frozen=True)
class EnrichedRecord:
    record: RawRecord
    lat: Optional[float] = None
    lng: Optional[float] = None

    def __post_init__(self) -> None:
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be both set or both absent")

    @classmethod
    def from_raw(cls, record: RawRecord, coords: Optional[Coordinates]) -> "EnrichedRecord":
        if coords is None:
            return cls(record)
        return cls(record, lat=coords.lat, lng=coords.lng)

    @property
    def geocoded(self) -> bool:
        return self.lat is not None

    def to_dict(self) -> Dict[str, Any]:
        data = self.record.to_dict()
        if self.geocoded:
            data["lat"] = self.lat
            data["lng"] = self.lng
        return data


__all__ = ["Coordinates", "RawRecord", "EnrichedRecord", "RAW_FIELDS"]
