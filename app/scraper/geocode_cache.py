"""Persistent address → coordinates cache for the geocoding stage."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterator, Optional

from . import config
from .logging_utils import _scraper_event
from .models import Coordinates
from .utils import log_line, save_json_file


class GeocodeCache:
    """In-memory mapping of normalised addresses to coordinates.

    Entries are only ever added during a run; ``save`` rewrites the whole file
    so the mapping held here is the persisted truth.
    """

    def __init__(self, path: Optional[Path] = None, entries: Optional[Dict[str, Coordinates]] = None) -> None:
        self.path = Path(path) if path is not None else config.GEOCODE_CACHE_FILE
        self._entries: Dict[str, Coordinates] = dict(entries or {})

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "GeocodeCache":
        """Read the cache from ``path``; missing or corrupt files give an empty cache."""

        cache = cls(path)
        if not cache.path.exists():
            log_line(f"[CACHE] No geocode cache at {cache.path}; starting fresh.")
            return cache

        try:
            with cache.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            log_line(f"[CACHE][WARN] Error reading cache {cache.path}, starting fresh: {exc}")
            return cache

        if not isinstance(data, dict):
            log_line(f"[CACHE][WARN] Cache {cache.path} is not a JSON object; starting fresh.")
            return cache

        skipped = 0
        for address, value in data.items():
            coords = Coordinates.from_dict(value)
            if coords is None:
                skipped += 1
                continue
            cache._entries[str(address)] = coords

        _scraper_event(
            "cache",
            phase="load",
            path=str(cache.path),
            entries=len(cache._entries),
            skipped=skipped,
        )
        return cache

    def save(self) -> Path:
        save_json_file(self.path, self.to_dict())
        _scraper_event("cache", phase="save", path=str(self.path), entries=len(self._entries))
        return self.path

    def get(self, address: str) -> Optional[Coordinates]:
        return self._entries.get(address)

    def put(self, address: str, coords: Coordinates) -> None:
        self._entries[address] = coords

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {address: coords.to_dict() for address, coords in self._entries.items()}

    def __contains__(self, address: object) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GeocodeCache):
            return NotImplemented
        return self._entries == other._entries


__all__ = ["GeocodeCache"]
