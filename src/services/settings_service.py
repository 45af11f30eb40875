import logging
import math
import os
import sqlite3
import threading
from contextlib import closing
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from interfaces.tile_viewer import ISettingsStore
from models.map_settings import MapSettings
from models.tile_coordinate import GeoPoint
from services.provider_registry import ProviderRegistry
from exceptions.tile_viewer_exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = 'default-user'
MAX_ZOOM = 30

SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    user_id TEXT PRIMARY KEY,
    provider TEXT NOT NULL,
    zoom INTEGER NOT NULL,
    center_lat REAL NOT NULL,
    center_lon REAL NOT NULL,
    updated_at TEXT NOT NULL
)
"""

UPSERT = """
INSERT INTO settings (user_id, provider, zoom, center_lat, center_lon, updated_at)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(user_id) DO UPDATE SET
    provider = excluded.provider,
    zoom = excluded.zoom,
    center_lat = excluded.center_lat,
    center_lon = excluded.center_lon,
    updated_at = excluded.updated_at
"""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class SettingsService(ISettingsStore):
    """Stores the map view of a single implicit user in sqlite.

    Saving overwrites the previous row; there is no history.
    """

    def __init__(self, db_path: str, defaults: Optional[MapSettings] = None,
                 registry: Optional[ProviderRegistry] = None, user_id: str = DEFAULT_USER_ID):
        self.db_path = db_path
        self.defaults = defaults or MapSettings.defaults()
        self.registry = registry
        self.user_id = user_id
        self._lock = threading.Lock()
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=10)

    def _initialize(self) -> None:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize settings database {self.db_path}: {e}")

    def get_settings(self) -> MapSettings:
        """Stored settings; the defaults are written on first access"""
        with self._lock:
            try:
                with closing(self._connect()) as conn:
                    row = conn.execute(
                        "SELECT provider, zoom, center_lat, center_lon FROM settings WHERE user_id = ?",
                        (self.user_id,)
                    ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to fetch settings: {e}")

            if row is None:
                logger.info("No stored settings for %s, creating defaults", self.user_id)
                return self._write(self.defaults)

        provider, zoom, lat, lon = row
        return MapSettings(provider=provider, zoom=zoom, center=GeoPoint(lat=lat, lon=lon))

    def save_settings(self, settings: MapSettings) -> MapSettings:
        with self._lock:
            return self._write(settings)

    def _write(self, settings: MapSettings) -> MapSettings:
        updated_at = datetime.now(timezone.utc).isoformat()
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(UPSERT, (
                    self.user_id, settings.provider, settings.zoom,
                    settings.center.lat, settings.center.lon, updated_at
                ))
        except (sqlite3.Error, OverflowError) as e:
            raise StorageError(f"Failed to update settings: {e}")
        return settings

    def parse_settings(self, body: Any) -> MapSettings:
        """Validate a decoded JSON payload into MapSettings"""
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        provider = body.get('provider')
        zoom = body.get('zoom')
        if not provider or not isinstance(provider, str) or not _is_number(zoom):
            raise ValidationError("Missing required fields")
        if zoom != int(zoom):
            raise ValidationError("zoom must be an integer")
        if not 0 <= zoom <= MAX_ZOOM:
            raise ValidationError(f"zoom must be between 0 and {MAX_ZOOM}")

        center = body.get('center')
        if (not isinstance(center, dict) or
                not _is_number(center.get('lat')) or
                not _is_number(center.get('lon'))):
            raise ValidationError("Invalid center format")

        if self.registry is not None and provider not in self.registry:
            logger.warning("Saving settings with unknown provider '%s'", provider)

        return MapSettings(
            provider=provider,
            zoom=int(zoom),
            center=GeoPoint(lat=float(center['lat']), lon=float(center['lon']))
        )

    def update_from_payload(self, body: Dict[str, Any]) -> MapSettings:
        return self.save_settings(self.parse_settings(body))
