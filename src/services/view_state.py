import logging
import threading
from typing import Callable, Optional

from models.map_settings import MapSettings
from models.tile_coordinate import GeoPoint
from services.settings_client import SettingsClient

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DELAY = 1.0  # seconds


class MapViewState:
    """In-memory view of the map that persists itself through a SettingsClient.

    Pans and zooms are saved after ``save_delay`` seconds of quiet, switching
    the base layer saves at once. A failed save leaves the in-memory state
    as it is.
    """

    def __init__(self, client: SettingsClient, save_delay: float = DEFAULT_SAVE_DELAY,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self.client = client
        self.save_delay = save_delay
        self._timer_factory = timer_factory
        self._settings = client.defaults
        self._pending: Optional[MapSettings] = None
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def settings(self) -> MapSettings:
        return self._settings

    def load(self) -> MapSettings:
        self._settings = self.client.load_settings()
        return self._settings

    def on_zoom_change(self, zoom: int, center: GeoPoint) -> None:
        self._update(MapSettings(provider=self._settings.provider, zoom=zoom, center=center))

    def on_move_end(self, center: GeoPoint) -> None:
        self._update(MapSettings(provider=self._settings.provider, zoom=self._settings.zoom, center=center))

    def on_base_layer_change(self, provider_id: str) -> Optional[MapSettings]:
        self._settings = MapSettings(provider=provider_id, zoom=self._settings.zoom,
                                     center=self._settings.center)
        self.cancel()
        return self.client.save_settings(self._settings)

    def _update(self, settings: MapSettings) -> None:
        if not settings.provider or not isinstance(settings.zoom, int):
            logger.error("Invalid settings object: %s", settings)
            return
        self._settings = settings
        with self._lock:
            self._pending = settings
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self.save_delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> Optional[MapSettings]:
        """Save the pending view now, if there is one"""
        with self._lock:
            pending, self._pending = self._pending, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if pending is None:
            return None
        return self.client.save_settings(pending)

    def cancel(self) -> None:
        """Drop any pending save"""
        with self._lock:
            self._pending = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
