import logging
from typing import Any, Dict, Optional

import requests

from models.map_settings import MapSettings
from exceptions.tile_viewer_exceptions import SettingsFormatError, StorageError, ValidationError

logger = logging.getLogger(__name__)

SETTINGS_PATH = '/api/settings'


class SettingsClient:
    """Loads and saves map settings over the settings API.

    Loading never fails: any problem falls back to the defaults. Saving is
    best effort: failures are logged and ``None`` is returned.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, defaults: Optional[MapSettings] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.defaults = defaults or MapSettings.defaults()

    def create_session(self) -> requests.Session:
        return requests.Session()

    @property
    def settings_url(self) -> str:
        return f"{self.base_url}{SETTINGS_PATH}"

    @staticmethod
    def _parse_json(response: requests.Response) -> Dict[str, Any]:
        content_type = response.headers.get('Content-Type', '')
        if 'application/json' not in content_type:
            raise SettingsFormatError(f"Expected JSON response but got {content_type or 'no content type'}")
        try:
            return response.json()
        except ValueError as e:
            raise SettingsFormatError(f"Malformed JSON in settings response: {e}")

    @staticmethod
    def _to_settings(data: Any) -> MapSettings:
        try:
            return MapSettings.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Unexpected settings shape: {e}")

    def load_settings(self) -> MapSettings:
        session = self.create_session()
        try:
            response = session.get(self.settings_url, timeout=self.timeout)
            if not response.ok:
                logger.warning("Failed to load settings (HTTP %s), using defaults", response.status_code)
                return self.defaults
            return self._to_settings(self._parse_json(response))
        except (requests.RequestException, SettingsFormatError, ValidationError) as e:
            logger.warning("Error loading settings, using defaults: %s", e)
            return self.defaults
        finally:
            session.close()

    def save_settings(self, settings: MapSettings) -> Optional[MapSettings]:
        session = self.create_session()
        try:
            response = session.post(self.settings_url, json=settings.to_dict(), timeout=self.timeout)
            if not response.ok:
                raise StorageError(self._error_message(response))
            return self._to_settings(self._parse_json(response))
        except (requests.RequestException, SettingsFormatError, StorageError, ValidationError) as e:
            logger.error("Failed to save settings: %s", e)
            return None
        finally:
            session.close()

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        text = response.text
        try:
            data = response.json()
        except ValueError:
            return f"Failed to save settings: {text}"
        if isinstance(data, dict) and data.get('error'):
            return data['error']
        return 'Failed to save settings'
