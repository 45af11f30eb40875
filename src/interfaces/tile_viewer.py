from abc import ABC, abstractmethod
from typing import Dict, Any, Tuple

from models.map_settings import MapSettings


class IConfigLoader(ABC):
    """Interface for configuration loading"""
    
    @abstractmethod
    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from file"""
        pass
    
    @abstractmethod
    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration"""
        pass


class ISettingsStore(ABC):
    """Interface for map settings persistence"""

    @abstractmethod
    def get_settings(self) -> MapSettings:
        """Return stored settings, creating defaults when none exist"""
        pass

    @abstractmethod
    def save_settings(self, settings: MapSettings) -> MapSettings:
        """Overwrite stored settings and return what was stored"""
        pass


class ITileFetcher(ABC):
    """Interface for fetching tile images from an upstream server"""

    @abstractmethod
    def fetch_tile(self, zoom: int, x: int, y: int, provider_id: str = None) -> Tuple[bytes, str]:
        """Return (image bytes, content type)"""
        pass
