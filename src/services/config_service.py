import json
import os
from typing import Dict, Any, List
from interfaces.tile_viewer import IConfigLoader
from models.map_settings import MapSettings
from models.tile_provider import TileProvider, HighZoomConfig
from services.provider_registry import ProviderRegistry
from exceptions.tile_viewer_exceptions import ConfigurationError, ValidationError

DEFAULT_CONFIG_PATH = 'config.json'


class ConfigService(IConfigLoader):
    """Service for loading and validating configuration"""

    def load_config(self, config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Config file {config_path} not found!")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading config: {e}")

        self.validate_config(config)
        return self._process_config(config)

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration structure"""
        required_keys = ['server', 'database', 'providers']

        for key in required_keys:
            if key not in config:
                raise ValidationError(f"Missing required key: {key}")

        if not isinstance(config['server'], dict):
            raise ValidationError("server must be a dictionary")

        if not isinstance(config['providers'], list) or not config['providers']:
            raise ValidationError("providers must be a non-empty list")

        for provider_data in config['providers']:
            if not isinstance(provider_data, dict):
                raise ValidationError("each provider must be a dictionary")
            for key in ('id', 'name', 'url'):
                if key not in provider_data:
                    raise ValidationError(f"Provider is missing required key: {key}")
            for placeholder in ('{z}', '{x}', '{y}'):
                if placeholder not in provider_data['url']:
                    raise ValidationError(
                        f"Provider '{provider_data['id']}' url lacks {placeholder} placeholder")
            min_zoom = provider_data.get('min_zoom', 0)
            max_zoom = provider_data.get('max_zoom', 19)
            if not (0 <= min_zoom <= max_zoom):
                raise ValidationError(f"Provider '{provider_data['id']}' has an invalid zoom range")

        return True

    def _process_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Process and enhance configuration"""
        config['provider_defs'] = [self._create_provider(p) for p in config['providers']]
        config['providers'] = [p['id'] for p in config['providers']]
        config.setdefault('default_settings', MapSettings.defaults().to_dict())
        config.setdefault('tile_size_cache', {})
        config.setdefault('tile_proxy', {})
        config.setdefault('search', {})
        config.setdefault('logging', {})
        return config

    @staticmethod
    def _create_provider(provider_data: Dict[str, Any]) -> TileProvider:
        max_zoom = provider_data.get('max_zoom', 19)
        high_zoom = provider_data.get('high_zoom_config')
        try:
            high_zoom_config = HighZoomConfig(**high_zoom) if high_zoom else None
        except TypeError as e:
            raise ValidationError(f"Provider '{provider_data['id']}' has invalid high_zoom_config: {e}")
        return TileProvider(
            id=provider_data['id'],
            name=provider_data['name'],
            url_template=provider_data['url'],
            attribution=provider_data.get('attribution', ''),
            min_zoom=provider_data.get('min_zoom', 0),
            max_zoom=max_zoom,
            max_native_zoom=provider_data.get('max_native_zoom', max_zoom),
            high_zoom_config=high_zoom_config,
            headers=provider_data.get('headers', {})
        )

    def get_provider_registry(self, config: Dict[str, Any]) -> ProviderRegistry:
        """Build the read-only provider registry"""
        return ProviderRegistry(config.get('provider_defs', []))

    def get_providers(self, config: Dict[str, Any]) -> List[TileProvider]:
        return list(config.get('provider_defs', []))

    def get_default_settings(self, config: Dict[str, Any]) -> MapSettings:
        """Settings used when nothing has been stored yet"""
        try:
            return MapSettings.from_dict(config['default_settings'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid default_settings: {e}")
