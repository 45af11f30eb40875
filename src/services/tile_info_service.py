from typing import Any, Dict, List, Optional

from models.tile_coordinate import TileCoordinate
from models.tile_provider import TileProvider
from services.provider_registry import ProviderRegistry
from utils.tile_calculator import TileCalculator
from utils.tile_size_cache import TileSizeCache
from exceptions.tile_viewer_exceptions import ValidationError


class TileInfoService:
    """Builds the JSON payloads behind the tile viewer pages"""

    def __init__(self, registry: ProviderRegistry, size_cache: TileSizeCache, default_provider: str = 'osm'):
        self.registry = registry
        self.size_cache = size_cache
        self.default_provider = default_provider

    def _resolve_provider(self, provider_id: Optional[str]) -> TileProvider:
        provider = self.registry.get(provider_id or self.default_provider)
        if provider is None:
            raise ValidationError(f"Unknown provider: {provider_id}")
        return provider

    @staticmethod
    def _check_tile(x: int, y: int, z: int) -> None:
        if not TileCalculator.is_valid_tile(x, y, z):
            raise ValidationError('Invalid tile coordinates')

    @staticmethod
    def _tile_entry(tile: TileCoordinate, provider: Optional[TileProvider] = None) -> Dict[str, Any]:
        entry = tile.to_dict()
        entry['center'] = TileCalculator.tile_center(tile.x, tile.y, tile.z).to_dict()
        if provider is not None:
            entry['url'] = provider.get_tile_url(tile.z, tile.x, tile.y)
        return entry

    def tile_info(self, z: int, x: int, y: int, provider_id: Optional[str] = None,
                  include_size: bool = False) -> Dict[str, Any]:
        """Bounds, scale and neighbourhood of one tile"""
        self._check_tile(x, y, z)
        provider = self._resolve_provider(provider_id)

        bounds = TileCalculator.tile_bounds(x, y, z)
        parent = TileCalculator.parent_tile(x, y, z)
        url = provider.get_tile_url(z, x, y)

        info = {
            'tile': TileCoordinate(x=x, y=y, z=z).to_dict(),
            'provider': provider.id,
            'url': url,
            'valid_for_provider': TileCalculator.is_valid_tile(x, y, z, provider),
            'upscaled': z > provider.max_native_zoom,
            'bounds': bounds.to_dict(),
            'formatted_bounds': {k: TileCalculator.format_coordinate(v) for k, v in bounds.to_dict().items()},
            'center': TileCalculator.tile_center(x, y, z).to_dict(),
            'meters_per_pixel': TileCalculator.approximate_scale(z),
            'parent': self._tile_entry(parent, provider) if parent else None,
            'children': [self._tile_entry(t, provider) for t in TileCalculator.get_subtiles(x, y, z, provider)],
            'adjacent': [self._tile_entry(t, provider)
                         for t in TileCalculator.adjacent_tiles(x, y, z, include_corners=True, provider=provider)]
        }
        if include_size:
            info['size_bytes'] = self.size_cache.get_tile_size(url)
        return info

    def tile_pyramid(self, z: int, x: int, y: int, provider_id: Optional[str] = None) -> Dict[str, Any]:
        """Ancestors up to zoom 0 plus the four children, each with its center"""
        self._check_tile(x, y, z)
        provider = self._resolve_provider(provider_id)
        return {
            'tile': TileCoordinate(x=x, y=y, z=z).to_dict(),
            'provider': provider.id,
            'ancestors': [self._tile_entry(t, provider) for t in TileCalculator.ancestor_chain(x, y, z)],
            'children': [self._tile_entry(t, provider) for t in TileCalculator.child_tiles(x, y, z)]
        }

    def compare_providers(self, z: int, x: int, y: int) -> List[Dict[str, Any]]:
        """Same tile across every registered provider"""
        self._check_tile(x, y, z)
        return [{
            'provider': provider.id,
            'name': provider.name,
            'url': provider.get_tile_url(z, x, y),
            'attribution': provider.attribution,
            'valid': TileCalculator.is_valid_tile(x, y, z, provider),
            'upscaled': z > provider.max_native_zoom
        } for provider in self.registry]
