from types import MappingProxyType
from typing import Iterator, List, Optional

from models.tile_provider import TileProvider
from utils.tile_calculator import TileCalculator


class ProviderRegistry:
    """Read-only id -> TileProvider lookup"""

    def __init__(self, providers: List[TileProvider]):
        self._providers = MappingProxyType({p.id: p for p in providers})

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def __iter__(self) -> Iterator[TileProvider]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def get(self, provider_id: Optional[str]) -> Optional[TileProvider]:
        if provider_id is None:
            return None
        return self._providers.get(provider_id)

    def ids(self) -> List[str]:
        return list(self._providers.keys())

    def is_valid_tile(self, x: int, y: int, z: int, provider_id: Optional[str] = None) -> bool:
        """Tile validity by provider id; unknown ids only get the quad-tree check"""
        return TileCalculator.is_valid_tile(x, y, z, self.get(provider_id))
