from dataclasses import dataclass
from typing import Any, Dict

from models.tile_coordinate import GeoPoint

DEFAULT_PROVIDER = 'osm'
DEFAULT_ZOOM = 13
DEFAULT_CENTER = GeoPoint(lat=51.505, lon=-0.09)  # London


@dataclass(frozen=True)
class MapSettings:
    """Persisted map view: provider, zoom and center"""
    provider: str
    zoom: int
    center: GeoPoint

    @classmethod
    def defaults(cls) -> 'MapSettings':
        return cls(provider=DEFAULT_PROVIDER, zoom=DEFAULT_ZOOM, center=DEFAULT_CENTER)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MapSettings':
        """Build from an already validated payload"""
        center = data['center']
        return cls(
            provider=data['provider'],
            zoom=int(data['zoom']),
            center=GeoPoint(lat=float(center['lat']), lon=float(center['lon']))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'provider': self.provider,
            'zoom': self.zoom,
            'center': self.center.to_dict()
        }
