from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class TileCoordinate:
    """One tile of the z/x/y quad-tree"""
    x: int
    y: int
    z: int

    def to_dict(self) -> Dict[str, int]:
        return {'z': self.z, 'x': self.x, 'y': self.y}


@dataclass(frozen=True)
class GeoPoint:
    """Geographic coordinate in degrees"""
    lat: float
    lon: float

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lon': self.lon}


@dataclass(frozen=True)
class TileBounds:
    """Geographic rectangle covered by a tile (y grows southward)"""
    north: float
    south: float
    east: float
    west: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'north': self.north,
            'south': self.south,
            'east': self.east,
            'west': self.west
        }
