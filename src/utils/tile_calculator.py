import math
from typing import List, Tuple, Optional

from models.tile_coordinate import TileCoordinate, GeoPoint, TileBounds
from models.tile_provider import TileProvider

EARTH_CIRCUMFERENCE_METERS = 40075016.686
TILE_SIZE_PIXELS = 256


class TileCalculator:
    """Utility class for tile coordinate calculations.

    Every method is pure. Out-of-range coordinates never raise; use
    ``is_valid_tile`` before rendering or linking a tile.
    """

    @staticmethod
    def tile_to_geo_point(x: float, y: float, z: int) -> GeoPoint:
        """Top-left corner of tile x/y at zoom z (fractional x/y allowed)"""
        n = 2.0 ** z
        lon = x / n * 360.0 - 180.0
        lat = math.degrees(math.atan(math.sinh(math.pi - 2.0 * math.pi * y / n)))
        return GeoPoint(lat=lat, lon=lon)

    @staticmethod
    def tile_center(x: int, y: int, z: int) -> GeoPoint:
        return TileCalculator.tile_to_geo_point(x + 0.5, y + 0.5, z)

    @staticmethod
    def deg2num(lat_deg: float, lon_deg: float, zoom: int) -> Tuple[int, int]:
        """Convert lat/lon to tile coordinates, clamped to the zoom's tile range"""
        lat_rad = math.radians(lat_deg)
        n = 2.0 ** zoom
        xtile = int((lon_deg + 180.0) / 360.0 * n)
        ytile = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
        max_coord = int(n) - 1
        return min(max(xtile, 0), max_coord), min(max(ytile, 0), max_coord)

    @staticmethod
    def tile_bounds(x: int, y: int, z: int) -> TileBounds:
        """Geographic bounds of a tile"""
        top_left = TileCalculator.tile_to_geo_point(x, y, z)
        bottom_right = TileCalculator.tile_to_geo_point(x + 1, y + 1, z)
        return TileBounds(
            north=top_left.lat,
            south=bottom_right.lat,
            east=bottom_right.lon,
            west=top_left.lon
        )

    @staticmethod
    def approximate_scale(z: int) -> float:
        """Meters per pixel at the equator.

        Mercator stretching towards the poles is not corrected for.
        """
        return EARTH_CIRCUMFERENCE_METERS / ((2 ** z) * TILE_SIZE_PIXELS)

    @staticmethod
    def is_valid_tile(x: int, y: int, z: int, provider: Optional[TileProvider] = None) -> bool:
        """Check tile coordinates against the quad-tree and optionally a provider.

        Above ``provider.max_native_zoom`` the tile is upscaled from its
        ancestor at native zoom, so that ancestor decides validity.
        """
        if z < 0:
            return False
        max_coord = 2 ** z - 1
        if not (0 <= x <= max_coord and 0 <= y <= max_coord):
            return False

        if provider is None:
            return True
        if z > provider.max_zoom:
            return False

        while z > provider.max_native_zoom:
            x //= 2
            y //= 2
            z -= 1
            if z < 0:
                return False
            max_coord = 2 ** z - 1
            if not (0 <= x <= max_coord and 0 <= y <= max_coord):
                return False
        return True

    @staticmethod
    def parent_tile(x: int, y: int, z: int, levels: int = 1) -> Optional[TileCoordinate]:
        parent_z = z - levels
        if parent_z < 0:
            return None
        scale = 2 ** levels
        return TileCoordinate(x=x // scale, y=y // scale, z=parent_z)

    @staticmethod
    def child_tiles(x: int, y: int, z: int) -> List[TileCoordinate]:
        """The four tiles at z+1 covering this tile"""
        return [
            TileCoordinate(x=x * 2, y=y * 2, z=z + 1),
            TileCoordinate(x=x * 2 + 1, y=y * 2, z=z + 1),
            TileCoordinate(x=x * 2, y=y * 2 + 1, z=z + 1),
            TileCoordinate(x=x * 2 + 1, y=y * 2 + 1, z=z + 1)
        ]

    @staticmethod
    def get_subtiles(x: int, y: int, z: int, provider: Optional[TileProvider] = None) -> List[TileCoordinate]:
        """Child tiles that are valid, optionally for a provider"""
        return [tile for tile in TileCalculator.child_tiles(x, y, z)
                if TileCalculator.is_valid_tile(tile.x, tile.y, tile.z, provider)]

    @staticmethod
    def adjacent_tiles(x: int, y: int, z: int, include_corners: bool = False,
                       provider: Optional[TileProvider] = None) -> List[TileCoordinate]:
        """Neighbouring tiles for preloading; no wrap across the antimeridian"""
        offsets = [(1, 0), (-1, 0), (0, 1), (0, -1)]  # right, left, bottom, top
        if include_corners:
            offsets += [(1, 1), (1, -1), (-1, 1), (-1, -1)]

        adjacent = [TileCoordinate(x=x + dx, y=y + dy, z=z) for dx, dy in offsets]
        return [tile for tile in adjacent
                if TileCalculator.is_valid_tile(tile.x, tile.y, tile.z, provider)]

    @staticmethod
    def ancestor_chain(x: int, y: int, z: int) -> List[TileCoordinate]:
        """Tiles from zoom 0 down to (and including) x/y/z"""
        chain = []
        current_x, current_y = x, y
        for current_z in range(z, -1, -1):
            chain.append(TileCoordinate(x=current_x, y=current_y, z=current_z))
            current_x //= 2
            current_y //= 2
        chain.reverse()
        return chain

    @staticmethod
    def format_coordinate(value: float) -> str:
        return f"{value:.6f}"

