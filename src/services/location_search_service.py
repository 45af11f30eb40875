import logging
import math
from typing import Any, Dict, Optional

import requests

from models.tile_coordinate import GeoPoint, TileCoordinate
from utils.tile_calculator import TileCalculator
from exceptions.tile_viewer_exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

NOMINATIM_SEARCH_URL = 'https://nominatim.openstreetmap.org/search'
SEARCH_ZOOM = 12

NO_RESULTS_MESSAGE = 'No results found. Try a different search term.'
SEARCH_FAILED_MESSAGE = 'An error occurred while searching. Please try again.'


class LocationSearchService:
    """Resolves a free-text place name to a point with Nominatim.

    Only the best match is used. The result also carries the tile that
    contains the point at the zoom the map jumps to.
    """

    def __init__(self, search_url: str = NOMINATIM_SEARCH_URL, timeout: float = 5.0,
                 user_agent: str = 'TileViewer/1.0', language: str = 'en', zoom: int = SEARCH_ZOOM):
        self.search_url = search_url
        self.timeout = timeout
        self.user_agent = user_agent
        self.language = language
        self.zoom = zoom

    def create_session(self) -> requests.Session:
        return requests.Session()

    def search(self, query: Optional[str]) -> Optional[Dict[str, Any]]:
        """Best match for ``query`` or ``None`` when nothing matched"""
        query = (query or '').strip()
        if not query:
            raise ValidationError('Search query must not be empty')

        params = {'format': 'json', 'q': query, 'limit': 1}
        headers = {'Accept-Language': self.language, 'User-Agent': self.user_agent}

        session = self.create_session()
        try:
            response = session.get(self.search_url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Location search failed for '%s': %s", query, e)
            raise UpstreamError(f"Search request failed: {e}")
        finally:
            session.close()

        if not isinstance(results, list) or not results:
            logger.info("No search results for '%s'", query)
            return None

        point = self._to_point(results[0])
        x, y = TileCalculator.deg2num(point.lat, point.lon, self.zoom)
        return {
            'query': query,
            'lat': point.lat,
            'lon': point.lon,
            'name': results[0].get('display_name'),
            'zoom': self.zoom,
            'tile': TileCoordinate(x=x, y=y, z=self.zoom).to_dict()
        }

    @staticmethod
    def _to_point(result: Any) -> GeoPoint:
        # Nominatim sends coordinates as strings
        try:
            lat, lon = float(result['lat']), float(result['lon'])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Unexpected search result: {e}")
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise UpstreamError("Search result has non-finite coordinates")
        return GeoPoint(lat=lat, lon=lon)
