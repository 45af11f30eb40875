import logging
from typing import Dict, Optional, Tuple
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from interfaces.tile_viewer import ITileFetcher
from services.provider_registry import ProviderRegistry
from utils.tile_calculator import TileCalculator
from exceptions.tile_viewer_exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

TILE_CACHE_CONTROL = 'public, max-age=86400, stale-while-revalidate=3600'


class TileProxyService(ITileFetcher):
    """Fetches tiles from an upstream provider on behalf of the browser"""

    def __init__(self, registry: ProviderRegistry, upstream_provider: str = 'osm',
                 timeout: float = 5.0, retry_attempts: int = 2,
                 user_agent: str = 'TileViewer/1.0'):
        if upstream_provider not in registry:
            raise ValidationError(f"Unknown upstream provider: {upstream_provider}")
        self.registry = registry
        self.upstream_provider = upstream_provider
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.user_agent = user_agent
        self._session: Optional[requests.Session] = None

    def create_session(self) -> requests.Session:
        """Create pooled session with retries for upstream fetches"""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.retry_attempts,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=20,
            pool_maxsize=20
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self.create_session()
        return self._session

    def fetch_tile(self, zoom: int, x: int, y: int, provider_id: Optional[str] = None) -> Tuple[bytes, str]:
        """Fetch one tile image.

        Coordinates are checked against the quad-tree only, so upscaled zoom
        levels are forwarded as requested.
        """
        if not TileCalculator.is_valid_tile(x, y, zoom):
            raise ValidationError('Invalid tile coordinates')

        provider_id = provider_id or self.upstream_provider
        provider = self.registry.get(provider_id)
        if provider is None:
            raise ValidationError(f"Unknown provider: {provider_id}")

        tile_url = provider.get_tile_url(zoom, x, y)
        headers: Dict[str, str] = {'User-Agent': self.user_agent}
        headers.update(provider.get_headers())

        try:
            response = self.session.get(tile_url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Tile fetch error for %s: %s", tile_url, e)
            raise UpstreamError(f"Failed to fetch tile {zoom}/{x}/{y}: {e}")

        content = response.content
        if not content:
            raise UpstreamError(f"Empty content received for tile {zoom}/{x}/{y} from {tile_url}")

        content_type = response.headers.get('Content-Type', 'image/png').split(';')[0].strip()
        return content, content_type or 'image/png'

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None
