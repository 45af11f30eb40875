from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class HighZoomConfig:
    """Rendering hints handed to the map page for zoom levels above native"""
    quality: str = 'high'  # 'low', 'medium' or 'high'
    progressive_loading: bool = True
    scale_method: str = 'auto'  # 'nearest', 'bilinear', 'pixelated' or 'auto'
    preload_adjacent: bool = True
    fade_animation: bool = True
    retry_on_error: bool = True


@dataclass(frozen=True)
class TileProvider:
    """Data model for a public tile source"""
    id: str
    name: str
    url_template: str
    attribution: str
    min_zoom: int = 0
    max_zoom: int = 19
    max_native_zoom: int = 19
    high_zoom_config: Optional[HighZoomConfig] = None
    headers: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def get_tile_url(self, zoom: int, x: int, y: int) -> str:
        """Generate tile URL for given coordinates"""
        return self.url_template.format(z=zoom, x=x, y=y)

    def get_headers(self) -> Dict[str, str]:
        """Get request headers"""
        return dict(self.headers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'url': self.url_template,
            'attribution': self.attribution,
            'min_zoom': self.min_zoom,
            'max_zoom': self.max_zoom,
            'max_native_zoom': self.max_native_zoom,
            'high_zoom_config': asdict(self.high_zoom_config) if self.high_zoom_config else None
        }
