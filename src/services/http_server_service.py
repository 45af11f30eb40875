import http.server
import socketserver
import os
import json
import logging
import re
import socket
import threading
import urllib.parse
from typing import Dict, Any, Optional, Tuple

from services.config_service import ConfigService
from services.location_search_service import (
    LocationSearchService, NOMINATIM_SEARCH_URL, NO_RESULTS_MESSAGE, SEARCH_FAILED_MESSAGE
)
from services.provider_registry import ProviderRegistry
from services.settings_service import SettingsService
from services.tile_info_service import TileInfoService
from services.tile_proxy_service import TileProxyService, TILE_CACHE_CONTROL
from utils.tile_size_cache import TileSizeCache, DEFAULT_MAX_ENTRIES
from exceptions.tile_viewer_exceptions import (
    TileViewerException, UpstreamError, ValidationError
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'templates')

TILE_PATH_RE = re.compile(r'^/(?:api/)?tiles/(-?\d+)/(-?\d+)/(-?\d+)(?:\.(?:png|jpg|jpeg))?$')
TILE_INSPECT_RE = re.compile(r'^/api/(tile-info|tile-pyramid|tile-compare)/(-?\d+)/(-?\d+)/(-?\d+)$')
SETTINGS_PATHS = ('/api/settings', '/settings')

CONNECTION_NOISE = ["Connection aborted", "ConnectionResetError", "Broken pipe"]


class ThreadingTileServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class HTTPServerService:
    """HTTP server for the tile viewer: map page, settings API, tile proxy and tile inspection"""

    def __init__(self, config: Dict[str, Any], registry: Optional[ProviderRegistry] = None,
                 settings_service: Optional[SettingsService] = None,
                 tile_proxy: Optional[TileProxyService] = None,
                 size_cache: Optional[TileSizeCache] = None,
                 search_service: Optional[LocationSearchService] = None):
        self.config = config
        server_config = config.get('server', {})
        self.host = server_config.get('host', '')
        self.port = server_config.get('port', 8080)

        config_service = ConfigService()
        self.registry = registry or config_service.get_provider_registry(config)

        cache_config = config.get('tile_size_cache', {})
        self.size_cache = size_cache or TileSizeCache(
            ttl=cache_config.get('ttl_days', 30) * 24 * 60 * 60,
            timeout=cache_config.get('timeout', 5),
            max_entries=cache_config.get('max_entries', DEFAULT_MAX_ENTRIES)
        )
        self.clean_interval = cache_config.get('clean_interval', 3600)

        self.settings_service = settings_service or SettingsService(
            config['database']['path'],
            defaults=config_service.get_default_settings(config),
            registry=self.registry
        )

        proxy_config = config.get('tile_proxy', {})
        self.tile_proxy = tile_proxy or TileProxyService(
            self.registry,
            upstream_provider=proxy_config.get('upstream_provider', 'osm'),
            timeout=proxy_config.get('timeout', 5),
            retry_attempts=proxy_config.get('retry_attempts', 2),
            user_agent=proxy_config.get('user_agent', 'TileViewer/1.0')
        )

        search_config = config.get('search', {})
        self.search_service = search_service or LocationSearchService(
            search_url=search_config.get('url', NOMINATIM_SEARCH_URL),
            timeout=search_config.get('timeout', 5),
            user_agent=search_config.get('user_agent', proxy_config.get('user_agent', 'TileViewer/1.0')),
            language=search_config.get('language', 'en')
        )

        self.tile_info = TileInfoService(
            self.registry, self.size_cache,
            default_provider=self.tile_proxy.upstream_provider
        )
        self.httpd: Optional[ThreadingTileServer] = None
        self._clean_timer: Optional[threading.Timer] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    def create_request_handler(self):
        """Create the request handler class bound to this service"""
        server_service = self  # Reference to service instance

        class TileViewerRequestHandler(http.server.BaseHTTPRequestHandler):
            timeout = 60

            def log_error(self, format, *args):
                # Ignore client disconnects to reduce log noise
                if any(err in str(args) for err in CONNECTION_NOISE):
                    return
                logger.error("%s - %s", self.address_string(), format % args)

            def log_message(self, format, *args):
                logger.info("%s - %s", self.address_string(), format % args)

            def handle_one_request(self):
                try:
                    super().handle_one_request()
                except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError, socket.timeout):
                    pass  # client went away

            def end_headers(self):
                self.send_header('Access-Control-Allow-Origin', '*')
                self.send_header('Access-Control-Allow-Methods', 'GET, POST, OPTIONS')
                self.send_header('Access-Control-Allow-Headers', 'Content-Type, Accept')
                super().end_headers()

            def do_OPTIONS(self):
                self.send_response(204)
                self.end_headers()

            def do_GET(self):
                path, query = self._split_path()

                if path in ('/', '/index.html'):
                    self._serve_index()
                elif path == '/api/providers':
                    self._send_json_response([p.to_dict() for p in server_service.registry])
                elif path == '/api/search':
                    self._handle_search(query)
                elif path in SETTINGS_PATHS:
                    self._handle_get_settings()
                elif path.startswith(('/api/tiles/', '/tiles/')):
                    self._handle_tile(path, query)
                elif path.startswith('/osm/'):
                    self._handle_osm_tile(path)
                elif TILE_INSPECT_RE.match(path):
                    self._handle_tile_inspection(path, query)
                elif path == '/favicon.ico':
                    self.send_response(204)
                    self.end_headers()
                else:
                    self._send_error_json(404, 'Not found')

            def do_POST(self):
                path, _ = self._split_path()

                if path in SETTINGS_PATHS:
                    self._handle_post_settings()
                elif path == '/api/cache/clean':
                    removed = server_service.size_cache.clean_expired_entries()
                    self._send_json_response({'removed': removed, 'remaining': len(server_service.size_cache)})
                else:
                    self._send_error_json(404, 'Not found')

            def _split_path(self) -> Tuple[str, Dict[str, list]]:
                parsed = urllib.parse.urlsplit(self.path)
                return parsed.path, urllib.parse.parse_qs(parsed.query)

            def _serve_index(self):
                """Serve the map page"""
                file_path = os.path.join(TEMPLATES_DIR, 'index.html')
                if not os.path.exists(file_path):
                    self._send_error_json(404, 'Index file not found')
                    return
                with open(file_path, 'rb') as f:
                    content = f.read()
                self.send_response(200)
                self.send_header('Content-Type', 'text/html; charset=utf-8')
                self.send_header('Content-Length', str(len(content)))
                self.send_header('Cache-Control', 'no-cache')
                self.end_headers()
                self.wfile.write(content)

            def _handle_get_settings(self):
                try:
                    settings = server_service.settings_service.get_settings()
                except Exception as e:
                    logger.error("Error fetching settings: %s", e)
                    self._send_error_json(500, 'Failed to fetch settings')
                    return
                self._send_json_response(settings.to_dict())

            def _handle_post_settings(self):
                content_type = self.headers.get('Content-Type', '')
                if 'application/json' not in content_type:
                    self._send_error_json(400, 'Content-Type must be application/json')
                    return

                try:
                    length = int(self.headers.get('Content-Length', 0))
                except ValueError:
                    self._send_error_json(400, 'Invalid Content-Length')
                    return
                if length < 0:
                    self._send_error_json(400, 'Invalid Content-Length')
                    return

                try:
                    body = json.loads(self.rfile.read(length).decode('utf-8'))
                except (ValueError, UnicodeDecodeError) as e:
                    logger.warning("Failed to parse request body: %s", e)
                    self._send_error_json(400, 'Invalid JSON in request body')
                    return

                try:
                    settings = server_service.settings_service.update_from_payload(body)
                except ValidationError as e:
                    self._send_error_json(400, str(e))
                    return
                except Exception as e:
                    logger.error("Error updating settings: %s", e)
                    self._send_error_json(500, 'Failed to update settings')
                    return
                self._send_json_response(settings.to_dict())

            def _handle_search(self, query: Dict[str, list]):
                try:
                    result = server_service.search_service.search(query.get('q', [''])[0])
                except ValidationError as e:
                    self._send_error_json(400, str(e))
                    return
                except UpstreamError:
                    self._send_error_json(502, SEARCH_FAILED_MESSAGE)
                    return
                if result is None:
                    self._send_error_json(404, NO_RESULTS_MESSAGE)
                    return
                self._send_json_response(result)

            def _handle_tile(self, path: str, query: Dict[str, list]):
                match = TILE_PATH_RE.match(path)
                if not match:
                    self._send_error_json(400, 'Invalid tile coordinates')
                    return
                z, x, y = (int(v) for v in match.groups())
                provider_id = query.get('provider', [None])[0]
                self._proxy_tile(z, x, y, provider_id)

            def _handle_osm_tile(self, path: str):
                """Legacy /osm/{z}/{x}/{y}.png route, always served from OpenStreetMap"""
                parts = [p for p in path.split('/') if p][1:]
                if len(parts) < 3 or not all(parts[:3]):
                    self._send_error_json(400, 'Missing parameters')
                    return
                z, x, y_with_ext = parts[:3]
                y = y_with_ext.split('.', 1)[0]
                try:
                    z, x, y = int(z), int(x), int(y)
                except ValueError:
                    self._send_error_json(400, 'Invalid tile coordinates')
                    return
                self._proxy_tile(z, x, y, 'osm' if 'osm' in server_service.registry else None)

            def _proxy_tile(self, z: int, x: int, y: int, provider_id: Optional[str]):
                try:
                    content, content_type = server_service.tile_proxy.fetch_tile(z, x, y, provider_id)
                except ValidationError as e:
                    self._send_error_json(400, str(e))
                    return
                except UpstreamError:
                    self._send_error_json(500, 'Failed to fetch tile')
                    return

                self.send_response(200)
                self.send_header('Content-Type', content_type)
                self.send_header('Content-Length', str(len(content)))
                self.send_header('Cache-Control', TILE_CACHE_CONTROL)
                self.end_headers()
                self.wfile.write(content)

            def _handle_tile_inspection(self, path: str, query: Dict[str, list]):
                kind, z, x, y = TILE_INSPECT_RE.match(path).groups()
                z, x, y = int(z), int(x), int(y)
                provider_id = query.get('provider', [None])[0]
                try:
                    if kind == 'tile-info':
                        include_size = query.get('size', ['0'])[0] in ('1', 'true', 'yes')
                        data = server_service.tile_info.tile_info(z, x, y, provider_id, include_size)
                    elif kind == 'tile-pyramid':
                        data = server_service.tile_info.tile_pyramid(z, x, y, provider_id)
                    else:
                        data = {'tile': {'z': z, 'x': x, 'y': y},
                                'providers': server_service.tile_info.compare_providers(z, x, y)}
                except ValidationError as e:
                    self._send_error_json(400, str(e))
                    return
                except TileViewerException as e:
                    logger.error("Tile inspection failed for %s/%s/%s: %s", z, x, y, e)
                    self._send_error_json(500, 'Failed to inspect tile')
                    return
                self._send_json_response(data)

            def _send_error_json(self, status: int, message: str):
                self._send_json_response({'error': message}, status)

            def _send_json_response(self, data, status: int = 200):
                """Send JSON response with proper headers"""
                response_bytes = json.dumps(data).encode('utf-8')

                self.send_response(status)
                self.send_header('Content-Type', 'application/json')
                self.send_header('Content-Length', str(len(response_bytes)))
                self.send_header('Cache-Control', 'no-cache')
                self.end_headers()
                self.wfile.write(response_bytes)

        return TileViewerRequestHandler

    @property
    def server_address(self) -> Tuple[str, int]:
        if self.httpd is None:
            return self.host, self.port
        return self.httpd.server_address[:2]

    def _bind(self) -> ThreadingTileServer:
        self._stopped.clear()
        self.httpd = ThreadingTileServer((self.host, self.port), self.create_request_handler())
        return self.httpd

    def _schedule_cache_clean(self):
        """Periodically drop expired tile size entries"""
        if not self.clean_interval or self._stopped.is_set():
            return

        def run():
            try:
                self.size_cache.clean_expired_entries()
            finally:
                if not self._stopped.is_set():
                    self._schedule_cache_clean()

        self._clean_timer = threading.Timer(self.clean_interval, run)
        self._clean_timer.daemon = True
        self._clean_timer.start()

    def start(self):
        """Start the server and block until interrupted"""
        try:
            self._bind()
        except OSError as e:
            logger.error("Cannot bind %s:%s: %s", self.host or '0.0.0.0', self.port, e)
            raise

        host, port = self.server_address
        logger.info("Server started at http://%s:%s", host or 'localhost', port)
        logger.info("Providers: %s", ', '.join(self.registry.ids()))
        self._schedule_cache_clean()

        try:
            self.httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Server stopped by user")
        finally:
            self._shutdown_resources()

    def start_background(self) -> threading.Thread:
        """Start serving on a daemon thread and return it"""
        self._bind()
        self._schedule_cache_clean()
        self._serve_thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)
        self._serve_thread.start()
        return self._serve_thread

    def stop(self):
        """Stop the HTTP server"""
        if self.httpd is not None:
            self.httpd.shutdown()
        self._shutdown_resources()
        if self._serve_thread is not None:
            self._serve_thread.join(timeout=5)
            self._serve_thread = None
        logger.info("Server stopped")

    def _shutdown_resources(self):
        self._stopped.set()
        if self._clean_timer is not None:
            self._clean_timer.cancel()
            self._clean_timer = None
        if self.httpd is not None:
            self.httpd.server_close()
            self.httpd = None
        self.tile_proxy.close()
