#!/usr/bin/env python3
"""
HTTP Server for the Tile Viewer

Serves the interactive map page, the settings API, the tile proxy and the
tile inspection endpoints.

Usage:
    python src/web_server.py [--config config.json] [--port 8080]

URL:
    http://localhost:8080 (Map page)
"""

import argparse
import logging
import os
import sys

# Add src to path for imports
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, current_dir)

from services.config_service import ConfigService, DEFAULT_CONFIG_PATH
from services.http_server_service import HTTPServerService
from exceptions.tile_viewer_exceptions import TileViewerException
from infrastructure.logging import LoggingManager


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Map tile viewer server")
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help="Path to config.json")
    parser.add_argument('--host', help="Interface to bind (overrides config)")
    parser.add_argument('--port', type=int, help="Port to listen on (overrides config)")
    return parser.parse_args(argv)


def main(argv=None):
    """Load configuration, set up logging and run the server until interrupted"""
    # Relative paths in config.json are resolved from the project root
    project_root = os.path.dirname(current_dir)
    os.chdir(project_root)

    args = parse_args(argv)
    try:
        config = ConfigService().load_config(args.config)
        LoggingManager.setup_logging(config)
        if args.host is not None:
            config['server']['host'] = args.host
        if args.port is not None:
            config['server']['port'] = args.port

        server_service = HTTPServerService(config)
        server_service.start()

    except KeyboardInterrupt:
        print("\nServer stopped by user.")
    except TileViewerException as e:
        print(f"\nError: {e}")
        sys.exit(1)
    except OSError as e:
        logging.getLogger(__name__).error("Server error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
