#!/usr/bin/env python3
"""
Basemap Tile Server

Runs the overzooming tile server for one MBTiles archive under uvicorn.
Settings come from the environment (``TILE_ARCHIVE``, ``HOST``, ``PORT``)
layered over ``BASEMAP_TILES_*`` configuration.
"""

import os
from dataclasses import replace

import structlog
import uvicorn

from basemap_tiles.server import create_app
from basemap_tiles.utils import Config, configure_logging

config = Config.load(os.getenv("BASEMAP_TILES_CONFIG") or None)
config = replace(
    config,
    server=replace(
        config.server,
        host=os.getenv("HOST", config.server.host),
        port=int(os.getenv("PORT", str(config.server.port)))
    )
)

configure_logging(config.logging.level, json_logs=True)
logger = structlog.get_logger()

TILE_ARCHIVE = os.getenv("TILE_ARCHIVE", "/app/tiles/basemap.mbtiles")

app = create_app(TILE_ARCHIVE, config)

if __name__ == "__main__":
    logger.info("Launching tile server", archive=TILE_ARCHIVE, port=config.server.port)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        reload=False,
        log_level="info",
        access_log=True
    )
