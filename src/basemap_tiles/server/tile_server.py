"""
Basemap Tile Server

FastAPI application serving the tiles of one MBTiles archive. Tiles up to
the archive's ``maxzoom`` are served as stored; deeper tiles, up to the
configured ``max_overzoom``, are synthesized on request from their stored
ancestor.
"""

from pathlib import Path
from typing import Optional, Union

import mapbox_vector_tile
import structlog
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..addressing import TileAddress
from ..archive import MBTilesArchive
from ..codec import Compression, codec_for
from ..exceptions import OutOfRangeError, PayloadError, TileError
from ..monitoring import MetricsCollector
from ..overzoom import OverzoomOrchestrator, OverzoomState
from ..utils.config import Config

TILE_FORMATS = ("pbf", "mvt", "json")

_CONTENT_ENCODING = {
    Compression.GZIP: "gzip",
    Compression.ZLIB: "deflate",
}

logger = structlog.get_logger(component="TileServer")


def create_app(
    archive_path: Union[str, Path],
    config: Optional[Config] = None,
    metrics: Optional[MetricsCollector] = None
) -> FastAPI:
    """
    Build the tile server application for one archive.

    Args:
        archive_path: MBTiles archive to serve
        config: Server, overzoom and metrics settings
        metrics: Collector override (one is built from ``config`` otherwise)

    Returns:
        Configured FastAPI application
    """
    config = config or Config()
    archive = MBTilesArchive(archive_path, mode="r", row_origin=config.overzoom.row_origin)
    metadata = archive.get_metadata()
    max_zoom = metadata.max_zoom
    max_overzoom = config.server.max_overzoom
    codec = codec_for(config.overzoom.compression or metadata.compression)

    if metrics is None:
        metrics = MetricsCollector(
            enable_prometheus=config.metrics.enable_prometheus,
            prometheus_gateway=config.metrics.pushgateway,
            job_name=config.metrics.job_name
        )

    orchestrator = None
    if max_zoom is not None:
        orchestrator = OverzoomOrchestrator(
            archive,
            max_zoom,
            codec,
            target_extent=config.overzoom.target_extent,
            buffer=config.overzoom.buffer,
            metrics=metrics
        )

    app = FastAPI(
        title="Basemap Tile Server",
        description="Vector tile server with on-the-fly overzoom",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.archive = archive
    app.state.metrics = metrics

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "Starting Basemap Tile Server",
            archive=str(archive_path),
            max_zoom=max_zoom,
            max_overzoom=max_overzoom
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down Basemap Tile Server")
        archive.close()

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "basemap-tile-server",
            "version": __version__,
            "archive": str(archive_path),
            "max_zoom": max_zoom,
            "max_overzoom": max_overzoom
        }

    @app.get("/metadata")
    def get_metadata():
        """Archive metadata rows plus the parsed zoom range."""
        return {
            "rows": metadata.rows,
            "min_zoom": metadata.min_zoom,
            "max_zoom": max_zoom,
            "max_overzoom": max_overzoom,
            "compression": codec.compression.value
        }

    @app.get("/metrics")
    def get_metrics():
        return Response(content=metrics.export_prometheus(), media_type="text/plain; version=0.0.4")

    @app.get("/tiles/{z}/{x}/{y}.{fmt}")
    def get_tile(z: int, x: int, y: int, fmt: str):
        """
        Serve a stored or synthesized tile.

        Args:
            z: Zoom level
            x: Tile column
            y: Tile row, counted from the top
            fmt: pbf, mvt or json
        """
        if fmt not in TILE_FORMATS:
            raise HTTPException(status_code=400, detail="Unsupported format")
        if z > max_overzoom:
            raise HTTPException(status_code=400, detail=f"Zoom level above {max_overzoom}")
        try:
            address = TileAddress(z, x, y)
        except OutOfRangeError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if max_zoom is None or z <= max_zoom:
            source = "stored"
            data = archive.get_tile(address)
            if data is None:
                metrics.increment_counter(
                    'tile_server_requests_total', labels={'source': source, 'status': 'not_found'}
                )
                raise HTTPException(status_code=404, detail="Tile not found")
        else:
            source = "overzoom"
            result = orchestrator.synthesize(address)
            if result.state is OverzoomState.EMPTY:
                metrics.increment_counter(
                    'tile_server_requests_total', labels={'source': source, 'status': 'empty'}
                )
                return Response(status_code=204)
            if result.state is OverzoomState.FAILED:
                metrics.increment_counter(
                    'tile_server_requests_total', labels={'source': source, 'status': 'failed'}
                )
                status = 500 if isinstance(result.error, PayloadError) else 400
                raise HTTPException(status_code=status, detail=f"{result.error_kind}: {result.error}")
            data = result.data

        metrics.increment_counter(
            'tile_server_requests_total', labels={'source': source, 'status': 'ok'}
        )
        logger.info("Serving tile", z=z, x=x, y=y, format=fmt, source=source)
        headers = {"Cache-Control": "public, max-age=3600"}

        if fmt == "json":
            try:
                decoded = mapbox_vector_tile.decode(codec.decompress(data))
            except TileError as e:
                raise HTTPException(status_code=500, detail=f"{e.kind}: {e}")
            return JSONResponse(content=decoded, headers=headers)

        encoding = _CONTENT_ENCODING.get(codec.compression)
        if encoding:
            headers["Content-Encoding"] = encoding
        return Response(content=data, media_type="application/x-protobuf", headers=headers)

    return app
