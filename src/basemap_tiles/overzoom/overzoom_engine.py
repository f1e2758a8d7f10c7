"""
Overzoom Engine

Synthesizes tiles deeper than an archive's maximum stored zoom by clipping
the covering ancestor tile to the requested quadrant and rescaling the
surviving geometry into the output tile's coordinate space.

Each request runs through a small state machine
(REQUESTED -> LOCATING -> FETCHED -> DECODED) and ends in exactly one of the
terminal states PRODUCED, EMPTY or FAILED. The batch entry point ``overzoom``
drives the orchestrator over whole zoom levels on a thread pool and writes
the results into a destination archive.
"""

import concurrent.futures
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import structlog

from ..addressing import (
    MAX_ZOOM,
    TileAddress,
    ancestor_of,
    clip_rect,
    descendants_at_zoom,
    quadrant,
    tiles_in_bounds,
)
from ..archive import TileArchive
from ..clipping import GeometryClipper
from ..codec import Layer, VectorTile, VectorTileCodec, codec_for
from ..exceptions import OutOfRangeError, PayloadError, TileError
from ..monitoring import MetricsCollector
from ..utils.config import OverzoomConfig

# In-flight synthesis requests per worker thread during a batch run
WINDOW_PER_WORKER = 4


class OverzoomState(Enum):
    """Lifecycle of a single overzoom request."""

    REQUESTED = "requested"
    LOCATING = "locating"
    FETCHED = "fetched"
    DECODED = "decoded"
    PRODUCED = "produced"
    EMPTY = "empty"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OverzoomState.PRODUCED, OverzoomState.EMPTY, OverzoomState.FAILED)


@dataclass
class OverzoomResult:
    """Outcome of one overzoom request."""

    target: TileAddress
    state: OverzoomState = OverzoomState.REQUESTED
    data: Optional[bytes] = None
    error: Optional[Exception] = None
    ancestor: Optional[TileAddress] = None

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "kind", "internal_error")


@dataclass
class TileFailure:
    """A tile that ended FAILED during a batch run."""

    address: TileAddress
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"tile": self.address.tile_id, "kind": self.kind, "message": self.message}


@dataclass
class OverzoomSummary:
    """Aggregated counts of a batch overzoom run."""

    target_zoom_levels: List[int] = field(default_factory=list)
    tiles_produced: int = 0
    tiles_empty: int = 0
    tiles_failed: int = 0
    tiles_copied: int = 0
    failures: List[TileFailure] = field(default_factory=list)
    zoom_results: Dict[int, Dict[str, int]] = field(default_factory=dict)
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.tiles_failed == 0

    def record(self, result: OverzoomResult) -> None:
        counts = self.zoom_results.setdefault(
            result.target.zoom, {"produced": 0, "empty": 0, "failed": 0}
        )
        if result.state is OverzoomState.PRODUCED:
            self.tiles_produced += 1
            counts["produced"] += 1
        elif result.state is OverzoomState.EMPTY:
            self.tiles_empty += 1
            counts["empty"] += 1
        elif result.state is OverzoomState.FAILED:
            self.tiles_failed += 1
            counts["failed"] += 1
            self.failures.append(TileFailure(
                address=result.target,
                kind=result.error_kind or "unknown",
                message=str(result.error)
            ))
        else:
            raise ValueError(f"Result for {result.target.tile_id} is not terminal: {result.state}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "target_zoom_levels": list(self.target_zoom_levels),
            "tiles_produced": self.tiles_produced,
            "tiles_empty": self.tiles_empty,
            "tiles_failed": self.tiles_failed,
            "tiles_copied": self.tiles_copied,
            "failures": [failure.to_dict() for failure in self.failures],
            "zoom_results": {str(z): dict(c) for z, c in sorted(self.zoom_results.items())},
            "processing_time": self.processing_time,
        }


class OverzoomOrchestrator:
    """
    Synthesizes single tiles from the ancestors stored in a source archive.

    The orchestrator holds no mutable state apart from an optional cache of
    decoded ancestors, so one instance can serve many worker threads.
    """

    def __init__(
        self,
        source: TileArchive,
        source_max_zoom: int,
        codec: VectorTileCodec,
        target_extent: Optional[int] = None,
        buffer: int = 0,
        metrics: Optional[MetricsCollector] = None,
        cache_size: int = 64
    ):
        """
        Initialize the orchestrator.

        Args:
            source: Archive holding the ancestor tiles
            source_max_zoom: Deepest zoom stored in ``source``
            codec: Codec matching the source archive's compression
            target_extent: Extent of synthesized layers (defaults to each layer's own extent)
            buffer: Clip margin around the output tile, in output tile units
            metrics: Optional metrics collector
            cache_size: Number of decoded ancestors kept in memory (0 disables)
        """
        if source_max_zoom < 0:
            raise OutOfRangeError(f"Source max zoom must be non-negative, got {source_max_zoom}")
        if target_extent is not None and target_extent <= 0:
            raise ValueError(f"Target extent must be positive, got {target_extent}")
        if buffer < 0:
            raise ValueError(f"Buffer must be non-negative, got {buffer}")

        self.source = source
        self.source_max_zoom = source_max_zoom
        self.codec = codec
        self.target_extent = target_extent
        self.buffer = buffer
        self.metrics = metrics
        self.cache_size = cache_size

        self.logger = structlog.get_logger(component="OverzoomOrchestrator")
        self._cache: "OrderedDict[TileAddress, VectorTile]" = OrderedDict()
        self._cache_lock = threading.Lock()

    def synthesize(self, target: TileAddress) -> OverzoomResult:
        """
        Produce the tile at ``target`` from its stored ancestor.

        Tile errors (addressing, precision, payload, archive) end the request
        in the FAILED state instead of propagating.

        Args:
            target: Requested tile, at or below the source max zoom

        Returns:
            Terminal result carrying the encoded payload when PRODUCED
        """
        start_time = time.time()
        result = OverzoomResult(target=target)
        try:
            self._advance(result)
        except TileError as e:
            result.state = OverzoomState.FAILED
            result.data = None
            result.error = e
            self.logger.warning(
                "Tile synthesis failed",
                tile_id=target.tile_id,
                ancestor=result.ancestor.tile_id if result.ancestor else None,
                kind=e.kind,
                error=str(e)
            )

        if self.metrics:
            self.metrics.increment_counter(
                'overzoom_tiles_total', labels={'status': result.state.value}
            )
            self.metrics.record_histogram(
                'overzoom_tile_duration_seconds', time.time() - start_time
            )
            if isinstance(result.error, PayloadError):
                self.metrics.increment_counter(
                    'tile_payload_errors_total', labels={'kind': result.error.kind}
                )

        self.logger.debug("Tile synthesized", tile_id=target.tile_id, state=result.state.value)
        return result

    def _advance(self, result: OverzoomResult) -> None:
        result.state = OverzoomState.LOCATING
        ancestor, delta = ancestor_of(result.target, self.source_max_zoom)
        qx, qy = quadrant(result.target, delta)
        result.ancestor = ancestor

        tile = self._cached(ancestor)
        if tile is None:
            blob = self.source.get_tile(ancestor)
            if blob is None:
                result.state = OverzoomState.EMPTY
                return
            result.state = OverzoomState.FETCHED
            tile = self.codec.decode(blob)
            self._remember(ancestor, tile)
        result.state = OverzoomState.DECODED

        reduced = self.reduce_tile(tile, delta, qx, qy)
        if reduced.is_empty:
            result.state = OverzoomState.EMPTY
            return
        result.data = self.codec.encode(reduced)
        result.state = OverzoomState.PRODUCED

    def reduce_tile(self, tile: VectorTile, delta: int, qx: int, qy: int) -> VectorTile:
        """
        Clip every layer of ``tile`` to quadrant (qx, qy) of a 2^delta grid.

        Layer and feature order are preserved; layers without surviving
        features are left out. ``tile`` itself is not modified.
        """
        reduced = VectorTile()
        for layer in tile:
            rect = clip_rect(layer.extent, delta, qx, qy)
            extent = self.target_extent or layer.extent
            clipper = GeometryClipper(rect, extent, self.buffer)

            features = []
            for feature in layer.features:
                clipped = clipper.clip_feature(feature)
                if clipped is not None:
                    features.append(clipped)
            if features:
                reduced.layers.append(Layer(
                    name=layer.name,
                    extent=extent,
                    features=features,
                    version=layer.version
                ))
        return reduced

    def _cached(self, ancestor: TileAddress) -> Optional[VectorTile]:
        if not self.cache_size:
            return None
        with self._cache_lock:
            tile = self._cache.get(ancestor)
            if tile is not None:
                self._cache.move_to_end(ancestor)
            return tile

    def _remember(self, ancestor: TileAddress, tile: VectorTile) -> None:
        if not self.cache_size:
            return
        with self._cache_lock:
            self._cache[ancestor] = tile
            self._cache.move_to_end(ancestor)
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)


def candidate_tiles(
    stored: Sequence[TileAddress],
    zoom: int,
    tile_filter: Optional[Tuple[float, float, float, float]] = None
) -> Iterator[TileAddress]:
    """
    Tiles to synthesize at ``zoom``.

    Without a filter these are the descendants of every stored max-zoom
    tile. With a lon/lat filter, every tile intersecting the bound is a
    candidate, including those without a stored ancestor.
    """
    if tile_filter is not None:
        yield from tiles_in_bounds(tile_filter, zoom)
        return
    for tile in stored:
        yield from descendants_at_zoom(tile, zoom)


def overzoom(
    source: TileArchive,
    destination: TileArchive,
    target_zoom_levels: Iterable[int],
    tile_filter: Optional[Tuple[float, float, float, float]] = None,
    *,
    config: Optional[OverzoomConfig] = None,
    codec: Optional[VectorTileCodec] = None,
    metrics: Optional[MetricsCollector] = None
) -> OverzoomSummary:
    """
    Synthesize whole zoom levels from a source archive into a destination.

    Args:
        source: Archive populated up to its ``maxzoom`` metadata value
        destination: Archive receiving synthesized (and optionally copied) tiles
        target_zoom_levels: Zoom levels to synthesize, all deeper than ``maxzoom``
        tile_filter: Optional (west, south, east, north) bound in degrees
        config: Overzoom settings (buffer, extent, workers, compression)
        codec: Codec override; defaults to the configured or declared compression
        metrics: Optional metrics collector

    Returns:
        Summary of produced, empty and failed tiles

    Raises:
        ArchiveError: if the source declares no ``maxzoom``
        OutOfRangeError: if a target zoom is not deeper than ``maxzoom``
    """
    config = config or OverzoomConfig()
    config.validate()
    logger = structlog.get_logger(component="overzoom")
    start_time = time.time()

    metadata = source.get_metadata()
    max_zoom = metadata.require_max_zoom()
    levels = sorted(set(target_zoom_levels))
    if not levels:
        raise ValueError("No target zoom levels requested")
    for level in levels:
        if level <= max_zoom or level > MAX_ZOOM:
            raise OutOfRangeError(
                f"Target zoom {level} must be in ({max_zoom}, {MAX_ZOOM}]"
            )

    codec = codec or codec_for(config.compression or metadata.compression)
    orchestrator = OverzoomOrchestrator(
        source,
        max_zoom,
        codec,
        target_extent=config.target_extent,
        buffer=config.buffer,
        metrics=metrics
    )
    summary = OverzoomSummary(target_zoom_levels=levels)

    logger.info(
        "Starting overzoom",
        source_max_zoom=max_zoom,
        target_zoom_levels=levels,
        compression=codec.compression.value,
        bounds=tile_filter
    )

    if config.copy_source_tiles:
        for address, data in source.iter_tiles():
            destination.put_tile(address, data)
            summary.tiles_copied += 1
        logger.info("Copied source tiles", tiles=summary.tiles_copied)

    stored = list(source.iter_addresses(max_zoom))
    window = config.max_workers * WINDOW_PER_WORKER
    # One pool for the whole run so reader threads (and their connections) are reused
    with concurrent.futures.ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        for zoom in levels:
            zoom_start = time.time()
            submitted = _overzoom_level(
                executor,
                orchestrator,
                destination,
                candidate_tiles(stored, zoom, tile_filter),
                summary,
                window,
                logger
            )
            if metrics:
                metrics.set_gauge('overzoom_batch_tiles', submitted, {'zoom_level': str(zoom)})

            counts = summary.zoom_results.get(zoom, {"produced": 0, "empty": 0, "failed": 0})
            logger.info(
                f"Completed zoom level {zoom}",
                candidates=submitted,
                processing_time=time.time() - zoom_start,
                **counts
            )

    rows = dict(metadata.rows)
    rows["maxzoom"] = str(levels[-1])
    if config.copy_source_tiles:
        min_zoom = metadata.min_zoom
        rows["minzoom"] = str(min_zoom if min_zoom is not None else max_zoom)
    else:
        rows["minzoom"] = str(levels[0])
    rows["compression"] = codec.compression.value
    destination.put_metadata(rows)
    destination.flush()

    summary.processing_time = time.time() - start_time
    if metrics:
        metrics.record_histogram('overzoom_batch_duration_seconds', summary.processing_time)
        metrics.push_to_prometheus_gateway()

    logger.info(
        "Overzoom completed",
        tiles_produced=summary.tiles_produced,
        tiles_empty=summary.tiles_empty,
        tiles_failed=summary.tiles_failed,
        processing_time=summary.processing_time
    )
    return summary


def _overzoom_level(
    executor: concurrent.futures.Executor,
    orchestrator: OverzoomOrchestrator,
    destination: TileArchive,
    candidates: Iterable[TileAddress],
    summary: OverzoomSummary,
    window: int,
    logger
) -> int:
    """
    Synthesize one level, writing from the calling thread.

    At most ``window`` requests are in flight; each payload is released as
    soon as it has been written. Returns the number of candidates.
    """
    future_to_tile: Dict[concurrent.futures.Future, TileAddress] = {}
    submitted = 0

    for address in candidates:
        if len(future_to_tile) >= window:
            done, _ = concurrent.futures.wait(
                future_to_tile, return_when=concurrent.futures.FIRST_COMPLETED
            )
            for future in done:
                _store_result(future, future_to_tile.pop(future), destination, summary, logger)
        future_to_tile[executor.submit(orchestrator.synthesize, address)] = address
        submitted += 1

    while future_to_tile:
        done, _ = concurrent.futures.wait(
            future_to_tile, return_when=concurrent.futures.FIRST_COMPLETED
        )
        for future in done:
            _store_result(future, future_to_tile.pop(future), destination, summary, logger)
    return submitted


def _store_result(
    future: concurrent.futures.Future,
    address: TileAddress,
    destination: TileArchive,
    summary: OverzoomSummary,
    logger
) -> None:
    try:
        result = future.result()
    except Exception as e:
        # synthesize only catches TileError; anything else still ends this tile only
        result = OverzoomResult(target=address, state=OverzoomState.FAILED, error=e)

    if result.state is OverzoomState.PRODUCED:
        destination.put_tile(result.target, result.data)
    elif result.state is OverzoomState.FAILED:
        logger.error(
            "Tile failed",
            tile_id=result.target.tile_id,
            kind=result.error_kind,
            error=str(result.error)
        )
    summary.record(result)
