"""
Tile Addressing

Pure arithmetic over (zoom, column, row) tile addresses: ancestor lookup,
quadrant offsets inside an ancestor and the ancestor-local clip rectangle of
a descendant tile.

All addresses in this package use the top-left (XYZ) row origin. Archives
that store rows bottom-left (TMS, the MBTiles default) convert at their own
boundary with ``flip_row``; nothing else ever flips rows.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Sequence, Tuple

import mercantile

from ..exceptions import OutOfRangeError, PrecisionLossError

# Deepest zoom accepted anywhere in the pipeline
MAX_ZOOM = 30


class RowOrigin(Enum):
    """Row addressing convention of a stored archive."""

    TOP = "xyz"
    BOTTOM = "tms"

    @classmethod
    def parse(cls, value) -> "RowOrigin":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for origin in cls:
            if normalized in (origin.value, origin.name.lower()):
                return origin
        raise ValueError(f"Unknown row origin: {value!r} (expected 'xyz' or 'tms')")


@dataclass(frozen=True, order=True)
class TileAddress:
    """A tile in the pyramid, rows counted from the top-left corner."""

    zoom: int
    col: int
    row: int

    def __post_init__(self):
        if not 0 <= self.zoom <= MAX_ZOOM:
            raise OutOfRangeError(f"Zoom {self.zoom} outside [0, {MAX_ZOOM}]")
        size = 1 << self.zoom
        if not (0 <= self.col < size and 0 <= self.row < size):
            raise OutOfRangeError(
                f"Tile {self.col}/{self.row} outside the {size}x{size} grid of zoom {self.zoom}"
            )

    @property
    def tile_id(self) -> str:
        """Get unique tile identifier."""
        return f"{self.zoom}/{self.col}/{self.row}"

    def parent(self) -> "TileAddress":
        if self.zoom == 0:
            raise OutOfRangeError("Tile 0/0/0 has no parent")
        return TileAddress(self.zoom - 1, self.col >> 1, self.row >> 1)

    def children(self) -> Tuple["TileAddress", ...]:
        zoom = self.zoom + 1
        col, row = self.col << 1, self.row << 1
        return (
            TileAddress(zoom, col, row),
            TileAddress(zoom, col + 1, row),
            TileAddress(zoom, col, row + 1),
            TileAddress(zoom, col + 1, row + 1),
        )

    def ancestor_at(self, zoom: int) -> "TileAddress":
        if not 0 <= zoom <= self.zoom:
            raise OutOfRangeError(f"Zoom {zoom} is not an ancestor zoom of {self.tile_id}")
        delta = self.zoom - zoom
        return TileAddress(zoom, self.col >> delta, self.row >> delta)

    def is_descendant_of(self, other: "TileAddress") -> bool:
        """True when ``other`` is this tile or one of its ancestors."""
        if other.zoom > self.zoom:
            return False
        return self.ancestor_at(other.zoom) == other

    @classmethod
    def from_storage(cls, zoom: int, col: int, row: int, origin: RowOrigin) -> "TileAddress":
        """Build an address from a stored (possibly bottom-left) row."""
        if origin is RowOrigin.BOTTOM:
            row = flip_row(zoom, row)
        return cls(zoom, col, row)

    def storage_row(self, origin: RowOrigin) -> int:
        if origin is RowOrigin.BOTTOM:
            return flip_row(self.zoom, self.row)
        return self.row


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned rectangle in tile-local integer coordinates."""

    min_x: int
    min_y: int
    width: int
    height: int

    @property
    def max_x(self) -> int:
        return self.min_x + self.width

    @property
    def max_y(self) -> int:
        return self.min_y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def bounds(self) -> Tuple[int, int, int, int]:
        return self.min_x, self.min_y, self.max_x, self.max_y


def flip_row(zoom: int, row: int) -> int:
    """Convert a row between top-left and bottom-left origin."""
    return (1 << zoom) - 1 - row


def ancestor_of(target: TileAddress, source_max_zoom: int) -> Tuple[TileAddress, int]:
    """
    Locate the stored ancestor covering ``target``.

    Args:
        target: Requested tile
        source_max_zoom: Deepest zoom stored in the source archive

    Returns:
        Tuple of (ancestor address, zoom delta)
    """
    if source_max_zoom < 0:
        raise OutOfRangeError(f"Source max zoom must be non-negative, got {source_max_zoom}")
    if target.zoom < source_max_zoom:
        raise OutOfRangeError(
            f"Tile {target.tile_id} is above the source max zoom {source_max_zoom}"
        )
    delta = target.zoom - source_max_zoom
    return target.ancestor_at(source_max_zoom), delta


def quadrant(target: TileAddress, delta: int) -> Tuple[int, int]:
    """Position of ``target`` inside the 2^delta x 2^delta grid of its ancestor."""
    if not 0 <= delta <= target.zoom:
        raise OutOfRangeError(f"Zoom delta {delta} invalid for tile {target.tile_id}")
    mask = (1 << delta) - 1
    return target.col & mask, target.row & mask


def clip_rect(extent: int, delta: int, qx: int, qy: int) -> Rectangle:
    """
    Ancestor-local rectangle covered by quadrant (qx, qy) at zoom delta ``delta``.

    Raises:
        PrecisionLossError: if ``extent`` is not divisible by 2^delta
    """
    if extent <= 0:
        raise OutOfRangeError(f"Extent must be positive, got {extent}")
    if delta < 0:
        raise OutOfRangeError(f"Zoom delta must be non-negative, got {delta}")
    divisions = 1 << delta
    if not (0 <= qx < divisions and 0 <= qy < divisions):
        raise OutOfRangeError(f"Quadrant ({qx}, {qy}) outside a {divisions}x{divisions} grid")
    if extent % divisions:
        raise PrecisionLossError(
            f"Extent {extent} cannot be split into {divisions} equal parts"
        )
    size = extent // divisions
    return Rectangle(qx * size, qy * size, size, size)


def descendants_at_zoom(tile: TileAddress, zoom: int) -> Iterator[TileAddress]:
    """Yield every descendant of ``tile`` at ``zoom`` in column-major order."""
    if zoom < tile.zoom:
        raise OutOfRangeError(f"Zoom {zoom} is above tile {tile.tile_id}")
    delta = zoom - tile.zoom
    span = 1 << delta
    base_col, base_row = tile.col << delta, tile.row << delta
    for col in range(base_col, base_col + span):
        for row in range(base_row, base_row + span):
            yield TileAddress(zoom, col, row)


def tiles_in_bounds(
    bounds: Sequence[float],
    zoom: int,
    within: Optional[TileAddress] = None
) -> Iterator[TileAddress]:
    """
    Yield the tiles at ``zoom`` intersecting a lon/lat bounding box.

    Args:
        bounds: (west, south, east, north) in degrees
        zoom: Zoom level to enumerate
        within: Optional tile restricting the result to its descendants
    """
    west, south, east, north = bounds
    for tile in mercantile.tiles(west, south, east, north, zooms=[zoom]):
        address = TileAddress(tile.z, tile.x, tile.y)
        if within is None or address.is_descendant_of(within):
            yield address


def parse_bounds(value: str) -> Tuple[float, float, float, float]:
    """Parse a 'west,south,east,north' string."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 4:
        raise ValueError(f"Bounds must have four comma separated values, got {value!r}")
    west, south, east, north = (float(p) for p in parts)
    if west >= east or south >= north:
        raise ValueError(f"Degenerate bounds: {value!r}")
    return west, south, east, north
