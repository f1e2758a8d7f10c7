"""
Tile Addressing Module

Arithmetic over (zoom, column, row) tile addresses used by the overzoom
engine and the archive layer. No I/O happens here.
"""

from .tile_address import (
    MAX_ZOOM,
    Rectangle,
    RowOrigin,
    TileAddress,
    ancestor_of,
    clip_rect,
    descendants_at_zoom,
    flip_row,
    parse_bounds,
    quadrant,
    tiles_in_bounds,
)

__all__ = [
    "MAX_ZOOM",
    "Rectangle",
    "RowOrigin",
    "TileAddress",
    "ancestor_of",
    "clip_rect",
    "descendants_at_zoom",
    "flip_row",
    "parse_bounds",
    "quadrant",
    "tiles_in_bounds",
]
