"""
Archive Tools Module

Statistics, subdivision and directory conversion for MBTiles archives.
"""

from .converter import ConvertResult, convert_directory, maybe_compress
from .statistics import LARGE_TILE_THRESHOLDS, LargeTile, TileStatistics, calculate_statistics
from .subdivide import SubdivideOutput, SubdivideResult, load_subdivide_config, subdivide

__all__ = [
    "LARGE_TILE_THRESHOLDS",
    "ConvertResult",
    "LargeTile",
    "SubdivideOutput",
    "SubdivideResult",
    "TileStatistics",
    "calculate_statistics",
    "convert_directory",
    "load_subdivide_config",
    "maybe_compress",
    "subdivide",
]
