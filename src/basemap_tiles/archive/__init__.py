"""
Tile Archive Module

Storage collaborators consumed by the overzoom engine and the tools:
an abstract key/value tile archive, an MBTiles (SQLite) implementation and
an in-memory implementation.
"""

from .base_archive import ArchiveMetadata, TileArchive
from .mbtiles_archive import MBTilesArchive
from .memory_archive import MemoryTileArchive

__all__ = [
    "ArchiveMetadata",
    "MBTilesArchive",
    "MemoryTileArchive",
    "TileArchive",
]
