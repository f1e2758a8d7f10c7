"""
Base Tile Archive

Interface between the overzoom engine and tile storage. The engine only
ever sees top-left (XYZ) tile addresses and raw blobs; implementations own
the storage engine, its row convention and its transactions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional, Tuple

from ..addressing import TileAddress
from ..exceptions import ArchiveError

# Formats whose payloads are gzip compressed unless metadata says otherwise
_GZIP_FORMATS = ("pbf", "mvt")


@dataclass
class ArchiveMetadata:
    """Parsed view over an archive's name/value metadata rows."""

    rows: Dict[str, str] = field(default_factory=dict)

    @property
    def min_zoom(self) -> Optional[int]:
        return self._int("minzoom")

    @property
    def max_zoom(self) -> Optional[int]:
        return self._int("maxzoom")

    @property
    def format(self) -> Optional[str]:
        return self.rows.get("format")

    @property
    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        value = self.rows.get("bounds")
        if not value:
            return None
        try:
            west, south, east, north = (float(part) for part in value.split(","))
        except ValueError as e:
            raise ArchiveError(f"Invalid bounds metadata {value!r}") from e
        return west, south, east, north

    @property
    def compression(self) -> str:
        """Declared compression, defaulting to gzip for vector tile formats."""
        declared = self.rows.get("compression")
        if declared:
            return declared
        if (self.format or "").lower() in _GZIP_FORMATS:
            return "gzip"
        return "none"

    def require_max_zoom(self) -> int:
        max_zoom = self.max_zoom
        if max_zoom is None:
            raise ArchiveError("Archive has no maxzoom metadata")
        return max_zoom

    def _int(self, name: str) -> Optional[int]:
        value = self.rows.get(name)
        if value is None or value == "":
            return None
        try:
            return int(value)
        except ValueError as e:
            raise ArchiveError(f"Invalid {name} metadata {value!r}") from e


class TileArchive(ABC):
    """
    Abstract key/value store of tiles addressed by (zoom, col, row).

    Implementations must allow concurrent ``get_tile`` calls from worker
    threads. Writes are issued from a single thread.
    """

    @abstractmethod
    def get_tile(self, address: TileAddress) -> Optional[bytes]:
        """
        Fetch a stored tile.

        Args:
            address: Tile address (top-left rows)

        Returns:
            The stored blob, or None if the archive has no such tile
        """

    @abstractmethod
    def put_tile(self, address: TileAddress, data: bytes) -> None:
        """Store (or replace) a tile blob."""

    @abstractmethod
    def get_metadata(self) -> ArchiveMetadata:
        """Read all metadata rows."""

    @abstractmethod
    def put_metadata(self, fields: Mapping[str, str]) -> None:
        """Insert or replace metadata rows."""

    @abstractmethod
    def iter_tiles(self, zoom: Optional[int] = None) -> Iterator[Tuple[TileAddress, bytes]]:
        """Iterate over stored tiles, optionally restricted to one zoom."""

    def iter_addresses(self, zoom: Optional[int] = None) -> Iterator[TileAddress]:
        for address, _ in self.iter_tiles(zoom):
            yield address

    def flush(self) -> None:
        """Persist pending writes."""

    def close(self) -> None:
        """Release storage resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
