"""Dict-backed tile archive."""

import threading
from typing import Dict, Iterator, Mapping, Optional, Tuple

from ..addressing import TileAddress
from .base_archive import ArchiveMetadata, TileArchive


class MemoryTileArchive(TileArchive):
    """In-memory archive, handy for embedding and for tests."""

    def __init__(
        self,
        tiles: Optional[Mapping[TileAddress, bytes]] = None,
        metadata: Optional[Mapping[str, str]] = None
    ):
        self.tiles: Dict[TileAddress, bytes] = dict(tiles or {})
        self.metadata: Dict[str, str] = {k: str(v) for k, v in (metadata or {}).items()}
        self.lock = threading.Lock()

    def get_tile(self, address: TileAddress) -> Optional[bytes]:
        return self.tiles.get(address)

    def put_tile(self, address: TileAddress, data: bytes) -> None:
        with self.lock:
            self.tiles[address] = bytes(data)

    def get_metadata(self) -> ArchiveMetadata:
        return ArchiveMetadata(dict(self.metadata))

    def put_metadata(self, fields: Mapping[str, str]) -> None:
        with self.lock:
            self.metadata.update({k: str(v) for k, v in fields.items()})

    def iter_tiles(self, zoom: Optional[int] = None) -> Iterator[Tuple[TileAddress, bytes]]:
        with self.lock:
            items = sorted(self.tiles.items())
        for address, data in items:
            if zoom is None or address.zoom == zoom:
                yield address, data
