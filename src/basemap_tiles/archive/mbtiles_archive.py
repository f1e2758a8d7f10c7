"""
MBTiles Archive

SQLite-backed tile archive following the MBTiles layout: a ``metadata``
name/value table and a ``tiles`` table keyed by (zoom_level, tile_column,
tile_row). MBTiles stores rows bottom-left (TMS); the row origin is an
explicit constructor argument and is applied only inside this class.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Iterator, List, Mapping, Optional, Tuple, Union

import structlog

from ..addressing import RowOrigin, TileAddress
from ..exceptions import ArchiveError
from .base_archive import ArchiveMetadata, TileArchive

SCHEMA = """
CREATE TABLE IF NOT EXISTS metadata (
    name text,
    value text
);

CREATE TABLE IF NOT EXISTS tiles (
    zoom_level INTEGER,
    tile_column INTEGER,
    tile_row INTEGER,
    tile_data blob
);

CREATE UNIQUE INDEX IF NOT EXISTS name ON metadata (name);
CREATE UNIQUE INDEX IF NOT EXISTS xyz ON tiles (zoom_level, tile_column, tile_row);
"""


class MBTilesArchive(TileArchive):
    """
    MBTiles file opened for reading (``mode='r'``) or writing (``mode='w'``).

    In read mode each thread gets its own SQLite connection so worker threads
    can read concurrently. In write mode a single connection, shared by all
    threads and guarded by a lock, carries every statement; writes are
    batched into transactions of ``commit_interval`` tiles.
    """

    def __init__(
        self,
        path: Union[str, Path],
        mode: str = "r",
        row_origin: Union[RowOrigin, str] = RowOrigin.BOTTOM,
        commit_interval: int = 10000
    ):
        if mode not in ("r", "w"):
            raise ValueError(f"Unsupported archive mode: {mode!r}")
        self.path = Path(path)
        self.mode = mode
        self.row_origin = RowOrigin.parse(row_origin)
        self.commit_interval = max(1, commit_interval)

        self.logger = structlog.get_logger(component="MBTilesArchive", path=str(self.path))
        self._local = threading.local()
        self._readers: List[sqlite3.Connection] = []
        self._writer: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._pending = 0
        self._closed = False

        if mode == "r" and not self.path.exists():
            raise FileNotFoundError(f"MBTiles archive not found: {self.path}")
        if mode == "w":
            self._writer = sqlite3.connect(str(self.path), check_same_thread=False)
            self._writer.executescript(
                "PRAGMA synchronous = OFF;\nPRAGMA journal_mode = MEMORY;\n" + SCHEMA
            )
            self._writer.commit()

        self.logger.debug("Archive opened", mode=mode, row_origin=self.row_origin.value)

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise ArchiveError(f"Archive {self.path} is closed")
        if self._writer is not None:
            return self._writer
        connection = getattr(self._local, "connection", None)
        if connection is None:
            uri = self.path.resolve().as_uri() + "?mode=ro"
            connection = sqlite3.connect(uri, uri=True, check_same_thread=False)
            connection.execute("PRAGMA query_only = true")
            self._local.connection = connection
            with self._lock:
                self._readers.append(connection)
        return connection

    @property
    def connection(self) -> sqlite3.Connection:
        """The write connection, or the calling thread's read connection."""
        return self._connection()

    @property
    def open_connections(self) -> int:
        with self._lock:
            return len(self._readers) + (1 if self._writer is not None else 0)

    def _require_writable(self) -> None:
        if self.mode != "w":
            raise ArchiveError(f"Archive {self.path} is opened read-only")

    def get_tile(self, address: TileAddress) -> Optional[bytes]:
        try:
            row = self._connection().execute(
                "SELECT tile_data FROM tiles "
                "WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?",
                (address.zoom, address.col, address.storage_row(self.row_origin))
            ).fetchone()
        except sqlite3.DatabaseError as e:
            raise ArchiveError(f"Cannot read tile {address.tile_id} from {self.path}: {e}") from e
        if row is None or row[0] is None:
            return None
        return bytes(row[0])

    def put_tile(self, address: TileAddress, data: bytes) -> None:
        self._require_writable()
        with self._lock:
            connection = self._connection()
            connection.execute(
                "INSERT OR REPLACE INTO tiles (zoom_level, tile_column, tile_row, tile_data) "
                "VALUES (?, ?, ?, ?)",
                (address.zoom, address.col, address.storage_row(self.row_origin), sqlite3.Binary(data))
            )
            self._pending += 1
            if self._pending >= self.commit_interval:
                connection.commit()
                self.logger.debug("Committed tile batch", tiles=self._pending)
                self._pending = 0

    def get_metadata(self) -> ArchiveMetadata:
        try:
            rows = self._connection().execute("SELECT name, value FROM metadata").fetchall()
        except sqlite3.DatabaseError as e:
            raise ArchiveError(f"Cannot read metadata from {self.path}: {e}") from e
        return ArchiveMetadata({name: value for name, value in rows})

    def put_metadata(self, fields: Mapping[str, str]) -> None:
        self._require_writable()
        with self._lock:
            connection = self._connection()
            connection.executemany(
                "INSERT OR REPLACE INTO metadata (name, value) VALUES (?, ?)",
                [(name, str(value)) for name, value in fields.items()]
            )
            connection.commit()
            self._pending = 0

    def iter_tiles(self, zoom: Optional[int] = None) -> Iterator[Tuple[TileAddress, bytes]]:
        query = "SELECT zoom_level, tile_column, tile_row, tile_data FROM tiles"
        params: Tuple = ()
        if zoom is not None:
            query += " WHERE zoom_level = ?"
            params = (zoom,)
        query += " ORDER BY zoom_level, tile_column, tile_row"
        try:
            cursor = self._connection().execute(query, params)
        except sqlite3.DatabaseError as e:
            raise ArchiveError(f"Cannot read tiles from {self.path}: {e}") from e
        for zoom_level, column, row, data in cursor:
            yield TileAddress.from_storage(zoom_level, column, row, self.row_origin), bytes(data)

    def iter_addresses(self, zoom: Optional[int] = None) -> Iterator[TileAddress]:
        query = "SELECT zoom_level, tile_column, tile_row FROM tiles"
        params: Tuple = ()
        if zoom is not None:
            query += " WHERE zoom_level = ?"
            params = (zoom,)
        query += " ORDER BY zoom_level, tile_column, tile_row"
        for zoom_level, column, row in self._connection().execute(query, params):
            yield TileAddress.from_storage(zoom_level, column, row, self.row_origin)

    def flush(self) -> None:
        with self._lock:
            if self._writer is not None and not self._closed:
                self._writer.commit()
                self._pending = 0

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            if self._writer is not None:
                self._writer.commit()
                self._writer.execute("PRAGMA journal_mode = DELETE")
                self._writer.close()
                self._writer = None
            for connection in self._readers:
                connection.close()
            self._readers.clear()
            self._pending = 0
            self._closed = True
        self.logger.debug("Archive closed")
