"""
Directory Converter

Packs a ``<z>/<x>/<y>.pbf`` (or ``.mvt``) tile directory, rows counted from
the top, into an MBTiles archive. Payloads that are not gzip compressed yet
are compressed on the way in. A ``metadata.json`` file at the directory
root becomes the archive's metadata rows.
"""

import gzip
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import structlog

from ..addressing import RowOrigin, TileAddress
from ..archive import MBTilesArchive
from ..codec import is_gzipped
from ..exceptions import OutOfRangeError

VECTOR_TILE_SUFFIXES = (".pbf", ".mvt")

logger = structlog.get_logger(component="converter")


@dataclass
class ConvertResult:
    tiles_written: int = 0
    files_skipped: int = 0
    min_zoom: Optional[int] = None
    max_zoom: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "tiles_written": self.tiles_written,
            "files_skipped": self.files_skipped,
            "minzoom": self.min_zoom,
            "maxzoom": self.max_zoom,
        }


def maybe_compress(data: bytes) -> bytes:
    """Gzip ``data`` unless it already carries the gzip magic bytes."""
    if is_gzipped(data):
        return data
    return gzip.compress(data, mtime=0)


def read_metadata_json(path: Path) -> Dict[str, str]:
    """Metadata rows from a JSON object; non-string values are JSON encoded."""
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return {
        key: value if isinstance(value, str) else json.dumps(value)
        for key, value in data.items()
    }


def parse_tile_path(relative: Path) -> Optional[TileAddress]:
    """Address of a ``z/x/y.ext`` path, or None when the path does not match."""
    parts = relative.parts
    if len(parts) != 3 or relative.suffix.lower() not in VECTOR_TILE_SUFFIXES:
        return None
    try:
        z, x, y = int(parts[0]), int(parts[1]), int(Path(parts[2]).stem)
        return TileAddress(z, x, y)
    except (ValueError, OutOfRangeError):
        return None


def convert_directory(
    input_dir: Union[str, Path],
    output_path: Union[str, Path],
    row_origin: Union[RowOrigin, str] = RowOrigin.BOTTOM
) -> ConvertResult:
    """
    Write every vector tile below ``input_dir`` into a new MBTiles archive.

    Args:
        input_dir: Directory laid out as ``<z>/<x>/<y>.pbf``
        output_path: MBTiles file to create
        row_origin: Row convention of the output archive

    Returns:
        Counts of written tiles and skipped files
    """
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Input directory not found: {input_dir}")

    metadata: Dict[str, str] = {}
    metadata_file = input_dir / "metadata.json"
    if metadata_file.exists():
        metadata = read_metadata_json(metadata_file)
        logger.info("Loaded metadata.json", fields=len(metadata))

    result = ConvertResult()
    with MBTilesArchive(output_path, mode="w", row_origin=row_origin) as archive:
        for path in sorted(input_dir.rglob("*")):
            if not path.is_file() or path == metadata_file:
                continue
            address = parse_tile_path(path.relative_to(input_dir))
            if address is None:
                result.files_skipped += 1
                logger.debug("Skipping file", path=str(path))
                continue

            archive.put_tile(address, maybe_compress(path.read_bytes()))
            result.tiles_written += 1
            if result.min_zoom is None or address.zoom < result.min_zoom:
                result.min_zoom = address.zoom
            if result.max_zoom is None or address.zoom > result.max_zoom:
                result.max_zoom = address.zoom

        if result.max_zoom is not None:
            metadata["minzoom"] = str(result.min_zoom)
            metadata["maxzoom"] = str(result.max_zoom)
        metadata.setdefault("format", "pbf")
        archive.put_metadata(metadata)

    logger.info("Conversion finished", output=str(output_path), **result.to_dict())
    return result
