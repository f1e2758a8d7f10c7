"""
Archive Subdivision

Splits an MBTiles archive into several outputs, each defined by a list of
tiles. A stored tile is copied into every output listing the tile itself or
one of its ancestors, so outputs may overlap. Membership is purely a matter
of tile addresses; no geometry is touched.

Config format::

    {"outputs": [{"name": "europe", "tiles": [[x, y, z], ...]}, ...]}

Tile rows in the config count from the top (XYZ).
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from ..addressing import RowOrigin, TileAddress
from ..archive import MBTilesArchive

logger = structlog.get_logger(component="subdivide")


@dataclass
class SubdivideOutput:
    """One output archive and the tiles that root it."""
    name: str
    tiles: List[TileAddress]
    tile_count: int = 0
    min_zoom: Optional[int] = None
    max_zoom: Optional[int] = None

    def accepts(self, address: TileAddress) -> bool:
        return any(address.is_descendant_of(root) for root in self.tiles)

    def record(self, address: TileAddress) -> None:
        self.tile_count += 1
        self.min_zoom = address.zoom if self.min_zoom is None else min(self.min_zoom, address.zoom)
        self.max_zoom = address.zoom if self.max_zoom is None else max(self.max_zoom, address.zoom)


@dataclass
class SubdivideResult:
    outputs: List[SubdivideOutput] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            output.name: {
                "tiles": output.tile_count,
                "minzoom": output.min_zoom,
                "maxzoom": output.max_zoom,
            }
            for output in self.outputs
        }


def load_subdivide_config(config_path: Union[str, Path]) -> List[SubdivideOutput]:
    """Parse the outputs of a subdivide config file."""
    with open(config_path, "r") as f:
        data = json.load(f)

    try:
        entries = data["outputs"]
    except (KeyError, TypeError):
        raise ValueError(f"Subdivide config {config_path} has no 'outputs' list") from None

    outputs = []
    names = set()
    for entry in entries:
        name = entry.get("name")
        if not name:
            raise ValueError("Every subdivide output needs a name")
        if name in names:
            raise ValueError(f"Duplicate subdivide output name {name!r}")
        names.add(name)
        tiles = []
        for tile in entry.get("tiles", []):
            if len(tile) != 3:
                raise ValueError(f"Output {name!r}: tile {tile!r} is not [x, y, z]")
            x, y, z = (int(v) for v in tile)
            tiles.append(TileAddress(z, x, y))
        outputs.append(SubdivideOutput(name=name, tiles=tiles))
    return outputs


def subdivide(
    config_path: Union[str, Path],
    input_path: Union[str, Path],
    output_dir: Union[str, Path],
    row_origin: Union[RowOrigin, str] = RowOrigin.BOTTOM
) -> SubdivideResult:
    """
    Copy the tiles of ``input_path`` into one archive per configured output.

    Args:
        config_path: JSON subdivide config
        input_path: Source MBTiles archive
        output_dir: Directory receiving ``<name>.mbtiles`` files
        row_origin: Row convention of the source and output archives

    Returns:
        Per-output tile counts and zoom ranges
    """
    outputs = load_subdivide_config(config_path)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "Starting subdivision",
        config=str(config_path),
        input=str(input_path),
        output_dir=str(output_dir),
        outputs=len(outputs)
    )

    with MBTilesArchive(input_path, mode="r", row_origin=row_origin) as source:
        metadata = source.get_metadata()
        writers = {
            output.name: MBTilesArchive(
                output_dir / f"{output.name}.mbtiles", mode="w", row_origin=row_origin
            )
            for output in outputs
        }
        try:
            for address, data in source.iter_tiles():
                for output in outputs:
                    if output.accepts(address):
                        writers[output.name].put_tile(address, data)
                        output.record(address)

            for output in outputs:
                rows = dict(metadata.rows)
                if output.max_zoom is not None:
                    rows["minzoom"] = str(output.min_zoom)
                    rows["maxzoom"] = str(output.max_zoom)
                writers[output.name].put_metadata(rows)
                logger.info("Output finished", output=output.name, tiles=output.tile_count)
        finally:
            for writer in writers.values():
                writer.close()

    return SubdivideResult(outputs=outputs)
