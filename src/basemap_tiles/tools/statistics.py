"""
Archive Statistics

Blob size statistics of an MBTiles archive: per-zoom minimum, maximum and
mean payload size with tile counts, and the list of tiles above a set of
size thresholds.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Union

import pandas as pd
import structlog

from ..addressing import RowOrigin, TileAddress
from ..archive import MBTilesArchive

LARGE_TILE_THRESHOLDS = (400_000, 500_000)

logger = structlog.get_logger(component="statistics")


@dataclass
class LargeTile:
    """A tile whose stored payload exceeds a size threshold."""
    address: TileAddress
    size: int


@dataclass
class TileStatistics:
    """Statistics of one archive."""
    name: str
    zoom_levels: pd.DataFrame
    large_tiles: Dict[int, List[LargeTile]] = field(default_factory=dict)

    @property
    def total_tiles(self) -> int:
        return int(self.zoom_levels["tile_count"].sum()) if len(self.zoom_levels) else 0

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "total_tiles": self.total_tiles,
            "zoom_levels": self.zoom_levels.to_dict(orient="records"),
            "large_tiles": {
                str(threshold): [
                    {"z": t.address.zoom, "x": t.address.col, "y": t.address.row, "size": t.size}
                    for t in tiles
                ]
                for threshold, tiles in self.large_tiles.items()
            },
        }

    def format(self) -> str:
        """Render the statistics as plain text tables."""
        table = self.zoom_levels.rename(columns={
            "zoom_level": "z",
            "min_size": "Tile size (min)",
            "max_size": "Tile size (max)",
            "mean_size": "Tile size (average)",
            "tile_count": "Tile count",
        })
        lines = [f"Statistics for {self.name}:", table.to_string(index=False)]
        for threshold, tiles in sorted(self.large_tiles.items()):
            lines.append(f"Large tiles with size > {threshold} bytes:")
            if not tiles:
                lines.append("  (none)")
                continue
            frame = pd.DataFrame(
                [(t.address.zoom, t.address.col, t.address.row, t.size) for t in tiles],
                columns=["z", "x", "y", "Tile size"]
            )
            lines.append(frame.to_string(index=False))
        return "\n".join(lines)


def calculate_statistics(
    path: Union[str, Path],
    thresholds: Sequence[int] = LARGE_TILE_THRESHOLDS,
    row_origin: Union[RowOrigin, str] = RowOrigin.BOTTOM
) -> TileStatistics:
    """
    Aggregate payload sizes of an MBTiles archive.

    Args:
        path: MBTiles file
        thresholds: Sizes (bytes) above which tiles are listed individually
        row_origin: Row convention of the stored tiles

    Returns:
        Per-zoom statistics and large tiles (rows counted from the top)
    """
    with MBTilesArchive(path, mode="r", row_origin=row_origin) as archive:
        sizes = pd.read_sql_query(
            "SELECT zoom_level, tile_column, tile_row, length(tile_data) AS size FROM tiles",
            archive.connection
        ).astype("int64")

        zoom_levels = (
            sizes.groupby("zoom_level")["size"]
            .agg(min_size="min", max_size="max", mean_size="mean", tile_count="count")
            .reset_index()
            .sort_values("zoom_level")
        )

        large_tiles: Dict[int, List[LargeTile]] = {}
        for threshold in thresholds:
            selected = sizes[sizes["size"] > threshold].sort_values(
                ["zoom_level", "tile_column", "tile_row"]
            )
            large_tiles[threshold] = [
                LargeTile(
                    address=TileAddress.from_storage(
                        int(row.zoom_level), int(row.tile_column), int(row.tile_row),
                        archive.row_origin
                    ),
                    size=int(row.size)
                )
                for row in selected.itertuples(index=False)
            ]

    logger.info("Calculated statistics", path=str(path), tiles=len(sizes))
    return TileStatistics(name=str(path), zoom_levels=zoom_levels, large_tiles=large_tiles)
