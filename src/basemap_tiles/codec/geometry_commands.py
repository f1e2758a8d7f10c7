"""
MVT geometry command stream.

A feature's geometry is a flat list of unsigned integers: command words
``(id & 0x7) | (count << 3)`` followed by zigzag encoded coordinate deltas.
The cursor carries over between parts of the same feature.
"""

from typing import List

from ..exceptions import CorruptPayloadError
from .models import Geometry, GeometryType, Path, Point

MOVE_TO = 1
LINE_TO = 2
CLOSE_PATH = 7


def zigzag_encode(n: int) -> int:
    return n << 1 if n >= 0 else (-n << 1) - 1


def zigzag_decode(n: int) -> int:
    return (n >> 1) ^ -(n & 1)


def command(command_id: int, count: int) -> int:
    return (command_id & 0x7) | (count << 3)


class _Cursor:
    """Running position used to delta encode coordinates."""

    def __init__(self):
        self.x = 0
        self.y = 0

    def emit(self, out: List[int], point: Point) -> None:
        x, y = point
        out.append(zigzag_encode(x - self.x))
        out.append(zigzag_encode(y - self.y))
        self.x, self.y = x, y


def encode_geometry(geometry_type: GeometryType, geometry: Geometry) -> List[int]:
    """Encode points, lines or rings into a command stream."""
    out: List[int] = []
    cursor = _Cursor()

    if geometry_type == GeometryType.POINT:
        if geometry:
            out.append(command(MOVE_TO, len(geometry)))
            for point in geometry:
                cursor.emit(out, point)
        return out

    minimum = 3 if geometry_type == GeometryType.POLYGON else 2
    for path in geometry:
        if len(path) < minimum:
            raise ValueError(
                f"{geometry_type.name} part needs at least {minimum} points, got {len(path)}"
            )
        out.append(command(MOVE_TO, 1))
        cursor.emit(out, path[0])
        out.append(command(LINE_TO, len(path) - 1))
        for point in path[1:]:
            cursor.emit(out, point)
        if geometry_type == GeometryType.POLYGON:
            out.append(command(CLOSE_PATH, 1))
    return out


def decode_geometry(geometry_type: GeometryType, stream: List[int]) -> Geometry:
    """
    Decode a command stream into points, lines or rings.

    Raises:
        CorruptPayloadError: on unknown commands, truncated parameters or
            commands that are illegal for the geometry type
    """
    points: List[Point] = []
    parts: List[Path] = []
    current: Path = []
    x = y = 0
    i = 0
    length = len(stream)

    while i < length:
        command_id = stream[i] & 0x7
        count = stream[i] >> 3
        i += 1

        if command_id in (MOVE_TO, LINE_TO):
            if count == 0:
                raise CorruptPayloadError("Geometry command with zero count")
            if i + 2 * count > length:
                raise CorruptPayloadError(
                    f"Geometry stream truncated: command needs {2 * count} values, {length - i} left"
                )
            if geometry_type != GeometryType.POINT:
                if command_id == MOVE_TO and count != 1:
                    raise CorruptPayloadError("MoveTo with count > 1 in a line or polygon")
                if command_id == LINE_TO and not current:
                    raise CorruptPayloadError("LineTo before MoveTo")
            elif command_id == LINE_TO:
                raise CorruptPayloadError("LineTo in a point geometry")

            for _ in range(count):
                x += zigzag_decode(stream[i])
                y += zigzag_decode(stream[i + 1])
                i += 2
                if geometry_type == GeometryType.POINT:
                    points.append((x, y))
                elif command_id == MOVE_TO:
                    if current:
                        if geometry_type == GeometryType.POLYGON:
                            raise CorruptPayloadError("Polygon ring not closed before next MoveTo")
                        parts.append(current)
                    current = [(x, y)]
                else:
                    current.append((x, y))

        elif command_id == CLOSE_PATH:
            if geometry_type != GeometryType.POLYGON:
                raise CorruptPayloadError("ClosePath outside a polygon geometry")
            if len(current) < 3:
                raise CorruptPayloadError("ClosePath on a ring with fewer than three points")
            parts.append(current)
            current = []

        else:
            raise CorruptPayloadError(f"Unknown geometry command {command_id}")

    if geometry_type == GeometryType.POINT:
        return points
    if current:
        if geometry_type == GeometryType.POLYGON:
            raise CorruptPayloadError("Polygon ring missing ClosePath")
        parts.append(current)
    return parts
