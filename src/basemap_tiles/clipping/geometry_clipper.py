"""
Geometry Clipper

Restricts feature geometry to one quadrant of an ancestor tile and rescales
the result into the output tile's coordinate space.

Clipping runs on exact rationals in the ancestor's integer space; rescaling
applies the rational factor ``target_extent / rect.width`` and rounds half up
(ties toward positive infinity). Rounding is therefore identical on both
sides of a shared tile edge, which keeps adjacent synthesized tiles seamless.
"""

import math
from fractions import Fraction
from typing import List, Optional, Sequence, Tuple

from shapely.geometry import LinearRing
from shapely.geometry import Polygon as ShapelyPolygon

from ..addressing import Rectangle
from ..codec.models import Feature, GeometryType, Path, Point
from .line_clip import as_bbox, clip_polyline
from .polygon_clip import clip_ring

_HALF = Fraction(1, 2)


def round_half_up(value: Fraction) -> int:
    return math.floor(value + _HALF)


def signed_area(ring: Sequence[Point]) -> float:
    """
    Shoelace area of a ring in tile coordinates.

    Positive for exterior rings in MVT winding order, negative for holes and
    zero for rings that have collapsed to a line or a point.
    """
    if len(set(ring)) < 3:
        return 0.0
    area = ShapelyPolygon(ring).area
    if area == 0:
        return 0.0
    return area if LinearRing(ring).is_ccw else -area


def dedupe(points: List[Point], closed: bool = False) -> List[Point]:
    """Drop consecutive duplicates (and the closing duplicate of a ring)."""
    result: List[Point] = []
    for point in points:
        if not result or result[-1] != point:
            result.append(point)
    if closed:
        while len(result) > 1 and result[0] == result[-1]:
            result.pop()
    return result


class GeometryClipper:
    """
    Clips features to an ancestor-local rectangle and rescales them.

    Args:
        rect: Quadrant of the ancestor tile, in ancestor-local coordinates
        target_extent: Coordinate span of the output tile
        buffer: Margin around the output tile, in output tile units
    """

    def __init__(self, rect: Rectangle, target_extent: int, buffer: int = 0):
        if target_extent <= 0:
            raise ValueError(f"Target extent must be positive, got {target_extent}")
        if buffer < 0:
            raise ValueError(f"Buffer must be non-negative, got {buffer}")
        self.rect = rect
        self.target_extent = target_extent
        self.buffer = buffer
        self.scale_x = Fraction(target_extent, rect.width)
        self.scale_y = Fraction(target_extent, rect.height)
        margin_x = buffer / self.scale_x
        margin_y = buffer / self.scale_y
        self.bbox = as_bbox(
            rect.min_x - margin_x,
            rect.min_y - margin_y,
            rect.max_x + margin_x,
            rect.max_y + margin_y
        )

    def clip_feature(self, feature: Feature) -> Optional[Feature]:
        """Clip one feature; ``None`` when nothing of it survives."""
        if feature.geometry_type == GeometryType.POINT:
            geometry = self.clip_points(feature.geometry)
        elif feature.geometry_type == GeometryType.LINESTRING:
            geometry = self.clip_lines(feature.geometry)
        else:
            geometry = self.clip_rings(feature.geometry)

        if not geometry:
            return None
        return feature.with_geometry(geometry)

    def clip_points(self, points: Sequence[Point]) -> List[Point]:
        min_x, min_y, max_x, max_y = self.bbox
        return [
            self.scale_point((x, y))
            for x, y in points
            if min_x <= x < max_x and min_y <= y < max_y
        ]

    def clip_lines(self, lines: Sequence[Path]) -> List[Path]:
        output: List[Path] = []
        for line in lines:
            for piece in clip_polyline(line, self.bbox):
                scaled = dedupe([self.scale_point(p) for p in piece])
                if len(scaled) >= 2:
                    output.append(scaled)
        return output

    def clip_rings(self, rings: Sequence[Path]) -> List[Path]:
        """
        Clip polygon rings, keeping exterior/hole grouping intact.

        A hole is only emitted while the exterior ring preceding it survives.
        """
        output: List[Path] = []
        exterior_kept = True
        for ring in rings:
            area = signed_area(ring)
            if area == 0:
                continue
            clipped = self._clip_ring(ring, area > 0)
            if area > 0:
                exterior_kept = clipped is not None
            elif not exterior_kept:
                continue
            if clipped is not None:
                output.append(clipped)
        return output

    def _clip_ring(self, ring: Path, exterior: bool) -> Optional[Path]:
        clipped = clip_ring(ring, self.bbox)
        scaled = dedupe([self.scale_point(p) for p in clipped], closed=True)
        if len(scaled) < 3:
            return None
        area = signed_area(scaled)
        if area == 0 or (area > 0) != exterior:
            return None
        return scaled

    def scale_point(self, point: Tuple) -> Point:
        x, y = point
        return (
            round_half_up((x - self.rect.min_x) * self.scale_x),
            round_half_up((y - self.rect.min_y) * self.scale_y)
        )

