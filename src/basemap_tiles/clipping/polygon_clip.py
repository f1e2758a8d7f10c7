"""
Sutherland-Hodgman ring clipping.

A ring is clipped by a pipeline of four stages, one per box side. Each stage
keeps the half-plane inside its side and inserts intersection vertices where
the ring crosses it. Vertex order, and so ring orientation, is preserved.
"""

from typing import List, Sequence, Tuple

from .line_clip import BOTTOM, LEFT, RIGHT, TOP, BBox, FPoint, as_fractions, bit_code, intersect

EDGE_PIPELINE = (LEFT, RIGHT, BOTTOM, TOP)


def clip_to_edge(points: List[FPoint], edge: int, bbox: BBox) -> List[FPoint]:
    """Keep the part of a closed ring inside one box side."""
    result: List[FPoint] = []
    if not points:
        return result

    prev = points[-1]
    prev_inside = not bit_code(prev, bbox) & edge
    for point in points:
        inside = not bit_code(point, bbox) & edge
        if inside != prev_inside:
            result.append(intersect(prev, point, edge, bbox))
        if inside:
            result.append(point)
        prev, prev_inside = point, inside
    return result


def clip_ring(ring: Sequence[Tuple[int, int]], bbox: BBox) -> List[FPoint]:
    """
    Clip a ring (without closing point) to ``bbox``.

    Returns:
        Clipped ring vertices, empty when nothing is left
    """
    points = as_fractions(ring)
    for edge in EDGE_PIPELINE:
        points = clip_to_edge(points, edge, bbox)
        if not points:
            break
    return points
