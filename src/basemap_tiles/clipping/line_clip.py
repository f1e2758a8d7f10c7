"""
Cohen-Sutherland clipping of polylines against an axis-aligned box.

Works on exact rationals: input coordinates are promoted to ``Fraction`` so
intersections never lose precision before the caller rounds them.
Adapted from the approach of mapbox/lineclip: a polyline that leaves and
re-enters the box yields several parts.
"""

from fractions import Fraction
from typing import List, Sequence, Tuple

BBox = Tuple[Fraction, Fraction, Fraction, Fraction]
FPoint = Tuple[Fraction, Fraction]

# Outcode bits; "bottom" and "top" refer to smaller and larger y values
LEFT = 1
RIGHT = 2
BOTTOM = 4
TOP = 8


def bit_code(point: FPoint, bbox: BBox) -> int:
    x, y = point
    code = 0
    if x < bbox[0]:
        code |= LEFT
    elif x > bbox[2]:
        code |= RIGHT
    if y < bbox[1]:
        code |= BOTTOM
    elif y > bbox[3]:
        code |= TOP
    return code


def intersect(a: FPoint, b: FPoint, edge: int, bbox: BBox) -> FPoint:
    """Intersection of segment a-b with the box side selected by ``edge``."""
    ax, ay = a
    bx, by = b
    if edge & TOP:
        return ax + (bx - ax) * (bbox[3] - ay) / (by - ay), bbox[3]
    if edge & BOTTOM:
        return ax + (bx - ax) * (bbox[1] - ay) / (by - ay), bbox[1]
    if edge & RIGHT:
        return bbox[2], ay + (by - ay) * (bbox[2] - ax) / (bx - ax)
    if edge & LEFT:
        return bbox[0], ay + (by - ay) * (bbox[0] - ax) / (bx - ax)
    raise ValueError(f"No box side for edge code {edge}")


def as_fractions(points: Sequence[Tuple[int, int]]) -> List[FPoint]:
    return [(Fraction(x), Fraction(y)) for x, y in points]


def as_bbox(min_x, min_y, max_x, max_y) -> BBox:
    return Fraction(min_x), Fraction(min_y), Fraction(max_x), Fraction(max_y)


def clip_polyline(points: Sequence[Tuple[int, int]], bbox: BBox) -> List[List[FPoint]]:
    """
    Clip a polyline to ``bbox`` (closed box).

    Args:
        points: Polyline vertices
        bbox: (min_x, min_y, max_x, max_y)

    Returns:
        Zero or more polyline parts inside the box
    """
    coords = as_fractions(points)
    result: List[List[FPoint]] = []
    if len(coords) < 2:
        return result

    part: List[FPoint] = []
    code_a = bit_code(coords[0], bbox)
    last = len(coords) - 1

    for i in range(1, len(coords)):
        a = coords[i - 1]
        b = coords[i]
        code_b = last_code = bit_code(b, bbox)

        while True:
            if not code_a | code_b:
                # accept
                part.append(a)
                if code_b != last_code:
                    # segment left the box
                    part.append(b)
                    if i < last:
                        result.append(part)
                        part = []
                elif i == last:
                    part.append(b)
                break
            elif code_a & code_b:
                # both ends beyond the same side
                break
            elif code_a:
                a = intersect(a, b, code_a, bbox)
                code_a = bit_code(a, bbox)
            else:
                b = intersect(a, b, code_b, bbox)
                code_b = bit_code(b, bbox)

        code_a = last_code

    if part:
        result.append(part)
    return result
