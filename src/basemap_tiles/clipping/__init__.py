"""
Geometry Clipping Module

Clips vector tile geometry against tile quadrants in integer tile space and
rescales it into the coordinate space of a deeper tile:

- Cohen-Sutherland clipping for linestrings
- Sutherland-Hodgman clipping for polygon rings
- Round-half-up rescaling with exact rational arithmetic
"""

from .geometry_clipper import GeometryClipper, dedupe, round_half_up, signed_area
from .line_clip import as_bbox, clip_polyline
from .polygon_clip import EDGE_PIPELINE, clip_ring, clip_to_edge

__all__ = [
    "EDGE_PIPELINE",
    "GeometryClipper",
    "as_bbox",
    "clip_polyline",
    "clip_ring",
    "clip_to_edge",
    "dedupe",
    "round_half_up",
    "signed_area",
]
