"""
Tile Codec Module

Binary Mapbox Vector Tile encoding and decoding with exact integer
geometry, plus the in-memory tile model shared by the clipper and the
overzoom engine.
"""

from .geometry_commands import decode_geometry, encode_geometry, zigzag_decode, zigzag_encode
from .models import DEFAULT_EXTENT, Feature, GeometryType, Layer, VectorTile
from .vector_tile_codec import Compression, VectorTileCodec, codec_for, is_gzipped

__all__ = [
    "DEFAULT_EXTENT",
    "Compression",
    "Feature",
    "GeometryType",
    "Layer",
    "VectorTile",
    "VectorTileCodec",
    "codec_for",
    "decode_geometry",
    "encode_geometry",
    "is_gzipped",
    "zigzag_decode",
    "zigzag_encode",
]
