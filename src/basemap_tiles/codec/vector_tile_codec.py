"""
Vector Tile Codec

Decodes and encodes compressed Mapbox Vector Tile (MVT) payloads to and from
the in-memory model in ``codec.models``. The protobuf schema is the one
bundled with ``mapbox_vector_tile``; geometry command streams are handled
here so that coordinates stay exact integers in tile-local space, without a
round trip through floating point GeoJSON.

Encoding is deterministic: the same tile always yields the same bytes
(key/value tables are built in first-seen order and gzip output carries no
timestamp).
"""

import gzip
import zlib
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from google.protobuf.message import DecodeError
from mapbox_vector_tile.Mapbox import vector_tile_pb2

from ..exceptions import CompressionError, CorruptPayloadError
from .geometry_commands import decode_geometry, encode_geometry
from .models import Feature, GeometryType, Layer, VectorTile

GZIP_MAGIC = b"\x1f\x8b"

_UINT64_LIMIT = 1 << 64
_SINT64_LIMIT = 1 << 63


class Compression(Enum):
    """Payload compression scheme of an archive."""

    GZIP = "gzip"
    ZLIB = "zlib"
    NONE = "none"

    @classmethod
    def parse(cls, value) -> "Compression":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized in ("", "identity"):
            return cls.NONE
        for scheme in cls:
            if scheme.value == normalized:
                return scheme
        raise ValueError(f"Unsupported compression scheme: {value!r}")


def is_gzipped(data: bytes) -> bool:
    return data[:2] == GZIP_MAGIC


class VectorTileCodec:
    """
    Binary MVT codec bound to one compression scheme.

    The scheme is fixed per codec instance (normally per archive) and is
    never guessed from individual payloads.
    """

    def __init__(self, compression: Compression = Compression.GZIP):
        self.compression = Compression.parse(compression)

    def decompress(self, data: bytes) -> bytes:
        try:
            if self.compression is Compression.GZIP:
                return gzip.decompress(data)
            if self.compression is Compression.ZLIB:
                return zlib.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise CompressionError(
                f"Cannot decompress payload with {self.compression.value}: {e}"
            ) from e
        return bytes(data)

    def compress(self, data: bytes) -> bytes:
        if self.compression is Compression.GZIP:
            return gzip.compress(data, mtime=0)
        if self.compression is Compression.ZLIB:
            return zlib.compress(data)
        return data

    def decode(self, data: bytes) -> VectorTile:
        """
        Decode a compressed MVT payload.

        Args:
            data: Raw blob as stored in the archive

        Returns:
            Decoded tile with layers and features in stored order

        Raises:
            CompressionError: if the blob cannot be decompressed
            CorruptPayloadError: if the protobuf or geometry is malformed
        """
        message = vector_tile_pb2.tile()
        try:
            message.ParseFromString(self.decompress(data))
        except DecodeError as e:
            raise CorruptPayloadError(f"Invalid vector tile protobuf: {e}") from e

        tile = VectorTile()
        for pb_layer in message.layers:
            if not pb_layer.name:
                raise CorruptPayloadError("Layer without a name")
            if not isinstance(pb_layer.name, str):
                raise CorruptPayloadError(f"Layer name {pb_layer.name!r} is not valid UTF-8")
            if tile.layer(pb_layer.name) is not None:
                raise CorruptPayloadError(f"Duplicate layer name {pb_layer.name!r}")
            tile.layers.append(self._decode_layer(pb_layer))
        return tile

    def encode(self, tile: VectorTile) -> bytes:
        """
        Encode a tile and compress it with this codec's scheme.

        Args:
            tile: Tile to encode

        Returns:
            Compressed MVT payload
        """
        message = vector_tile_pb2.tile()
        for layer in tile.layers:
            self._encode_layer(message.layers.add(), layer)
        return self.compress(message.SerializeToString(deterministic=True))

    def _decode_layer(self, pb_layer) -> Layer:
        """Decode one protobuf layer, validating its tables and features."""
        if pb_layer.extent <= 0:
            raise CorruptPayloadError(f"Layer {pb_layer.name!r} has extent {pb_layer.extent}")

        keys = list(pb_layer.keys)
        for key in keys:
            if not isinstance(key, str):
                raise CorruptPayloadError(f"Key {key!r} in layer {pb_layer.name!r} is not valid UTF-8")
        values = [self._decode_value(pb_layer.name, value) for value in pb_layer.values]
        layer = Layer(name=pb_layer.name, extent=pb_layer.extent, version=pb_layer.version)

        for pb_feature in pb_layer.features:
            try:
                geometry_type = GeometryType(pb_feature.type)
            except ValueError:
                raise CorruptPayloadError(
                    f"Unsupported geometry type {pb_feature.type} in layer {pb_layer.name!r}"
                ) from None

            tags = list(pb_feature.tags)
            if len(tags) % 2:
                raise CorruptPayloadError(f"Odd tag count in layer {pb_layer.name!r}")
            properties: Dict[str, Any] = {}
            for key_index, value_index in zip(tags[::2], tags[1::2]):
                if key_index >= len(keys) or value_index >= len(values):
                    raise CorruptPayloadError(
                        f"Property reference ({key_index}, {value_index}) out of table bounds "
                        f"in layer {pb_layer.name!r}"
                    )
                properties[keys[key_index]] = values[value_index]

            layer.features.append(Feature(
                geometry_type=geometry_type,
                geometry=decode_geometry(geometry_type, list(pb_feature.geometry)),
                properties=properties,
                id=pb_feature.id if pb_feature.HasField("id") else None
            ))
        return layer

    @staticmethod
    def _decode_value(layer_name: str, value) -> Any:
        if value.HasField("string_value"):
            # proto2 strings are not UTF-8 checked on parse
            if not isinstance(value.string_value, str):
                raise CorruptPayloadError(f"String value in layer {layer_name!r} is not valid UTF-8")
            return value.string_value
        if value.HasField("float_value"):
            return value.float_value
        if value.HasField("double_value"):
            return value.double_value
        if value.HasField("int_value"):
            return value.int_value
        if value.HasField("uint_value"):
            return value.uint_value
        if value.HasField("sint_value"):
            return value.sint_value
        if value.HasField("bool_value"):
            return value.bool_value
        raise CorruptPayloadError(f"Empty value in layer {layer_name!r}")

    def _encode_layer(self, pb_layer, layer: Layer) -> None:
        pb_layer.version = layer.version
        pb_layer.name = layer.name
        pb_layer.extent = layer.extent

        key_index: Dict[str, int] = {}
        value_index: Dict[Tuple[str, Any], int] = {}

        for feature in layer.features:
            pb_feature = pb_layer.features.add()
            if feature.id is not None:
                pb_feature.id = feature.id
            pb_feature.type = int(feature.geometry_type)

            tags: List[int] = []
            for key, value in feature.properties.items():
                if key not in key_index:
                    key_index[key] = len(key_index)
                    pb_layer.keys.append(key)
                value_key = (type(value).__name__, value)
                if value_key not in value_index:
                    value_index[value_key] = len(value_index)
                    self._encode_value(pb_layer.values.add(), key, value)
                tags.extend((key_index[key], value_index[value_key]))
            pb_feature.tags.extend(tags)
            pb_feature.geometry.extend(encode_geometry(feature.geometry_type, feature.geometry))

    @staticmethod
    def _encode_value(pb_value, key: str, value: Any) -> None:
        # bool first: it is a subclass of int
        if isinstance(value, bool):
            pb_value.bool_value = value
        elif isinstance(value, int):
            if 0 <= value < _UINT64_LIMIT:
                pb_value.uint_value = value
            elif -_SINT64_LIMIT <= value < 0:
                pb_value.sint_value = value
            else:
                raise ValueError(f"Property {key!r} integer {value} does not fit 64 bits")
        elif isinstance(value, float):
            pb_value.double_value = value
        elif isinstance(value, str):
            pb_value.string_value = value
        else:
            raise ValueError(
                f"Property {key!r} has unsupported type {type(value).__name__}"
            )


def codec_for(compression: Optional[str]) -> VectorTileCodec:
    """Build a codec from a metadata/config compression value (gzip when unset)."""
    if compression is None:
        return VectorTileCodec(Compression.GZIP)
    return VectorTileCodec(Compression.parse(compression))
