"""
Unit Tests for the Vector Tile Codec

Covers geometry command streams, protobuf encoding and decoding,
compression handling and payload validation.
"""

import gzip
import unittest
import zlib
from pathlib import Path

import mapbox_vector_tile
from mapbox_vector_tile.Mapbox import vector_tile_pb2

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from basemap_tiles.codec import (
    Compression,
    Feature,
    GeometryType,
    Layer,
    VectorTile,
    VectorTileCodec,
    codec_for,
    decode_geometry,
    encode_geometry,
    is_gzipped,
    zigzag_decode,
    zigzag_encode,
)
from basemap_tiles.exceptions import CompressionError, CorruptPayloadError, PayloadError


def length_delimited(field_number, payload):
    return bytes([(field_number << 3) | 2, len(payload)]) + payload


def raw_layer(name=b"pois", key=b"name", string_value=b"Kiosk"):
    """Protobuf bytes of a one-point layer; string fields are written unchecked."""
    feature = length_delimited(2, b"\x00\x00") + b"\x18\x01" + length_delimited(4, b"\x09\x32\x22")
    value = length_delimited(1, string_value)
    layer = (
        b"\x78\x02"
        + length_delimited(1, name)
        + length_delimited(2, feature)
        + length_delimited(3, key)
        + length_delimited(4, value)
        + b"\x28\x80\x20"
    )
    return length_delimited(3, layer)


def sample_tile():
    """Tile with one layer per geometry type and mixed property types."""
    return VectorTile(layers=[
        Layer(name="water", features=[
            Feature(
                GeometryType.POLYGON,
                [[(0, 0), (4096, 0), (4096, 4096), (0, 4096)],
                 [(100, 100), (100, 200), (200, 200), (200, 100)]],
                {"kind": "water", "area": 12.5},
                id=7
            ),
        ]),
        Layer(name="roads", features=[
            Feature(GeometryType.LINESTRING, [[(0, 10), (50, 10), (50, 60)]],
                    {"kind": "road", "lanes": 2, "oneway": True}, id=1),
            Feature(GeometryType.LINESTRING, [[(5, 5), (6, 6)], [(10, 10), (-3, 20)]],
                    {"kind": "road", "lanes": 2, "oneway": False}),
        ]),
        Layer(name="pois", extent=512, features=[
            Feature(GeometryType.POINT, [(25, 17)], {"name": "Kiosk", "rank": -3}),
            Feature(GeometryType.POINT, [(1, 1), (2, 2), (511, 511)], {}),
        ]),
    ])


class TestGeometryCommands(unittest.TestCase):
    """Test suite for the MVT geometry command stream."""

    def test_zigzag(self):
        for value, encoded in ((0, 0), (-1, 1), (1, 2), (-2, 3), (2, 4), (2 ** 40, 2 ** 41)):
            self.assertEqual(zigzag_encode(value), encoded)
            self.assertEqual(zigzag_decode(encoded), value)

    def test_encode_point_matches_mvt_example(self):
        # Worked example from the MVT 2.1 documentation: point (25, 17)
        self.assertEqual(encode_geometry(GeometryType.POINT, [(25, 17)]), [9, 50, 34])

    def test_encode_linestring_matches_mvt_example(self):
        stream = encode_geometry(GeometryType.LINESTRING, [[(2, 2), (2, 10), (10, 10)]])
        self.assertEqual(stream, [9, 4, 4, 18, 0, 16, 16, 0])

    def test_encode_polygon_matches_mvt_example(self):
        stream = encode_geometry(GeometryType.POLYGON, [[(3, 6), (8, 12), (20, 34)]])
        self.assertEqual(stream, [9, 6, 12, 18, 10, 12, 24, 44, 15])

    def test_decode_reverses_encode(self):
        for feature_type, geometry in (
            (GeometryType.POINT, [(5, 7), (3, 2)]),
            (GeometryType.LINESTRING, [[(2, 2), (2, 10), (10, 10)], [(1, 1), (3, 5)]]),
            (GeometryType.POLYGON, [[(0, 0), (10, 0), (10, 10), (0, 10)],
                                    [(11, 11), (20, 11), (20, 20), (11, 20)]]),
        ):
            self.assertEqual(decode_geometry(feature_type, encode_geometry(feature_type, geometry)), geometry)

    def test_encode_rejects_short_parts(self):
        with self.assertRaises(ValueError):
            encode_geometry(GeometryType.LINESTRING, [[(0, 0)]])
        with self.assertRaises(ValueError):
            encode_geometry(GeometryType.POLYGON, [[(0, 0), (1, 1)]])

    def test_decode_rejects_truncated_stream(self):
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.LINESTRING, [9, 4, 4, 18, 0, 16])

    def test_decode_rejects_unknown_command(self):
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.POINT, [(1 << 3) | 5, 0, 0])

    def test_decode_rejects_illegal_commands(self):
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.POINT, [10, 2, 2])  # LineTo in a point
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.LINESTRING, [10, 2, 2])  # LineTo before MoveTo
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.LINESTRING, [9, 2, 2, 18, 0, 2, 2, 0, 15])
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.POLYGON, [9, 6, 12, 18, 10, 12, 24, 44])
        with self.assertRaises(CorruptPayloadError):
            decode_geometry(GeometryType.POINT, [1, 0, 0])  # zero count


class TestVectorTileCodec(unittest.TestCase):
    """Test suite for VectorTileCodec."""

    def setUp(self):
        self.codec = VectorTileCodec(Compression.GZIP)
        self.tile = sample_tile()

    def test_round_trip(self):
        decoded = self.codec.decode(self.codec.encode(self.tile))
        self.assertEqual(decoded, self.tile)
        self.assertEqual([layer.name for layer in decoded], ["water", "roads", "pois"])
        self.assertEqual(decoded.layer("pois").extent, 512)

    def test_round_trip_each_compression(self):
        for compression in Compression:
            codec = VectorTileCodec(compression)
            self.assertEqual(codec.decode(codec.encode(self.tile)), self.tile)

    def test_encoding_is_deterministic(self):
        first = self.codec.encode(self.tile)
        second = self.codec.encode(sample_tile())
        self.assertEqual(first, second)
        self.assertTrue(is_gzipped(first))

    def test_property_tables_are_deduplicated(self):
        raw = VectorTileCodec(Compression.NONE).encode(self.tile)
        message = vector_tile_pb2.tile()
        message.ParseFromString(raw)
        roads = [layer for layer in message.layers if layer.name == "roads"][0]
        self.assertEqual(list(roads.keys), ["kind", "lanes", "oneway"])
        # "road" and 2 are shared; True and False are distinct values
        self.assertEqual(len(roads.values), 4)
        self.assertEqual(list(roads.features[0].tags), [0, 0, 1, 1, 2, 2])
        self.assertEqual(list(roads.features[1].tags), [0, 0, 1, 1, 2, 3])

    def test_bool_and_int_values_stay_distinct(self):
        tile = VectorTile(layers=[Layer(name="flags", features=[
            Feature(GeometryType.POINT, [(1, 1)], {"a": True}),
            Feature(GeometryType.POINT, [(2, 2)], {"a": 1}),
        ])])
        decoded = self.codec.decode(self.codec.encode(tile))
        self.assertIs(decoded.layers[0].features[0].properties["a"], True)
        self.assertEqual(decoded.layers[0].features[1].properties["a"], 1)
        self.assertNotIsInstance(decoded.layers[0].features[1].properties["a"], bool)

    def test_encode_rejects_unsupported_property(self):
        tile = VectorTile(layers=[Layer(name="bad", features=[
            Feature(GeometryType.POINT, [(1, 1)], {"tags": ["a", "b"]}),
        ])])
        with self.assertRaises(ValueError):
            self.codec.encode(tile)

    def test_interoperates_with_mapbox_vector_tile(self):
        decoded = mapbox_vector_tile.decode(
            gzip.decompress(self.codec.encode(self.tile)),
            default_options={"y_coord_down": True}
        )
        self.assertEqual(set(decoded), {"water", "roads", "pois"})
        kiosk = decoded["pois"]["features"][0]
        self.assertEqual(kiosk["properties"], {"name": "Kiosk", "rank": -3})
        self.assertEqual(kiosk["geometry"]["coordinates"], [25, 17])

    def test_compression_error_is_distinct(self):
        with self.assertRaises(CompressionError):
            self.codec.decode(b"definitely not gzip")
        with self.assertRaises(CompressionError):
            VectorTileCodec(Compression.ZLIB).decode(b"\x00\x01\x02")
        with self.assertRaises(CompressionError):
            self.codec.decode(gzip.compress(b"\x1a\x02")[:-6])

    def test_truncated_protobuf_is_corrupt(self):
        with self.assertRaises(CorruptPayloadError) as ctx:
            self.codec.decode(gzip.compress(b"\x1a\x05ab"))
        self.assertNotIsInstance(ctx.exception, CompressionError)
        self.assertIsInstance(ctx.exception, PayloadError)

    def test_tag_out_of_table_bounds_is_corrupt(self):
        message = vector_tile_pb2.tile()
        layer = message.layers.add()
        layer.version = 2
        layer.name = "broken"
        layer.extent = 4096
        layer.keys.append("kind")
        layer.values.add().string_value = "water"
        feature = layer.features.add()
        feature.type = 1
        feature.geometry.extend([9, 2, 2])
        feature.tags.extend([0, 3])
        with self.assertRaises(CorruptPayloadError):
            self.codec.decode(gzip.compress(message.SerializeToString()))

    def test_hand_built_layer_decodes(self):
        tile = VectorTileCodec(Compression.NONE).decode(raw_layer())
        feature = tile.layer("pois").features[0]
        self.assertEqual(feature.properties, {"name": "Kiosk"})
        self.assertEqual(feature.geometry, [(25, 17)])

    def test_invalid_utf8_strings_are_corrupt(self):
        codec = VectorTileCodec(Compression.NONE)
        for blob in (
            raw_layer(name=b"\xff\xfe"),
            raw_layer(key=b"\xc3\x28"),
            raw_layer(string_value=b"\xa0\xa1"),
        ):
            with self.assertRaises(CorruptPayloadError):
                codec.decode(blob)

    def test_duplicate_layer_names_are_corrupt(self):
        message = vector_tile_pb2.tile()
        for _ in range(2):
            layer = message.layers.add()
            layer.version = 2
            layer.name = "twice"
            layer.extent = 4096
        with self.assertRaises(CorruptPayloadError):
            self.codec.decode(gzip.compress(message.SerializeToString()))

    def test_unknown_geometry_type_is_corrupt(self):
        message = vector_tile_pb2.tile()
        layer = message.layers.add()
        layer.version = 2
        layer.name = "unknown"
        layer.extent = 4096
        feature = layer.features.add()
        feature.type = 0
        with self.assertRaises(CorruptPayloadError):
            self.codec.decode(gzip.compress(message.SerializeToString()))

    def test_empty_tile(self):
        self.assertTrue(self.codec.decode(self.codec.encode(VectorTile())).is_empty)

    def test_codec_for(self):
        self.assertIs(codec_for(None).compression, Compression.GZIP)
        self.assertIs(codec_for("identity").compression, Compression.NONE)
        self.assertIs(codec_for("zlib").compression, Compression.ZLIB)
        with self.assertRaises(ValueError):
            codec_for("brotli")

    def test_zlib_payloads(self):
        codec = VectorTileCodec(Compression.ZLIB)
        self.assertEqual(zlib.decompress(codec.encode(self.tile)), VectorTileCodec(Compression.NONE).encode(self.tile))


class TestTileModel(unittest.TestCase):

    def test_duplicate_layer_names_rejected(self):
        with self.assertRaises(ValueError):
            VectorTile(layers=[Layer(name="a"), Layer(name="a")])
        tile = VectorTile(layers=[Layer(name="a")])
        with self.assertRaises(ValueError):
            tile.add_layer(Layer(name="a"))

    def test_layer_extent_must_be_positive(self):
        with self.assertRaises(ValueError):
            Layer(name="a", extent=0)

    def test_feature_count(self):
        self.assertEqual(sample_tile().feature_count, 5)
        self.assertTrue(VectorTile(layers=[Layer(name="a")]).is_empty)
