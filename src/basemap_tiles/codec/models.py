"""
In-memory vector tile model.

Coordinates are integers in the layer's local space (origin top-left, y
pointing down). The geometry of a feature depends on its type:

- POINT: list of points
- LINESTRING: list of lines, each a list of points
- POLYGON: list of rings, each a list of points without the closing point;
  exterior rings have positive shoelace area, holes negative
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

Point = Tuple[int, int]
Path = List[Point]
Geometry = Union[List[Point], List[Path]]

DEFAULT_EXTENT = 4096


class GeometryType(IntEnum):
    """MVT geometry type codes."""

    POINT = 1
    LINESTRING = 2
    POLYGON = 3


@dataclass
class Feature:
    """A single feature with typed geometry and ordered properties."""

    geometry_type: GeometryType
    geometry: Geometry
    properties: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.geometry

    def with_geometry(self, geometry: Geometry) -> "Feature":
        """Copy of this feature carrying new geometry; properties are shared."""
        return Feature(
            geometry_type=self.geometry_type,
            geometry=geometry,
            properties=self.properties,
            id=self.id
        )


@dataclass
class Layer:
    """Named collection of features sharing one coordinate extent."""

    name: str
    extent: int = DEFAULT_EXTENT
    features: List[Feature] = field(default_factory=list)
    version: int = 2

    def __post_init__(self):
        if self.extent <= 0:
            raise ValueError(f"Layer {self.name!r} extent must be positive, got {self.extent}")


@dataclass
class VectorTile:
    """Ordered sequence of uniquely named layers."""

    layers: List[Layer] = field(default_factory=list)

    def __post_init__(self):
        names = [layer.name for layer in self.layers]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate layer names in tile: {names}")

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def layer(self, name: str) -> Optional[Layer]:
        for layer in self.layers:
            if layer.name == name:
                return layer
        return None

    def add_layer(self, layer: Layer) -> None:
        if self.layer(layer.name) is not None:
            raise ValueError(f"Layer {layer.name!r} already present")
        self.layers.append(layer)

    @property
    def feature_count(self) -> int:
        return sum(len(layer.features) for layer in self.layers)

    @property
    def is_empty(self) -> bool:
        return self.feature_count == 0
