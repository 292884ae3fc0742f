"""
Esri JSON Geometry Models

Closed set of geometry variants used by the gateway. Every variant shares the
same capability interface:

- geometry_type: GeometryType tag (esriGeometryPoint, ...)
- spatialReference: optional SpatialReference
- to_wire() / from_wire(): conversion to and from the Esri JSON shape

Esri JSON shapes:
- Points use {"x": val, "y": val}
- Polylines use {"paths": [[[x,y],...], ...]}
- Polygons use {"rings": [[[x,y],...], ...]}
- SpatialReference is an object: {"wkid": 4326}

A query or edit call binds exactly one variant (see resolve_geometry_type);
responses never mix variants.
"""

import math
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError


class GeometryType(str, Enum):
    """Tag for the geometry variants understood by the gateway."""
    POINT = "esriGeometryPoint"
    POLYLINE = "esriGeometryPolyline"
    POLYGON = "esriGeometryPolygon"

    @property
    def model(self) -> Type["Geometry"]:
        """Geometry class bound to this tag."""
        return GEOMETRY_MODELS[self]


class SpatialReference(BaseModel):
    """Coordinate system identified by its well-known ID."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    wkid: Optional[int] = Field(
        default=None,
        description="Well-known ID of the coordinate system"
    )
    latestWkid: Optional[int] = Field(
        default=None,
        description="Current EPSG equivalent of wkid, when it differs"
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


WGS84 = SpatialReference(wkid=4326, latestWkid=4326)
WEB_MERCATOR = SpatialReference(wkid=102100, latestWkid=3857)


Coordinate = List[float]


class Geometry(BaseModel):
    """Base class for geometry variants."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    geometry_type: ClassVar[GeometryType]

    spatialReference: Optional[SpatialReference] = Field(
        default=None,
        description="Coordinate system of the coordinates"
    )

    @property
    def esri_type(self) -> str:
        return self.geometry_type.value

    def to_wire(self) -> Dict[str, Any]:
        """Esri JSON shape of this geometry, absent members omitted."""
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_wire(cls, data: Optional[Dict[str, Any]]) -> Optional["Geometry"]:
        """
        Decode an Esri JSON geometry of this variant.

        Returns None for a missing, null or empty geometry so callers never
        see a zero-valued geometry.

        Raises:
            ProtocolError: If data does not have this variant's shape
        """
        if is_empty_geometry(data):
            return None
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(
                f"Geometry is not a valid {cls.geometry_type.value}: {e.error_count()} error(s)",
                details={"errors": e.errors(include_url=False)}
            ) from e


class Point(Geometry):
    """Single location."""
    geometry_type: ClassVar[GeometryType] = GeometryType.POINT

    x: float
    y: float
    z: Optional[float] = None
    m: Optional[float] = None


class Polyline(Geometry):
    """One or more paths."""
    geometry_type: ClassVar[GeometryType] = GeometryType.POLYLINE

    paths: List[List[Coordinate]]
    hasZ: Optional[bool] = None
    hasM: Optional[bool] = None


class Polygon(Geometry):
    """One or more rings; exterior rings clockwise, holes counter-clockwise."""
    geometry_type: ClassVar[GeometryType] = GeometryType.POLYGON

    rings: List[List[Coordinate]]
    hasZ: Optional[bool] = None
    hasM: Optional[bool] = None


GEOMETRY_MODELS: Dict[GeometryType, Type[Geometry]] = {
    GeometryType.POINT: Point,
    GeometryType.POLYLINE: Polyline,
    GeometryType.POLYGON: Polygon,
}


def resolve_geometry_type(geometry: Union[GeometryType, Type[Geometry], str]) -> Type[Geometry]:
    """
    Resolve a caller's variant binding to its geometry class.

    Accepts a geometry class (Point), a GeometryType tag, or the Esri type
    name ("esriGeometryPoint").

    Raises:
        TypeError: If the binding is not one of the known variants
    """
    if isinstance(geometry, type) and geometry in GEOMETRY_MODELS.values():
        return geometry
    try:
        return GeometryType(geometry).model
    except ValueError:
        raise TypeError(
            f"Unsupported geometry variant {geometry!r}; "
            f"expected one of {[m.__name__ for m in GEOMETRY_MODELS.values()]}"
        ) from None


def _is_null_member(value: Any) -> bool:
    if value is None or value == []:
        return True
    if isinstance(value, str):
        return value.strip().lower() == "nan"
    if isinstance(value, float):
        return math.isnan(value)
    return False


def is_empty_geometry(data: Any) -> bool:
    """
    True for None, {} or a geometry whose members are all null.

    The service writes an empty point as {"x": "NaN", "y": "NaN"} or with
    null coordinates; a point missing either coordinate is empty.
    """
    if data is None:
        return True
    if isinstance(data, Point):
        return math.isnan(data.x) or math.isnan(data.y)
    if isinstance(data, Geometry):
        return False
    if isinstance(data, dict):
        if "x" in data or "y" in data:
            return _is_null_member(data.get("x")) or _is_null_member(data.get("y"))
        members = {k: v for k, v in data.items() if k != "spatialReference"}
        return all(_is_null_member(v) for v in members.values())
    return False
