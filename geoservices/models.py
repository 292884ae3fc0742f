"""
GeoServices REST Request and Response Models

Pydantic models for the feature service wire protocol.

Request parameter models (CommonParameters subclasses) use snake_case Python
names and declare their wire shape explicitly in to_wire_params(). Every
optional field defaults to None and None is never sent, so the wire keys are
always a subset of the fields the caller set.

Response models mirror the service's camelCase JSON keys directly, the same
way the service documents them:

    {"features": [{"attributes": {...}, "geometry": {...}}, ...]}
    {"addResults": [{"objectId": 1, "success": true}], ...}
    {"error": {"code": 400, "message": "...", "details": []}}

Unknown response keys are ignored.
"""

from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from config import contains_services_root

from .errors import ServiceError
from .geometry import (
    Geometry,
    GeometryType,
    Point,
    Polygon,
    Polyline,
    SpatialReference,
    is_empty_geometry,
)

SERVICES_ROOT = "rest/services/"

AnyGeometry = Union[Point, Polyline, Polygon]


# ============================================================================
# Endpoint addressing
# ============================================================================

class Endpoint(BaseModel):
    """
    Relative resource path under the services root.

    Example:
        Endpoint(relative_url="Earthquakes/EarthquakesFromLastSevenDays/MapServer/0")
        resolves to <root>/rest/services/Earthquakes/.../MapServer/0
    """
    model_config = ConfigDict(frozen=True)

    relative_url: str = ""

    @field_validator("relative_url")
    @classmethod
    def validate_relative(cls, v: str) -> str:
        """Endpoints are relative; the root URL belongs to the gateway."""
        v = v.strip()
        if "://" in v:
            raise ValueError(f"Endpoint must be a relative path, got absolute url {v!r}")
        if contains_services_root(v):
            raise ValueError(f"Endpoint must not repeat the services root: {v!r}")
        return v.strip("/")

    def with_operation(self, operation: str) -> "Endpoint":
        """Endpoint for an operation on this resource (e.g. 'query')."""
        if not self.relative_url:
            return Endpoint(relative_url=operation)
        return Endpoint(relative_url=f"{self.relative_url}/{operation}")

    def build_absolute_url(self, root_url: str) -> str:
        return f"{root_url}{SERVICES_ROOT}{self.relative_url}"


def as_endpoint(path: Union[str, Endpoint]) -> Endpoint:
    """Coerce a relative path string to an Endpoint."""
    if isinstance(path, Endpoint):
        return path
    return Endpoint(relative_url=path)


# ============================================================================
# Features
# ============================================================================

class Feature(BaseModel):
    """
    Attribute map plus optional geometry of one variant.

    When decoded as part of a response, the geometry variant comes from the
    validation context ({"geometry": Point}) bound by the caller. When built
    by hand, pass a Geometry instance.
    """
    model_config = ConfigDict(extra="ignore")

    attributes: Dict[str, Any] = Field(default_factory=dict)
    geometry: Optional[AnyGeometry] = None

    @field_validator("attributes", mode="before")
    @classmethod
    def null_attributes_are_empty(cls, v):
        return {} if v is None else v

    @field_validator("geometry", mode="before")
    @classmethod
    def bind_geometry_variant(cls, v, info: ValidationInfo):
        """Decode wire geometry only as the bound variant; empty means absent."""
        if is_empty_geometry(v):
            return None
        if isinstance(v, Geometry):
            return v
        bound = (info.context or {}).get("geometry")
        if bound is None:
            raise ValueError("geometry must be a Geometry instance when no variant is bound")
        return bound.model_validate(v)

    def get_attribute(self, name: str, default: Any = None) -> Any:
        """Case-insensitive attribute lookup; field names are case-insensitive on the service."""
        if name in self.attributes:
            return self.attributes[name]
        lowered = name.lower()
        for key, value in self.attributes.items():
            if key.lower() == lowered:
                return value
        return default

    def has_attribute(self, name: str) -> bool:
        lowered = name.lower()
        return any(key.lower() == lowered for key in self.attributes)

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {"attributes": dict(self.attributes)}
        if self.geometry is not None:
            wire["geometry"] = self.geometry.to_wire()
        return wire


# ============================================================================
# Request parameters
# ============================================================================

class CommonParameters(BaseModel):
    """
    Base for every request parameter object.

    Subclasses set `operation` (appended to the endpoint path) and map their
    fields to wire keys in to_wire_params(). Values of None are dropped by the
    Serializer.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    operation: ClassVar[Optional[str]] = None

    endpoint: Endpoint

    @field_validator("endpoint", mode="before")
    @classmethod
    def coerce_endpoint(cls, v):
        return as_endpoint(v) if isinstance(v, str) else v

    def request_endpoint(self) -> Endpoint:
        if self.operation:
            return self.endpoint.with_operation(self.operation)
        return self.endpoint

    def to_wire_params(self) -> Dict[str, Any]:
        return {}


class Query(CommonParameters):
    """
    Parameters for a layer query.

    Example:
        Query(endpoint="Hydrography/Watershed173811/MapServer/1",
              out_fields="lengthkm", return_geometry=False)
    """
    operation: ClassVar[Optional[str]] = "query"

    where: Optional[str] = Field(
        default=None,
        description="SQL-92 where clause; the gateway sends 1=1 when no filter is set"
    )
    object_ids: Optional[List[int]] = Field(
        default=None,
        description="Restrict to these object IDs"
    )
    out_fields: Optional[str] = Field(
        default=None,
        description="Comma-separated field names or '*'; the gateway sends '*' when unset"
    )
    return_geometry: Optional[bool] = Field(
        default=None,
        description="Service default is true"
    )
    out_sr: Optional[SpatialReference] = Field(
        default=None,
        description="Spatial reference of returned geometries"
    )
    geometry: Optional[AnyGeometry] = Field(
        default=None,
        description="Spatial filter geometry"
    )
    in_sr: Optional[SpatialReference] = Field(
        default=None,
        description="Spatial reference of the filter geometry"
    )
    spatial_rel: Optional[str] = Field(
        default=None,
        description="Spatial relationship, e.g. esriSpatialRelIntersects"
    )
    order_by_fields: Optional[str] = Field(
        default=None,
        description="e.g. 'areasqkm DESC'"
    )
    result_offset: Optional[int] = Field(default=None, ge=0)
    result_record_count: Optional[int] = Field(default=None, ge=1)
    return_z: Optional[bool] = None
    return_m: Optional[bool] = None
    gdb_version: Optional[str] = None

    @field_validator("out_fields", mode="before")
    @classmethod
    def join_field_list(cls, v):
        if isinstance(v, (list, tuple)):
            return ",".join(v)
        return v

    @field_validator("geometry", mode="before")
    @classmethod
    def filter_geometry_instance(cls, v):
        if v is not None and not isinstance(v, Geometry):
            raise ValueError("filter geometry must be a Point, Polyline or Polygon instance")
        return v

    @property
    def has_filter(self) -> bool:
        return self.where is not None or bool(self.object_ids) or self.geometry is not None

    def with_defaults(self) -> "Query":
        """Copy with the baseline where clause and field list the service requires."""
        update: Dict[str, Any] = {}
        if not self.has_filter:
            update["where"] = "1=1"
        if self.out_fields is None:
            update["out_fields"] = "*"
        return self.model_copy(update=update) if update else self

    def as_variant(self, query_type: Type["Query"]) -> "Query":
        """Same parameters as another Query subclass (e.g. QueryForCount)."""
        if type(self) is query_type:
            return self
        return query_type(**{name: getattr(self, name) for name in self.model_fields_set})

    def requested_fields(self) -> Optional[List[str]]:
        """Explicit field names, or None when all fields ('*') are requested."""
        if self.out_fields is None:
            return None
        names = [name.strip() for name in self.out_fields.split(",") if name.strip()]
        if not names or "*" in names:
            return None
        return names

    def to_wire_params(self) -> Dict[str, Any]:
        return {
            "where": self.where,
            "objectIds": self.object_ids or None,
            "outFields": self.out_fields,
            "returnGeometry": self.return_geometry,
            "outSR": self.out_sr,
            "geometry": self.geometry,
            "geometryType": self.geometry.esri_type if self.geometry is not None else None,
            "inSR": self.in_sr,
            "spatialRel": self.spatial_rel,
            "orderByFields": self.order_by_fields,
            "resultOffset": self.result_offset,
            "resultRecordCount": self.result_record_count,
            "returnZ": self.return_z,
            "returnM": self.return_m,
            "gdbVersion": self.gdb_version,
        }


class QueryForCount(Query):
    """Query that returns only the number of matching features."""

    def to_wire_params(self) -> Dict[str, Any]:
        params = super().to_wire_params()
        params["returnCountOnly"] = True
        return params


class QueryForIds(Query):
    """Query that returns only the object IDs of matching features."""

    def to_wire_params(self) -> Dict[str, Any]:
        params = super().to_wire_params()
        params["returnIdsOnly"] = True
        return params


class ApplyEdits(CommonParameters):
    """
    Batched adds, updates and deletes against one feature layer.

    Every update must carry the layer's identifier attribute
    (object_id_field, matched case-insensitively). All geometries in the batch
    must be of a single variant.
    """
    operation: ClassVar[Optional[str]] = "applyEdits"

    adds: List[Feature] = Field(default_factory=list)
    updates: List[Feature] = Field(default_factory=list)
    deletes: List[int] = Field(default_factory=list)
    object_id_field: str = Field(
        default="objectid",
        description="Identifier attribute required on updates (not sent)"
    )
    gdb_version: Optional[str] = None
    rollback_on_failure: Optional[bool] = None

    @model_validator(mode="after")
    def validate_batch(self) -> "ApplyEdits":
        missing = [
            index for index, feature in enumerate(self.updates)
            if feature.get_attribute(self.object_id_field) is None
        ]
        if missing:
            raise ValueError(
                f"Updates at positions {missing} are missing the '{self.object_id_field}' attribute"
            )
        variants = {
            feature.geometry.geometry_type
            for feature in (*self.adds, *self.updates)
            if feature.geometry is not None
        }
        if len(variants) > 1:
            raise ValueError(
                f"An edit batch binds one geometry variant, got {sorted(v.value for v in variants)}"
            )
        return self

    @property
    def geometry_type(self) -> Optional[GeometryType]:
        for feature in (*self.adds, *self.updates):
            if feature.geometry is not None:
                return feature.geometry.geometry_type
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.adds or self.updates or self.deletes)

    def to_wire_params(self) -> Dict[str, Any]:
        return {
            "adds": [feature.to_wire() for feature in self.adds] or None,
            "updates": [feature.to_wire() for feature in self.updates] or None,
            "deletes": self.deletes or None,
            "gdbVersion": self.gdb_version,
            "rollbackOnFailure": self.rollback_on_failure,
        }


# ============================================================================
# Responses
# ============================================================================

class ServiceErrorInfo(BaseModel):
    """Top-level error object reported by the service."""
    model_config = ConfigDict(extra="ignore")

    code: Optional[int] = None
    message: Optional[str] = None
    details: List[str] = Field(default_factory=list)

    @field_validator("details", mode="before")
    @classmethod
    def null_details(cls, v):
        return [] if v is None else v


class PortalResponse(BaseModel):
    """
    Base of every decoded response.

    A populated `error` means the call failed at the service level even if
    the HTTP exchange succeeded. It is data, not an exception.
    """
    model_config = ConfigDict(extra="ignore")

    error: Optional[ServiceErrorInfo] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def raise_for_error(self) -> None:
        """Raise ServiceError if the service reported one."""
        if self.error is None:
            return
        raise ServiceError(
            self.error.message or "Service reported an error",
            code=self.error.code,
            details={"details": self.error.details}
        )


class FieldInfo(BaseModel):
    """Field schema entry of a query response."""
    model_config = ConfigDict(extra="ignore")

    name: str
    type: Optional[str] = None
    alias: Optional[str] = None
    length: Optional[int] = None


class QueryResponse(PortalResponse):
    """Ordered features of one geometry variant plus optional schema metadata."""
    features: List[Feature] = Field(default_factory=list)
    fields: Optional[List[FieldInfo]] = None
    geometryType: Optional[str] = None
    spatialReference: Optional[SpatialReference] = None
    objectIdFieldName: Optional[str] = None
    globalIdFieldName: Optional[str] = None
    exceededTransferLimit: Optional[bool] = None

    @field_validator("features", mode="before")
    @classmethod
    def null_features(cls, v):
        return [] if v is None else v


class QueryForCountResponse(PortalResponse):
    count: Optional[int] = None


class QueryForIdsResponse(PortalResponse):
    objectIdFieldName: Optional[str] = None
    objectIds: List[int] = Field(default_factory=list)

    @field_validator("objectIds", mode="before")
    @classmethod
    def null_ids(cls, v):
        # the service sends null rather than [] when nothing matches
        return [] if v is None else v


class EditErrorInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[int] = None
    description: Optional[str] = None


class EditResult(BaseModel):
    """
    Outcome of one edit item.

    objectId is meaningful only when success is true; a failed delete may
    still echo the identifier it was given.
    """
    model_config = ConfigDict(extra="ignore")

    objectId: Optional[int] = None
    globalId: Optional[str] = None
    success: bool = False
    error: Optional[EditErrorInfo] = None


class ApplyEditsResponse(PortalResponse):
    """Per-item results; result[i] describes input[i] of the same list."""
    addResults: List[EditResult] = Field(default_factory=list)
    updateResults: List[EditResult] = Field(default_factory=list)
    deleteResults: List[EditResult] = Field(default_factory=list)

    @field_validator("addResults", "updateResults", "deleteResults", mode="before")
    @classmethod
    def null_results(cls, v):
        return [] if v is None else v

    @property
    def adds(self) -> List[EditResult]:
        return self.addResults

    @property
    def updates(self) -> List[EditResult]:
        return self.updateResults

    @property
    def deletes(self) -> List[EditResult]:
        return self.deleteResults

    @property
    def failures(self) -> List[EditResult]:
        return [r for r in (*self.addResults, *self.updateResults, *self.deleteResults) if not r.success]
