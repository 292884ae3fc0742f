"""
Parameter Serializer and Response Decoder

Serializer.as_dictionary():
    Typed parameter object -> ordered Dict[str, str] ready for a query string
    or form body. Nested structures (geometries, spatial references, feature
    lists) flatten to compact JSON strings under a single key; no type
    discriminators are ever emitted.

Serializer.as_portal_response():
    Raw body -> typed PortalResponse subclass, with geometry decoded only as
    the variant bound by the caller. A blank body decodes to None.

Encoding behaviour is fixed per Serializer instance by an immutable
EncodingOptions value; there is no process-wide serializer state.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from util_logger import ComponentType, LoggerFactory

from .errors import ProtocolError
from .geometry import Geometry
from .models import CommonParameters, PortalResponse

logger = LoggerFactory.create_logger(ComponentType.SCHEMA, "Serializer")

T = TypeVar("T", bound=PortalResponse)

_SCALARS = (str, int, float)


@dataclass(frozen=True)
class EncodingOptions:
    """
    Encoding configuration for a Serializer.

    Attributes:
        omit_null_fields: Drop parameters whose value is None. When False they
            are sent as empty strings, which the service reads as "clear".
        flatten_nested: Render nested structures (geometries, feature lists)
            as compact JSON strings. When False, nested values are rejected
            and only scalar parameters can be encoded.
        include_type_info: Embed type discriminators in nested JSON. The
            service schema has no such keys, so only False is accepted.
        ensure_ascii: Escape non-ASCII characters inside nested JSON values.
        separators: JSON item/key separators for nested values.
    """
    omit_null_fields: bool = True
    flatten_nested: bool = True
    include_type_info: bool = False
    ensure_ascii: bool = False
    separators: Tuple[str, str] = (",", ":")

    def __post_init__(self):
        if self.include_type_info:
            raise ValueError("include_type_info is not supported by the GeoServices wire format")


DEFAULT_ENCODING = EncodingOptions()


class Serializer:
    """
    Converts parameter objects to wire dictionaries and response bodies to
    typed responses.

    Usage:
        serializer = Serializer()
        form = serializer.as_dictionary(Query(endpoint="Layer/MapServer/0", where="id > 3"))
        # {"where": "id > 3"}

        response = serializer.as_portal_response(body, QueryResponse, Point)
    """

    def __init__(self, options: Optional[EncodingOptions] = None):
        self.options = options or DEFAULT_ENCODING

    # =========================================================================
    # Encoding
    # =========================================================================

    def as_dictionary(self, parameters: Optional[CommonParameters]) -> Dict[str, str]:
        """
        Serialize a parameter object to wire key/value strings.

        Args:
            parameters: Any CommonParameters subclass, or None

        Returns:
            Ordered dict of wire keys to encoded strings
        """
        if parameters is None:
            return {}

        wire: Dict[str, str] = {}
        for key, value in parameters.to_wire_params().items():
            if value is None:
                if self.options.omit_null_fields:
                    continue
                wire[key] = ""
                continue
            wire[key] = self.encode_value(value)
        return wire

    def encode_value(self, value: Any) -> str:
        """Render a single parameter value as its wire string."""
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, _SCALARS):
            return str(value)
        if isinstance(value, (list, tuple)) and all(
            isinstance(item, _SCALARS) and not isinstance(item, bool) for item in value
        ):
            return ",".join(str(item) for item in value)
        if not self.options.flatten_nested:
            raise TypeError(
                f"Nested value of type {type(value).__name__} requires flatten_nested=True"
            )
        return json.dumps(
            self._to_plain(value),
            separators=self.options.separators,
            ensure_ascii=self.options.ensure_ascii
        )

    def _to_plain(self, value: Any) -> Any:
        if hasattr(value, "to_wire"):
            return value.to_wire()
        if isinstance(value, BaseModel):
            return value.model_dump(exclude_none=True)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, dict):
            return {str(k): self._to_plain(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._to_plain(item) for item in value]
        return value

    # =========================================================================
    # Decoding
    # =========================================================================

    def as_portal_response(
        self,
        body: Optional[str],
        response_type: Type[T],
        geometry: Optional[Type[Geometry]] = None
    ) -> Optional[T]:
        """
        Decode a response body.

        Args:
            body: Raw response text
            response_type: PortalResponse subclass to decode into
            geometry: Geometry class bound for this call (features only)

        Returns:
            Decoded response, or None for a blank body. A top-level service
            error is returned on response.error, not raised.

        Raises:
            ProtocolError: If a non-blank body is not a valid response_type
        """
        if body is None or not body.strip():
            return None

        try:
            return response_type.model_validate_json(
                body,
                context={"geometry": geometry}
            )
        except ValidationError as e:
            logger.debug(
                f"Failed to decode {response_type.__name__}",
                extra={'custom_dimensions': {
                    'error_count': e.error_count(),
                    'body_preview': body[:200]
                }}
            )
            raise ProtocolError(
                f"Response is not a valid {response_type.__name__}: {e.error_count()} error(s)",
                details={
                    "errors": e.errors(include_url=False, include_context=False, include_input=False),
                    "body_preview": body[:200]
                }
            ) from e
