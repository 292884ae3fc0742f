"""
Health Check Module for the GeoServices Gateway

Two-tier health checks built on PortalGateway.ping():

1. Public Health:
   - Minimal response: status and timestamp only
   - Pings the services root

2. Detailed Health:
   - Services root connectivity with latency
   - One check per configured layer/service endpoint
   - Per-check details for operations dashboards

Status rules:
    services root unreachable or malformed         -> UNHEALTHY
    services root reports a service-level error    -> DEGRADED
    any endpoint check failing or warning          -> DEGRADED

Usage:
    from health import get_public_health, get_detailed_health

    result = get_public_health(gateway)
    # {"status": "healthy", "timestamp": "2026-10-17T12:00:00+00:00"}

    result = get_detailed_health(gateway, endpoints=["Hydrography/Watershed173811/MapServer/1"])
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

from geoservices.errors import GatewayError
from geoservices.gateway import PortalGateway
from geoservices.models import Endpoint, as_endpoint
from util_logger import ComponentType, LoggerFactory

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "HealthService")


# ============================================================================
# Health Status Enum
# ============================================================================

class HealthStatus(str, Enum):
    """Health status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"      # Reachable but reporting errors
    UNHEALTHY = "unhealthy"    # Services root unreachable


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class CheckResult:
    """Result of a single health check."""
    status: str              # "pass", "warn" or "fail"
    latency_ms: float
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {
            "status": self.status,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message
        }
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Health Check Functions
# ============================================================================

def check_service_connectivity(
    gateway: PortalGateway,
    endpoint: Union[str, Endpoint] = ""
) -> CheckResult:
    """
    Ping an endpoint and classify the outcome.

    Args:
        gateway: Gateway to check through
        endpoint: Relative endpoint; the services root when empty

    Returns:
        CheckResult: "pass" on a clean response, "warn" when the service
        answered with an error object, "fail" on transport or protocol
        failure or an empty body
    """
    endpoint = as_endpoint(endpoint)
    target = endpoint.relative_url or "services root"
    start_time = time.perf_counter()

    try:
        response = gateway.ping(endpoint)
    except GatewayError as e:
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.error(f"Connectivity check failed for {target}: {e}")
        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=f"{target} unreachable: {type(e).__name__}",
            details={"error": str(e), "kind": e.kind.value}
        )

    latency_ms = (time.perf_counter() - start_time) * 1000

    if response is None:
        return CheckResult(
            status="fail",
            latency_ms=latency_ms,
            message=f"{target} returned an empty body"
        )

    if response.error is not None:
        logger.warning(f"{target} reported error {response.error.code}: {response.error.message}")
        return CheckResult(
            status="warn",
            latency_ms=latency_ms,
            message=f"{target} reported a service error",
            details={"code": response.error.code, "error": response.error.message}
        )

    return CheckResult(
        status="pass",
        latency_ms=latency_ms,
        message=f"{target} reachable",
        details={"url": endpoint.build_absolute_url(gateway.root_url)}
    )


def _root_status(result: CheckResult) -> HealthStatus:
    if result.status == "fail":
        return HealthStatus.UNHEALTHY
    if result.status == "warn":
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


# ============================================================================
# Main Entry Points
# ============================================================================

def get_public_health(gateway: PortalGateway) -> Dict[str, Any]:
    """
    Get minimal health status: status and timestamp only.

    Args:
        gateway: Gateway whose services root is pinged

    Returns:
        Dict with status and timestamp
    """
    start_time = time.perf_counter()

    status = _root_status(check_service_connectivity(gateway))

    total_duration = (time.perf_counter() - start_time) * 1000
    logger.info("Public health check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'duration_ms': round(total_duration, 2),
            'check_type': 'public'
        }
    })

    return {
        "status": status.value,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


def get_detailed_health(
    gateway: PortalGateway,
    endpoints: Iterable[Union[str, Endpoint]] = ()
) -> Dict[str, Any]:
    """
    Get detailed health status with one check per endpoint.

    Args:
        gateway: Gateway to check through
        endpoints: Additional layer or service endpoints to ping

    Returns:
        Dict with overall status, per-check results and timings
    """
    start_time = time.perf_counter()
    request_id = str(uuid.uuid4())[:8]

    checks = {}
    degraded = []

    root_result = check_service_connectivity(gateway)
    checks["services_root"] = root_result.to_dict()
    status = _root_status(root_result)

    for endpoint in endpoints:
        endpoint = as_endpoint(endpoint)
        result = check_service_connectivity(gateway, endpoint)
        checks[endpoint.relative_url] = result.to_dict()
        if result.status != "pass":
            degraded.append(endpoint.relative_url)

    if status is HealthStatus.HEALTHY and degraded:
        status = HealthStatus.DEGRADED

    total_duration = (time.perf_counter() - start_time) * 1000
    logger.info("Detailed health check completed", extra={
        'custom_dimensions': {
            'status': status.value,
            'duration_ms': round(total_duration, 2),
            'check_type': 'detailed',
            'request_id': request_id,
            'degraded_endpoints': degraded,
            'root_latency_ms': root_result.latency_ms
        }
    })

    return {
        "status": status.value,
        "root_url": gateway.root_url,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "checks": checks,
        "total_duration_ms": round(total_duration, 2)
    }
