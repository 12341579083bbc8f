from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .city_search import search_cities
from .connectivity import check_connectivity, guarantee_connectivity
from .logging_utils import log_event
from .models import (
    CitySearchResponse,
    ConnectivityResponse,
    ProblemConnection,
    ProblemConnectionsResponse,
    RouteRequest,
    RouteResponse,
)
from .planning_errors import PlanningError, normalize_reason_code
from .registry import NetworkRegistry, default_registry
from .road_routing import RoadRouter
from .route_cache import ROUTE_CACHE, clear_route_cache, route_cache_stats
from .route_builder import RouteBuilder
from .routing_osrm import OSRMClient
from .settings import settings

_STATUS_BY_REASON = {
    "city_not_found": 404,
    "invalid_date": 422,
    "invalid_request": 422,
    "route_segments_failed": 502,
    "reference_data_unavailable": 503,
    "reference_data_invalid": 503,
    "hub_record_invalid": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.osrm = OSRMClient(
        base_url=settings.osrm_base_url,
        profile=settings.osrm_profile,
        timeout_s=settings.osrm_timeout_s,
        connect_timeout_s=settings.osrm_connect_timeout_s,
    )
    app.state.registry = default_registry()
    yield
    await app.state.osrm.aclose()


app = FastAPI(title="SmartRoute planner", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def osrm_client(request: Request) -> OSRMClient:
    osrm: OSRMClient | None = getattr(request.app.state, "osrm", None)  # type: ignore[attr-defined]
    if osrm is None:
        raise HTTPException(status_code=503, detail="OSRM client not initialised")
    return osrm


def network_registry(request: Request) -> NetworkRegistry:
    registry: NetworkRegistry | None = getattr(request.app.state, "registry", None)  # type: ignore[attr-defined]
    if registry is None:
        raise HTTPException(status_code=503, detail="reference data not loaded")
    return registry


OSRMDep = Annotated[OSRMClient, Depends(osrm_client)]
RegistryDep = Annotated[NetworkRegistry, Depends(network_registry)]


def _http_error(e: PlanningError) -> HTTPException:
    code = normalize_reason_code(e.reason_code)
    return HTTPException(
        status_code=_STATUS_BY_REASON.get(code, 400),
        detail={"reason_code": code, "message": e.message, "details": e.details or {}},
    )


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/cities/search", response_model=CitySearchResponse)
async def city_search(
    registry: RegistryDep,
    q: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=50)] = 10,
) -> CitySearchResponse:
    return CitySearchResponse(query=q, results=search_cities(registry, q, limit=limit))


@app.post("/routes/build", response_model=RouteResponse)
async def build_route(req: RouteRequest, registry: RegistryDep, osrm: OSRMDep) -> RouteResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    builder = RouteBuilder(registry, road_router=RoadRouter(osrm))
    try:
        result = await builder.build_route(req)
    except PlanningError as e:
        log_event(
            "route_request_failed",
            request_id=request_id,
            reason_code=e.reason_code,
            from_city_id=req.from_city_id,
            to_city_id=req.to_city_id,
        )
        raise _http_error(e) from e

    log_event(
        "route_request",
        request_id=request_id,
        from_city_id=req.from_city_id,
        to_city_id=req.to_city_id,
        date=req.date,
        preferred_transport=req.preferred_transport,
        found=result is not None,
        route_id=result.route.id if result is not None else None,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    if result is None:
        return RouteResponse(found=False)
    return RouteResponse(found=True, route=result.route, alternatives=result.alternatives)


@app.get("/network/connectivity", response_model=ConnectivityResponse)
async def network_connectivity(
    registry: RegistryDep,
    repair: bool = False,
) -> ConnectivityResponse:
    report = check_connectivity(registry)
    response = ConnectivityResponse(
        is_connected=report.is_connected,
        component_count=report.component_count,
        components=[list(c) for c in report.components],
        isolated_cities=list(report.isolated_cities),
    )
    if repair and not report.is_connected:
        repaired = guarantee_connectivity(registry, max_passes=settings.connectivity_repair_passes)
        response.added_connections = list(repaired.added_connections)
        response.repaired_is_connected = repaired.is_connected
    return response


@app.get("/network/problems", response_model=ProblemConnectionsResponse)
async def network_problems(registry: RegistryDep) -> ProblemConnectionsResponse:
    # Accepted connections already passed validation at load time.
    invalid = registry.rejected
    problems = [
        ProblemConnection(
            connection_id=item.connection.id,
            type=item.connection.type,
            from_city_id=item.connection.from_city_id,
            to_city_id=item.connection.to_city_id,
            reason=item.reason,
            recommendations=list(item.recommendations),
        )
        for item in invalid
    ]
    by_type: dict[str, int] = {}
    for problem in problems:
        by_type[problem.type] = by_type.get(problem.type, 0) + 1
    return ProblemConnectionsResponse(
        count=len(problems),
        problems=problems,
        details={"by_type": by_type, "accepted_connections": len(registry.connections)},
    )


@app.get("/cache/stats")
async def cache_stats() -> dict[str, int]:
    ROUTE_CACHE.purge_expired()
    return route_cache_stats()


@app.delete("/cache")
async def cache_clear() -> dict[str, int]:
    cleared = clear_route_cache()
    log_event("route_cache_cleared", cleared=cleared)
    return {"cleared": cleared}
