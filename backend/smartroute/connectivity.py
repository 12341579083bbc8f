from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .geo import distance_between
from .logging_utils import log_event
from .models import City, Connection, TransportType
from .pricing import PriceParams, calculate_base_price
from .registry import NetworkRegistry

AVERAGE_SPEED_KMH: dict[TransportType, float] = {
    "airplane": 800.0,
    "train": 80.0,
    "bus": 60.0,
    "ferry": 30.0,
    "winter_road": 50.0,
    "taxi": 40.0,
}

AIR_MIN_KM = 200.0
RAIL_MAX_KM = 2_000.0
FERRY_MAX_KM = 500.0
BUS_MAX_KM = 1_500.0


@dataclass(frozen=True)
class ConnectivityReport:
    is_connected: bool
    component_count: int
    components: tuple[tuple[str, ...], ...]
    isolated_cities: tuple[str, ...]
    added_connections: tuple[Connection, ...] = ()


def build_adjacency(city_ids: Iterable[str], connections: Iterable[Connection]) -> dict[str, set[str]]:
    """Undirected adjacency over ``city_ids``; edges to unknown cities are ignored."""
    graph: dict[str, set[str]] = {city_id: set() for city_id in city_ids}
    for connection in connections:
        a = graph.get(connection.from_city_id)
        b = graph.get(connection.to_city_id)
        if a is None or b is None:
            continue
        a.add(connection.to_city_id)
        b.add(connection.from_city_id)
    return graph


def _component_from(graph: Mapping[str, set[str]], start: str, visited: set[str]) -> list[str]:
    component: list[str] = []
    queue: deque[str] = deque([start])
    visited.add(start)
    while queue:
        node = queue.popleft()
        component.append(node)
        for nxt in sorted(graph.get(node, ())):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return component


def analyse_graph(graph: Mapping[str, set[str]]) -> ConnectivityReport:
    visited: set[str] = set()
    components: list[tuple[str, ...]] = []
    isolated: list[str] = []
    for city_id in graph:
        if city_id in visited:
            continue
        component = _component_from(graph, city_id, visited)
        if len(component) == 1:
            isolated.append(city_id)
        else:
            components.append(tuple(component))
    return ConnectivityReport(
        is_connected=len(components) <= 1 and not isolated,
        component_count=len(components) + len(isolated),
        components=tuple(components),
        isolated_cities=tuple(isolated),
    )


def check_connectivity(
    registry: NetworkRegistry,
    connections: Iterable[Connection] | None = None,
) -> ConnectivityReport:
    edges = registry.connections if connections is None else connections
    return analyse_graph(build_adjacency(registry.city_map.keys(), edges))


def choose_transport_type(origin: City, dest: City) -> TransportType:
    d = distance_between(origin.coordinates, dest.coordinates)
    a = origin.infrastructure
    b = dest.infrastructure
    if a.has_airport and b.has_airport and d > AIR_MIN_KM:
        return "airplane"
    if a.has_train_station and b.has_train_station and d < RAIL_MAX_KM:
        return "train"
    if a.has_ferry_pier and b.has_ferry_pier and d < FERRY_MAX_KM:
        return "ferry"
    if d < BUS_MAX_KM:
        return "bus"
    return "airplane"


def synthesize_connection(origin: City, dest: City, transport_type: TransportType) -> Connection:
    distance_km = distance_between(origin.coordinates, dest.coordinates)
    speed = AVERAGE_SPEED_KMH.get(transport_type, 60.0)
    duration_min = max(1, round(distance_km / speed * 60.0))
    base_price = calculate_base_price(
        transport_type,
        PriceParams(
            distance_km=distance_km,
            season="summer",
            region="yakutia" if origin.in_yakutia else "russia",
        ),
    )
    return Connection(
        id=f"connectivity-{origin.id}-{dest.id}-{transport_type}",
        type=transport_type,
        from_city_id=origin.id,
        to_city_id=dest.id,
        distance_km=round(distance_km, 1),
        duration_min=duration_min,
        base_price=base_price,
        season="all",
        is_direct=True,
    )


def _nearest(city: City, candidates: Iterable[City]) -> City | None:
    best: City | None = None
    best_d = float("inf")
    for other in candidates:
        if other.id == city.id:
            continue
        d = distance_between(city.coordinates, other.coordinates)
        if d < best_d:
            best_d = d
            best = other
    return best


def _hub_cities(registry: NetworkRegistry) -> list[City]:
    out: list[City] = []
    for hub in registry.hubs:
        match = next(
            (
                c
                for c in registry.cities
                if c.name == hub.name or c.id == hub.city_id or c.normalized_name == hub.name.lower()
            ),
            None,
        )
        if match is not None:
            out.append(match)
    return out


def _repair_isolated(registry: NetworkRegistry, city: City) -> Connection | None:
    hub_city = _nearest(city, _hub_cities(registry))
    if hub_city is not None:
        return synthesize_connection(city, hub_city, "airplane")
    equipped = _nearest(city, (c for c in registry.cities if c.infrastructure.has_any_transport))
    if equipped is not None:
        return synthesize_connection(city, equipped, choose_transport_type(city, equipped))
    anyone = _nearest(city, registry.cities)
    if anyone is not None:
        return synthesize_connection(city, anyone, choose_transport_type(city, anyone))
    return None


def _closest_pair(registry: NetworkRegistry, left: Iterable[str], right: Iterable[str]) -> tuple[City, City] | None:
    right_cities = [registry.require_city(cid) for cid in right]
    best: tuple[City, City] | None = None
    best_d = float("inf")
    for cid in left:
        a = registry.require_city(cid)
        for b in right_cities:
            d = distance_between(a.coordinates, b.coordinates)
            if d < best_d:
                best_d = d
                best = (a, b)
    return best


def repair_edges(registry: NetworkRegistry, report: ConnectivityReport) -> list[Connection]:
    """Edges that join every isolated city and every pair of adjacent components once."""
    added: list[Connection] = []
    for city_id in report.isolated_cities:
        edge = _repair_isolated(registry, registry.require_city(city_id))
        if edge is not None:
            added.append(edge)
    for left, right in zip(report.components, report.components[1:]):
        pair = _closest_pair(registry, left, right)
        if pair is not None:
            a, b = pair
            added.append(synthesize_connection(a, b, choose_transport_type(a, b)))
    return added


def guarantee_connectivity(
    registry: NetworkRegistry,
    connections: Iterable[Connection] | None = None,
    *,
    max_passes: int = 1,
) -> ConnectivityReport:
    """Analyse the network and add synthetic edges until connected or out of passes.

    The returned report describes the graph after repair and lists every edge
    that was added. The registry itself is left untouched.
    """
    edges = list(registry.connections if connections is None else connections)
    report = check_connectivity(registry, edges)
    added: list[Connection] = []
    passes = 0
    while not report.is_connected and passes < max(1, int(max_passes)):
        new_edges = repair_edges(registry, report)
        passes += 1
        if not new_edges:
            break
        added.extend(new_edges)
        edges.extend(new_edges)
        report = check_connectivity(registry, edges)

    if added:
        log_event(
            "connectivity_repaired",
            passes=passes,
            added=[edge.id for edge in added],
            is_connected=report.is_connected,
            component_count=report.component_count,
        )
    return ConnectivityReport(
        is_connected=report.is_connected,
        component_count=report.component_count,
        components=report.components,
        isolated_cities=report.isolated_cities,
        added_connections=tuple(added),
    )
