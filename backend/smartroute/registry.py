from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from .connection_validator import InvalidConnection, validate_and_filter_connections
from .geo import distance_between
from .logging_utils import log_event
from .models import City, Connection, Hub, Stop, StopType, TransportType
from .planning_errors import PlanningError, city_not_found
from .settings import settings

CITIES_FILE = "cities.json"
HUBS_FILE = "hubs.json"
CONNECTIONS_FILE = "connections.json"

_STOP_LAYOUT: tuple[tuple[str, StopType, str, str], ...] = (
    # (infrastructure flag, stop type, id suffix, display prefix)
    ("has_airport", "airport", "airport", "Аэропорт"),
    ("has_train_station", "train_station", "train-station", "Ж/Д вокзал"),
    ("has_bus_station", "bus_station", "bus-station", "Автовокзал"),
    ("has_ferry_pier", "ferry_pier", "ferry-pier", "Речной порт"),
    ("has_winter_road", "winter_road_point", "winter-road", "Зимник"),
)


def build_stops(cities: Iterable[City], *, airport_codes: Mapping[str, str] | None = None) -> tuple[Stop, ...]:
    """Derive the stops a city owns from its infrastructure flags."""
    codes = airport_codes or {}
    stops: list[Stop] = []
    for city in cities:
        infra = city.infrastructure
        for flag, stop_type, suffix, prefix in _STOP_LAYOUT:
            if not getattr(infra, flag):
                continue
            name = f"{prefix} {city.name}"
            if stop_type == "airport" and city.id in codes:
                name = f"{name} ({codes[city.id]})"
            stops.append(
                Stop(
                    id=f"{city.id}-{suffix}",
                    name=name,
                    type=stop_type,
                    coordinates=city.coordinates,
                    city_id=city.id,
                    is_hub=city.is_hub,
                )
            )
    return tuple(stops)


class NetworkRegistry:
    """Read-only view over the cities, hubs, stops and validated connections.

    Built once and shared by every planning component; nothing here mutates
    after construction. Tests build small fixture registries directly.
    """

    def __init__(
        self,
        *,
        cities: Iterable[City],
        hubs: Iterable[Hub] = (),
        connections: Iterable[Connection] = (),
        validate: bool = True,
    ) -> None:
        city_map: dict[str, City] = {}
        for city in cities:
            if city.id in city_map:
                raise PlanningError(
                    reason_code="reference_data_invalid",
                    message=f"Duplicate city id in reference data: {city.id}",
                )
            city_map[city.id] = city
        self._cities: Mapping[str, City] = MappingProxyType(city_map)
        self._hubs: Mapping[str, Hub] = MappingProxyType({hub.id: hub for hub in hubs})

        airport_codes = {
            hub.city_id: hub.airport_code for hub in self._hubs.values() if hub.airport_code
        }
        self._stops = build_stops(city_map.values(), airport_codes=airport_codes)
        stops_by_city: dict[str, list[Stop]] = {}
        for stop in self._stops:
            stops_by_city.setdefault(stop.city_id, []).append(stop)
        self._stops_by_city = {k: tuple(v) for k, v in stops_by_city.items()}
        self._stops_by_id = {stop.id: stop for stop in self._stops}

        raw = list(connections)
        rejected: list[InvalidConnection] = []
        known: list[Connection] = []
        for connection in raw:
            missing = [cid for cid in (connection.from_city_id, connection.to_city_id) if cid not in city_map]
            if missing:
                rejected.append(
                    InvalidConnection(
                        connection=connection,
                        reason=f"Connection {connection.id} references unknown cities: {', '.join(missing)}",
                    )
                )
                continue
            known.append(connection)
        if validate:
            partition = validate_and_filter_connections(known, city_map)
            accepted = partition.valid
            rejected.extend(partition.invalid)
        else:
            accepted = tuple(known)
        self._connections: tuple[Connection, ...] = tuple(accepted)
        self._rejected: tuple[InvalidConnection, ...] = tuple(rejected)

        by_pair: dict[tuple[str, str], list[Connection]] = {}
        by_from: dict[str, list[Connection]] = {}
        by_to: dict[str, list[Connection]] = {}
        for connection in self._connections:
            by_pair.setdefault((connection.from_city_id, connection.to_city_id), []).append(connection)
            by_from.setdefault(connection.from_city_id, []).append(connection)
            by_to.setdefault(connection.to_city_id, []).append(connection)
        self._by_pair = {k: tuple(v) for k, v in by_pair.items()}
        self._by_from = {k: tuple(v) for k, v in by_from.items()}
        self._by_to = {k: tuple(v) for k, v in by_to.items()}

    # -- cities ---------------------------------------------------------

    @property
    def cities(self) -> tuple[City, ...]:
        return tuple(self._cities.values())

    @property
    def city_map(self) -> Mapping[str, City]:
        return self._cities

    def city(self, city_id: str) -> City | None:
        return self._cities.get(city_id)

    def require_city(self, city_id: str) -> City:
        city = self._cities.get(city_id)
        if city is None:
            raise city_not_found(city_id)
        return city

    # -- hubs -----------------------------------------------------------

    @property
    def hubs(self) -> tuple[Hub, ...]:
        return tuple(self._hubs.values())

    def hub(self, hub_id: str) -> Hub | None:
        return self._hubs.get(hub_id)

    def hub_for_city(self, city_id: str) -> Hub | None:
        return self._hubs.get(f"{city_id}-hub")

    def nearest_regional_hub(self, city_id: str) -> Hub | None:
        city = self._cities.get(city_id)
        if city is None:
            return None
        regional = [hub for hub in self._hubs.values() if hub.level == "regional"]
        if not regional:
            return None
        return min(regional, key=lambda hub: distance_between(city.coordinates, hub.coordinates))

    # -- stops ----------------------------------------------------------

    @property
    def stops(self) -> tuple[Stop, ...]:
        return self._stops

    def stop(self, stop_id: str) -> Stop | None:
        return self._stops_by_id.get(stop_id)

    def stops_for_city(self, city_id: str, stop_type: StopType | None = None) -> tuple[Stop, ...]:
        stops = self._stops_by_city.get(city_id, ())
        if stop_type is None:
            return stops
        return tuple(stop for stop in stops if stop.type == stop_type)

    # -- connections ----------------------------------------------------

    @property
    def connections(self) -> tuple[Connection, ...]:
        return self._connections

    @property
    def rejected(self) -> tuple[InvalidConnection, ...]:
        return self._rejected

    def connections_between(
        self,
        from_city_id: str,
        to_city_id: str,
        transport_type: TransportType | None = None,
    ) -> tuple[Connection, ...]:
        found = self._by_pair.get((from_city_id, to_city_id), ())
        if transport_type is None:
            return found
        return tuple(c for c in found if c.type == transport_type)

    def connections_from(self, city_id: str) -> tuple[Connection, ...]:
        return self._by_from.get(city_id, ())

    def connections_to(self, city_id: str) -> tuple[Connection, ...]:
        return self._by_to.get(city_id, ())

    def connections_by_type(self, transport_type: TransportType) -> tuple[Connection, ...]:
        return tuple(c for c in self._connections if c.type == transport_type)

    def has_connection(
        self,
        from_city_id: str,
        to_city_id: str,
        transport_type: TransportType | None = None,
    ) -> bool:
        return bool(self.connections_between(from_city_id, to_city_id, transport_type))

    def with_connections(self, extra: Iterable[Connection]) -> "NetworkRegistry":
        """Return a new registry that also carries ``extra`` (validated like the rest)."""
        return NetworkRegistry(
            cities=self._cities.values(),
            hubs=self._hubs.values(),
            connections=(*self._connections, *extra),
        )


def _read_catalog(path: Path, key: str) -> list[dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise PlanningError(
            reason_code="reference_data_unavailable",
            message=f"Reference catalog '{path}' is missing.",
        ) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise PlanningError(
            reason_code="reference_data_invalid",
            message=f"Reference catalog '{path}' is not valid JSON.",
        ) from exc
    records = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(records, list):
        raise PlanningError(
            reason_code="reference_data_invalid",
            message=f"Reference catalog '{path}' has no '{key}' list.",
        )
    return records


def _parse_records(model: type, records: list[dict[str, Any]], *, path: Path, reason_code: str) -> list[Any]:
    out = []
    for idx, raw in enumerate(records):
        try:
            out.append(model.model_validate(raw))
        except ValidationError as exc:
            record_id = raw.get("id", idx) if isinstance(raw, dict) else idx
            raise PlanningError(
                reason_code=reason_code,
                message=f"Invalid record '{record_id}' in '{path.name}': {exc.errors()[0]['msg']}",
                details={"record": str(record_id)},
            ) from exc
    return out


def load_registry(data_dir: str | Path | None = None) -> NetworkRegistry:
    root = Path(data_dir or settings.reference_data_dir)
    cities = _parse_records(
        City,
        _read_catalog(root / CITIES_FILE, "cities"),
        path=root / CITIES_FILE,
        reason_code="reference_data_invalid",
    )
    hubs = _parse_records(
        Hub,
        _read_catalog(root / HUBS_FILE, "hubs"),
        path=root / HUBS_FILE,
        reason_code="hub_record_invalid",
    )
    connections = _parse_records(
        Connection,
        _read_catalog(root / CONNECTIONS_FILE, "connections"),
        path=root / CONNECTIONS_FILE,
        reason_code="reference_data_invalid",
    )
    registry = NetworkRegistry(cities=cities, hubs=hubs, connections=connections)
    for rejected in registry.rejected:
        log_event(
            "connection_rejected",
            connection_id=rejected.connection.id,
            transport_type=rejected.connection.type,
            reason=rejected.reason,
        )
    log_event(
        "reference_registry_loaded",
        data_dir=str(root),
        cities=len(registry.cities),
        hubs=len(registry.hubs),
        stops=len(registry.stops),
        connections=len(registry.connections),
        rejected=len(registry.rejected),
    )
    return registry


@lru_cache(maxsize=1)
def default_registry() -> NetworkRegistry:
    return load_registry(settings.reference_data_dir)
