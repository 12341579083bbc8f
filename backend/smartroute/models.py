from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TransportType = Literal["airplane", "train", "bus", "ferry", "winter_road", "taxi"]
Season = Literal["summer", "winter", "transition", "all"]
HubLevel = Literal["federal", "regional"]
AirportClass = Literal["A", "B", "C", "D"]
StopType = Literal["airport", "train_station", "bus_station", "ferry_pier", "winter_road_point"]
DistanceMethod = Literal["haversine", "osrm", "river_path", "rail_path", "manual"]
ServiceClass = Literal["economy", "business", "first"]
Region = Literal["russia", "yakutia", "arctic"]
RoutePriority = Literal["price", "time", "comfort"]
LineStyle = Literal["solid", "dashed", "dotted", "wavy"]
MarkerIcon = Literal["airport", "train_station", "bus_station", "ferry_pier", "winter_road_point", "hub", "transfer"]
MarkerType = Literal["start", "end", "transfer", "hub", "intermediate"]

TRANSPORT_TYPES: tuple[TransportType, ...] = ("airplane", "train", "bus", "ferry", "winter_road", "taxi")

STOP_TYPE_BY_TRANSPORT: dict[TransportType, StopType] = {
    "airplane": "airport",
    "train": "train_station",
    "bus": "bus_station",
    "ferry": "ferry_pier",
    "winter_road": "winter_road_point",
    # Taxi legs start and end at the bus station of a settlement.
    "taxi": "bus_station",
}


# ---------------------------------------------------------------------------
# Reference records
# ---------------------------------------------------------------------------


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    def as_lon_lat(self) -> tuple[float, float]:
        return (self.longitude, self.latitude)


class Administrative(BaseModel):
    """Subject -> district -> settlement hierarchy of a city."""

    model_config = ConfigDict(frozen=True)

    subject: str
    subject_short: str
    subject_type: Literal["republic", "oblast", "kray", "federal_city"] = "republic"
    district: str | None = None
    settlement: str
    settlement_type: Literal["city", "settlement", "village"] = "city"

    @property
    def full(self) -> str:
        parts = [self.subject]
        if self.district:
            parts.append(self.district)
        parts.append(self.settlement)
        return ", ".join(parts)

    @property
    def medium(self) -> str:
        parts = [self.settlement]
        if self.district:
            parts.append(self.district)
        parts.append(self.subject_short)
        return ", ".join(parts)

    @property
    def short(self) -> str:
        return self.settlement

    @property
    def with_context(self) -> str:
        context = [p for p in (self.district, self.subject_short) if p and p != self.settlement]
        if not context:
            return self.settlement
        return f"{self.settlement} ({', '.join(context)})"

    def formats(self) -> dict[str, str]:
        return {
            "full": self.full,
            "medium": self.medium,
            "short": self.short,
            "with_context": self.with_context,
        }


class Infrastructure(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_airport: bool = False
    airport_class: AirportClass | None = None
    has_train_station: bool = False
    has_bus_station: bool = False
    has_ferry_pier: bool = False
    has_winter_road: bool = False

    @model_validator(mode="after")
    def _airport_class_requires_airport(self) -> "Infrastructure":
        if self.airport_class is not None and not self.has_airport:
            raise ValueError("airport_class requires has_airport")
        return self

    @property
    def has_any_transport(self) -> bool:
        return (
            self.has_airport
            or self.has_train_station
            or self.has_bus_station
            or self.has_ferry_pier
            or self.has_winter_road
        )


class City(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    normalized_name: str
    coordinates: Coordinates
    timezone: str = "Asia/Yakutsk"
    population: int | None = Field(default=None, ge=0)
    is_key_city: bool = False
    is_hub: bool = False
    hub_level: HubLevel | None = None
    administrative: Administrative
    infrastructure: Infrastructure = Field(default_factory=Infrastructure)
    synonyms: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _hub_level_requires_hub(self) -> "City":
        if self.hub_level is not None and not self.is_hub:
            raise ValueError(f"city {self.id}: hub_level requires is_hub")
        return self

    @property
    def in_yakutia(self) -> bool:
        return "Якутия" in self.administrative.subject

    @property
    def is_small_airport(self) -> bool:
        infra = self.infrastructure
        return infra.has_airport and infra.airport_class == "D" and not self.is_hub

    @property
    def is_tiered_hub(self) -> bool:
        return self.is_hub and self.hub_level in ("federal", "regional")


class HubConnections(BaseModel):
    model_config = ConfigDict(frozen=True)

    federal: tuple[str, ...] = ()
    regional: tuple[str, ...] = ()
    local: tuple[str, ...] = ()

    def all(self) -> tuple[str, ...]:
        return (*self.federal, *self.regional, *self.local)


class HubSchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    frequency: Literal["daily", "weekly", "seasonal"] = "daily"
    # ISO weekdays, Monday = 1.
    days: tuple[int, ...] = ()
    season_start: date | None = None
    season_end: date | None = None

    @field_validator("days")
    @classmethod
    def _iso_weekdays(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        for day in v:
            if day < 1 or day > 7:
                raise ValueError(f"schedule day {day} is outside 1..7")
        return v

    @model_validator(mode="after")
    def _frequency_requirements(self) -> "HubSchedule":
        if self.frequency == "weekly" and not self.days:
            raise ValueError("weekly schedule requires days")
        if self.frequency == "seasonal":
            if self.season_start is None or self.season_end is None:
                raise ValueError("seasonal schedule requires season_start and season_end")
            if self.season_end < self.season_start:
                raise ValueError("seasonal schedule window is inverted")
        return self


class Hub(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    level: HubLevel
    coordinates: Coordinates
    connections: HubConnections = Field(default_factory=HubConnections)
    schedule: HubSchedule = Field(default_factory=HubSchedule)
    airport_code: str | None = None

    @property
    def city_id(self) -> str:
        return self.id.removesuffix("-hub")

    def all_connections(self) -> tuple[str, ...]:
        return self.connections.all()

    def has_connection(self, hub_id: str) -> bool:
        return hub_id in self.connections.all()

    def is_available_on(self, day: date) -> bool:
        schedule = self.schedule
        if schedule.frequency == "daily":
            return True
        if schedule.frequency == "weekly":
            return day.isoweekday() in schedule.days
        if schedule.season_start is None or schedule.season_end is None:
            return False
        return schedule.season_start <= day <= schedule.season_end


class Stop(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: StopType
    coordinates: Coordinates
    city_id: str
    is_hub: bool = False


class Connection(BaseModel):
    """Directed edge of the transport network as stored in the catalog."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    type: TransportType
    from_city_id: str
    to_city_id: str
    distance_km: float
    duration_min: float
    base_price: float
    season: Season = "all"
    is_direct: bool = True
    intermediate_cities: tuple[str | Coordinates, ...] = ()
    via_hubs: tuple[str, ...] = ()
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def river(self) -> str | None:
        return self.metadata.get("river")


# ---------------------------------------------------------------------------
# Computed route objects
# ---------------------------------------------------------------------------


class DistanceModel(BaseModel):
    value: float = Field(..., ge=0)
    unit: Literal["km"] = "km"
    method: DistanceMethod
    breakdown: dict[str, float] = Field(default_factory=dict)


class AdditionalCosts(BaseModel):
    taxi: int = 0
    transfer: int = 0
    baggage: int = 0
    fees: int = 0

    @property
    def total(self) -> int:
        return self.taxi + self.transfer + self.baggage + self.fees


class PriceModel(BaseModel):
    base: int
    additional: AdditionalCosts = Field(default_factory=AdditionalCosts)
    total: int
    currency: Literal["RUB"] = "RUB"
    display: str


class DurationModel(BaseModel):
    value: int = Field(..., ge=0)
    unit: Literal["minutes"] = "minutes"
    display: str
    travel: int | None = None
    transfers: int | None = None


class Seasonality(BaseModel):
    season: Season
    available: bool
    period_start: date | None = None
    period_end: date | None = None


class GeoJSONLineString(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: list[tuple[float, float]]


class RouteSegment(BaseModel):
    id: str
    type: TransportType
    from_stop: Stop
    to_stop: Stop
    connection_id: str | None = None
    distance: DistanceModel
    duration: DurationModel
    price: PriceModel
    seasonality: Seasonality
    geometry: GeoJSONLineString
    is_direct: bool = True
    via_hubs: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    # Set when part of the segment was substituted with a default.
    degraded: list[str] = Field(default_factory=list)
    risk_score: float | None = None


class SegmentValidation(BaseModel):
    segment_id: str
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RouteValidation(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    segment_validations: list[SegmentValidation] = Field(default_factory=list)


class VisualizationPolyline(BaseModel):
    transport_type: TransportType
    geometry: list[tuple[float, float]]
    color: str
    weight: int
    style: LineStyle
    dash_array: str | None = None


class VisualizationMarker(BaseModel):
    coordinates: Coordinates
    icon: MarkerIcon
    label: str | None = None
    type: MarkerType


class MapBounds(BaseModel):
    north: float
    south: float
    east: float
    west: float


class Visualization(BaseModel):
    polylines: list[VisualizationPolyline]
    markers: list[VisualizationMarker]
    bounds: MapBounds


class SmartRoute(BaseModel):
    id: str
    from_city_id: str
    to_city_id: str
    from_city_name: str
    to_city_name: str
    travel_date: date
    season: Season
    segments: list[RouteSegment]
    total_distance: DistanceModel
    total_duration: DurationModel
    total_price: PriceModel
    validation: RouteValidation
    visualization: Visualization

    @property
    def transport_types(self) -> list[TransportType]:
        return [segment.type for segment in self.segments]


class BuildRouteResult(BaseModel):
    route: SmartRoute
    alternatives: list[SmartRoute] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class RouteRequest(BaseModel):
    from_city_id: str = Field(..., min_length=1)
    to_city_id: str = Field(..., min_length=1)
    date: str = Field(..., description="Travel date, ISO 8601 (YYYY-MM-DD or full timestamp).")
    preferred_transport: TransportType | None = None
    max_transfers: int | None = Field(default=None, ge=0, le=10)
    priority: RoutePriority = "price"
    include_alternatives: bool = True

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_aliases(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        data = dict(value)
        for legacy, field in (("fromCityId", "from_city_id"), ("toCityId", "to_city_id")):
            if field not in data and legacy in data:
                data[field] = data[legacy]
        if "preferred_transport" not in data and "preferredTransport" in data:
            data["preferred_transport"] = data["preferredTransport"]
        if "max_transfers" not in data and "maxTransfers" in data:
            data["max_transfers"] = data["maxTransfers"]
        return data


class RouteResponse(BaseModel):
    found: bool
    route: SmartRoute | None = None
    alternatives: list[SmartRoute] = Field(default_factory=list)


class CitySearchHit(BaseModel):
    city_id: str
    name: str
    match: Literal["exact", "synonym", "prefix", "district", "region", "substring"]
    score: float
    formats: dict[str, str]


class CitySearchResponse(BaseModel):
    query: str
    results: list[CitySearchHit]


class ConnectivityResponse(BaseModel):
    is_connected: bool
    component_count: int
    components: list[list[str]]
    isolated_cities: list[str]
    added_connections: list[Connection] = Field(default_factory=list)
    repaired_is_connected: bool | None = None


class ProblemConnection(BaseModel):
    connection_id: str
    type: TransportType
    from_city_id: str
    to_city_id: str
    reason: str
    recommendations: list[str] = Field(default_factory=list)


class ProblemConnectionsResponse(BaseModel):
    count: int
    problems: list[ProblemConnection]
    details: dict[str, Any] = Field(default_factory=dict)
