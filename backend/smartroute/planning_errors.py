from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "city_not_found",
        "invalid_date",
        "invalid_request",
        "invalid_path_geometry",
        "route_segments_failed",
        "reference_data_unavailable",
        "reference_data_invalid",
        "hub_record_invalid",
        "no_route_found",
    }
)


@dataclass
class PlanningError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def normalize_reason_code(reason_code: str, *, default: str = "invalid_request") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default


def city_not_found(city_id: str) -> PlanningError:
    return PlanningError(
        reason_code="city_not_found",
        message=f"City not found: {city_id}",
        details={"city_id": city_id},
    )
