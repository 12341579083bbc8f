from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_osrm_base_url() -> str:
    # In docker-compose, OSRM is reachable by service name "osrm".
    return "http://osrm:5000" if _running_in_docker() else "http://localhost:5000"


def _default_reference_data_dir() -> str:
    return str(Path(__file__).resolve().parent / "data")


class Settings(BaseSettings):
    """Validated settings (env-driven) for the planning core and its adapters."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env"
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    osrm_base_url: str = Field(default_factory=_default_osrm_base_url, alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="driving", alias="OSRM_PROFILE")
    osrm_timeout_s: float = Field(default=10.0, ge=0.5, le=120.0, alias="OSRM_TIMEOUT_S")
    osrm_connect_timeout_s: float = Field(default=5.0, ge=0.1, le=60.0, alias="OSRM_CONNECT_TIMEOUT_S")
    osrm_max_retries: int = Field(default=2, ge=1, le=10, alias="OSRM_MAX_RETRIES")

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Road geometry rarely changes, so cached OSRM answers live for a day.
    route_cache_ttl_s: int = Field(default=86_400, ge=1, alias="ROUTE_CACHE_TTL_S")
    route_cache_max_entries: int = Field(default=2048, ge=1, alias="ROUTE_CACHE_MAX_ENTRIES")

    reference_data_dir: str = Field(
        default_factory=_default_reference_data_dir,
        alias="REFERENCE_DATA_DIR",
    )

    rail_detour_coefficient: float = Field(default=1.15, ge=1.0, le=3.0, alias="RAIL_DETOUR_COEFFICIENT")
    default_max_transfers: int = Field(default=3, ge=0, le=10, alias="DEFAULT_MAX_TRANSFERS")
    max_alternatives: int = Field(default=3, ge=0, le=10, alias="MAX_ALTERNATIVES")
    rail_max_transfers: int = Field(default=5, ge=0, le=20, alias="RAIL_MAX_TRANSFERS")
    connectivity_repair_passes: int = Field(default=1, ge=1, le=10, alias="CONNECTIVITY_REPAIR_PASSES")

    @model_validator(mode="after")
    def _normalise(self) -> "Settings":
        self.osrm_base_url = self.osrm_base_url.rstrip("/") or _default_osrm_base_url()
        self.osrm_profile = (self.osrm_profile or "driving").strip() or "driving"
        self.log_level = (self.log_level or "INFO").strip().upper() or "INFO"
        return self


settings = Settings()
