from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[3]

DEFAULT_HOME_DIR = Path.home() / ".admin-kpis"
DEFAULT_DB_PATH = DEFAULT_HOME_DIR / "store.db"

DEFAULT_CORE_TOOLS = (
    "effect_engine",
    "director_mode",
    "live_rehearsal",
    "live_minutes",
    "generate_patter",
    "magic_wire",
    "visual_brainstorm",
    "assistant_studio",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KPIS_",
        env_file=(BASE_DIR / ".env", BASE_DIR / ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = f"sqlite+aiosqlite:///{DEFAULT_DB_PATH}"
    database_echo: bool = False
    default_window_days: int = 7
    scan_row_cap: int = Field(default=200_000, gt=0)
    scan_page_size: int = Field(default=1000, gt=0)
    lookup_batch_size: int = Field(default=500, gt=0)
    secondary_timeout_seconds: float = Field(default=20.0, gt=0)
    recent_failures_limit: int = Field(default=25, ge=0)
    latency_sample_cap: int = Field(default=5000, gt=0)
    top_tools_limit: int = Field(default=10, gt=0)
    top_spenders_limit: int = Field(default=10, gt=0)
    anomaly_limit: int = Field(default=10, gt=0)
    global_anomaly_multiplier: float = Field(default=2.5, gt=0)
    tool_anomaly_multiplier: float = Field(default=3.0, gt=0)
    core_tools: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_CORE_TOOLS))
    plan_prices_usd: dict[str, float] = Field(
        default_factory=lambda: {"amateur": 9.95, "professional": 29.95},
    )
    infra_estimate_usd: float = Field(default=125.0, ge=0)

    @field_validator("database_url")
    @classmethod
    def _expand_database_url(cls, value: str) -> str:
        for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
            if value.startswith(prefix):
                path = value[len(prefix) :]
                if path.startswith("~"):
                    return f"{prefix}{Path(path).expanduser()}"
        return value

    @field_validator("default_window_days")
    @classmethod
    def _validate_default_window(cls, value: int) -> int:
        if value not in (1, 7, 30, 90):
            raise ValueError("default_window_days must be one of 1, 7, 30, 90")
        return value

    @field_validator("core_tools", mode="before")
    @classmethod
    def _normalize_core_tools(cls, value: object) -> list[str]:
        if value is None:
            return list(DEFAULT_CORE_TOOLS)
        if isinstance(value, str):
            entries = [entry.strip() for entry in value.split(",")]
            return [entry for entry in entries if entry]
        if isinstance(value, (list, tuple)):
            normalized: list[str] = []
            for entry in value:
                if isinstance(entry, str) and entry.strip():
                    normalized.append(entry.strip())
            return normalized
        raise TypeError("core_tools must be a list or comma-separated string")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
