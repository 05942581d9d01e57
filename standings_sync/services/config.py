from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

env_path = os.path.join(os.path.dirname(__file__), "..", ".env")

DEFAULT_TARGET_LEAGUES = [
    2,  # UEFA Champions League
    39,  # Premier League
    78,  # Bundesliga
    135,  # Serie A
    140,  # La Liga
]


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, str(default)).strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def _env_float(name: str, default: float, minimum: float, maximum: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        value = default
    return max(minimum, min(maximum, value))


def _parse_int_csv(raw: str, default: list[int]) -> list[int]:
    values: list[int] = []
    for item in raw.split(","):
        text = item.strip()
        if not text:
            continue
        try:
            values.append(int(text))
        except ValueError:
            continue
    return values or list(default)


class SyncConfig(BaseModel):
    api_base_url: str = "https://v3.football.api-sports.io"
    api_key: str = ""
    live_ttl_seconds: int = Field(default=60, ge=1)
    stale_ttl_seconds: int = Field(default=86400, ge=1)
    metadata_ttl_seconds: int = Field(default=604800, ge=1)
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=1.0, ge=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    min_request_interval_seconds: float = Field(default=1.0, ge=0)
    max_daily_api_calls: int = Field(default=100, ge=1)
    live_refresh_interval_seconds: float = Field(default=60.0, gt=0)
    cache_snapshot_path: str = ""
    api_budget_path: str = ""
    target_leagues: list[int] = Field(default_factory=lambda: list(DEFAULT_TARGET_LEAGUES))

    @model_validator(mode="after")
    def _check_ttl_ordering(self) -> "SyncConfig":
        # Live entries must always expire before historical ones.
        if self.live_ttl_seconds >= self.stale_ttl_seconds:
            raise ValueError("live_ttl_seconds must be shorter than stale_ttl_seconds")
        if self.stale_ttl_seconds > self.metadata_ttl_seconds:
            raise ValueError("stale_ttl_seconds must not exceed metadata_ttl_seconds")
        return self

    @property
    def api_host(self) -> str:
        return self.api_base_url.split("://", 1)[-1].rstrip("/")

    @classmethod
    def from_env(cls) -> "SyncConfig":
        load_dotenv(env_path)
        return cls(
            api_base_url=os.getenv("API_BASE_URL", "https://v3.football.api-sports.io").strip().rstrip("/"),
            api_key=os.getenv("API_SPORTS_KEY", "").strip(),
            live_ttl_seconds=_env_int("LIVE_TTL_SECONDS", default=60, minimum=5, maximum=3600),
            stale_ttl_seconds=_env_int(
                "STALE_TTL_SECONDS", default=86400, minimum=3601, maximum=30 * 86400
            ),
            metadata_ttl_seconds=_env_int(
                "METADATA_TTL_SECONDS", default=604800, minimum=86400, maximum=90 * 86400
            ),
            max_retries=_env_int("MAX_RETRIES", default=3, minimum=0, maximum=10),
            backoff_base_seconds=_env_float("BACKOFF_BASE_SECONDS", default=1.0, minimum=0.0, maximum=60.0),
            request_timeout_seconds=_env_float(
                "REQUEST_TIMEOUT_SECONDS", default=10.0, minimum=1.0, maximum=120.0
            ),
            min_request_interval_seconds=_env_float(
                "MIN_REQUEST_INTERVAL_SECONDS", default=1.0, minimum=0.0, maximum=60.0
            ),
            max_daily_api_calls=_env_int("MAX_DAILY_API_CALLS", default=100, minimum=1, maximum=100000),
            live_refresh_interval_seconds=_env_float(
                "LIVE_REFRESH_INTERVAL_SECONDS", default=60.0, minimum=5.0, maximum=3600.0
            ),
            cache_snapshot_path=os.getenv("CACHE_SNAPSHOT_PATH", "").strip(),
            api_budget_path=os.getenv("API_BUDGET_PATH", "").strip(),
            target_leagues=_parse_int_csv(os.getenv("TARGET_LEAGUES", ""), DEFAULT_TARGET_LEAGUES),
        )


def live_refresh_enabled() -> bool:
    return _env_flag("LIVE_REFRESH_ENABLED", default=True)
