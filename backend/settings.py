# Runtime configuration read from the environment (.env supported)
import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

load_dotenv()  # Local .env is optional; real env vars win

AGE_MISMATCH_POLICIES = ("warn", "reject")
DEFAULT_MAX_PHOTO_BYTES = 2 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    demo_mode: bool
    frontend_url: str
    log_level: str
    age_mismatch_policy: str
    age_tolerance_years: int
    max_photo_bytes: int

    @property
    def allowed_origins(self) -> List[str]:
        origins = [
            "http://localhost:3000",
            "http://localhost:5173",
        ]
        if self.frontend_url:
            origins.append(self.frontend_url)
        return origins


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def get_settings() -> Settings:
    """Read settings from the environment. Re-read on every call so tests can monkeypatch env vars."""
    policy = os.environ.get("AGE_MISMATCH_POLICY", "warn").strip().lower() or "warn"
    if policy not in AGE_MISMATCH_POLICIES:
        raise ValueError(f"AGE_MISMATCH_POLICY must be one of {AGE_MISMATCH_POLICIES}, got {policy!r}")
    return Settings(
        demo_mode=os.environ.get("DEMO_MODE", "").lower() == "true",
        frontend_url=os.environ.get("FRONTEND_URL", ""),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        age_mismatch_policy=policy,
        age_tolerance_years=max(0, _int_env("AGE_TOLERANCE_YEARS", 0)),
        max_photo_bytes=_int_env("MAX_PHOTO_BYTES", DEFAULT_MAX_PHOTO_BYTES),
    )
