"""Runtime configuration, read from the environment and validated at startup."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

from retro.services.analyst import DEFAULT_BASE_URL, DEFAULT_IMAGE_MODEL, DEFAULT_TEXT_MODEL

ENV_FILE_PATHS = [
    Path("/opt/retro/.env"),
    Path(__file__).parent.parent / ".env",
]

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./retro.db"
DEFAULT_CRON_INTERVAL = "*/30 * * * *"

# Only minute-step expressions are supported, e.g. "*/30 * * * *"
CRON_MINUTE_STEP = re.compile(r"^\*/(\d+)\s+\*\s+\*\s+\*\s+\*$")


def load_env_file_fallback(paths: Iterable[Path] = ENV_FILE_PATHS) -> int:
    """Load KEY=VALUE pairs from the first .env file found. Never overrides the environment."""
    for env_file in paths:
        if env_file.exists() and env_file.is_file():
            loaded_count = 0
            with open(env_file, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                        value = value[1:-1]
                    if key and value and key not in os.environ:
                        os.environ[key] = value
                        loaded_count += 1
            return loaded_count
    return 0


def parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_interval(seconds: Optional[str], cron: Optional[str]) -> int:
    """Resolve the aggregation interval from AI_INTERVAL_SECONDS or AI_CRON_INTERVAL."""
    if seconds:
        try:
            value = int(seconds)
        except ValueError:
            raise ValueError(f"AI_INTERVAL_SECONDS must be an integer, got {seconds!r}") from None
        if value <= 0:
            raise ValueError("AI_INTERVAL_SECONDS must be positive")
        return value

    expression = (cron or DEFAULT_CRON_INTERVAL).strip()
    match = CRON_MINUTE_STEP.match(expression)
    if not match or int(match.group(1)) <= 0:
        raise ValueError(
            f"Unsupported AI_CRON_INTERVAL {expression!r} (expected '*/N * * * *')"
        )
    return int(match.group(1)) * 60


def _positive_float(name: str, raw: Optional[str], default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


@dataclass
class Settings:
    """Everything the process needs to know from the outside world."""
    debug: bool = False
    database_url: str = DEFAULT_DATABASE_URL
    create_all: bool = True
    host: str = "0.0.0.0"
    port: int = 8057
    cors_origins: list = field(default_factory=lambda: ["*"])

    scheduler_enabled: bool = True
    ai_interval_seconds: int = 1800
    ai_run_on_startup: bool = True
    ai_startup_delay_seconds: float = 5
    ai_timeout_seconds: float = 120

    gemini_api_key: Optional[str] = None
    gemini_base_url: str = DEFAULT_BASE_URL
    gemini_text_model: str = DEFAULT_TEXT_MODEL
    gemini_image_model: str = DEFAULT_IMAGE_MODEL
    ai_board_context: str = ""
    ai_summary_language: str = "English"

    @property
    def startup_delay(self) -> Optional[float]:
        """Delay before the first run, or None when there is no startup run."""
        return self.ai_startup_delay_seconds if self.ai_run_on_startup else None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build and validate Settings. Raises ValueError on bad values."""
    env = os.environ if environ is None else environ

    port_raw = env.get("PORT", "8057")
    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer, got {port_raw!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"PORT out of range: {port}")

    startup_delay_raw = env.get("AI_STARTUP_DELAY_SECONDS", "5")
    try:
        startup_delay = float(startup_delay_raw)
    except ValueError:
        raise ValueError(f"AI_STARTUP_DELAY_SECONDS must be a number, got {startup_delay_raw!r}") from None
    if startup_delay < 0:
        raise ValueError("AI_STARTUP_DELAY_SECONDS must not be negative")

    cors = [o.strip() for o in env.get("CORS_ORIGIN", "*").split(",") if o.strip()]

    return Settings(
        debug=parse_bool(env.get("APP_DEBUG"), False),
        database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
        create_all=parse_bool(env.get("DB_CREATE_ALL"), True),
        host=env.get("HOST", "0.0.0.0"),
        port=port,
        cors_origins=cors or ["*"],
        scheduler_enabled=parse_bool(env.get("AI_SCHEDULER_ENABLED"), True),
        ai_interval_seconds=parse_interval(env.get("AI_INTERVAL_SECONDS"), env.get("AI_CRON_INTERVAL")),
        ai_run_on_startup=parse_bool(env.get("AI_RUN_ON_STARTUP"), True),
        ai_startup_delay_seconds=startup_delay,
        ai_timeout_seconds=_positive_float("AI_TIMEOUT_SECONDS", env.get("AI_TIMEOUT_SECONDS"), 120.0),
        gemini_api_key=env.get("GEMINI_API_KEY") or None,
        gemini_base_url=env.get("GEMINI_BASE_URL") or DEFAULT_BASE_URL,
        gemini_text_model=env.get("GEMINI_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
        gemini_image_model=env.get("GEMINI_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
        ai_board_context=env.get("AI_BOARD_CONTEXT", ""),
        ai_summary_language=env.get("AI_SUMMARY_LANGUAGE") or "English",
    )
