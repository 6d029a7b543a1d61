from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

RENDERERS = ("reflow", "direct")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    pass


def _get(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    key = raw.lower()
    if key in _TRUE_VALUES:
        return True
    if key in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    port: int = 8080
    environment: str = "development"
    renderer: str = "reflow"
    allowed_origins: tuple[str, ...] = ()
    chromium_path: str | None = None
    chromium_no_sandbox: bool = True
    content_timeout_ms: int = 30000
    capture_timeout_ms: int = 30000
    max_concurrent_sessions: int = 5
    max_body_bytes: int = 2 * 1024 * 1024
    probe_on_startup: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.renderer not in RENDERERS:
            raise ConfigError(f"renderer must be one of {', '.join(RENDERERS)}, got {self.renderer!r}")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        origins = _get(env, "MDPDF_ALLOWED_ORIGINS") or ""
        return cls(
            port=_int(env, "PORT", 8080),
            environment=(_get(env, "MDPDF_ENVIRONMENT", "ENVIRONMENT") or "development").lower(),
            renderer=(_get(env, "MDPDF_RENDERER") or "reflow").lower(),
            allowed_origins=tuple(o.strip().rstrip("/") for o in origins.split(",") if o.strip()),
            chromium_path=_get(env, "MDPDF_CHROMIUM_PATH", "PUPPETEER_EXECUTABLE_PATH"),
            chromium_no_sandbox=_bool(env, "MDPDF_CHROMIUM_NO_SANDBOX", True),
            content_timeout_ms=_int(env, "MDPDF_CONTENT_TIMEOUT_MS", 30000),
            capture_timeout_ms=_int(env, "MDPDF_CAPTURE_TIMEOUT_MS", 30000),
            max_concurrent_sessions=_int(env, "MDPDF_MAX_CONCURRENT_SESSIONS", 5),
            max_body_bytes=_int(env, "MDPDF_MAX_BODY_BYTES", 2 * 1024 * 1024),
            probe_on_startup=_bool(env, "MDPDF_PROBE_ON_STARTUP", True),
            log_level=(_get(env, "MDPDF_LOG_LEVEL") or "INFO").upper(),
        )
