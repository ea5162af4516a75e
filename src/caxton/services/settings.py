from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from caxton.services.push import DEFAULT_APP_ID, DEFAULT_PUSH_URL

__all__ = ["Settings", "load_settings", "ENV_MAP"]

# field name -> environment variable
ENV_MAP: dict[str, str] = {
    "database_url": "DATABASE_URL",
    "port": "PORT",
    "host": "CAXTON_HOST",
    "private_key_path": "CAXTON_PRIVATE_KEY",
    "public_key_path": "CAXTON_PUBLIC_KEY",
    "push_url": "CAXTON_PUSH_URL",
    "push_app_id": "CAXTON_PUSH_APP_ID",
    "push_ttl_seconds": "CAXTON_PUSH_TTL",
    "push_timeout": "CAXTON_PUSH_TIMEOUT",
    "code_lifetime_seconds": "CAXTON_CODE_LIFETIME",
    "sweep_interval_seconds": "CAXTON_SWEEP_INTERVAL",
    "strict_app_name": "CAXTON_STRICT_APPNAME",
    "analytics_id": "CAXTON_ANALYTICS_ID",
    "log_level": "CAXTON_LOG_LEVEL",
    "log_json": "CAXTON_LOG_JSON",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(slots=True)
class Settings:
    database_url: str = "sqlite:///caxton.sqlite"
    port: int = 3000
    host: str = "0.0.0.0"
    private_key_path: str = "private.key"
    public_key_path: str = "public.key"
    push_url: str = DEFAULT_PUSH_URL
    push_app_id: str = DEFAULT_APP_ID
    push_ttl_seconds: int = 86400
    push_timeout: float = 10.0
    code_lifetime_seconds: int = 900
    sweep_interval_seconds: int = 0
    strict_app_name: bool = False
    analytics_id: str | None = None
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def code_lifetime(self) -> timedelta:
        return timedelta(seconds=self.code_lifetime_seconds)

    @property
    def push_ttl(self) -> timedelta:
        return timedelta(seconds=self.push_ttl_seconds)

    def update(self, values: Mapping[str, Any]) -> None:
        known = {f.name: f for f in fields(self)}
        for key, raw in values.items():
            if key not in known:
                raise ValueError(f"unknown setting: {key}")
            setattr(self, key, _coerce(key, known[key].type, raw))


def _coerce(name: str, annotation: Any, raw: Any) -> Any:
    kind = str(annotation)
    if raw is None:
        if "None" in kind:
            return None
        raise ValueError(f"setting {name} cannot be empty")
    try:
        if kind == "bool":
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(raw)
        if kind == "int":
            return int(raw)
        if kind == "float":
            return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for setting {name}: {raw!r}") from exc
    text = str(raw)
    if "None" in kind and not text:
        return None
    return text


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    return data


def load_settings(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Defaults, then the YAML config file, then environment variables."""
    env = os.environ if environ is None else environ
    settings = Settings()
    path = config_path or env.get("CAXTON_CONFIG")
    if path:
        settings.update(_load_yaml(Path(path)))
    overrides = {name: env[var] for name, var in ENV_MAP.items() if var in env}
    settings.update(overrides)
    return settings
