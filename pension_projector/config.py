from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str

    # remote compute; empty url => local-only (static deployment)
    remote_url: str
    remote_timeout_seconds: float

    debounce_seconds: float
    cache_ttl_seconds: int

    scenario_db_path: str
    local_store_path: str
    cors_origins: Tuple[str, ...]


def _deep_get(d: Dict[str, Any], path: str, default=None):
    cur = d
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def load_settings(config_path: str = "config.yaml", environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Loads config.yaml + overrides from .env/environment variables.
    """
    if environ is None:
        load_dotenv()  # loads .env into env vars
        environ = dict(os.environ)

    cfg: Dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

    # Empty env vars count as "not set" so a blank REMOTE_TIMEOUT_SECONDS= line
    # in .env does not override config.yaml.
    def _env_or_cfg(key: str, cfg_path: str, default):
        v = environ.get(key)
        if v is None:
            return _deep_get(cfg, cfg_path, default)
        v = v.strip()
        return _deep_get(cfg, cfg_path, default) if v == "" else v

    env = _env_or_cfg("APP_ENV", "app.env", "dev")
    log_level = str(_env_or_cfg("LOG_LEVEL", "app.log_level", "INFO")).upper()

    remote_url = str(_env_or_cfg("REMOTE_URL", "remote.url", "") or "").rstrip("/")
    remote_timeout_seconds = float(_env_or_cfg("REMOTE_TIMEOUT_SECONDS", "remote.timeout_seconds", 3.0))

    debounce_seconds = float(_env_or_cfg("DEBOUNCE_SECONDS", "recalc.debounce_seconds", 0.3))
    cache_ttl_seconds = int(_env_or_cfg("CACHE_TTL_SECONDS", "recalc.cache_ttl_seconds", 300))

    scenario_db_path = str(_env_or_cfg("SCENARIO_DB_PATH", "storage.scenario_db_path", "scenarios.db"))
    local_store_path = str(
        _env_or_cfg("LOCAL_STORE_PATH", "storage.local_store_path", "~/.pension_projector/scenarios.json")
    )

    origins = _env_or_cfg("CORS_ORIGINS", "server.cors_origins", ["http://localhost:5173"])
    if isinstance(origins, str):
        origins = [o.strip() for o in origins.split(",") if o.strip()]

    return Settings(
        env=env,
        log_level=log_level,
        remote_url=remote_url,
        remote_timeout_seconds=remote_timeout_seconds,
        debounce_seconds=debounce_seconds,
        cache_ttl_seconds=cache_ttl_seconds,
        scenario_db_path=scenario_db_path,
        local_store_path=os.path.expanduser(local_store_path),
        cors_origins=tuple(origins),
    )
