# app/config.py
import os
import sys
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

# ---------- load env ----------
# Loads variables from a .env file in the project root (or any parent dir)
load_dotenv(dotenv_path=Path(".env"))

DEFAULT_CFG_PATH = "configs/assetwatch.yaml"

if sys.platform == "win32":
    _DEFAULT_FILESYSTEMS = ["C:", "D:"]
    _DEFAULT_SERVICES = ["wuauserv", "WinDefend"]
else:
    _DEFAULT_FILESYSTEMS = ["/"]
    _DEFAULT_SERVICES = ["ssh", "cron"]


def load_cfg(p: str) -> Dict[str, Any]:
    """Read a YAML config file; a missing file is an empty config."""
    path = Path(p)
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: Any, default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


@dataclass
class Settings:
    database_url: str
    jwt_secret: str
    jwt_exp_minutes: int = 24 * 60
    require_token: bool = False
    admin_user: Optional[str] = None
    admin_pass: Optional[str] = None
    pool_size: int = 5
    pool_timeout: float = 30.0
    scheduler_enabled: bool = True
    sample_interval_sec: float = 3600.0
    host_workers: int = 2
    command_timeout_sec: float = 10.0
    http_timeout_sec: float = 5.0
    filesystems: List[str] = field(default_factory=lambda: list(_DEFAULT_FILESYSTEMS))
    services: List[str] = field(default_factory=lambda: list(_DEFAULT_SERVICES))
    ip_lookup_url: str = "https://api.ipify.org"
    geo_lookup_url: str = "http://ip-api.com/json/{ip}"
    log_level: str = "INFO"


def load_settings(cfg_path: Optional[str] = None) -> Settings:
    """
    Build Settings from the YAML file, then let environment variables win.

    DATABASE_URL and JWT_SECRET have no defaults: a deployment without them
    fails here, before the app accepts any request.
    """
    cfg = load_cfg(cfg_path or os.getenv("ASSETWATCH_CFG", DEFAULT_CFG_PATH))
    db = cfg.get("database") or {}
    auth = cfg.get("auth") or {}
    sched = cfg.get("scheduler") or {}
    host = cfg.get("host") or {}
    iploc = cfg.get("iplocation") or {}

    database_url = os.getenv("DATABASE_URL") or db.get("url")
    if not database_url:
        raise RuntimeError("DATABASE_URL must be set in the environment or in the config file")
    jwt_secret = os.getenv("JWT_SECRET") or auth.get("jwt_secret")
    if not jwt_secret:
        raise RuntimeError("JWT_SECRET must be set in the environment or in the config file")

    return Settings(
        database_url=database_url,
        jwt_secret=jwt_secret,
        jwt_exp_minutes=int(os.getenv("JWT_EXP_MINUTES", auth.get("jwt_exp_minutes", 24 * 60))),
        require_token=_env_bool("AUTH_REQUIRE_TOKEN", bool(auth.get("require_token", False))),
        admin_user=os.getenv("ADMIN_USER", auth.get("admin_user")),
        admin_pass=os.getenv("ADMIN_PASS", auth.get("admin_pass")),
        pool_size=int(db.get("pool_size", 5)),
        pool_timeout=float(db.get("pool_timeout", 30.0)),
        scheduler_enabled=_env_bool("SCHEDULER_ENABLED", bool(sched.get("enabled", True))),
        sample_interval_sec=float(os.getenv("SAMPLE_INTERVAL_SEC", sched.get("interval_sec", 3600))),
        host_workers=int(host.get("workers", 2)),
        command_timeout_sec=float(host.get("command_timeout_sec", 10.0)),
        http_timeout_sec=float(iploc.get("timeout_sec", 5.0)),
        filesystems=_as_list(host.get("filesystems"), _DEFAULT_FILESYSTEMS),
        services=_as_list(host.get("services"), _DEFAULT_SERVICES),
        ip_lookup_url=iploc.get("ip_url", "https://api.ipify.org"),
        geo_lookup_url=iploc.get("geo_url", "http://ip-api.com/json/{ip}"),
        log_level=os.getenv("LOG_LEVEL", cfg.get("log_level", "INFO")),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
