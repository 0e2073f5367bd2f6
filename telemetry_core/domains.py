from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

SYSTEMINFO = "systeminfo"
CPU = "cpu"
DISK = "disk"
MEMORY = "memory"
NETWORK = "network"
FILESYSTEM = "filesystem"
IPLOCATION = "iplocation"
PROCESS = "process"
SERVICES = "services"
UPTIME = "uptime"

# provisioning and the scheduler walk the domains in this order
DOMAINS: Tuple[str, ...] = (
    SYSTEMINFO, CPU, DISK, MEMORY, NETWORK,
    FILESYSTEM, IPLOCATION, PROCESS, SERVICES, UPTIME,
)

# fields each sampler returns for its domain
SAMPLE_FIELDS: Dict[str, Tuple[str, ...]] = {
    SYSTEMINFO: ("name", "hostname", "os_version", "kernel_version"),
    CPU: ("cpu_info", "usage_summary"),
    DISK: ("total_space", "available_space"),
    MEMORY: ("total_memory", "used_memory"),
    NETWORK: ("total_received", "total_transmitted"),
    FILESYSTEM: ("filesystem", "status"),
    IPLOCATION: ("ip", "city", "region", "country", "latitude", "longitude", "isp"),
    PROCESS: ("pid", "name", "exe", "cpu_usage", "memory"),
    SERVICES: ("service_name", "status"),
    UPTIME: ("uptime",),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def check_domain(domain: str) -> str:
    if domain not in SAMPLE_FIELDS:
        raise ValueError(f"unknown telemetry domain: {domain!r}")
    return domain


def _pick(domain: str, sample: Dict[str, Any]) -> Dict[str, Any]:
    return {k: sample.get(k) for k in SAMPLE_FIELDS[domain]}


def initial_fields(domain: str, sample: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Column values for a brand-new record built from one live sample."""
    now = now or _utcnow()
    out = _pick(check_domain(domain), sample)
    if domain in (SYSTEMINFO, UPTIME):
        out["created_at"] = now
        out["updated_at"] = now
    if domain == CPU:
        out["last_refresh"] = now
    if domain == UPTIME:
        out["downtime"] = 0.0
    return out


def merge_sample(domain: str, record: Any, sample: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    Apply a fresh sample onto a stored record in place.

    Plain domains overwrite field by field. systeminfo bumps updated_at only
    when something changed, cpu always stamps last_refresh, and uptime adds
    the growth of the uptime counter onto downtime.

    Returns True when any stored value changed.
    """
    now = now or _utcnow()
    fresh = _pick(check_domain(domain), sample)

    if domain == UPTIME:
        return _merge_uptime(record, fresh.get("uptime"), now)

    changed = any(getattr(record, k) != v for k, v in fresh.items())
    for k, v in fresh.items():
        setattr(record, k, v)

    if domain == SYSTEMINFO and changed:
        record.updated_at = now
    if domain == CPU:
        record.last_refresh = now
    return changed


def _merge_uptime(record: Any, new_uptime: Optional[float], now: datetime) -> bool:
    if new_uptime is None:
        return False
    old = record.uptime
    if old is not None and new_uptime > old:
        record.downtime = (record.downtime or 0.0) + (new_uptime - old)
    record.uptime = new_uptime
    record.updated_at = now
    return old != new_uptime
