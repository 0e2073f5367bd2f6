from __future__ import annotations
import logging
import platform
import socket
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import psutil
import requests

from . import domains as d
from .host import HostExecutor

log = logging.getLogger(__name__)

MIB = 1_048_576.0

Sample = Dict[str, Any]


def _mib(n: Optional[float]) -> Optional[float]:
    return None if n is None else float(n) / MIB


def _cpu_identity() -> Dict[str, str]:
    """vendor / brand of the first core; /proc/cpuinfo where it exists."""
    info = {"vendor_id": "", "brand": platform.processor() or ""}
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.exists():
        for line in cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines():
            key, _, value = line.partition(":")
            key = key.strip()
            if key == "vendor_id" and not info["vendor_id"]:
                info["vendor_id"] = value.strip()
            elif key == "model name":
                info["brand"] = value.strip()
                break
    return info


def _os_release() -> Dict[str, str]:
    try:
        return platform.freedesktop_os_release()
    except (OSError, AttributeError):
        return {}


class HostSampler:
    """
    Produces one fresh snapshot of a telemetry domain from the live host.

    Each sampler returns a plain dict keyed by domains.SAMPLE_FIELDS[domain].
    Commands that spawn OS processes go through the HostExecutor pool;
    everything else is an in-process psutil/platform call.
    """

    def __init__(
        self,
        executor: HostExecutor,
        *,
        filesystems: Sequence[str] = ("/",),
        services: Sequence[str] = (),
        ip_url: str = "https://api.ipify.org",
        geo_url: str = "http://ip-api.com/json/{ip}",
        http_timeout: float = 5.0,
        windows: Optional[bool] = None,
    ):
        self.executor = executor
        self.filesystems: List[str] = list(filesystems)
        self.services: List[str] = list(services)
        self.ip_url = ip_url
        self.geo_url = geo_url
        self.http_timeout = float(http_timeout)
        self.windows = (sys.platform == "win32") if windows is None else bool(windows)
        self._samplers: Dict[str, Callable[[], Sample]] = {
            d.SYSTEMINFO: self.system_info,
            d.CPU: self.cpu,
            d.DISK: self.disk,
            d.MEMORY: self.memory,
            d.NETWORK: self.network,
            d.FILESYSTEM: self.filesystem,
            d.IPLOCATION: self.ip_location,
            d.PROCESS: self.process,
            d.SERVICES: self.service_status,
            d.UPTIME: self.uptime,
        }

    def sample(self, domain: str) -> Sample:
        return self._samplers[d.check_domain(domain)]()

    # ---------- hardware ----------
    def system_info(self) -> Sample:
        rel = _os_release()
        return {
            "name": rel.get("NAME") or platform.system(),
            "hostname": socket.gethostname(),
            "os_version": rel.get("VERSION_ID") or platform.version(),
            "kernel_version": platform.release(),
        }

    def cpu(self) -> Sample:
        ident = _cpu_identity()
        cpu_info = f"Name: cpu0, Vendor ID: {ident['vendor_id']}, Brand: {ident['brand']}"
        per_core = psutil.cpu_percent(interval=0.1, percpu=True) or [0.0]
        avg = sum(per_core) / len(per_core)
        usage = f"Average: {avg:.1f}, Max: {max(per_core):.1f}, Min: {min(per_core):.1f}"
        return {"cpu_info": cpu_info, "usage_summary": usage}

    def disk(self) -> Sample:
        total = 0
        free = 0
        seen = set()
        for part in psutil.disk_partitions(all=False):
            if part.device in seen:
                continue
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError):
                continue
            seen.add(part.device)
            total += usage.total
            free += usage.free
        if not seen:
            return {"total_space": None, "available_space": None}
        return {"total_space": _mib(total), "available_space": _mib(free)}

    def memory(self) -> Sample:
        vm = psutil.virtual_memory()
        return {"total_memory": _mib(vm.total), "used_memory": _mib(vm.used)}

    def network(self) -> Sample:
        io = psutil.net_io_counters()
        if io is None:
            return {"total_received": None, "total_transmitted": None}
        return {"total_received": int(io.bytes_recv), "total_transmitted": int(io.bytes_sent)}

    # ---------- software ----------
    def filesystem(self) -> Sample:
        if not self.filesystems:
            return {"filesystem": None, "status": None}
        fs = self.filesystems[0]
        args = ["fsutil", "volume", "diskfree", fs] if self.windows else ["df", "-h", fs]
        res = self.executor.run(args)
        return {"filesystem": fs, "status": res.output}

    def service_status(self) -> Sample:
        reason = "unavailable: no services configured"
        for name in self.services:
            args = ["sc", "query", name] if self.windows else ["systemctl", "is-active", name]
            res = self.executor.run(args)
            if res.ok:
                return {"service_name": name, "status": res.output.strip()}
            log.warning("failed to fetch service status for %s: %s", name, res.output)
            reason = res.output
        return {"service_name": self.services[0] if self.services else None, "status": reason}

    def process(self) -> Sample:
        """The process holding the most resident memory."""
        best = None
        best_rss = -1
        for proc in psutil.process_iter(["pid", "name", "exe", "memory_info", "cpu_percent"]):
            mi = proc.info.get("memory_info")
            rss = mi.rss if mi is not None else 0
            if rss > best_rss:
                best, best_rss = proc.info, rss
        if best is None:
            return {k: None for k in d.SAMPLE_FIELDS[d.PROCESS]}
        return {
            "pid": best.get("pid"),
            "name": best.get("name"),
            "exe": best.get("exe") or None,
            "cpu_usage": float(best.get("cpu_percent") or 0.0),
            "memory": _mib(max(best_rss, 0)),
        }

    def uptime(self) -> Sample:
        return {"uptime": (time.time() - psutil.boot_time()) / 3600.0}

    def ip_location(self) -> Sample:
        empty: Sample = {k: None for k in d.SAMPLE_FIELDS[d.IPLOCATION]}
        try:
            r = requests.get(self.ip_url, timeout=self.http_timeout)
            r.raise_for_status()
            ip = r.text.strip()
            r = requests.get(self.geo_url.format(ip=ip), timeout=self.http_timeout)
            r.raise_for_status()
            geo = r.json()
        except (requests.RequestException, ValueError) as e:
            log.warning("failed to fetch IP location: %s", e)
            return empty
        return {
            "ip": ip or None,
            "city": geo.get("city"),
            "region": geo.get("regionName"),
            "country": geo.get("country"),
            "latitude": geo.get("lat"),
            "longitude": geo.get("lon"),
            "isp": geo.get("isp"),
        }
