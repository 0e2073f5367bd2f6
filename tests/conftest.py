"""Shared pytest fixtures: a throwaway SQLite database, a scripted sampler
and a FastAPI test client wired to both."""
from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pytest

# ---------------------------------------------------------------------------
# Environment overrides (must be set BEFORE app import)
# ---------------------------------------------------------------------------

_TMP = Path(tempfile.mkdtemp(prefix="assetwatch-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'assetwatch.db'}"
os.environ["JWT_SECRET"] = "test-secret-do-not-use-in-production"
os.environ["ASSETWATCH_CFG"] = str(_TMP / "missing.yaml")
os.environ["SCHEDULER_ENABLED"] = "0"
os.environ["AUTH_REQUIRE_TOKEN"] = "0"
os.environ.pop("ADMIN_USER", None)
os.environ.pop("ADMIN_PASS", None)

from fastapi.testclient import TestClient  # noqa: E402

from app import models  # noqa: E402,F401
from app.db import Base, SessionLocal, engine  # noqa: E402
from app.reconciler import TelemetryReconciler  # noqa: E402
from telemetry_core import domains as d  # noqa: E402


FAKE_SAMPLES: Dict[str, Dict[str, Any]] = {
    d.SYSTEMINFO: {"name": "Ubuntu", "hostname": "host-1", "os_version": "22.04", "kernel_version": "6.5.0"},
    d.CPU: {
        "cpu_info": "Name: cpu0, Vendor ID: GenuineIntel, Brand: Test CPU",
        "usage_summary": "Average: 1.0, Max: 2.0, Min: 0.0",
    },
    d.DISK: {"total_space": 1024.0, "available_space": 512.0},
    d.MEMORY: {"total_memory": 2048.0, "used_memory": 1024.0},
    d.NETWORK: {"total_received": 1000, "total_transmitted": 2000},
    d.FILESYSTEM: {"filesystem": "/", "status": "Filesystem Size Used Avail Use% Mounted on"},
    d.IPLOCATION: {
        "ip": "203.0.113.7", "city": "Pune", "region": "Maharashtra", "country": "India",
        "latitude": 18.52, "longitude": 73.85, "isp": "Example ISP",
    },
    d.PROCESS: {"pid": 1, "name": "init", "exe": "/sbin/init", "cpu_usage": 0.5, "memory": 10.0},
    d.SERVICES: {"service_name": "ssh", "status": "active"},
    d.UPTIME: {"uptime": 2.0},
}


class FakeSampler:
    """Scripted stand-in for HostSampler; counts calls and can fail on chosen domains."""

    def __init__(self, fail_on: Iterable[str] = ()):
        self.samples = {dom: dict(vals) for dom, vals in FAKE_SAMPLES.items()}
        self.fail_on = set(fail_on)
        self.calls: Dict[str, int] = {dom: 0 for dom in d.DOMAINS}
        self._lock = threading.Lock()

    def set(self, domain: str, **values: Any) -> None:
        self.samples[domain].update(values)

    def sample(self, domain: str) -> Dict[str, Any]:
        with self._lock:
            self.calls[domain] += 1
        if domain in self.fail_on:
            raise RuntimeError(f"{domain} sampler exploded")
        return dict(self.samples[domain])


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sampler() -> FakeSampler:
    return FakeSampler()


@pytest.fixture
def reconciler(sampler) -> TelemetryReconciler:
    return TelemetryReconciler(sampler)


@pytest.fixture
def client(reconciler):
    from app.fastapi_app import STATE, app

    with TestClient(app) as c:
        live: Optional[TelemetryReconciler] = STATE.reconciler
        STATE.reconciler = reconciler
        try:
            yield c
        finally:
            STATE.reconciler = live


@pytest.fixture
def make_sampler():
    return FakeSampler
