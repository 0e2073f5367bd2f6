from datetime import datetime, timezone
from typing import Any, Dict, Type

from sqlalchemy import Column, Integer, BigInteger, String, Float, DateTime, Text, CheckConstraint
from sqlalchemy.orm import declared_attr

from telemetry_core import domains as d
from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------- accounts ----------
class AccountMixin:
    id = Column(Integer, primary_key=True, autoincrement=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    role: str = ""

    def as_dict(self) -> Dict[str, Any]:
        out = {c.name: getattr(self, c.name) for c in self.__table__.columns if c.name != "password"}
        out["role"] = self.role
        return out


class SuperAdmin(AccountMixin, Base):
    __tablename__ = "super_admin"
    role = "superadmin"
    name = Column(String, nullable=False, default="")


class SubAdmin(AccountMixin, Base):
    __tablename__ = "sub_admin"
    role = "subadmin"
    metrics_id = Column(Integer, unique=True, nullable=False)
    company_name = Column(String, nullable=True)
    phone = Column(String, nullable=False, default="")


class Staff(AccountMixin, Base):
    __tablename__ = "staff"
    role = "staff"
    metrics_id = Column(Integer, unique=True, nullable=False)
    name = Column(String, nullable=False, default="")
    company_affiliated_to = Column(String, index=True, nullable=True)


class Technician(AccountMixin, Base):
    __tablename__ = "technician"
    role = "technician"
    name = Column(String, nullable=False, default="")


# email lookup probes the tables in exactly this order
ACCOUNT_PRECEDENCE = (SuperAdmin, SubAdmin, Staff, Technician)
ACCOUNT_MODELS: Dict[str, Type[AccountMixin]] = {m.role: m for m in ACCOUNT_PRECEDENCE}
OWNER_MODELS: Dict[str, Type[AccountMixin]] = {SubAdmin.role: SubAdmin, Staff.role: Staff}


# ---------- telemetry ----------
class OwnedMetric:
    """
    Shared owner columns of every telemetry table.

    Exactly one of sub_admin_metrics_id / staff_metrics_id is set; each is
    unique, so an owner has at most one row per domain.
    """
    id = Column(Integer, primary_key=True)
    sub_admin_metrics_id = Column(Integer, unique=True, nullable=True)
    staff_metrics_id = Column(Integer, unique=True, nullable=True)

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(
                "(sub_admin_metrics_id IS NULL) <> (staff_metrics_id IS NULL)",
                name=f"ck_{cls.__tablename__}_one_owner",
            ),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns if c.name != "id"}


class SystemInfoMetrics(OwnedMetric, Base):
    __tablename__ = "systeminfo_metrics"
    name = Column(String)
    hostname = Column(String)
    os_version = Column(String)
    kernel_version = Column(String)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class CpuMetrics(OwnedMetric, Base):
    __tablename__ = "cpu_metrics"
    last_refresh = Column(DateTime)
    cpu_info = Column(String)
    usage_summary = Column(String)


class DiskMetrics(OwnedMetric, Base):
    __tablename__ = "disk_metrics"
    total_space = Column(Float)       # MiB
    available_space = Column(Float)   # MiB


class MemoryMetrics(OwnedMetric, Base):
    __tablename__ = "memory_metrics"
    total_memory = Column(Float)      # MiB
    used_memory = Column(Float)       # MiB


class NetworkMetrics(OwnedMetric, Base):
    __tablename__ = "network_metrics"
    total_received = Column(BigInteger)     # bytes
    total_transmitted = Column(BigInteger)  # bytes


class FileSystemMetrics(OwnedMetric, Base):
    __tablename__ = "filesystem_metrics"
    filesystem = Column(String)
    status = Column(Text)


class IpLocationMetrics(OwnedMetric, Base):
    __tablename__ = "ip_location_metrics"
    ip = Column(String)
    city = Column(String)
    region = Column(String)
    country = Column(String)
    latitude = Column(Float)
    longitude = Column(Float)
    isp = Column(String)


class ProcessMetrics(OwnedMetric, Base):
    __tablename__ = "process_metrics"
    pid = Column(Integer)
    name = Column(String)
    exe = Column(String)
    cpu_usage = Column(Float)
    memory = Column(Float)            # MiB


class ServiceStatusMetrics(OwnedMetric, Base):
    __tablename__ = "service_status_metrics"
    service_name = Column(String)
    status = Column(Text)


class UptimeMetrics(OwnedMetric, Base):
    __tablename__ = "uptime_metrics"
    uptime = Column(Float)            # hours
    downtime = Column(Float)          # hours
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


METRIC_MODELS: Dict[str, Type[OwnedMetric]] = {
    d.SYSTEMINFO: SystemInfoMetrics,
    d.CPU: CpuMetrics,
    d.DISK: DiskMetrics,
    d.MEMORY: MemoryMetrics,
    d.NETWORK: NetworkMetrics,
    d.FILESYSTEM: FileSystemMetrics,
    d.IPLOCATION: IpLocationMetrics,
    d.PROCESS: ProcessMetrics,
    d.SERVICES: ServiceStatusMetrics,
    d.UPTIME: UptimeMetrics,
}
