import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from app import identity
from app.db import SessionLocal
from app.errors import PersistenceError
from app.models import CpuMetrics, Staff, SubAdmin, UptimeMetrics
from app.reconciler import LOCK_STRIPES, Owner, known_owners, refresh_all_owners


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_owner_must_be_subadmin_or_staff():
    with pytest.raises(ValueError):
        Owner("technician", 1)
    with pytest.raises(ValueError):
        Owner(SubAdmin.role, 0)
    assert Owner(Staff.role, 9).columns() == {"sub_admin_metrics_id": None, "staff_metrics_id": 9}


def test_first_refresh_creates_then_updates_in_place(db, reconciler, sampler):
    owner = Owner(SubAdmin.role, 101)
    first = reconciler.refresh(db, owner, "cpu")
    assert first.sub_admin_metrics_id == 101
    assert first.staff_metrics_id is None

    sampler.set("cpu", usage_summary="Average: 50.0, Max: 90.0, Min: 10.0")
    second = reconciler.refresh(db, owner, "cpu")
    assert second.id == first.id
    assert second.usage_summary.startswith("Average: 50.0")
    assert second.last_refresh >= first.last_refresh
    assert _count(db, CpuMetrics) == 1


def test_owners_get_separate_rows(db, reconciler):
    reconciler.refresh(db, Owner(SubAdmin.role, 1), "cpu")
    reconciler.refresh(db, Owner(Staff.role, 2), "cpu")
    assert _count(db, CpuMetrics) == 2
    assert reconciler.lookup(db, "cpu", Owner(Staff.role, 2)).staff_metrics_id == 2
    assert reconciler.lookup(db, "cpu", Owner(SubAdmin.role, 2)) is None


def test_uptime_growth_becomes_downtime(db, reconciler, sampler):
    owner = Owner(Staff.role, 7)
    row = reconciler.refresh(db, owner, "uptime")
    assert (row.uptime, row.downtime) == (2.0, 0.0)

    sampler.set("uptime", uptime=5.0)
    row = reconciler.refresh(db, owner, "uptime")
    assert row.uptime == 5.0
    assert row.downtime == pytest.approx(3.0)


def test_row_needs_exactly_one_owner(db):
    db.add(CpuMetrics(cpu_info="x"))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()

    db.add(CpuMetrics(cpu_info="x", sub_admin_metrics_id=1, staff_metrics_id=2))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()


def test_concurrent_insert_is_retried_as_refresh(db, reconciler, sampler, monkeypatch):
    owner = Owner(SubAdmin.role, 55)
    reconciler.refresh(db, owner, "uptime")

    # the first lookup misses the row another writer already committed
    real_lookup = reconciler.lookup
    calls = {"n": 0}

    def flaky_lookup(session, domain, who):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_lookup(session, domain, who)

    monkeypatch.setattr(reconciler, "lookup", flaky_lookup)
    sampler.set("uptime", uptime=4.0)
    row = reconciler.refresh(db, owner, "uptime")

    assert _count(db, UptimeMetrics) == 1
    assert row.uptime == 4.0
    assert row.downtime == pytest.approx(2.0)


def test_storage_failure_surfaces_as_persistence_error(db, reconciler, monkeypatch):
    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    reconciler.refresh(db, Owner(SubAdmin.role, 3), "disk")
    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        reconciler.refresh(db, Owner(SubAdmin.role, 3), "disk")


def test_unknown_domain(db, reconciler):
    with pytest.raises(ValueError):
        reconciler.refresh(db, Owner(SubAdmin.role, 1), "gpu")


def test_scheduled_pass_refreshes_every_owner(db, reconciler, sampler):
    identity.provision(db, SubAdmin.role, {"email": "a@co.com", "password": "x"}, reconciler)
    identity.provision(db, Staff.role, {"email": "b@co.com", "password": "x"}, reconciler)
    assert len(known_owners(db)) == 2

    assert refresh_all_owners(SessionLocal, reconciler, "memory") == 2
    # once per owner at provisioning, once more per owner in the pass
    assert sampler.calls["memory"] == 4


def test_lookup_never_crosses_owner_columns(db, reconciler, sampler):
    sampler.set("cpu", cpu_info="SUB HOST")
    reconciler.refresh(db, Owner(SubAdmin.role, 5), "cpu")
    sampler.set("cpu", cpu_info="STAFF HOST")
    staff_row = reconciler.refresh(db, Owner(Staff.role, 5), "cpu")

    assert _count(db, CpuMetrics) == 2
    assert staff_row.staff_metrics_id == 5
    assert reconciler.lookup(db, "cpu", Owner(SubAdmin.role, 5)).cpu_info == "SUB HOST"


def test_scheduled_pass_survives_a_failing_owner(db, reconciler, monkeypatch):
    identity.provision(db, SubAdmin.role, {"email": "a@co.com", "password": "x"}, reconciler)
    identity.provision(db, Staff.role, {"email": "b@co.com", "password": "x"}, reconciler)

    real_refresh = reconciler.refresh
    pending = {"failure": True}

    def flaky_refresh(session, owner, domain):
        if pending.pop("failure", False):
            raise RuntimeError("sensor offline")
        return real_refresh(session, owner, domain)

    monkeypatch.setattr(reconciler, "refresh", flaky_refresh)
    assert refresh_all_owners(SessionLocal, reconciler, "memory") == 1


def test_locks_are_striped(reconciler):
    assert reconciler._lock_for("cpu", 1) is reconciler._lock_for("cpu", 1)
    for mid in range(1, 1000):
        reconciler._lock_for("cpu", mid)
    assert len(reconciler._locks) == LOCK_STRIPES
