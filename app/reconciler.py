# app/reconciler.py
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from telemetry_core.domains import check_domain, initial_fields, merge_sample
from .errors import PersistenceError
from .models import METRIC_MODELS, OwnedMetric, Staff, SubAdmin

log = logging.getLogger(__name__)

LOCK_STRIPES = 64


class Sampler(Protocol):
    def sample(self, domain: str) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class Owner:
    """The SubAdmin or Staff account a telemetry record belongs to."""
    role: str
    metrics_id: int

    def __post_init__(self):
        if self.role not in (SubAdmin.role, Staff.role):
            raise ValueError(f"only subadmin/staff own telemetry, got {self.role!r}")
        if int(self.metrics_id) <= 0:
            raise ValueError("metrics_id must be a positive integer")

    def columns(self) -> Dict[str, Optional[int]]:
        if self.role == SubAdmin.role:
            return {"sub_admin_metrics_id": self.metrics_id, "staff_metrics_id": None}
        return {"sub_admin_metrics_id": None, "staff_metrics_id": self.metrics_id}


class TelemetryReconciler:
    """
    Fetch-or-create, refresh, upsert for one (owner, domain) pair.

    reconcile() does a single pass inside the caller's transaction and only
    flushes; refresh() is the standalone pass used by the HTTP handlers and
    the scheduler, and owns its commit.
    """

    def __init__(self, sampler: Sampler, models: Optional[Mapping[str, Type[OwnedMetric]]] = None):
        self.sampler = sampler
        self.models: Dict[str, Type[OwnedMetric]] = dict(models or METRIC_MODELS)
        self._locks: Tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    def model_for(self, domain: str) -> Type[OwnedMetric]:
        return self.models[check_domain(domain)]

    def _lock_for(self, domain: str, metrics_id: int) -> threading.Lock:
        # striped: the same (domain, owner) always maps to the same lock
        return self._locks[hash((domain, metrics_id)) % LOCK_STRIPES]

    def lookup(self, session: Session, domain: str, owner: Owner) -> Optional[OwnedMetric]:
        """The owner's row, matched on its own owner column only."""
        model = self.model_for(domain)
        column = model.sub_admin_metrics_id if owner.role == SubAdmin.role else model.staff_metrics_id
        stmt = select(model).where(column == owner.metrics_id).limit(1)
        return session.execute(stmt).scalars().first()

    def reconcile(self, session: Session, owner: Owner, domain: str) -> OwnedMetric:
        model = self.model_for(domain)
        row = self.lookup(session, domain, owner)
        sample = self.sampler.sample(domain)
        if row is None:
            row = model(**owner.columns(), **initial_fields(domain, sample))
            session.add(row)
            log.debug("created %s record for %s %s", domain, owner.role, owner.metrics_id)
        else:
            merge_sample(domain, row, sample)
        session.flush()
        return row

    def refresh(self, session: Session, owner: Owner, domain: str) -> OwnedMetric:
        """
        One committed pass. A concurrent insert for the same owner trips the
        unique owner column; the pass then rolls back and runs once more,
        which finds the other writer's row and refreshes it.
        """
        with self._lock_for(domain, owner.metrics_id):
            try:
                try:
                    row = self.reconcile(session, owner, domain)
                except IntegrityError:
                    session.rollback()
                    log.warning("concurrent %s insert for %s, retrying as refresh", domain, owner.metrics_id)
                    row = self.reconcile(session, owner, domain)
                session.commit()
                return row
            except SQLAlchemyError as e:
                session.rollback()
                log.error("failed to save %s metrics for %s: %s", domain, owner.metrics_id, e)
                raise PersistenceError(f"failed to save {domain} info") from e


def known_owners(session: Session) -> List[Owner]:
    owners = [Owner(SubAdmin.role, mid) for mid in session.execute(select(SubAdmin.metrics_id)).scalars()]
    owners += [Owner(Staff.role, mid) for mid in session.execute(select(Staff.metrics_id)).scalars()]
    return owners


def refresh_all_owners(
    session_factory: Callable[[], Session],
    reconciler: TelemetryReconciler,
    domain: str,
) -> int:
    """Scheduler task: one refresh pass of `domain` for every owner. Returns passes done."""
    done = 0
    with session_factory() as session:
        for owner in known_owners(session):
            try:
                reconciler.refresh(session, owner, domain)
                done += 1
            except PersistenceError:
                continue
            except Exception:
                # one broken owner must not starve the rest
                session.rollback()
                log.exception("scheduled %s pass failed for %s %s", domain, owner.role, owner.metrics_id)
                continue
    log.info("scheduled %s pass refreshed %d owners", domain, done)
    return done
