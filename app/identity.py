# app/identity.py
"""
Account resolution and provisioning across the four role tables.

An email is resolved by probing SuperAdmin, SubAdmin, Staff, Technician in
that order; the first table holding the email wins. Emails are unique per
table, not across tables.
"""
import logging
import random
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from telemetry_core.domains import DOMAINS
from .auth import create_access_token, hash_password, verify_password
from .errors import AuthenticationFailure, InvalidInput, PersistenceError, RecordNotFound
from .models import (
    ACCOUNT_MODELS, ACCOUNT_PRECEDENCE, OWNER_MODELS,
    AccountMixin, Staff, SubAdmin, SuperAdmin, Technician, utcnow,
)
from .reconciler import Owner, TelemetryReconciler

log = logging.getLogger(__name__)

MAX_ID = 2 ** 31 - 1
_ID_ATTEMPTS = 16

# role-specific columns copied from the request, beyond email/password/ids
ROLE_FIELDS: Dict[str, tuple] = {
    SuperAdmin.role: ("name",),
    SubAdmin.role: ("company_name", "phone"),
    Staff.role: ("name", "company_affiliated_to"),
    Technician.role: ("name",),
}


def is_email_valid(email: str) -> bool:
    return "@" in email


def _taken(session: Session, columns: Sequence, value: int) -> bool:
    return any(
        session.execute(select(col).where(col == value).limit(1)).first() is not None
        for col in columns
    )


def generate_id(session: Session, *columns, rng: Optional[random.Random] = None) -> int:
    """Random positive 31-bit id present in none of `columns`."""
    rng = rng or random
    for _ in range(_ID_ATTEMPTS):
        candidate = rng.randint(1, MAX_ID)
        if not _taken(session, columns, candidate):
            return candidate
    raise PersistenceError(f"could not allocate a free {columns[0].key} after {_ID_ATTEMPTS} attempts")


def _given_id(fields: Dict[str, Any], key: str) -> Optional[int]:
    raw = fields.get(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"{key} must be an integer") from None
    if not 0 < value <= MAX_ID:
        raise InvalidInput(f"{key} must be between 1 and {MAX_ID}")
    return value


# ---------- lookups ----------
def resolve_by_email(session: Session, email: str) -> AccountMixin:
    for model in ACCOUNT_PRECEDENCE:
        row = session.execute(select(model).where(model.email == email)).scalars().first()
        if row is not None:
            return row
    raise RecordNotFound("account", email)


def resolve_owner(session: Session, metrics_id: int) -> Owner:
    """Which SubAdmin or Staff account owns the telemetry keyed by metrics_id."""
    for model in OWNER_MODELS.values():
        hit = session.execute(select(model.id).where(model.metrics_id == metrics_id)).first()
        if hit is not None:
            return Owner(model.role, metrics_id)
    raise RecordNotFound("owner", metrics_id)


def authenticate(session: Session, email: str, password: str) -> str:
    """Credential check then token issue; unknown email and bad password look the same."""
    try:
        account = resolve_by_email(session, email)
    except RecordNotFound:
        raise AuthenticationFailure("Invalid credentials") from None
    if not verify_password(password, account.password):
        raise AuthenticationFailure("Invalid credentials")
    return create_access_token(account.email)


# ---------- provisioning ----------
def provision(
    session: Session,
    role: str,
    fields: Dict[str, Any],
    reconciler: Optional[TelemetryReconciler] = None,
    domains: Iterable[str] = DOMAINS,
) -> AccountMixin:
    """
    Create one account. For SubAdmin/Staff also run one reconciliation pass
    per telemetry domain for the new metrics_id.

    Everything happens in one transaction: if any domain fails, the account
    and every metric row written so far are rolled back.
    """
    model = ACCOUNT_MODELS.get(role)
    if model is None:
        raise InvalidInput(f"unknown role: {role}")
    email = str(fields.get("email") or "").strip()
    if not is_email_valid(email):
        raise InvalidInput("Invalid email format")
    is_owner = model in OWNER_MODELS.values()
    if is_owner and reconciler is None:
        raise ValueError(f"provisioning a {role} needs a TelemetryReconciler")

    account_id = _given_id(fields, "id")
    metrics_id = _given_id(fields, "metrics_id") if is_owner else None

    exists = session.execute(select(model.id).where(model.email == email).limit(1)).first()
    if exists is not None:
        raise InvalidInput(f"{role} with email {email} already exists", conflict=True)

    # metrics ids key telemetry rows, so they are unique across both owner tables
    owner_columns = [m.metrics_id for m in OWNER_MODELS.values()]
    if metrics_id is not None and _taken(session, owner_columns, metrics_id):
        raise InvalidInput(f"metrics_id {metrics_id} is already in use", conflict=True)

    hashed = hash_password(str(fields.get("password") or ""))

    try:
        account = model(
            id=account_id or generate_id(session, model.id),
            email=email,
            password=hashed,
            created_at=utcnow(),
            updated_at=None,
            **{k: fields.get(k) for k in ROLE_FIELDS[role] if fields.get(k) is not None},
        )
        if is_owner:
            account.metrics_id = metrics_id or generate_id(session, *owner_columns)
        session.add(account)
        session.flush()

        if is_owner:
            owner = Owner(role, account.metrics_id)
            for dom in domains:
                reconciler.reconcile(session, owner, dom)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        log.error("Failed to create %s: %s", role, e)
        raise InvalidInput(f"{role} conflicts with an existing record", conflict=True) from e
    except SQLAlchemyError as e:
        session.rollback()
        log.error("Failed to create %s: %s", role, e)
        raise PersistenceError(f"Failed to create {role}") from e
    except Exception:
        session.rollback()
        log.exception("Failed to create %s %s, rolled back", role, email)
        raise

    log.info("created %s id=%s", role, account.id)
    return account


def ensure_bootstrap_admin(session: Session, email: Optional[str], password: Optional[str]) -> bool:
    """Create the configured SuperAdmin on startup if it does not exist yet."""
    if not email or not password:
        return False
    exists = session.execute(select(SuperAdmin.id).where(SuperAdmin.email == email)).first()
    if exists is not None:
        return False
    provision(session, SuperAdmin.role, {"email": email, "password": password, "name": "admin"})
    return True


# ---------- listings ----------
def list_sub_admins(session: Session) -> List[SubAdmin]:
    return list(session.execute(select(SubAdmin).order_by(SubAdmin.created_at)).scalars())


def count_sub_admins(session: Session) -> int:
    return int(session.execute(select(func.count()).select_from(SubAdmin)).scalar_one())


def list_staff_by_company(session: Session, company: str) -> List[Staff]:
    stmt = select(Staff).where(Staff.company_affiliated_to == company).order_by(Staff.created_at)
    return list(session.execute(stmt).scalars())


def count_staff_by_company(session: Session, company: str) -> int:
    stmt = select(func.count()).select_from(Staff).where(Staff.company_affiliated_to == company)
    return int(session.execute(stmt).scalar_one())
