#!/usr/bin/env python3

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi  # for custom OpenAPI (Authorize button)
from sqlalchemy.orm import Session

from telemetry_core.domains import DOMAINS
from telemetry_core.host import HostExecutor
from telemetry_core.samplers import HostSampler
from telemetry_core.scheduler import PeriodicScheduler

from .auth import claims_from_header
from .config import get_settings
from .db import SessionLocal, engine, Base, get_db
from .errors import AssetWatchError, AuthenticationFailure, InvalidInput, RecordNotFound
from .identity import (
    authenticate, count_staff_by_company, count_sub_admins, ensure_bootstrap_admin,
    list_staff_by_company, list_sub_admins, provision, resolve_owner,
)
from .logging_setup import LoggerConfig, setup_logging
from .models import Staff, SubAdmin, SuperAdmin, Technician
from .reconciler import TelemetryReconciler, refresh_all_owners
from .schemas import StaffIn, SubAdminIn, SuperAdminIn, TechnicianIn

log = logging.getLogger(__name__)

# paths reachable without a token even when auth.require_token is on
PUBLIC_PATHS = {"/login", "/health", "/docs", "/docs/oauth2-redirect", "/redoc", "/openapi.json"}

app = FastAPI(title="AssetWatch API", version="1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"]
)


# ---------- State ----------
class State:
    def __init__(self):
        self.executor: Optional[HostExecutor] = None
        self.reconciler: Optional[TelemetryReconciler] = None
        self.scheduler: Optional[PeriodicScheduler] = None

STATE = State()


# ---------- Startup ----------
@app.on_event("startup")
def startup():
    settings = get_settings()
    setup_logging(LoggerConfig(level=settings.log_level))
    Base.metadata.create_all(bind=engine)

    STATE.executor = HostExecutor(workers=settings.host_workers, timeout=settings.command_timeout_sec)
    sampler = HostSampler(
        STATE.executor,
        filesystems=settings.filesystems,
        services=settings.services,
        ip_url=settings.ip_lookup_url,
        geo_url=settings.geo_lookup_url,
        http_timeout=settings.http_timeout_sec,
    )
    STATE.reconciler = TelemetryReconciler(sampler)

    # Ensure admin user exists
    with SessionLocal() as db:
        if ensure_bootstrap_admin(db, settings.admin_user, settings.admin_pass):
            log.info("bootstrap super admin %s created", settings.admin_user)

    if settings.scheduler_enabled:
        STATE.scheduler = PeriodicScheduler(
            DOMAINS,
            task=lambda dom: refresh_all_owners(SessionLocal, STATE.reconciler, dom),
            interval_sec=settings.sample_interval_sec,
        )
        STATE.scheduler.start()

@app.on_event("shutdown")
def shutdown():
    if STATE.scheduler:
        STATE.scheduler.stop()
        STATE.scheduler = None
    if STATE.executor:
        STATE.executor.shutdown()
        STATE.executor = None


# ---------- Token check ----------
@app.middleware("http")
async def token_check(request: Request, call_next):
    claims = claims_from_header(request.headers.get("Authorization"))
    request.state.claims = claims
    if claims is None and get_settings().require_token and request.url.path not in PUBLIC_PATHS:
        return JSONResponse({"detail": "Missing or invalid Bearer token"}, status_code=401)
    return await call_next(request)


# ---------- Error mapping ----------
@app.exception_handler(InvalidInput)
def invalid_input(_request: Request, exc: InvalidInput):
    return JSONResponse({"detail": str(exc)}, status_code=409 if exc.conflict else 400)

@app.exception_handler(AuthenticationFailure)
def auth_failure(_request: Request, exc: AuthenticationFailure):
    log.info("authentication failed: %s", exc)
    return JSONResponse({"detail": "Invalid credentials"}, status_code=401)

@app.exception_handler(RecordNotFound)
def not_found(_request: Request, exc: RecordNotFound):
    return JSONResponse({"detail": str(exc)}, status_code=404)

@app.exception_handler(AssetWatchError)
def internal_error(request: Request, exc: AssetWatchError):
    log.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


# ---------- Routes ----------
@app.get("/health")
def health():
    return {"ok": True, "scheduler": STATE.scheduler.status() if STATE.scheduler else None}

@app.post("/login")
def login(payload: Dict[str, str], db: Session = Depends(get_db)):
    email = payload.get("email")
    password = payload.get("password")
    if not email or not password:
        raise HTTPException(status_code=422, detail="email and password are required")
    return {"token": authenticate(db, email, password), "token_type": "bearer"}


def _created(role_label: str, account) -> Dict[str, Any]:
    out: Dict[str, Any] = {"message": f"{role_label} created successfully", "id": account.id}
    if getattr(account, "metrics_id", None) is not None:
        out["metrics_id"] = account.metrics_id
    return out

@app.post("/createsuper", status_code=201)
def create_super(body: SuperAdminIn, db: Session = Depends(get_db)):
    return _created("Super admin", provision(db, SuperAdmin.role, body.model_dump()))

@app.post("/createsub", status_code=201)
def create_sub(body: SubAdminIn, db: Session = Depends(get_db)):
    return _created("Sub admin", provision(db, SubAdmin.role, body.model_dump(), STATE.reconciler))

@app.post("/createstaff", status_code=201)
def create_staff(body: StaffIn, db: Session = Depends(get_db)):
    return _created("Staff", provision(db, Staff.role, body.model_dump(), STATE.reconciler))

@app.post("/createtechnician", status_code=201)
def create_technician(body: TechnicianIn, db: Session = Depends(get_db)):
    return _created("Technician", provision(db, Technician.role, body.model_dump()))


@app.get("/seeallsubadmin")
def see_all_sub_admins(db: Session = Depends(get_db)):
    return [a.as_dict() for a in list_sub_admins(db)]

@app.get("/countallsubadmin")
def count_all_sub_admins(db: Session = Depends(get_db)):
    return count_sub_admins(db)

@app.get("/seeallmystaffs")
def see_all_my_staffs(company: str, db: Session = Depends(get_db)):
    return [a.as_dict() for a in list_staff_by_company(db, company)]

@app.get("/countallmystaffs")
def count_all_my_staffs(company: str, db: Session = Depends(get_db)):
    return count_staff_by_company(db, company)


# ---------- Telemetry ----------
def _metric_route(domain: str) -> Callable[..., Dict[str, Any]]:
    def endpoint(owner_id: int, db: Session = Depends(get_db)):
        owner = resolve_owner(db, owner_id)
        return STATE.reconciler.refresh(db, owner, domain).as_dict()
    endpoint.__name__ = f"get_{domain}_info"
    return endpoint

for _dom in DOMAINS:
    app.add_api_route(f"/{_dom}/{{owner_id}}", _metric_route(_dom), methods=["GET"], tags=["telemetry"])


# ---------- Swagger "Authorize" (Bearer JWT) ----------
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        routes=app.routes,
        description="IT-asset management API: operator accounts and per-owner host telemetry.",
    )

    components = schema.setdefault("components", {}).setdefault("securitySchemes", {})
    components["BearerAuth"] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}

    for path, ops in schema.get("paths", {}).items():
        if path in PUBLIC_PATHS:
            continue
        for op in ops.values():
            op["security"] = [{"BearerAuth": []}]

    app.openapi_schema = schema
    return app.openapi_schema

app.openapi = custom_openapi
