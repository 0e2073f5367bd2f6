"""Request bodies for the account provisioning endpoints."""
from typing import Optional

from pydantic import BaseModel


class _AccountIn(BaseModel):
    id: Optional[int] = None
    email: str
    password: str


class SuperAdminIn(_AccountIn):
    name: str = ""


class SubAdminIn(_AccountIn):
    metrics_id: Optional[int] = None
    company_name: Optional[str] = None
    phone: str = ""


class StaffIn(_AccountIn):
    metrics_id: Optional[int] = None
    name: str = ""
    company_affiliated_to: Optional[str] = None


class TechnicianIn(_AccountIn):
    name: str = ""
