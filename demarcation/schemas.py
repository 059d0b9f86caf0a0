# demarcation/schemas.py
"""Request / response bodies. JSON is camelCase; Python attributes stay snake_case."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -----------------------------
# Accounts
# -----------------------------
class RegisterIn(APIModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    full_name: str
    phone_number: Optional[str] = None
    employee_id: Optional[str] = None
    role: Optional[str] = "citizen"
    invite_code: Optional[str] = None
    circle_id: Optional[int] = None


class LoginIn(APIModel):
    email: str
    password: str = Field(min_length=1, max_length=256)


class UserOut(APIModel):
    id: int
    email: str
    full_name: str
    phone_number: Optional[str] = None
    employee_id: Optional[str] = None
    role: str
    circle_id: Optional[int] = None
    is_active: bool
    created_at: Optional[datetime] = None


class TokenOut(APIModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class ProfileUpdate(APIModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None


class PasswordChange(APIModel):
    current_password: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=1, max_length=256)


class UserCreate(APIModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    full_name: str
    role: str
    phone_number: Optional[str] = None
    employee_id: Optional[str] = None
    circle_id: Optional[int] = None


class UserUpdate(APIModel):
    is_active: Optional[bool] = None
    circle_id: Optional[int] = None


# -----------------------------
# Geography
# -----------------------------
class DistrictIn(APIModel):
    name: str
    code: str


class DistrictOut(APIModel):
    id: int
    name: str
    code: str


class CircleIn(APIModel):
    name: str
    code: str
    district_id: Optional[int] = None


class CircleOut(APIModel):
    id: int
    name: str
    code: str
    district_id: Optional[int] = None


class VillageIn(APIModel):
    name: str
    code: str
    circle_id: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class VillageOut(APIModel):
    id: int
    name: str
    code: str
    circle_id: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None


# -----------------------------
# Plots
# -----------------------------
class PlotCreate(APIModel):
    plot_number: Optional[str] = None
    village_id: Optional[int] = None
    area: Optional[float] = None
    request_type: Optional[str] = None
    plot_type: Optional[str] = None
    area_unit: Optional[str] = None
    owner_name: Optional[str] = None
    owner_contact: Optional[str] = None
    owner_id: Optional[int] = None
    priority: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None


class PlotOut(APIModel):
    id: int
    reference: str
    plot_number: str
    village_id: int
    circle_id: Optional[int] = None
    plot_type: str
    request_type: str
    area: float
    area_unit: str
    owner_name: Optional[str] = None
    owner_contact: Optional[str] = None
    owner_id: Optional[int] = None
    assigned_officer_id: Optional[int] = None
    current_status: str
    priority: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_duplicate: bool
    duplicate_of_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusUpdate(APIModel):
    status: str
    description: Optional[str] = None


class AssignIn(APIModel):
    officer_id: int
    notes: Optional[str] = None


class AssignmentOut(APIModel):
    id: int
    plot_id: int
    officer_id: int
    assigned_by: Optional[int] = None
    assigned_at: Optional[datetime] = None
    is_active: bool
    notes: Optional[str] = None


# -----------------------------
# Logs
# -----------------------------
class LogCreate(APIModel):
    description: str
    activity_type: Optional[str] = None
    status: Optional[str] = None
    activity_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    stakeholders_present: Optional[str] = None
    issues_encountered: Optional[str] = None
    next_steps: Optional[str] = None


class LogOut(APIModel):
    id: int
    plot_id: int
    officer_id: Optional[int] = None
    activity_type: str
    description: str
    activity_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_hours: Optional[float] = None
    stakeholders_present: Optional[str] = None
    issues_encountered: Optional[str] = None
    next_steps: Optional[str] = None
    status: Optional[str] = None
    is_deleted: bool = False
    created_at: Optional[datetime] = None


# -----------------------------
# Statistics
# -----------------------------
class DashboardStats(APIModel):
    total_plots: int
    completed_plots: int
    pending_plots: int
    total_villages: int
    active_officers: int
    duplicates: int
    average_resolution_days: float
    completion_rate: str


class DistributionItem(APIModel):
    name: str
    count: int


class MapLocation(APIModel):
    id: int
    reference: str
    plot_number: str
    status: str
    village_id: Optional[int] = None
    latitude: float
    longitude: float
    approximate: bool = False


class OfficerPerformance(APIModel):
    id: int
    name: str
    circle: Optional[str] = None
    total_plots: int = 0
    completed_plots: int
    pending_plots: int
    efficiency: int
    avg_resolution_days: Optional[float] = None
    avg_time_per_plot: str
    last_activity: Optional[datetime] = None


class OfficerStats(APIModel):
    dashboard: DashboardStats
    performance: Optional[OfficerPerformance] = None
    assigned: int


# -----------------------------
# Documents
# -----------------------------
class DocumentOut(APIModel):
    id: int
    filename: str
    original_filename: str
    file_size: int
    mime_type: str
    file_url: Optional[str] = None
    document_type: str
    plot_id: Optional[int] = None
    log_id: Optional[int] = None
    uploaded_by_id: int
    verified_by_id: Optional[int] = None
    verification_status: str
    verification_notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    is_public: bool
    created_at: Optional[datetime] = None


class DocumentVerify(APIModel):
    status: str
    notes: Optional[str] = None


class MessageOut(APIModel):
    message: str
