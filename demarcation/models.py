# demarcation/models.py
import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from demarcation.permissions import Role

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class PlotStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    ON_HOLD = "on_hold"
    REJECTED = "rejected"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PlotType(str, enum.Enum):
    AGRICULTURAL = "agricultural"
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"


class ActivityType(str, enum.Enum):
    REQUEST_SUBMITTED = "request_submitted"
    ASSIGNMENT = "assignment"
    STATUS_CHANGE = "status_change"
    INITIAL_SURVEY = "initial_survey"
    BOUNDARY_MARKING = "boundary_marking"
    DISPUTE_RESOLUTION = "dispute_resolution"
    FINAL_VERIFICATION = "final_verification"
    DOCUMENTATION = "documentation"


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(150), nullable=False)
    phone_number = Column(String(20), nullable=True)
    employee_id = Column(String(50), unique=True, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=Role.CITIZEN.value, index=True)
    circle_id = Column(Integer, ForeignKey("circles.id"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class District(Base):
    __tablename__ = "districts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    code = Column(String(40), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Circle(Base):
    __tablename__ = "circles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    code = Column(String(40), unique=True, nullable=False)
    district_id = Column(Integer, ForeignKey("districts.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)


class Village(Base):
    __tablename__ = "villages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False, index=True)
    code = Column(String(40), unique=True, nullable=False)
    circle_id = Column(Integer, ForeignKey("circles.id"), nullable=False, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Plot(Base):
    __tablename__ = "plots"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(40), unique=True, nullable=False)
    # external khasra / plot number; duplicates share it within a village
    plot_number = Column(String(80), nullable=False, index=True)
    village_id = Column(Integer, ForeignKey("villages.id"), nullable=False)
    circle_id = Column(Integer, ForeignKey("circles.id"), nullable=True, index=True)
    plot_type = Column(String(20), nullable=False, default=PlotType.AGRICULTURAL.value)
    request_type = Column(String(50), nullable=False)
    area = Column(Float, nullable=False)
    area_unit = Column(String(20), nullable=False, default="acres")
    owner_name = Column(String(150), nullable=True)
    owner_contact = Column(String(50), nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    assigned_officer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    # cache of the latest status-bearing log; written only by services.logs
    current_status = Column(String(20), nullable=False, default=PlotStatus.PENDING.value, index=True)
    priority = Column(String(20), nullable=False, default=Priority.MEDIUM.value)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_duplicate = Column(Boolean, nullable=False, default=False)
    duplicate_of_id = Column(Integer, ForeignKey("plots.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_plots_plot_number_village", "plot_number", "village_id"),
    )


class DemarcationLog(Base):
    __tablename__ = "demarcation_logs"

    id = Column(Integer, primary_key=True, index=True)
    plot_id = Column(Integer, ForeignKey("plots.id"), nullable=False, index=True)
    officer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    activity_type = Column(String(40), nullable=False)
    description = Column(Text, nullable=False)
    activity_date = Column(DateTime, nullable=False, default=utcnow)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    stakeholders_present = Column(Text, nullable=True)
    issues_encountered = Column(Text, nullable=True)
    next_steps = Column(Text, nullable=True)
    status = Column(String(20), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)

    @property
    def duration_hours(self):
        from demarcation.services.logs import duration_hours

        return duration_hours(self.start_time, self.end_time)


class PlotAssignment(Base):
    __tablename__ = "plot_assignments"

    id = Column(Integer, primary_key=True, index=True)
    plot_id = Column(Integer, ForeignKey("plots.id"), nullable=False, index=True)
    officer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(120), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_url = Column(String(500), nullable=True)
    document_type = Column(String(60), nullable=False)
    plot_id = Column(Integer, ForeignKey("plots.id"), nullable=True, index=True)
    log_id = Column(Integer, ForeignKey("demarcation_logs.id"), nullable=True, index=True)
    uploaded_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    verification_status = Column(String(20), nullable=False, default=VerificationStatus.PENDING.value)
    verification_notes = Column(Text, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
