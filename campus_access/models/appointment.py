"""Appointment model definitions."""

import enum

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, String, Text

from campus_access.core.clock import utcnow
from campus_access.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class AppointmentType(str, enum.Enum):
    MEETING = "MEETING"
    INTERVIEW = "INTERVIEW"
    CONSULTATION = "CONSULTATION"
    VISIT = "VISIT"
    OTHER = "OTHER"


class AppointmentPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class Appointment(Base):
    """Represents a requested or scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("unique_apt_reference", "reference_number", unique=True),
        Index("unique_apt_code", "apt_code", unique=True),
        Index("idx_appointments_college_start", "college_id", "start_time"),
        Index("idx_appointments_department_status", "department_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=True)
    type = Column(SQLEnum(AppointmentType, native_enum=False, length=16), default=AppointmentType.MEETING, nullable=False)
    priority = Column(
        SQLEnum(AppointmentPriority, native_enum=False, length=8),
        default=AppointmentPriority.MEDIUM,
        nullable=False,
    )
    reference_number = Column(String(40), nullable=False)
    display_code = Column(String(20), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    description = Column(Text, nullable=False)
    college_id = Column(Integer, ForeignKey("colleges.id", ondelete="CASCADE"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    department_name = Column(String(100), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    location = Column(String(255), nullable=True)
    attachment_urls = Column(JSON, default=list)
    guests = Column(JSON, default=list)
    status = Column(
        SQLEnum(AppointmentStatus, native_enum=False, length=16),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )
    apt_code = Column(String(20), nullable=True)
    apt_expires_at = Column(DateTime, nullable=True)
    checked_in_at = Column(DateTime, nullable=True)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    checked_out_at = Column(DateTime, nullable=True)
    checked_out_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    details = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
