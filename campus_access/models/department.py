"""Department model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import validates

from campus_access.core.clock import utcnow
from campus_access.database import Base

DEFAULT_DEPARTMENT_SETTINGS = {
    "appointment_duration": 60,
    "max_daily_appointments": 20,
    "advance_booking_days": 30,
    "require_approval": False,
    "allowed_days": [1, 2, 3, 4, 5],
    "time_slots": ["09:00", "10:00", "11:00", "14:00", "15:00", "16:00"],
    "is_accepting_appointments": True,
}


class Department(Base):
    """A department inside one college."""
    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("college_id", "code", name="uq_department_college_code"),
        UniqueConstraint("college_id", "name", name="uq_department_college_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    college_id = Column(Integer, ForeignKey("colleges.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(10), nullable=False)
    description = Column(Text, nullable=True)
    contact_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(20), nullable=True)
    settings = Column(JSON, default=lambda: dict(DEFAULT_DEPARTMENT_SETTINGS))
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("code")
    def _normalize_code(self, key, value):
        return value.strip().upper() if value else value

    @property
    def is_accepting_appointments(self) -> bool:
        settings = self.settings or DEFAULT_DEPARTMENT_SETTINGS
        return bool(self.is_active and settings.get("is_accepting_appointments", True))
