"""College model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import validates

from campus_access.core.clock import utcnow
from campus_access.database import Base

DEFAULT_OPERATING_HOURS = {
    "monday": {"open": "08:00", "close": "17:00"},
    "tuesday": {"open": "08:00", "close": "17:00"},
    "wednesday": {"open": "08:00", "close": "17:00"},
    "thursday": {"open": "08:00", "close": "17:00"},
    "friday": {"open": "08:00", "close": "17:00"},
    "saturday": {"open": "09:00", "close": "13:00"},
    "sunday": {"open": None, "close": None},
}

DEFAULT_COLLEGE_SETTINGS = {
    "appointment_duration": 60,
    "max_appointments_per_day": 20,
    "advance_booking_days": 30,
    "require_approval": True,
    "auto_confirm": False,
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class College(Base):
    """A tenant: every department, membership and appointment belongs to one."""
    __tablename__ = "colleges"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(10), unique=True, index=True, nullable=False)
    location = Column(String(100), nullable=False)
    address = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    operating_hours = Column(JSON, default=lambda: dict(DEFAULT_OPERATING_HOURS))
    settings = Column(JSON, default=lambda: dict(DEFAULT_COLLEGE_SETTINGS))
    timezone = Column(String(50), default="Africa/Kigali")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    @validates("code")
    def _normalize_code(self, key, value):
        return value.strip().upper() if value else value

    def operating_hours_for(self, weekday: int) -> dict:
        """Opening hours for ``weekday`` (0 = Monday, like ``date.weekday()``)."""
        hours = self.operating_hours or DEFAULT_OPERATING_HOURS
        return hours.get(WEEKDAYS[weekday], {"open": None, "close": None})
