"""User model definitions."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import validates

from campus_access.core.clock import utcnow
from campus_access.database import Base


class GlobalRole(str, enum.Enum):
    """Account-wide role, independent of any college membership."""
    SUPER_ADMIN = "SUPER_ADMIN"
    COLLEGE_MANAGER = "COLLEGE_MANAGER"
    DEPARTMENT_MANAGER = "DEPARTMENT_MANAGER"
    SECURITY_MANAGER = "SECURITY_MANAGER"
    SECURITY = "SECURITY"
    USER = "USER"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(20), nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(SQLEnum(GlobalRole, native_enum=False, length=32), default=GlobalRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
