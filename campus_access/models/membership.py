"""College membership (user <-> college scoping) model definitions."""

import enum

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import JSON, Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, TypeDecorator

from campus_access.core import config
from campus_access.core.clock import utcnow
from campus_access.database import Base


class CollegeRole(str, enum.Enum):
    """Role a user holds inside one college."""
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    SECURITY = "SECURITY"
    STUDENT = "STUDENT"
    VISITOR = "VISITOR"


class SecurityShift(str, enum.Enum):
    FULL_DAY = "FULL_DAY"
    MORNING = "MORNING"
    EVENING = "EVENING"
    NIGHT = "NIGHT"


class MembershipPermissions(BaseModel):
    """Capabilities a member has inside one college."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_guests: int = Field(default_factory=lambda: config.DEFAULT_MAX_GUESTS, ge=0, le=100)
    can_invite_guests: bool = True
    can_view_all_appointments: bool = False
    can_create_appointments: bool = True

    @property
    def guest_limit(self) -> int:
        return self.max_guests if self.can_invite_guests else 0


class PermissionsType(TypeDecorator):
    """Stores MembershipPermissions as JSON and validates it on the way in and out."""
    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return MembershipPermissions().model_dump()
        if isinstance(value, MembershipPermissions):
            return value.model_dump()
        return MembershipPermissions.model_validate(value).model_dump()

    def process_result_value(self, value, dialect):
        if value is None:
            return MembershipPermissions()
        # Rows written before a field existed fall back to its default
        known = {key: item for key, item in value.items() if key in MembershipPermissions.model_fields}
        return MembershipPermissions.model_validate(known)


class Membership(Base):
    """A user's role, department and permissions in one college."""
    __tablename__ = "user_colleges"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    college_id = Column(Integer, ForeignKey("colleges.id", ondelete="CASCADE"), primary_key=True, index=True)
    college_role = Column(SQLEnum(CollegeRole, native_enum=False, length=16), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    enrollment_number = Column(String(50), unique=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)
    left_at = Column(DateTime, nullable=True)
    permissions = Column(PermissionsType, default=lambda: MembershipPermissions(), nullable=False)
    shift = Column(SQLEnum(SecurityShift, native_enum=False, length=16), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_active_member(self) -> bool:
        return bool(self.is_active and self.left_at is None)
