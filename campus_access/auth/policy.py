"""
Role-scoped authorization.

Every service consults ``authorize`` before touching a resource. The decision
depends on the actor's global role, the membership it holds in the resource's
college (role, department, permissions), and the resource owner. Both the
global role and the college role must agree for an action to be allowed.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from campus_access.core.errors import AuthorizationError, DenyReason
from campus_access.models.membership import CollegeRole, MembershipPermissions
from campus_access.models.user import GlobalRole

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    CREATE = "create"
    VIEW = "view"
    UPDATE = "update"
    DELETE = "delete"
    DESTROY = "destroy"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    VERIFY_CODE = "verify_code"
    VIEW_REPORTS = "view_reports"
    MANAGE_COLLEGES = "manage_colleges"
    MANAGE_COLLEGE = "manage_college"
    MANAGE_DEPARTMENTS = "manage_departments"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_SECURITY = "manage_security"


OWNER_ACTIONS = frozenset({Action.VIEW, Action.UPDATE, Action.DELETE, Action.CANCEL})
DEPARTMENT_MANAGER_ACTIONS = frozenset({
    Action.VIEW, Action.UPDATE, Action.APPROVE, Action.REJECT, Action.CANCEL, Action.VIEW_REPORTS,
})
SECURITY_ACTIONS = frozenset({Action.VIEW, Action.CHECK_IN, Action.CHECK_OUT, Action.VERIFY_CODE})
SECURITY_MANAGER_ACTIONS = frozenset({Action.MANAGE_SECURITY, Action.VIEW_REPORTS})
COLLEGE_MANAGER_EXCLUDED = frozenset({Action.CHECK_IN, Action.CHECK_OUT, Action.MANAGE_COLLEGES})

# College roles that back each global role inside a college
SCOPED_ROLES = {
    GlobalRole.COLLEGE_MANAGER: frozenset({CollegeRole.MANAGER}),
    GlobalRole.DEPARTMENT_MANAGER: frozenset({CollegeRole.MANAGER, CollegeRole.STAFF}),
    GlobalRole.SECURITY_MANAGER: frozenset({CollegeRole.MANAGER, CollegeRole.SECURITY}),
    GlobalRole.SECURITY: frozenset({CollegeRole.SECURITY}),
    GlobalRole.USER: frozenset(CollegeRole),
}

CREATOR_ROLES = frozenset({GlobalRole.USER, GlobalRole.DEPARTMENT_MANAGER, GlobalRole.COLLEGE_MANAGER})


@dataclass(frozen=True)
class MembershipScope:
    college_id: int
    college_role: CollegeRole
    department_id: Optional[int] = None
    is_active: bool = True
    permissions: MembershipPermissions = field(default_factory=MembershipPermissions)


@dataclass(frozen=True)
class Actor:
    """An authenticated user together with the college scopes it holds."""
    user_id: int
    global_role: GlobalRole
    email: str = ""
    is_active: bool = True
    memberships: tuple[MembershipScope, ...] = ()

    @property
    def is_super_admin(self) -> bool:
        return self.global_role == GlobalRole.SUPER_ADMIN

    def membership_in(self, college_id: Optional[int]) -> Optional[MembershipScope]:
        for membership in self.memberships:
            if membership.college_id == college_id and membership.is_active:
                return membership
        return None

    def colleges_with_role(self, roles: frozenset) -> frozenset:
        return frozenset(m.college_id for m in self.memberships if m.is_active and m.college_role in roles)


@dataclass(frozen=True)
class ResourceScope:
    """Where a resource lives and who owns it."""
    college_id: Optional[int] = None
    department_id: Optional[int] = None
    owner_id: Optional[int] = None

    @classmethod
    def of(cls, appointment) -> "ResourceScope":
        return cls(
            college_id=appointment.college_id,
            department_id=appointment.department_id,
            owner_id=appointment.created_by,
        )


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


def deny(reason: DenyReason) -> Decision:
    return Decision(False, reason)


def _scoped_membership(actor: Actor, college_id: Optional[int]) -> tuple[Optional[MembershipScope], Optional[Decision]]:
    membership = actor.membership_in(college_id)
    if membership is None:
        return None, deny(DenyReason.NO_MEMBERSHIP)
    if membership.college_role not in SCOPED_ROLES[actor.global_role]:
        return None, deny(DenyReason.WRONG_COLLEGE_ROLE)
    return membership, None


def authorize(actor: Actor, action: Action, scope: ResourceScope) -> Decision:
    if not actor.is_active:
        return deny(DenyReason.INACTIVE_ACCOUNT)
    if actor.is_super_admin:
        return ALLOW

    role = actor.global_role
    is_owner = scope.owner_id is not None and scope.owner_id == actor.user_id

    if action == Action.MANAGE_COLLEGES:
        return deny(DenyReason.WRONG_GLOBAL_ROLE)

    if role == GlobalRole.USER:
        if action == Action.CREATE:
            membership, denied = _scoped_membership(actor, scope.college_id)
            if denied:
                return denied
            if not membership.permissions.can_create_appointments:
                return deny(DenyReason.WRONG_COLLEGE_ROLE)
            return ALLOW
        if action in OWNER_ACTIONS:
            if is_owner:
                return ALLOW
            membership = actor.membership_in(scope.college_id)
            if action == Action.VIEW and membership and membership.permissions.can_view_all_appointments:
                return ALLOW
            return deny(DenyReason.NOT_OWNER)
        return deny(DenyReason.WRONG_GLOBAL_ROLE)

    if role == GlobalRole.COLLEGE_MANAGER:
        if action in COLLEGE_MANAGER_EXCLUDED:
            return deny(DenyReason.WRONG_GLOBAL_ROLE)
        _, denied = _scoped_membership(actor, scope.college_id)
        return denied or ALLOW

    if role == GlobalRole.DEPARTMENT_MANAGER:
        if action == Action.CREATE:
            _, denied = _scoped_membership(actor, scope.college_id)
            return denied or ALLOW
        if is_owner and action in OWNER_ACTIONS:
            return ALLOW
        if action not in DEPARTMENT_MANAGER_ACTIONS:
            return deny(DenyReason.WRONG_GLOBAL_ROLE)
        membership, denied = _scoped_membership(actor, scope.college_id)
        if denied:
            return denied
        if membership.department_id is None or membership.department_id != scope.department_id:
            return deny(DenyReason.NOT_IN_DEPARTMENT)
        return ALLOW

    if role == GlobalRole.SECURITY_MANAGER:
        if action not in SECURITY_MANAGER_ACTIONS:
            return deny(DenyReason.WRONG_GLOBAL_ROLE)
        _, denied = _scoped_membership(actor, scope.college_id)
        return denied or ALLOW

    if role == GlobalRole.SECURITY:
        if action not in SECURITY_ACTIONS:
            return deny(DenyReason.WRONG_GLOBAL_ROLE)
        _, denied = _scoped_membership(actor, scope.college_id)
        return denied or ALLOW

    return deny(DenyReason.WRONG_GLOBAL_ROLE)


def require(actor: Actor, action: Action, scope: ResourceScope) -> None:
    """Raise AuthorizationError (with the deny reason) unless ``action`` is allowed."""
    decision = authorize(actor, action, scope)
    if not decision.allowed:
        logger.warning(
            'Denied %s for user %s on college=%s department=%s: %s',
            action.value, actor.user_id, scope.college_id, scope.department_id, decision.reason.value,
        )
        raise AuthorizationError(decision.reason)


@dataclass(frozen=True)
class Visibility:
    """Which appointments an actor may list.

    A row is visible when any populated field matches it; ``everything``
    short-circuits the rest.
    """
    everything: bool = False
    college_ids: frozenset = frozenset()
    department_ids: frozenset = frozenset()
    owner_id: Optional[int] = None


def visibility(actor: Actor) -> Visibility:
    if not actor.is_active:
        return Visibility()
    if actor.is_super_admin:
        return Visibility(everything=True)

    role = actor.global_role
    if role == GlobalRole.COLLEGE_MANAGER:
        return Visibility(college_ids=actor.colleges_with_role(SCOPED_ROLES[role]))
    if role == GlobalRole.SECURITY:
        return Visibility(college_ids=actor.colleges_with_role(SCOPED_ROLES[role]))
    if role == GlobalRole.DEPARTMENT_MANAGER:
        departments = frozenset(
            m.department_id for m in actor.memberships
            if m.is_active and m.department_id is not None and m.college_role in SCOPED_ROLES[role]
        )
        return Visibility(department_ids=departments, owner_id=actor.user_id)
    if role == GlobalRole.USER:
        colleges = frozenset(
            m.college_id for m in actor.memberships
            if m.is_active and m.permissions.can_view_all_appointments
        )
        return Visibility(college_ids=colleges, owner_id=actor.user_id)
    return Visibility()
