"""College memberships: staff accounts, managers and security personnel."""

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from campus_access.auth.policy import SCOPED_ROLES, Action, Actor, ResourceScope, require
from campus_access.core.clock import Clock, utcnow
from campus_access.core.errors import (
    AuthorizationError,
    ConflictError,
    DenyReason,
    NotFoundError,
    ValidationError,
)
from campus_access.models.membership import CollegeRole, Membership, MembershipPermissions, SecurityShift
from campus_access.models.user import GlobalRole, User
from campus_access.repositories.gateway import Gateway
from campus_access.services.appointment_service import parse_enum
from campus_access.services.user_service import new_user

logger = logging.getLogger(__name__)

PERSONNEL_FIELDS = frozenset({'first_name', 'last_name', 'phone', 'is_active', 'shift'})


@dataclass
class Member:
    user: User
    membership: Membership


def parse_permissions(raw) -> MembershipPermissions:
    """Validate a permission payload at the membership boundary."""
    if raw is None:
        return MembershipPermissions()
    if isinstance(raw, MembershipPermissions):
        return raw
    try:
        return MembershipPermissions.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(f'Invalid permissions: {exc.errors()[0]["msg"]}') from exc


def _parse_shift(value) -> Optional[SecurityShift]:
    if value is None:
        return None
    try:
        return SecurityShift(str(value).upper())
    except ValueError as exc:
        raise ValidationError('Invalid shift.') from exc


def managed_college_id(actor: Actor, global_role: GlobalRole) -> int:
    """The college an actor manages through its membership."""
    colleges = actor.colleges_with_role(SCOPED_ROLES[global_role])
    if actor.global_role != global_role or not colleges:
        raise AuthorizationError(DenyReason.NO_MEMBERSHIP, 'You are not assigned to a college.')
    return min(colleges)


class MembershipService:
    def __init__(self, gateway: Gateway, clock: Clock = utcnow):
        self.gateway = gateway
        self.clock = clock

    def enroll(
        self,
        college_id: int,
        data: dict,
        global_role: GlobalRole,
        college_role: CollegeRole,
        department_id: Optional[int] = None,
    ) -> Member:
        """Find or create the user by email and add a membership; the caller commits."""
        if department_id is not None:
            department = self.gateway.departments.find_one(id=department_id, college_id=college_id)
            if department is None:
                raise ValidationError('Invalid department for this college.')

        email = (data.get('email') or '').strip().lower()
        user = self.gateway.users.find_one(email=email) if email else None
        if user is None:
            user = new_user(self.gateway, data, global_role)
        elif user.role == GlobalRole.SUPER_ADMIN:
            raise ConflictError('Super administrators cannot be enrolled as college members.')
        elif user.role != global_role and global_role != GlobalRole.USER:
            # A global role spans every college, so one college never rewrites it
            raise ConflictError(
                f'User already holds the {user.role.value} role and cannot be enrolled as {global_role.value}.'
            )

        if self.gateway.memberships.find_one(user_id=user.id, college_id=college_id) is not None:
            raise ConflictError('This user is already a member of the college.')

        membership = self.gateway.memberships.create(Membership(
            user_id=user.id,
            college_id=college_id,
            college_role=college_role,
            department_id=department_id,
            enrollment_number=(data.get('enrollment_number') or None),
            is_active=True,
            joined_at=self.clock(),
            permissions=parse_permissions(data.get('permissions')),
            shift=_parse_shift(data.get('shift')),
        ))
        return Member(user=user, membership=membership)

    # -- college manager ---------------------------------------------------

    def add_member(self, actor: Actor, college_id: int, data: dict) -> Member:
        require(actor, Action.MANAGE_MEMBERS, ResourceScope(college_id=college_id))
        global_role = parse_enum(GlobalRole, data.get('role'), 'role') or GlobalRole.USER
        if global_role in (GlobalRole.SUPER_ADMIN, GlobalRole.COLLEGE_MANAGER):
            raise ValidationError('College managers cannot create administrators.')
        college_role = parse_enum(CollegeRole, data.get('college_role'), 'college_role') or CollegeRole.STUDENT
        member = self.enroll(college_id, data, global_role, college_role, data.get('department_id'))
        self.gateway.commit()
        logger.info('User %s added to college %s as %s', member.user.id, college_id, college_role.value)
        return member

    def create_department_manager(self, actor: Actor, college_id: int, data: dict) -> Member:
        require(actor, Action.MANAGE_MEMBERS, ResourceScope(college_id=college_id))
        department_id = data.get('department_id')
        if department_id is None:
            raise ValidationError('department_id is required for a department manager.')
        member = self.enroll(college_id, data, GlobalRole.DEPARTMENT_MANAGER, CollegeRole.MANAGER, department_id)
        self.gateway.commit()
        logger.info('Department manager %s created for department %s', member.user.id, department_id)
        return member

    def create_security_manager(self, actor: Actor, college_id: int, data: dict) -> Member:
        require(actor, Action.MANAGE_MEMBERS, ResourceScope(college_id=college_id))
        member = self.enroll(college_id, data, GlobalRole.SECURITY_MANAGER, CollegeRole.SECURITY)
        self.gateway.commit()
        logger.info('Security manager %s created for college %s', member.user.id, college_id)
        return member

    def list_members(
        self,
        actor: Actor,
        college_id: int,
        college_role: Optional[CollegeRole] = None,
        global_role: Optional[GlobalRole] = None,
    ) -> list[Member]:
        require(actor, Action.MANAGE_MEMBERS, ResourceScope(college_id=college_id))
        criteria = {'college_role': college_role} if college_role is not None else {}
        members = []
        for membership in self.gateway.memberships.find_all(college_id=college_id, **criteria):
            user = self.gateway.users.find_one(id=membership.user_id)
            if user is None or (global_role is not None and user.role != global_role):
                continue
            members.append(Member(user=user, membership=membership))
        return members

    def set_member_status(self, actor: Actor, college_id: int, user_id: int, is_active: bool) -> Member:
        require(actor, Action.MANAGE_MEMBERS, ResourceScope(college_id=college_id))
        if user_id == actor.user_id:
            raise ValidationError('You cannot change your own membership status.')
        membership = self.gateway.memberships.update(
            (user_id, college_id),
            {'is_active': is_active, 'left_at': None if is_active else self.clock()},
        )
        self.gateway.commit()
        logger.info('Membership of user %s in college %s set active=%s', user_id, college_id, is_active)
        return Member(user=self.gateway.users.find_by_id(user_id), membership=membership)

    # -- security manager --------------------------------------------------

    def _security_member(self, actor: Actor, user_id: int) -> tuple[int, Member]:
        college_id = managed_college_id(actor, GlobalRole.SECURITY_MANAGER)
        require(actor, Action.MANAGE_SECURITY, ResourceScope(college_id=college_id))
        membership = self.gateway.memberships.find_one(
            user_id=user_id, college_id=college_id, college_role=CollegeRole.SECURITY,
        )
        user = self.gateway.users.find_one(id=user_id, role=GlobalRole.SECURITY)
        if membership is None or user is None:
            raise NotFoundError('Security personnel not found in your college.')
        return college_id, Member(user=user, membership=membership)

    def create_security_personnel(self, actor: Actor, data: dict) -> Member:
        college_id = managed_college_id(actor, GlobalRole.SECURITY_MANAGER)
        require(actor, Action.MANAGE_SECURITY, ResourceScope(college_id=college_id))
        data = {**data, 'shift': data.get('shift') or SecurityShift.FULL_DAY.value}
        member = self.enroll(college_id, data, GlobalRole.SECURITY, CollegeRole.SECURITY)
        self.gateway.commit()
        logger.info('Security personnel %s created in college %s', member.user.id, college_id)
        return member

    def list_security_personnel(self, actor: Actor, include_inactive: bool = False) -> list[Member]:
        college_id = managed_college_id(actor, GlobalRole.SECURITY_MANAGER)
        require(actor, Action.MANAGE_SECURITY, ResourceScope(college_id=college_id))
        criteria = {} if include_inactive else {'is_active': True}
        members = []
        for membership in self.gateway.memberships.find_all(
            college_id=college_id, college_role=CollegeRole.SECURITY, **criteria
        ):
            user = self.gateway.users.find_one(id=membership.user_id, role=GlobalRole.SECURITY)
            if user is not None:
                members.append(Member(user=user, membership=membership))
        return members

    def get_security_personnel(self, actor: Actor, user_id: int) -> Member:
        _, member = self._security_member(actor, user_id)
        return member

    def update_security_personnel(self, actor: Actor, user_id: int, changes: dict) -> Member:
        college_id, member = self._security_member(actor, user_id)
        locked = sorted(set(changes) - PERSONNEL_FIELDS)
        if locked:
            raise ValidationError(f'Fields cannot be changed: {", ".join(locked)}.')

        user_patch = {key: changes[key].strip() for key in ('first_name', 'last_name', 'phone') if changes.get(key)}
        if user_patch:
            member.user = self.gateway.users.update(user_id, user_patch)

        membership_patch = {}
        if 'shift' in changes:
            membership_patch['shift'] = _parse_shift(changes['shift'])
        if 'is_active' in changes:
            membership_patch['is_active'] = bool(changes['is_active'])
            membership_patch['left_at'] = None if changes['is_active'] else self.clock()
        if membership_patch:
            member.membership = self.gateway.memberships.update((user_id, college_id), membership_patch)

        self.gateway.commit()
        return member

    def remove_security_personnel(self, actor: Actor, user_id: int) -> None:
        """Ends the membership; the user row stays for the check-in history."""
        college_id, _ = self._security_member(actor, user_id)
        self.gateway.memberships.update((user_id, college_id), {'is_active': False, 'left_at': self.clock()})
        self.gateway.commit()
        logger.info('Security personnel %s removed from college %s', user_id, college_id)

    def update_shift(self, actor: Actor, user_id: int, shift: str) -> Member:
        if not shift:
            raise ValidationError('Shift is required.')
        return self.update_security_personnel(actor, user_id, {'shift': shift})
