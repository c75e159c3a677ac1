"""Colleges and departments."""

import logging

from campus_access.auth.policy import Action, Actor, ResourceScope, require
from campus_access.core.clock import Clock, utcnow
from campus_access.core.errors import ConflictError, DuplicateKeyError, NotFoundError, ValidationError
from campus_access.models.college import DEFAULT_COLLEGE_SETTINGS, DEFAULT_OPERATING_HOURS, WEEKDAYS, College
from campus_access.models.department import DEFAULT_DEPARTMENT_SETTINGS, Department
from campus_access.models.membership import CollegeRole
from campus_access.models.user import GlobalRole
from campus_access.repositories.gateway import Gateway
from campus_access.services.membership_service import Member, MembershipService, managed_college_id

logger = logging.getLogger(__name__)

COLLEGE_FIELDS = frozenset({
    'name', 'code', 'location', 'address', 'phone', 'email', 'website',
    'operating_hours', 'settings', 'timezone', 'is_active',
})
REQUIRED_COLLEGE_FIELDS = frozenset({'name', 'code', 'location', 'is_active'})
DEPARTMENT_FIELDS = frozenset({
    'name', 'code', 'description', 'contact_user_id', 'contact_email', 'contact_phone', 'settings', 'sort_order',
})
REQUIRED_DEPARTMENT_FIELDS = frozenset({'name', 'code', 'is_active', 'sort_order'})


def _validate_operating_hours(hours: dict) -> dict:
    unknown = sorted(set(hours) - set(WEEKDAYS))
    if unknown:
        raise ValidationError(f'Unknown weekdays in operating hours: {", ".join(unknown)}.')
    merged = {**DEFAULT_OPERATING_HOURS, **hours}
    for day, window in merged.items():
        if not isinstance(window, dict) or set(window) != {'open', 'close'}:
            raise ValidationError(f'Operating hours for {day} need "open" and "close".')
        if (window['open'] is None) != (window['close'] is None):
            raise ValidationError(f'Operating hours for {day} must set both "open" and "close" or neither.')
        if window['open'] is not None and window['open'] >= window['close']:
            raise ValidationError(f'Operating hours for {day} close before they open.')
    return merged


def _validate_name_and_code(data: dict, min_name: int) -> None:
    name = (data.get('name') or '').strip()
    code = (data.get('code') or '').strip()
    if not min_name <= len(name) <= 100:
        raise ValidationError(f'Name must be between {min_name} and 100 characters.')
    if not code or len(code) > 10:
        raise ValidationError('Code is required and must be at most 10 characters.')


class CollegeService:
    def __init__(self, gateway: Gateway, clock: Clock = utcnow):
        self.gateway = gateway
        self.clock = clock
        self.memberships = MembershipService(gateway, clock)

    # -- colleges ----------------------------------------------------------

    def create_college(self, actor: Actor, data: dict) -> College:
        require(actor, Action.MANAGE_COLLEGES, ResourceScope())
        _validate_name_and_code(data, min_name=3)
        if not (data.get('location') or '').strip():
            raise ValidationError('Location is required.')
        code = data['code'].strip().upper()
        if self.gateway.colleges.find_one(code=code, include_deleted=True) is not None:
            raise ConflictError(f'College code {code} is already in use.')

        college = College(
            name=data['name'].strip(),
            code=code,
            location=data['location'].strip(),
            address=data.get('address'),
            phone=data.get('phone'),
            email=data.get('email'),
            website=data.get('website'),
            created_by=actor.user_id,
            operating_hours=_validate_operating_hours(data.get('operating_hours') or {}),
            settings={**DEFAULT_COLLEGE_SETTINGS, **(data.get('settings') or {})},
            timezone=data.get('timezone') or 'Africa/Kigali',
            is_active=True,
        )
        self.gateway.colleges.create(college)
        self.gateway.commit()
        logger.info('College %s (%s) created by user %s', college.id, college.code, actor.user_id)
        return college

    def list_colleges(self, actor: Actor, include_inactive: bool = False) -> list[College]:
        require(actor, Action.MANAGE_COLLEGES, ResourceScope())
        criteria = {} if include_inactive else {'is_active': True}
        return self.gateway.colleges.find_all(order_by=College.name.asc(), **criteria)

    def get_college(self, actor: Actor, college_id: int) -> College:
        college = self.gateway.colleges.find_by_id(college_id)
        if not actor.is_super_admin and actor.membership_in(college_id) is None:
            raise NotFoundError('College not found.')
        return college

    def get_my_college(self, actor: Actor) -> College:
        return self.gateway.colleges.find_by_id(managed_college_id(actor, GlobalRole.COLLEGE_MANAGER))

    def update_college(self, actor: Actor, college_id: int, changes: dict) -> College:
        require(actor, Action.MANAGE_COLLEGE, ResourceScope(college_id=college_id))
        college = self.gateway.colleges.find_by_id(college_id)
        locked = sorted(set(changes) - COLLEGE_FIELDS)
        if locked:
            raise ValidationError(f'Fields cannot be changed: {", ".join(locked)}.')

        patch = {key: value for key, value in changes.items() if value is not None or key not in REQUIRED_COLLEGE_FIELDS}
        if 'code' in patch:
            patch['code'] = (patch['code'] or '').strip().upper()
            if not patch['code'] or len(patch['code']) > 10:
                raise ValidationError('Code is required and must be at most 10 characters.')
        if 'operating_hours' in patch:
            patch['operating_hours'] = _validate_operating_hours({**(college.operating_hours or {}), **(patch['operating_hours'] or {})})
        if 'settings' in patch:
            patch['settings'] = {**(college.settings or {}), **(patch['settings'] or {})}
        if not patch:
            return college

        try:
            college = self.gateway.colleges.update(college_id, patch)
        except DuplicateKeyError as exc:
            raise ConflictError('College code is already in use.') from exc
        self.gateway.commit()
        logger.info('College %s updated by user %s: %s', college_id, actor.user_id, sorted(patch))
        return college

    def delete_college(self, actor: Actor, college_id: int) -> None:
        require(actor, Action.MANAGE_COLLEGES, ResourceScope(college_id=college_id))
        self.gateway.colleges.update(college_id, {'is_active': False})
        self.gateway.colleges.delete(college_id)
        self.gateway.commit()
        logger.info('College %s deleted by user %s', college_id, actor.user_id)

    def create_college_manager(self, actor: Actor, college_id: int, data: dict) -> Member:
        require(actor, Action.MANAGE_COLLEGES, ResourceScope(college_id=college_id))
        college = self.gateway.colleges.find_by_id(college_id)
        if college.manager_id is not None:
            raise ConflictError('College already has a manager.')
        member = self.memberships.enroll(college_id, data, GlobalRole.COLLEGE_MANAGER, CollegeRole.MANAGER)
        self.gateway.colleges.update(college_id, {'manager_id': member.user.id})
        self.gateway.commit()
        logger.info('User %s is now manager of college %s', member.user.id, college_id)
        return member

    def list_college_managers(self, actor: Actor) -> list[Member]:
        require(actor, Action.MANAGE_COLLEGES, ResourceScope())
        managers = []
        for college in self.gateway.colleges.find_all(order_by=College.name.asc()):
            if college.manager_id is None:
                continue
            membership = self.gateway.memberships.find_one(user_id=college.manager_id, college_id=college.id)
            user = self.gateway.users.find_one(id=college.manager_id)
            if membership is not None and user is not None:
                managers.append(Member(user=user, membership=membership))
        return managers

    # -- departments -------------------------------------------------------

    def create_department(self, actor: Actor, college_id: int, data: dict) -> Department:
        require(actor, Action.MANAGE_DEPARTMENTS, ResourceScope(college_id=college_id))
        self.gateway.colleges.find_by_id(college_id)
        _validate_name_and_code(data, min_name=2)

        department = Department(
            college_id=college_id,
            name=data['name'].strip(),
            code=data['code'].strip().upper(),
            description=data.get('description'),
            contact_user_id=data.get('contact_user_id'),
            contact_email=data.get('contact_email'),
            contact_phone=data.get('contact_phone'),
            settings={**DEFAULT_DEPARTMENT_SETTINGS, **(data.get('settings') or {})},
            sort_order=data.get('sort_order') or 0,
            is_active=True,
        )
        try:
            self.gateway.departments.create(department)
        except DuplicateKeyError as exc:
            raise ConflictError('A department with this name or code already exists in the college.') from exc
        self.gateway.commit()
        logger.info('Department %s (%s) created in college %s', department.id, department.code, college_id)
        return department

    def list_departments(self, actor: Actor, college_id: int, include_inactive: bool = False) -> list[Department]:
        self.get_college(actor, college_id)
        criteria = {} if include_inactive else {'is_active': True}
        return self.gateway.departments.find_all(
            college_id=college_id,
            order_by=[Department.sort_order.asc(), Department.name.asc()],
            **criteria,
        )

    def update_department(self, actor: Actor, college_id: int, department_id: int, changes: dict) -> Department:
        require(actor, Action.MANAGE_DEPARTMENTS, ResourceScope(college_id=college_id))
        department = self.gateway.departments.find_one(id=department_id, college_id=college_id)
        if department is None:
            raise NotFoundError('Department not found in this college.')
        locked = sorted(set(changes) - DEPARTMENT_FIELDS - {'is_active'})
        if locked:
            raise ValidationError(f'Fields cannot be changed: {", ".join(locked)}.')
        patch = {key: value for key, value in changes.items() if value is not None or key not in REQUIRED_DEPARTMENT_FIELDS}
        if 'code' in patch:
            patch['code'] = patch['code'].strip().upper()
        if 'settings' in patch:
            patch['settings'] = {**(department.settings or {}), **(patch['settings'] or {})}
        try:
            department = self.gateway.departments.update(department_id, patch)
        except DuplicateKeyError as exc:
            raise ConflictError('A department with this name or code already exists in the college.') from exc
        self.gateway.commit()
        return department

    def department_managers(self, actor: Actor, college_id: int) -> list[Member]:
        return self.memberships.list_members(actor, college_id, global_role=GlobalRole.DEPARTMENT_MANAGER)

    def resolve_college(self, actor: Actor) -> int:
        """The college the acting college manager runs."""
        return managed_college_id(actor, GlobalRole.COLLEGE_MANAGER)

    def college_stats(self, actor: Actor) -> dict:
        """Platform-wide counts, plus a per-college breakdown."""
        require(actor, Action.MANAGE_COLLEGES, ResourceScope())
        gateway = self.gateway
        colleges = gateway.colleges.find_all(order_by=College.name.asc())
        return {
            'colleges': len(colleges),
            'active_colleges': sum(1 for college in colleges if college.is_active),
            'users': gateway.users.count(),
            'appointments': gateway.appointments.count(),
            'per_college': [
                {
                    'college_id': college.id,
                    'name': college.name,
                    'code': college.code,
                    'departments': gateway.departments.count(college_id=college.id),
                    'members': gateway.memberships.count(college_id=college.id, is_active=True),
                    'appointments': gateway.appointments.count(college_id=college.id),
                }
                for college in colleges
            ],
        }
