"""Read-only summaries for department, security and college managers."""

from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from campus_access.auth.policy import SCOPED_ROLES, Action, Actor, ResourceScope, require
from campus_access.core.clock import Clock, to_naive_utc, utcnow
from campus_access.core.errors import AuthorizationError, DenyReason, NotFoundError, ValidationError
from campus_access.models.appointment import Appointment, AppointmentStatus, AppointmentType
from campus_access.models.department import Department
from campus_access.models.membership import CollegeRole
from campus_access.models.user import GlobalRole
from campus_access.repositories.gateway import Gateway
from campus_access.services.membership_service import managed_college_id


def _window(date_from: Optional[datetime], date_to: Optional[datetime]) -> list:
    conditions = []
    if date_from is not None:
        conditions.append(Appointment.start_time >= to_naive_utc(date_from))
    if date_to is not None:
        conditions.append(Appointment.start_time <= to_naive_utc(date_to))
    if date_from is not None and date_to is not None and to_naive_utc(date_from) > to_naive_utc(date_to):
        raise ValidationError('"from" must not be after "to".')
    return conditions


def _zeroed(enum_class, counts: Counter) -> dict:
    return {member.value: counts.get(member, 0) for member in enum_class}


class ReportService:
    def __init__(self, gateway: Gateway, clock: Clock = utcnow):
        self.gateway = gateway
        self.clock = clock

    def _today(self) -> tuple[datetime, datetime]:
        day_start = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return day_start, day_start + timedelta(days=1)

    def _department(self, actor: Actor, department_id: Optional[int]) -> Department:
        """The department to report on: explicit, or the one a department manager runs."""
        if department_id is None:
            if actor.global_role != GlobalRole.DEPARTMENT_MANAGER:
                raise ValidationError('department_id is required.')
            roles = SCOPED_ROLES[GlobalRole.DEPARTMENT_MANAGER]
            candidates = sorted(
                m.department_id for m in actor.memberships
                if m.is_active and m.department_id is not None and m.college_role in roles
            )
            if not candidates:
                raise AuthorizationError(DenyReason.NOT_IN_DEPARTMENT, 'You are not assigned to a department.')
            department_id = candidates[0]

        department = self.gateway.departments.find_one(id=department_id)
        if department is None:
            raise NotFoundError('Department not found.')
        require(actor, Action.VIEW_REPORTS, ResourceScope(college_id=department.college_id, department_id=department.id))
        return department

    def department_report(
        self,
        actor: Actor,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        department_id: Optional[int] = None,
    ) -> dict:
        department = self._department(actor, department_id)
        appointments = self.gateway.appointments.find_all(
            *_window(date_from, date_to), department_id=department.id,
        )
        now = self.clock()
        return {
            'department_id': department.id,
            'department_name': department.name,
            'total': len(appointments),
            'by_status': _zeroed(AppointmentStatus, Counter(a.status for a in appointments)),
            'by_type': _zeroed(AppointmentType, Counter(a.type for a in appointments)),
            'upcoming': sum(1 for a in appointments if a.start_time >= now),
            'past': sum(1 for a in appointments if a.start_time < now),
        }

    def department_dashboard(self, actor: Actor, department_id: Optional[int] = None) -> dict:
        department = self._department(actor, department_id)
        repo = self.gateway.appointments
        day_start, day_end = self._today()
        return {
            'department_id': department.id,
            'department_name': department.name,
            'total': repo.count(department_id=department.id),
            'pending': repo.count(department_id=department.id, status=AppointmentStatus.PENDING),
            'confirmed': repo.count(department_id=department.id, status=AppointmentStatus.CONFIRMED),
            'today': repo.count(
                Appointment.start_time >= day_start,
                Appointment.start_time < day_end,
                department_id=department.id,
            ),
        }

    def security_report(
        self,
        actor: Actor,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> dict:
        college_id = managed_college_id(actor, GlobalRole.SECURITY_MANAGER)
        require(actor, Action.VIEW_REPORTS, ResourceScope(college_id=college_id))
        appointments = self.gateway.appointments.find_all(*_window(date_from, date_to), college_id=college_id)
        now = self.clock()

        officers = {}
        for membership in self.gateway.memberships.find_all(college_id=college_id, college_role=CollegeRole.SECURITY):
            user = self.gateway.users.find_one(id=membership.user_id, role=GlobalRole.SECURITY)
            if user is not None:
                officers[user.id] = {
                    'user_id': user.id,
                    'name': user.full_name,
                    'shift': membership.shift.value if membership.shift else None,
                    'is_active': membership.is_active,
                    'check_ins': 0,
                    'check_outs': 0,
                }

        departments = {}
        for appointment in appointments:
            bucket = departments.setdefault(appointment.department_id, {
                'department_id': appointment.department_id,
                'department_name': appointment.department_name,
                'appointments': 0,
                'check_ins': 0,
                'check_outs': 0,
            })
            bucket['appointments'] += 1
            if appointment.checked_in_at is not None:
                bucket['check_ins'] += 1
                if appointment.checked_in_by in officers:
                    officers[appointment.checked_in_by]['check_ins'] += 1
            if appointment.checked_out_at is not None:
                bucket['check_outs'] += 1
                if appointment.checked_out_by in officers:
                    officers[appointment.checked_out_by]['check_outs'] += 1

        return {
            'college_id': college_id,
            'total': len(appointments),
            'check_ins': sum(1 for a in appointments if a.checked_in_at is not None),
            'check_outs': sum(1 for a in appointments if a.checked_out_at is not None),
            'no_shows': sum(
                1 for a in appointments
                if a.status == AppointmentStatus.CONFIRMED and a.checked_in_at is None and a.end_time < now
            ),
            'per_officer': sorted(officers.values(), key=lambda row: row['user_id']),
            'per_department': sorted(
                departments.values(), key=lambda row: (row['department_id'] is None, row['department_id'] or 0),
            ),
        }

    def college_dashboard(self, actor: Actor, college_id: Optional[int] = None) -> dict:
        if college_id is None:
            college_id = managed_college_id(actor, GlobalRole.COLLEGE_MANAGER)
        require(actor, Action.VIEW_REPORTS, ResourceScope(college_id=college_id))
        college = self.gateway.colleges.find_by_id(college_id)
        memberships = self.gateway.memberships.find_all(college_id=college_id, is_active=True)
        appointments = self.gateway.appointments.find_all(college_id=college_id)
        day_start, day_end = self._today()
        return {
            'college_id': college.id,
            'college_name': college.name,
            'open_today': college.operating_hours_for(day_start.weekday()),
            'departments': self.gateway.departments.count(college_id=college_id, is_active=True),
            'members': len(memberships),
            'members_by_role': _zeroed(CollegeRole, Counter(m.college_role for m in memberships)),
            'appointments': len(appointments),
            'appointments_by_status': _zeroed(AppointmentStatus, Counter(a.status for a in appointments)),
            'today': sum(1 for a in appointments if day_start <= a.start_time < day_end),
        }
