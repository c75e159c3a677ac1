"""
Appointment lifecycle.

    PENDING -> CONFIRMED -> COMPLETED
    PENDING -> CANCELLED
    CONFIRMED -> CANCELLED

Every transition is a single compare-and-swap write: the row is only updated
while its status still matches the state the transition was checked against.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import or_

from campus_access.auth.policy import Action, Actor, ResourceScope, authorize, visibility
from campus_access.core import config
from campus_access.core.clock import Clock, to_naive_utc, utcnow
from campus_access.core.errors import (
    AlreadyDoneError,
    AuthorizationError,
    CampusAccessError,
    ConflictError,
    DenyReason,
    DuplicateKeyError,
    NotFoundError,
    TimeWindowError,
    ValidationError,
)
from campus_access.models.appointment import (
    Appointment,
    AppointmentPriority,
    AppointmentStatus,
    AppointmentType,
    can_transition,
)
from campus_access.repositories.gateway import Gateway
from campus_access.services import codes

logger = logging.getLogger(__name__)

# Denials that depend on where the appointment lives are reported as "not found"
SCOPE_REASONS = frozenset({DenyReason.NO_MEMBERSHIP, DenyReason.NOT_IN_DEPARTMENT, DenyReason.NOT_OWNER})

OPEN_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})
MAX_TITLE_LENGTH = 200
UPDATABLE_FIELDS = frozenset({
    'title', 'type', 'priority', 'description', 'start_time', 'end_time', 'location', 'guests', 'attachment_urls',
})


class CodeOutcome(str, enum.Enum):
    VALID = "VALID"
    EXPIRED = "EXPIRED"
    INVALID = "INVALID"


@dataclass
class ApprovalResult:
    appointment: Appointment
    apt_code: str
    apt_expires_at: datetime


@dataclass
class CodeCheck:
    appointment: Appointment
    outcome: CodeOutcome

    @property
    def valid(self) -> bool:
        return self.outcome == CodeOutcome.VALID


@dataclass
class Verification:
    appointment: Appointment
    is_today: bool
    can_check_in: bool
    can_check_out: bool


def normalize_guests(raw: Any) -> list[dict]:
    """Validate a guest list into ``[{fullname, identifier}, ...]``; never truncates."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError('Guests must be a list of { fullname, identifier } records.')

    guests = []
    for position, guest in enumerate(raw):
        if hasattr(guest, 'model_dump'):
            guest = guest.model_dump()
        if not isinstance(guest, dict):
            raise ValidationError(f'Guest #{position + 1} must be an object with fullname and identifier.')
        fullname = guest.get('fullname')
        identifier = guest.get('identifier', guest.get('id'))
        if not isinstance(fullname, str) or not fullname.strip():
            raise ValidationError(f'Guest #{position + 1} is missing a fullname.')
        if identifier is None or not str(identifier).strip():
            raise ValidationError(f'Guest #{position + 1} is missing an identifier.')
        guests.append({'fullname': fullname.strip(), 'identifier': str(identifier).strip()})
    return guests


def parse_enum(enum_class, value, field_name: str):
    if value is None:
        return None
    try:
        return enum_class(value.upper() if isinstance(value, str) else value)
    except ValueError as exc:
        allowed = ', '.join(member.value for member in enum_class)
        raise ValidationError(f'Invalid {field_name}. Expected one of: {allowed}.') from exc


def _parse_datetime(value, field_name: str) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(f'{field_name} must be an ISO 8601 datetime.') from exc
    if not isinstance(value, datetime):
        raise ValidationError(f'{field_name} is required.')
    return to_naive_utc(value)


def _validate_window(start_time: datetime, end_time: datetime) -> None:
    if start_time >= end_time:
        raise ValidationError('End time must be after start time.')


def check_in_blocker(appointment: Appointment, now: datetime) -> Optional[CampusAccessError]:
    """The error a check-in at ``now`` would fail with, or None when it is allowed."""
    if appointment.checked_in_at is not None:
        return AlreadyDoneError('Appointment already checked in.')
    if appointment.is_terminal:
        return ConflictError(f'Appointment is {appointment.status.value} and cannot be checked in.')
    if now < appointment.start_time:
        return TimeWindowError('Appointment time has not started yet.')
    if now > appointment.end_time:
        return TimeWindowError('Appointment time has expired.')
    return None


def check_out_blocker(appointment: Appointment, now: datetime) -> Optional[CampusAccessError]:
    """The error a check-out at ``now`` would fail with, or None when it is allowed."""
    if appointment.checked_out_at is not None:
        return AlreadyDoneError('Appointment already checked out.')
    if appointment.checked_in_at is None:
        return ConflictError('Appointment has not been checked in.')
    if not can_transition(appointment.status, AppointmentStatus.COMPLETED):
        return ConflictError(f'Appointment is {appointment.status.value} and cannot be checked out.')
    if now < appointment.checked_in_at:
        return TimeWindowError('Check-out cannot precede check-in.')
    return None


def _role_label(actor: Actor) -> str:
    return actor.global_role.value.replace('_', ' ').title()


class AppointmentService:
    """Owns appointment state; every public method is one unit of work."""

    def __init__(
        self,
        gateway: Gateway,
        clock: Clock = utcnow,
        code_generator: Callable[[], str] = codes.generate_access_code,
        reference_generator: Callable[[datetime], str] = codes.generate_reference_number,
    ):
        self.gateway = gateway
        self.clock = clock
        self.code_generator = code_generator
        self.reference_generator = reference_generator

    # -- access ------------------------------------------------------------

    def _check(self, actor: Actor, action: Action, appointment: Appointment) -> None:
        scope = ResourceScope.of(appointment)
        seen = authorize(actor, Action.VIEW, scope)
        if not seen.allowed and seen.reason in SCOPE_REASONS:
            raise NotFoundError('Appointment not found.')
        decision = seen if action == Action.VIEW else authorize(actor, action, scope)
        if not decision.allowed:
            logger.warning(
                'Denied %s on appointment %s for user %s: %s',
                action.value, appointment.id, actor.user_id, decision.reason.value,
            )
            raise AuthorizationError(decision.reason)

    def _load(self, actor: Actor, appointment_id: int, action: Action, include_deleted: bool = False) -> Appointment:
        appointment = self.gateway.appointments.find_by_id(appointment_id, include_deleted=include_deleted)
        self._check(actor, action, appointment)
        return appointment

    def _visibility_conditions(self, actor: Actor) -> Optional[list]:
        scope = visibility(actor)
        if scope.everything:
            return []
        clauses = []
        if scope.college_ids:
            clauses.append(Appointment.college_id.in_(sorted(scope.college_ids)))
        if scope.department_ids:
            clauses.append(Appointment.department_id.in_(sorted(scope.department_ids)))
        if scope.owner_id is not None:
            clauses.append(Appointment.created_by == scope.owner_id)
        if not clauses:
            return None
        return [or_(*clauses)]

    def _guest_limit(self, user_id: int, college_id: int) -> int:
        membership = self.gateway.memberships.find_one(user_id=user_id, college_id=college_id, is_active=True)
        if membership is None:
            return config.DEFAULT_MAX_GUESTS
        return membership.permissions.guest_limit

    def _validated_guests(self, raw, user_id: int, college_id: int) -> list[dict]:
        guests = normalize_guests(raw)
        limit = self._guest_limit(user_id, college_id)
        if len(guests) > limit:
            raise ValidationError(f'Too many guests: {len(guests)} requested, {limit} allowed.')
        return guests

    # -- creation and reads ------------------------------------------------

    def create(self, actor: Actor, fields: dict) -> Appointment:
        college_id = fields.get('college_id')
        if college_id is None:
            raise ValidationError('college_id is required.')
        college = self.gateway.colleges.find_by_id(college_id)
        if not college.is_active:
            raise ValidationError('College is not accepting appointments.')

        department = None
        department_id = fields.get('department_id')
        if department_id is not None:
            department = self.gateway.departments.find_one(id=department_id, college_id=college.id)
            if department is None:
                raise NotFoundError('Department not found in this college.')
            if not department.is_accepting_appointments:
                raise ValidationError('Department is not accepting appointments.')

        scope = ResourceScope(college_id=college.id, department_id=department_id, owner_id=actor.user_id)
        decision = authorize(actor, Action.CREATE, scope)
        if not decision.allowed:
            logger.warning('Denied create for user %s in college %s: %s', actor.user_id, college.id, decision.reason.value)
            raise AuthorizationError(decision.reason)

        description = fields.get('description')
        if not isinstance(description, str) or not description.strip():
            raise ValidationError('Description is required.')
        title = fields.get('title')
        if title is not None and len(title.strip()) > MAX_TITLE_LENGTH:
            raise ValidationError(f'Title must be {MAX_TITLE_LENGTH} characters or fewer.')

        start_time = _parse_datetime(fields.get('start_time'), 'start_time')
        end_time = _parse_datetime(fields.get('end_time'), 'end_time')
        _validate_window(start_time, end_time)

        appointment_type = parse_enum(AppointmentType, fields.get('type'), 'type') or AppointmentType.MEETING
        priority = parse_enum(AppointmentPriority, fields.get('priority'), 'priority') or AppointmentPriority.MEDIUM
        guests = self._validated_guests(fields.get('guests'), actor.user_id, college.id)
        attachment_urls = [str(url) for url in fields.get('attachment_urls') or []]

        now = self.clock()
        for attempt in range(1, config.REFERENCE_MAX_ATTEMPTS + 1):
            appointment = Appointment(
                title=title.strip() if title else None,
                type=appointment_type,
                priority=priority,
                reference_number=self.reference_generator(now),
                start_time=start_time,
                end_time=end_time,
                description=description.strip(),
                college_id=college.id,
                department_id=department_id,
                department_name=department.name if department else None,
                created_by=actor.user_id,
                location=fields.get('location'),
                attachment_urls=attachment_urls,
                guests=guests,
                status=AppointmentStatus.PENDING,
                details={},
            )
            try:
                self.gateway.appointments.create(appointment)
            except DuplicateKeyError:
                logger.warning('Reference number collision on attempt %s, retrying', attempt)
                continue

            # The display code needs the id, so it is stamped after the insert
            appointment.display_code = codes.display_code_for(appointment.id, now)
            self.gateway.commit()
            logger.info(
                'Appointment %s (%s) created by user %s in college %s',
                appointment.id, appointment.reference_number, actor.user_id, college.id,
            )
            return appointment

        raise ConflictError('Could not allocate a unique reference number.')

    def get(self, actor: Actor, appointment_id: int) -> Appointment:
        return self._load(actor, appointment_id, Action.VIEW)

    def get_by_reference(self, actor: Actor, reference_number: str) -> Appointment:
        appointment = self.gateway.appointments.find_one(reference_number=reference_number.strip())
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        self._check(actor, Action.VIEW, appointment)
        return appointment

    def list_appointments(
        self,
        actor: Actor,
        status: Optional[AppointmentStatus] = None,
        college_id: Optional[int] = None,
        department_id: Optional[int] = None,
    ) -> list[Appointment]:
        conditions = self._visibility_conditions(actor)
        if conditions is None:
            return []
        criteria = {}
        if status is not None:
            criteria['status'] = status
        if college_id is not None:
            criteria['college_id'] = college_id
        if department_id is not None:
            criteria['department_id'] = department_id
        return self.gateway.appointments.find_all(*conditions, order_by=Appointment.start_time.asc(), **criteria)

    def list_mine(self, actor: Actor) -> list[Appointment]:
        return self.gateway.appointments.find_all(
            created_by=actor.user_id,
            order_by=Appointment.start_time.asc(),
        )

    def list_pending(self, actor: Actor) -> list[Appointment]:
        """Pending appointments this actor may approve."""
        return [
            appointment
            for appointment in self.list_appointments(actor, status=AppointmentStatus.PENDING)
            if authorize(actor, Action.APPROVE, ResourceScope.of(appointment)).allowed
        ]

    def list_today(self, actor: Actor) -> list[Appointment]:
        conditions = self._visibility_conditions(actor)
        if conditions is None:
            return []
        day_start = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.gateway.appointments.find_all(
            *conditions,
            Appointment.start_time >= day_start,
            Appointment.start_time < day_start + timedelta(days=1),
            Appointment.status.in_(list(OPEN_STATUSES)),
            order_by=Appointment.start_time.asc(),
        )

    def list_handled(
        self,
        actor: Actor,
        status: Optional[AppointmentStatus] = None,
        appointment_type: Optional[AppointmentType] = None,
        college_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[Appointment]:
        """Appointments this actor checked in or out."""
        conditions = [or_(Appointment.checked_in_by == actor.user_id, Appointment.checked_out_by == actor.user_id)]
        if date_from is not None:
            conditions.append(Appointment.created_at >= to_naive_utc(date_from))
        if date_to is not None:
            conditions.append(Appointment.created_at <= to_naive_utc(date_to))
        criteria = {}
        if status is not None:
            criteria['status'] = status
        if appointment_type is not None:
            criteria['type'] = appointment_type
        if college_id is not None:
            criteria['college_id'] = college_id
        return self.gateway.appointments.find_all(
            *conditions, order_by=Appointment.created_at.desc(), **criteria,
        )

    # -- edits -------------------------------------------------------------

    def update(self, actor: Actor, appointment_id: int, changes: dict) -> Appointment:
        appointment = self._load(actor, appointment_id, Action.UPDATE)
        if appointment.status != AppointmentStatus.PENDING:
            raise ConflictError('Only pending appointments can be edited.')

        locked = sorted(set(changes) - UPDATABLE_FIELDS)
        if locked:
            raise ValidationError(f'Fields cannot be changed: {", ".join(locked)}.')

        patch = {}
        if 'description' in changes:
            description = changes['description']
            if not isinstance(description, str) or not description.strip():
                raise ValidationError('Description is required.')
            patch['description'] = description.strip()
        if 'title' in changes:
            title = changes['title']
            if title is not None and len(title.strip()) > MAX_TITLE_LENGTH:
                raise ValidationError(f'Title must be {MAX_TITLE_LENGTH} characters or fewer.')
            patch['title'] = title.strip() if title else None
        if 'type' in changes:
            patch['type'] = parse_enum(AppointmentType, changes['type'], 'type') or AppointmentType.MEETING
        if 'priority' in changes:
            patch['priority'] = parse_enum(AppointmentPriority, changes['priority'], 'priority') or AppointmentPriority.MEDIUM
        if 'location' in changes:
            patch['location'] = changes['location']
        if 'attachment_urls' in changes:
            patch['attachment_urls'] = [str(url) for url in changes['attachment_urls'] or []]
        if 'guests' in changes:
            patch['guests'] = self._validated_guests(changes['guests'], appointment.created_by, appointment.college_id)

        start_time = appointment.start_time
        end_time = appointment.end_time
        if 'start_time' in changes:
            start_time = patch['start_time'] = _parse_datetime(changes['start_time'], 'start_time')
        if 'end_time' in changes:
            end_time = patch['end_time'] = _parse_datetime(changes['end_time'], 'end_time')
        _validate_window(start_time, end_time)

        if not patch:
            return appointment

        updated = self.gateway.appointments.update(
            appointment.id, patch, expected={'status': AppointmentStatus.PENDING},
        )
        self.gateway.commit()
        logger.info('Appointment %s updated by user %s: %s', appointment.id, actor.user_id, sorted(patch))
        return updated

    def delete(self, actor: Actor, appointment_id: int) -> None:
        appointment = self._load(actor, appointment_id, Action.DELETE)
        self.gateway.appointments.delete(appointment.id)
        self.gateway.commit()
        logger.info('Appointment %s soft-deleted by user %s', appointment.id, actor.user_id)

    def destroy(self, actor: Actor, appointment_id: int) -> None:
        appointment = self._load(actor, appointment_id, Action.DESTROY, include_deleted=True)
        self.gateway.appointments.delete(appointment.id, hard=True)
        self.gateway.commit()
        logger.warning('Appointment %s permanently deleted by user %s', appointment.id, actor.user_id)

    # -- transitions -------------------------------------------------------

    def approve(self, actor: Actor, appointment_id: int, notes: Optional[str] = None) -> ApprovalResult:
        appointment = self._load(actor, appointment_id, Action.APPROVE)
        if not can_transition(appointment.status, AppointmentStatus.CONFIRMED):
            raise ConflictError(f'Appointment is {appointment.status.value}; only pending appointments can be approved.')

        now = self.clock()
        expires_at = appointment.end_time + timedelta(minutes=config.APT_CODE_GRACE_MINUTES)
        details = {
            **(appointment.details or {}),
            'approved_by': actor.user_id,
            'approved_at': now.isoformat(),
            'approval_notes': notes,
        }

        for attempt in range(1, config.APT_CODE_MAX_ATTEMPTS + 1):
            apt_code = self.code_generator()
            if self.gateway.appointments.find_one(apt_code=apt_code, include_deleted=True) is not None:
                logger.info('Access code collision on attempt %s, re-rolling', attempt)
                continue
            try:
                updated = self.gateway.appointments.update(
                    appointment_id,
                    {
                        'status': AppointmentStatus.CONFIRMED,
                        'apt_code': apt_code,
                        'apt_expires_at': expires_at,
                        'details': details,
                    },
                    expected={'status': AppointmentStatus.PENDING},
                )
                self.gateway.commit()
            except DuplicateKeyError:
                logger.info('Access code taken concurrently on attempt %s, re-rolling', attempt)
                continue
            logger.info('Appointment %s approved by user %s', appointment_id, actor.user_id)
            return ApprovalResult(appointment=updated, apt_code=apt_code, apt_expires_at=expires_at)

        raise ConflictError('Could not allocate a unique access code.')

    def _cancel(
        self,
        actor: Actor,
        appointment_id: int,
        action: Action,
        allowed_from: frozenset,
        reason: Optional[str],
        default_reason: str,
        audit_prefix: str,
    ) -> Appointment:
        appointment = self._load(actor, appointment_id, action)
        current = appointment.status
        if current not in allowed_from:
            raise ConflictError(f'Appointment is {current.value} and cannot be {audit_prefix}.')

        details = {
            **(appointment.details or {}),
            f'{audit_prefix}_by': actor.user_id,
            f'{audit_prefix}_at': self.clock().isoformat(),
            f'{audit_prefix}_by_role': actor.global_role.value,
        }
        updated = self.gateway.appointments.update(
            appointment.id,
            {
                'status': AppointmentStatus.CANCELLED,
                'cancellation_reason': (reason or '').strip() or default_reason,
                'details': details,
            },
            expected={'status': current},
        )
        self.gateway.commit()
        logger.info('Appointment %s %s by user %s', appointment.id, audit_prefix, actor.user_id)
        return updated

    def reject(self, actor: Actor, appointment_id: int, reason: Optional[str] = None) -> Appointment:
        return self._cancel(
            actor, appointment_id, Action.REJECT,
            allowed_from=frozenset({AppointmentStatus.PENDING}),
            reason=reason,
            default_reason=f'Rejected by {_role_label(actor)}',
            audit_prefix='rejected',
        )

    def cancel(self, actor: Actor, appointment_id: int, reason: Optional[str] = None) -> Appointment:
        return self._cancel(
            actor, appointment_id, Action.CANCEL,
            allowed_from=OPEN_STATUSES,
            reason=reason,
            default_reason=f'Cancelled by {_role_label(actor)}',
            audit_prefix='cancelled',
        )

    def check_in(self, actor: Actor, appointment_id: int) -> Appointment:
        appointment = self._load(actor, appointment_id, Action.CHECK_IN)
        now = self.clock()
        blocker = check_in_blocker(appointment, now)
        if blocker is not None:
            raise blocker

        updated = self.gateway.appointments.update(
            appointment.id,
            {
                'checked_in_at': now,
                'checked_in_by': actor.user_id,
                'status': AppointmentStatus.CONFIRMED,
            },
            expected={'status': appointment.status, 'checked_in_at': None},
        )
        self.gateway.commit()
        logger.info('Appointment %s checked in by user %s', appointment.id, actor.user_id)
        return updated

    def check_out(self, actor: Actor, appointment_id: int) -> Appointment:
        appointment = self._load(actor, appointment_id, Action.CHECK_OUT)
        now = self.clock()
        blocker = check_out_blocker(appointment, now)
        if blocker is not None:
            raise blocker

        updated = self.gateway.appointments.update(
            appointment.id,
            {
                'checked_out_at': now,
                'checked_out_by': actor.user_id,
                'status': AppointmentStatus.COMPLETED,
            },
            expected={'status': AppointmentStatus.CONFIRMED, 'checked_out_at': None},
        )
        self.gateway.commit()
        logger.info('Appointment %s checked out by user %s', appointment.id, actor.user_id)
        return updated

    # -- codes -------------------------------------------------------------

    def validate_code(self, apt_code: str, actor: Optional[Actor] = None) -> CodeCheck:
        code = (apt_code or '').strip().upper()
        if not code:
            raise ValidationError('aptCode is required.')
        appointment = self.gateway.appointments.find_one(apt_code=code)
        if appointment is None:
            raise NotFoundError('Invalid APT code.')
        if actor is not None:
            self._check(actor, Action.VERIFY_CODE, appointment)

        if appointment.status != AppointmentStatus.CONFIRMED:
            outcome = CodeOutcome.INVALID
        elif appointment.apt_expires_at is None or appointment.apt_expires_at <= self.clock():
            outcome = CodeOutcome.EXPIRED
        else:
            outcome = CodeOutcome.VALID
        return CodeCheck(appointment=appointment, outcome=outcome)

    def verify_code(self, actor: Actor, code: str) -> Verification:
        """Look up by access code or reference number and report what security may do next."""
        value = (code or '').strip()
        if not value:
            raise ValidationError('Appointment code is required.')
        appointment = self.gateway.appointments.find_one(
            or_(Appointment.apt_code == value.upper(), Appointment.reference_number == value),
            Appointment.status.in_(list(OPEN_STATUSES)),
        )
        if appointment is None:
            raise NotFoundError('Invalid appointment code or appointment not available.')
        self._check(actor, Action.VERIFY_CODE, appointment)

        now = self.clock()
        return Verification(
            appointment=appointment,
            is_today=appointment.start_time.date() == now.date(),
            can_check_in=check_in_blocker(appointment, now) is None,
            can_check_out=check_out_blocker(appointment, now) is None,
        )
