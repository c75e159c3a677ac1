"""Accounts: registration, login, profile and deactivation."""

import logging
from dataclasses import dataclass
from typing import Optional

from campus_access.auth import jwt_handler, passwords
from campus_access.auth.policy import Action, Actor, ResourceScope, require
from campus_access.core.clock import Clock, utcnow
from campus_access.core.errors import AuthenticationError, ConflictError, ValidationError
from campus_access.models.membership import CollegeRole, Membership
from campus_access.models.user import GlobalRole, User
from campus_access.repositories.gateway import Gateway
from campus_access.services.appointment_service import parse_enum

logger = logging.getLogger(__name__)

SELF_SERVICE_COLLEGE_ROLES = frozenset({CollegeRole.STUDENT, CollegeRole.VISITOR})
PROFILE_FIELDS = frozenset({'first_name', 'last_name', 'phone'})


@dataclass
class LoginResult:
    user: User
    access_token: str
    token_type: str = "bearer"


def _required(data: dict, *names: str) -> None:
    missing = [name for name in names if not str(data.get(name) or '').strip()]
    if missing:
        raise ValidationError(f'Missing required fields: {", ".join(missing)}.')


def new_user(gateway: Gateway, data: dict, role: GlobalRole) -> User:
    """Insert a user row; the caller commits."""
    _required(data, 'first_name', 'last_name', 'email', 'password')
    email = data['email'].strip().lower()
    if '@' not in email:
        raise ValidationError('A valid email is required.')
    if gateway.users.find_one(email=email, include_deleted=True) is not None:
        raise ConflictError('User with this email already exists.')

    user = User(
        first_name=data['first_name'].strip(),
        last_name=data['last_name'].strip(),
        email=email,
        phone=(data.get('phone') or '').strip() or None,
        hashed_password=passwords.hash_password(data['password']),
        role=role,
        is_active=True,
    )
    return gateway.users.create(user)


class UserService:
    def __init__(self, gateway: Gateway, clock: Clock = utcnow):
        self.gateway = gateway
        self.clock = clock

    def _token_for(self, user: User) -> str:
        return jwt_handler.create_access_token(user.id, user.role.value, user.email)

    def register(self, data: dict) -> LoginResult:
        """Self sign-up. Always creates a USER; may join one college as student or visitor."""
        college_id = data.get('college_id')
        college_role = parse_enum(CollegeRole, data.get('college_role'), 'college_role') or CollegeRole.VISITOR
        if college_id is not None:
            if college_role not in SELF_SERVICE_COLLEGE_ROLES:
                raise ValidationError('Self-registration can only join a college as STUDENT or VISITOR.')
            college = self.gateway.colleges.find_by_id(college_id)
            if not college.is_active:
                raise ValidationError('College is not accepting registrations.')

        user = new_user(self.gateway, data, GlobalRole.USER)
        if college_id is not None:
            self.gateway.memberships.create(
                Membership(user_id=user.id, college_id=college_id, college_role=college_role, is_active=True)
            )
        self.gateway.commit()
        logger.info('User %s registered', user.id)
        return LoginResult(user=user, access_token=self._token_for(user))

    def authenticate(self, email: str, password: str) -> LoginResult:
        if not email or not password:
            raise ValidationError('Email and password are required.')
        user = self.gateway.users.find_one(email=email.strip().lower())
        if user is None or not passwords.verify_password(password, user.hashed_password):
            logger.warning('Failed login for %s', email)
            raise AuthenticationError('Invalid email or password.')
        if not user.is_active:
            raise AuthenticationError('User account is inactive.')

        user = self.gateway.users.update(user.id, {'last_login': self.clock()})
        self.gateway.commit()
        return LoginResult(user=user, access_token=self._token_for(user))

    def profile(self, actor: Actor) -> tuple[User, list[Membership]]:
        user = self.gateway.users.find_by_id(actor.user_id)
        memberships = self.gateway.memberships.find_all(user_id=actor.user_id)
        return user, memberships

    def update_profile(self, actor: Actor, changes: dict) -> User:
        locked = sorted(set(changes) - PROFILE_FIELDS)
        if locked:
            raise ValidationError(f'Fields cannot be changed: {", ".join(locked)}.')
        patch = {key: value.strip() for key, value in changes.items() if isinstance(value, str) and value.strip()}
        if not patch:
            return self.gateway.users.find_by_id(actor.user_id)
        user = self.gateway.users.update(actor.user_id, patch)
        self.gateway.commit()
        return user

    def change_password(self, actor: Actor, current_password: str, new_password: str) -> None:
        user = self.gateway.users.find_by_id(actor.user_id)
        if not passwords.verify_password(current_password, user.hashed_password):
            raise ValidationError('Current password is incorrect.')
        self.gateway.users.update(user.id, {'hashed_password': passwords.hash_password(new_password)})
        self.gateway.commit()
        logger.info('User %s changed password', user.id)

    def list_users(self, actor: Actor, role: Optional[GlobalRole] = None) -> list[User]:
        require(actor, Action.MANAGE_COLLEGES, ResourceScope())
        criteria = {'role': role} if role is not None else {}
        return self.gateway.users.find_all(order_by=User.id.asc(), **criteria)

    def deactivate(self, actor: Actor, user_id: int) -> User:
        """Soft delete: the row stays because appointments reference it."""
        require(actor, Action.MANAGE_COLLEGES, ResourceScope())
        if user_id == actor.user_id:
            raise ValidationError('You cannot deactivate your own account.')
        user = self.gateway.users.update(user_id, {'is_active': False, 'deleted_at': self.clock()})
        self.gateway.commit()
        logger.info('User %s deactivated by %s', user_id, actor.user_id)
        return user
