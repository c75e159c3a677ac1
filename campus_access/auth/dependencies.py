from typing import Generator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from campus_access.auth import jwt_handler
from campus_access.auth.policy import Actor, MembershipScope
from campus_access.core.clock import Clock
from campus_access.core.errors import AuthenticationError
from campus_access.models.user import User
from campus_access.repositories.gateway import Gateway
from campus_access.services.appointment_service import AppointmentService
from campus_access.services.college_service import CollegeService
from campus_access.services.membership_service import MembershipService
from campus_access.services.report_service import ReportService
from campus_access.services.user_service import UserService

security = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Generator[Session, None, None]:
    with request.app.state.database.session() as session:
        yield session


def get_gateway(db: Session = Depends(get_db)) -> Gateway:
    return Gateway(db)


def build_actor(gateway: Gateway, user: User) -> Actor:
    """Resolve the user's active college memberships into an Actor."""
    memberships = gateway.memberships.find_all(user_id=user.id, is_active=True)
    return Actor(
        user_id=user.id,
        global_role=user.role,
        email=user.email,
        is_active=user.is_active,
        memberships=tuple(
            MembershipScope(
                college_id=membership.college_id,
                college_role=membership.college_role,
                department_id=membership.department_id,
                is_active=membership.is_active_member,
                permissions=membership.permissions,
            )
            for membership in memberships
        ),
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    gateway: Gateway = Depends(get_gateway),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access denied. No token provided.")

    payload = jwt_handler.decode_access_token(credentials.credentials)
    user = gateway.users.find_one(id=int(payload["sub"]))
    if user is None:
        raise AuthenticationError("User not found.")
    if not user.is_active:
        raise AuthenticationError("User account is inactive.")
    return user


def get_current_actor(
    user: User = Depends(get_current_user),
    gateway: Gateway = Depends(get_gateway),
) -> Actor:
    return build_actor(gateway, user)


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_user_service(gateway: Gateway = Depends(get_gateway), clock: Clock = Depends(get_clock)) -> UserService:
    return UserService(gateway, clock)


def get_appointment_service(
    gateway: Gateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
) -> AppointmentService:
    return AppointmentService(gateway, clock)


def get_college_service(gateway: Gateway = Depends(get_gateway), clock: Clock = Depends(get_clock)) -> CollegeService:
    return CollegeService(gateway, clock)


def get_membership_service(
    gateway: Gateway = Depends(get_gateway),
    clock: Clock = Depends(get_clock),
) -> MembershipService:
    return MembershipService(gateway, clock)


def get_report_service(gateway: Gateway = Depends(get_gateway), clock: Clock = Depends(get_clock)) -> ReportService:
    return ReportService(gateway, clock)
