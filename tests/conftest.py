import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-for-the-suite')

from campus_access.auth import jwt_handler, passwords  # noqa: E402
from campus_access.auth.dependencies import build_actor  # noqa: E402
from campus_access.auth.policy import Actor  # noqa: E402
from campus_access.database import Database  # noqa: E402
from campus_access.main import create_app  # noqa: E402
from campus_access.models.college import College  # noqa: E402
from campus_access.models.department import Department  # noqa: E402
from campus_access.models.membership import CollegeRole, Membership, MembershipPermissions, SecurityShift  # noqa: E402
from campus_access.models.user import GlobalRole, User  # noqa: E402
from campus_access.repositories.gateway import Gateway  # noqa: E402

# A Monday morning
NOW = datetime(2026, 3, 2, 9, 0)
PASSWORD = 'correct-horse-42'


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)

    def set(self, now: datetime) -> None:
        self.now = now


@dataclass
class Campus:
    """Two colleges with a user for every role."""
    gateway: Gateway
    college: College
    other_college: College
    admissions: Department
    finance: Department
    other_department: Department
    users: dict = field(default_factory=dict)

    def actor(self, name: str) -> Actor:
        return build_actor(self.gateway, self.users[name])


@pytest.fixture
def database():
    database = Database('sqlite:///:memory:')
    database.create_tables()
    try:
        yield database
    finally:
        database.drop_tables()
        database.dispose()


@pytest.fixture
def gateway(database):
    with database.session() as session:
        yield Gateway(session)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture(scope='session')
def password_hash() -> str:
    return passwords.hash_password(PASSWORD)


def _user(gateway: Gateway, name: str, role: GlobalRole, password_hash: str) -> User:
    return gateway.users.create(User(
        first_name=name.replace('_', ' ').title(),
        last_name='Tester',
        email=f'{name}@campus.test',
        hashed_password=password_hash,
        role=role,
        is_active=True,
    ))


def _member(gateway: Gateway, user: User, college: College, role: CollegeRole, **extra) -> Membership:
    return gateway.memberships.create(Membership(
        user_id=user.id,
        college_id=college.id,
        college_role=role,
        is_active=True,
        permissions=extra.pop('permissions', MembershipPermissions()),
        **extra,
    ))


@pytest.fixture
def campus(gateway: Gateway, password_hash: str) -> Campus:
    admin = _user(gateway, 'admin', GlobalRole.SUPER_ADMIN, password_hash)
    college = gateway.colleges.create(College(name='Kigali Tech', code='kt', location='Kigali', created_by=admin.id))
    other_college = gateway.colleges.create(
        College(name='Huye Campus', code='HC', location='Huye', created_by=admin.id)
    )
    admissions = gateway.departments.create(Department(college_id=college.id, name='Admissions', code='ADM'))
    finance = gateway.departments.create(Department(college_id=college.id, name='Finance', code='FIN'))
    other_department = gateway.departments.create(
        Department(college_id=other_college.id, name='Admissions', code='ADM')
    )

    users = {'admin': admin}
    users['college_manager'] = _user(gateway, 'college_manager', GlobalRole.COLLEGE_MANAGER, password_hash)
    _member(gateway, users['college_manager'], college, CollegeRole.MANAGER)
    college.manager_id = users['college_manager'].id

    users['admissions_manager'] = _user(gateway, 'admissions_manager', GlobalRole.DEPARTMENT_MANAGER, password_hash)
    _member(gateway, users['admissions_manager'], college, CollegeRole.MANAGER, department_id=admissions.id)
    users['finance_manager'] = _user(gateway, 'finance_manager', GlobalRole.DEPARTMENT_MANAGER, password_hash)
    _member(gateway, users['finance_manager'], college, CollegeRole.MANAGER, department_id=finance.id)

    users['security_manager'] = _user(gateway, 'security_manager', GlobalRole.SECURITY_MANAGER, password_hash)
    _member(gateway, users['security_manager'], college, CollegeRole.SECURITY)
    users['guard'] = _user(gateway, 'guard', GlobalRole.SECURITY, password_hash)
    _member(gateway, users['guard'], college, CollegeRole.SECURITY, shift=SecurityShift.FULL_DAY)

    users['student'] = _user(gateway, 'student', GlobalRole.USER, password_hash)
    _member(gateway, users['student'], college, CollegeRole.STUDENT)
    users['classmate'] = _user(gateway, 'classmate', GlobalRole.USER, password_hash)
    _member(gateway, users['classmate'], college, CollegeRole.STUDENT)

    users['other_manager'] = _user(gateway, 'other_manager', GlobalRole.DEPARTMENT_MANAGER, password_hash)
    _member(gateway, users['other_manager'], other_college, CollegeRole.MANAGER, department_id=other_department.id)
    users['other_guard'] = _user(gateway, 'other_guard', GlobalRole.SECURITY, password_hash)
    _member(gateway, users['other_guard'], other_college, CollegeRole.SECURITY)

    gateway.commit()
    return Campus(
        gateway=gateway,
        college=college,
        other_college=other_college,
        admissions=admissions,
        finance=finance,
        other_department=other_department,
        users=users,
    )


def appointment_fields(campus: Campus, **overrides) -> dict:
    fields = {
        'college_id': campus.college.id,
        'department_id': campus.admissions.id,
        'title': 'Campus visit',
        'description': 'Meeting with the admissions office',
        'start_time': NOW + timedelta(hours=1),
        'end_time': NOW + timedelta(hours=2),
        'guests': [],
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def client(database, campus, clock):
    with TestClient(create_app(database, clock=clock)) as client:
        yield client


def auth_headers(campus: Campus, name: str) -> dict:
    user = campus.users[name]
    token = jwt_handler.create_access_token(user.id, user.role.value, user.email)
    return {'Authorization': f'Bearer {token}'}
