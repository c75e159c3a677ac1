import pytest
from conftest import NOW, PASSWORD

from campus_access.auth import jwt_handler
from campus_access.core.errors import AuthenticationError, AuthorizationError, ConflictError, ValidationError
from campus_access.models.membership import CollegeRole
from campus_access.models.user import GlobalRole
from campus_access.services.user_service import UserService


@pytest.fixture
def service(campus, clock) -> UserService:
    return UserService(campus.gateway, clock=clock)


def _registration(**overrides) -> dict:
    data = {
        'first_name': 'Grace',
        'last_name': 'Hopper',
        'email': ' Grace@Example.EDU ',
        'password': 'cobol-for-ever',
    }
    data.update(overrides)
    return data


def test_register_creates_plain_user_and_token(service, campus) -> None:
    result = service.register(_registration())

    assert result.user.email == 'grace@example.edu'
    assert result.user.role == GlobalRole.USER
    assert result.user.hashed_password != 'cobol-for-ever'
    assert jwt_handler.decode_access_token(result.access_token)['sub'] == str(result.user.id)
    assert result.token_type == 'bearer'


def test_register_can_join_college_as_visitor(service, campus) -> None:
    result = service.register(_registration(college_id=campus.college.id))

    membership = campus.gateway.memberships.find_by_id((result.user.id, campus.college.id))
    assert membership.college_role == CollegeRole.VISITOR


def test_register_cannot_self_assign_staff_roles(service, campus) -> None:
    with pytest.raises(ValidationError):
        service.register(_registration(college_id=campus.college.id, college_role='MANAGER'))
    with pytest.raises(ValidationError):
        service.register(_registration(college_id=campus.college.id, college_role='janitor'))


def test_register_rejects_duplicate_email(service, campus) -> None:
    with pytest.raises(ConflictError):
        service.register(_registration(email='STUDENT@campus.test'))


@pytest.mark.parametrize('missing', ['first_name', 'last_name', 'email', 'password'])
def test_register_requires_fields(service, campus, missing: str) -> None:
    with pytest.raises(ValidationError):
        service.register(_registration(**{missing: ''}))


def test_authenticate_returns_token_and_stamps_login(service, campus) -> None:
    result = service.authenticate('Student@Campus.test', PASSWORD)

    assert result.user.id == campus.users['student'].id
    assert result.user.last_login == NOW


@pytest.mark.parametrize(('email', 'password'), [('student@campus.test', 'wrong-password'), ('nobody@campus.test', PASSWORD)])
def test_authenticate_rejects_bad_credentials(service, campus, email: str, password: str) -> None:
    with pytest.raises(AuthenticationError) as exception_info:
        service.authenticate(email, password)

    assert exception_info.value.detail == 'Invalid email or password.'


def test_authenticate_rejects_inactive_account(service, campus) -> None:
    campus.gateway.users.update(campus.users['student'].id, {'is_active': False})
    campus.gateway.commit()

    with pytest.raises(AuthenticationError) as exception_info:
        service.authenticate('student@campus.test', PASSWORD)

    assert exception_info.value.detail == 'User account is inactive.'


def test_profile_update_and_password_change(service, campus) -> None:
    actor = campus.actor('student')

    user, memberships = service.profile(actor)
    assert user.email == 'student@campus.test'
    assert [m.college_id for m in memberships] == [campus.college.id]

    assert service.update_profile(actor, {'phone': ' 0788000000 '}).phone == '0788000000'
    with pytest.raises(ValidationError):
        service.update_profile(actor, {'role': 'SUPER_ADMIN'})

    with pytest.raises(ValidationError):
        service.change_password(actor, 'not-my-password', 'brand-new-password')
    service.change_password(actor, PASSWORD, 'brand-new-password')
    assert service.authenticate('student@campus.test', 'brand-new-password').user.id == actor.user_id


def test_deactivate_is_super_admin_only_and_soft(service, campus, clock) -> None:
    student_id = campus.users['student'].id

    with pytest.raises(AuthorizationError):
        service.deactivate(campus.actor('college_manager'), student_id)

    user = service.deactivate(campus.actor('admin'), student_id)

    assert not user.is_active
    assert user.deleted_at == clock.now
    assert campus.gateway.users.find_one(id=student_id) is None
    assert campus.gateway.users.find_one(id=student_id, include_deleted=True) is not None


def test_list_users_filters_by_role(service, campus) -> None:
    guards = service.list_users(campus.actor('admin'), role=GlobalRole.SECURITY)

    assert {user.email for user in guards} == {'guard@campus.test', 'other_guard@campus.test'}
