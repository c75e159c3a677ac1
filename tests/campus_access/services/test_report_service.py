from datetime import datetime, timedelta

import pytest
from conftest import NOW, appointment_fields

from campus_access.core.errors import AuthorizationError, DenyReason, ValidationError
from campus_access.services.appointment_service import AppointmentService
from campus_access.services.report_service import ReportService

TOMORROW = NOW + timedelta(days=1)


@pytest.fixture
def service(campus, clock) -> ReportService:
    return ReportService(campus.gateway, clock=clock)


@pytest.fixture
def activity(campus, clock) -> dict:
    """One completed visit, one pending request for tomorrow and one no-show."""
    appointments = AppointmentService(campus.gateway, clock=clock)
    student = campus.actor('student')
    guard = campus.actor('guard')

    visited = appointments.create(student, appointment_fields(campus, type='interview'))
    pending = appointments.create(student, appointment_fields(
        campus, start_time=TOMORROW + timedelta(hours=1), end_time=TOMORROW + timedelta(hours=2),
    ))
    missed = appointments.create(student, appointment_fields(campus, department_id=campus.finance.id))
    appointments.approve(campus.actor('admissions_manager'), visited.id)
    appointments.approve(campus.actor('finance_manager'), missed.id)

    clock.set(NOW + timedelta(hours=1, minutes=15))
    appointments.check_in(guard, visited.id)
    clock.advance(minutes=30)
    appointments.check_out(guard, visited.id)
    clock.set(NOW + timedelta(hours=3))
    return {'visited': visited, 'pending': pending, 'missed': missed}


def test_department_report_defaults_to_managed_department(service, campus, activity) -> None:
    report = service.department_report(campus.actor('admissions_manager'))

    assert report['department_id'] == campus.admissions.id
    assert report['department_name'] == 'Admissions'
    assert report['total'] == 2
    assert report['by_status']['COMPLETED'] == 1
    assert report['by_status']['PENDING'] == 1
    assert report['by_status']['CANCELLED'] == 0
    assert report['by_type'] == {'MEETING': 1, 'INTERVIEW': 1, 'CONSULTATION': 0, 'VISIT': 0, 'OTHER': 0}
    assert (report['upcoming'], report['past']) == (1, 1)


def test_department_report_date_window(service, campus, activity) -> None:
    report = service.department_report(campus.actor('admissions_manager'), date_from=TOMORROW)

    assert report['total'] == 1
    with pytest.raises(ValidationError):
        service.department_report(campus.actor('admissions_manager'), date_from=TOMORROW, date_to=NOW)


def test_department_report_scoping(service, campus, activity) -> None:
    with pytest.raises(AuthorizationError) as exception_info:
        service.department_report(campus.actor('finance_manager'), department_id=campus.admissions.id)
    assert exception_info.value.reason == DenyReason.NOT_IN_DEPARTMENT

    with pytest.raises(ValidationError):
        service.department_report(campus.actor('college_manager'))

    report = service.department_report(campus.actor('college_manager'), department_id=campus.finance.id)
    assert report['total'] == 1


def test_department_dashboard(service, campus, activity) -> None:
    dashboard = service.department_dashboard(campus.actor('admissions_manager'))

    assert dashboard == {
        'department_id': campus.admissions.id,
        'department_name': 'Admissions',
        'total': 2,
        'pending': 1,
        'confirmed': 0,
        'today': 1,
    }


def test_security_report_counts_gate_activity(service, campus, activity) -> None:
    report = service.security_report(campus.actor('security_manager'))

    assert report['college_id'] == campus.college.id
    assert report['total'] == 3
    assert (report['check_ins'], report['check_outs'], report['no_shows']) == (1, 1, 1)

    [officer] = report['per_officer']
    assert officer['user_id'] == campus.users['guard'].id
    assert officer['shift'] == 'FULL_DAY'
    assert (officer['check_ins'], officer['check_outs']) == (1, 1)

    by_department = {row['department_name']: row for row in report['per_department']}
    assert by_department['Admissions']['appointments'] == 2
    assert by_department['Admissions']['check_ins'] == 1
    assert by_department['Finance']['check_ins'] == 0


def test_security_report_needs_security_manager(service, campus) -> None:
    with pytest.raises(AuthorizationError):
        service.security_report(campus.actor('guard'))
    with pytest.raises(AuthorizationError):
        service.security_report(campus.actor('college_manager'))


def test_college_dashboard(service, campus, activity) -> None:
    dashboard = service.college_dashboard(campus.actor('college_manager'))

    assert dashboard['college_id'] == campus.college.id
    assert dashboard['open_today'] == {'open': '08:00', 'close': '17:00'}
    assert dashboard['departments'] == 2
    assert dashboard['members'] == 7
    assert dashboard['members_by_role'] == {'MANAGER': 3, 'STAFF': 0, 'SECURITY': 2, 'STUDENT': 2, 'VISITOR': 0}
    assert dashboard['appointments'] == 3
    assert dashboard['today'] == 2


def test_college_dashboard_on_a_weekend(service, campus, clock) -> None:
    clock.set(datetime(2026, 3, 8, 12, 0))

    dashboard = service.college_dashboard(campus.actor('admin'), campus.college.id)

    assert dashboard['open_today'] == {'open': None, 'close': None}
    assert dashboard['appointments'] == 0


def test_college_dashboard_requires_college_manager(service, campus) -> None:
    with pytest.raises(AuthorizationError):
        service.college_dashboard(campus.actor('student'))
