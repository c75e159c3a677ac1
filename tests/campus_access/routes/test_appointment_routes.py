import re
from datetime import timedelta

import pytest
from conftest import NOW, auth_headers


def _payload(campus, **overrides) -> dict:
    payload = {
        'college_id': campus.college.id,
        'department_id': campus.admissions.id,
        'title': 'Transcript pickup',
        'description': 'Collect my transcript from admissions',
        'start_time': (NOW + timedelta(hours=1)).isoformat(),
        'end_time': (NOW + timedelta(hours=2)).isoformat(),
        'guests': [{'fullname': 'Jane Parent', 'id': '1199880012345678'}],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def booked(client, campus) -> dict:
    response = client.post('/appointments', json=_payload(campus), headers=auth_headers(campus, 'student'))
    assert response.status_code == 201
    return response.json()


def test_create_appointment(booked, campus) -> None:
    assert booked['status'] == 'PENDING'
    assert booked['type'] == 'MEETING'
    assert booked['department_name'] == 'Admissions'
    assert booked['created_by'] == campus.users['student'].id
    assert booked['guests'] == [{'fullname': 'Jane Parent', 'identifier': '1199880012345678'}]
    assert booked['apt_code'] is None
    assert booked['metadata'] == {}
    assert 'details' not in booked
    assert booked['reference_number'].startswith('APT-')
    assert re.fullmatch(r'APT26\d{6}', booked['display_code'])


@pytest.mark.parametrize(
    'overrides',
    [
        {'description': '   '},
        {'description': 'x' * 2001},
        {'end_time': NOW.isoformat()},
        {'type': 'party'},
        {'start_time': 'tomorrow morning'},
    ],
)
def test_create_appointment_rejects_bad_payloads(client, campus, overrides: dict) -> None:
    response = client.post('/appointments', json=_payload(campus, **overrides), headers=auth_headers(campus, 'student'))

    assert response.status_code == 400


def test_create_appointment_outside_own_college(client, campus) -> None:
    response = client.post(
        '/appointments',
        json=_payload(campus, college_id=campus.other_college.id, department_id=campus.other_department.id),
        headers=auth_headers(campus, 'student'),
    )

    assert response.status_code == 403
    assert response.json()['reason'] == 'no_membership'


def test_other_users_cannot_see_appointment(client, campus, booked) -> None:
    response = client.get(f'/appointments/{booked["id"]}', headers=auth_headers(campus, 'classmate'))

    assert response.status_code == 404
    assert 'reason' not in response.json()


def test_owner_reads_by_id_and_reference(client, campus, booked) -> None:
    headers = auth_headers(campus, 'student')

    by_id = client.get(f'/appointments/{booked["id"]}', headers=headers)
    by_reference = client.get(f'/appointments/reference/{booked["reference_number"]}', headers=headers)
    mine = client.get('/appointments/mine', headers=headers)

    assert by_id.json()['id'] == booked['id']
    assert by_reference.json()['id'] == booked['id']
    assert [item['id'] for item in mine.json()] == [booked['id']]


def test_approval_is_scoped_to_department(client, campus, booked) -> None:
    url = f'/appointments/{booked["id"]}/approve'

    foreign = client.post(url, headers=auth_headers(campus, 'finance_manager'))
    own = client.post(url, headers=auth_headers(campus, 'student'))

    assert foreign.status_code == 404
    assert own.status_code == 403
    assert own.json()['reason'] == 'wrong_global_role'


def test_approve_issues_code_once(client, campus, booked) -> None:
    headers = auth_headers(campus, 'admissions_manager')

    response = client.post(f'/appointments/{booked["id"]}/approve', headers=headers, json={'notes': 'Bring ID'})

    assert response.status_code == 200
    body = response.json()
    assert re.fullmatch(r'APT-[A-Z0-9]{6}', body['apt_code'])
    assert body['appointment']['status'] == 'CONFIRMED'
    assert body['appointment']['apt_code'] == body['apt_code']
    assert client.post(f'/appointments/{booked["id"]}/approve', headers=headers).status_code == 409


def test_pending_queue_for_department_manager(client, campus, booked) -> None:
    admissions = client.get('/appointments/pending', headers=auth_headers(campus, 'admissions_manager'))
    finance = client.get('/appointments/pending', headers=auth_headers(campus, 'finance_manager'))

    assert [item['id'] for item in admissions.json()] == [booked['id']]
    assert finance.json() == []


def test_validate_code(client, campus, booked, clock) -> None:
    approved = client.post(f'/appointments/{booked["id"]}/approve', headers=auth_headers(campus, 'admissions_manager'))
    code = approved.json()['apt_code']
    headers = auth_headers(campus, 'guard')

    response = client.post('/appointments/validate', headers=headers, json={'aptCode': code.lower()})
    assert response.status_code == 200
    assert response.json()['valid'] is True
    assert response.json()['outcome'] == 'VALID'

    clock.advance(days=1)
    expired = client.post('/appointments/validate', headers=headers, json={'apt_code': code})
    assert expired.json()['outcome'] == 'EXPIRED'

    unknown = client.post('/appointments/validate', headers=headers, json={'aptCode': 'APT-NOPE00'})
    assert unknown.status_code == 404


def test_reject_and_cancel(client, campus, booked) -> None:
    student = auth_headers(campus, 'student')
    manager = auth_headers(campus, 'admissions_manager')

    cancelled = client.post(f'/appointments/{booked["id"]}/cancel', headers=student, json={'reason': 'Sick'})
    assert cancelled.status_code == 200
    assert cancelled.json()['status'] == 'CANCELLED'
    assert cancelled.json()['cancellation_reason'] == 'Sick'

    rejected = client.post(f'/appointments/{booked["id"]}/reject', headers=manager)
    assert rejected.status_code == 409


def test_owner_updates_pending_appointment(client, campus, booked) -> None:
    headers = auth_headers(campus, 'student')

    response = client.patch(f'/appointments/{booked["id"]}', headers=headers, json={'title': 'Transcript and diploma'})

    assert response.status_code == 200
    assert response.json()['title'] == 'Transcript and diploma'


def test_delete_hides_appointment(client, campus, booked) -> None:
    headers = auth_headers(campus, 'student')

    assert client.delete(f'/appointments/{booked["id"]}', headers=headers).status_code == 204
    assert client.get(f'/appointments/{booked["id"]}', headers=headers).status_code == 404


def test_permanent_delete_is_super_admin_only(client, campus, booked) -> None:
    url = f'/appointments/{booked["id"]}?permanent=true'

    assert client.delete(url, headers=auth_headers(campus, 'student')).status_code == 403
    assert client.delete(url, headers=auth_headers(campus, 'admin')).status_code == 204
    assert client.get(f'/appointments/{booked["id"]}', headers=auth_headers(campus, 'admin')).status_code == 404


def test_list_filters_by_status(client, campus, booked) -> None:
    headers = auth_headers(campus, 'college_manager')

    pending = client.get('/appointments', params={'status': 'pending'}, headers=headers)
    confirmed = client.get('/appointments', params={'status': 'CONFIRMED'}, headers=headers)
    invalid = client.get('/appointments', params={'status': 'LOST'}, headers=headers)

    assert [item['id'] for item in pending.json()] == [booked['id']]
    assert confirmed.json() == []
    assert invalid.status_code == 400
