from conftest import auth_headers


def _person(name: str, **extra) -> dict:
    return {
        'first_name': name.title(),
        'last_name': 'Hire',
        'email': f'{name}@campus.test',
        'password': 'new-hire-password',
        **extra,
    }


def test_super_admin_manages_colleges(client, campus) -> None:
    headers = auth_headers(campus, 'admin')

    created = client.post(
        '/super-admin/colleges', headers=headers, json={'name': 'Rubavu Institute', 'code': 'ri', 'location': 'Rubavu'},
    )
    assert created.status_code == 201
    college = created.json()
    assert college['code'] == 'RI'
    assert college['operating_hours']['saturday'] == {'open': '09:00', 'close': '13:00'}

    duplicate = client.post(
        '/super-admin/colleges', headers=headers, json={'name': 'Another', 'code': 'RI', 'location': 'Rubavu'},
    )
    assert duplicate.status_code == 409

    admin = client.post(f'/super-admin/colleges/{college["id"]}/admins', headers=headers, json=_person('rector'))
    assert admin.status_code == 201
    assert admin.json()['role'] == 'COLLEGE_MANAGER'
    assert admin.json()['college_role'] == 'MANAGER'

    assert client.delete(f'/super-admin/colleges/{college["id"]}', headers=headers).status_code == 204
    codes = [item['code'] for item in client.get('/super-admin/colleges', headers=headers).json()]
    assert codes == ['HC', 'KT']


def test_super_admin_routes_refuse_other_roles(client, campus) -> None:
    response = client.get('/super-admin/colleges', headers=auth_headers(campus, 'college_manager'))

    assert response.status_code == 403
    assert response.json()['reason'] == 'wrong_global_role'


def test_platform_stats(client, campus) -> None:
    response = client.get('/super-admin/stats', headers=auth_headers(campus, 'admin'))

    assert response.status_code == 200
    assert response.json()['colleges'] == 2


def test_college_manager_runs_own_college(client, campus) -> None:
    headers = auth_headers(campus, 'college_manager')

    college = client.get('/college-manager/college', headers=headers)
    assert college.json()['id'] == campus.college.id

    renamed = client.patch('/college-manager/college', headers=headers, json={'website': 'https://kt.example.edu'})
    assert renamed.json()['website'] == 'https://kt.example.edu'

    department = client.post('/college-manager/departments', headers=headers, json={'name': 'Registry', 'code': 'reg'})
    assert department.status_code == 201
    assert department.json()['code'] == 'REG'

    names = [item['name'] for item in client.get('/college-manager/departments', headers=headers).json()]
    assert sorted(names) == ['Admissions', 'Finance', 'Registry']


def test_college_manager_hires_staff(client, campus) -> None:
    headers = auth_headers(campus, 'college_manager')

    head = client.post(
        '/college-manager/department-managers', headers=headers,
        json=_person('registrar', department_id=campus.finance.id),
    )
    assert head.status_code == 201
    assert head.json()['role'] == 'DEPARTMENT_MANAGER'
    assert head.json()['department_id'] == campus.finance.id

    chief = client.post('/college-manager/security-managers', headers=headers, json=_person('chief'))
    assert chief.json()['role'] == 'SECURITY_MANAGER'

    student = client.post('/college-manager/users', headers=headers, json=_person('freshman', enrollment_number='KT-001'))
    assert student.json()['college_role'] == 'STUDENT'
    assert student.json()['permissions']['max_guests'] == 5

    students = client.get('/college-manager/users', headers=headers, params={'college_role': 'student'})
    assert {item['email'] for item in students.json()} == {
        'student@campus.test', 'classmate@campus.test', 'freshman@campus.test',
    }

    suspended = client.patch(
        f'/college-manager/users/{campus.users["classmate"].id}/status', headers=headers, json={'is_active': False},
    )
    assert suspended.json()['membership_active'] is False


def test_college_manager_dashboard(client, campus) -> None:
    response = client.get('/college-manager/dashboard', headers=auth_headers(campus, 'college_manager'))

    assert response.status_code == 200
    assert response.json()['college_id'] == campus.college.id
    assert response.json()['members'] == 7


def test_department_routes(client, campus) -> None:
    headers = auth_headers(campus, 'admissions_manager')

    departments = client.get(f'/departments/college/{campus.college.id}', headers=headers)
    assert {item['code'] for item in departments.json()} == {'ADM', 'FIN'}

    report = client.get('/departments/reports', headers=headers)
    assert report.status_code == 200
    assert report.json()['department_id'] == campus.admissions.id

    dashboard = client.get('/departments/dashboard', headers=headers)
    assert dashboard.json()['total'] == 0

    assert client.get('/departments/pending-approvals', headers=headers).json() == []


def test_security_manager_personnel(client, campus) -> None:
    headers = auth_headers(campus, 'security_manager')

    hired = client.post('/security-manager/personnel', headers=headers, json=_person('night_watch', shift='night'))
    assert hired.status_code == 201
    guard_id = hired.json()['user_id']
    assert hired.json()['shift'] == 'NIGHT'

    shifted = client.patch(f'/security-manager/personnel/{guard_id}/shift', headers=headers, json={'shift': 'evening'})
    assert shifted.json()['shift'] == 'EVENING'

    assert client.delete(f'/security-manager/personnel/{guard_id}', headers=headers).status_code == 204
    active = client.get('/security-manager/personnel', headers=headers).json()
    assert [item['user_id'] for item in active] == [campus.users['guard'].id]

    foreign = client.get(f'/security-manager/personnel/{campus.users["other_guard"].id}', headers=headers)
    assert foreign.status_code == 404

    report = client.get('/security-manager/reports', headers=headers)
    assert report.status_code == 200
    assert report.json()['total'] == 0
