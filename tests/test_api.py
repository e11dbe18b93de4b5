"""
HTTP behaviour through the Flask test client
"""
import io

import pytest

from conftest import login_admin, login_student


@pytest.fixture
def seeded(app, factory):
    """Admin account, one student registered for CSE101; returns plain ids"""
    with app.app_context():
        factory.admin()
        department = factory.department()
        course = factory.course(department, code='CSE101', credits=3.0)
        student = factory.student(department, roll='2003001')
        factory.register(student, course)
        return {
            'department_id': department.id,
            'course_id': course.id,
            'student_id': student.id,
            'roll_number': student.roll_number,
            'registration_number': student.registration_number,
        }


@pytest.fixture
def admin_client(app, seeded):
    client = app.test_client()
    login_admin(client)
    return client


@pytest.fixture
def student_client(app, seeded):
    client = app.test_client()
    login_student(client, seeded['roll_number'], seeded['registration_number'])
    return client


class TestAuth:

    def test_admin_routes_need_login(self, client, seeded):
        response = client.get('/api/admin/stats')
        assert response.status_code == 401
        assert 'error' in response.get_json()

    def test_wrong_password(self, client, seeded):
        response = client.post('/api/auth/admin/login', json={'username': 'admin', 'password': 'nope'})
        assert response.status_code == 401

    def test_student_cannot_use_admin_routes(self, student_client):
        assert student_client.get('/api/admin/stats').status_code == 403

    def test_admin_cannot_use_student_routes(self, admin_client):
        assert admin_client.get('/api/student/profile').status_code == 403

    def test_identity(self, admin_client, student_client, seeded):
        assert admin_client.get('/api/auth/me').get_json()['user']['role'] == 'admin'
        me = student_client.get('/api/auth/me').get_json()['user']
        assert me == {'username': 'student_2003001', 'id': seeded['student_id'], 'role': 'student'}

    def test_student_login_rejects_wrong_registration(self, client, seeded):
        response = client.post('/api/auth/student/login',
                               json={'roll_number': seeded['roll_number'], 'registration_number': 'x'})
        assert response.status_code == 401

    def test_logout(self, admin_client):
        assert admin_client.post('/api/auth/logout').status_code == 200
        assert admin_client.get('/api/admin/stats').status_code == 401

    def test_csrf_token_endpoint(self, client):
        assert 'csrfToken' in client.get('/api/auth/csrf-token').get_json()


class TestAdminResults:

    def test_grade_lookup(self, admin_client):
        response = admin_client.get('/api/admin/grades?marks=72&policy=backlog')
        assert response.get_json() == {'grade': 'B+', 'gradePoint': 3.25}
        assert admin_client.get('/api/admin/grades?marks=72').get_json()['grade'] == 'A-'
        assert admin_client.get('/api/admin/grades?marks=172').status_code == 400

    def test_invalid_marks_are_400(self, admin_client, seeded):
        response = admin_client.post('/api/admin/results', json={
            'student_id': seeded['student_id'], 'course_id': seeded['course_id'], 'marks': 150,
        })
        assert response.status_code == 400
        assert response.get_json()['kind'] == 'validation'

    def test_create_then_duplicate_pass(self, admin_client, seeded):
        payload = {'student_id': seeded['student_id'], 'course_id': seeded['course_id'], 'marks': 85,
                   'published': True}
        created = admin_client.post('/api/admin/results', json=payload)
        assert created.status_code == 201
        assert created.get_json()['result']['grade'] == 'A+'

        again = admin_client.post('/api/admin/results', json=payload)
        assert again.status_code == 400
        assert again.get_json() == {
            'error': 'Cannot add result for a course that has already been passed',
            'kind': 'eligibility',
            'reason': 'already_passed',
        }

    def test_eligibility_probe(self, admin_client, seeded):
        query = f"/api/admin/results/eligibility?student_id={seeded['student_id']}&course_id={seeded['course_id']}"
        assert admin_client.get(query).get_json()['canAdd'] is True
        admin_client.post('/api/admin/results', json={
            'student_id': seeded['student_id'], 'course_id': seeded['course_id'], 'marks': 20,
        })
        probe = admin_client.get(query).get_json()
        assert probe['canAdd'] is True
        assert probe['isBacklog'] is True
        assert probe['existingResult']['marks'] == 20

    def test_missing_student_is_404(self, admin_client):
        response = admin_client.get('/api/admin/students/999')
        assert response.status_code == 404
        assert 'error' in response.get_json()

    def test_import_csv(self, admin_client, seeded):
        csv = f"roll_number,course_code,marks,published\n{seeded['roll_number']},CSE101,66,true\n"
        response = admin_client.post('/api/admin/results/import',
                                     data={'file': (io.BytesIO(csv.encode()), 'results.csv')},
                                     content_type='multipart/form-data')
        assert response.status_code == 200
        body = response.get_json()
        assert len(body['success']) == 1
        assert body['failed'] == []

    def test_import_rejects_other_files(self, admin_client):
        response = admin_client.post('/api/admin/results/import',
                                     data={'file': (io.BytesIO(b'x'), 'results.txt')},
                                     content_type='multipart/form-data')
        assert response.status_code == 400


class TestCatalog:

    def test_department_with_courses_cannot_be_deleted(self, admin_client, seeded):
        response = admin_client.delete(f"/api/admin/departments/{seeded['department_id']}")
        assert response.status_code == 409
        assert response.get_json()['kind'] == 'integrity'

    def test_course_create_and_update(self, admin_client, seeded):
        created = admin_client.post('/api/admin/courses', json={
            'course_code': 'CSE102', 'course_name': 'Discrete Maths', 'department_id': seeded['department_id'],
            'year': 1, 'semester': 'odd', 'credits': 3,
        })
        assert created.status_code == 201
        course_id = created.get_json()['course']['id']

        updated = admin_client.patch(f'/api/admin/courses/{course_id}', json={'credits': 1.5})
        assert updated.get_json()['course']['credits'] == 1.5
        assert admin_client.patch(f'/api/admin/courses/{course_id}', json={'semester': 'summer'}).status_code == 400

    def test_duplicate_course_code_is_conflict(self, admin_client, seeded):
        response = admin_client.post('/api/admin/courses', json={
            'course_code': 'CSE101', 'course_name': 'Again', 'department_id': seeded['department_id'],
            'year': 1, 'semester': 'odd', 'credits': 3,
        })
        assert response.status_code == 409


class TestBacklogFlow:

    def test_full_cycle(self, admin_client, student_client, seeded):
        sid, cid = seeded['student_id'], seeded['course_id']
        assert admin_client.post('/api/admin/results', json={
            'student_id': sid, 'course_id': cid, 'marks': 35, 'published': True,
        }).status_code == 201

        candidates = admin_client.get('/api/admin/backlog/candidates').get_json()['candidates']
        assert [(c['student_id'], c['course_id']) for c in candidates] == [(sid, cid)]

        created = admin_client.post('/api/admin/backlog', json={
            'name': 'G1', 'courseSelections': [{'studentId': sid, 'courseId': cid}],
        })
        assert created.status_code == 201
        group_id = created.get_json()['group']['id']

        closed = student_client.post('/api/student/backlog', json={'groupId': group_id, 'courseId': cid})
        assert closed.status_code == 400
        assert closed.get_json()['reason'] == 'group_closed'

        assert admin_client.patch(f'/api/admin/backlog/{group_id}', json={'isOpen': True}).status_code == 200
        available = student_client.get('/api/student/backlog').get_json()['availableGroups']
        assert available[0]['courses'][0]['is_registered'] is False
        assert student_client.post('/api/student/backlog',
                                   json={'groupId': group_id, 'courseId': cid}).status_code == 200

        groups = admin_client.get(
            f'/api/admin/results/available-backlog-groups?student_id={sid}&course_id={cid}').get_json()['groups']
        assert [g['id'] for g in groups] == [group_id]

        backlog = admin_client.post('/api/admin/results', json={
            'student_id': sid, 'course_id': cid, 'marks': 55, 'published': True, 'backlog_group_id': group_id,
        })
        assert backlog.status_code == 201
        assert backlog.get_json()['result']['is_backlog'] is True
        assert backlog.get_json()['result']['grade'] == 'B-'

        results = student_client.get('/api/student/results').get_json()
        assert len(results['regularResults']) == 1
        assert len(results['backlogResults']) == 1
        assert results['effectiveResults'][0]['status'] == 'Cleared'
        assert results['cgpa'] == {'sgpas': [{'year': 1, 'semester': 'odd', 'sgpa': 2.75}], 'cgpa': 2.75}
        assert admin_client.get(f'/api/admin/students/{sid}/cgpa').get_json()['cgpa'] == 2.75

        locked = student_client.delete('/api/student/backlog', json={'groupId': group_id, 'courseId': cid})
        assert locked.status_code == 409
        assert admin_client.delete(f'/api/admin/backlog/{group_id}').status_code == 409

        routine = admin_client.post(f'/api/admin/backlog/{group_id}/routine', json={'examDates': ['2024-08-01']})
        assert routine.get_json()['routine'][0]['rollNumbers'] == seeded['roll_number']

    def test_backlog_without_group_is_400(self, admin_client, seeded):
        sid, cid = seeded['student_id'], seeded['course_id']
        admin_client.post('/api/admin/results', json={'student_id': sid, 'course_id': cid, 'marks': 10})
        response = admin_client.post('/api/admin/results', json={'student_id': sid, 'course_id': cid, 'marks': 50})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'backlog_group_required'

    def test_passed_course_cannot_join_a_group(self, admin_client, seeded):
        sid, cid = seeded['student_id'], seeded['course_id']
        admin_client.post('/api/admin/results', json={'student_id': sid, 'course_id': cid, 'marks': 72})
        response = admin_client.post('/api/admin/backlog', json={
            'name': 'G1', 'courseSelections': [{'studentId': sid, 'courseId': cid}],
        })
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'already_passed'
        assert admin_client.get('/api/admin/backlog').get_json()['groups'] == []

    def test_group_requires_name_or_id(self, admin_client, seeded):
        response = admin_client.post('/api/admin/backlog', json={
            'courseSelections': [{'student_id': seeded['student_id'], 'course_id': seeded['course_id']}],
        })
        assert response.status_code == 400


class TestStudentViews:

    def test_transcript_csv(self, admin_client, student_client, seeded):
        admin_client.post('/api/admin/results', json={
            'student_id': seeded['student_id'], 'course_id': seeded['course_id'], 'marks': 78, 'published': True,
        })
        response = student_client.get('/api/student/transcript?format=csv')
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        lines = response.get_data(as_text=True).strip().splitlines()
        assert lines[0].startswith('year,semester,course_code')
        assert 'CSE101' in lines[1]

    def test_stats_and_courses(self, student_client):
        stats = student_client.get('/api/student/stats').get_json()
        assert stats['totalRegistrations'] == 1
        assert stats['overallCGPA'] == 0
        courses = student_client.get('/api/student/courses').get_json()['courses']
        assert [c['course_code'] for c in courses] == ['CSE101']

    def test_unregister_course_before_results(self, student_client, seeded):
        response = student_client.delete(f"/api/student/courses/{seeded['course_id']}")
        assert response.status_code == 200
        assert student_client.get('/api/student/courses').get_json()['courses'] == []
