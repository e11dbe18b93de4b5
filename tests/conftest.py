"""
Results portal - test configuration and fixtures
"""
import pytest

from config import Config
from results_portal import create_app, db
from results_portal.models import (BacklogGroupCourse, Course, Department, Result, Student,
                                   StudentCourseRegistration, User)
from results_portal.services import get_or_create_role

ADMIN_PASSWORD = 'admin-pass-123'


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key-for-testing-only'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    AUTO_CREATE_TABLES = True
    LOG_LEVEL = 'WARNING'


@pytest.fixture
def app():
    """A fresh app with an empty in-memory database per test"""
    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Application context for tests that call services directly"""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Small helpers that insert and commit rows"""

    def __init__(self):
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def department(self, code='CSE', name=None):
        department = Department(code=code, name=name or f'Department of {code}')
        db.session.add(department)
        db.session.commit()
        return department

    def course(self, department, code=None, credits=3.0, year=1, semester='odd'):
        n = self._next()
        course = Course(
            course_code=code or f'CSE{100 + n}',
            course_name=f'Course {n}',
            department_id=department.id,
            year=year,
            semester=semester,
            credits=credits,
        )
        db.session.add(course)
        db.session.commit()
        return course

    def student(self, department, roll=None, year=1, semester='odd'):
        n = self._next()
        student = Student(
            name=f'Student {n}',
            roll_number=roll or f'2003{n:03d}',
            registration_number=f'REG-{n:04d}',
            department_id=department.id,
            academic_session='2020-21',
            current_year=year,
            current_semester=semester,
        )
        db.session.add(student)
        db.session.commit()
        return student

    def register(self, student, course):
        registration = StudentCourseRegistration(student_id=student.id, course_id=course.id)
        db.session.add(registration)
        db.session.commit()
        return registration

    def result(self, student, course, marks, published=True, is_backlog=False, group=None):
        result = Result(student_id=student.id, course_id=course.id, marks=marks, published=published,
                        is_backlog=is_backlog, backlog_group_id=group.id if group else None)
        db.session.add(result)
        db.session.commit()
        return result

    def membership(self, group, student, course, is_registered=False):
        membership = BacklogGroupCourse(group_id=group.id, student_id=student.id, course_id=course.id,
                                        is_registered=is_registered)
        db.session.add(membership)
        db.session.commit()
        return membership

    def admin(self, username='admin', password=ADMIN_PASSWORD):
        user = User(username=username)
        user.set_password(password)
        user.roles.append(get_or_create_role('Admin'))
        db.session.add(user)
        db.session.commit()
        return user


@pytest.fixture
def factory():
    return Factory()


def login_admin(client, username='admin', password=ADMIN_PASSWORD):
    response = client.post('/api/auth/admin/login', json={'username': username, 'password': password})
    assert response.status_code == 200
    return response


def login_student(client, roll_number, registration_number):
    response = client.post('/api/auth/student/login',
                           json={'roll_number': roll_number, 'registration_number': registration_number})
    assert response.status_code == 200
    return response
