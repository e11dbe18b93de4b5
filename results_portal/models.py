# FILE: results_portal/models.py
from datetime import datetime
from results_portal import db, login
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, CheckConstraint

SEMESTERS = ('odd', 'even')

# --- Association tables ---
user_roles = db.Table('user_roles',
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('role.id'), primary_key=True)
)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), index=True, unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    roles = db.relationship('Role', secondary=user_roles, back_populates='users')
    logs = db.relationship('AuditLog', back_populates='user', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password, method='pbkdf2:sha256:260000')

    def check_password(self, password):
        if self.password_hash:
            return check_password_hash(self.password_hash, password)
        return False

    def has_role(self, role_name):
        """Helper function to check if a user has a specific role."""
        return any(role.name == role_name for role in self.roles)

    @property
    def is_admin(self):
        return self.has_role('Admin')

    @property
    def identity(self):
        """The {id, role} pair handed to the grading and backlog operations."""
        if self.is_admin:
            return {'id': self.id, 'role': 'admin'}
        if self.student_profile is not None:
            return {'id': self.student_profile.id, 'role': 'student'}
        return {'id': self.id, 'role': None}

    def __repr__(self):
        return f'<User {self.username}>'


class Role(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.String(255))
    users = db.relationship('User', secondary=user_roles, back_populates='roles')
    def __repr__(self): return self.name


class Department(db.Model):
    __tablename__ = 'departments'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    students = db.relationship('Student', back_populates='department', lazy='dynamic')
    courses = db.relationship('Course', back_populates='department', lazy='dynamic')

    def __repr__(self): return f'{self.code} - {self.name}'


class Course(db.Model):
    __tablename__ = 'courses'
    id = db.Column(db.Integer, primary_key=True)
    course_code = db.Column(db.String(20), nullable=False, index=True)
    course_name = db.Column(db.String(150), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    semester = db.Column(db.String(10), nullable=False)
    credits = db.Column(db.Float, nullable=False, default=3.0)
    cgpa_weight = db.Column(db.Float, nullable=False, default=4.0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    department = db.relationship('Department', back_populates='courses')
    registrations = db.relationship('StudentCourseRegistration', back_populates='course', lazy='dynamic')
    results = db.relationship('Result', back_populates='course', lazy='dynamic')

    __table_args__ = (
        UniqueConstraint('course_code', 'department_id', name='_course_code_department_uc'),
        CheckConstraint('year BETWEEN 1 AND 4', name='ck_course_year'),
        CheckConstraint("semester IN ('odd', 'even')", name='ck_course_semester'),
        CheckConstraint('credits > 0', name='ck_course_credits'),
        CheckConstraint('cgpa_weight >= 0 AND cgpa_weight <= 4', name='ck_course_cgpa_weight'),
    )

    def __repr__(self): return f'{self.course_code} - {self.course_name}'


class Student(db.Model):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    roll_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    registration_number = db.Column(db.String(20), unique=True, nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=False, index=True)
    academic_session = db.Column(db.String(20), nullable=True)
    current_year = db.Column(db.Integer, nullable=False, default=1)
    current_semester = db.Column(db.String(10), nullable=False, default='odd')
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('student_profile', uselist=False))
    department = db.relationship('Department', back_populates='students')
    registrations = db.relationship('StudentCourseRegistration', back_populates='student',
                                    lazy='dynamic', cascade="all, delete-orphan")
    results = db.relationship('Result', back_populates='student', lazy='dynamic')

    __table_args__ = (
        CheckConstraint('current_year BETWEEN 1 AND 4', name='ck_student_year'),
        CheckConstraint("current_semester IN ('odd', 'even')", name='ck_student_semester'),
    )

    def __repr__(self): return f'{self.roll_number} - {self.name}'


class StudentCourseRegistration(db.Model):
    __tablename__ = 'student_courses'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    registered_at = db.Column(db.DateTime, default=datetime.utcnow)

    student = db.relationship('Student', back_populates='registrations')
    course = db.relationship('Course', back_populates='registrations')

    __table_args__ = (UniqueConstraint('student_id', 'course_id', name='_student_course_registration_uc'),)

    def __repr__(self):
        return f'<StudentCourseRegistration S:{self.student_id} C:{self.course_id}>'


class Result(db.Model):
    """One attempt at a course. A pair may hold one regular attempt plus one backlog attempt per group."""
    __tablename__ = 'results'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    marks = db.Column(db.Float, nullable=False)
    published = db.Column(db.Boolean, default=False, nullable=False, index=True)
    is_backlog = db.Column(db.Boolean, default=False, nullable=False)
    backlog_group_id = db.Column(db.Integer, db.ForeignKey('backlog_groups.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student = db.relationship('Student', back_populates='results')
    course = db.relationship('Course', back_populates='results')
    backlog_group = db.relationship('BacklogGroup', back_populates='results')

    # No plain unique key on (student_id, course_id): backlog history needs several rows per pair.
    __table_args__ = (
        CheckConstraint('marks >= 0 AND marks <= 100', name='ck_result_marks'),
        db.Index('uq_result_regular_attempt', 'student_id', 'course_id', unique=True,
                 postgresql_where=db.text('is_backlog = false'),
                 sqlite_where=db.text('is_backlog = 0')),
        db.Index('uq_result_backlog_attempt', 'student_id', 'course_id', 'backlog_group_id', unique=True),
    )

    def __repr__(self):
        return f'<Result S:{self.student_id} C:{self.course_id} backlog={self.is_backlog}>'


class BacklogGroup(db.Model):
    __tablename__ = 'backlog_groups'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    is_open = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    memberships = db.relationship('BacklogGroupCourse', back_populates='group', lazy='dynamic',
                                  cascade="all, delete-orphan")
    results = db.relationship('Result', back_populates='backlog_group', lazy='dynamic')

    def __repr__(self): return f'<BacklogGroup {self.name}>'


class BacklogGroupCourse(db.Model):
    __tablename__ = 'backlog_group_courses'
    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('backlog_groups.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    is_registered = db.Column(db.Boolean, default=False, nullable=False)
    registered_at = db.Column(db.DateTime, nullable=True)

    group = db.relationship('BacklogGroup', back_populates='memberships')
    student = db.relationship('Student')
    course = db.relationship('Course')

    __table_args__ = (
        UniqueConstraint('group_id', 'student_id', 'course_id', name='backlog_group_courses_unique_group_student_course'),
    )

    def __repr__(self):
        return f'<BacklogGroupCourse G:{self.group_id} S:{self.student_id} C:{self.course_id}>'


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    action = db.Column(db.String(255), nullable=False)
    model_name = db.Column(db.String(50), nullable=True)
    record_id = db.Column(db.String(50), nullable=True)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', back_populates='logs')

    def __repr__(self):
        return f'<AuditLog {self.action} by User:{self.user_id}>'


@login.user_loader
def load_user(id):
    return db.session.get(User, int(id))
