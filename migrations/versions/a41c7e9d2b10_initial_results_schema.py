# FILE: migrations/versions/a41c7e9d2b10_initial_results_schema.py
"""Initial results schema

Revision ID: a41c7e9d2b10
Revises:
Create Date: 2026-10-19 10:12:41.218457
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a41c7e9d2b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_username'), 'user', ['username'], unique=True)

    op.create_table('role',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('user_roles',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['role.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('user_id', 'role_id')
    )

    op.create_table('departments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_departments_code'), 'departments', ['code'], unique=True)

    op.create_table('courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('course_code', sa.String(length=20), nullable=False),
        sa.Column('course_name', sa.String(length=150), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('semester', sa.String(length=10), nullable=False),
        sa.Column('credits', sa.Float(), nullable=False),
        sa.Column('cgpa_weight', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('year BETWEEN 1 AND 4', name='ck_course_year'),
        sa.CheckConstraint("semester IN ('odd', 'even')", name='ck_course_semester'),
        sa.CheckConstraint('credits > 0', name='ck_course_credits'),
        sa.CheckConstraint('cgpa_weight >= 0 AND cgpa_weight <= 4', name='ck_course_cgpa_weight'),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('course_code', 'department_id', name='_course_code_department_uc')
    )
    op.create_index(op.f('ix_courses_course_code'), 'courses', ['course_code'], unique=False)
    op.create_index(op.f('ix_courses_department_id'), 'courses', ['department_id'], unique=False)

    op.create_table('students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('roll_number', sa.String(length=20), nullable=False),
        sa.Column('registration_number', sa.String(length=20), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('academic_session', sa.String(length=20), nullable=True),
        sa.Column('current_year', sa.Integer(), nullable=False),
        sa.Column('current_semester', sa.String(length=10), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('current_year BETWEEN 1 AND 4', name='ck_student_year'),
        sa.CheckConstraint("current_semester IN ('odd', 'even')", name='ck_student_semester'),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('registration_number'),
        sa.UniqueConstraint('user_id')
    )
    op.create_index(op.f('ix_students_roll_number'), 'students', ['roll_number'], unique=True)
    op.create_index(op.f('ix_students_department_id'), 'students', ['department_id'], unique=False)

    op.create_table('student_courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('registered_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'course_id', name='_student_course_registration_uc')
    )
    op.create_index(op.f('ix_student_courses_student_id'), 'student_courses', ['student_id'], unique=False)
    op.create_index(op.f('ix_student_courses_course_id'), 'student_courses', ['course_id'], unique=False)

    op.create_table('backlog_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_open', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('backlog_group_courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('is_registered', sa.Boolean(), nullable=False),
        sa.Column('registered_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.ForeignKeyConstraint(['group_id'], ['backlog_groups.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'student_id', 'course_id',
                            name='backlog_group_courses_unique_group_student_course')
    )
    op.create_index(op.f('ix_backlog_group_courses_group_id'), 'backlog_group_courses', ['group_id'], unique=False)
    op.create_index(op.f('ix_backlog_group_courses_student_id'), 'backlog_group_courses', ['student_id'], unique=False)
    op.create_index(op.f('ix_backlog_group_courses_course_id'), 'backlog_group_courses', ['course_id'], unique=False)

    op.create_table('results',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('marks', sa.Float(), nullable=False),
        sa.Column('published', sa.Boolean(), nullable=False),
        sa.Column('is_backlog', sa.Boolean(), nullable=False),
        sa.Column('backlog_group_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('marks >= 0 AND marks <= 100', name='ck_result_marks'),
        sa.ForeignKeyConstraint(['backlog_group_id'], ['backlog_groups.id']),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_results_student_id'), 'results', ['student_id'], unique=False)
    op.create_index(op.f('ix_results_course_id'), 'results', ['course_id'], unique=False)
    op.create_index(op.f('ix_results_published'), 'results', ['published'], unique=False)
    op.create_index(op.f('ix_results_backlog_group_id'), 'results', ['backlog_group_id'], unique=False)
    # One regular attempt per pair; backlog attempts are unique per group instead
    op.create_index('uq_result_regular_attempt', 'results', ['student_id', 'course_id'], unique=True,
                    postgresql_where=sa.text('is_backlog = false'),
                    sqlite_where=sa.text('is_backlog = 0'))
    op.create_index('uq_result_backlog_attempt', 'results', ['student_id', 'course_id', 'backlog_group_id'],
                    unique=True)

    op.create_table('audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('model_name', sa.String(length=50), nullable=True),
        sa.Column('record_id', sa.String(length=50), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('audit_log')
    op.drop_index('uq_result_backlog_attempt', table_name='results')
    op.drop_index('uq_result_regular_attempt', table_name='results')
    op.drop_index(op.f('ix_results_backlog_group_id'), table_name='results')
    op.drop_index(op.f('ix_results_published'), table_name='results')
    op.drop_index(op.f('ix_results_course_id'), table_name='results')
    op.drop_index(op.f('ix_results_student_id'), table_name='results')
    op.drop_table('results')
    op.drop_index(op.f('ix_backlog_group_courses_course_id'), table_name='backlog_group_courses')
    op.drop_index(op.f('ix_backlog_group_courses_student_id'), table_name='backlog_group_courses')
    op.drop_index(op.f('ix_backlog_group_courses_group_id'), table_name='backlog_group_courses')
    op.drop_table('backlog_group_courses')
    op.drop_table('backlog_groups')
    op.drop_index(op.f('ix_student_courses_course_id'), table_name='student_courses')
    op.drop_index(op.f('ix_student_courses_student_id'), table_name='student_courses')
    op.drop_table('student_courses')
    op.drop_index(op.f('ix_students_department_id'), table_name='students')
    op.drop_index(op.f('ix_students_roll_number'), table_name='students')
    op.drop_table('students')
    op.drop_index(op.f('ix_courses_department_id'), table_name='courses')
    op.drop_index(op.f('ix_courses_course_code'), table_name='courses')
    op.drop_table('courses')
    op.drop_index(op.f('ix_departments_code'), table_name='departments')
    op.drop_table('departments')
    op.drop_table('user_roles')
    op.drop_table('role')
    op.drop_index(op.f('ix_user_username'), table_name='user')
    op.drop_table('user')
