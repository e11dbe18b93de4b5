# FILE: run.py

from results_portal import create_app, db
import click

app = create_app()


@app.shell_context_processor
def make_shell_context():
    from results_portal.models import (User, Role, Department, Course, Student, StudentCourseRegistration,
                                       Result, BacklogGroup, BacklogGroupCourse, AuditLog)
    return {
        'db': db, 'User': User, 'Role': Role, 'Department': Department, 'Course': Course,
        'Student': Student, 'StudentCourseRegistration': StudentCourseRegistration, 'Result': Result,
        'BacklogGroup': BacklogGroup, 'BacklogGroupCourse': BacklogGroupCourse, 'AuditLog': AuditLog
    }


@app.cli.command('seed-db')
def seed_db():
    """Seeds roles, the default admin account and a sample department."""
    from results_portal.models import User, Role, Department

    print("Seeding database...")

    # --- 1. Roles ---
    roles_data = [
        {'name': 'Admin', 'description': 'System administrator'},
        {'name': 'Student', 'description': 'Student Role'},
    ]
    for r_data in roles_data:
        if not Role.query.filter_by(name=r_data['name']).first():
            db.session.add(Role(**r_data))
    db.session.commit()
    print("Roles seeded.")

    # --- 2. Default admin ---
    username = app.config['DEFAULT_ADMIN_USERNAME']
    if not User.query.filter_by(username=username).first():
        admin = User(username=username)
        admin.set_password(app.config['DEFAULT_ADMIN_PASSWORD'])
        admin.roles.append(Role.query.filter_by(name='Admin').first())
        db.session.add(admin)
        db.session.commit()
        print(f"Admin user '{username}' created.")

    # --- 3. Sample department ---
    if not Department.query.filter_by(code='CSE').first():
        db.session.add(Department(name='Computer Science & Engineering', code='CSE'))
        db.session.commit()
        print("Department CSE seeded.")

    print("Database seeded successfully!")


@app.cli.command('create-admin')
@click.argument('username')
@click.argument('password')
def create_admin(username, password):
    """Create an admin account, or reset the password of an existing one."""
    from results_portal.models import User
    from results_portal.services import get_or_create_role, log_action

    try:
        user = User.query.filter_by(username=username).first()
        if user is None:
            user = User(username=username)
            db.session.add(user)
        user.set_password(password)
        if not user.has_role('Admin'):
            user.roles.append(get_or_create_role('Admin', 'System administrator'))
        db.session.flush()
        log_action("Create Admin", user=None, model=User, record_id=user.id)
        db.session.commit()
        print(f"Admin '{username}' is ready.")
    except Exception as e:
        db.session.rollback()
        print(f'Error creating admin: {e}')
        raise click.Abort()


@app.cli.command('student-cgpa')
@click.argument('student_id', type=int)
@click.option('--include-unpublished', is_flag=True, help='Count results that are not yet published.')
def student_cgpa_command(student_id, include_unpublished):
    """Print the SGPA of every semester and the CGPA of one student."""
    from results_portal.models import Student
    from results_portal.services import student_cgpa

    student = db.session.get(Student, student_id)
    if student is None:
        print(f"!!! Student {student_id} not found")
        return

    summary = student_cgpa(student_id, published_only=not include_unpublished)
    print(f"--- {student.roll_number} {student.name} ---")
    for entry in summary['sgpas']:
        print(f"  Year {entry['year']} {entry['semester']:<4} | SGPA: {entry['sgpa']:.2f}")
    print(f"CGPA: {summary['cgpa']:.2f}")
