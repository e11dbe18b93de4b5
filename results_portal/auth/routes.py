# FILE: results_portal/auth/routes.py

from flask import current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from results_portal import db
from results_portal.auth import bp
from results_portal.errors.handlers import error_response
from results_portal.models import User, Student
from results_portal.services import get_or_create_role, log_action, serialize_student


@bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({'csrfToken': generate_csrf()})


@bp.route('/admin/login', methods=['POST'])
def admin_login():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password')
    if not username or not password:
        return error_response('Username and password are required', 400)

    user = User.query.filter_by(username=username).first()
    if user is None or not user.check_password(password) or not user.has_role('Admin'):
        log_action("Login Failed", user=None, new_value={'username': username})
        db.session.commit()
        return error_response('Invalid credentials', 401)

    login_user(user, remember=bool(data.get('remember_me')))
    log_action("Login Success", user=user)
    db.session.commit()
    return jsonify({'user': {'username': user.username, **user.identity}})


@bp.route('/student/login', methods=['POST'])
def student_login():
    data = request.get_json(silent=True) or {}
    roll_number = str(data.get('roll_number') or '').strip()
    registration_number = str(data.get('registration_number') or '').strip()
    if not roll_number or not registration_number:
        return error_response('Roll number and registration number are required', 400)

    student = Student.query.filter_by(roll_number=roll_number).first()
    if student is None or student.registration_number != registration_number:
        log_action("Login Failed", user=None, new_value={'roll_number': roll_number})
        db.session.commit()
        return error_response('Invalid credentials', 401)

    user = student.user
    if user is None:
        try:
            user = User(username=f"student_{student.roll_number}")
            user.roles.append(get_or_create_role('Student'))
            db.session.add(user)
            db.session.flush()
            student.user_id = user.id
            log_action("Auto-Create Student User", user=None, model=User, record_id=user.id)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Error creating user for student {roll_number}: {e}", exc_info=True)
            raise

    login_user(user, remember=bool(data.get('remember_me')))
    log_action("Login Success", user=user)
    db.session.commit()
    return jsonify({'user': {'username': user.username, **user.identity},
                    'student': serialize_student(student)})


@bp.route('/logout', methods=['POST'])
def logout():
    if current_user.is_authenticated:
        user_id = current_user.id
        username = current_user.username
        logout_user()
        log_action("Logout Success", user=None, new_value={'user_id': user_id, 'username': username})
        db.session.commit()
    else:
        logout_user()
    return jsonify({'success': True})


@bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'user': {'username': current_user.username, **current_user.identity}})
