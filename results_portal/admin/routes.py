# FILE: results_portal/admin/routes.py

import pandas as pd
from flask import current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import or_
from results_portal import db
from results_portal.admin import bp
from results_portal.auth.decorators import admin_required
from results_portal.backlog import (add_to_backlog_group, available_groups_for_student_course, backlog_candidates,
                                    backlog_group_details, create_backlog_group, delete_backlog_course,
                                    delete_backlog_group, group_exam_routine, list_backlog_groups,
                                    rename_backlog_group, serialize_membership, set_backlog_course_registration,
                                    toggle_group_open)
from results_portal.errors.handlers import error_response, outcome_response
from results_portal.grading import GradePolicy, grade_of, is_valid_marks
from results_portal.models import Course, Department, Student, SEMESTERS
from results_portal.services import (NewResult, admin_stats, available_courses_for_student, can_add_result,
                                     create_result, delete_course, delete_department, delete_result, delete_student,
                                     import_results, list_results, log_action, register_student_for_course,
                                     serialize_course, serialize_department, serialize_result,
                                     serialize_student, set_results_published, student_cgpa,
                                     student_passed_exams_count, student_registrations,
                                     unregister_student_from_course, update_result, validate_course_fields,
                                     commit_or_conflict)
from results_portal.updates import CourseUpdate, ResultUpdate, StudentUpdate
from results_portal.utils import coerce_int, coerce_number, parse_bool

IMPORT_EXTENSIONS = ('.csv', '.xlsx', '.xls')


def _json_body():
    return request.get_json(silent=True) or {}


def _optional_bool_arg(name):
    value = request.args.get(name)
    return None if value in (None, '') else parse_bool(value)


@bp.before_request
@admin_required
def require_admin():
    """Every route in this blueprint is admin only."""
    return None


# --- Dashboard & grade table ---

@bp.route('/stats', methods=['GET'])
def stats():
    return jsonify(admin_stats())


@bp.route('/grades', methods=['GET'])
def grade_lookup():
    marks = coerce_number(request.args.get('marks'))
    if marks is None or not is_valid_marks(marks):
        return error_response('Marks must be between 0 and 100', 400)
    try:
        policy = GradePolicy(request.args.get('policy', GradePolicy.REGULAR.value))
    except ValueError:
        return error_response("policy must be 'regular' or 'backlog'", 400)
    return jsonify(grade_of(marks, policy).to_dict())


# --- Departments ---

@bp.route('/departments', methods=['GET'])
def list_departments():
    departments = Department.query.order_by(Department.code).all()
    return jsonify({'departments': [serialize_department(d, with_counts=True) for d in departments]})


@bp.route('/departments', methods=['POST'])
def create_department():
    data = _json_body()
    name = str(data.get('name') or '').strip()
    code = str(data.get('code') or '').strip().upper()
    if not name or not code:
        return error_response('Department name and code are required', 400)

    department = Department(name=name, code=code)
    db.session.add(department)
    log_action("Create Department", model=Department, new_value={'name': name, 'code': code})
    conflict = commit_or_conflict("Department name or code already exists")
    if conflict:
        return outcome_response(conflict)
    return jsonify({'department': serialize_department(department)}), 201


@bp.route('/departments/<int:department_id>', methods=['DELETE'])
def remove_department(department_id):
    return outcome_response(delete_department(department_id, user=current_user))


# --- Courses ---

@bp.route('/courses', methods=['GET'])
def list_courses():
    query = Course.query
    department_id = request.args.get('department_id', type=int)
    year = request.args.get('year', type=int)
    semester = request.args.get('semester')
    search = request.args.get('search', '').strip()
    if department_id:
        query = query.filter(Course.department_id == department_id)
    if year:
        query = query.filter(Course.year == year)
    if semester in SEMESTERS:
        query = query.filter(Course.semester == semester)
    if search:
        query = query.filter(or_(Course.course_code.ilike(f"%{search}%"), Course.course_name.ilike(f"%{search}%")))
    courses = query.order_by(Course.year, Course.semester, Course.course_code).all()
    return jsonify({'courses': [serialize_course(c) for c in courses]})


@bp.route('/courses', methods=['POST'])
def create_course():
    data = _json_body()
    fields = {key: data.get(key) for key in ('course_code', 'course_name', 'year', 'semester', 'credits')}
    fields['cgpa_weight'] = data.get('cgpa_weight', 4.0)
    error = validate_course_fields(fields)
    department_id = coerce_int(data.get('department_id'))
    if error or department_id is None:
        return error_response(error or 'department_id is required', 400)
    if db.session.get(Department, department_id) is None:
        return error_response('Department not found', 404)

    course = Course(
        course_code=str(fields['course_code']).strip(),
        course_name=str(fields['course_name']).strip(),
        department_id=department_id,
        year=coerce_int(fields['year']),
        semester=fields['semester'],
        credits=coerce_number(fields['credits']),
        cgpa_weight=coerce_number(fields['cgpa_weight']),
    )
    db.session.add(course)
    log_action("Create Course", model=Course, new_value=serialize_course(course))
    conflict = commit_or_conflict("Course code already exists in this department")
    if conflict:
        return outcome_response(conflict)
    current_app.logger.info(f"Course {course.course_code} created")
    return jsonify({'course': serialize_course(course)}), 201


@bp.route('/courses/<int:course_id>', methods=['PATCH'])
def update_course(course_id):
    course = db.get_or_404(Course, course_id)
    changes = CourseUpdate.from_payload(_json_body())
    error = validate_course_fields(changes.changes())
    if error:
        return error_response(error, 400)
    for name in ('course_code', 'course_name'):
        if name in changes.changes():
            setattr(changes, name, str(getattr(changes, name)).strip())
    if 'year' in changes.changes():
        changes.year = coerce_int(changes.year)
    for name in ('credits', 'cgpa_weight'):
        if name in changes.changes():
            setattr(changes, name, coerce_number(getattr(changes, name)))

    diff = changes.apply_to(course)
    if diff:
        log_action("Update Course", model=Course, record_id=course.id, new_value=diff)
    conflict = commit_or_conflict("Course code already exists in this department")
    if conflict:
        return outcome_response(conflict)
    return jsonify({'course': serialize_course(course)})


@bp.route('/courses/<int:course_id>', methods=['DELETE'])
def remove_course(course_id):
    return outcome_response(delete_course(course_id, user=current_user))


# --- Students ---

@bp.route('/students', methods=['GET'])
def list_students():
    query = Student.query
    department_id = request.args.get('department_id', type=int)
    year = request.args.get('year', type=int)
    semester = request.args.get('semester')
    search = request.args.get('search', '').strip()
    if department_id:
        query = query.filter(Student.department_id == department_id)
    if year:
        query = query.filter(Student.current_year == year)
    if semester in SEMESTERS:
        query = query.filter(Student.current_semester == semester)
    if search:
        query = query.filter(or_(Student.name.ilike(f"%{search}%"), Student.roll_number.ilike(f"%{search}%")))
    students = query.order_by(Student.roll_number).all()
    return jsonify({'students': [serialize_student(s) for s in students]})


def _student_field_error(fields):
    if 'name' in fields and not str(fields['name'] or '').strip():
        return 'name is required'
    if 'current_year' in fields and coerce_int(fields['current_year']) not in (1, 2, 3, 4):
        return 'current_year must be between 1 and 4'
    if 'current_semester' in fields and fields['current_semester'] not in SEMESTERS:
        return "current_semester must be 'odd' or 'even'"
    return None


@bp.route('/students', methods=['POST'])
def create_student():
    data = _json_body()
    fields = {
        'name': data.get('name'),
        'current_year': data.get('current_year', 1),
        'current_semester': data.get('current_semester', 'odd'),
    }
    roll_number = str(data.get('roll_number') or '').strip()
    registration_number = str(data.get('registration_number') or '').strip()
    department_id = coerce_int(data.get('department_id'))
    error = _student_field_error(fields)
    if not error and (not roll_number or not registration_number or department_id is None):
        error = 'roll_number, registration_number and department_id are required'
    if error:
        return error_response(error, 400)
    if db.session.get(Department, department_id) is None:
        return error_response('Department not found', 404)

    student = Student(
        name=str(fields['name']).strip(),
        roll_number=roll_number,
        registration_number=registration_number,
        department_id=department_id,
        academic_session=data.get('academic_session'),
        current_year=coerce_int(fields['current_year']),
        current_semester=fields['current_semester'],
    )
    db.session.add(student)
    log_action("Create Student", model=Student, new_value={'roll_number': roll_number})
    conflict = commit_or_conflict("Roll number or registration number already exists")
    if conflict:
        return outcome_response(conflict)
    return jsonify({'student': serialize_student(student)}), 201


@bp.route('/students/<int:student_id>', methods=['GET'])
def get_student(student_id):
    student = db.get_or_404(Student, student_id)
    return jsonify({'student': serialize_student(student)})


@bp.route('/students/<int:student_id>', methods=['PATCH'])
def update_student(student_id):
    student = db.get_or_404(Student, student_id)
    changes = StudentUpdate.from_payload(_json_body())
    error = _student_field_error(changes.changes())
    if error:
        return error_response(error, 400)
    if 'current_year' in changes.changes():
        changes.current_year = coerce_int(changes.current_year)

    diff = changes.apply_to(student)
    if diff:
        log_action("Update Student", model=Student, record_id=student.id, new_value=diff)
    db.session.commit()
    return jsonify({'student': serialize_student(student)})


@bp.route('/students/<int:student_id>', methods=['DELETE'])
def remove_student(student_id):
    return outcome_response(delete_student(student_id, user=current_user))


@bp.route('/students/<int:student_id>/courses', methods=['GET'])
def student_courses(student_id):
    db.get_or_404(Student, student_id)
    return jsonify({'courses': [serialize_course(c) for c in student_registrations(student_id)]})


@bp.route('/students/<int:student_id>/available-courses', methods=['GET'])
def student_available_courses(student_id):
    student = db.get_or_404(Student, student_id)
    return jsonify({'courses': [serialize_course(c) for c in available_courses_for_student(student)]})


@bp.route('/students/<int:student_id>/courses', methods=['POST'])
def register_student_course(student_id):
    course_id = coerce_int(_json_body().get('course_id'))
    if course_id is None:
        return error_response('course_id is required', 400)
    outcome = register_student_for_course(student_id, course_id, user=current_user)
    return outcome_response(outcome, {'success': True}, 201)


@bp.route('/students/<int:student_id>/courses/<int:course_id>', methods=['DELETE'])
def unregister_student_course(student_id, course_id):
    return outcome_response(unregister_student_from_course(student_id, course_id, user=current_user))


@bp.route('/students/<int:student_id>/cgpa', methods=['GET'])
def get_student_cgpa(student_id):
    db.get_or_404(Student, student_id)
    published_only = not parse_bool(request.args.get('include_unpublished'))
    return jsonify(student_cgpa(student_id, published_only=published_only))


@bp.route('/students/<int:student_id>/passed-exams', methods=['GET'])
def get_passed_exams(student_id):
    db.get_or_404(Student, student_id)
    return jsonify(student_passed_exams_count(student_id))


# --- Results ---

@bp.route('/results', methods=['GET'])
def get_results():
    results = list_results(
        student_id=request.args.get('student_id', type=int),
        course_id=request.args.get('course_id', type=int),
        published=_optional_bool_arg('published'),
        is_backlog=_optional_bool_arg('is_backlog'),
    )
    return jsonify({'results': [serialize_result(r) for r in results]})


@bp.route('/results/eligibility', methods=['GET'])
def result_eligibility():
    student_id = request.args.get('student_id', type=int)
    course_id = request.args.get('course_id', type=int)
    if not student_id or not course_id:
        return error_response('student_id and course_id are required', 400)

    outcome = can_add_result(student_id, course_id)
    eligibility = outcome.value
    existing = eligibility.existing_result if eligibility else None
    return jsonify({
        'canAdd': outcome.ok,
        'reason': outcome.message,
        'reasonCode': outcome.reason,
        'isBacklog': bool(eligibility and eligibility.is_backlog),
        'existingResult': serialize_result(existing) if existing else None,
    })


@bp.route('/results/available-backlog-groups', methods=['GET'])
def result_backlog_groups():
    student_id = request.args.get('student_id', type=int)
    course_id = request.args.get('course_id', type=int)
    if not student_id or not course_id:
        return error_response('student_id and course_id are required', 400)
    return jsonify({'groups': available_groups_for_student_course(student_id, course_id)})


@bp.route('/results', methods=['POST'])
def add_result():
    outcome = create_result(NewResult.from_payload(_json_body()), user=current_user)
    payload = {'result': serialize_result(outcome.value)} if outcome.ok else None
    return outcome_response(outcome, payload, 201)


@bp.route('/results/<int:result_id>', methods=['PATCH'])
def edit_result(result_id):
    outcome = update_result(result_id, ResultUpdate.from_payload(_json_body()), user=current_user)
    payload = {'result': serialize_result(outcome.value)} if outcome.ok else None
    return outcome_response(outcome, payload)


@bp.route('/results/<int:result_id>', methods=['DELETE'])
def remove_result(result_id):
    return outcome_response(delete_result(result_id, user=current_user))


@bp.route('/results/publish', methods=['POST'])
def publish_results():
    data = _json_body()
    ids = data.get('ids')
    published = data.get('published', True)
    if not isinstance(ids, list) or not ids:
        return error_response('ids must be a non-empty list', 400)
    if not isinstance(published, bool):
        return error_response('published must be a boolean', 400)
    return jsonify(set_results_published(ids, published, user=current_user))


@bp.route('/results/import', methods=['POST'])
def import_result_file():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return error_response('No file uploaded', 400)
    filename = upload.filename.lower()
    if not filename.endswith(IMPORT_EXTENSIONS):
        return error_response('Only CSV or Excel files are supported', 400)

    try:
        if filename.endswith('.csv'):
            frame = pd.read_csv(upload.stream, dtype={'roll_number': str, 'course_code': str})
        else:
            frame = pd.read_excel(upload.stream, dtype={'roll_number': str, 'course_code': str})
    except Exception as e:
        current_app.logger.warning(f"Could not read uploaded result file '{upload.filename}': {e}")
        return error_response(f'Could not read file: {e}', 400)

    outcome = import_results(frame, user=current_user)
    return outcome_response(outcome, outcome.value)


# --- Backlog groups ---

@bp.route('/backlog', methods=['GET'])
def get_backlog_groups():
    return jsonify({'groups': list_backlog_groups(request.args.get('search', '').strip())})


@bp.route('/backlog/candidates', methods=['GET'])
def get_backlog_candidates():
    return jsonify({'candidates': backlog_candidates(request.args.get('department_id', type=int))})


@bp.route('/backlog', methods=['POST'])
def save_backlog_group():
    data = _json_body()
    selections = data.get('courseSelections')
    if not isinstance(selections, list) or not selections:
        return error_response('Course selections are required', 400)

    group_id = data.get('groupId')
    if group_id:
        group_id = coerce_int(group_id)
        if group_id is None:
            return error_response('groupId must be a positive integer', 400)
        outcome = add_to_backlog_group(group_id, selections, user=current_user)
        payload = dict(outcome.value, message=f"Successfully added {outcome.value['addedCount']} courses "
                                               f"to existing group") if outcome.ok else None
        return outcome_response(outcome, payload)
    if data.get('name'):
        outcome = create_backlog_group(data.get('name'), selections, user=current_user)
        return outcome_response(outcome, outcome.value, 201)
    return error_response('Either group name (for new group) or groupId (for existing group) is required', 400)


@bp.route('/backlog/<int:group_id>', methods=['GET'])
def get_backlog_group(group_id):
    outcome = backlog_group_details(group_id)
    return outcome_response(outcome, outcome.value)


@bp.route('/backlog/<int:group_id>', methods=['PATCH'])
def update_backlog_group(group_id):
    data = _json_body()
    if 'isOpen' in data:
        outcome = toggle_group_open(group_id, data['isOpen'], user=current_user)
    elif 'name' in data:
        outcome = rename_backlog_group(group_id, data['name'], user=current_user)
    else:
        return error_response('Either isOpen or name must be provided', 400)
    return outcome_response(outcome, {'group': outcome.value} if outcome.ok else None)


@bp.route('/backlog/<int:group_id>', methods=['DELETE'])
def remove_backlog_group(group_id):
    return outcome_response(delete_backlog_group(group_id, user=current_user))


@bp.route('/backlog/<int:group_id>/registrations/<int:course_id>/<int:student_id>', methods=['PATCH'])
def toggle_backlog_registration(group_id, course_id, student_id):
    outcome = set_backlog_course_registration(group_id, student_id, course_id,
                                              _json_body().get('isRegistered'), user=current_user)
    return outcome_response(outcome, {'registration': serialize_membership(outcome.value)} if outcome.ok else None)


@bp.route('/backlog/<int:group_id>/registrations/<int:course_id>/<int:student_id>', methods=['DELETE'])
def remove_backlog_course(group_id, course_id, student_id):
    return outcome_response(delete_backlog_course(group_id, student_id, course_id, user=current_user))


@bp.route('/backlog/<int:group_id>/routine', methods=['POST'])
def backlog_routine(group_id):
    exam_dates = _json_body().get('examDates')
    if exam_dates is not None and (not isinstance(exam_dates, list)
                                   or not all(d is None or isinstance(d, str) for d in exam_dates)):
        return error_response('examDates must be a list of date strings', 400)
    outcome = group_exam_routine(group_id, exam_dates)
    return outcome_response(outcome, dict(outcome.value, success=True) if outcome.ok else None)
