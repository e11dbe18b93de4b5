# FILE: results_portal/student/routes.py

import io

from flask import jsonify, request, send_file
from flask_login import current_user
from results_portal import db
from results_portal.auth.decorators import student_required
from results_portal.backlog import (available_backlog_courses_for_student, register_for_backlog_course,
                                    student_backlog_registrations, unregister_backlog_course)
from results_portal.errors.handlers import error_response, outcome_response
from results_portal.models import BacklogGroup
from results_portal.outcomes import ErrorKind, Outcome, GROUP_CLOSED
from results_portal.services import (available_courses_for_student, register_student_for_course, serialize_course,
                                     serialize_student, student_registrations, student_results_view, student_stats,
                                     student_transcript, transcript_frame, unregister_student_from_course)
from results_portal.student import bp
from results_portal.utils import coerce_int


def _student():
    return current_user.student_profile


@bp.before_request
@student_required
def require_student():
    return None


@bp.route('/profile', methods=['GET'])
def profile():
    return jsonify({'student': serialize_student(_student())})


@bp.route('/courses', methods=['GET'])
def courses():
    student = _student()
    year = request.args.get('year', type=int)
    semester = request.args.get('semester')
    registered = student_registrations(student.id, year, semester)
    return jsonify({'courses': [serialize_course(c) for c in registered]})


@bp.route('/courses/available', methods=['GET'])
def available_courses():
    return jsonify({'courses': [serialize_course(c) for c in available_courses_for_student(_student())]})


@bp.route('/courses/<int:course_id>', methods=['POST'])
def register_course(course_id):
    outcome = register_student_for_course(_student().id, course_id, user=current_user)
    return outcome_response(outcome, {'success': True}, 201)


@bp.route('/courses/<int:course_id>', methods=['DELETE'])
def unregister_course(course_id):
    return outcome_response(unregister_student_from_course(_student().id, course_id, user=current_user))


@bp.route('/results', methods=['GET'])
def results():
    return jsonify(student_results_view(_student().id))


@bp.route('/stats', methods=['GET'])
def stats():
    return jsonify(student_stats(_student().id))


@bp.route('/transcript', methods=['GET'])
def transcript():
    student = _student()
    data = student_transcript(student)
    if request.args.get('format') != 'csv':
        return jsonify(data)

    buffer = io.BytesIO()
    transcript_frame(data).to_csv(buffer, index=False, encoding='utf-8')
    buffer.seek(0)
    return send_file(buffer, mimetype='text/csv', as_attachment=True,
                     download_name=f"transcript_{student.roll_number}.csv")


# --- Backlog ---

@bp.route('/backlog', methods=['GET'])
def backlog():
    student_id = _student().id
    return jsonify({
        'availableGroups': available_backlog_courses_for_student(student_id),
        'registrations': student_backlog_registrations(student_id),
    })


def _backlog_target():
    data = request.get_json(silent=True) or {}
    group_id = coerce_int(data.get('groupId'))
    course_id = coerce_int(data.get('courseId'))
    if group_id is None or course_id is None:
        return None, error_response('groupId and courseId are required', 400)

    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return None, outcome_response(Outcome.failure(ErrorKind.NOT_FOUND, "Backlog group not found"))
    if not group.is_open:
        return None, outcome_response(Outcome.failure(
            ErrorKind.ELIGIBILITY, "Registration for this backlog group is closed", reason=GROUP_CLOSED))
    return (group_id, course_id), None


@bp.route('/backlog', methods=['POST'])
def register_backlog():
    target, error = _backlog_target()
    if error:
        return error
    group_id, course_id = target
    outcome = register_for_backlog_course(group_id, _student().id, course_id, user=current_user)
    return outcome_response(outcome, {'success': True})


@bp.route('/backlog', methods=['DELETE'])
def unregister_backlog():
    target, error = _backlog_target()
    if error:
        return error
    group_id, course_id = target
    outcome = unregister_backlog_course(group_id, _student().id, course_id, user=current_user)
    return outcome_response(outcome, {'success': True})
