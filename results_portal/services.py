# FILE: results_portal/services.py

import json
from dataclasses import dataclass
from typing import Optional

import pandas as pd
from flask import current_app
from flask_login import current_user
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from results_portal import db
from results_portal.grading import (ResultRecord, cgpa_summary, grade_of, is_passing, is_valid_marks,
                                    policy_for, resolve_effective_results, sort_for_display, group_by_semester,
                                    semester_gpa, overall_cgpa, SEMESTER_ORDER)
from results_portal.models import (AuditLog, BacklogGroup, Course, Department, Result, Role, Student,
                                   StudentCourseRegistration, SEMESTERS)
from results_portal.outcomes import (ErrorKind, Outcome, ALREADY_PASSED, BACKLOG_GROUP_REQUIRED, HAS_DEPENDENTS,
                                     NO_FAILED_ATTEMPT, NOT_REGISTERED, NOT_REGISTERED_IN_GROUP, RESULT_EXISTS)
from results_portal.updates import ResultUpdate
from results_portal.utils import coerce_int, coerce_number, isoformat, parse_bool

AUDIT_VALUE_MAX_LEN = 1000
IMPORT_REQUIRED_COLUMNS = ('roll_number', 'course_code', 'marks')


# --- Audit & transaction helpers ---

def _audit_text(action, value):
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        try:
            text = json.dumps(value, ensure_ascii=False, default=str)
        except TypeError as te:
            current_app.logger.warning(f"Audit log JSON conversion failed (action: {action}): {te}. Falling back to str().")
            text = str(value)
    else:
        text = str(value)
    if len(text) > AUDIT_VALUE_MAX_LEN:
        text = text[:AUDIT_VALUE_MAX_LEN] + "..."
    return text


def log_action(action: str, user=None, model=None, record_id=None, old_value=None, new_value=None):
    """
    Adds an audit log entry to the current session. Does not commit, so the
    entry is kept or rolled back together with the action it records.

    Args:
        action (str): What happened, e.g. "Create Result".
        user (User, optional): Acting user. Defaults to current_user; None for system actions.
        model (db.Model class, optional): Model class affected.
        record_id (optional): Primary key of the affected record.
        old_value / new_value (optional): Simple values or dict/list, stored as JSON text.
    """
    log_user = user if user is not None else current_user
    user_id = None
    if getattr(log_user, 'is_authenticated', False):
        user_id = log_user.id

    db.session.add(AuditLog(
        user_id=user_id,
        action=action,
        model_name=model.__tablename__ if model is not None and hasattr(model, '__tablename__') else None,
        record_id=str(record_id) if record_id is not None else None,
        old_value=_audit_text(action, old_value),
        new_value=_audit_text(action, new_value),
    ))


def get_or_create_role(name, description=None):
    role = Role.query.filter_by(name=name).first()
    if not role:
        role = Role(name=name, description=description or f'{name} Role')
        db.session.add(role)
        db.session.flush()
    return role


def reject(kind, message, reason=None, value=None):
    """Roll back whatever the current operation touched and return a failed Outcome."""
    db.session.rollback()
    current_app.logger.warning(f"Rejected ({ErrorKind(kind).value}): {message}")
    return Outcome.failure(kind, message, reason=reason, value=value)


def commit_or_conflict(message, reason=None):
    """
    Commit the session. A uniqueness violation becomes a CONCURRENCY outcome;
    anything else is rolled back and re-raised.
    """
    try:
        db.session.commit()
    except IntegrityError as ie:
        db.session.rollback()
        current_app.logger.warning(f"Integrity violation on commit: {ie.orig}")
        return Outcome.failure(ErrorKind.CONCURRENCY, message, reason=reason)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Commit failed: {e}", exc_info=True)
        raise
    return None


# --- Serializers ---

def serialize_department(department, with_counts=False):
    data = {
        'id': department.id,
        'name': department.name,
        'code': department.code,
        'created_at': isoformat(department.created_at),
    }
    if with_counts:
        data['student_count'] = department.students.count()
        data['course_count'] = department.courses.count()
    return data


def serialize_course(course):
    return {
        'id': course.id,
        'course_code': course.course_code,
        'course_name': course.course_name,
        'department_id': course.department_id,
        'department_code': course.department.code if course.department else None,
        'year': course.year,
        'semester': course.semester,
        'credits': course.credits,
        'cgpa_weight': course.cgpa_weight,
    }


def serialize_student(student):
    return {
        'id': student.id,
        'name': student.name,
        'roll_number': student.roll_number,
        'registration_number': student.registration_number,
        'department_id': student.department_id,
        'department_code': student.department.code if student.department else None,
        'academic_session': student.academic_session,
        'current_year': student.current_year,
        'current_semester': student.current_semester,
    }


def serialize_result(result):
    grade = grade_of(result.marks, policy_for(result.is_backlog))
    return {
        'id': result.id,
        'student_id': result.student_id,
        'student_name': result.student.name if result.student else None,
        'roll_number': result.student.roll_number if result.student else None,
        'course_id': result.course_id,
        'course_code': result.course.course_code if result.course else None,
        'course_name': result.course.course_name if result.course else None,
        'marks': result.marks,
        'published': result.published,
        'is_backlog': result.is_backlog,
        'backlog_group_id': result.backlog_group_id,
        'grade': grade.grade,
        'gradePoint': grade.grade_point,
        'created_at': isoformat(result.created_at),
    }


# --- Result eligibility & entry ---

@dataclass(frozen=True)
class ResultEligibility:
    is_backlog: bool
    existing_result: Optional[Result] = None


@dataclass
class NewResult:
    student_id: object = None
    course_id: object = None
    marks: object = None
    published: object = False
    backlog_group_id: object = None
    is_backlog: object = None  # caller's claim, verified against stored attempts

    @classmethod
    def from_payload(cls, payload):
        payload = payload or {}
        return cls(
            student_id=payload.get('student_id'),
            course_id=payload.get('course_id'),
            marks=payload.get('marks'),
            published=payload.get('published', False),
            backlog_group_id=payload.get('backlog_group_id'),
            is_backlog=payload.get('is_backlog'),
        )


def registration_for(student_id, course_id, lock=False):
    query = StudentCourseRegistration.query.filter_by(student_id=student_id, course_id=course_id)
    if lock:
        # Serializes concurrent result submissions for the same pair
        query = query.with_for_update()
    return query.first()


def latest_result(student_id, course_id):
    return Result.query.filter_by(student_id=student_id, course_id=course_id) \
        .order_by(Result.created_at.desc(), Result.id.desc()).first()


def backlog_attempts_exist(student_id, course_id):
    return db.session.query(Result.id).filter_by(
        student_id=student_id, course_id=course_id, is_backlog=True
    ).first() is not None


def can_add_result(student_id, course_id, registration=None):
    """
    Decide whether a new result may be recorded for a student-course pair.

    Succeeds with ResultEligibility(is_backlog=True) when the latest stored
    attempt failed, and is_backlog=False when there is no attempt yet.
    Does not touch the session state.
    """
    if registration is None:
        registration = registration_for(student_id, course_id)
    if registration is None:
        return Outcome.failure(ErrorKind.ELIGIBILITY, "Student is not registered for this course",
                               reason=NOT_REGISTERED)

    existing = latest_result(student_id, course_id)
    if existing is None:
        return Outcome.success(ResultEligibility(is_backlog=False))

    if is_passing(existing.marks):
        return Outcome.failure(ErrorKind.ELIGIBILITY,
                               "Cannot add result for a course that has already been passed",
                               reason=ALREADY_PASSED, value=ResultEligibility(False, existing))

    return Outcome.success(ResultEligibility(is_backlog=True, existing_result=existing))


def _validate_new_result(new):
    student_id = coerce_int(new.student_id)
    course_id = coerce_int(new.course_id)
    if student_id is None or course_id is None:
        return "Missing required fields: student_id, course_id, marks", None
    marks = coerce_number(new.marks)
    if marks is None or not is_valid_marks(marks):
        return "Marks must be between 0 and 100", None
    if not isinstance(new.published, bool):
        return "published must be a boolean", None
    group_id = None
    if new.backlog_group_id is not None:
        group_id = coerce_int(new.backlog_group_id)
        if group_id is None:
            return "backlog_group_id must be a positive integer", None
    if new.is_backlog is not None and not isinstance(new.is_backlog, bool):
        return "is_backlog must be a boolean", None
    return None, (student_id, course_id, marks, group_id)


def create_result(new: NewResult, user=None):
    """
    Record one result inside a single transaction: lock the registration,
    check eligibility, gate backlog attempts on group registration, insert.
    """
    from results_portal.backlog import is_registered_in_backlog_group

    error, cleaned = _validate_new_result(new)
    if error:
        return reject(ErrorKind.VALIDATION, error)
    student_id, course_id, marks, group_id = cleaned

    try:
        if db.session.get(Student, student_id) is None:
            return reject(ErrorKind.NOT_FOUND, "Student not found")
        if db.session.get(Course, course_id) is None:
            return reject(ErrorKind.NOT_FOUND, "Course not found")

        registration = registration_for(student_id, course_id, lock=True)
        eligibility = can_add_result(student_id, course_id, registration=registration)
        if not eligibility.ok:
            return reject(eligibility.error, eligibility.message, reason=eligibility.reason)

        is_backlog = eligibility.value.is_backlog
        if not is_backlog:
            if new.is_backlog or group_id is not None:
                return reject(ErrorKind.VALIDATION,
                              "A backlog result needs an earlier failing result for this course",
                              reason=NO_FAILED_ATTEMPT)
        else:
            if group_id is None:
                return reject(ErrorKind.VALIDATION, "Backlog group ID is required for backlog results",
                              reason=BACKLOG_GROUP_REQUIRED)
            if not is_registered_in_backlog_group(group_id, student_id, course_id):
                return reject(ErrorKind.ELIGIBILITY,
                              "Student is not registered in this group for this course",
                              reason=NOT_REGISTERED_IN_GROUP)

        result = Result(
            student_id=student_id,
            course_id=course_id,
            marks=marks,
            published=new.published,
            is_backlog=is_backlog,
            backlog_group_id=group_id if is_backlog else None,
        )
        db.session.add(result)
        db.session.flush()
        log_action("Create Result", user=user, model=Result, record_id=result.id,
                   new_value={'student_id': student_id, 'course_id': course_id, 'marks': marks,
                              'is_backlog': is_backlog, 'backlog_group_id': result.backlog_group_id})
    except IntegrityError as ie:
        db.session.rollback()
        current_app.logger.warning(f"Duplicate result insert for S:{student_id} C:{course_id}: {ie.orig}")
        return Outcome.failure(ErrorKind.CONCURRENCY, "Result already exists for this student-course combination",
                               reason=RESULT_EXISTS)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating result for S:{student_id} C:{course_id}: {e}", exc_info=True)
        raise

    conflict = commit_or_conflict("Result already exists for this student-course combination", RESULT_EXISTS)
    if conflict:
        return conflict

    current_app.logger.info(
        f"Result {result.id} created for S:{student_id} C:{course_id} (backlog={is_backlog}, marks={marks})")
    return Outcome.success(result)


def update_result(result_id, changes: ResultUpdate, user=None):
    from results_portal.backlog import is_registered_in_backlog_group

    result = db.session.get(Result, result_id)
    if result is None:
        return reject(ErrorKind.NOT_FOUND, "Result not found")
    if changes.is_empty():
        return Outcome.success(result)

    updates = changes.changes()
    if 'marks' in updates:
        marks = coerce_number(updates['marks'])
        if marks is None or not is_valid_marks(marks):
            return reject(ErrorKind.VALIDATION, "Marks must be between 0 and 100")
        changes.marks = marks
        if not result.is_backlog and is_passing(marks) \
                and backlog_attempts_exist(result.student_id, result.course_id):
            return reject(ErrorKind.INTEGRITY,
                          "Cannot raise the original result to a pass while backlog results exist for this course",
                          reason=HAS_DEPENDENTS)

    if 'published' in updates and not isinstance(updates['published'], bool):
        return reject(ErrorKind.VALIDATION, "published must be a boolean")

    if 'backlog_group_id' in updates:
        raw_group = updates['backlog_group_id']
        group_id = coerce_int(raw_group) if raw_group is not None else None
        if raw_group is not None and group_id is None:
            return reject(ErrorKind.VALIDATION, "backlog_group_id must be a positive integer")
        if not result.is_backlog:
            if group_id is not None:
                return reject(ErrorKind.VALIDATION, "Only backlog results can belong to a backlog group")
        else:
            if group_id is None:
                return reject(ErrorKind.VALIDATION, "Backlog group ID is required for backlog results",
                              reason=BACKLOG_GROUP_REQUIRED)
            if group_id != result.backlog_group_id and \
                    not is_registered_in_backlog_group(group_id, result.student_id, result.course_id):
                return reject(ErrorKind.ELIGIBILITY,
                              "Student is not registered in this group for this course",
                              reason=NOT_REGISTERED_IN_GROUP)
        changes.backlog_group_id = group_id

    diff = changes.apply_to(result)
    if diff:
        log_action("Update Result", user=user, model=Result, record_id=result.id, new_value=diff)
    conflict = commit_or_conflict("Result already exists for this student-course combination", RESULT_EXISTS)
    if conflict:
        return conflict
    return Outcome.success(result)


def delete_result(result_id, user=None):
    result = db.session.get(Result, result_id)
    if result is None:
        return reject(ErrorKind.NOT_FOUND, "Result not found")
    if not result.is_backlog and backlog_attempts_exist(result.student_id, result.course_id):
        return reject(ErrorKind.INTEGRITY,
                      "Cannot delete the original result while backlog results exist for this course. "
                      "Delete the backlog results first.", reason=HAS_DEPENDENTS)

    snapshot = {'student_id': result.student_id, 'course_id': result.course_id, 'marks': result.marks,
                'is_backlog': result.is_backlog, 'backlog_group_id': result.backlog_group_id}
    db.session.delete(result)
    log_action("Delete Result", user=user, model=Result, record_id=result_id, old_value=snapshot)
    db.session.commit()
    current_app.logger.info(f"Result {result_id} deleted")
    return Outcome.success(True)


def set_results_published(result_ids, published, user=None):
    report = {'success': [], 'failed': []}
    for raw_id in result_ids:
        result_id = coerce_int(raw_id)
        result = db.session.get(Result, result_id) if result_id else None
        if result is None:
            report['failed'].append({'id': raw_id, 'error': "Result not found"})
            continue
        result.published = published
        report['success'].append(result.id)

    if report['success']:
        log_action("Publish Results" if published else "Unpublish Results", user=user, model=Result,
                   new_value=report['success'])
    db.session.commit()
    return report


def _cell(row, key):
    value = row.get(key)
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return value


def import_results(frame: pd.DataFrame, user=None):
    """
    Bulk result entry from an uploaded sheet. Each row goes through
    create_result in its own transaction; failures are reported per row.
    """
    frame = frame.rename(columns=lambda c: str(c).strip().lower())
    missing = [c for c in IMPORT_REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        return Outcome.failure(ErrorKind.VALIDATION, f"Missing required columns: {', '.join(missing)}")

    report = {'success': [], 'failed': []}
    for index, row in enumerate(frame.to_dict(orient='records')):
        row_number = index + 2  # header is line 1
        roll_number = _cell(row, 'roll_number')
        course_code = _cell(row, 'course_code')
        if roll_number is None or course_code is None:
            report['failed'].append({'row': row_number, 'error': "roll_number and course_code are required"})
            continue

        roll_number = str(roll_number).strip()
        if roll_number.endswith('.0'):
            roll_number = roll_number[:-2]
        student = Student.query.filter_by(roll_number=roll_number).first()
        if student is None:
            report['failed'].append({'row': row_number, 'error': f"Student {roll_number} not found"})
            continue
        course = Course.query.filter_by(course_code=str(course_code).strip(),
                                        department_id=student.department_id).first()
        if course is None:
            report['failed'].append({'row': row_number,
                                     'error': f"Course {course_code} not found in the student's department"})
            continue

        outcome = create_result(NewResult(
            student_id=student.id,
            course_id=course.id,
            marks=coerce_number(_cell(row, 'marks')),
            published=parse_bool(_cell(row, 'published')),
            backlog_group_id=coerce_int(_cell(row, 'backlog_group_id')),
        ), user=user)
        if outcome.ok:
            report['success'].append({'row': row_number, 'result_id': outcome.value.id,
                                      'is_backlog': outcome.value.is_backlog})
        else:
            report['failed'].append({'row': row_number, 'error': outcome.message, 'reason': outcome.reason})

    current_app.logger.info(
        f"Result import finished: {len(report['success'])} created, {len(report['failed'])} failed")
    return Outcome.success(report)


def list_results(student_id=None, course_id=None, published=None, is_backlog=None):
    query = Result.query.options(joinedload(Result.student), joinedload(Result.course))
    if student_id:
        query = query.filter(Result.student_id == student_id)
    if course_id:
        query = query.filter(Result.course_id == course_id)
    if published is not None:
        query = query.filter(Result.published.is_(published))
    if is_backlog is not None:
        query = query.filter(Result.is_backlog.is_(is_backlog))
    return query.order_by(Result.created_at.desc(), Result.id.desc()).all()


# --- Aggregate views ---

def student_result_records(student_id, published_only=True):
    """Fetch a student's attempts as ResultRecords, split into (regular, backlog)."""
    query = Result.query.options(joinedload(Result.course)).filter(Result.student_id == student_id)
    if published_only:
        query = query.filter(Result.published.is_(True))
    records = [ResultRecord.from_model(r) for r in query.order_by(Result.id).all()]
    regular = sort_for_display(r for r in records if not r.is_backlog)
    backlog = sort_for_display(r for r in records if r.is_backlog)
    return regular, backlog


def effective_results_for_student(student_id, published_only=True):
    regular, backlog = student_result_records(student_id, published_only)
    # Backlog attempts are resolved in insertion order so ties keep the earlier row
    backlog = sorted(backlog, key=lambda r: r.id)
    return sort_for_display(resolve_effective_results(regular + backlog).values())


def student_cgpa(student_id, published_only=True):
    return cgpa_summary(effective_results_for_student(student_id, published_only))


def student_total_credits(student_id):
    total = db.session.query(func.sum(Course.credits)).join(
        StudentCourseRegistration, StudentCourseRegistration.course_id == Course.id
    ).filter(StudentCourseRegistration.student_id == student_id).scalar()
    return float(total or 0)


def student_passed_exams_count(student_id, published_only=True):
    total = StudentCourseRegistration.query.filter_by(student_id=student_id).count()
    passed = sum(1 for r in effective_results_for_student(student_id, published_only) if is_passing(r.marks))
    return {'passed': passed, 'total': total}


def student_results_view(student_id):
    regular, backlog = student_result_records(student_id)
    effective = effective_results_for_student(student_id)
    return {
        'results': [r.to_dict() for r in regular + backlog],
        'regularResults': [r.to_dict() for r in regular],
        'backlogResults': [r.to_dict() for r in backlog],
        'effectiveResults': [r.to_dict() for r in effective],
        'cgpa': cgpa_summary(effective),
        'totalCredits': student_total_credits(student_id),
    }


def student_stats(student_id):
    effective = effective_results_for_student(student_id)
    summary = cgpa_summary(effective)
    current_sgpa = 0.0
    if summary['sgpas']:
        latest = max(summary['sgpas'], key=lambda s: (s['year'], SEMESTER_ORDER.get(s['semester'], -1)))
        current_sgpa = latest['sgpa']

    return {
        'totalRegistrations': StudentCourseRegistration.query.filter_by(student_id=student_id).count(),
        'publishedResults': Result.query.filter_by(student_id=student_id, published=True).count(),
        'currentSGPA': current_sgpa,
        'overallCGPA': summary['cgpa'],
        'sgpas': summary['sgpas'],
        'totalCredits': student_total_credits(student_id),
        'completedCredits': sum(r.credits for r in effective if is_passing(r.marks)),
    }


def student_transcript(student):
    """Per-semester effective results with SGPA, for the transcript page and CSV export."""
    effective = effective_results_for_student(student.id)
    semesters = []
    for (year, semester), records in group_by_semester(effective).items():
        semesters.append({
            'year': year,
            'semester': semester,
            'sgpa': semester_gpa(records),
            'credits_attempted': sum(r.credits for r in records),
            'credits_earned': sum(r.credits for r in records if is_passing(r.marks)),
            'courses': [
                {
                    'course_code': r.course_code,
                    'course_name': r.course_name,
                    'credits': r.credits,
                    'marks': r.marks,
                    'grade': r.grade.grade,
                    'gradePoint': r.grade.grade_point,
                    'attempt': 'backlog' if r.is_backlog else 'regular',
                    'status': r.status,
                }
                for r in records
            ],
        })

    return {
        'student': serialize_student(student),
        'semesters': semesters,
        'cgpa': overall_cgpa(s['sgpa'] for s in semesters),
        'completedCredits': sum(s['credits_earned'] for s in semesters),
    }


def transcript_frame(transcript):
    rows = []
    for semester in transcript['semesters']:
        for course in semester['courses']:
            rows.append({
                'year': semester['year'],
                'semester': semester['semester'],
                'course_code': course['course_code'],
                'course_name': course['course_name'],
                'credits': course['credits'],
                'marks': course['marks'],
                'grade': course['grade'],
                'grade_point': course['gradePoint'],
                'attempt': course['attempt'],
                'status': course['status'],
                'sgpa': semester['sgpa'],
            })
    columns = ['year', 'semester', 'course_code', 'course_name', 'credits', 'marks', 'grade',
               'grade_point', 'attempt', 'status', 'sgpa']
    return pd.DataFrame(rows, columns=columns)


def admin_stats():
    return {
        'totalStudents': Student.query.count(),
        'totalCourses': Course.query.count(),
        'totalDepartments': Department.query.count(),
        'publishedResults': Result.query.filter_by(published=True).count(),
        'backlogGroups': BacklogGroup.query.count(),
    }


# --- Course registration ---

def student_registrations(student_id, year=None, semester=None):
    query = StudentCourseRegistration.query.join(Course).options(joinedload(StudentCourseRegistration.course)) \
        .filter(StudentCourseRegistration.student_id == student_id)
    if year is not None and semester is not None:
        query = query.filter(Course.year == year, Course.semester == semester)
    registrations = query.all()
    courses = [reg.course for reg in registrations]
    return sorted(courses, key=lambda c: (c.year, SEMESTER_ORDER.get(c.semester, 99), c.course_code))


def available_courses_for_student(student):
    registered = db.session.query(StudentCourseRegistration.course_id).filter_by(student_id=student.id)
    return Course.query.filter(
        Course.department_id == student.department_id,
        Course.year == student.current_year,
        Course.semester == student.current_semester,
        ~Course.id.in_(registered)
    ).order_by(Course.course_code).all()


def register_student_for_course(student_id, course_id, user=None):
    student = db.session.get(Student, student_id) if student_id else None
    if student is None:
        return reject(ErrorKind.NOT_FOUND, "Student not found")
    course = db.session.get(Course, course_id) if course_id else None
    if course is None:
        return reject(ErrorKind.NOT_FOUND, "Course not found")
    if registration_for(student_id, course_id) is not None:
        return reject(ErrorKind.ELIGIBILITY, "Student is already registered for this course")
    if course.department_id != student.department_id:
        return reject(ErrorKind.ELIGIBILITY, "Course department does not match student's department")
    if course.year != student.current_year:
        return reject(ErrorKind.ELIGIBILITY, "Course year does not match student's current year")
    if course.semester != student.current_semester:
        return reject(ErrorKind.ELIGIBILITY, "Course semester does not match student's current semester")

    registration = StudentCourseRegistration(student_id=student_id, course_id=course_id)
    db.session.add(registration)
    log_action("Register Course", user=user, model=StudentCourseRegistration,
               new_value={'student_id': student_id, 'course_id': course_id})
    conflict = commit_or_conflict("Student is already registered for this course")
    if conflict:
        return conflict
    return Outcome.success(registration)


def unregister_student_from_course(student_id, course_id, user=None):
    registration = registration_for(student_id, course_id)
    if registration is None:
        return reject(ErrorKind.NOT_FOUND, "Student is not registered for this course", reason=NOT_REGISTERED)
    if Result.query.filter_by(student_id=student_id, course_id=course_id).first() is not None:
        return reject(ErrorKind.INTEGRITY, "Cannot unregister from a course that already has results",
                      reason=HAS_DEPENDENTS)

    db.session.delete(registration)
    log_action("Unregister Course", user=user, model=StudentCourseRegistration,
               old_value={'student_id': student_id, 'course_id': course_id})
    db.session.commit()
    return Outcome.success(True)


# --- Catalog integrity ---

def validate_course_fields(fields):
    """Check course columns present in ``fields``; returns an error message or None."""
    if 'course_code' in fields and not str(fields['course_code'] or '').strip():
        return "course_code is required"
    if 'course_name' in fields and not str(fields['course_name'] or '').strip():
        return "course_name is required"
    if 'year' in fields and coerce_int(fields['year']) not in (1, 2, 3, 4):
        return "year must be between 1 and 4"
    if 'semester' in fields and fields['semester'] not in SEMESTERS:
        return "semester must be 'odd' or 'even'"
    if 'credits' in fields:
        credits = coerce_number(fields['credits'])
        if credits is None or credits <= 0:
            return "credits must be greater than 0"
    if 'cgpa_weight' in fields:
        weight = coerce_number(fields['cgpa_weight'])
        if weight is None or not 0 <= weight <= 4:
            return "cgpa_weight must be between 0 and 4"
    return None


def delete_department(department_id, user=None):
    department = db.session.get(Department, department_id)
    if department is None:
        return reject(ErrorKind.NOT_FOUND, "Department not found")
    if department.students.count() or department.courses.count():
        return reject(ErrorKind.INTEGRITY, "Cannot delete department with existing students or courses",
                      reason=HAS_DEPENDENTS)
    db.session.delete(department)
    log_action("Delete Department", user=user, model=Department, record_id=department_id,
               old_value=department.code)
    db.session.commit()
    return Outcome.success(True)


def delete_course(course_id, user=None):
    course = db.session.get(Course, course_id)
    if course is None:
        return reject(ErrorKind.NOT_FOUND, "Course not found")
    if course.registrations.count() or course.results.count():
        return reject(ErrorKind.INTEGRITY, "Cannot delete course with existing registrations or results",
                      reason=HAS_DEPENDENTS)
    db.session.delete(course)
    log_action("Delete Course", user=user, model=Course, record_id=course_id, old_value=course.course_code)
    db.session.commit()
    return Outcome.success(True)


def delete_student(student_id, user=None):
    from results_portal.models import BacklogGroupCourse

    student = db.session.get(Student, student_id)
    if student is None:
        return reject(ErrorKind.NOT_FOUND, "Student not found")
    if student.results.count():
        return reject(ErrorKind.INTEGRITY, "Cannot delete student with existing results", reason=HAS_DEPENDENTS)

    BacklogGroupCourse.query.filter_by(student_id=student_id).delete(synchronize_session=False)
    StudentCourseRegistration.query.filter_by(student_id=student_id).delete(synchronize_session=False)
    db.session.delete(student)
    log_action("Delete Student", user=user, model=Student, record_id=student_id, old_value=student.roll_number)
    db.session.commit()
    return Outcome.success(True)
