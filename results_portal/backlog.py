# FILE: results_portal/backlog.py
"""
Backlog group lifecycle.

An admin gathers failing (student, course) pairs into a group, students opt
in while the group is open (at most MAX_BACKLOG_COURSES_PER_GROUP per
group) and results recorded against the group are locked once graded.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func, or_
from sqlalchemy.orm import joinedload

from results_portal import db
from results_portal.grading import is_passing
from results_portal.models import BacklogGroup, BacklogGroupCourse, Course, Result, Student
from results_portal.outcomes import (ErrorKind, Outcome, BACKLOG_CAP_REACHED, HAS_DEPENDENTS, NO_FAILED_ATTEMPT)
from results_portal.services import (can_add_result, effective_results_for_student, log_action, reject,
                                     commit_or_conflict)
from results_portal.utils import coerce_int, generate_exam_schedule, generate_exam_routine_data, isoformat

MAX_BACKLOG_COURSES_PER_GROUP = 5
CAP_MESSAGE = f"Student cannot register for more than {MAX_BACKLOG_COURSES_PER_GROUP} backlog courses in this group"


def _selection_value(item, camel, snake):
    return item.get(camel) if item.get(camel) is not None else item.get(snake)


def _clean_selections(selections):
    """
    Normalise [{studentId, courseId}] into unique (student_id, course_id)
    tuples, keeping order. snake_case item keys are accepted too.
    """
    pairs = []
    for item in selections or []:
        if not isinstance(item, dict):
            return None
        student_id = coerce_int(_selection_value(item, 'studentId', 'student_id'))
        course_id = coerce_int(_selection_value(item, 'courseId', 'course_id'))
        if student_id is None or course_id is None:
            return None
        if (student_id, course_id) not in pairs:
            pairs.append((student_id, course_id))
    return pairs


def _unknown_pairs(pairs):
    student_ids = {s for s, _ in pairs}
    course_ids = {c for _, c in pairs}
    found_students = {s.id for s in Student.query.filter(Student.id.in_(student_ids)).all()}
    found_courses = {c.id for c in Course.query.filter(Course.id.in_(course_ids)).all()}
    return [p for p in pairs if p[0] not in found_students or p[1] not in found_courses]


def backlog_eligibility(student_id, course_id):
    """
    A pair may sit in a backlog group only while the student is enrolled and
    the latest attempt failed. Returns None when eligible, else the failure.
    """
    outcome = can_add_result(student_id, course_id)
    if not outcome.ok:
        return outcome
    if not outcome.value.is_backlog:
        return Outcome.failure(ErrorKind.ELIGIBILITY, "Course has no failed result to retake as backlog",
                               reason=NO_FAILED_ATTEMPT)
    return None


def _failed_selection(pair, outcome):
    return {'student_id': pair[0], 'course_id': pair[1], 'error': outcome.message, 'reason': outcome.reason}


def _membership(group_id, student_id, course_id, lock=False):
    query = BacklogGroupCourse.query.filter_by(group_id=group_id, student_id=student_id, course_id=course_id)
    if lock:
        query = query.with_for_update()
    return query.first()


def _graded_in_group(group_id, student_id, course_id):
    return Result.query.filter_by(student_id=student_id, course_id=course_id,
                                  backlog_group_id=group_id, is_backlog=True).first() is not None


def serialize_group(group, total_courses=None, registered_courses=None):
    data = {
        'id': group.id,
        'name': group.name,
        'is_open': group.is_open,
        'created_at': isoformat(group.created_at),
    }
    if total_courses is not None:
        data['total_courses'] = total_courses
        data['registered_courses'] = registered_courses or 0
    return data


def serialize_membership(membership):
    student = membership.student
    course = membership.course
    return {
        'id': membership.id,
        'group_id': membership.group_id,
        'student_id': membership.student_id,
        'course_id': membership.course_id,
        'is_registered': membership.is_registered,
        'registered_at': isoformat(membership.registered_at),
        'student_name': student.name,
        'roll_number': student.roll_number,
        'registration_number': student.registration_number,
        'academic_session': student.academic_session,
        'department_code': student.department.code if student.department else None,
        'course_code': course.course_code,
        'course_name': course.course_name,
        'year': course.year,
        'semester': course.semester,
        'credits': course.credits,
    }


# --- Group administration ---

def create_backlog_group(name, selections, user=None):
    """Create a group and its unregistered memberships in one transaction."""
    name = (name or '').strip() if isinstance(name, str) else ''
    if not name:
        return reject(ErrorKind.VALIDATION, "Group name is required")
    pairs = _clean_selections(selections)
    if not pairs:
        return reject(ErrorKind.VALIDATION, "Course selections are required")
    unknown = _unknown_pairs(pairs)
    if unknown:
        return reject(ErrorKind.NOT_FOUND, f"Unknown student or course in selection: {unknown[0]}")
    for student_id, course_id in pairs:
        ineligible = backlog_eligibility(student_id, course_id)
        if ineligible is not None:
            return reject(ErrorKind.ELIGIBILITY,
                          f"Student {student_id} cannot take course {course_id} as backlog: {ineligible.message}",
                          reason=ineligible.reason)

    try:
        group = BacklogGroup(name=name, is_open=False)
        db.session.add(group)
        db.session.flush()
        for student_id, course_id in pairs:
            db.session.add(BacklogGroupCourse(group_id=group.id, student_id=student_id, course_id=course_id))
        log_action("Create Backlog Group", user=user, model=BacklogGroup, record_id=group.id,
                   new_value={'name': name, 'memberships': len(pairs)})
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating backlog group '{name}': {e}", exc_info=True)
        raise

    current_app.logger.info(f"Backlog group {group.id} '{name}' created with {len(pairs)} courses")
    return Outcome.success({'group': serialize_group(group), 'addedCount': len(pairs)})


def add_to_backlog_group(group_id, selections, user=None):
    """Add memberships to an existing group; triples already present are skipped."""
    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog group not found")
    pairs = _clean_selections(selections)
    if not pairs:
        return reject(ErrorKind.VALIDATION, "Course selections are required")
    unknown = _unknown_pairs(pairs)
    if unknown:
        return reject(ErrorKind.NOT_FOUND, f"Unknown student or course in selection: {unknown[0]}")

    added, skipped, failed = 0, 0, []
    try:
        for student_id, course_id in pairs:
            if _membership(group.id, student_id, course_id) is not None:
                skipped += 1
                continue
            ineligible = backlog_eligibility(student_id, course_id)
            if ineligible is not None:
                failed.append(_failed_selection((student_id, course_id), ineligible))
                continue
            db.session.add(BacklogGroupCourse(group_id=group.id, student_id=student_id, course_id=course_id))
            added += 1
        if added:
            log_action("Add To Backlog Group", user=user, model=BacklogGroup, record_id=group.id,
                       new_value={'added': added})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error adding to backlog group {group_id}: {e}", exc_info=True)
        raise

    conflict = commit_or_conflict("Some selections were added concurrently; please retry")
    if conflict:
        return conflict
    current_app.logger.info(f"Added {added} of {len(pairs)} courses to backlog group {group.id}")
    if failed:
        current_app.logger.warning(f"{len(failed)} selection(s) rejected for backlog group {group.id}")
    return Outcome.success({'group': serialize_group(group), 'addedCount': added,
                            'skippedCount': skipped, 'failed': failed})


def rename_backlog_group(group_id, name, user=None):
    if not isinstance(name, str) or not name.strip():
        return reject(ErrorKind.VALIDATION, "name must be a non-empty string")
    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog group not found")
    old_name, group.name = group.name, name.strip()
    log_action("Rename Backlog Group", user=user, model=BacklogGroup, record_id=group.id,
               old_value=old_name, new_value=group.name)
    db.session.commit()
    return Outcome.success(serialize_group(group))


def toggle_group_open(group_id, is_open, user=None):
    if not isinstance(is_open, bool):
        return reject(ErrorKind.VALIDATION, "isOpen must be a boolean")
    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog group not found")
    group.is_open = is_open
    log_action("Open Backlog Group" if is_open else "Close Backlog Group", user=user,
               model=BacklogGroup, record_id=group.id)
    db.session.commit()
    current_app.logger.info(f"Backlog group {group.id} is now {'open' if is_open else 'closed'}")
    return Outcome.success(serialize_group(group))


def delete_backlog_group(group_id, user=None):
    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog group not found")

    graded = db.session.query(func.count(Result.id)).join(
        BacklogGroupCourse,
        (BacklogGroupCourse.group_id == Result.backlog_group_id)
        & (BacklogGroupCourse.student_id == Result.student_id)
        & (BacklogGroupCourse.course_id == Result.course_id)
    ).filter(
        BacklogGroupCourse.group_id == group.id,
        BacklogGroupCourse.is_registered.is_(True),
        Result.is_backlog.is_(True),
    ).scalar()
    if graded:
        return reject(ErrorKind.INTEGRITY,
                      f"Cannot delete backlog group. {graded} registered course(s) have backlog results. "
                      "Delete the results first.", reason=HAS_DEPENDENTS)

    name = group.name
    BacklogGroupCourse.query.filter_by(group_id=group.id).delete(synchronize_session=False)
    db.session.delete(group)
    log_action("Delete Backlog Group", user=user, model=BacklogGroup, record_id=group_id, old_value=name)
    db.session.commit()
    current_app.logger.info(f"Backlog group {group_id} '{name}' deleted")
    return Outcome.success(True)


def list_backlog_groups(search=None):
    registered = func.sum(case((BacklogGroupCourse.is_registered.is_(True), 1), else_=0))
    query = db.session.query(BacklogGroup, func.count(BacklogGroupCourse.id), registered) \
        .outerjoin(BacklogGroupCourse, BacklogGroupCourse.group_id == BacklogGroup.id)
    if search:
        query = query.filter(BacklogGroup.name.ilike(f"%{search}%"))
    rows = query.group_by(BacklogGroup.id) \
        .order_by(BacklogGroup.created_at.desc(), BacklogGroup.id.desc()).all()
    return [serialize_group(group, total, int(reg or 0)) for group, total, reg in rows]


def _memberships_of(group_id, registered_only=False):
    query = BacklogGroupCourse.query.join(Student, BacklogGroupCourse.student_id == Student.id) \
        .join(Course, BacklogGroupCourse.course_id == Course.id) \
        .options(joinedload(BacklogGroupCourse.student).joinedload(Student.department),
                 joinedload(BacklogGroupCourse.course)) \
        .filter(BacklogGroupCourse.group_id == group_id)
    if registered_only:
        query = query.filter(BacklogGroupCourse.is_registered.is_(True))
    return query.order_by(Student.roll_number, Course.course_code).all()


def backlog_group_details(group_id):
    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Backlog group not found")
    return Outcome.success({
        'group': serialize_group(group),
        'courses': [serialize_membership(m) for m in _memberships_of(group.id)],
    })


# --- Membership registration ---

def register_for_backlog_course(group_id, student_id, course_id, user=None):
    """
    Opt a student into one membership of a group. The caller checks that the
    group is open; this enforces the per-group cap.
    """
    membership = _membership(group_id, student_id, course_id, lock=True)
    if membership is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog course not found in this group")
    if membership.is_registered:
        db.session.rollback()
        return Outcome.success(membership)
    # The course may have been passed in another group since the membership was added
    ineligible = backlog_eligibility(student_id, course_id)
    if ineligible is not None:
        return reject(ineligible.error, ineligible.message, reason=ineligible.reason)

    # Lock the student's memberships in the group so the count stays valid until commit
    rows = BacklogGroupCourse.query.filter_by(group_id=group_id, student_id=student_id) \
        .with_for_update().all()
    registered = sum(1 for row in rows if row.is_registered)
    if registered >= MAX_BACKLOG_COURSES_PER_GROUP:
        return reject(ErrorKind.ELIGIBILITY, CAP_MESSAGE, reason=BACKLOG_CAP_REACHED)

    membership.is_registered = True
    membership.registered_at = datetime.utcnow()
    log_action("Register Backlog Course", user=user, model=BacklogGroupCourse, record_id=membership.id,
               new_value={'group_id': group_id, 'student_id': student_id, 'course_id': course_id})
    db.session.commit()
    current_app.logger.info(f"Student {student_id} registered for backlog course {course_id} in group {group_id}")
    return Outcome.success(membership)


def unregister_backlog_course(group_id, student_id, course_id, user=None):
    membership = _membership(group_id, student_id, course_id, lock=True)
    if membership is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog course not found in this group")
    if not membership.is_registered:
        db.session.rollback()
        return Outcome.success(membership)
    if _graded_in_group(group_id, student_id, course_id):
        return reject(ErrorKind.INTEGRITY,
                      "Cannot unregister from backlog course that has an existing result. Delete the result first.",
                      reason=HAS_DEPENDENTS)

    membership.is_registered = False
    membership.registered_at = None
    log_action("Unregister Backlog Course", user=user, model=BacklogGroupCourse, record_id=membership.id,
               old_value={'group_id': group_id, 'student_id': student_id, 'course_id': course_id})
    db.session.commit()
    current_app.logger.info(f"Student {student_id} unregistered from backlog course {course_id} in group {group_id}")
    return Outcome.success(membership)


def set_backlog_course_registration(group_id, student_id, course_id, is_registered, user=None):
    """Admin-side toggle; same cap and result lock as the student path."""
    if not isinstance(is_registered, bool):
        return reject(ErrorKind.VALIDATION, "isRegistered must be a boolean")
    if is_registered:
        return register_for_backlog_course(group_id, student_id, course_id, user=user)
    return unregister_backlog_course(group_id, student_id, course_id, user=user)


def delete_backlog_course(group_id, student_id, course_id, user=None):
    membership = _membership(group_id, student_id, course_id)
    if membership is None:
        return reject(ErrorKind.NOT_FOUND, "Backlog course not found in this group")
    if membership.is_registered:
        return reject(ErrorKind.INTEGRITY, "Cannot delete a course that has been registered",
                      reason=HAS_DEPENDENTS)
    db.session.delete(membership)
    log_action("Delete Backlog Course", user=user, model=BacklogGroupCourse, record_id=membership.id,
               old_value={'group_id': group_id, 'student_id': student_id, 'course_id': course_id})
    db.session.commit()
    return Outcome.success(True)


def is_registered_in_backlog_group(group_id, student_id, course_id):
    return BacklogGroupCourse.query.filter_by(
        group_id=group_id, student_id=student_id, course_id=course_id, is_registered=True
    ).first() is not None


# --- Student views ---

def available_backlog_courses_for_student(student_id):
    """Memberships in open groups, grouped by group."""
    memberships = BacklogGroupCourse.query.join(BacklogGroup).join(Course, BacklogGroupCourse.course_id == Course.id) \
        .options(joinedload(BacklogGroupCourse.group), joinedload(BacklogGroupCourse.course)) \
        .filter(BacklogGroupCourse.student_id == student_id, BacklogGroup.is_open.is_(True)) \
        .order_by(BacklogGroup.id, Course.year, Course.semester, Course.course_code).all()

    groups = {}
    for membership in memberships:
        entry = groups.setdefault(membership.group_id, {
            'id': membership.group_id,
            'name': membership.group.name,
            'registeredCount': 0,
            'maxCourses': MAX_BACKLOG_COURSES_PER_GROUP,
            'courses': [],
        })
        if membership.is_registered:
            entry['registeredCount'] += 1
        entry['courses'].append({
            'id': membership.course_id,
            'course_code': membership.course.course_code,
            'course_name': membership.course.course_name,
            'year': membership.course.year,
            'semester': membership.course.semester,
            'credits': membership.course.credits,
            'is_registered': membership.is_registered,
            'registered_at': isoformat(membership.registered_at),
        })
    return list(groups.values())


def student_backlog_registrations(student_id):
    memberships = BacklogGroupCourse.query.join(BacklogGroup) \
        .options(joinedload(BacklogGroupCourse.group), joinedload(BacklogGroupCourse.course)) \
        .filter(BacklogGroupCourse.student_id == student_id, BacklogGroupCourse.is_registered.is_(True)) \
        .order_by(BacklogGroupCourse.registered_at.desc()).all()
    return [
        {
            'group_id': m.group_id,
            'group_name': m.group.name,
            'is_open': m.group.is_open,
            'course_id': m.course_id,
            'course_code': m.course.course_code,
            'course_name': m.course.course_name,
            'credits': m.course.credits,
            'registered_at': isoformat(m.registered_at),
        }
        for m in memberships
    ]


def available_groups_for_student_course(student_id, course_id):
    """Groups in which the student has opted in for this course; used when entering a backlog result."""
    groups = BacklogGroup.query.join(BacklogGroupCourse).filter(
        BacklogGroupCourse.student_id == student_id,
        BacklogGroupCourse.course_id == course_id,
        BacklogGroupCourse.is_registered.is_(True),
    ).order_by(BacklogGroup.created_at.desc()).all()
    return [serialize_group(g) for g in groups]


# --- Candidates & exam routine ---

def backlog_candidates(department_id=None):
    """
    Failing effective (student, course) pairs from published results.

    A pair is left out while it is pending: an ungraded membership in an
    open group, or one the student has registered for.
    """
    query = db.session.query(Result.student_id).filter(Result.published.is_(True)).distinct()
    if department_id:
        query = query.join(Student).filter(Student.department_id == department_id)
    student_ids = [row[0] for row in query.all()]

    pending_rows = db.session.query(BacklogGroupCourse.student_id, BacklogGroupCourse.course_id) \
        .join(BacklogGroup, BacklogGroup.id == BacklogGroupCourse.group_id) \
        .outerjoin(Result,
                   (Result.backlog_group_id == BacklogGroupCourse.group_id)
                   & (Result.student_id == BacklogGroupCourse.student_id)
                   & (Result.course_id == BacklogGroupCourse.course_id)
                   & Result.is_backlog.is_(True)) \
        .filter(Result.id.is_(None),
                or_(BacklogGroup.is_open.is_(True), BacklogGroupCourse.is_registered.is_(True))) \
        .distinct().all()
    pending = {(student_id, course_id) for student_id, course_id in pending_rows}

    candidates = []
    for student in Student.query.filter(Student.id.in_(student_ids)).order_by(Student.roll_number).all():
        for record in effective_results_for_student(student.id):
            if is_passing(record.marks) or (student.id, record.course_id) in pending:
                continue
            candidates.append({
                'student_id': student.id,
                'student_name': student.name,
                'roll_number': student.roll_number,
                'course_id': record.course_id,
                'course_code': record.course_code,
                'course_name': record.course_name,
                'year': record.year,
                'semester': record.semester,
                'marks': record.marks,
                'is_backlog': record.is_backlog,
            })
    return candidates


def group_exam_routine(group_id, exam_dates=None):
    """Schedule the group's registered courses so no student sits two exams on one day."""
    group = db.session.get(BacklogGroup, group_id)
    if group is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Backlog group not found")
    memberships = _memberships_of(group.id, registered_only=True)
    if not memberships:
        return Outcome.failure(ErrorKind.VALIDATION, "No registered courses found in this backlog group")

    entries = [
        {
            'student_id': m.student_id,
            'roll_number': m.student.roll_number,
            'course_id': m.course_id,
            'course_code': m.course.course_code,
            'course_name': m.course.course_name,
        }
        for m in memberships
    ]
    schedule = generate_exam_schedule(entries)
    payload = {
        'schedule': schedule,
        'groupName': group.name,
        'totalCourses': len(schedule['courseColors']),
        'totalStudents': len({e['student_id'] for e in entries}),
    }
    if exam_dates:
        payload['routine'] = generate_exam_routine_data(schedule, exam_dates, entries)
    return Outcome.success(payload)
