# FILE: results_portal/utils.py
from datetime import date, datetime
from decimal import Decimal


def coerce_int(value):
    """Return value as a positive int, or None when it is not one (booleans included)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    # numpy integers coming out of pandas frames
    if hasattr(value, 'item') and not isinstance(value, (str, bytes)):
        return coerce_int(value.item())
    return None


def coerce_number(value):
    """Return value as a float, or None when it is not numeric (booleans included)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    if hasattr(value, 'item'):
        return coerce_number(value.item())
    return None


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'on')


def isoformat(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def generate_exam_schedule(entries):
    """
    Assign exam days to courses with greedy graph colouring.

    ``entries`` are dicts with ``student_id``, ``course_id``, ``course_code``
    and ``course_name``. Two courses sharing a student never get the same
    day. Courses are coloured by descending number of conflicts, ties broken
    by the course id as a string, each taking the smallest free day index.
    """
    course_map = {}
    student_courses = {}
    for entry in entries:
        course_id = entry['course_id']
        if course_id not in course_map:
            course_map[course_id] = {
                'id': course_id,
                'code': entry.get('course_code'),
                'name': entry.get('course_name'),
                'students': set(),
            }
        course_map[course_id]['students'].add(entry['student_id'])
        student_courses.setdefault(entry['student_id'], set()).add(course_id)

    adjacency = {course_id: set() for course_id in course_map}
    for courses in student_courses.values():
        courses = list(courses)
        for i, first in enumerate(courses):
            for second in courses[i + 1:]:
                adjacency[first].add(second)
                adjacency[second].add(first)

    ordered = sorted(course_map, key=lambda cid: (-len(adjacency[cid]), str(cid)))

    colours = {}
    for course_id in ordered:
        used = {colours[n] for n in adjacency[course_id] if n in colours}
        colour = 0
        while colour in used:
            colour += 1
        colours[course_id] = colour

    exam_days = {}
    for colour in sorted(set(colours.values())):
        exam_days[colour] = [
            {
                'id': course_map[cid]['id'],
                'code': course_map[cid]['code'],
                'name': course_map[cid]['name'],
                'students': sorted(course_map[cid]['students']),
            }
            for cid in course_map if colours[cid] == colour
        ]

    return {
        'examDays': exam_days,
        'numDays': len(exam_days),
        'courseColors': {str(cid): colour for cid, colour in colours.items()},
        'conflicts': {str(cid): sorted(neighbours) for cid, neighbours in adjacency.items()},
    }


def generate_exam_routine_data(schedule, exam_dates, entries):
    """Turn a schedule into dated routine rows; days without a supplied date are skipped."""
    routine = []
    for day_index, courses in schedule['examDays'].items():
        day_index = int(day_index)
        if day_index >= len(exam_dates) or not exam_dates[day_index]:
            continue
        exam_date = exam_dates[day_index]
        for course in courses:
            roll_numbers = sorted(
                entry['roll_number'] for entry in entries
                if entry['course_id'] == course['id'] and entry.get('roll_number')
            )
            routine.append({
                'courseCode': course['code'],
                'courseName': course['name'],
                'date': exam_date,
                'rollNumbers': ', '.join(roll_numbers),
            })

    return sorted(routine, key=lambda row: (row['date'], row['courseCode'] or ''))
