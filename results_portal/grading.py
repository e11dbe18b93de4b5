# FILE: results_portal/grading.py
"""
Grade table, effective-result resolution and SGPA/CGPA aggregation.

Everything here is a pure function over plain records so it can run on a
snapshot of fetched rows without touching the session.
"""
import enum
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, NamedTuple, Optional

PASS_MARK = 40
MIN_MARKS = 0
MAX_MARKS = 100

SEMESTER_ORDER = {'odd': 0, 'even': 1}


class GradePolicy(str, enum.Enum):
    REGULAR = 'regular'
    BACKLOG = 'backlog'


class Grade(NamedTuple):
    grade: str
    grade_point: float

    def to_dict(self):
        return {'grade': self.grade, 'gradePoint': self.grade_point}


# Inclusive lower bounds, best grade first.
GRADE_SCALE = (
    (80, Grade('A+', 4.00)),
    (75, Grade('A', 3.75)),
    (70, Grade('A-', 3.50)),
    (65, Grade('B+', 3.25)),
    (60, Grade('B', 3.00)),
    (55, Grade('B-', 2.75)),
    (50, Grade('C+', 2.50)),
    (45, Grade('C', 2.25)),
    (40, Grade('D', 2.00)),
)
FAIL_GRADE = Grade('F', 0.00)

# Highest grade a supplementary attempt can earn.
POLICY_CAPS = {
    GradePolicy.REGULAR: None,
    GradePolicy.BACKLOG: Grade('B+', 3.25),
}


def policy_for(is_backlog):
    return GradePolicy.BACKLOG if is_backlog else GradePolicy.REGULAR


def is_valid_marks(marks):
    if isinstance(marks, bool) or not isinstance(marks, (int, float, Decimal)):
        return False
    return MIN_MARKS <= marks <= MAX_MARKS


def grade_of(marks, policy=GradePolicy.REGULAR):
    """
    Map a mark out of 100 to a letter grade and grade point.

    Marks outside [0, 100] are rejected with ValueError; callers validate
    input before it is ever stored.
    """
    if not is_valid_marks(marks):
        raise ValueError(f"Marks must be between {MIN_MARKS} and {MAX_MARKS}, got {marks!r}")

    policy = GradePolicy(policy)
    cap = POLICY_CAPS[policy]
    for threshold, grade in GRADE_SCALE:
        if marks >= threshold:
            if cap is not None and grade.grade_point > cap.grade_point:
                return cap
            return grade
    return FAIL_GRADE


def is_passing(marks):
    return marks >= PASS_MARK


def round2(value):
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ResultRecord:
    """A snapshot of one stored result joined with the course columns grading needs."""
    id: int
    student_id: int
    course_id: int
    marks: float
    credits: float = 0.0
    is_backlog: bool = False
    published: bool = False
    backlog_group_id: Optional[int] = None
    course_code: str = ''
    course_name: str = ''
    year: int = 1
    semester: str = 'odd'
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, result):
        course = result.course
        return cls(
            id=result.id,
            student_id=result.student_id,
            course_id=result.course_id,
            marks=float(result.marks),
            credits=float(course.credits or 0),
            is_backlog=bool(result.is_backlog),
            published=bool(result.published),
            backlog_group_id=result.backlog_group_id,
            course_code=course.course_code,
            course_name=course.course_name,
            year=int(course.year),
            semester=course.semester,
            created_at=result.created_at,
        )

    @property
    def policy(self):
        return policy_for(self.is_backlog)

    @property
    def grade(self):
        return grade_of(self.marks, self.policy)

    @property
    def status(self):
        """Display label for a single attempt."""
        if self.is_backlog:
            return 'Cleared' if is_passing(self.marks) else 'Failed Again'
        return 'Passed' if is_passing(self.marks) else 'Failed'

    def to_dict(self):
        grade = self.grade
        return {
            'id': self.id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'course_code': self.course_code,
            'course_name': self.course_name,
            'year': self.year,
            'semester': self.semester,
            'credits': self.credits,
            'marks': self.marks,
            'published': self.published,
            'is_backlog': self.is_backlog,
            'backlog_group_id': self.backlog_group_id,
            'grade': grade.grade,
            'gradePoint': grade.grade_point,
            'status': self.status,
        }


def resolve_effective_results(all_results: Iterable[ResultRecord]) -> Dict[int, ResultRecord]:
    """
    Pick the one result per course that counts for aggregation.

    Regular attempts seed the map. A backlog attempt replaces the current
    entry only when its marks are strictly higher; on equal marks the
    earlier entry stays. Backlog attempts are considered in the order given.
    Filtering to published rows is the caller's job.
    """
    all_results = list(all_results)
    effective = {}
    for record in all_results:
        if not record.is_backlog:
            effective[record.course_id] = record

    for record in all_results:
        if not record.is_backlog:
            continue
        current = effective.get(record.course_id)
        if current is None or record.marks > current.marks:
            effective[record.course_id] = record
    return effective


def sort_for_display(records: Iterable[ResultRecord]) -> List[ResultRecord]:
    return sorted(records, key=lambda r: (r.year, SEMESTER_ORDER.get(r.semester, 99), r.course_code))


def semester_gpa(results) -> float:
    """
    Credit-weighted grade point average of one semester.

    Each entry needs ``marks``, ``credits`` and ``is_backlog``. Failing
    entries (grade point 0) and entries without credits are left out of
    both sums, so SGPA covers passed credits only.
    """
    total_credits = 0.0
    total_points = 0.0
    for entry in results:
        credits = float(entry.credits or 0)
        grade = grade_of(entry.marks, policy_for(entry.is_backlog))
        if grade.grade_point > 0 and credits > 0:
            total_credits += credits
            total_points += grade.grade_point * credits

    if total_credits == 0:
        return 0.0
    return round2(total_points / total_credits)


def overall_cgpa(semester_sgpas) -> float:
    """Unweighted mean of the per-semester SGPAs; every semester counts once."""
    sgpas = list(semester_sgpas)
    if not sgpas:
        return 0.0
    return round2(sum(sgpas) / len(sgpas))


def group_by_semester(records: Iterable[ResultRecord]):
    """Group records by (year, semester), ordered by year then odd before even."""
    groups = OrderedDict()
    for record in sort_for_display(records):
        groups.setdefault((record.year, record.semester), []).append(record)
    return groups


def cgpa_summary(effective_records: Iterable[ResultRecord]):
    """Build the ``{sgpas: [{year, semester, sgpa}], cgpa}`` view from effective results."""
    sgpas = [
        {'year': year, 'semester': semester, 'sgpa': semester_gpa(group)}
        for (year, semester), group in group_by_semester(effective_records).items()
    ]
    return {'sgpas': sgpas, 'cgpa': overall_cgpa(s['sgpa'] for s in sgpas)}
