"""
Helpers: value coercion and exam routine generation
"""
import numpy as np
import pytest

from results_portal.updates import UNSET, ResultUpdate, CourseUpdate
from results_portal.utils import (coerce_int, coerce_number, generate_exam_routine_data, generate_exam_schedule,
                                  parse_bool)


class TestCoercion:

    @pytest.mark.parametrize('value,expected', [
        (3, 3), ('12', 12), (' 7 ', 7), (4.0, 4), (np.int64(9), 9),
        (0, None), (-2, None), (True, None), (None, None), ('x', None), (2.5, None),
    ])
    def test_coerce_int(self, value, expected):
        assert coerce_int(value) == expected

    @pytest.mark.parametrize('value,expected', [
        (55, 55.0), ('39.5', 39.5), (np.float64(71.25), 71.25), (False, None), ('', None), ([], None),
    ])
    def test_coerce_number(self, value, expected):
        assert coerce_number(value) == expected

    @pytest.mark.parametrize('value,expected', [
        ('yes', True), ('TRUE', True), ('0', False), (1, True), (None, False), ('no', False),
    ])
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected


class TestPartialUpdate:

    def test_from_payload_ignores_unknown_keys(self):
        update = ResultUpdate.from_payload({'marks': 50, 'student_id': 3})
        assert update.changes() == {'marks': 50}
        assert update.published is UNSET

    def test_none_is_a_real_value(self):
        assert ResultUpdate.from_payload({'backlog_group_id': None}).changes() == {'backlog_group_id': None}

    def test_empty(self):
        assert CourseUpdate().is_empty()

    def test_apply_returns_diff(self):
        class Row:
            course_name = 'Old'
            credits = 3.0

        row = Row()
        diff = CourseUpdate(course_name='New', credits=3.0).apply_to(row)
        assert diff == {'course_name': {'old': 'Old', 'new': 'New'}}
        assert row.course_name == 'New'


def entries(*pairs):
    return [
        {'student_id': s, 'roll_number': f'R{s}', 'course_id': c, 'course_code': f'C{c}', 'course_name': f'Course {c}'}
        for s, c in pairs
    ]


class TestExamSchedule:

    def test_independent_courses_share_one_day(self):
        schedule = generate_exam_schedule(entries((1, 10), (2, 11), (3, 12)))
        assert schedule['numDays'] == 1
        assert set(schedule['courseColors'].values()) == {0}

    def test_triangle_needs_three_days(self):
        schedule = generate_exam_schedule(entries((1, 10), (1, 11), (1, 12)))
        assert schedule['numDays'] == 3
        assert sorted(schedule['courseColors'].values()) == [0, 1, 2]

    def test_highest_degree_first_then_id_string(self):
        # 11 conflicts with 10 and 12; 10 and 12 are independent
        schedule = generate_exam_schedule(entries((1, 10), (1, 11), (2, 11), (2, 12)))
        assert schedule['courseColors'] == {'11': 0, '10': 1, '12': 1}
        assert schedule['conflicts']['11'] == [10, 12]

    def test_empty(self):
        schedule = generate_exam_schedule([])
        assert schedule['numDays'] == 0
        assert schedule['examDays'] == {}

    def test_routine_rows_sorted_by_date_then_code(self):
        data = entries((1, 10), (1, 11), (2, 11), (2, 12))
        schedule = generate_exam_schedule(data)
        routine = generate_exam_routine_data(schedule, ['2024-05-02', '2024-05-01'], data)
        assert [(r['date'], r['courseCode']) for r in routine] == [
            ('2024-05-01', 'C10'), ('2024-05-01', 'C12'), ('2024-05-02', 'C11'),
        ]
        assert routine[2]['rollNumbers'] == 'R1, R2'

    def test_days_without_dates_are_skipped(self):
        data = entries((1, 10), (1, 11))
        schedule = generate_exam_schedule(data)
        routine = generate_exam_routine_data(schedule, ['2024-05-01'], data)
        assert len(routine) == 1
