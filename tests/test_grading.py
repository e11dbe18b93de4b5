"""
Grade table, effective-result resolution and SGPA/CGPA aggregation
"""
import pytest

from results_portal.grading import (Grade, GradePolicy, ResultRecord, cgpa_summary, grade_of, group_by_semester,
                                    overall_cgpa, resolve_effective_results, round2, semester_gpa)


def record(id, course_id, marks, is_backlog=False, credits=3.0, year=1, semester='odd', code=None):
    return ResultRecord(id=id, student_id=1, course_id=course_id, marks=marks, credits=credits,
                        is_backlog=is_backlog, published=True, course_code=code or f'C{course_id}',
                        course_name=f'Course {course_id}', year=year, semester=semester)


class TestGradeOf:

    @pytest.mark.parametrize('marks', [0, 10, 25.5, 39, 39.99])
    def test_below_forty_is_f(self, marks):
        assert grade_of(marks, GradePolicy.REGULAR) == Grade('F', 0.0)
        assert grade_of(marks, GradePolicy.BACKLOG) == Grade('F', 0.0)

    @pytest.mark.parametrize('marks', [80, 85, 99.5, 100])
    def test_eighty_and_above_is_a_plus(self, marks):
        assert grade_of(marks, GradePolicy.REGULAR) == Grade('A+', 4.0)

    @pytest.mark.parametrize('marks,expected', [
        (75, Grade('A', 3.75)),
        (70, Grade('A-', 3.5)),
        (65, Grade('B+', 3.25)),
        (60, Grade('B', 3.0)),
        (55, Grade('B-', 2.75)),
        (50, Grade('C+', 2.5)),
        (45, Grade('C', 2.25)),
        (40, Grade('D', 2.0)),
        (79.99, Grade('A', 3.75)),
    ])
    def test_regular_thresholds_are_inclusive_lower_bounds(self, marks, expected):
        assert grade_of(marks) == expected

    @pytest.mark.parametrize('marks', [65, 70, 75, 80, 100])
    def test_backlog_is_capped_at_b_plus(self, marks):
        assert grade_of(marks, GradePolicy.BACKLOG) == Grade('B+', 3.25)

    @pytest.mark.parametrize('marks', [40, 45, 50, 55, 60, 64.5])
    def test_backlog_matches_regular_below_the_cap(self, marks):
        assert grade_of(marks, GradePolicy.BACKLOG) == grade_of(marks, GradePolicy.REGULAR)

    def test_policy_accepts_plain_string(self):
        assert grade_of(90, 'backlog').grade == 'B+'

    @pytest.mark.parametrize('marks', [-1, 100.5, True, None, '50'])
    def test_out_of_range_marks_are_rejected(self, marks):
        with pytest.raises(ValueError):
            grade_of(marks)

    def test_to_dict_uses_camel_case_grade_point(self):
        assert grade_of(55).to_dict() == {'grade': 'B-', 'gradePoint': 2.75}


class TestResolveEffectiveResults:

    def test_regular_results_seed_the_map(self):
        effective = resolve_effective_results([record(1, 10, 72), record(2, 11, 30)])
        assert {cid: r.id for cid, r in effective.items()} == {10: 1, 11: 2}

    def test_higher_backlog_replaces_regular(self):
        regular = record(1, 10, 30)
        backlog = record(2, 10, 45, is_backlog=True)
        effective = resolve_effective_results([regular, backlog])
        assert effective[10] is backlog

    def test_lower_backlog_keeps_regular(self):
        regular = record(1, 10, 35)
        backlog = record(2, 10, 30, is_backlog=True)
        effective = resolve_effective_results([backlog, regular])
        assert effective[10] is regular

    def test_equal_marks_keep_existing_entry(self):
        regular = record(1, 10, 30)
        first_backlog = record(2, 10, 36, is_backlog=True)
        second_backlog = record(3, 10, 36, is_backlog=True)
        effective = resolve_effective_results([regular, first_backlog, second_backlog])
        assert effective[10] is first_backlog

    def test_backlog_without_regular_is_used(self):
        backlog = record(5, 10, 20, is_backlog=True)
        assert resolve_effective_results([backlog])[10] is backlog

    def test_best_of_several_backlog_attempts_wins(self):
        results = [record(1, 10, 20), record(2, 10, 35, is_backlog=True), record(3, 10, 52, is_backlog=True),
                   record(4, 10, 41, is_backlog=True)]
        assert resolve_effective_results(results)[10].id == 3

    def test_empty_input(self):
        assert resolve_effective_results([]) == {}


class TestSemesterGpa:

    def test_empty_is_zero(self):
        assert semester_gpa([]) == 0

    def test_failing_entries_are_excluded(self):
        results = [record(1, 10, 80, credits=3), record(2, 11, 20, credits=4)]
        assert semester_gpa(results) == 4.0

    def test_all_failing_is_zero(self):
        assert semester_gpa([record(1, 10, 10), record(2, 11, 39)]) == 0

    def test_credit_weighting(self):
        # (4.00 * 3 + 3.00 * 1.5) / 4.5 = 3.6667
        results = [record(1, 10, 85, credits=3), record(2, 11, 61, credits=1.5)]
        assert semester_gpa(results) == 3.67

    def test_backlog_entries_use_capped_scale(self):
        assert semester_gpa([record(1, 10, 90, is_backlog=True)]) == 3.25

    def test_zero_credit_entries_are_ignored(self):
        assert semester_gpa([record(1, 10, 90, credits=0), record(2, 11, 55, credits=3)]) == 2.75


class TestOverallCgpa:

    def test_simple_mean(self):
        assert overall_cgpa([3.0, 4.0]) == 3.5

    def test_empty_is_zero(self):
        assert overall_cgpa([]) == 0

    def test_not_credit_weighted(self):
        assert overall_cgpa([2.0, 3.0, 3.5]) == 2.83

    def test_round_half_up(self):
        assert round2(2.675) == 2.68
        assert round2(3.125) == 3.13


class TestSummary:

    def test_groups_ordered_by_year_then_odd_before_even(self):
        records = [
            record(1, 10, 80, year=2, semester='odd'),
            record(2, 11, 70, year=1, semester='even'),
            record(3, 12, 60, year=1, semester='odd'),
        ]
        assert list(group_by_semester(records)) == [(1, 'odd'), (1, 'even'), (2, 'odd')]

    def test_cgpa_summary_shape(self):
        records = [
            record(1, 10, 80, year=1, semester='odd'),
            record(2, 11, 60, year=1, semester='even'),
        ]
        assert cgpa_summary(records) == {
            'sgpas': [
                {'year': 1, 'semester': 'odd', 'sgpa': 4.0},
                {'year': 1, 'semester': 'even', 'sgpa': 3.0},
            ],
            'cgpa': 3.5,
        }

    def test_failed_semester_counts_as_zero(self):
        records = [record(1, 10, 80, year=1, semester='odd'), record(2, 11, 20, year=1, semester='even')]
        assert cgpa_summary(records)['cgpa'] == 2.0

    def test_status_labels(self):
        assert record(1, 10, 50).status == 'Passed'
        assert record(1, 10, 30).status == 'Failed'
        assert record(1, 10, 50, is_backlog=True).status == 'Cleared'
        assert record(1, 10, 30, is_backlog=True).status == 'Failed Again'
