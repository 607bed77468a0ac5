"""
Tests for engine/ranking.py — ordinal lookup, competition table, palmarès.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from engine.aggregation import Policy
from engine.models import RANK_COLUMNS, Student, StudentRanks, Subject, UnknownStudentError
from engine.ranking import (
    RankTables,
    class_ranks,
    compute_palmares,
    rank_palmares,
    student_ranks,
)


@pytest.fixture
def tie_snapshot(make_snapshot, math20):
    """Two students level on every column, a third below them."""
    students = [
        Student(id=1, last_name="Mukendi", first_name="Paul"),
        Student(id=2, last_name="Kabila", first_name="Anne"),
        Student(id=3, last_name="Zola", first_name="Eve"),
    ]
    full = {"P1": 15, "P2": 15, "EXAM1": 15, "P3": 15, "P4": 15, "EXAM2": 15}
    low = {"P1": 5, "P2": 5, "EXAM1": 5, "P3": 5, "P4": 5, "EXAM2": 5}
    return make_snapshot(
        students=students,
        subjects=[math20],
        grades={(1, 10): full, (2, 10): dict(full), (3, 10): low},
    )


class TestStudentRanks:

    def test_scenario_strict_lookup(self, scenario):
        result = student_ranks(scenario, 1)
        assert result["total_students"] == 3
        assert result["ranks"].tot1 == 1
        assert student_ranks(scenario, 2)["ranks"].tot1 == 2

    def test_incomplete_student_is_unranked_under_strict(self, scenario):
        ranks = student_ranks(scenario, 3)["ranks"]
        assert ranks.p1 is None
        assert ranks.tot1 is None
        assert ranks.tg is None
        # P2 is graded for everyone: 16, 10, 12.
        assert ranks.p2 == 2

    def test_unknown_student(self, scenario):
        with pytest.raises(UnknownStudentError):
            student_ranks(scenario, 99)

    def test_ties_get_consecutive_positions(self, tie_snapshot):
        first = student_ranks(tie_snapshot, 1)["ranks"]
        second = student_ranks(tie_snapshot, 2)["ranks"]
        # Regression lock: lookup is positional, not tie-aware.
        assert abs(first.tg - second.tg) == 1
        assert {first.tg, second.tg} == {1, 2}
        assert student_ranks(tie_snapshot, 3)["ranks"].tg == 3

    def test_ties_follow_input_order(self, tie_snapshot):
        assert student_ranks(tie_snapshot, 1)["ranks"].tg == 1
        assert student_ranks(tie_snapshot, 2)["ranks"].tg == 2


class TestClassRanks:

    def test_scenario_lenient_table(self, scenario):
        result = class_ranks(scenario)
        ranks = result["ranks"]
        assert result["total_students"] == 3
        assert ranks[1].p1 == 1
        assert ranks[2].p1 == 2
        # C's missing P1 counts as 0 here: last, but ranked.
        assert ranks[3].p1 == 3
        assert ranks[3].tot1 == 3

    def test_competition_ranking_on_ties(self, tie_snapshot):
        ranks = class_ranks(tie_snapshot)["ranks"]
        assert ranks[1].tg == ranks[2].tg == 1
        # Two students strictly above → rank 3, not 2.
        assert ranks[3].tg == 3

    def test_lookup_and_table_disagree_on_ties(self, tie_snapshot):
        table = class_ranks(tie_snapshot)["ranks"]
        lookup = student_ranks(tie_snapshot, 2)["ranks"]
        assert table[2].tg == 1
        assert lookup.tg == 2

    def test_strict_table_leaves_unranked_out(self, scenario):
        ranks = class_ranks(scenario, policy=Policy.STRICT)["ranks"]
        assert ranks[3].p1 is None
        assert ranks[1].p1 == 1 and ranks[2].p1 == 2

    def test_empty_class(self, make_snapshot, math20):
        result = class_ranks(make_snapshot(subjects=[math20]))
        assert result == {"ranks": {}, "total_students": 0}

    def test_every_column_ranked(self, scenario):
        ranks = class_ranks(scenario)["ranks"][1]
        assert isinstance(ranks, StudentRanks)
        assert set(ranks.as_dict()) == set(RANK_COLUMNS)

    def test_idempotent(self, scenario):
        first = class_ranks(scenario)
        second = class_ranks(scenario)
        assert first == second
        assert student_ranks(scenario, 2) == student_ranks(scenario, 2)

    def test_shared_tables_match_fresh_computation(self, scenario):
        tables = RankTables(scenario, Policy.LENIENT)
        for s in scenario.students:
            assert class_ranks(scenario, tables=tables)["ranks"][s.id] == class_ranks(scenario)["ranks"][s.id]


class TestPalmares:

    def test_scenario_semester(self, scenario):
        ranked = rank_palmares(scenario, "SEM1")
        assert [r.student.id for r in ranked] == [1, 2, 3]
        a, b, c = ranked
        assert (a.rank, a.percentage, a.mention) == (1, 90.0, "E")
        assert (b.rank, b.percentage, b.mention) == (2, 50.0, "B")
        assert c.is_unranked and c.rank is None and c.mention is None

    def test_equal_percentages_sorted_by_name(self, tie_snapshot):
        ranked = rank_palmares(tie_snapshot, "ANNUAL")
        # Kabila before Mukendi, both 75 %.
        assert [r.student.id for r in ranked] == [2, 1, 3]
        assert [r.rank for r in ranked] == [1, 2, 3]

    def test_name_order_ignores_accents_and_case(self, make_snapshot, math20):
        students = [
            Student(id=1, last_name="élonga"),
            Student(id=2, last_name="Ebale"),
        ]
        grades = {(1, 10): {"P1": 10}, (2, 10): {"P1": 10}}
        ranked = rank_palmares(make_snapshot(students=students, subjects=[math20], grades=grades), "P1")
        assert [r.student.id for r in ranked] == [2, 1]

    def test_unranked_keep_class_order_after_ranked(self, make_snapshot, three_students, math20):
        grades = {(2, 10): {"P1": 8}}
        ranked = rank_palmares(make_snapshot(students=three_students, subjects=[math20], grades=grades), "P1")
        assert [r.student.id for r in ranked] == [2, 1, 3]
        assert [r.is_unranked for r in ranked] == [False, True, True]

    def test_failed_subjects_recorded(self, make_snapshot, three_students, math20):
        french = Subject(id=11, name="Français", code="", max_p1=10)
        grades = {(1, 10): {"P1": 20}, (1, 11): {"P1": 4}}
        ranked = rank_palmares(make_snapshot(students=three_students[:1], subjects=[math20, french],
                                             grades=grades), "P1")
        assert ranked[0].failed_subjects == ("Français",)
        assert ranked[0].percentage == 80.0

    def test_exclude_abandoned(self, make_snapshot, math20):
        students = [Student(id=1, last_name="A"), Student(id=2, last_name="B", is_abandoned=True)]
        grades = {(1, 10): {"P1": 10}, (2, 10): {"P1": 20}}
        snap = make_snapshot(students=students, subjects=[math20], grades=grades)
        assert [r.student.id for r in rank_palmares(snap, "P1")] == [2, 1]
        assert [r.student.id for r in rank_palmares(snap, "P1", exclude_abandoned=True)] == [1]

    def test_primary_maxima_in_palmares(self, make_snapshot, primary_subject):
        snap = make_snapshot(level="8ème", students=[Student(id=1, last_name="X")],
                             subjects=[primary_subject],
                             grades={(1, 20): {"P1": 10, "P2": 10, "EXAM1": 20}})
        ranked = rank_palmares(snap, "SEM1")
        assert ranked[0].subject_details[0].max_points == 40
        assert ranked[0].percentage == 100.0

    def test_unknown_selection(self, scenario):
        with pytest.raises(ValueError):
            rank_palmares(scenario, "SEM9")

    def test_empty_class(self, make_snapshot, math20):
        assert rank_palmares(make_snapshot(subjects=[math20])) == []


class TestComputePalmares:

    def test_rows_and_summary(self, scenario):
        result = compute_palmares(scenario, "sem1")
        assert result["selection"] == "SEM1"
        assert result["curriculum"] == "secondary"
        assert [row["rank"] for row in result["rows"]] == [1, 2, None]
        assert result["rows"][2]["observation"]["code"] == "UNRANKED"
        assert result["summary"] == {"total": 3, "passed": 2, "failed": 0, "unranked": 1}

    def test_retake_counted_as_failed(self, make_snapshot, three_students, math20):
        grades = {(1, 10): {"P1": 9}, (2, 10): {"P1": 15}, (3, 10): {"P1": 12}}
        result = compute_palmares(make_snapshot(students=three_students, subjects=[math20], grades=grades), "P1")
        assert result["summary"]["failed"] == 1
        assert result["rows"][-1]["observation"]["code"] == "RETAKE"

    def test_column_code_selection(self, scenario):
        result = compute_palmares(scenario, "tot1")
        assert result["selection"] == "SEM1"
        assert result["rows"] == compute_palmares(scenario, "SEM1")["rows"]
        assert compute_palmares(scenario, "tg")["selection"] == "ANNUAL"


@pytest.fixture
def just_below_pass(make_snapshot):
    """Two subjects at 1249 / 2500 = 49.96 %, shown as 50.0 %."""
    subjects = [
        Subject(id=1, name="Math", max_p1=2500),
        Subject(id=2, name="Fr", max_p1=2500),
    ]
    students = [Student(id=1, last_name="Limite")]
    grades = {(1, 1): {"P1": 1249}, (1, 2): {"P1": 1249}}
    return make_snapshot(students=students, subjects=subjects, grades=grades)


class TestPassMarkBoundary:

    def test_displayed_fifty_still_fails(self, just_below_pass):
        ranked = rank_palmares(just_below_pass, "P1")[0]
        assert ranked.percentage == 50.0
        assert ranked.ratio == pytest.approx(49.96)
        assert ranked.mention == "Ma"

    def test_observation_and_summary_use_exact_ratio(self, just_below_pass):
        result = compute_palmares(just_below_pass, "P1")
        row = result["rows"][0]
        assert row["observation"]["code"] == "RETAKE"
        assert row["failed_subjects"] == ["Math", "Fr"]
        assert result["summary"]["passed"] == 0
        assert result["summary"]["failed"] == 1

    @pytest.mark.parametrize("points", [4995, 4997, 4999])
    def test_just_below_boundary_values(self, make_snapshot, points):
        # 49.95 %, 49.97 % and 49.99 % of 10000.
        subject = Subject(id=1, name="Math", max_p1=10000)
        snap = make_snapshot(students=[Student(id=1, last_name="X")], subjects=[subject],
                             grades={(1, 1): {"P1": points}})
        result = compute_palmares(snap, "P1")
        assert result["rows"][0]["percentage"] == 50.0
        assert result["rows"][0]["observation"]["code"] == "RETAKE"
