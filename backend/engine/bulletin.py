"""
bulletin.py — Numbers printed on a report card.

For one student, or every student of a class in one pass:
- per-subject cells (partial sums, blank when nothing is graded)
- grouped subtotals (MAXIMA groups or domains, by curriculum)
- the TOTAUX / POURCENTAGE / PLACE / APPLICATION rows

Printed totals follow the lenient rule: a missing grade shows as a blank
cell but adds 0, while its maximum is still counted. Places come from the
whole-class competition ranking, built once per class.
"""

from typing import Any, Dict, List, Optional

from engine.aggregation import Aggregator, Policy, Total, round_half_up
from engine.classification import PASS_MARK, get_mention, year_decision
from engine.curriculum import abbreviate_conduct
from engine.grouping import GroupSubtotals, SubjectGroup, group_subjects
from engine.models import RANK_COLUMNS, ClassSnapshot, Period
from engine.ranking import RankTables


def _total_dict(total: Total) -> Dict[str, Any]:
    return {"points": total.points, "maximum": total.maximum, "shown": total.shown}


def _summary_row(total: Total, place: Optional[int]) -> Dict[str, Any]:
    exact = total.ratio(Policy.LENIENT)
    return {
        "points": total.value(Policy.LENIENT),
        "maximum": total.maximum,
        "percentage": round_half_up(exact, 1),
        # A 0 % column is left blank on the card.
        "mention": get_mention(exact) if exact else "",
        "place": place,
    }


def _subject_rows(aggregator: Aggregator, student_id: int, groups: List[SubjectGroup]) -> List[Dict[str, Any]]:
    rows = []
    for group in groups:
        for subject in group.subjects:
            cells = {col: aggregator.subject_total(student_id, subject.id, col) for col in RANK_COLUMNS}
            rows.append(
                {
                    "subject_id": subject.id,
                    "name": subject.name,
                    "code": subject.code,
                    "group": group.key,
                    "cells": {col: t.shown for col, t in cells.items()},
                    "maxima": {col: t.maximum for col, t in cells.items()},
                }
            )
    return rows


def _build(
    snapshot: ClassSnapshot,
    student_id: int,
    tables: RankTables,
    groups: List[SubjectGroup],
    pass_mark: float,
    group_table: Optional[GroupSubtotals] = None,
) -> Dict[str, Any]:
    aggregator = tables.aggregator
    group_table = group_table or GroupSubtotals(aggregator, groups)
    student = snapshot.student(student_id)
    places = tables.competition_for(student_id)
    aggregate = aggregator.student_aggregate(student_id)
    subtotals = group_table.for_student(student_id)

    annual = aggregate["tg"]
    decision = year_decision(annual.ratio(Policy.STRICT), pass_mark=pass_mark)

    return {
        "student_id": student.id,
        "name": student.full_name,
        "curriculum": snapshot.curriculum.value,
        "total_students": tables.total_students,
        "subjects": _subject_rows(aggregator, student_id, groups),
        "groups": [
            {
                "key": g.key,
                "label": g.label,
                "subject_ids": g.subject_ids,
                "header_maxima": g.header_maxima,
                "subtotals": {col: _total_dict(t) for col, t in subtotals[g.key].items()},
            }
            for g in groups
        ],
        "totals": {col: _summary_row(aggregate[col], getattr(places, col)) for col in RANK_COLUMNS},
        "conduct": {
            p.value: abbreviate_conduct(student.conduct(p), snapshot.curriculum)
            for p in (Period.P1, Period.P2, Period.P3, Period.P4)
        },
        "decision": decision.value if decision else None,
    }


def compute_bulletin(
    snapshot: ClassSnapshot,
    student_id: int,
    tables: Optional[RankTables] = None,
    pass_mark: float = PASS_MARK,
) -> Dict[str, Any]:
    """Report-card numbers for one student."""
    tables = tables or RankTables(snapshot, Policy.LENIENT)
    return _build(snapshot, student_id, tables, group_subjects(snapshot), pass_mark)


def compute_class_bulletins(snapshot: ClassSnapshot, pass_mark: float = PASS_MARK) -> Dict[str, Any]:
    """Report-card numbers for the whole class; rank tables, groups and group subtotals are built once."""
    tables = RankTables(snapshot, Policy.LENIENT)
    groups = group_subjects(snapshot)
    group_table = GroupSubtotals(tables.aggregator, groups)
    return {
        "curriculum": snapshot.curriculum.value,
        "total_students": tables.total_students,
        "bulletins": [_build(snapshot, s.id, tables, groups, pass_mark, group_table) for s in snapshot.students],
    }
