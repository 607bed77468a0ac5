"""
ranking.py — Class rankings.

Three rankings are produced, and they intentionally do not agree on ties:
- Single-student lookup: 1-based position in the descending order of a
  column. Ties are not collapsed; equal totals get consecutive places,
  in the order the students were given.
- Whole-class table: competition ranking ("1, 2, 2, 4"). A rank only
  advances when the value is strictly lower than the previous one.
- Palmarès: descending percentage, equal percentages ordered by
  last name / post-name / first name, then numbered 1..n.

Students without a value for a column (STRICT policy, something not
graded) are left out of the order and get no rank.

All per-column orders are built once per snapshot in ``RankTables`` and
shared by every student of the class.
"""

from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats as sp_stats

from engine.aggregation import Aggregator, Policy, group_code, period_config, ratio, round_half_up
from engine.classification import (
    PASS_MARK,
    failed_subjects,
    format_conduct,
    get_mention,
    observe,
)
from engine.curriculum import fold_text
from engine.models import (
    RANK_COLUMNS,
    ClassSnapshot,
    RankedStudent,
    Student,
    StudentRanks,
    SubjectDetail,
    UnknownStudentError,
)

# Totals are compared after rounding away float summation noise.
_TIE_DECIMALS = 6


# ── Rank helpers ────────────────────────────────────────────────────

def _rank_descending(values: pd.Series, method: str) -> pd.Series:
    present = values.dropna().round(_TIE_DECIMALS)
    ranks = pd.Series(np.nan, index=values.index, dtype=float)
    if present.empty:
        return ranks
    ranks.loc[present.index] = sp_stats.rankdata(-present.to_numpy(), method=method)
    return ranks


def ordinal_ranks(values: pd.Series) -> pd.Series:
    """Position in a stable descending sort (ties broken by input order)."""
    return _rank_descending(values, "ordinal")


def competition_ranks(values: pd.Series) -> pd.Series:
    """Standard competition ranking: ties share the best rank, gaps follow."""
    return _rank_descending(values, "min")


def _as_rank(value) -> Optional[int]:
    return None if pd.isna(value) else int(value)


class RankTables:
    """
    Per-column totals and both rank orders for one snapshot and policy.

    Building this is the only O(n log n) step; every lookup afterwards
    is a dictionary access.
    """

    def __init__(
        self,
        snapshot: ClassSnapshot,
        policy: Policy = Policy.LENIENT,
        aggregator: Optional[Aggregator] = None,
    ):
        self.snapshot = snapshot
        self.policy = Policy(policy)
        self.aggregator = aggregator or Aggregator(snapshot)
        index = pd.Index([s.id for s in snapshot.students], name="student_id")

        self.values = pd.DataFrame(
            {col: self.aggregator.column_values(col, self.policy) for col in RANK_COLUMNS},
            index=index,
        )
        self.ordinal = pd.DataFrame({c: ordinal_ranks(self.values[c]) for c in RANK_COLUMNS}, index=index)
        self.competition = pd.DataFrame({c: competition_ranks(self.values[c]) for c in RANK_COLUMNS}, index=index)

    @property
    def total_students(self) -> int:
        return len(self.snapshot.students)

    def _ranks(self, table: pd.DataFrame, student_id: int) -> StudentRanks:
        if student_id not in table.index:
            raise UnknownStudentError(student_id)
        row = table.loc[student_id]
        return StudentRanks(**{col: _as_rank(row[col]) for col in RANK_COLUMNS})

    def ordinal_for(self, student_id: int) -> StudentRanks:
        return self._ranks(self.ordinal, student_id)

    def competition_for(self, student_id: int) -> StudentRanks:
        return self._ranks(self.competition, student_id)

    def competition_all(self) -> Dict[int, StudentRanks]:
        return {sid: self.competition_for(sid) for sid in self.competition.index}


# ── Public entry points ─────────────────────────────────────────────

def student_ranks(
    snapshot: ClassSnapshot,
    student_id: int,
    policy: Policy = Policy.STRICT,
    tables: Optional[RankTables] = None,
) -> Dict[str, Any]:
    """
    Rank of one student in every column, by ordinal position.

    Two students with equal totals get consecutive ranks here, unlike
    ``class_ranks``.
    """
    tables = tables or RankTables(snapshot, policy)
    return {"ranks": tables.ordinal_for(student_id), "total_students": tables.total_students}


def class_ranks(
    snapshot: ClassSnapshot,
    policy: Policy = Policy.LENIENT,
    tables: Optional[RankTables] = None,
) -> Dict[str, Any]:
    """Competition ranks of every student in every column."""
    tables = tables or RankTables(snapshot, policy)
    return {"ranks": tables.competition_all(), "total_students": tables.total_students}


# ── Palmarès ────────────────────────────────────────────────────────

def _name_key(student: Student) -> str:
    return fold_text(f"{student.last_name} {student.post_name or ''} {student.first_name or ''}")


def _score_student(aggregator: Aggregator, student: Student, config, pass_mark: float):
    """(ratio, details, failed) for a fully graded student, None when something is missing."""
    details: List[SubjectDetail] = []
    points = 0.0
    maximum = 0.0
    for subject in aggregator.snapshot.subjects:
        grades = [aggregator.grade(student.id, subject.id, period) for period, _ in config]
        if any(g is None for g in grades):
            return None
        obtained = float(sum(grades))
        max_points = float(sum(get_max(subject) or 0 for _, get_max in config))
        points += obtained
        maximum += max_points
        details.append(SubjectDetail(label=subject.label, points=obtained, max_points=max_points))
    return ratio(points, maximum), details, failed_subjects(details, pass_mark)


def rank_palmares(
    snapshot: ClassSnapshot,
    selection: str = "SEM1",
    exclude_abandoned: bool = False,
    pass_mark: float = PASS_MARK,
) -> List[RankedStudent]:
    """
    The class leaderboard for a period, semester or the year.

    Strict policy: a student missing any grade of the selection is unranked
    and listed after the ranked students, in class order.
    """
    config = period_config(selection, snapshot.curriculum)
    if exclude_abandoned:
        snapshot = snapshot.without_abandoned()
    aggregator = Aggregator(snapshot)

    scored = []
    unranked: List[RankedStudent] = []
    for position, student in enumerate(snapshot.students):
        result = _score_student(aggregator, student, config, pass_mark)
        if result is None:
            unranked.append(
                RankedStudent(student=student, percentage=0.0, rank=None, mention=None, is_unranked=True)
            )
            continue
        exact, details, failed = result
        scored.append(
            {
                "position": position,
                "sort_key": round(exact, _TIE_DECIMALS),
                "name_key": _name_key(student),
                "ratio": exact,
                "student": student,
                "details": tuple(details),
                "failed": tuple(failed),
            }
        )

    if not scored:
        return unranked

    order = pd.DataFrame(scored).sort_values(
        ["sort_key", "name_key", "position"], ascending=[False, True, True], kind="mergesort"
    )
    ranked = []
    for rank, row in enumerate(order.itertuples(index=False), start=1):
        ranked.append(
            RankedStudent(
                student=row.student,
                percentage=round_half_up(row.ratio, 1),
                rank=rank,
                mention=get_mention(row.ratio),
                is_unranked=False,
                failed_subjects=row.failed,
                subject_details=row.details,
                ratio=row.ratio,
            )
        )
    return ranked + unranked


def palmares_summary(ranked: List[RankedStudent], total_students: int, pass_mark: float = PASS_MARK) -> Dict[str, int]:
    scored = [r for r in ranked if not r.is_unranked]
    return {
        "total": total_students,
        "passed": sum(1 for r in scored if r.exact_percentage >= pass_mark),
        "failed": sum(1 for r in scored if r.exact_percentage < pass_mark),
        "unranked": len(ranked) - len(scored),
    }


def compute_palmares(
    snapshot: ClassSnapshot,
    selection: str = "SEM1",
    exclude_abandoned: bool = False,
    pass_mark: float = PASS_MARK,
) -> Dict[str, Any]:
    """Palmarès as plain rows: rank, percentage, mention, conduct, observation."""
    selection = group_code(selection)
    ranked = rank_palmares(snapshot, selection, exclude_abandoned=exclude_abandoned, pass_mark=pass_mark)

    rows = []
    for r in ranked:
        rows.append(
            {
                "rank": r.rank,
                "student_id": r.student.id,
                "name": r.student.full_name,
                "percentage": r.percentage,
                "mention": r.mention,
                "is_unranked": r.is_unranked,
                "failed_subjects": list(r.failed_subjects),
                "subject_details": [
                    {"subject": d.label, "points": d.points, "max_points": d.max_points}
                    for d in r.subject_details
                ],
                "conduct": format_conduct(r.student, selection),
                "observation": observe(r, selection, pass_mark=pass_mark),
            }
        )

    return {
        "selection": selection,
        "curriculum": snapshot.curriculum.value,
        "rows": rows,
        "summary": palmares_summary(ranked, len(snapshot.students), pass_mark=pass_mark),
    }
