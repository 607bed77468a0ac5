"""
aggregation.py — Points obtained vs. points possible.

Computes, from one class snapshot:
- the grade matrix (student × subject rows, one column per period, NaN = not graded)
- the effective maxima per subject under the class curriculum
- per-subject and per-student totals for any period group
- per-column totals for the whole class in one vectorised pass

Absence is never folded into zero here. Every total carries how many
grades it was built from, and the caller picks the policy:
- STRICT: a total with a missing component has no value (student unranked)
- LENIENT: missing components count as 0, maxima are still counted
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from operator import attrgetter
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from engine.curriculum import Curriculum, max_field
from engine.models import (
    PERIOD_ORDER,
    RANK_COLUMNS,
    ClassSnapshot,
    Period,
    Subject,
    UnknownStudentError,
)


class Policy(str, Enum):
    STRICT = "strict"
    LENIENT = "lenient"


# ── Period groups ───────────────────────────────────────────────────

PERIOD_GROUPS: Dict[str, Tuple[Period, ...]] = {
    "P1": (Period.P1,),
    "P2": (Period.P2,),
    "EXAM1": (Period.EXAM1,),
    "SEM1": (Period.P1, Period.P2, Period.EXAM1),
    "P3": (Period.P3,),
    "P4": (Period.P4,),
    "EXAM2": (Period.EXAM2,),
    "SEM2": (Period.P3, Period.P4, Period.EXAM2),
    "ANNUAL": PERIOD_ORDER,
}

# Report-card column -> period group.
COLUMN_GROUPS: Dict[str, str] = dict(zip(RANK_COLUMNS, PERIOD_GROUPS))


def group_code(group: str) -> str:
    """Canonical group code for a group code (P1 … ANNUAL, any case) or a report-card column (p1 … tg)."""
    text = str(getattr(group, "value", group)).strip()
    code = COLUMN_GROUPS.get(text.lower(), text.upper())
    if code not in PERIOD_GROUPS:
        raise ValueError(f"Unknown period group: {group}")
    return code


def group_periods(group: str) -> Tuple[Period, ...]:
    return PERIOD_GROUPS[group_code(group)]


def period_config(group: str, curriculum: Curriculum) -> List[Tuple[Period, Callable[[Subject], float]]]:
    """Ordered (period, max accessor) pairs for a group under a curriculum."""
    return [(p, attrgetter(max_field(curriculum, p.value))) for p in group_periods(group)]


def round_half_up(value: float, digits: int = 1) -> float:
    """Round as printed on report cards: 6.25 → 6.3, not banker's 6.2."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def ratio(obtained: Optional[float], maximum: float) -> float:
    """Unrounded 100 × obtained / maximum; 0 when there is nothing to divide by."""
    if obtained is None or not maximum or maximum <= 0:
        return 0.0
    return 100.0 * float(obtained) / float(maximum)


def percentage(obtained: Optional[float], maximum: float) -> float:
    """100 × obtained / maximum to one decimal, for display."""
    return round_half_up(ratio(obtained, maximum), 1)


# ── Totals ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Total:
    """
    Sum of the graded components of a period group.

    ``points`` only ever adds grades that exist; ``graded`` out of
    ``expected`` tells how complete it is.
    """

    points: float = 0.0
    maximum: float = 0.0
    graded: int = 0
    expected: int = 0

    @property
    def complete(self) -> bool:
        return self.graded == self.expected

    @property
    def shown(self) -> Optional[float]:
        """What a printed cell displays: the partial sum, blank when nothing is graded."""
        return self.points if self.graded > 0 else None

    def value(self, policy: Policy = Policy.STRICT) -> Optional[float]:
        if Policy(policy) == Policy.STRICT and not self.complete:
            return None
        return self.points

    def ratio(self, policy: Policy = Policy.STRICT) -> Optional[float]:
        """Unrounded percentage; pass/fail and mentions are decided on this."""
        obtained = self.value(policy)
        if obtained is None:
            return None
        return ratio(obtained, self.maximum)

    def percentage(self, policy: Policy = Policy.STRICT) -> Optional[float]:
        exact = self.ratio(policy)
        return None if exact is None else round_half_up(exact, 1)

    def __add__(self, other: "Total") -> "Total":
        return Total(
            points=self.points + other.points,
            maximum=self.maximum + other.maximum,
            graded=self.graded + other.graded,
            expected=self.expected + other.expected,
        )


def sum_totals(totals) -> Total:
    result = Total()
    for t in totals:
        result = result + t
    return result


# ── Matrices ────────────────────────────────────────────────────────

_PERIOD_COLUMNS = [p.value for p in PERIOD_ORDER]


def grade_matrix(snapshot: ClassSnapshot) -> pd.DataFrame:
    """
    One row per (student_id, subject_id) of the class, one column per period.

    Missing rows in the store become NaN, so a real 0 stays a 0. Grades
    for students or subjects outside the snapshot are dropped; for a
    duplicated key the last row wins.
    """
    index = pd.MultiIndex.from_product(
        [[s.id for s in snapshot.students], [s.id for s in snapshot.subjects]],
        names=["student_id", "subject_id"],
    )
    if not snapshot.grades:
        return pd.DataFrame(np.nan, index=index, columns=_PERIOD_COLUMNS, dtype=float)

    df = pd.DataFrame(
        {
            "student_id": [g.student_id for g in snapshot.grades],
            "subject_id": [g.subject_id for g in snapshot.grades],
            "period": [Period(g.period).value for g in snapshot.grades],
            "value": pd.to_numeric([g.value for g in snapshot.grades], errors="coerce"),
        }
    )
    df = df.drop_duplicates(subset=["student_id", "subject_id", "period"], keep="last")
    wide = df.pivot(index=["student_id", "subject_id"], columns="period", values="value")
    return wide.reindex(index=index, columns=_PERIOD_COLUMNS).astype(float)


def maxima_frame(snapshot: ClassSnapshot) -> pd.DataFrame:
    """Effective maximum of every subject for every period, curriculum applied."""
    config = period_config("ANNUAL", snapshot.curriculum)
    rows = [[get_max(subject) or 0 for _, get_max in config] for subject in snapshot.subjects]
    index = pd.Index([s.id for s in snapshot.subjects], name="subject_id")
    return pd.DataFrame(rows, index=index, columns=[p.value for p, _ in config], dtype=float)


# ── Aggregator ──────────────────────────────────────────────────────

class Aggregator:
    """
    Totals over one frozen snapshot. Build once, query many times.

    Per-column cell sums are computed once for the whole matrix and kept
    as plain dictionaries, so report cards never read the frame cell by cell.
    """

    def __init__(self, snapshot: ClassSnapshot):
        self.snapshot = snapshot
        self.matrix = grade_matrix(snapshot)
        self.maxima = maxima_frame(snapshot)
        self._student_ids = [s.id for s in snapshot.students]
        self._known_students = set(self._student_ids)
        self._rows = self.matrix.to_dict(orient="index")
        self._cells: Dict[str, Tuple[dict, dict, dict]] = {}

    def _column_cells(self, group: str) -> Tuple[dict, dict, dict]:
        """(points, graded, maxima) lookups for one group, built on first use."""
        code = group_code(group)
        if code not in self._cells:
            cols = [p.value for p in PERIOD_GROUPS[code]]
            block = self.matrix[cols]
            points = dict(zip(block.index, block.sum(axis=1).to_numpy()))
            graded = dict(zip(block.index, block.notna().sum(axis=1).to_numpy()))
            maxima = dict(zip(self.maxima.index, self.maxima[cols].sum(axis=1).to_numpy()))
            self._cells[code] = (points, graded, maxima)
        return self._cells[code]

    def grade(self, student_id: int, subject_id: int, period: Period) -> Optional[float]:
        """A single grade, or None when not graded."""
        row = self._rows.get((student_id, subject_id))
        if row is None:
            return None
        value = row[Period(period).value]
        return None if pd.isna(value) else float(value)

    def group_maximum(self, group: str, subject_ids: Optional[List[int]] = None) -> float:
        cols = [p.value for p in group_periods(group)]
        frame = self.maxima if subject_ids is None else self.maxima.loc[subject_ids]
        return float(frame[cols].to_numpy().sum())

    def subject_total(self, student_id: int, subject_id: int, group: str) -> Total:
        if student_id not in self._known_students:
            raise UnknownStudentError(student_id)
        points, graded, maxima = self._column_cells(group)
        key = (student_id, subject_id)
        return Total(
            points=float(points[key]),
            maximum=float(maxima[subject_id]),
            graded=int(graded[key]),
            expected=len(group_periods(group)),
        )

    def student_total(self, student_id: int, group: str, subject_ids: Optional[List[int]] = None) -> Total:
        """Sum over the student's subjects (all of them unless ``subject_ids`` is given)."""
        if subject_ids is None:
            subject_ids = [s.id for s in self.snapshot.subjects]
        return sum_totals(self.subject_total(student_id, sid, group) for sid in subject_ids)

    def student_aggregate(self, student_id: int) -> Dict[str, Total]:
        """The nine report-card columns (p1 … tg) for one student."""
        return {col: self.student_total(student_id, col) for col in RANK_COLUMNS}

    def column_values(self, column: str, policy: Policy = Policy.LENIENT) -> pd.Series:
        """
        Every student's total for one column, in snapshot order.

        Under STRICT a student with any missing component gets NaN.
        """
        cols = [p.value for p in group_periods(column)]
        block = self.matrix[cols]
        by_student = block.groupby(level="student_id", sort=False)
        points = by_student.sum(min_count=0).sum(axis=1)
        graded = block.notna().groupby(level="student_id", sort=False).sum().sum(axis=1)
        points = points.reindex(self._student_ids, fill_value=0.0).astype(float)
        graded = graded.reindex(self._student_ids, fill_value=0)

        if Policy(policy) == Policy.STRICT:
            expected = len(cols) * len(self.snapshot.subjects)
            points = points.where(graded == expected)
        points.index.name = "student_id"
        return points
