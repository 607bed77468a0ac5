"""
grouping.py — Subject groups for report-card tables.

Secondary report cards collapse subjects whose six declared maxima are
identical under one "MAXIMA" row; groups are listed by ascending annual
maximum. Primary report cards group subjects by domain, with subjects
that have no domain in a trailing "Autres matières" group.

Group subtotals are computed straight from the grade matrix with a
groupby, independently of the per-subject path in aggregation.py, and
must land on the same numbers.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from engine.aggregation import Aggregator, Total, group_periods
from engine.curriculum import Curriculum
from engine.models import RANK_COLUMNS, ClassSnapshot, Domain, Subject

UNCATEGORIZED_KEY = "uncategorized"
UNCATEGORIZED_LABEL = "Autres matières"
UNKNOWN_DOMAIN_LABEL = "Domaine inconnu"


@dataclass(frozen=True)
class SubjectGroup:
    key: str
    label: str
    subjects: Tuple[Subject, ...]
    # Shared per-subject maxima (MAXIMA row); only for maxima-tuple groups.
    header_maxima: Optional[Dict[str, float]] = None

    @property
    def subject_ids(self) -> List[int]:
        return [s.id for s in self.subjects]


# ── Strategies ──────────────────────────────────────────────────────

def _header_maxima(subject: Subject) -> Dict[str, float]:
    p1, p2, ex1, p3, p4, ex2 = subject.maxima
    return {
        "p1": p1, "p2": p2, "ex1": ex1, "tot1": p1 + p2 + ex1,
        "p3": p3, "p4": p4, "ex2": ex2, "tot2": p3 + p4 + ex2,
        "tg": p1 + p2 + ex1 + p3 + p4 + ex2,
    }


def group_by_maxima(subjects: Sequence[Subject]) -> List[SubjectGroup]:
    """Subjects with identical declared maxima, groups ordered by annual maximum."""
    buckets: Dict[Tuple[float, ...], List[Subject]] = {}
    for subject in subjects:
        buckets.setdefault(tuple(subject.maxima), []).append(subject)

    # sorted() is stable: equal annual maxima keep first-appearance order.
    ordered = sorted(buckets.items(), key=lambda item: sum(item[0]))
    return [
        SubjectGroup(
            key="-".join(f"{m:g}" for m in maxima),
            label="MAXIMA",
            subjects=tuple(members),
            header_maxima=_header_maxima(members[0]),
        )
        for maxima, members in ordered
    ]


def group_by_domain(subjects: Sequence[Subject], domains: Sequence[Domain] = ()) -> List[SubjectGroup]:
    """
    Subjects by declared domain: known domains in display order, then
    domains missing from the list, then the uncategorized group.
    """
    by_id = {d.id: d for d in domains}
    buckets: Dict[Optional[int], List[Subject]] = {}
    for subject in subjects:
        buckets.setdefault(subject.domain_id, []).append(subject)

    known = sorted(
        (did for did in buckets if did is not None and did in by_id),
        key=lambda did: (by_id[did].display_order, by_id[did].name),
    )
    unknown = [did for did in buckets if did is not None and did not in by_id]

    groups = [
        SubjectGroup(key=f"domain-{did}", label=by_id[did].name, subjects=tuple(buckets[did]))
        for did in known
    ]
    groups += [
        SubjectGroup(key=f"domain-{did}", label=UNKNOWN_DOMAIN_LABEL, subjects=tuple(buckets[did]))
        for did in unknown
    ]
    if None in buckets:
        groups.append(
            SubjectGroup(key=UNCATEGORIZED_KEY, label=UNCATEGORIZED_LABEL, subjects=tuple(buckets[None]))
        )
    return groups


def group_subjects(snapshot: ClassSnapshot) -> List[SubjectGroup]:
    """Grouping strategy of the snapshot's curriculum."""
    if snapshot.curriculum == Curriculum.PRIMARY:
        return group_by_domain(snapshot.subjects, snapshot.domains)
    return group_by_maxima(snapshot.subjects)


# ── Subtotals ───────────────────────────────────────────────────────

class GroupSubtotals:
    """
    Points, graded counts and maxima of every (student, group) pair, per
    report-card column. One groupby per column for the whole class.
    """

    def __init__(self, aggregator: Aggregator, groups: Sequence[SubjectGroup]):
        self.aggregator = aggregator
        self.groups = list(groups)
        self._tables: Dict[str, Tuple[dict, dict, dict]] = {}

        membership = pd.Series(
            {sid: g.key for g in self.groups for sid in g.subject_ids}, name="group", dtype=object
        )
        self._counts = membership.value_counts().to_dict()
        if membership.empty:
            return

        matrix = aggregator.matrix
        keys = matrix.index.get_level_values("subject_id").map(membership)
        students = matrix.index.get_level_values("student_id")
        for col in RANK_COLUMNS:
            cols = [p.value for p in group_periods(col)]
            block = matrix[cols]
            cells = pd.DataFrame(
                {
                    "student_id": students,
                    "group": keys,
                    "points": block.sum(axis=1).to_numpy(),
                    "graded": block.notna().sum(axis=1).to_numpy(),
                }
            ).dropna(subset=["group"])
            summed = cells.groupby(["student_id", "group"], sort=False)[["points", "graded"]].sum()
            max_sum = aggregator.maxima.loc[membership.index, cols].sum(axis=1).groupby(membership).sum()
            self._tables[col] = (summed["points"].to_dict(), summed["graded"].to_dict(), max_sum.to_dict())

    def for_student(self, student_id: int) -> Dict[str, Dict[str, Total]]:
        self.aggregator.snapshot.student(student_id)
        result: Dict[str, Dict[str, Total]] = {g.key: {} for g in self.groups}
        if not self._tables:
            return result
        for col in RANK_COLUMNS:
            points, graded, maxima = self._tables[col]
            n_periods = len(group_periods(col))
            for key in result:
                result[key][col] = Total(
                    points=float(points.get((student_id, key), 0.0)),
                    maximum=float(maxima.get(key, 0.0)),
                    graded=int(graded.get((student_id, key), 0)),
                    expected=int(self._counts.get(key, 0)) * n_periods,
                )
        return result


def group_subtotals(
    aggregator: Aggregator,
    student_id: int,
    groups: Sequence[SubjectGroup],
) -> Dict[str, Dict[str, Total]]:
    """
    Per group, per report-card column: the student's points and maxima
    summed over the group's subjects.
    """
    return GroupSubtotals(aggregator, groups).for_student(student_id)
