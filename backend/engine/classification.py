"""
classification.py — Mentions ("application") and pass/fail decisions.

Bands are shared by both curricula:
  E ≥ 80, TB ≥ 60, B ≥ 50, Ma ≥ 30, Mé below.

A percentage under the pass mark fails: the year for an annual total,
the subject ("échec") for a subject's own percentage.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from engine.curriculum import Curriculum, abbreviate_conduct
from engine.models import Period, RankedStudent, Student, Subject, SubjectDetail

PASS_MARK = 50

# Mention bands (min_percentage, code, label). Ordered high to low.
MENTION_BANDS = [
    (80.0, "E", "Excellent"),
    (60.0, "TB", "Très bien"),
    (50.0, "B", "Bien"),
    (30.0, "Ma", "Mauvaise"),
    (0.0, "Mé", "Médiocre"),
]


def get_mention_info(pct: Optional[float]) -> Dict[str, Any]:
    """Return mention code and label for a 0-100 percentage."""
    if pct is None:
        return {"code": "", "label": "", "percentage": None}
    for min_pct, code, label in MENTION_BANDS:
        if pct >= min_pct:
            return {"code": code, "label": label, "percentage": round(pct, 1)}
    # Only reachable for negative input.
    return {"code": "Mé", "label": "Médiocre", "percentage": round(pct, 1)}


def get_mention(pct: Optional[float]) -> str:
    """Mention code (E, TB, B, Ma, Mé); '' when there is no percentage."""
    return get_mention_info(pct)["code"]


def get_mention_label(pct: Optional[float]) -> str:
    return get_mention_info(pct)["label"]


def get_all_mention_thresholds() -> List[Dict[str, Any]]:
    """Full mention scale for legends."""
    thresholds = []
    for idx, (min_pct, code, label) in enumerate(MENTION_BANDS):
        max_pct = 100.0 if idx == 0 else MENTION_BANDS[idx - 1][0] - 0.1
        thresholds.append({"min": min_pct, "max": round(max_pct, 1), "code": code, "label": label})
    return thresholds


# ── Pass / fail ─────────────────────────────────────────────────────

class Decision(str, Enum):
    PASS = "pass"
    RETAKE = "retake"


def is_failing(pct: Optional[float], pass_mark: float = PASS_MARK) -> bool:
    return pct is not None and pct < pass_mark


def year_decision(pct: Optional[float], pass_mark: float = PASS_MARK) -> Optional[Decision]:
    """Pass or retake the year; None when there is no percentage to judge."""
    if pct is None:
        return None
    return Decision.RETAKE if pct < pass_mark else Decision.PASS


def subject_failed(points: float, max_points: float, pass_mark: float = PASS_MARK) -> bool:
    """A subject fails on its own percentage; a subject with no maximum never does."""
    if not max_points or max_points <= 0:
        return False
    return (points / max_points) * 100 < pass_mark


def failed_subjects(details: Iterable[SubjectDetail], pass_mark: float = PASS_MARK) -> List[str]:
    return [d.label for d in details if subject_failed(d.points, d.max_points, pass_mark)]


# ── Palmarès observation ────────────────────────────────────────────

class Observation(str, Enum):
    ABANDONED = "ABANDONED"
    UNRANKED = "UNRANKED"
    RETAKE = "RETAKE"
    FAILED_SUBJECTS = "FAILED_SUBJECTS"
    PASSED = "PASSED"


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def observe(ranked: RankedStudent, selection: str = "SEM1", pass_mark: float = PASS_MARK) -> Dict[str, Any]:
    """
    Observation column of the palmarès. First matching rule wins:
    abandoned, unranked, overall failure, failed subjects, passed.
    """
    student = ranked.student
    if student.is_abandoned:
        text = f"Abandon : {student.abandon_reason}" if student.abandon_reason else "Abandon"
        return {"code": Observation.ABANDONED.value, "text": text}

    if ranked.is_unranked:
        return {"code": Observation.UNRANKED.value, "text": "Non classé"}

    if ranked.exact_percentage < pass_mark:
        return {"code": Observation.RETAKE.value, "text": "Redouble la classe"}

    if ranked.failed_subjects:
        annual = str(selection).upper() == "ANNUAL"
        failures = [
            d.label + (f" ({_fmt(d.points)}/{_fmt(d.max_points)})" if annual else "")
            for d in ranked.subject_details
            if subject_failed(d.points, d.max_points, pass_mark)
        ]
        return {
            "code": Observation.FAILED_SUBJECTS.value,
            "text": f"Échec ({len(ranked.failed_subjects)} cours) : " + ", ".join(failures),
            "subjects": list(ranked.failed_subjects),
        }

    return {"code": Observation.PASSED.value, "text": "Passé"}


# ── Conduct ─────────────────────────────────────────────────────────

_CONDUCT_PERIODS = {
    "P1": (Period.P1,),
    "P2": (Period.P2,),
    "P3": (Period.P3,),
    "P4": (Period.P4,),
    "SEM1": (Period.P1, Period.P2),
    "SEM2": (Period.P3, Period.P4),
    "ANNUAL": (Period.P1, Period.P2, Period.P3, Period.P4),
}


def format_conduct(
    student: Student,
    selection: str,
    curriculum: Optional[Curriculum] = None,
) -> str:
    """
    Conduct as shown for a palmarès selection: one rating per period,
    joined with ' / '. Exams carry no conduct ('-'). With a curriculum,
    ratings are abbreviated in that curriculum's vocabulary.
    """
    periods = _CONDUCT_PERIODS.get(str(selection).upper())
    if not periods:
        return "-"
    shown = []
    for p in periods:
        rating = student.conduct(p)
        if curriculum is not None:
            shown.append(abbreviate_conduct(rating, curriculum))
        else:
            shown.append(rating or "-")
    return " / ".join(shown)


# ── Repêchage ───────────────────────────────────────────────────────

def repechage_points(subject: Subject, pct: Optional[float]) -> Optional[float]:
    """
    Points granted by a make-up exam, expressed over the subject's declared
    annual maxima. None when there is no repêchage (missing or 0 %).
    """
    if not pct:
        return None
    total_max = sum(m or 0 for m in subject.maxima)
    if total_max <= 0:
        return 0.0
    return pct * total_max / 100
