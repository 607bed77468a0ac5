"""
parser.py — Store rows → ClassSnapshot.

Accepts the plain dict records the store hands over (one class already
filtered) and builds the immutable snapshot the engine works on:
- coerces ids and numbers
- normalises period codes (EX1, Examen 1, ... → EXAM1)
- drops grades pointing outside the class and duplicated grade keys
  (last row wins), logging both as data-quality warnings
- warns when the class level is unknown (secondary rules apply)
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from engine.curriculum import is_known_level
from engine.models import ClassInfo, ClassSnapshot, Domain, Grade, Period, Student, Subject

logger = logging.getLogger(__name__)

PERIOD_ALIASES = {
    "P1": ["p1", "1", "periode 1", "période 1", "1ere periode", "1ère période"],
    "P2": ["p2", "2", "periode 2", "période 2", "2eme periode", "2ème période"],
    "EXAM1": ["exam1", "ex1", "e1", "examen1", "examen 1", "exam 1", "examen 1er semestre"],
    "P3": ["p3", "3", "periode 3", "période 3", "3eme periode", "3ème période"],
    "P4": ["p4", "4", "periode 4", "période 4", "4eme periode", "4ème période"],
    "EXAM2": ["exam2", "ex2", "e2", "examen2", "examen 2", "exam 2", "examen 2eme semestre"],
}
_PERIOD_LOOKUP = {alias: code for code, aliases in PERIOD_ALIASES.items() for alias in aliases}

_TRUTHY = {"1", "true", "yes", "on", "oui"}


# ── Field helpers ───────────────────────────────────────────────────

def normalize_period(value: Any) -> Period:
    """Map a stored period label to its Period code."""
    key = str(getattr(value, "value", value) or "").strip().lower()
    code = _PERIOD_LOOKUP.get(key)
    if code is None:
        raise ValueError(f"Unknown period: {value!r}")
    return Period(code)


def _number(record: Dict[str, Any], field: str, default: Optional[float] = None) -> Optional[float]:
    value = record.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Field '{field}' must be numeric, got {value!r}.")
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _id(record: Dict[str, Any], field: str = "id") -> int:
    value = record.get(field)
    if value is None or value == "":
        raise ValueError(f"Record is missing '{field}': {record!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Field '{field}' must be an integer id, got {value!r}.")


def _text(record: Dict[str, Any], field: str) -> str:
    value = record.get(field)
    return "" if value is None else str(value).strip()


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


# ── Records ─────────────────────────────────────────────────────────

def parse_class_info(record: Dict[str, Any]) -> ClassInfo:
    return ClassInfo(
        id=_id(record),
        level=_text(record, "level"),
        option=_text(record, "option"),
        section=_text(record, "section"),
        name=_text(record, "name"),
    )


def parse_student(record: Dict[str, Any]) -> Student:
    return Student(
        id=_id(record),
        last_name=_text(record, "last_name"),
        first_name=_text(record, "first_name"),
        post_name=_text(record, "post_name"),
        gender=_text(record, "gender"),
        conduite_p1=_text(record, "conduite_p1"),
        conduite_p2=_text(record, "conduite_p2"),
        conduite_p3=_text(record, "conduite_p3"),
        conduite_p4=_text(record, "conduite_p4"),
        is_abandoned=_flag(record.get("is_abandoned")),
        abandon_reason=_text(record, "abandon_reason"),
    )


def parse_subject(record: Dict[str, Any]) -> Subject:
    domain_id = record.get("domain_id")
    return Subject(
        id=_id(record),
        name=_text(record, "name"),
        code=_text(record, "code"),
        max_p1=_number(record, "max_p1", 0.0),
        max_p2=_number(record, "max_p2", 0.0),
        max_exam1=_number(record, "max_exam1", 0.0),
        max_p3=_number(record, "max_p3", 0.0),
        max_p4=_number(record, "max_p4", 0.0),
        max_exam2=_number(record, "max_exam2", 0.0),
        domain_id=None if domain_id in (None, "") else _id(record, "domain_id"),
    )


def parse_domain(record: Dict[str, Any]) -> Domain:
    return Domain(
        id=_id(record),
        name=_text(record, "name"),
        display_order=int(_number(record, "display_order", 0.0)),
    )


def parse_grade(record: Dict[str, Any]) -> Optional[Grade]:
    """A grade row, or None when the row carries no value (not graded)."""
    value = _number(record, "value")
    if value is None:
        return None
    return Grade(
        student_id=_id(record, "student_id"),
        subject_id=_id(record, "subject_id"),
        period=normalize_period(record.get("period")),
        value=value,
    )


def _clean_grades(grades: Iterable[Grade], student_ids: set, subject_ids: set) -> List[Grade]:
    kept: Dict[tuple, Grade] = {}
    outside = 0
    duplicates = 0
    for g in grades:
        if g.student_id not in student_ids or g.subject_id not in subject_ids:
            outside += 1
            continue
        key = (g.student_id, g.subject_id, g.period)
        if key in kept:
            duplicates += 1
            del kept[key]
        kept[key] = g

    if outside:
        logger.warning("Dropped %d grade(s) referring to students or subjects outside the class", outside)
    if duplicates:
        logger.warning("Found %d duplicated grade key(s); kept the last value of each", duplicates)
    return list(kept.values())


# ── Snapshot ────────────────────────────────────────────────────────

def parse_snapshot(payload: Dict[str, Any]) -> ClassSnapshot:
    """
    Build a ClassSnapshot from a payload:
    { "class_info": {...}, "students": [...], "subjects": [...],
      "grades": [...], "domains": [...] }
    """
    if not isinstance(payload, dict):
        raise ValueError("Payload must be an object.")
    class_record = payload.get("class_info")
    if not isinstance(class_record, dict):
        raise ValueError("Payload is missing 'class_info'.")

    class_info = parse_class_info(class_record)
    if not is_known_level(class_info.level):
        logger.warning(
            "Class %s has unknown level %r; using secondary rules", class_info.id, class_info.level
        )

    students = [parse_student(r) for r in payload.get("students") or []]
    subjects = [parse_subject(r) for r in payload.get("subjects") or []]
    domains = [parse_domain(r) for r in payload.get("domains") or []]
    parsed = [parse_grade(r) for r in payload.get("grades") or []]
    grades = _clean_grades(
        (g for g in parsed if g is not None),
        {s.id for s in students},
        {s.id for s in subjects},
    )

    return ClassSnapshot.load(class_info, students, subjects, grades, domains)
