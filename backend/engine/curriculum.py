"""
curriculum.py — Primary vs. secondary switch.

The level label of a class decides, once, which rules apply:
- which declared maximum counts for each period (primary doubles max_p1)
- which subject grouping a report card uses (domain vs. maxima tuple)
- which conduct vocabulary is abbreviated on slips

Unknown levels fall back to the secondary rules; callers that care about
data quality check ``is_known_level`` and log.
"""

import unicodedata
from enum import Enum
from typing import Dict, Optional


class Curriculum(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


PRIMARY_LEVELS = ("7ème", "8ème")
SECONDARY_LEVELS = ("1ère", "2ème", "3ème", "4ème")
KNOWN_LEVELS = PRIMARY_LEVELS + SECONDARY_LEVELS


def fold_text(text: Optional[str]) -> str:
    """Lower-case and strip accents, for lenient label comparison."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text).strip())
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


_PRIMARY_FOLDED = {fold_text(lvl) for lvl in PRIMARY_LEVELS}
_KNOWN_FOLDED = {fold_text(lvl) for lvl in KNOWN_LEVELS}


def resolve_curriculum(level: Optional[str]) -> Curriculum:
    """7ème/8ème are primary; everything else, unknown labels included, is secondary."""
    if fold_text(level) in _PRIMARY_FOLDED:
        return Curriculum.PRIMARY
    return Curriculum.SECONDARY


def is_known_level(level: Optional[str]) -> bool:
    return fold_text(level) in _KNOWN_FOLDED


# ── Maxima ──────────────────────────────────────────────────────────

# Subject attribute holding the declared maximum of each period.
DECLARED_MAX_FIELDS = {
    "P1": "max_p1",
    "P2": "max_p2",
    "EXAM1": "max_exam1",
    "P3": "max_p3",
    "P4": "max_p4",
    "EXAM2": "max_exam2",
}


def max_field(curriculum: Curriculum, period: str) -> str:
    """
    Name of the Subject attribute that caps ``period`` under ``curriculum``.

    Primary subjects carry one baseline maximum (max_p1) repeated across
    the four non-exam periods; exams keep their own maximum.
    """
    period = str(getattr(period, "value", period))
    if period not in DECLARED_MAX_FIELDS:
        raise ValueError(f"Unknown period: {period}")
    if curriculum == Curriculum.PRIMARY and not period.startswith("EXAM"):
        return "max_p1"
    return DECLARED_MAX_FIELDS[period]


# ── Conduct vocabularies ────────────────────────────────────────────

CONDUCT_ABBREVIATIONS: Dict[Curriculum, Dict[str, str]] = {
    Curriculum.SECONDARY: {
        "excellent": "E",
        "tres bien": "TB",
        "bien": "B",
        "mauvais": "Ma",
        "mediocre": "Me",
    },
    Curriculum.PRIMARY: {
        "elite": "E",
        "elute": "E",
        "tres bon": "TB",
        "bon": "B",
        "mediocre": "Mé",
        "mauvais": "Ma",
    },
}


def abbreviate_conduct(rating: Optional[str], curriculum: Curriculum) -> str:
    """Map a stored conduct rating to its slip abbreviation ('-' when unrated)."""
    key = fold_text(rating)
    if not key:
        return "-"
    return CONDUCT_ABBREVIATIONS[curriculum].get(key, str(rating).strip())
