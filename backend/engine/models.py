"""
models.py — Record model for one class snapshot.

Immutable shapes handed to the engine by the external store:
- Student, Subject, Grade, Domain, ClassInfo
- ClassSnapshot (all records of one class + resolved curriculum)

And the derived shapes the engine hands back:
- StudentRanks (one rank per aggregate column)
- RankedStudent (one palmarès line)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from engine.curriculum import Curriculum, resolve_curriculum


# ── Periods ─────────────────────────────────────────────────────────

class Period(str, Enum):
    """The six atomic grading windows, in calendar order."""

    P1 = "P1"
    P2 = "P2"
    EXAM1 = "EXAM1"
    P3 = "P3"
    P4 = "P4"
    EXAM2 = "EXAM2"


PERIOD_ORDER: Tuple[Period, ...] = tuple(Period)

# Aggregate columns of a report card, left to right.
RANK_COLUMNS: Tuple[str, ...] = ("p1", "p2", "ex1", "tot1", "p3", "p4", "ex2", "tot2", "tg")


# ── Store records ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Domain:
    id: int
    name: str
    display_order: int = 0


@dataclass(frozen=True)
class Subject:
    id: int
    name: str
    max_p1: float = 0
    max_p2: float = 0
    max_exam1: float = 0
    max_p3: float = 0
    max_p4: float = 0
    max_exam2: float = 0
    code: str = ""
    domain_id: Optional[int] = None

    @property
    def label(self) -> str:
        """Short label used on slips and palmarès: the code when set, else the name."""
        return self.code or self.name

    @property
    def maxima(self) -> Tuple[float, float, float, float, float, float]:
        """Declared maxima in period order."""
        return (self.max_p1, self.max_p2, self.max_exam1, self.max_p3, self.max_p4, self.max_exam2)


@dataclass(frozen=True)
class Grade:
    student_id: int
    subject_id: int
    period: Period
    value: float


@dataclass(frozen=True)
class Student:
    id: int
    last_name: str
    first_name: str = ""
    post_name: str = ""
    gender: str = ""
    conduite_p1: str = ""
    conduite_p2: str = ""
    conduite_p3: str = ""
    conduite_p4: str = ""
    is_abandoned: bool = False
    abandon_reason: str = ""

    @property
    def full_name(self) -> str:
        parts = [self.last_name, self.post_name, self.first_name]
        return " ".join(p for p in parts if p)

    def conduct(self, period: Period) -> str:
        """Conduct rating for a non-exam period ('' when not rated)."""
        return {
            Period.P1: self.conduite_p1,
            Period.P2: self.conduite_p2,
            Period.P3: self.conduite_p3,
            Period.P4: self.conduite_p4,
        }.get(Period(period), "")


@dataclass(frozen=True)
class ClassInfo:
    id: int
    level: str
    option: str = ""
    section: str = ""
    name: str = ""


# ── Snapshot ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClassSnapshot:
    """
    Every record of one class, frozen at load time.

    The curriculum tag is resolved once here and read by every component;
    nothing downstream looks at ``class_info.level`` again.
    """

    class_info: ClassInfo
    students: Tuple[Student, ...]
    subjects: Tuple[Subject, ...]
    grades: Tuple[Grade, ...]
    domains: Tuple[Domain, ...] = ()
    curriculum: Curriculum = Curriculum.SECONDARY

    @classmethod
    def load(
        cls,
        class_info: ClassInfo,
        students: List[Student],
        subjects: List[Subject],
        grades: List[Grade],
        domains: Optional[List[Domain]] = None,
    ) -> "ClassSnapshot":
        return cls(
            class_info=class_info,
            students=tuple(students),
            subjects=tuple(subjects),
            grades=tuple(grades),
            domains=tuple(domains or ()),
            curriculum=resolve_curriculum(class_info.level),
        )

    def student(self, student_id: int) -> Student:
        for s in self.students:
            if s.id == student_id:
                return s
        raise UnknownStudentError(student_id)

    def without_abandoned(self) -> "ClassSnapshot":
        kept = tuple(s for s in self.students if not s.is_abandoned)
        return ClassSnapshot(
            class_info=self.class_info,
            students=kept,
            subjects=self.subjects,
            grades=self.grades,
            domains=self.domains,
            curriculum=self.curriculum,
        )


class UnknownStudentError(KeyError):
    """Raised when a student id is not part of the snapshot."""

    def __init__(self, student_id):
        super().__init__(student_id)
        self.student_id = student_id

    def __str__(self) -> str:
        return f"Student '{self.student_id}' not found in class snapshot."


# ── Engine results ──────────────────────────────────────────────────

@dataclass(frozen=True)
class StudentRanks:
    """One rank per aggregate column. None means unranked for that column."""

    p1: Optional[int] = None
    p2: Optional[int] = None
    ex1: Optional[int] = None
    tot1: Optional[int] = None
    p3: Optional[int] = None
    p4: Optional[int] = None
    ex2: Optional[int] = None
    tot2: Optional[int] = None
    tg: Optional[int] = None

    def as_dict(self) -> Dict[str, Optional[int]]:
        return {c: getattr(self, c) for c in RANK_COLUMNS}


@dataclass(frozen=True)
class SubjectDetail:
    label: str
    points: float
    max_points: float


@dataclass(frozen=True)
class RankedStudent:
    """
    One palmarès line. ``percentage`` is the one-decimal display value;
    ``ratio`` is the unrounded percentage the mention and decision use.
    """

    student: Student
    percentage: float
    rank: Optional[int]
    mention: Optional[str]
    is_unranked: bool
    failed_subjects: Tuple[str, ...] = ()
    subject_details: Tuple[SubjectDetail, ...] = field(default_factory=tuple)
    ratio: Optional[float] = None

    @property
    def exact_percentage(self) -> float:
        return self.percentage if self.ratio is None else self.ratio
