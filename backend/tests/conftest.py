"""
Shared fixtures — small class snapshots with known totals.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from engine.models import ClassInfo, ClassSnapshot, Domain, Grade, Period, Student, Subject


def _grades(table):
    """{(student_id, subject_id): {"P1": 18, ...}} → [Grade, ...]"""
    return [
        Grade(student_id=st, subject_id=su, period=Period(p), value=v)
        for (st, su), periods in table.items()
        for p, v in periods.items()
    ]


@pytest.fixture
def make_snapshot():
    def build(level="1ère", students=(), subjects=(), grades=None, domains=()):
        return ClassSnapshot.load(
            ClassInfo(id=1, level=level, option="EB", section="A"),
            list(students),
            list(subjects),
            _grades(grades or {}),
            list(domains),
        )
    return build


@pytest.fixture
def three_students():
    return [
        Student(id=1, last_name="Amani", first_name="Alice"),
        Student(id=2, last_name="Bisimwa", first_name="Bob"),
        Student(id=3, last_name="Chishugi", first_name="Carine"),
    ]


@pytest.fixture
def math20():
    return Subject(
        id=10, name="Mathématiques", code="MATH",
        max_p1=20, max_p2=20, max_exam1=20, max_p3=20, max_p4=20, max_exam2=20,
    )


@pytest.fixture
def scenario(make_snapshot, three_students, math20):
    """
    A: 18 + 16 + 20 = 54/60, B: 10 + 10 + 10 = 30/60, C: P1 never graded.
    """
    return make_snapshot(
        students=three_students,
        subjects=[math20],
        grades={
            (1, 10): {"P1": 18, "P2": 16, "EXAM1": 20},
            (2, 10): {"P1": 10, "P2": 10, "EXAM1": 10},
            (3, 10): {"P2": 12, "EXAM1": 14},
        },
    )


@pytest.fixture
def primary_subject():
    # max_p2 deliberately differs: primary rules must ignore it.
    return Subject(
        id=20, name="Calcul", code="",
        max_p1=10, max_p2=15, max_exam1=20, max_p3=15, max_p4=15, max_exam2=30,
        domain_id=1,
    )


@pytest.fixture
def primary_domains():
    return [
        Domain(id=1, name="Domaine des sciences", display_order=2),
        Domain(id=2, name="Domaine des langues", display_order=1),
    ]
