"""
Rank routes — per-student and whole-class rank tables.
"""

from fastapi import APIRouter, HTTPException

from engine.aggregation import Policy
from engine.models import UnknownStudentError
from engine.ranking import class_ranks, student_ranks
from routes.payload import snapshot_from_payload

router = APIRouter()


@router.post("/student/{student_id}")
async def ranks_for_student(student_id: int, payload: dict, policy: Policy = Policy.STRICT):
    """
    Rank of one student in every column (P1 … TG), by position.
    Equal totals get consecutive places.
    """
    snapshot = snapshot_from_payload(payload)
    try:
        result = student_ranks(snapshot, student_id, policy=policy)
    except UnknownStudentError as e:
        raise HTTPException(404, str(e))
    return {"ranks": result["ranks"].as_dict(), "total_students": result["total_students"]}


@router.post("/class")
async def ranks_for_class(payload: dict, policy: Policy = Policy.LENIENT):
    """Competition ranks of every student (ties share a rank)."""
    snapshot = snapshot_from_payload(payload)
    result = class_ranks(snapshot, policy=policy)
    return {
        "ranks": {str(sid): r.as_dict() for sid, r in result["ranks"].items()},
        "total_students": result["total_students"],
    }
