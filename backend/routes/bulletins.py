"""
Bulletin routes — report-card numbers for one student or a whole class.
"""

from fastapi import APIRouter, HTTPException

from engine.bulletin import compute_bulletin, compute_class_bulletins
from engine.classification import get_all_mention_thresholds
from engine.models import UnknownStudentError
from routes.payload import PASS_MARK, snapshot_from_payload

router = APIRouter()


@router.post("/student/{student_id}")
async def student_bulletin(student_id: int, payload: dict):
    """Subject cells, grouped subtotals, totals, percentages, mentions and places."""
    snapshot = snapshot_from_payload(payload)
    try:
        return compute_bulletin(snapshot, student_id, pass_mark=PASS_MARK)
    except UnknownStudentError as e:
        raise HTTPException(404, str(e))


@router.post("/class")
async def class_bulletins(payload: dict):
    """Every report card of the class, from one shared ranking pass."""
    snapshot = snapshot_from_payload(payload)
    return compute_class_bulletins(snapshot, pass_mark=PASS_MARK)


@router.get("/scale")
async def mention_scale():
    """Mention bands and the pass mark, for legends."""
    return {"pass_mark": PASS_MARK, "mentions": get_all_mention_thresholds()}
