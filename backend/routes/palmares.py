"""
Palmarès routes — ranked class leaderboard.
"""

from fastapi import APIRouter, HTTPException

from engine.aggregation import PERIOD_GROUPS, group_code
from engine.ranking import compute_palmares
from routes.payload import PASS_MARK, snapshot_from_payload

router = APIRouter()


@router.post("/palmares")
async def palmares(payload: dict, period: str = "SEM1", exclude_abandoned: bool = False):
    """
    Leaderboard for a period, semester or the year (P1 … ANNUAL, or a column code p1 … tg).
    Students missing a grade are listed last, unranked.
    """
    try:
        selection = group_code(period)
    except ValueError:
        raise HTTPException(400, f"Unknown period '{period}'. Use one of: {', '.join(PERIOD_GROUPS)}.")
    snapshot = snapshot_from_payload(payload)
    return compute_palmares(
        snapshot,
        selection,
        exclude_abandoned=exclude_abandoned,
        pass_mark=PASS_MARK,
    )
