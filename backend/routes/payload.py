"""
Shared request handling for the engine routes.
"""

import os

from fastapi import HTTPException

from engine.models import ClassSnapshot
from engine.parser import parse_snapshot

PASS_MARK = int(os.getenv("PASS_MARK", "50"))


def snapshot_from_payload(payload: dict) -> ClassSnapshot:
    """Parse the class snapshot from a request body."""
    if not payload or not payload.get("class_info"):
        raise HTTPException(400, "No data provided.")
    try:
        return parse_snapshot(payload)
    except ValueError as e:
        raise HTTPException(400, str(e))
