"""
Per-admin sequential roll numbers.

Allocation reads the owner's highest roll number and inserts the next one.
Two requests for the same owner can read the same maximum, so the insert
relies on the unique (owner_id, roll_number) index and retries on a
duplicate key instead of taking a lock.
"""

import logging
from typing import Any, Dict, Iterable

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

import config
from database import create_document
from errors import ConflictError

logger = logging.getLogger(__name__)


def next_roll_number(existing: Iterable[int]) -> int:
    return max(existing, default=0) + 1


def current_roll_numbers(collection, owner_id: str) -> list:
    last = collection.find_one(
        {"owner_id": owner_id},
        projection={"roll_number": 1},
        sort=[("roll_number", DESCENDING)],
    )
    return [last["roll_number"]] if last else []


def insert_with_roll_number(
    collection,
    owner_id: str,
    document: Dict[str, Any],
    max_attempts: int = config.ROLL_NUMBER_MAX_ATTEMPTS,
) -> Dict[str, Any]:
    for attempt in range(1, max_attempts + 1):
        roll_number = next_roll_number(current_roll_numbers(collection, owner_id))
        try:
            return create_document(
                collection, {**document, "owner_id": owner_id, "roll_number": roll_number}
            )
        except DuplicateKeyError:
            logger.warning(
                "Roll number %s for owner %s taken concurrently (attempt %s/%s)",
                roll_number, owner_id, attempt, max_attempts,
            )
    raise ConflictError("Could not allocate a roll number, please retry")
