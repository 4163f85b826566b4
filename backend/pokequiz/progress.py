from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .dataset import Dataset, Record
from .errors import NotFoundError
from .models import UserStat


logger = logging.getLogger(__name__)


class CategoryCounter(BaseModel):
    total: int = 0
    correct: int = 0


class AnswerResult(BaseModel):
    correct: bool
    truth: Record


class ProgressRecord(BaseModel):
    id: Optional[int] = None
    user_id: int
    total_questions: int = 0
    total_correct: int = 0
    missed_ids: List[int] = Field(default_factory=list)
    regional_stats: Dict[str, CategoryCounter] = Field(default_factory=dict)
    migrated: bool = False


# --- JSON text columns ---

def decode_missed(text: str | None) -> List[int]:
    if not text or text == "null":
        return []
    try:
        raw = json.loads(text)
        ids = [int(i) for i in raw]
    except (ValueError, TypeError):
        logger.warning("Could not decode missed ids %r; treating as empty", text)
        return []
    # Keep first occurrence order, drop duplicates
    return list(dict.fromkeys(ids))


def encode_missed(ids: Iterable[int]) -> str:
    return json.dumps(list(ids))


def decode_regional(text: str | None) -> Dict[str, CategoryCounter]:
    if not text or text in ("{}", "null"):
        return {}
    try:
        raw = json.loads(text)
        return {str(k): CategoryCounter(**v) for k, v in raw.items()}
    except (ValueError, TypeError, AttributeError):
        logger.error("Error decoding regional stats %r. Initializing new map.", text)
        return {}


def encode_regional(stats: Dict[str, CategoryCounter]) -> str:
    return json.dumps({k: v.model_dump() for k, v in stats.items()})


# --- per-user serialization ---

class _UserLock:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


# Entries live only while some thread holds or waits on them
_user_locks: Dict[int, _UserLock] = {}
_user_locks_guard = threading.Lock()


@contextmanager
def _user_lock(user_id: int) -> Iterator[None]:
    with _user_locks_guard:
        entry = _user_locks.get(user_id)
        if entry is None:
            entry = _user_locks[user_id] = _UserLock()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _user_locks_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _user_locks[user_id]


def get_or_create_stat(db: Session, user_id: int, *, for_update: bool = False) -> UserStat:
    stmt = select(UserStat).where(UserStat.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    stat = db.execute(stmt).scalar_one_or_none()
    if stat is None:
        stat = UserStat(user_id=user_id, total_questions=0, total_correct=0, wrong_answers="[]", regional_stats="{}")
        db.add(stat)
        db.flush()
    return stat


def grade_answer(dataset: Dataset, record_id: int, submitted_name: str) -> AnswerResult:
    truth = dataset.get(record_id)
    if truth is None:
        raise NotFoundError(f"Pokemon {record_id} not found")
    return AnswerResult(correct=submitted_name == truth.name, truth=truth)


def apply_answer(stat: UserStat, record: Record, correct: bool) -> None:
    """Mutate a progress row for one graded answer."""
    stat.total_questions = (stat.total_questions or 0) + 1

    if record.category:
        regional = decode_regional(stat.regional_stats)
        counter = regional.setdefault(record.category, CategoryCounter())
        counter.total += 1
        if correct:
            counter.correct += 1
        stat.regional_stats = encode_regional(regional)
    else:
        logger.warning("Could not find category for pokemon ID %d to update regional stats.", record.id)

    missed = decode_missed(stat.wrong_answers)
    if correct:
        stat.total_correct = (stat.total_correct or 0) + 1
        missed = [i for i in missed if i != record.id]
    elif record.id not in missed:
        missed.append(record.id)
    stat.wrong_answers = encode_missed(missed)


def record_answer(db: Session, dataset: Dataset, user_id: int, record_id: int, submitted_name: str) -> AnswerResult:
    """Grade an answer and fold it into the user's progress in one transaction.

    A failed write is logged and the graded result is still returned.
    """
    result = grade_answer(dataset, record_id, submitted_name)
    with _user_lock(user_id):
        try:
            stat = get_or_create_stat(db, user_id, for_update=True)
            apply_answer(stat, result.truth, result.correct)
            db.commit()
        except SQLAlchemyError as err:
            db.rollback()
            logger.error("Failed to update user stats for user %d: %s", user_id, err)
    return result


def migrate_regional_stats(missed_ids: Iterable[int], dataset: Dataset) -> Dict[str, CategoryCounter]:
    """Rebuild per-category totals from the missed set alone.

    Only misses are recoverable: correct answers and corrected mistakes left
    no trace in the old format, so the result undercounts.
    """
    regional: Dict[str, CategoryCounter] = {}
    for record_id in dict.fromkeys(missed_ids):
        record = dataset.get(record_id)
        if record is None or not record.category:
            continue
        regional.setdefault(record.category, CategoryCounter()).total += 1
    return regional


def get_progress(db: Session, dataset: Dataset, user_id: int) -> ProgressRecord:
    with _user_lock(user_id):
        try:
            stat = get_or_create_stat(db, user_id)
            db.commit()
        except SQLAlchemyError as err:
            db.rollback()
            logger.error("Failed to load stats for user %d: %s", user_id, err)
            return ProgressRecord(user_id=user_id)

    progress = ProgressRecord(
        id=stat.id,
        user_id=user_id,
        total_questions=stat.total_questions or 0,
        total_correct=stat.total_correct or 0,
        missed_ids=decode_missed(stat.wrong_answers),
        regional_stats=decode_regional(stat.regional_stats),
    )
    if not progress.regional_stats and progress.total_questions > 0:
        logger.info("Migrating regional stats for user %d...", user_id)
        progress.regional_stats = migrate_regional_stats(progress.missed_ids, dataset)
        progress.migrated = True
    return progress
