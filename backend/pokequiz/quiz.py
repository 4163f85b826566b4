from __future__ import annotations

import logging
import secrets
from typing import Iterable, List

from pydantic import BaseModel

from .dataset import ALL_CATEGORY, Dataset, Record, Stats
from .errors import NotFoundError


logger = logging.getLogger(__name__)

MAX_DISTRACTORS = 3

# Backed by os.urandom; safe to share between threads
_rng = secrets.SystemRandom()


class QuizQuestion(BaseModel):
    id: int
    stats: Stats
    options: List[str]
    height: float
    weight: float
    types: List[str]


def build_options(target: Record, pool: Iterable[Record]) -> List[str]:
    """Target name plus up to three distinct distractor names, in random order."""
    candidates = [r for r in pool if r.id != target.id and r.name != target.name]
    _rng.shuffle(candidates)
    options: List[str] = []
    for record in candidates:
        if record.name in options:
            continue
        options.append(record.name)
        if len(options) == MAX_DISTRACTORS:
            break
    options.append(target.name)
    _rng.shuffle(options)
    return options


def _to_question(target: Record, options: List[str]) -> QuizQuestion:
    # The target's name is only reachable through the options
    return QuizQuestion(
        id=target.id,
        stats=target.stats,
        options=options,
        height=target.height,
        weight=target.weight,
        types=list(target.types),
    )


def next_question(dataset: Dataset, category: str, review_mode: bool, missed_ids: Iterable[int]) -> QuizQuestion:
    if review_mode:
        reviewable = [dataset.get(i) for i in missed_ids]
        reviewable = [r for r in reviewable if r is not None]
        if not reviewable:
            raise NotFoundError("nothing to review")
        target = _rng.choice(reviewable)
        pool = dataset.pool(target.category) if target.category else []
        if not pool:
            logger.warning(
                "Could not find options pool for category '%s'. Falling back to all Pokemon.",
                target.category,
            )
            pool = dataset.pool(ALL_CATEGORY)
        return _to_question(target, build_options(target, pool))

    pool = dataset.pool(category)
    if not pool:
        raise NotFoundError(f"unknown or empty category: {category}")
    target = _rng.choice(pool)
    return _to_question(target, build_options(target, pool))
