from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..dataset import Dataset, holder
from ..db import get_db
from ..errors import NotFoundError
from ..progress import get_progress, grade_answer, record_answer
from ..quiz import QuizQuestion, next_question
from .auth import User, get_optional_user


router = APIRouter(tags=["quiz"])


class AnswerRequest(BaseModel):
    id: int = Field(gt=0)
    name: str = Field(min_length=1)


def current_dataset() -> Dataset:
    try:
        return holder.get()
    except NotFoundError:
        raise HTTPException(status_code=503, detail="Pokemon data is not loaded yet")


@router.get("/quiz", response_model=QuizQuestion)
def get_quiz(
    region: str = Query(default="kanto"),
    retry: bool = Query(default=False),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    dataset: Dataset = Depends(current_dataset),
):
    missed_ids: list[int] = []
    if retry:
        if user is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        missed_ids = get_progress(db, dataset, user.id).missed_ids
    try:
        return next_question(dataset, region, retry, missed_ids)
    except NotFoundError as err:
        raise HTTPException(status_code=404, detail=str(err))


@router.post("/answer")
def post_answer(
    req: AnswerRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    dataset: Dataset = Depends(current_dataset),
):
    try:
        if user is None:
            result = grade_answer(dataset, req.id, req.name)
        else:
            result = record_answer(db, dataset, user.id, req.id, req.name)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Pokemon not found")
    return {
        "isCorrect": result.correct,
        "correctPokemon": result.truth.model_dump(by_alias=True),
    }
