from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..dataset import Dataset
from ..db import get_db
from ..progress import encode_missed, get_progress
from .auth import User, get_current_user
from .quiz import current_dataset


router = APIRouter(tags=["stats"])


@router.get("/stats")
def get_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    dataset: Dataset = Depends(current_dataset),
):
    progress = get_progress(db, dataset, user.id)
    return {
        "ID": progress.id,
        "TotalQuestions": progress.total_questions,
        "TotalCorrect": progress.total_correct,
        # Kept as JSON text; the frontend parses it
        "WrongAnswers": encode_missed(progress.missed_ids),
        "RegionalStats": {k: v.model_dump() for k, v in progress.regional_stats.items()},
    }
