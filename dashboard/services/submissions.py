import logging
from datetime import datetime, timezone
from typing import Any, Dict, List
from sqlalchemy import select
from sqlalchemy.orm import Session
from dashboard.core.errors import NotFound, ValidationFailed
from dashboard.models.orm import Submission

logger = logging.getLogger(__name__)

MAX_SCORE = 100

def submission_payload(s: Submission) -> Dict[str, Any]:
    return {
        "id": s.id,
        "user_id": s.user_id,
        "task_name": s.task_name,
        "content": s.content,
        "score": s.score,
        "submitted_at": s.submitted_at.isoformat() if s.submitted_at else None,
        "graded_at": s.graded_at.isoformat() if s.graded_at else None,
    }

def create_submission(db: Session, user_id: int, task_name: str, content: str) -> Submission:
    task_name, content = task_name.strip(), content.strip()
    if not task_name or not content:
        raise ValidationFailed("task_name and content required")
    s = Submission(user_id=user_id, task_name=task_name, content=content)
    db.add(s)
    db.commit()
    db.refresh(s)
    logger.info(f"Submission {s.id} for '{task_name}' received from user={user_id}")
    return s

def list_submissions(db: Session, user_id: int) -> List[Submission]:
    return list(db.scalars(
        select(Submission).where(Submission.user_id == user_id).order_by(Submission.submitted_at.desc(), Submission.id.desc())
    ))

def grade_submission(db: Session, submission_id: int, score: int) -> Submission:
    if score < 0 or score > MAX_SCORE:
        raise ValidationFailed(f"score must be in [0,{MAX_SCORE}]")
    s = db.get(Submission, submission_id)
    if s is None:
        raise NotFound("Submission not found")
    s.score = score
    s.graded_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(s)
    logger.info(f"Submission {s.id} graded: score={score}")
    return s
