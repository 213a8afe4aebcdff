from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from dashboard.core.database import get_db
from dashboard.core.auth import get_current_user, require_roles, Identity, ROLE_ADMIN
from dashboard.services import submissions

router = APIRouter()

class SubmissionCreate(BaseModel):
    task_name: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)

class ScoreSet(BaseModel):
    score: int

@router.post("", status_code=201)
def create_submission(payload: SubmissionCreate, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    s = submissions.create_submission(db, user.user_id, payload.task_name, payload.content)
    return {"message": "Submission received", "submission": submissions.submission_payload(s)}

@router.get("")
def list_submissions(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return [submissions.submission_payload(s) for s in submissions.list_submissions(db, user.user_id)]

@router.put("/{submission_id}/score")
def set_score(submission_id: int, payload: ScoreSet, user: Identity = Depends(require_roles(ROLE_ADMIN)), db: Session = Depends(get_db)):
    s = submissions.grade_submission(db, submission_id, payload.score)
    return submissions.submission_payload(s)
