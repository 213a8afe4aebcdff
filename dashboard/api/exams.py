from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from dashboard.core.database import get_db
from dashboard.core.auth import get_current_user, require_roles, Identity, ROLE_ADMIN
from dashboard.services import attempts, authoring, catalog

router = APIRouter()

class ExamRow(BaseModel):
    id: int; title: str; description: Optional[str] = None; duration_minutes: int

class QuestionIn(BaseModel):
    type: str = Field(min_length=1, max_length=20)
    question_text: str = Field(min_length=1)
    choices: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    marks: int = Field(default=1, gt=0)
    order_index: Optional[int] = None

class ExamCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    duration_minutes: int = Field(default=60, gt=0)
    questions: List[QuestionIn] = []

class WholeExamSubmit(BaseModel):
    answers: Dict[str, Optional[str]]

class AnswerSubmit(BaseModel):
    question_id: int
    answer_text: Optional[str] = None

class AnswerResult(BaseModel):
    message: str
    is_correct: bool
    marks_obtained: int

class FinishResult(BaseModel):
    message: str
    total_score: int

@router.get("", response_model=List[ExamRow])
def list_exams(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return [catalog.exam_summary(e) for e in catalog.list_exams(db)]

@router.post("", status_code=201)
def create_exam(payload: ExamCreate, user: Identity = Depends(require_roles(ROLE_ADMIN)), db: Session = Depends(get_db)):
    return authoring.create_exam(db, payload.title, payload.description, payload.duration_minutes,
                                 [q.model_dump() for q in payload.questions])

@router.get("/{exam_id}")
def get_exam(exam_id: int, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return catalog.get_exam_with_questions(db, exam_id)

@router.post("/{exam_id}/submit")
def submit_exam(exam_id: int, payload: WholeExamSubmit, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    result = attempts.submit_whole_exam(db, user, exam_id, payload.answers)
    return {"message": "Exam submitted successfully", "result": attempts.result_payload(result)}

@router.get("/{exam_id}/start")
def start_exam(exam_id: int, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return attempts.start_attempt(db, user, exam_id)

@router.post("/{attempt_id}/answer", response_model=AnswerResult)
def submit_answer(attempt_id: int, payload: AnswerSubmit, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    grade = attempts.submit_answer(db, user, attempt_id, payload.question_id, payload.answer_text)
    return AnswerResult(message="Answer saved", is_correct=grade.is_correct, marks_obtained=grade.marks_obtained)

@router.post("/{attempt_id}/finish", response_model=FinishResult)
def finish_exam(attempt_id: int, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    attempt = attempts.finish_attempt(db, user, attempt_id)
    return FinishResult(message="Exam submitted", total_score=attempt.total_score or 0)

@router.get("/{attempt_id}/results")
def attempt_results(attempt_id: int, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return attempts.get_results(db, user, attempt_id)
