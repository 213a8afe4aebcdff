import logging
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.orm import Session
from dashboard.core.errors import ValidationFailed
from dashboard.models.orm import Exam, Question, QuestionType
from dashboard.services import catalog

logger = logging.getLogger(__name__)

def _validate_question(position: int, q: Dict[str, Any]) -> None:
    label = f"questions[{position}]"
    if q.get("marks", 1) <= 0:
        raise ValidationFailed(f"{label}: marks must be positive")
    if q["type"] != QuestionType.MCQ.value:
        return
    choices: Optional[List[str]] = q.get("choices")
    if not choices:
        raise ValidationFailed(f"{label}: mcq questions need choices")
    if q.get("correct_answer") not in choices:
        raise ValidationFailed(f"{label}: correct_answer must be one of the choices")

def create_exam(db: Session, title: str, description: Optional[str], duration_minutes: int,
                questions: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    if not title.strip():
        raise ValidationFailed("title required")
    seen = set()
    for pos, q in enumerate(questions):
        _validate_question(pos, q)
        order_index = q.get("order_index")
        order_index = pos if order_index is None else order_index
        if order_index in seen:
            raise ValidationFailed(f"questions[{pos}]: duplicate order_index {order_index}")
        seen.add(order_index)
    exam = Exam(title=title.strip(), description=description, duration_minutes=duration_minutes)
    db.add(exam); db.flush()
    for pos, q in enumerate(questions):
        order_index = q.get("order_index")
        db.add(Question(
            exam_id=exam.id, type=q["type"], question_text=q["question_text"],
            choices=q.get("choices"), correct_answer=q.get("correct_answer"),
            marks=q.get("marks", 1), order_index=pos if order_index is None else order_index,
        ))
    db.commit()
    logger.info(f"Exam {exam.id} '{exam.title}' created with {len(questions)} questions")
    return catalog.get_exam_with_questions(db, exam.id)
