"""
Read-only view over exams and their questions.

Question rows are converted to ``QuestionView`` values here, which is the only
place the stored ``choices`` representation is decoded.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dashboard.core.errors import NotFound
from dashboard.models.orm import Exam, Question

logger = logging.getLogger(__name__)


def decode_choices(raw: Any) -> Optional[List[str]]:
    """Normalize a stored choice set to a list of option strings or None.

    Text is JSON-decoded; structured values pass through untouched.
    """
    if raw is None:
        return None
    if isinstance(raw, (str, bytes)):
        decoded = json.loads(raw)
        if decoded is None:
            return None
        if not isinstance(decoded, list):
            raise ValueError(f"choices must decode to a list, got {type(decoded).__name__}")
        return [str(c) for c in decoded]
    if isinstance(raw, (list, tuple)):
        return [str(c) for c in raw]
    raise ValueError(f"unsupported choices representation: {type(raw).__name__}")


@dataclass(frozen=True)
class QuestionView:
    id: int
    exam_id: int
    type: str
    question_text: str
    choices: Optional[List[str]]
    correct_answer: Optional[str]
    marks: int
    order_index: int

    @classmethod
    def from_row(cls, q: Question) -> "QuestionView":
        try:
            choices = decode_choices(q.choices)
        except ValueError:
            logger.error(f"Question {q.id} has an undecodable choice set")
            raise
        return cls(
            id=q.id, exam_id=q.exam_id, type=q.type, question_text=q.question_text,
            choices=choices, correct_answer=q.correct_answer, marks=q.marks, order_index=q.order_index,
        )

    def public(self) -> Dict[str, Any]:
        """Payload shown while taking an exam; the answer key stays server side."""
        return {"id": self.id, "type": self.type, "question_text": self.question_text,
                "choices": self.choices, "marks": self.marks}


def exam_summary(exam: Exam) -> Dict[str, Any]:
    return {"id": exam.id, "title": exam.title, "description": exam.description,
            "duration_minutes": exam.duration_minutes}


def list_exams(db: Session) -> List[Exam]:
    return list(db.scalars(select(Exam).order_by(Exam.created_at.desc(), Exam.id.desc())))


def get_exam(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise NotFound("Exam not found")
    return exam


def list_questions(db: Session, exam_id: int) -> List[QuestionView]:
    rows = db.scalars(
        select(Question).where(Question.exam_id == exam_id).order_by(Question.order_index, Question.id)
    )
    return [QuestionView.from_row(q) for q in rows]


def get_question(db: Session, question_id: int) -> QuestionView:
    q = db.get(Question, question_id)
    if q is None:
        raise NotFound("Question not found")
    return QuestionView.from_row(q)


def get_exam_with_questions(db: Session, exam_id: int) -> Dict[str, Any]:
    exam = get_exam(db, exam_id)
    questions = list_questions(db, exam_id)
    return {**exam_summary(exam), "questions": [q.public() for q in questions]}
