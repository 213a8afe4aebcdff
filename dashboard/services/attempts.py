"""
Exam attempt lifecycle: start (find-or-create), answer (graded upsert),
finish (aggregate and close) and result review, plus the coarse
whole-exam submission path.

Every operation takes the caller's ``Identity`` explicitly and owns no state
between calls; the session passed in is committed by the operation itself.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dashboard.core.auth import Identity, ROLE_ADMIN
from dashboard.core.errors import Conflict, InvalidState, NotFound, Unauthorized, ValidationFailed
from dashboard.models.orm import AttemptAnswer, AttemptStatus, ExamAttempt, ExamResult, Question
from dashboard.services import catalog
from dashboard.services.scoring import Grade, grade_answer, total_score

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _find_in_progress(db: Session, exam_id: int, user_id: int) -> Optional[ExamAttempt]:
    return db.scalar(
        select(ExamAttempt).where(
            ExamAttempt.exam_id == exam_id,
            ExamAttempt.user_id == user_id,
            ExamAttempt.status == AttemptStatus.IN_PROGRESS.value,
        )
    )


def _load_attempt(db: Session, attempt_id: int) -> ExamAttempt:
    attempt = db.get(ExamAttempt, attempt_id)
    if attempt is None:
        raise NotFound("Attempt not found")
    return attempt


def _load_own_attempt(db: Session, identity: Identity, attempt_id: int, allow_admin: bool = False) -> ExamAttempt:
    attempt = _load_attempt(db, attempt_id)
    if attempt.user_id != identity.user_id and not (allow_admin and identity.has_role(ROLE_ADMIN)):
        raise Unauthorized("Attempt belongs to another user")
    return attempt


def attempt_payload(attempt: ExamAttempt) -> Dict[str, Any]:
    return {
        "id": attempt.id,
        "exam_id": attempt.exam_id,
        "user_id": attempt.user_id,
        "status": attempt.status,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "finished_at": attempt.finished_at.isoformat() if attempt.finished_at else None,
        "total_score": attempt.total_score,
    }


def start_attempt(db: Session, identity: Identity, exam_id: int) -> Dict[str, Any]:
    """Resume the caller's in-progress attempt for the exam or open a new one."""
    catalog.get_exam(db, exam_id)
    attempt = _find_in_progress(db, exam_id, identity.user_id)
    if attempt is None:
        attempt = ExamAttempt(
            exam_id=exam_id, user_id=identity.user_id,
            status=AttemptStatus.IN_PROGRESS.value, started_at=_now(),
        )
        db.add(attempt)
        try:
            db.commit()
            logger.info(f"Attempt {attempt.id} started: exam={exam_id} user={identity.user_id}")
        except IntegrityError:
            # a concurrent start won the partial unique index
            db.rollback()
            attempt = _find_in_progress(db, exam_id, identity.user_id)
            if attempt is None:
                raise Conflict("Could not open an attempt for this exam")
            logger.warning(f"Concurrent start for exam={exam_id} user={identity.user_id}, reusing attempt {attempt.id}")
    questions = catalog.list_questions(db, exam_id)
    return {"attempt_id": attempt.id, "questions": [q.public() for q in questions]}


def _upsert_answer(db: Session, attempt_id: int, question_id: int, answer_text: Optional[str], grade: Grade) -> None:
    dialect = db.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Answer upsert is not supported on {dialect}")
    stmt = insert(AttemptAnswer).values(
        attempt_id=attempt_id, question_id=question_id, answer_text=answer_text,
        is_correct=grade.is_correct, marks_obtained=grade.marks_obtained, answered_at=_now(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["attempt_id", "question_id"],
        set_={
            "answer_text": stmt.excluded.answer_text,
            "is_correct": stmt.excluded.is_correct,
            "marks_obtained": stmt.excluded.marks_obtained,
            "answered_at": stmt.excluded.answered_at,
        },
    )
    db.execute(stmt)


def submit_answer(db: Session, identity: Identity, attempt_id: int, question_id: int,
                  answer_text: Optional[str]) -> Grade:
    attempt = _load_own_attempt(db, identity, attempt_id)
    if attempt.status != AttemptStatus.IN_PROGRESS.value:
        raise InvalidState("Attempt is already completed")
    question = catalog.get_question(db, question_id)
    if question.exam_id != attempt.exam_id:
        raise ValidationFailed("Question does not belong to this exam")
    grade = grade_answer(question, answer_text)
    _upsert_answer(db, attempt.id, question.id, answer_text, grade)
    db.commit()
    return grade


def finish_attempt(db: Session, identity: Identity, attempt_id: int) -> ExamAttempt:
    """Close the attempt with the sum of its answer marks.

    Finishing a completed attempt returns it unchanged.
    """
    attempt = _load_own_attempt(db, identity, attempt_id)
    if attempt.status == AttemptStatus.COMPLETED.value:
        return attempt
    marks = db.scalars(select(AttemptAnswer.marks_obtained).where(AttemptAnswer.attempt_id == attempt.id))
    attempt.total_score = total_score(marks)
    attempt.status = AttemptStatus.COMPLETED.value
    attempt.finished_at = _now()
    db.commit()
    logger.info(f"Attempt {attempt.id} completed with total_score={attempt.total_score}")
    return attempt


def get_results(db: Session, identity: Identity, attempt_id: int) -> Dict[str, Any]:
    attempt = _load_own_attempt(db, identity, attempt_id, allow_admin=True)
    rows = db.execute(
        select(AttemptAnswer, Question)
        .join(Question, Question.id == AttemptAnswer.question_id)
        .where(AttemptAnswer.attempt_id == attempt.id)
        .order_by(Question.order_index, Question.id)
    ).all()
    answers: List[Dict[str, Any]] = []
    for answer, q in rows:
        question = catalog.QuestionView.from_row(q)
        answers.append({
            "id": answer.id,
            "attempt_id": answer.attempt_id,
            "question_id": answer.question_id,
            "answer_text": answer.answer_text,
            "is_correct": answer.is_correct,
            "marks_obtained": answer.marks_obtained,
            "question_text": question.question_text,
            "type": question.type,
            "choices": question.choices,
            "correct_answer": question.correct_answer,
            "marks": question.marks,
        })
    return {"attempt": attempt_payload(attempt), "answers": answers}


def submit_whole_exam(db: Session, identity: Identity, exam_id: int, answers: Mapping[str, Optional[str]]) -> ExamResult:
    """Grade a complete answer sheet in one call and store it as an ExamResult.

    Each call records a new sitting; earlier results for the same exam are kept.
    """
    catalog.get_exam(db, exam_id)
    questions = catalog.list_questions(db, exam_id)
    score = total_score(grade_answer(q, answers.get(str(q.id))).marks_obtained for q in questions)
    result = ExamResult(exam_id=exam_id, user_id=identity.user_id, answers=dict(answers), total_score=score)
    db.add(result)
    db.commit()
    db.refresh(result)
    logger.info(f"Exam {exam_id} submitted by user={identity.user_id}: total_score={score}")
    return result


def result_payload(result: ExamResult) -> Dict[str, Any]:
    return {
        "id": result.id,
        "exam_id": result.exam_id,
        "user_id": result.user_id,
        "answers": result.answers,
        "total_score": result.total_score,
        "submitted_at": result.submitted_at.isoformat() if result.submitted_at else None,
    }
