from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from dashboard.core.errors import Conflict, InvalidState, NotFound, Unauthorized, ValidationFailed
from dashboard.models.orm import AttemptAnswer, AttemptStatus, Exam, ExamAttempt, ExamResult, Question
from dashboard.services import attempts

from conftest import identity_for, make_user, question_ids


def answer_rows(db, attempt_id):
    return db.scalars(select(AttemptAnswer).where(AttemptAnswer.attempt_id == attempt_id)).all()


def test_start_creates_attempt_with_ordered_questions(db, student, exam):
    started = attempts.start_attempt(db, identity_for(student), exam.id)
    attempt = db.get(ExamAttempt, started["attempt_id"])
    assert attempt.status == AttemptStatus.IN_PROGRESS.value
    assert attempt.started_at is not None
    assert attempt.finished_at is None
    assert [q["marks"] for q in started["questions"]] == [5, 3, 10]


def test_start_twice_reuses_in_progress_attempt(db, student, exam):
    me = identity_for(student)
    first = attempts.start_attempt(db, me, exam.id)
    q1 = question_ids(db, exam)[0]
    attempts.submit_answer(db, me, first["attempt_id"], q1, "B")
    second = attempts.start_attempt(db, me, exam.id)
    assert second["attempt_id"] == first["attempt_id"]
    assert db.scalar(select(func.count()).select_from(ExamAttempt)) == 1
    assert len(answer_rows(db, first["attempt_id"])) == 1


def test_start_is_per_user(db, student, other_student, exam):
    a = attempts.start_attempt(db, identity_for(student), exam.id)
    b = attempts.start_attempt(db, identity_for(other_student), exam.id)
    assert a["attempt_id"] != b["attempt_id"]


def test_start_unknown_exam_creates_nothing(db, student):
    with pytest.raises(NotFound):
        attempts.start_attempt(db, identity_for(student), 4242)
    assert db.scalar(select(func.count()).select_from(ExamAttempt)) == 0


def test_store_rejects_second_in_progress_attempt(db, student, exam):
    attempts.start_attempt(db, identity_for(student), exam.id)
    db.add(ExamAttempt(exam_id=exam.id, user_id=student.id, status="in_progress",
                       started_at=db.scalar(select(ExamAttempt.started_at))))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def open_competing_attempt(session_factory, exam, user):
    other = session_factory()
    try:
        winner = ExamAttempt(exam_id=exam.id, user_id=user.id, status="in_progress",
                             started_at=datetime.now(timezone.utc))
        other.add(winner)
        other.commit()
        return winner.id
    finally:
        other.close()


def test_start_reuses_attempt_opened_by_concurrent_start(db, session_factory, student, exam, monkeypatch):
    real_find = attempts._find_in_progress
    calls = []

    def find_after_race(session, exam_id, user_id):
        calls.append(exam_id)
        if len(calls) == 1:
            # the concurrent start commits between our lookup and our insert
            return None
        return real_find(session, exam_id, user_id)

    winner_id = open_competing_attempt(session_factory, exam, student)
    monkeypatch.setattr(attempts, "_find_in_progress", find_after_race)

    started = attempts.start_attempt(db, identity_for(student), exam.id)
    assert started["attempt_id"] == winner_id
    assert len(started["questions"]) == 3
    assert len(calls) == 2
    assert db.scalar(select(func.count()).select_from(ExamAttempt)) == 1


def test_start_conflicts_when_winning_attempt_cannot_be_read(db, session_factory, student, exam, monkeypatch):
    open_competing_attempt(session_factory, exam, student)
    monkeypatch.setattr(attempts, "_find_in_progress", lambda session, exam_id, user_id: None)

    with pytest.raises(Conflict, match="Could not open an attempt"):
        attempts.start_attempt(db, identity_for(student), exam.id)
    assert db.scalar(select(func.count()).select_from(ExamAttempt)) == 1


def test_resubmission_overwrites_single_row(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    q1 = question_ids(db, exam)[0]
    first = attempts.submit_answer(db, me, attempt_id, q1, "A")
    second = attempts.submit_answer(db, me, attempt_id, q1, "B")
    assert (first.is_correct, first.marks_obtained) == (False, 0)
    assert (second.is_correct, second.marks_obtained) == (True, 5)
    [row] = answer_rows(db, attempt_id)
    assert (row.answer_text, row.is_correct, row.marks_obtained) == ("B", True, 5)


def test_free_text_answer_is_recorded_without_marks(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    q3 = question_ids(db, exam)[2]
    grade = attempts.submit_answer(db, me, attempt_id, q3, "Splitting tables to remove redundancy")
    assert (grade.is_correct, grade.marks_obtained) == (False, 0)
    [row] = answer_rows(db, attempt_id)
    assert row.answer_text.startswith("Splitting")


def test_submit_answer_validations(db, student, other_student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    q1 = question_ids(db, exam)[0]

    with pytest.raises(NotFound):
        attempts.submit_answer(db, me, 9999, q1, "B")
    with pytest.raises(NotFound):
        attempts.submit_answer(db, me, attempt_id, 9999, "B")
    with pytest.raises(Unauthorized):
        attempts.submit_answer(db, identity_for(other_student), attempt_id, q1, "B")

    other = Exam(title="Other", duration_minutes=5)
    db.add(other); db.flush()
    foreign = Question(exam_id=other.id, type="mcq", question_text="?", choices=["B"], correct_answer="B",
                       marks=1, order_index=0)
    db.add(foreign); db.commit()
    with pytest.raises(ValidationFailed):
        attempts.submit_answer(db, me, attempt_id, foreign.id, "B")


def test_finish_sums_marks(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    q1, q2, q3 = question_ids(db, exam)
    attempts.submit_answer(db, me, attempt_id, q1, "B")
    attempts.submit_answer(db, me, attempt_id, q2, "A")
    attempts.submit_answer(db, me, attempt_id, q3, "anything")
    attempt = attempts.finish_attempt(db, me, attempt_id)
    assert attempt.total_score == 8
    assert attempt.status == AttemptStatus.COMPLETED.value
    assert attempt.finished_at is not None


def test_finish_without_answers_scores_zero(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    assert attempts.finish_attempt(db, me, attempt_id).total_score == 0


def test_finish_twice_is_a_no_op(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    q1 = question_ids(db, exam)[0]
    attempts.submit_answer(db, me, attempt_id, q1, "B")
    first = attempts.finish_attempt(db, me, attempt_id)
    finished_at = first.finished_at
    second = attempts.finish_attempt(db, me, attempt_id)
    assert second.total_score == 5
    assert second.finished_at == finished_at


def test_completed_attempt_rejects_answers_and_start_opens_new_one(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    attempts.finish_attempt(db, me, attempt_id)
    q1 = question_ids(db, exam)[0]
    with pytest.raises(InvalidState):
        attempts.submit_answer(db, me, attempt_id, q1, "B")
    fresh = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    assert fresh != attempt_id


def test_results_join_question_details(db, student, exam):
    me = identity_for(student)
    attempt_id = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    q1, q2, _ = question_ids(db, exam)
    attempts.submit_answer(db, me, attempt_id, q2, "C")
    attempts.submit_answer(db, me, attempt_id, q1, "B")
    results = attempts.get_results(db, me, attempt_id)
    assert results["attempt"]["id"] == attempt_id
    assert [a["question_id"] for a in results["answers"]] == [q1, q2]
    first = results["answers"][0]
    assert first["question_text"] == "Which clause filters rows?"
    assert first["type"] == "mcq"
    assert first["choices"] == ["A", "B", "C"]
    assert first["correct_answer"] == "B"
    assert first["is_correct"] is True


def test_results_access(db, student, other_student, exam):
    admin = make_user(db, "grader", role="admin")
    attempt_id = attempts.start_attempt(db, identity_for(student), exam.id)["attempt_id"]
    with pytest.raises(NotFound):
        attempts.get_results(db, identity_for(student), 12345)
    with pytest.raises(Unauthorized):
        attempts.get_results(db, identity_for(other_student), attempt_id)
    assert attempts.get_results(db, identity_for(admin), attempt_id)["answers"] == []


def test_scenario_from_start_to_rescored_second_attempt(db, student, exam):
    me = identity_for(student)
    q1, q2, _ = question_ids(db, exam)

    a1 = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    g1 = attempts.submit_answer(db, me, a1, q1, "B")
    g2 = attempts.submit_answer(db, me, a1, q2, "C")
    assert (g1.is_correct, g1.marks_obtained) == (True, 5)
    assert (g2.is_correct, g2.marks_obtained) == (False, 0)
    assert attempts.finish_attempt(db, me, a1).total_score == 5

    with pytest.raises(InvalidState):
        attempts.submit_answer(db, me, a1, q2, "A")
    assert attempts.finish_attempt(db, me, a1).total_score == 5

    a2 = attempts.start_attempt(db, me, exam.id)["attempt_id"]
    attempts.submit_answer(db, me, a2, q1, "B")
    attempts.submit_answer(db, me, a2, q2, "A")
    assert attempts.finish_attempt(db, me, a2).total_score == 8


def test_whole_exam_submission_scores_mcq_only(db, student, exam):
    q1, q2, q3 = question_ids(db, exam)
    answers = {str(q1): "B", str(q2): "a", str(q3): "free text"}
    result = attempts.submit_whole_exam(db, identity_for(student), exam.id, answers)
    assert result.total_score == 5
    assert result.answers == answers


def test_whole_exam_submission_keeps_every_sitting(db, student, exam):
    me = identity_for(student)
    q1, q2, _ = question_ids(db, exam)
    attempts.submit_whole_exam(db, me, exam.id, {str(q1): "B"})
    attempts.submit_whole_exam(db, me, exam.id, {str(q1): "B", str(q2): "A"})
    scores = db.scalars(select(ExamResult.total_score).order_by(ExamResult.id)).all()
    assert scores == [5, 8]


def test_whole_exam_submission_unknown_exam(db, student):
    with pytest.raises(NotFound):
        attempts.submit_whole_exam(db, identity_for(student), 777, {})
