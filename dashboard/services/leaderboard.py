"""
Score aggregation for the leaderboard and the per-user score sheet.

A user's score entries are their graded assignment submissions and their
completed exam attempts; the leaderboard ranks users by the sum of both.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dashboard.core.config import settings
from dashboard.models.orm import AttemptStatus, Exam, ExamAttempt, Submission, User
from dashboard.services.avatars import avatar_url


def leaderboard(db: Session, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    limit = limit or settings.LEADERBOARD_LIMIT
    subs = (
        select(Submission.user_id,
               func.coalesce(func.sum(Submission.score), 0).label("score"),
               func.count(Submission.id).label("count"))
        .group_by(Submission.user_id)
        .subquery()
    )
    exams = (
        select(ExamAttempt.user_id, func.coalesce(func.sum(ExamAttempt.total_score), 0).label("score"))
        .where(ExamAttempt.status == AttemptStatus.COMPLETED.value)
        .group_by(ExamAttempt.user_id)
        .subquery()
    )
    total = (func.coalesce(subs.c.score, 0) + func.coalesce(exams.c.score, 0)).label("total_score")
    count = func.coalesce(subs.c.count, 0).label("total_submissions")
    rows = db.execute(
        select(User, total, count)
        .outerjoin(subs, subs.c.user_id == User.id)
        .outerjoin(exams, exams.c.user_id == User.id)
        .order_by(total.desc(), User.username)
        .limit(limit)
    ).all()
    return [
        {
            "user_id": user.id,
            "name": user.display_name,
            "username": user.username,
            "avatar": avatar_url(user.display_name, user.avatar_url),
            "total_score": int(score),
            "total_submissions": int(submitted),
        }
        for user, score, submitted in rows
    ]


def my_scores(db: Session, user_id: int) -> Dict[str, Any]:
    entries = []
    graded = db.scalars(
        select(Submission).where(Submission.user_id == user_id, Submission.score.is_not(None))
    )
    for s in graded:
        entries.append({"task_name": s.task_name, "score": s.score, "kind": "assignment",
                        "_at": s.graded_at or s.submitted_at})
    attempts = db.execute(
        select(ExamAttempt, Exam.title)
        .join(Exam, Exam.id == ExamAttempt.exam_id)
        .where(ExamAttempt.user_id == user_id, ExamAttempt.status == AttemptStatus.COMPLETED.value)
    ).all()
    for attempt, title in attempts:
        entries.append({"task_name": title, "score": attempt.total_score or 0, "kind": "exam",
                        "_at": attempt.finished_at})
    entries.sort(key=lambda e: (e["_at"] is not None, e["_at"]), reverse=True)
    scores = [{k: v for k, v in e.items() if k != "_at"} for e in entries]
    return {"total": sum(e["score"] for e in scores), "scores": scores}
