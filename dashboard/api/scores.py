from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Optional
from sqlalchemy.orm import Session
from dashboard.core.database import get_db
from dashboard.core.auth import get_current_user, Identity
from dashboard.services import leaderboard as board

router = APIRouter()

class LeaderboardRow(BaseModel):
    user_id: int; name: str; username: str; avatar: str; total_score: int; total_submissions: int

class ScoreEntry(BaseModel):
    task_name: str; score: int; kind: str

class MyScores(BaseModel):
    total: int
    scores: List[ScoreEntry]

@router.get("/leaderboard", response_model=List[LeaderboardRow])
def get_leaderboard(limit: Optional[int] = Query(None, ge=1, le=500), user: Identity = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    return board.leaderboard(db, limit)

@router.get("/myscores", response_model=MyScores)
def get_my_scores(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return board.my_scores(db, user.user_id)
