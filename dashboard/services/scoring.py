from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

MCQ = "mcq"

class Gradable(Protocol):
    type: str
    correct_answer: Optional[str]
    marks: int

@dataclass(frozen=True)
class Grade:
    is_correct: bool
    marks_obtained: int

NO_CREDIT = Grade(is_correct=False, marks_obtained=0)

def grade_answer(question: Gradable, submitted: Optional[str]) -> Grade:
    """Exact, case-sensitive match against the stored answer; only MCQs earn marks."""
    if question.type != MCQ or submitted is None or question.correct_answer is None:
        return NO_CREDIT
    if submitted == question.correct_answer:
        return Grade(is_correct=True, marks_obtained=question.marks)
    return NO_CREDIT

def total_score(marks: Iterable[Optional[int]]) -> int:
    return sum(m or 0 for m in marks)
