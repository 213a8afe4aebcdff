import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dashboard.core.auth import create_token, hash_password, Identity, ROLE_ADMIN, ROLE_STUDENT
from dashboard.core.database import get_db
from dashboard.main import app
from dashboard.models.orm import Base, Exam, Question, User


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, username, role=ROLE_STUDENT, **fields):
    user = User(username=username, email=f"{username}@school.edu", password_hash=hash_password("secret-pass"),
                role=role, **fields)
    db.add(user); db.commit(); db.refresh(user)
    return user


def identity_for(user):
    return Identity(sub=str(user.id), roles=[user.role])


def auth_header(user):
    return {"Authorization": f"Bearer {create_token(user.id, [user.role])}"}


@pytest.fixture
def student(db):
    return make_user(db, "alex", full_name="Alex Johnson")


@pytest.fixture
def other_student(db):
    return make_user(db, "sarah", full_name="Sarah Chen")


@pytest.fixture
def admin(db):
    return make_user(db, "instructor", role=ROLE_ADMIN)


@pytest.fixture
def exam(db):
    """Two MCQs worth 5 and 3 marks plus one free-text question."""
    e = Exam(title="Databases Midterm", description="SQL basics", duration_minutes=30)
    db.add(e); db.flush()
    db.add_all([
        Question(exam_id=e.id, type="mcq", question_text="Which clause filters rows?",
                 choices=["A", "B", "C"], correct_answer="B", marks=5, order_index=1),
        Question(exam_id=e.id, type="mcq", question_text="Which keyword sorts rows?",
                 choices=["A", "B", "C"], correct_answer="A", marks=3, order_index=2),
        Question(exam_id=e.id, type="text", question_text="Explain normalization.",
                 choices=None, correct_answer=None, marks=10, order_index=3),
    ])
    db.commit(); db.refresh(e)
    return e


def question_ids(db, exam):
    rows = db.query(Question).filter(Question.exam_id == exam.id).order_by(Question.order_index).all()
    return [q.id for q in rows]
