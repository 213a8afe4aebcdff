from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dashboard.core.config import settings

engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def init_db():
    from dashboard.models.orm import Base
    Base.metadata.create_all(bind=engine)
