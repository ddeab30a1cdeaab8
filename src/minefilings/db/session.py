from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from minefilings.db.models import SessionLocal, get_engine


@contextmanager
def get_session_context(engine: Engine | None = None) -> Generator[Session]:
    db = SessionLocal(bind=engine or get_engine())
    try:
        yield db
    finally:
        db.close()
