from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from courtside.core.config import settings

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run one logical operation as a single transaction.

    Everything flushed inside the block is committed together, or rolled back
    together if the block raises.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
