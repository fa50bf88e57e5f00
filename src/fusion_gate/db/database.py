import os
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv

load_dotenv()

"""
Database connection shared by the whole app.
DATABASE_URL example for PostgreSQL: postgresql+psycopg2://user:password@db:5432/fusion
"""

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fusion_gate.db")

# SQLite refuses connections used from another thread unless told otherwise
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    """
    FastAPI dependency: one session per request, always closed afterwards.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
