"""
db.py
=====
Handles database connection and session management for the dispatch backend.
"""

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import DB_PATH
from .models import Base


def make_engine(db_path: Optional[str] = None):
    """
    SQLite engine for the given file (defaults to RAPIDAID_DB).
    The parent directory is created if missing.
    """
    db_path = db_path or DB_PATH
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)

    # For SQLite, we must disable thread check (sessions run in a threadpool)
    return create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})


def make_session_factory(db_path: Optional[str] = None) -> sessionmaker:
    """Configured session factory bound to a fresh engine."""
    engine = make_engine(db_path)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(session_factory: sessionmaker):
    """
    Creates tables if missing.
    Called once on FastAPI startup.
    """
    Base.metadata.create_all(bind=session_factory.kw["bind"])
