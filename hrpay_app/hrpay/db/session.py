from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base

from hrpay.core.config import settings

Base = declarative_base()

def make_engine(url: str):
    # SQLite needs check_same_thread off for the Streamlit worker threads
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, future=True, connect_args=connect_args)

engine = make_engine(settings.DB_URL)
SessionLocal = scoped_session(sessionmaker(bind=engine, autoflush=False, autocommit=False))

def init_db(bind=None):
    # Import models here so they are registered on Base
    import hrpay.db.models as _models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
