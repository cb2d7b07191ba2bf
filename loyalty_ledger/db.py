import os

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

# Load .env file with explicit UTF-8 encoding
load_dotenv(encoding='utf-8')

DEFAULT_DATABASE_URL = "sqlite:///./loyalty_ledger.db"
LOCK_TIMEOUT_MS = int(os.getenv("LEDGER_LOCK_TIMEOUT_MS") or "5000")


def normalize_database_url(url: str) -> str:
    """Re-render the URL so that credentials are properly escaped."""
    try:
        return make_url(url).render_as_string(hide_password=False)
    except ArgumentError:
        # If parsing fails, ensure it's a valid UTF-8 string by replacing invalid bytes
        return url.encode('utf-8', errors='replace').decode('utf-8')


DATABASE_URL = os.getenv("DATABASE_URL")
if DATABASE_URL:
    DATABASE_URL = normalize_database_url(DATABASE_URL)
else:
    DATABASE_URL = DEFAULT_DATABASE_URL


def build_connect_args(url: str) -> dict:
    if url.startswith("postgres"):
        # Row-lock waits are bounded; a timed out lock surfaces as OperationalError.
        return {"options": f"-c timezone=utc -c lock_timeout={LOCK_TIMEOUT_MS}"}
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": LOCK_TIMEOUT_MS / 1000}
    return {}


def make_engine(url: str):
    return create_engine(url, connect_args=build_connect_args(url))


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
