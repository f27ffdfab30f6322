import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from premium_payments import config  # noqa: F401  loads .env

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")


def _engine_options(url):
    if url.startswith("sqlite"):
        # one connection per request thread
        return {"connect_args": {"check_same_thread": False}}
    # a dead or exhausted pool raises instead of hanging the request
    return {"pool_pre_ping": True, "pool_timeout": int(os.getenv("DATABASE_POOL_TIMEOUT", "10"))}


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# sessions are opened per store call and shared by the webhook and verify-session paths
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()
