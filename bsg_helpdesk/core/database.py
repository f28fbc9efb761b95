from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from bsg_helpdesk.core.config import settings

# check_same_thread is only meaningful (and required) for SQLite under FastAPI's threadpool.
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
