from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

import config


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # in-memory databases only live as long as their single connection
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,   # helps with idle connection timeouts
        "pool_size": 5,
        "max_overflow": 10,
    }


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
Base = declarative_base()


def init_db():
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


# Database dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
