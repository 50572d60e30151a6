import logging
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from database.models import Base

logger = logging.getLogger(__name__)

db_path = os.path.join(os.getcwd(), "budget.db")

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{db_path}")
SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"


def make_engine(url: str = DATABASE_URL, echo: bool = SQL_ECHO):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, echo=echo, connect_args=connect_args)


engine = make_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(bind=None):
    logger.info("Initializing the database...")
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database initialization complete.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
