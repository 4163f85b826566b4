from __future__ import annotations
import logging

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./pokemon_quiz.db"
# Render-style URLs still use the legacy scheme
if DATABASE_URL.startswith("postgres://"):
	DATABASE_URL = "postgresql://" + DATABASE_URL[len("postgres://"):]

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for databases created before regional stats existed
def ensure_schema() -> None:
	try:
		inspector = inspect(engine)
		tables = set(inspector.get_table_names())
	except Exception:
		logger.exception("Could not inspect database schema")
		return
	if "user_stats" in tables:
		cols = {c["name"] for c in inspector.get_columns("user_stats")}
		with engine.begin() as conn:
			if "regional_stats" not in cols:
				conn.exec_driver_sql("ALTER TABLE user_stats ADD COLUMN regional_stats TEXT DEFAULT '{}'")
			if "wrong_answers" not in cols:
				conn.exec_driver_sql("ALTER TABLE user_stats ADD COLUMN wrong_answers TEXT DEFAULT '[]'")
