from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./express_learning.db"

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


# Columns added after the first deployment; applied additively on startup
_ADDED_COLUMNS = {
	"learning_plans": {
		"mode": "ALTER TABLE learning_plans ADD COLUMN mode VARCHAR(32) DEFAULT 'standard' NOT NULL",
		"intent": "ALTER TABLE learning_plans ADD COLUMN intent VARCHAR(32)",
		"curriculum_strategy": "ALTER TABLE learning_plans ADD COLUMN curriculum_strategy TEXT",
		"document_context": "ALTER TABLE learning_plans ADD COLUMN document_context TEXT",
	},
	"chapters": {
		"key_takeaway": "ALTER TABLE chapters ADD COLUMN key_takeaway TEXT DEFAULT '' NOT NULL",
		"is_completed": "ALTER TABLE chapters ADD COLUMN is_completed BOOLEAN DEFAULT FALSE NOT NULL",
	},
}


def ensure_schema(bind=None) -> None:
	bind = bind or engine
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	for table, columns in _ADDED_COLUMNS.items():
		if table not in tables:
			continue
		existing = {c["name"] for c in inspector.get_columns(table)}
		with bind.begin() as conn:
			for name, ddl in columns.items():
				if name not in existing:
					conn.exec_driver_sql(ddl)
