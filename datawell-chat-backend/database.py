"""
DataWell Store - users table + raw SQL execution
================================================

Single flat table of demographic records. Raw statements reaching
execute() must already have passed sql_validator; this layer only runs
them and reports backend failures.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, func, insert, inspect, select, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("age", Integer),
    Column("gender", String(10)),
    Column("height", Integer),
    Column("weight", Integer),
    Column("city", String(100)),
    Column("country", String(100)),
    Column("zip", String(20)),
    Column("occupation", String(100)),
    Column("education", String(100)),
    Column("smoking", String(10)),
    Column("drinks_per_week", Integer),
)

TABLE_NAME = users.name
USER_COLUMNS = tuple(col.name for col in users.columns)


class QueryExecutionError(RuntimeError):
    """Backend failure while running a statement (column, syntax, connectivity, permission)."""


class DatabaseManager:
    """Manages database connection, the users table and raw query execution"""

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None and not database_url:
            raise ValueError("DatabaseManager needs a database_url or an engine")
        if engine is None:
            # Pooled connections are shared across server threads
            connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
        self.engine = engine
        self.cached_schema: Optional[str] = None
        logger.info(f"Database engine ready ({self.engine.dialect.name})")

    def create_tables(self) -> None:
        """Create the users table when missing (no migrations)."""
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            return True
        except Exception as e:
            logger.error(f"Database ping failed: {str(e)}")
            return False

    def execute(self, sql: str) -> List[Dict[str, Any]]:
        """
        Run a raw statement and return rows as dicts.

        Raises:
            QueryExecutionError: carrying the backend's message
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql))
                rows = [dict(row._mapping) for row in result.fetchall()]
        except Exception as e:
            err_msg = str(e)
            logger.error(f"Query execution failed: {err_msg}")
            raise QueryExecutionError(err_msg) from e

        logger.info(f"Query executed: {len(rows)} rows returned")
        return rows

    def insert_user(self, record: Dict[str, Any]) -> str:
        """Insert one user record; unknown keys are ignored. Returns the new id."""
        values = {key: value for key, value in record.items() if key in USER_COLUMNS and key != "id"}
        user_id = str(uuid.uuid4())
        values["id"] = user_id

        try:
            with self.engine.begin() as conn:
                conn.execute(insert(users).values(**values))
        except Exception as e:
            logger.error(f"DB insert error: {str(e)}")
            raise QueryExecutionError(str(e)) from e

        logger.info(f"Inserted user {user_id}")
        return user_id

    def recent_users(self, limit: int = 10) -> List[Dict[str, Any]]:
        stmt = select(users).order_by(users.c.id.desc()).limit(limit)
        try:
            with self.engine.connect() as conn:
                return [dict(row._mapping) for row in conn.execute(stmt).fetchall()]
        except Exception as e:
            logger.error(f"Recent users lookup failed: {str(e)}")
            raise QueryExecutionError(str(e)) from e

    def count_users_with_bmi(self) -> int:
        """Users with a positive height and weight (same rows as the BMI listing)."""
        stmt = select(func.count()).select_from(users).where(users.c.height > 0, users.c.weight > 0)
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(stmt).scalar() or 0)
        except Exception as e:
            logger.error(f"BMI count failed: {str(e)}")
            raise QueryExecutionError(str(e)) from e

    def get_schema_text(self) -> str:
        """Human-readable schema description (cached)"""
        if self.cached_schema:
            return self.cached_schema

        try:
            columns = inspect(self.engine).get_columns(TABLE_NAME)
        except Exception as e:
            logger.warning(f"Schema inspection failed, using declared table: {str(e)}")
            columns = [
                {"name": col.name, "type": col.type, "nullable": col.nullable}
                for col in users.columns
            ]

        lines = [f"Table: {TABLE_NAME}", "Columns:"]
        for col in columns:
            nullable = "NULL" if col.get("nullable", True) else "NOT NULL"
            lines.append(f"  - {col['name']}: {col['type']} ({nullable})")

        self.cached_schema = "\n".join(lines)
        return self.cached_schema
