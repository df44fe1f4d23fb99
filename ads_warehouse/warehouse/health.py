"""
Database health check: connectivity, required tables and pool usage.
"""

from typing import Any, Sequence

import psycopg
from pydantic import BaseModel, Field

from ads_warehouse.core.mapping import ADS_REPORTING_TABLE
from ads_warehouse.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

REQUIRED_TABLES = (ADS_REPORTING_TABLE,)


class HealthStatus(BaseModel):
    """Outcome of a health check."""

    healthy: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        return f"HealthStatus(healthy={self.healthy}, message='{self.message}', details={self.details})"


def find_missing_tables(pool: DatabaseConnectionPool, tables: Sequence[str]) -> list[str]:
    """Tables from `tables` that do not exist in the current search path."""
    rows = pool.execute_query(
        "SELECT name FROM unnest(%s::text[]) AS name WHERE to_regclass(name) IS NULL",
        (list(tables),),
    )
    return [row["name"] for row in rows]


def check_health(pool: DatabaseConnectionPool, tables: Sequence[str] = REQUIRED_TABLES) -> HealthStatus:
    """
    Check that the database answers and the required tables exist.

    Never raises; failures are reported in the returned status.
    """
    try:
        rows = pool.execute_query("SELECT current_database() AS database, current_user AS db_user")
    except (psycopg.Error, RuntimeError) as e:
        logger.error(f"Health check failed: {e}")
        return HealthStatus(healthy=False, message=f"Database connection failed: {e}")

    try:
        missing = find_missing_tables(pool, tables)
    except psycopg.Error as e:
        logger.error(f"Health check failed while inspecting tables: {e}")
        return HealthStatus(healthy=False, message=str(e))

    if missing:
        logger.warning(f"Required tables not found: {', '.join(missing)}")
        return HealthStatus(
            healthy=False,
            message="Required tables not found",
            details={"missing_tables": missing},
        )

    details: dict[str, Any] = {
        "database": rows[0]["database"],
        "user": rows[0]["db_user"],
    }
    for name, value in pool.get_stats().items():
        details[f"pool.{name}"] = value

    return HealthStatus(healthy=True, message="Database is healthy", details=details)
