"""
Pytest configuration and fixtures for ads-warehouse tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from datetime import date, datetime
from typing import Generator

import psycopg
import pytest
from psycopg import sql
from testcontainers.postgres import PostgresContainer

from ads_warehouse.core.models.ads_reporting import AdsReporting
from ads_warehouse.warehouse.connection import DatabaseConnectionPool

TEST_DB_NAME = "test_datawarehouse"
TEST_DB_USER = "test_pipeline"
TEST_DB_PASSWORD = "test_password"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full ingestion flow"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with initialized database
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username=TEST_DB_USER,
        password=TEST_DB_PASSWORD,
        dbname=TEST_DB_NAME,
        driver=None,
    ) as postgres:
        # Run init script
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )

        with open(init_sql_path, 'r') as f:
            init_sql = f.read()

        conn_url = postgres.get_connection_url()
        with psycopg.connect(conn_url) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield postgres


@pytest.fixture(scope="function")
def db_connection(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a raw database connection for a single test

    Yields:
        psycopg Connection object
    """
    conn_url = postgres_container.get_connection_url()
    with psycopg.connect(conn_url) as conn:
        yield conn
        # Rollback any uncommitted changes after test
        conn.rollback()


@pytest.fixture(scope="function")
def clean_db(db_connection) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a clean database by truncating all tables before each test

    Yields:
        psycopg Connection object with clean database
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE tbl_ads_reporting")
        cur.execute("TRUNCATE TABLE tbl_ads_reporting_raw")

        # Drop backups left by purge tests
        cur.execute(
            "SELECT tablename FROM pg_tables "
            "WHERE schemaname = 'public' AND tablename LIKE 'tbl_ads_reporting%backup%'"
        )
        for (name,) in cur.fetchall():
            cur.execute(sql.SQL("DROP TABLE {}").format(sql.Identifier(name)))

        db_connection.commit()

    yield db_connection


@pytest.fixture(scope="function")
def pool(postgres_container, clean_db) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a connection pool against the test container

    Yields:
        DatabaseConnectionPool over a clean database
    """
    db_pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database=TEST_DB_NAME,
        user=TEST_DB_USER,
        password=TEST_DB_PASSWORD,
        min_size=1,
        max_size=4,
    )
    db_pool.open()

    yield db_pool

    db_pool.close()


# =======================
# RECORD FIXTURES
# =======================

def make_record(**overrides) -> AdsReporting:
    """
    Build a complete AdsReporting record; keyword arguments override any field.
    """
    values = {
        "account_id": "act_1001",
        "platform_id": "meta",
        "campaign_id": "cmp_1",
        "adset_id": "ads_1",
        "advertisement_id": "ad_1",
        "placement_id": "feed",
        "ads_processing_dt": date(2024, 3, 1),
        "age_group": "25-34",
        "gender": "female",
        "country_code": 840,
        "region": "California",
        "city": "San Francisco",
        "spend": 10.5,
        "revenue": 31.5,
        "impressions": 1000,
        "clicks": 10,
        "unique_clicks": 8,
        "reach": 800,
        "currency": "USD",
        "created_at": datetime(2024, 3, 2, 1, 0, 0),
        "updated_at": datetime(2024, 3, 2, 1, 0, 0),
        "country_name": "United States",
    }
    values.update(overrides)
    return AdsReporting(**values)


@pytest.fixture
def record_factory():
    """Factory for complete AdsReporting records"""
    return make_record


@pytest.fixture
def make_batch():
    """
    Build `n` records with distinct keys (advertisement_id ad_0 .. ad_{n-1})
    """
    def _make_batch(n: int, **overrides) -> list[AdsReporting]:
        return [make_record(advertisement_id=f"ad_{i}", **overrides) for i in range(n)]

    return _make_batch


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)
