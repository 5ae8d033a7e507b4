"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from pathlib import Path
from typing import Any, Dict, Iterable
from sqlalchemy import text
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from core.database import create_engine, create_session_maker
from models.base import Base
from models.migration_run import MigrationRun  # noqa: F401
from schemas.job import MigrationJobConfig

CUSTOMERS_DDL = (
    "CREATE TABLE customers ("
    "id INTEGER PRIMARY KEY, "
    "status TEXT, "
    "name TEXT, "
    "country TEXT, "
    "balance TEXT, "
    "joined TEXT)"
)

SAMPLE_CUSTOMERS = [
    {"id": 1, "status": "ACTIVE", "name": "Ada", "country": "uk", "balance": "10.50", "joined": "2024-01-02"},
    {"id": 2, "status": "INACTIVE", "name": "Bob", "country": "us", "balance": "0.00", "joined": "2024-01-03"},
    {"id": 3, "status": "ACTIVE", "name": "Cy", "country": "fr", "balance": "99.99", "joined": "2024-01-04"},
    {"id": 4, "status": "ACTIVE", "name": "Dee", "country": "de", "balance": "5.25", "joined": "2024-01-05"},
    {"id": 5, "status": "INACTIVE", "name": "Eve", "country": "es", "balance": "1.00", "joined": "2024-01-06"},
]


@pytest_asyncio.fixture(scope="function")
async def source_engine(tmp_path):
    """SQLite source database with an empty customers table"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'source.db'}")
    async with engine.begin() as conn:
        await conn.execute(text(CUSTOMERS_DDL))

    yield engine

    await engine.dispose()


@pytest.fixture
def seed(source_engine):
    """Insert customer rows: ``await seed(rows)``"""
    async def insert(rows: Iterable[Dict[str, Any]]):
        async with source_engine.begin() as conn:
            for row in rows:
                full = {"status": None, "name": None, "country": None, "balance": None, "joined": None, **row}
                await conn.execute(
                    text(
                        "INSERT INTO customers (id, status, name, country, balance, joined) "
                        "VALUES (:id, :status, :name, :country, :balance, :joined)"
                    ),
                    full
                )
    return insert


@pytest_asyncio.fixture
async def customers(seed):
    await seed(SAMPLE_CUSTOMERS)
    return SAMPLE_CUSTOMERS


@pytest_asyncio.fixture(scope="function")
async def tracking_session_maker(tmp_path):
    """Run-tracking database with the migration_runs table"""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_maker(engine)

    await engine.dispose()


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def public_key_path(tmp_path, rsa_private_key) -> Path:
    path = tmp_path / "recipient.pub.pem"
    path.write_bytes(rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ))
    return path


@pytest.fixture
def destination(tmp_path) -> Path:
    return tmp_path / "out" / "customers.txt"


@pytest.fixture
def make_config(destination):
    """Build a job config for the customers table; keyword groups override defaults"""
    def build(
        source_type: str = "paging",
        chunk_size: int = 2,
        query: Dict[str, Any] = None,
        fault: Dict[str, Any] = None,
        sink: Dict[str, Any] = None,
        stages=None,
    ) -> MigrationJobConfig:
        return MigrationJobConfig.build(
            source_type=source_type,
            chunk_size=chunk_size,
            query={"table": "customers", "order_by": "id", "page_size": 2, "fetch_size": 2, **(query or {})},
            fault={"retry_delay": 0, **(fault or {})},
            sink={"destination": str(destination), "fields": ["id", "status", "name"], **(sink or {})},
            stages=stages or [],
        )
    return build
