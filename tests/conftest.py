"""Root-level pytest fixtures for all tests.

Provides shared fixtures including:
- Database fixtures (file-based SQLite, one per test)
- Service fixtures wired to that database
"""

import os
from collections.abc import Generator
from pathlib import Path

# Keep the module-level engine in src.db.connection off the user data dir
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.db.connection import build_engine, build_session_factory, init_db
from src.services.batch_coordinator import BatchCoordinator
from src.services.bulk_upload_service import BulkUploadService
from src.services.order_creator import OrderCreator
from src.services.order_repository import SqlOrderRepository
from src.services.row_extractor import ExcelRowExtractor
from src.services.row_processor import RowProcessor


# ============================================================================
# Pytest Markers
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Create a file-based SQLite database with all tables.

    File-based rather than in-memory so that worker threads each get
    their own connection to the same database.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'bulk_test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to the test database."""
    return build_session_factory(db_engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Session for direct assertions against the test database."""
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def repository(session_factory: sessionmaker[Session]) -> SqlOrderRepository:
    return SqlOrderRepository(session_factory)


@pytest.fixture
def row_processor(repository: SqlOrderRepository) -> RowProcessor:
    return RowProcessor(OrderCreator(repository))


@pytest.fixture
def coordinator(
    row_processor: RowProcessor, session_factory: sessionmaker[Session]
) -> BatchCoordinator:
    return BatchCoordinator(row_processor, session_factory, concurrency=4)


@pytest.fixture
def upload_service(
    session_factory: sessionmaker[Session], coordinator: BatchCoordinator
) -> BulkUploadService:
    return BulkUploadService(
        session_factory,
        extractor=ExcelRowExtractor(max_rows=50, max_file_bytes=1024 * 1024),
        coordinator=coordinator,
        default_uploader="system",
    )
