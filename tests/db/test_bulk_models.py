"""Tests for the bulk ingestion schema and database configuration."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from src.db.connection import build_engine, get_database_url, init_db
from src.db.models import BatchStatus, BulkUploadBatch, BulkUploadRow, Order


def _order(**overrides) -> Order:
    values = dict(
        scope="ops-1",
        idempotency_basis="CLIENT_REFERENCE",
        idempotency_key="REF-001",
        sender_name="S",
        sender_address="A",
        sender_contact="1",
        receiver_name="R",
        receiver_address="B",
        receiver_contact="2",
        item_count=1,
        total_weight=1,
    )
    values.update(overrides)
    return Order(**values)


class TestDatabaseUrl:
    def test_prefers_database_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///./preferred.db")
        monkeypatch.setenv("FLEETOPS_DB_PATH", "/tmp/fallback.db")
        assert get_database_url() == "sqlite:///./preferred.db"

    def test_db_path_fallback(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("FLEETOPS_DB_PATH", "/tmp/fleetops.db")
        assert get_database_url() == "sqlite:////tmp/fleetops.db"

    def test_defaults_to_data_dir(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("FLEETOPS_DB_PATH", raising=False)
        monkeypatch.setenv("FLEETOPS_DATA_DIR", str(tmp_path))
        assert get_database_url() == f"sqlite:///{tmp_path / 'fleetops_bulk.db'}"


class TestSchema:
    def test_tables_created(self, db_engine):
        tables = set(inspect(db_engine).get_table_names())
        assert {"bulk_upload_batches", "bulk_upload_rows", "orders"} <= tables

    def test_init_db_creates_parent_dir(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "bulk.db"
        engine = build_engine(f"sqlite:///{target}")
        init_db(engine)
        engine.dispose()
        assert target.exists()

    def test_sqlite_uses_wal(self, db_engine):
        with db_engine.connect() as conn:
            mode = conn.exec_driver_sql("PRAGMA journal_mode").scalar()
        assert mode.lower() == "wal"


class TestConstraints:
    def test_order_key_is_unique_per_scope(self, db_session):
        db_session.add(_order())
        db_session.commit()
        db_session.add(_order(receiver_name="Other"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_row_index_unique_within_batch(self, db_session):
        batch = BulkUploadBatch(
            batch_id="BU1", uploader="ops", file_name="f.xlsx", file_checksum="x" * 64
        )
        db_session.add(batch)
        db_session.flush()
        db_session.add(BulkUploadRow(batch_pk=batch.id, row_index=1, status="CREATED"))
        db_session.add(BulkUploadRow(batch_pk=batch.id, row_index=1, status="CREATED"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_batch_defaults(self, db_session):
        batch = BulkUploadBatch(
            batch_id="BU2", uploader="ops", file_name="f.xlsx", file_checksum="x" * 64
        )
        db_session.add(batch)
        db_session.commit()
        assert batch.status == BatchStatus.processing.value
        assert batch.uploaded_at
        assert batch.created_count == 0
        assert "BU2" in repr(batch)

    def test_rows_cascade_with_batch(self, db_session):
        batch = BulkUploadBatch(
            batch_id="BU3", uploader="ops", file_name="f.xlsx", file_checksum="x" * 64
        )
        batch.rows.append(BulkUploadRow(row_index=1, status="CREATED"))
        db_session.add(batch)
        db_session.commit()

        db_session.delete(batch)
        db_session.commit()
        assert db_session.query(BulkUploadRow).count() == 0
