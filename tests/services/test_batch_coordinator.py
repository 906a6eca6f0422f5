"""Tests for batch coordination, lifecycle, and end-to-end idempotency."""

import asyncio
import json
import threading

import pytest
from sqlalchemy.exc import OperationalError

from src.db.models import (
    BatchStatus,
    BulkUploadBatch,
    BulkUploadRow,
    IdempotencyBasis,
    Order,
    RowStatus,
)
from src.errors import BulkUploadError
from src.services.batch_coordinator import (
    VALID_TRANSITIONS,
    BatchCoordinator,
    InvalidBatchTransition,
    generate_batch_id,
    transition,
)
from src.services.bulk_types import BatchContext, IdempotencyKey, RowOutcome
from tests.helpers.bulk_rows import make_row


def _context(uploader: str = "ops-1", checksum: str = "c" * 64) -> BatchContext:
    return BatchContext(
        uploader=uploader, file_name="orders.xlsx", file_checksum=checksum, file_size_bytes=1234
    )


def _statuses(result) -> list[RowStatus]:
    return [o.status for o in result.rows]


class TestStateMachine:
    """Batch lifecycle transitions."""

    def test_transition_table(self):
        assert VALID_TRANSITIONS[BatchStatus.open] == [BatchStatus.processing, BatchStatus.failed]
        assert VALID_TRANSITIONS[BatchStatus.completed] == []
        assert VALID_TRANSITIONS[BatchStatus.failed] == []

    def test_open_to_completed_is_rejected(self):
        batch = BulkUploadBatch(status=BatchStatus.open.value)
        with pytest.raises(InvalidBatchTransition) as exc_info:
            transition(batch, BatchStatus.completed)
        assert exc_info.value.current_state is BatchStatus.open
        assert "none" not in str(exc_info.value)

    def test_terminal_state_cannot_move(self):
        batch = BulkUploadBatch(status=BatchStatus.completed.value)
        with pytest.raises(InvalidBatchTransition, match="none \\(terminal\\)"):
            transition(batch, BatchStatus.failed)

    def test_batch_id_format(self):
        batch_id = generate_batch_id()
        assert batch_id.startswith("BU")
        assert len(batch_id) == 2 + 14 + 6
        assert batch_id[2:16].isdigit()


class TestIngest:
    """End-to-end ingestion against a real SQLite database."""

    async def test_reference_and_hash_scenario(self, session_factory, row_processor):
        """REF-001 twice, REF-002 once, plus one unreferenced row."""
        coordinator = BatchCoordinator(row_processor, session_factory, concurrency=1)
        rows = [
            make_row(1, client_reference="REF-001"),
            make_row(2, client_reference="REF-001", receiver_name="Different"),
            make_row(3, client_reference="REF-002"),
            make_row(4),
        ]
        result = await coordinator.ingest(rows, _context())

        assert result.status is BatchStatus.completed
        assert _statuses(result) == [
            RowStatus.created,
            RowStatus.skipped_duplicate,
            RowStatus.created,
            RowStatus.created,
        ]
        assert result.rows[0].order_id == result.rows[1].order_id
        assert (result.created, result.skipped_duplicate, result.failed) == (3, 1, 0)

    async def test_outcomes_in_row_order(self, coordinator):
        rows = [make_row(i, client_reference=f"REF-{i}") for i in range(1, 21)]
        result = await coordinator.ingest(rows, _context())
        assert [o.row_index for o in result.rows] == list(range(1, 21))

    async def test_count_invariant(self, coordinator):
        rows = [
            make_row(1, client_reference="A"),
            make_row(2, client_reference="A"),
            make_row(3, total_weight="-1"),
            make_row(4, receiver_name=None),
            make_row(5, client_reference="B"),
        ]
        result = await coordinator.ingest(rows, _context())
        assert result.created + result.failed + result.skipped_duplicate == result.total_rows
        assert result.total_rows == 5
        assert result.failed == 2

    async def test_malformed_row_does_not_block_others(self, coordinator):
        rows = [
            make_row(1, client_reference="A"),
            make_row(2, item_count="many"),
            make_row(3, client_reference="C"),
        ]
        result = await coordinator.ingest(rows, _context())
        assert _statuses(result) == [
            RowStatus.created,
            RowStatus.failed_validation,
            RowStatus.created,
        ]

    async def test_reupload_is_idempotent(self, coordinator, db_session):
        rows = [make_row(1, client_reference="REF-001"), make_row(2)]
        first = await coordinator.ingest(rows, _context())
        second = await coordinator.ingest(rows, _context())

        assert second.batch_id != first.batch_id
        assert _statuses(second) == [RowStatus.skipped_duplicate] * 2
        assert [o.order_id for o in second.rows] == [o.order_id for o in first.rows]
        assert db_session.query(Order).count() == 2

    async def test_hash_collapse_across_batches(self, coordinator):
        first = await coordinator.ingest([make_row(1)], _context())
        second = await coordinator.ingest(
            [make_row(1, receiver_name="  JANE   receiver ", carrier_name="BlueDart")],
            _context(),
        )
        assert second.rows[0].status is RowStatus.skipped_duplicate
        assert second.rows[0].order_id == first.rows[0].order_id

    async def test_other_uploader_is_a_new_scope(self, coordinator):
        await coordinator.ingest([make_row(1, client_reference="REF-001")], _context("ops-1"))
        result = await coordinator.ingest(
            [make_row(1, client_reference="REF-001")], _context("ops-2")
        )
        assert result.rows[0].status is RowStatus.created

    async def test_concurrent_same_key_rows(self, session_factory, row_processor):
        coordinator = BatchCoordinator(row_processor, session_factory, concurrency=8)
        rows = [make_row(i, client_reference="SAME") for i in range(1, 9)]
        result = await coordinator.ingest(rows, _context())

        assert result.created == 1
        assert result.skipped_duplicate == 7
        assert len({o.order_id for o in result.rows}) == 1

    async def test_batch_and_rows_persisted(self, coordinator, db_session):
        rows = [make_row(1, client_reference="A"), make_row(2, receiver_name=None)]
        result = await coordinator.ingest(rows, _context())

        batch = db_session.query(BulkUploadBatch).filter_by(batch_id=result.batch_id).one()
        assert batch.status == BatchStatus.completed.value
        assert (batch.total_rows, batch.created_count, batch.failed_count) == (2, 1, 1)
        assert batch.completed_at is not None
        assert batch.processing_duration_ms == result.processing_duration_ms

        stored = db_session.query(BulkUploadRow).filter_by(batch_pk=batch.id).order_by(
            BulkUploadRow.row_index
        ).all()
        assert [r.status for r in stored] == ["CREATED", "FAILED_VALIDATION"]
        assert stored[0].idempotency_basis == "CLIENT_REFERENCE"
        errors = json.loads(stored[1].error_messages)
        assert errors[0]["code"] == "E-1001"
        assert errors[0]["field"] == "receiverName"

    async def test_progress_callback(self, coordinator):
        events = []

        async def _on_progress(event_type, **kwargs):
            events.append((event_type, kwargs))

        await coordinator.ingest(
            [make_row(1, client_reference="A"), make_row(2, client_reference="B")],
            _context(),
            on_progress=_on_progress,
        )
        assert [e[0] for e in events] == ["row_processed", "row_processed"]
        assert sorted(e[1]["completed"] for e in events) == [1, 2]
        assert all(e[1]["total"] == 2 for e in events)

    async def test_duplicate_row_indexes_rejected(self, coordinator):
        with pytest.raises(ValueError):
            await coordinator.ingest([make_row(1), make_row(1)], _context())


class TestFailures:
    """Batches that fail as a whole."""

    async def test_empty_rows_fail_batch(self, coordinator, db_session):
        with pytest.raises(BulkUploadError) as exc_info:
            await coordinator.ingest([], _context())

        error = exc_info.value
        assert error.code == "E-1002"
        batch = db_session.query(BulkUploadBatch).filter_by(
            batch_id=error.details["batch_id"]
        ).one()
        assert batch.status == BatchStatus.failed.value
        assert batch.error_code == "E-1002"
        assert batch.total_rows == 0

    def test_record_structural_failure(self, coordinator, db_session):
        error = BulkUploadError.from_code("E-1004", headers="senderName")
        batch_id = coordinator.record_structural_failure(_context(), error)

        assert error.details["batch_id"] == batch_id
        batch = db_session.query(BulkUploadBatch).filter_by(batch_id=batch_id).one()
        assert batch.status == BatchStatus.failed.value
        assert batch.error_message == "Missing required headers: senderName."
        assert batch.file_checksum == "c" * 64

    async def test_cancellation_marks_batch_failed(self, session_factory, db_session):
        """Cancelled batches keep finished rows and record E-4005."""
        release = threading.Event()

        class _BlockingProcessor:
            def process(self, raw, scope, batch_id=None):
                if raw.row_index > 1:
                    release.wait(timeout=5)
                key = IdempotencyKey(IdempotencyBasis.client_reference, f"R{raw.row_index}", scope)
                return RowOutcome.created(raw.row_index, key, f"order-{raw.row_index}")

        coordinator = BatchCoordinator(_BlockingProcessor(), session_factory, concurrency=1)
        task = asyncio.create_task(
            coordinator.ingest([make_row(1), make_row(2), make_row(3)], _context())
        )
        await asyncio.sleep(0.2)
        task.cancel()
        release.set()
        with pytest.raises(asyncio.CancelledError):
            await task

        batch = db_session.query(BulkUploadBatch).one()
        assert batch.status == BatchStatus.failed.value
        assert batch.error_code == "E-4005"
        assert batch.created_count < 3
        stored = db_session.query(BulkUploadRow).filter_by(batch_pk=batch.id).count()
        assert stored == batch.created_count

    async def test_progress_failure_stops_remaining_rows(self, coordinator, db_session):
        """Every stored order belongs to a recorded row after an abort."""

        async def _on_progress(event_type, **kwargs):
            raise RuntimeError("progress sink closed")

        rows = [make_row(i, client_reference=f"REF-{i}") for i in range(1, 21)]
        with pytest.raises(RuntimeError, match="progress sink closed"):
            await coordinator.ingest(rows, _context(), on_progress=_on_progress)

        batch = db_session.query(BulkUploadBatch).one()
        assert batch.status == BatchStatus.failed.value
        assert batch.error_code == "E-4001"
        stored = db_session.query(BulkUploadRow).filter_by(batch_pk=batch.id).all()
        order_ids = {o.id for o in db_session.query(Order).all()}
        assert order_ids == {r.order_id for r in stored}
        assert batch.created_count == len(order_ids)
        assert len(order_ids) < len(rows)

    async def test_close_failure_marks_batch_failed(self, coordinator, db_session, monkeypatch):
        close_batch = coordinator._close_batch

        def _close_batch(batch_pk, status, outcomes, started, error=None):
            if status is BatchStatus.completed:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return close_batch(batch_pk, status, outcomes, started, error)

        monkeypatch.setattr(coordinator, "_close_batch", _close_batch)
        with pytest.raises(OperationalError):
            await coordinator.ingest([make_row(1, client_reference="REF-1")], _context())

        batch = db_session.query(BulkUploadBatch).one()
        assert batch.status == BatchStatus.failed.value
        assert batch.error_code == "E-4001"
        assert batch.created_count == 1
        assert db_session.query(BulkUploadRow).filter_by(batch_pk=batch.id).count() == 1

    async def test_batch_records_written_off_the_event_loop(self, coordinator, monkeypatch):
        loop_thread = threading.get_ident()
        callers = []
        for name in ("_open_batch", "_close_batch", "record_structural_failure"):
            original = getattr(coordinator, name)

            def _wrapped(*args, _original=original, **kwargs):
                callers.append(threading.get_ident())
                return _original(*args, **kwargs)

            monkeypatch.setattr(coordinator, name, _wrapped)

        await coordinator.ingest([make_row(1)], _context())
        with pytest.raises(BulkUploadError):
            await coordinator.ingest([], _context())

        assert len(callers) == 3
        assert loop_thread not in callers
