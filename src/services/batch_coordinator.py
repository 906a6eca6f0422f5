"""Batch coordinator for bulk order ingestion.

Opens a batch record, fans rows out to a bounded pool of workers, and
closes the batch with aggregate counts once every row has an outcome.

Batch lifecycle:
    OPEN -> PROCESSING -> COMPLETED
    OPEN -> PROCESSING -> FAILED   (cancelled or aborted mid-run)
    OPEN -> FAILED                 (nothing to process)

Row failures never fail the batch; a batch is FAILED only when no row
could be processed at all.
"""

import asyncio
import json
import logging
import os
import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from src.db.models import BatchStatus, BulkUploadBatch, BulkUploadRow, RowStatus
from src.errors import BulkUploadError
from src.services.bulk_types import (
    BatchContext,
    BatchResult,
    ProgressCallback,
    RawRow,
    RowOutcome,
)
from src.services.row_processor import RowProcessor

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


class InvalidBatchTransition(Exception):
    """Raised when attempting an invalid batch state transition.

    Attributes:
        current_state: The current state of the batch.
        attempted_state: The state that was attempted.
        allowed_transitions: List of valid transition targets from current state.
    """

    def __init__(
        self,
        current_state: BatchStatus,
        attempted_state: BatchStatus,
        allowed_transitions: list[BatchStatus],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(s.value for s in allowed_transitions) or "none (terminal)"
        super().__init__(
            f"Cannot transition from '{current_state.value}' to '{attempted_state.value}'. "
            f"Allowed transitions: {allowed_str}"
        )


# Valid state transitions for batch lifecycle
VALID_TRANSITIONS: dict[BatchStatus, list[BatchStatus]] = {
    BatchStatus.open: [BatchStatus.processing, BatchStatus.failed],
    BatchStatus.processing: [BatchStatus.completed, BatchStatus.failed],
    BatchStatus.completed: [],  # terminal
    BatchStatus.failed: [],  # terminal
}


def transition(batch: BulkUploadBatch, new_status: BatchStatus) -> None:
    """Move ``batch`` to ``new_status`` if the lifecycle allows it.

    Raises:
        InvalidBatchTransition: If the transition is not allowed.
    """
    current = BatchStatus(batch.status)
    allowed = VALID_TRANSITIONS[current]
    if new_status not in allowed:
        raise InvalidBatchTransition(current, new_status, allowed)
    batch.status = new_status.value


def generate_batch_id() -> str:
    """Generate a public batch id: BU + UTC timestamp + random suffix."""
    return f"BU{datetime.now(UTC).strftime('%Y%m%d%H%M%S')}{uuid4().hex[:6].upper()}"


def _serialize_errors(outcome: RowOutcome) -> str | None:
    if not outcome.errors:
        return None
    return json.dumps([e.to_dict() for e in outcome.errors])


class BatchCoordinator:
    """Drives one upload's rows through the RowProcessor.

    Rows run concurrently, bounded by a semaphore. Each row's processing is
    synchronous and runs in a worker thread; outcomes are gathered back in
    original row order. The coordinator is the only writer of the batch
    record and its counters.
    """

    def __init__(
        self,
        processor: RowProcessor,
        session_factory: Callable[[], Session],
        concurrency: int | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            processor: Per-row pipeline shared by all workers.
            session_factory: Factory for sessions used to write batch records.
            concurrency: Worker limit; defaults to BULK_CONCURRENCY env var.
        """
        self._processor = processor
        self._session_factory = session_factory
        self._concurrency = (
            max(1, concurrency) if concurrency is not None else self._resolve_concurrency()
        )

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @staticmethod
    def _resolve_concurrency() -> int:
        """Resolve worker concurrency from env with safe fallback."""
        raw = os.environ.get("BULK_CONCURRENCY", str(DEFAULT_CONCURRENCY))
        try:
            value = int(raw)
        except ValueError:
            logger.warning(
                "Invalid BULK_CONCURRENCY=%r, defaulting to %d", raw, DEFAULT_CONCURRENCY
            )
            return DEFAULT_CONCURRENCY
        return max(1, value)

    async def ingest(
        self,
        rows: Sequence[RawRow],
        context: BatchContext,
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Process every row of one upload as a batch.

        Args:
            rows: Extracted rows in sheet order; row indexes must be distinct.
            context: Upload metadata; ``context.uploader`` is the idempotency scope.
            on_progress: Optional async callback invoked after each row with
                event "row_processed" and keyword details.

        Returns:
            BatchResult with one outcome per row in original order.

        Raises:
            BulkUploadError: E-1002 when ``rows`` is empty; a FAILED batch is
                recorded and its id placed in ``details["batch_id"]``.
            ValueError: If two rows share a row index.
            asyncio.CancelledError: Re-raised after the batch is marked FAILED.
        """
        if not rows:
            error = BulkUploadError.from_code("E-1002", file_name=context.file_name)
            await asyncio.to_thread(self.record_structural_failure, context, error)
            raise error

        indexes = [r.row_index for r in rows]
        if len(set(indexes)) != len(indexes):
            raise ValueError("Row indexes within a batch must be distinct")

        started = time.perf_counter()
        batch_pk, batch_id = await asyncio.to_thread(self._open_batch, context, len(rows))
        logger.info(
            "Batch %s opened: %d rows, concurrency=%d",
            batch_id,
            len(rows),
            self._concurrency,
        )

        semaphore = asyncio.Semaphore(self._concurrency)
        outcomes: list[RowOutcome | None] = [None] * len(rows)
        # Worker-thread futures; a thread cannot be interrupted once started
        in_flight: set[asyncio.Future] = set()
        completed = 0

        def _process(position: int, raw: RawRow) -> RowOutcome:
            outcome = self._processor.process(raw, context.uploader, batch_id)
            outcomes[position] = outcome
            return outcome

        async def _run(position: int, raw: RawRow) -> None:
            nonlocal completed
            async with semaphore:
                work = asyncio.ensure_future(asyncio.to_thread(_process, position, raw))
                in_flight.add(work)
                outcome = await asyncio.shield(work)
            completed += 1
            if on_progress:
                await on_progress(
                    "row_processed",
                    batch_id=batch_id,
                    row_index=outcome.row_index,
                    status=outcome.status.value,
                    completed=completed,
                    total=len(rows),
                )

        tasks = [asyncio.ensure_future(_run(i, raw)) for i, raw in enumerate(rows)]

        async def _stop_workers() -> list[RowOutcome]:
            """Cancel rows not yet started and wait for rows already in a thread."""
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await asyncio.gather(*in_flight, return_exceptions=True)
            return [o for o in outcomes if o is not None]

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            finished = await _stop_workers()
            logger.warning(
                "Batch %s cancelled after %d of %d rows", batch_id, len(finished), len(rows)
            )
            error = BulkUploadError.from_code(
                "E-4005", batch_id=batch_id, completed=len(finished), total=len(rows)
            )
            await self._fail_batch(batch_pk, batch_id, finished, started, error)
            raise
        except Exception as e:
            finished = await _stop_workers()
            logger.exception("Batch %s aborted", batch_id)
            error = BulkUploadError.from_code(
                "E-4001", reason=str(e), details={"batch_id": batch_id}
            )
            await self._fail_batch(batch_pk, batch_id, finished, started, error)
            raise

        final = [o for o in outcomes if o is not None]
        try:
            duration_ms = await asyncio.to_thread(
                self._close_batch, batch_pk, BatchStatus.completed, final, started
            )
        except Exception as e:
            logger.exception("Batch %s could not be closed", batch_id)
            error = BulkUploadError.from_code(
                "E-4001", reason=str(e), details={"batch_id": batch_id}
            )
            await self._fail_batch(batch_pk, batch_id, final, started, error)
            raise

        result = BatchResult(
            batch_id=batch_id,
            status=BatchStatus.completed,
            total_rows=len(rows),
            created=sum(1 for o in final if o.status == RowStatus.created),
            failed=sum(1 for o in final if o.status == RowStatus.failed_validation),
            skipped_duplicate=sum(1 for o in final if o.status == RowStatus.skipped_duplicate),
            processing_duration_ms=duration_ms,
            rows=tuple(final),
        )
        logger.info(
            "Batch %s completed in %d ms: %d created, %d skipped, %d failed",
            batch_id,
            duration_ms,
            result.created,
            result.skipped_duplicate,
            result.failed,
        )
        return result

    def record_structural_failure(self, context: BatchContext, error: BulkUploadError) -> str:
        """Persist a FAILED batch for an upload that yielded no rows.

        Used for files that could not be read at all. The new batch id is
        written into ``error.details["batch_id"]``.

        Args:
            context: Upload metadata.
            error: Structural error describing why extraction failed.

        Returns:
            The new batch id.
        """
        batch_id = generate_batch_id()
        now = datetime.now(UTC).isoformat()
        session = self._session_factory()
        try:
            batch = BulkUploadBatch(
                batch_id=batch_id,
                uploader=context.uploader,
                file_name=context.file_name,
                file_size_bytes=context.file_size_bytes,
                file_checksum=context.file_checksum,
                status=BatchStatus.open.value,
                uploaded_at=now,
            )
            transition(batch, BatchStatus.failed)
            batch.completed_at = now
            batch.processing_duration_ms = 0
            batch.error_code = error.code
            batch.error_message = error.message
            session.add(batch)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        error.details["batch_id"] = batch_id
        logger.warning("Batch %s failed before processing: %s", batch_id, error.code)
        return batch_id

    def _open_batch(self, context: BatchContext, total_rows: int) -> tuple[str, str]:
        """Create the batch record in PROCESSING. Returns (primary key, batch id)."""
        batch_id = generate_batch_id()
        session = self._session_factory()
        try:
            batch = BulkUploadBatch(
                batch_id=batch_id,
                uploader=context.uploader,
                file_name=context.file_name,
                file_size_bytes=context.file_size_bytes,
                file_checksum=context.file_checksum,
                status=BatchStatus.open.value,
                total_rows=total_rows,
            )
            transition(batch, BatchStatus.processing)
            session.add(batch)
            session.flush()
            batch_pk = batch.id
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return batch_pk, batch_id

    def _close_batch(
        self,
        batch_pk: str,
        status: BatchStatus,
        outcomes: list[RowOutcome],
        started: float,
        error: BulkUploadError | None = None,
    ) -> int:
        """Write counts, row outcomes and the terminal status in one commit.

        Returns:
            Processing duration in milliseconds.
        """
        duration_ms = int((time.perf_counter() - started) * 1000)
        session = self._session_factory()
        try:
            batch = session.get(BulkUploadBatch, batch_pk)
            transition(batch, status)
            batch.created_count = sum(1 for o in outcomes if o.status == RowStatus.created)
            batch.failed_count = sum(
                1 for o in outcomes if o.status == RowStatus.failed_validation
            )
            batch.skipped_duplicate_count = sum(
                1 for o in outcomes if o.status == RowStatus.skipped_duplicate
            )
            batch.completed_at = datetime.now(UTC).isoformat()
            batch.processing_duration_ms = duration_ms
            if error is not None:
                batch.error_code = error.code
                batch.error_message = error.message
            for outcome in outcomes:
                session.add(
                    BulkUploadRow(
                        batch_pk=batch_pk,
                        row_index=outcome.row_index,
                        status=outcome.status.value,
                        idempotency_basis=(
                            outcome.idempotency_basis.value if outcome.idempotency_basis else None
                        ),
                        idempotency_key=outcome.idempotency_key,
                        order_id=outcome.order_id,
                        error_messages=_serialize_errors(outcome),
                    )
                )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return duration_ms

    async def _fail_batch(
        self,
        batch_pk: str,
        batch_id: str,
        outcomes: list[RowOutcome],
        started: float,
        error: BulkUploadError,
    ) -> None:
        """Close the batch as FAILED. The caller re-raises the original error."""
        try:
            await asyncio.to_thread(
                self._close_batch, batch_pk, BatchStatus.failed, outcomes, started, error
            )
        except Exception:
            logger.exception("Batch %s could not be marked FAILED", batch_id)
