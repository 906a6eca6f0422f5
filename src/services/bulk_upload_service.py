"""Upload-level orchestration for bulk order ingestion.

BulkUploadService is the entry point used by the API routes and the CLI:
it fingerprints the uploaded bytes, decodes them into rows, hands the rows
to the BatchCoordinator, and serves batch history back to callers.
"""

import asyncio
import hashlib
import logging
import os
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from src.db.models import BulkUploadBatch
from src.errors import NotFoundError
from src.services.batch_coordinator import BatchCoordinator
from src.services.bulk_types import BatchContext, BatchResult, ProgressCallback
from src.services.order_creator import OrderCreator
from src.services.order_repository import SqlOrderRepository
from src.services.row_extractor import ExcelRowExtractor, RowExtractionError
from src.services.row_processor import RowProcessor

logger = logging.getLogger(__name__)

DEFAULT_UPLOADER = "system"
MAX_LIST_LIMIT = 200


def compute_checksum(content: bytes) -> str:
    """Return the SHA-256 hex digest of uploaded content."""
    return hashlib.sha256(content).hexdigest()


def resolve_default_uploader() -> str:
    """Resolve the fallback uploader identity from BULK_DEFAULT_UPLOADER."""
    return os.environ.get("BULK_DEFAULT_UPLOADER", "").strip() or DEFAULT_UPLOADER


class BulkUploadService:
    """Processes uploads and exposes batch history.

    Attributes:
        extractor: Decoder for uploaded workbook bytes.
        coordinator: Batch coordinator that runs the rows.
        default_uploader: Scope used when the caller supplies none.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        extractor: ExcelRowExtractor | None = None,
        coordinator: BatchCoordinator | None = None,
        concurrency: int | None = None,
        default_uploader: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.extractor = extractor or ExcelRowExtractor()
        if coordinator is None:
            processor = RowProcessor(OrderCreator(SqlOrderRepository(session_factory)))
            coordinator = BatchCoordinator(processor, session_factory, concurrency=concurrency)
        self.coordinator = coordinator
        self.default_uploader = (default_uploader or "").strip() or resolve_default_uploader()

    async def process_upload(
        self,
        content: bytes,
        file_name: str,
        uploader: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Ingest one uploaded workbook.

        Args:
            content: Raw .xlsx bytes.
            file_name: Original file name.
            uploader: Uploader identity; blank falls back to default_uploader.
            on_progress: Optional async per-row progress callback.

        Returns:
            BatchResult for the new batch.

        Raises:
            BulkUploadError: For structural failures (unreadable file,
                missing headers, size or row limits, no rows). A FAILED
                batch is recorded and its id is in ``details["batch_id"]``.
        """
        scope = (uploader or "").strip() or self.default_uploader
        context = BatchContext(
            uploader=scope,
            file_name=file_name,
            file_checksum=compute_checksum(content),
            file_size_bytes=len(content),
        )

        previous = await asyncio.to_thread(
            self.find_previous_upload, scope, context.file_checksum
        )
        if previous is not None:
            logger.info(
                "File %s matches batch %s from the same uploader; existing orders will be skipped",
                file_name,
                previous.batch_id,
            )

        try:
            rows = await asyncio.to_thread(self.extractor.extract, content, file_name)
        except RowExtractionError as e:
            error = e.to_upload_error()
            await asyncio.to_thread(self.coordinator.record_structural_failure, context, error)
            raise error from e

        return await self.coordinator.ingest(rows, context, on_progress=on_progress)

    def find_previous_upload(self, uploader: str, checksum: str) -> BulkUploadBatch | None:
        """Return the most recent batch with the same uploader and checksum."""
        with self._session_factory() as session:
            return session.scalars(
                select(BulkUploadBatch)
                .where(
                    BulkUploadBatch.uploader == uploader,
                    BulkUploadBatch.file_checksum == checksum,
                )
                .order_by(BulkUploadBatch.uploaded_at.desc())
                .limit(1)
            ).first()

    def list_batches(
        self,
        limit: int = 20,
        offset: int = 0,
        uploader: str | None = None,
        status: str | None = None,
    ) -> tuple[list[BulkUploadBatch], int]:
        """List batches newest first.

        Args:
            limit: Page size, clamped to 1..200.
            offset: Number of batches to skip.
            uploader: Optional uploader filter.
            status: Optional status filter (e.g. "COMPLETED").

        Returns:
            Tuple of (batches on this page, total matching batches).
        """
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        offset = max(0, offset)

        query = select(BulkUploadBatch)
        count_query = select(func.count()).select_from(BulkUploadBatch)
        if uploader:
            query = query.where(BulkUploadBatch.uploader == uploader)
            count_query = count_query.where(BulkUploadBatch.uploader == uploader)
        if status:
            query = query.where(BulkUploadBatch.status == status)
            count_query = count_query.where(BulkUploadBatch.status == status)

        with self._session_factory() as session:
            total = session.scalar(count_query) or 0
            batches = list(
                session.scalars(
                    query.order_by(
                        BulkUploadBatch.uploaded_at.desc(), BulkUploadBatch.batch_id.desc()
                    )
                    .limit(limit)
                    .offset(offset)
                )
            )
        return batches, total

    def get_batch(self, batch_id: str) -> BulkUploadBatch:
        """Get one batch with its persisted row outcomes.

        Raises:
            NotFoundError: If no batch has this public id.
        """
        with self._session_factory() as session:
            batch = session.scalars(
                select(BulkUploadBatch)
                .options(selectinload(BulkUploadBatch.rows))
                .where(BulkUploadBatch.batch_id == batch_id)
            ).first()
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch
