"""FastAPI routes for bulk order upload.

Provides REST API endpoints for uploading order spreadsheets, browsing
upload batches, and downloading the upload template.

All endpoints use /api/v1/bulk/orders prefix.
"""

import logging

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Response, UploadFile

from src.api.schemas import (
    BatchDetailResponse,
    BatchListResponse,
    BatchSummaryResponse,
    BulkUploadResponse,
)
from src.db.connection import SessionLocal
from src.errors import NotFoundError
from src.services.bulk_template import build_template_workbook, template_filename
from src.services.bulk_upload_service import BulkUploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bulk/orders", tags=["bulk-orders"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_bulk_upload_service() -> BulkUploadService:
    """Dependency to get BulkUploadService instance."""
    return BulkUploadService(SessionLocal)


@router.post("", response_model=BulkUploadResponse)
async def upload_orders(
    file: UploadFile = File(..., description="Order spreadsheet (.xlsx)"),
    x_uploader_id: str | None = Header(None, description="Uploader identity / idempotency scope"),
    service: BulkUploadService = Depends(get_bulk_upload_service),
) -> BulkUploadResponse:
    """Upload a spreadsheet of orders.

    Every row gets exactly one outcome: CREATED, SKIPPED_DUPLICATE or
    FAILED_VALIDATION. Structural problems with the file are reported as
    a 400 error by the BulkUploadError handler.

    Args:
        file: Uploaded workbook.
        x_uploader_id: Optional uploader identity from the X-Uploader-Id header.
        service: Bulk upload service dependency.

    Returns:
        Batch summary with per-row outcomes in sheet order.
    """
    content = await file.read()
    file_name = file.filename or "upload.xlsx"
    logger.info("Bulk upload received: %s (%d bytes)", file_name, len(content))

    result = await service.process_upload(content, file_name, uploader=x_uploader_id)
    return BulkUploadResponse.from_result(result)


@router.get("/batches", response_model=BatchListResponse)
def list_batches(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    uploader: str | None = Query(None, description="Filter by uploader"),
    status: str | None = Query(None, description="Filter by batch status"),
    service: BulkUploadService = Depends(get_bulk_upload_service),
) -> BatchListResponse:
    """List upload batches, newest first.

    Args:
        limit: Maximum number of batches to return.
        offset: Number of batches to skip.
        uploader: Filter by uploader (optional).
        status: Filter by status, e.g. COMPLETED (optional).
        service: Bulk upload service dependency.

    Returns:
        Paginated list of batches.
    """
    batches, total = service.list_batches(
        limit=limit,
        offset=offset,
        uploader=uploader,
        status=status.upper() if status else None,
    )
    return BatchListResponse(
        batches=[BatchSummaryResponse.model_validate(b) for b in batches],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/batches/{batch_id}", response_model=BatchDetailResponse)
def get_batch(
    batch_id: str,
    service: BulkUploadService = Depends(get_bulk_upload_service),
) -> BatchDetailResponse:
    """Get one batch with its persisted row outcomes.

    Raises:
        HTTPException: 404 if the batch does not exist.
    """
    try:
        batch = service.get_batch(batch_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return BatchDetailResponse.model_validate(batch)


@router.get("/template")
def download_template() -> Response:
    """Download the .xlsx upload template."""
    return Response(
        content=build_template_workbook(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{template_filename()}"'},
    )
