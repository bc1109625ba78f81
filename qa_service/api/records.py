# =============================================================================
# Records API — Stored Questions and Answers
# =============================================================================
#
#   GET /api/records        all records, newest first
#   GET /api/records/{id}   one record (404 when absent)
#
# A record whose answer is still "" belongs to a request that is in flight,
# was abandoned by a disconnecting client, or asked a provider that cannot
# stream.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from qa_service.api.deps import get_storage
from qa_service.models.responses import QARecordResponse, RecordListResponse
from qa_service.services.exceptions import ServiceError
from qa_service.services.storage import QAStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Records"])


@router.get(
    "/records",
    response_model=RecordListResponse,
    summary="List all question/answer records",
)
async def list_records(
    storage: QAStorage = Depends(get_storage),
) -> RecordListResponse:
    try:
        records = await storage.list_records()
    except ServiceError as e:
        logger.error("Listing records failed: %s", e.message)
        raise HTTPException(status_code=e.http_status, detail=e.message) from e

    return RecordListResponse(
        data=[QARecordResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get(
    "/records/{record_id}",
    response_model=QARecordResponse,
    summary="Get one question/answer record",
)
async def get_record(
    record_id: int,
    storage: QAStorage = Depends(get_storage),
) -> QARecordResponse:
    try:
        record = await storage.get_record(record_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message) from e
    return QARecordResponse.model_validate(record)
