"""
Batch product ingestion endpoint
"""

from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from api.dependencies import get_ingestion_service, is_ingest_authorized
from core.config import settings
from ingestion.submissions import BatchIngestionService, extract_products
from schemas.api import ErrorResponse, IngestResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Ingestion"])


def error_response(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.get("/ingest")
async def ingest_docs():
    """Usage documentation; no authentication required"""
    return {
        "endpoint": "/ingest",
        "method": "POST",
        "authentication": "Authorization: Bearer <INGEST_SECRET_KEY> or X-API-Key: <INGEST_SECRET_KEY>",
        "body": {
            "products": "[{title, price, source_url, category?, description?, currency?, image_url?, condition?, platform?}]",
            "product": "{...} for a single product",
        },
        "response": {
            "success": "bool",
            "message": "str",
            "stats": "{received, inserted, updated, skipped_invalid, skipped_wanted, skipped_noise, errors[]}",
        },
        "configured": bool(settings.INGEST_SECRET_KEY),
    }


@router.post(
    "/ingest",
    response_model=IngestResponse,
    responses={code: {"model": ErrorResponse} for code in (400, 401, 500)},
)
async def ingest_products(
    request: Request,
    service: BatchIngestionService = Depends(get_ingestion_service),
):
    """
    Ingest a batch of products.

    - Deduplication by source_url (existing rows get their price refreshed)
    - Trust engine filtering (wanted ads, noise)
    - Price score on insert
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    secret = settings.INGEST_SECRET_KEY
    if not secret:
        logger.error("INGEST_SECRET_KEY not configured")
        return error_response(500, "Server configuration error")

    if not is_ingest_authorized(request, secret):
        return error_response(401, "Unauthorized - Invalid or missing API key")

    try:
        body = await request.json()
    except ValueError:
        return error_response(400, "Request body must be JSON")

    raw_products = extract_products(body)
    if not raw_products:
        return error_response(400, "No products provided. Send { products: [...] } or { product: {...} }")

    try:
        stats = await service.ingest(raw_products)
    except Exception as e:
        logger.exception(f"[{request_id}] Ingestion failed")
        return error_response(500, "Ingestion failed", details=str(e))

    logger.info(f"[{request_id}] POST /ingest - received={stats.received}, inserted={stats.inserted}")
    return IngestResponse(
        success=True,
        message=f"Ingestion complete. {stats.inserted} inserted, {stats.updated} updated.",
        stats=stats,
    )
