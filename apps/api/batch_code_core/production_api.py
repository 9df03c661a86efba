from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from batch_code_core.batch_codes import BatchCodeAllocator
from batch_code_core.code_store import SqlCodeStore
from batch_code_core.db import get_session
from batch_code_core.errors import (
    ExhaustionError, InvalidInputError, StoreError, StoreTimeoutError
)
from batch_code_core.group_keys import group_key_for
from batch_code_core.models import Batch, BatchCode
from batch_code_core.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/production", tags=["production"])

ProductionSource = Literal["IN_HOUSE", "CO_PACKER"]
BatchStatus = Literal["PLANNED", "IN_PROGRESS", "QC_REVIEW", "HOLD", "RELEASED"]

# Allowed production moves; cancellation has its own endpoint.
VALID_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "PLANNED": ("IN_PROGRESS",),
    "IN_PROGRESS": ("QC_REVIEW",),
    "QC_REVIEW": ("RELEASED", "HOLD"),
    "HOLD": ("QC_REVIEW",),
    "RELEASED": (),
    "CANCELLED": (),
}

class BatchCreateRequest(BaseModel):
    product_id: str = Field(min_length=1, max_length=64)
    production_date: date
    production_source: ProductionSource
    total_units: int = Field(gt=0)
    notes: str | None = Field(default=None, max_length=2000)
    co_packer_partner_id: str | None = Field(default=None, max_length=64)
    co_packer_lot_number: str | None = Field(default=None, max_length=128)
    co_packer_receiving_date: date | None = None
    performed_by: int = 1

    @model_validator(mode="after")
    def co_packer_needs_partner(self):
        if self.production_source == "CO_PACKER" and not self.co_packer_partner_id:
            raise ValueError("co_packer_partner_id is required when production_source is CO_PACKER")
        return self

def _batch_out(b: Batch) -> dict:
    return {
        "id": b.id,
        "batch_code": b.batch_code,
        "product_id": b.product_id,
        "production_date": b.production_date,
        "production_source": b.production_source,
        "total_units": b.total_units,
        "status": b.status,
        "notes": b.notes,
        "co_packer_partner_id": b.co_packer_partner_id,
        "co_packer_lot_number": b.co_packer_lot_number,
        "co_packer_receiving_date": b.co_packer_receiving_date,
        "created_at": b.created_at,
        "cancelled_at": b.cancelled_at,
    }

def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidInputError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ExhaustionError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, StoreTimeoutError):
        return HTTPException(status_code=503, detail="Timed out allocating batch code, please retry")
    return HTTPException(status_code=503, detail="Could not allocate batch code")


async def create_batch_txn(
    session: AsyncSession,
    req: BatchCreateRequest,
    settings: Settings,
    performed_by: int = 1,
) -> Batch:
    """Allocate a batch code and create the batch without committing (caller controls transaction)."""
    allocator = BatchCodeAllocator.from_settings(SqlCodeStore.joined(session), settings)
    batch_code = await allocator.allocate(req.production_date)

    batch = Batch(
        batch_code=batch_code,
        product_id=req.product_id,
        production_date=req.production_date,
        production_source=req.production_source,
        total_units=req.total_units,
        status="PLANNED",
        notes=req.notes,
        co_packer_partner_id=req.co_packer_partner_id,
        co_packer_lot_number=req.co_packer_lot_number,
        co_packer_receiving_date=req.co_packer_receiving_date,
        created_by=performed_by,
    )
    session.add(batch)
    await session.flush()
    return batch

@router.post("/batches", status_code=201)
async def create_batch(
    req: BatchCreateRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    try:
        batch = await create_batch_txn(session, req, settings, performed_by=req.performed_by)
        await session.commit()
    except (InvalidInputError, ExhaustionError, StoreError) as e:
        await session.rollback()
        logger.warning("batch.create_failed", production_date=str(req.production_date), error=str(e))
        raise _http_error(e) from e

    logger.info("batch.created", batch_id=batch.id, batch_code=batch.batch_code)
    return _batch_out(batch)

@router.get("/batches/{batch_code}")
async def get_batch(batch_code: str, session: AsyncSession = Depends(get_session)):
    batch = (await session.execute(select(Batch).where(Batch.batch_code == batch_code))).scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")
    return _batch_out(batch)

@router.post("/batches/{batch_code}/cancel")
async def cancel_batch(batch_code: str, session: AsyncSession = Depends(get_session)):
    batch = (await session.execute(
        select(Batch).where(Batch.batch_code == batch_code).with_for_update()
    )).scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")
    if batch.status in ("CANCELLED", "RELEASED"):
        raise HTTPException(status_code=400, detail=f"Batch cannot be cancelled (status={batch.status})")

    # The batch code itself stays in batch_codes and is never handed out again.
    batch.status = "CANCELLED"
    batch.cancelled_at = datetime.now(timezone.utc)
    await session.commit()
    return _batch_out(batch)

class BatchStatusRequest(BaseModel):
    status: BatchStatus
    performed_by: int = 1

@router.post("/batches/{batch_code}/status")
async def update_batch_status(batch_code: str, req: BatchStatusRequest, session: AsyncSession = Depends(get_session)):
    batch = (await session.execute(
        select(Batch).where(Batch.batch_code == batch_code).with_for_update()
    )).scalar_one_or_none()
    if not batch:
        raise HTTPException(status_code=404, detail="Batch not found")
    if req.status not in VALID_TRANSITIONS[batch.status]:
        raise HTTPException(status_code=400, detail=f"Cannot transition from {batch.status} to {req.status}")

    previous = batch.status
    batch.status = req.status
    await session.commit()
    logger.info("batch.status_changed", batch_code=batch_code, from_status=previous,
                to_status=req.status, performed_by=req.performed_by)
    return _batch_out(batch)

@router.get("/batch-codes")
async def list_batch_codes(
    production_date: date = Query(alias="date"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    try:
        key = group_key_for(production_date, settings.BATCH_CODE_TIMEZONE)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    rows = (await session.execute(
        select(BatchCode).where(BatchCode.group_key == key).order_by(BatchCode.code.asc())
    )).scalars().all()
    return {
        "group_key": key,
        "codes": [{"code": r.code, "issued_at": r.issued_at} for r in rows],
    }
