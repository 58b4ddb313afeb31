from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from status_api.db import get_store, not_found
from status_api.status_policy import GRN
from status_api.transitions import change_status, create_grn

router = APIRouter(prefix="/grn", tags=["grn"])


class CreateGrnBody(BaseModel):
    po_id: str | None = Field(default=None, description="Purchase order being received")
    received_date: datetime | None = Field(default=None, description="Defaults to now")
    status: Any = Field(default="Received", description="Received or Rejected")


class StatusBody(BaseModel):
    status: Any = None


@router.get("")
async def list_grns(
    po_id: str | None = None,
    status: str | None = None,
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    store=Depends(get_store),
) -> JSONResponse:
    grns, count = await store.list_grns(po_id=po_id, status=status, limit=limit, offset=offset)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({"grns": grns, "count": count, "limit": limit, "offset": offset}),
    )


@router.post("")
async def post_grn(body: CreateGrnBody, store=Depends(get_store)) -> JSONResponse:
    """
    Record receipt of goods against a purchase order.
    A Received GRN moves the purchase order's inbound status to Delivered.
    """
    result = await create_grn(store, body.po_id, body.status, body.received_date)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({"message": "GRN created successfully", "grn": result.document}),
    )


@router.get("/{grn_id}")
async def get_grn(grn_id: str, store=Depends(get_store)) -> JSONResponse:
    grn = await store.fetch_document(GRN, grn_id)
    if grn is None:
        raise not_found(GRN)
    return JSONResponse(status_code=200, content=jsonable_encoder({"grn": grn}))


@router.patch("/{grn_id}/status")
async def update_grn_status(grn_id: str, body: StatusBody, store=Depends(get_store)) -> JSONResponse:
    """Rejecting a GRN moves its purchase order's inbound status back to Created."""
    result = await change_status(store, GRN, grn_id, body.status)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({
            "message": "GRN status updated successfully",
            "grn": result.document,
            "previous_status": result.previous_status,
        }),
    )
