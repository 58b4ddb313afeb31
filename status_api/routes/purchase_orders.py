from typing import Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from status_api.db import get_store, not_found
from status_api.status_policy import PURCHASE_ORDER
from status_api.transitions import change_status

router = APIRouter(prefix="/purchase-orders", tags=["purchase-orders"])


class PoStatusBody(BaseModel):
    po_status: Any = None


@router.get("/{po_id}")
async def get_purchase_order(po_id: str, store=Depends(get_store)) -> JSONResponse:
    purchase_order = await store.fetch_purchase_order(po_id)
    if purchase_order is None:
        raise not_found(PURCHASE_ORDER)
    return JSONResponse(status_code=200, content=jsonable_encoder({"purchase_order": purchase_order}))


@router.patch("/{po_id}/status")
async def update_purchase_order_status(po_id: str, body: PoStatusBody, store=Depends(get_store)) -> JSONResponse:
    """Draft, Approved, Cancelled, Completed. Completed purchase orders are immutable."""
    result = await change_status(store, PURCHASE_ORDER, po_id, body.po_status)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({
            "message": "Purchase order status updated successfully",
            "purchase_order": result.document,
            "previous_status": result.previous_status,
        }),
    )
