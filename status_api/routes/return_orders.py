from typing import Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from status_api.db import get_store
from status_api.status_policy import RETURN_ORDER
from status_api.transitions import change_status

router = APIRouter(prefix="/return-orders", tags=["return-orders"])


class StatusBody(BaseModel):
    status: Any = None


@router.patch("/{return_order_id}/status")
async def update_return_order_status(
    return_order_id: str,
    body: StatusBody,
    store=Depends(get_store),
) -> JSONResponse:
    result = await change_status(store, RETURN_ORDER, return_order_id, body.status)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({
            "message": "Return order status updated successfully",
            "return_order": result.document,
            "previous_status": result.previous_status,
        }),
    )
