from typing import Any

from fastapi import APIRouter, Depends, Header
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from status_api.db import get_store
from status_api.status_policy import FULFILMENT_ORDER, LIFECYCLE_ORDER, ORDER_STATUS_DESCRIPTIONS, ROLES, StatusError
from status_api.transitions import cancel_order, change_status, order_transitions

router = APIRouter(prefix="/orders", tags=["orders"])


class Unauthorized(StatusError):
    status_code = 401


class Actor(BaseModel):
    role: str
    id: str | None = None


def get_actor(
    x_actor_role: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
) -> Actor:
    """Identity forwarded by the auth gateway in front of this service."""
    if x_actor_role not in ROLES:
        raise Unauthorized("Unauthorized")
    return Actor(role=x_actor_role, id=x_actor_id)


class StatusBody(BaseModel):
    status: Any = Field(default=None, description="Requested status")


class LifecycleStatusBody(BaseModel):
    status: Any = Field(default=None, description="Requested lifecycle status")
    reason: str | None = Field(default=None, description="Stored as status_reason")


class CancelBody(BaseModel):
    reason: str | None = None


@router.patch("/{order_id}/status")
async def update_order_status(order_id: str, body: StatusBody, store=Depends(get_store)) -> JSONResponse:
    """Fulfilment status: Received, Processed, Dispatched, Delivered."""
    result = await change_status(store, FULFILMENT_ORDER, order_id, body.status)
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({
            "message": "Order status updated successfully",
            "order": result.document,
            "previous_status": result.previous_status,
        }),
    )


@router.patch("/{order_id}/lifecycle-status")
async def update_order_lifecycle_status(
    order_id: str,
    body: LifecycleStatusBody,
    actor: Actor = Depends(get_actor),
    store=Depends(get_store),
) -> JSONResponse:
    """Role-keyed lifecycle status (pending ... delivered)."""
    extra = {"status_reason": body.reason} if body.reason else None
    result = await change_status(
        store, LIFECYCLE_ORDER, order_id, body.status, role=actor.role, actor_id=actor.id, extra=extra
    )
    return JSONResponse(
        status_code=200,
        content=jsonable_encoder({
            "message": "Order status updated successfully",
            "order": result.document,
            "previous_status": result.previous_status,
        }),
    )


@router.get("/{order_id}/available-transitions")
async def get_available_transitions(
    order_id: str,
    actor: Actor = Depends(get_actor),
    store=Depends(get_store),
) -> JSONResponse:
    info = await order_transitions(store, order_id, actor.role, actor.id)
    current = info["current_status"]
    return JSONResponse(
        status_code=200,
        content={
            "current_status": current,
            "current_status_description": ORDER_STATUS_DESCRIPTIONS.get(current, current),
            "available_transitions": info["transitions"],
            "user_role": actor.role,
            "order_id": order_id,
        },
    )


@router.post("/{order_id}/cancel")
async def cancel(
    order_id: str,
    body: CancelBody | None = None,
    actor: Actor = Depends(get_actor),
    store=Depends(get_store),
) -> JSONResponse:
    result = await cancel_order(store, order_id, actor.role, actor.id, body.reason if body else None)
    return JSONResponse(
        status_code=200,
        content={
            "message": "Order cancelled successfully",
            "orderId": order_id,
            "status": result.document["status"],
            "reason": result.document.get("status_reason"),
            "previous_status": result.previous_status,
        },
    )
