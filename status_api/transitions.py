"""
Status change flow shared by every document route:
validate requested status -> load document -> check transition -> conditional write -> GRN cascade.
The cascade is best effort: a failure is logged and counted but never undoes the primary write.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from status_api.db import TABLES, not_found
from status_api.metrics import (
    status_cascade_failures_total,
    status_cascades_total,
    status_rejections_total,
    status_transitions_total,
)
from status_api.status_policy import (
    CANCELLABLE_FROM,
    GRN,
    LIFECYCLE_ORDER,
    PURCHASE_ORDER,
    REASON_REQUIRED_STATUSES,
    STATUS_VALUES,
    StatusError,
    TerminalStateViolation,
    available_transitions,
    can_cancel,
    check_transition,
    grn_cascade,
    is_terminal,
    validate_status,
)

logger = logging.getLogger(__name__)

NO_REASON = "No reason provided"


class Forbidden(StatusError):
    status_code = 403


class MissingField(StatusError):
    status_code = 400


@dataclass
class TransitionResult:
    document: dict
    previous_status: str | None
    cascaded_status: str | None = None


def _rejected(kind: str, exc: StatusError) -> None:
    status_rejections_total.labels(entity=kind, reason=type(exc).__name__).inc()
    logger.info("Rejected %s status change: %s", kind, exc.message)


def check_order_access(order: dict, role: str, actor_id: str | None, action: str = "view") -> None:
    """Customers see their own orders; delivery sees orders assigned to them or ready for pickup."""
    if role == "customer" and order.get("customer_id") != actor_id:
        raise Forbidden(f"You don't have permission to {action} this order")
    if role == "delivery" and order.get("delivery_boy_id") != actor_id and order.get("status") != "ready":
        raise Forbidden(f"You don't have permission to {action} this order")


def _lifecycle_extra(current: str, requested: str, role: str | None, actor_id: str | None, extra: dict | None) -> dict:
    """Columns written with a lifecycle status: the reason, and the courier on pickup."""
    extra = dict(extra or {})
    if requested in REASON_REQUIRED_STATUSES and not extra.get("status_reason"):
        raise MissingField(f"A reason is required to move an order to '{requested}'")
    if role == "delivery" and current == "ready" and requested == "in_transit":
        if not actor_id:
            raise MissingField("Delivery actor id is required to pick up an order")
        extra["delivery_boy_id"] = actor_id
    return extra


async def _apply_cascade(store, po_id: str, status: str | None) -> str | None:
    if status is None:
        return None
    try:
        applied = await store.set_inbound_status(po_id, status)
    except Exception:
        status_cascade_failures_total.inc()
        logger.exception("Cascade to purchase order %s (inbound_status=%s) failed", po_id, status)
        return None
    if not applied:
        status_cascade_failures_total.inc()
        logger.warning("Cascade skipped: purchase order %s not found", po_id)
        return None
    status_cascades_total.labels(to_status=status).inc()
    logger.info("Cascaded purchase order %s inbound_status -> %s", po_id, status)
    return status


async def change_status(
    store,
    kind: str,
    doc_id: str,
    requested,
    role: str | None = None,
    actor_id: str | None = None,
    extra: dict | None = None,
) -> TransitionResult:
    _, column = TABLES[kind]
    try:
        validate_status(kind, requested)
        document = await store.fetch_document(kind, doc_id)
        if document is None:
            raise not_found(kind)
        if kind == LIFECYCLE_ORDER:
            check_order_access(document, role, actor_id, action="update")
        current = document[column]
        check_transition(kind, current, requested, role)
        if kind == LIFECYCLE_ORDER:
            extra = _lifecycle_extra(current, requested, role, actor_id, extra)
        updated = await store.compare_and_set_status(kind, doc_id, current, requested, extra)
    except StatusError as e:
        _rejected(kind, e)
        raise

    status_transitions_total.labels(entity=kind, to_status=requested).inc()
    logger.info("%s %s status %s -> %s", kind, doc_id, current, requested)

    cascaded = None
    if kind == GRN:
        cascaded = await _apply_cascade(store, document["po_id"], grn_cascade(current, requested))
    return TransitionResult(updated, current, cascaded)


async def create_grn(
    store,
    po_id: str | None,
    status="Received",
    received_date: datetime | None = None,
) -> TransitionResult:
    try:
        if not po_id:
            raise MissingField("Purchase order ID is required")
        validate_status(GRN, status)
        if await store.fetch_document(PURCHASE_ORDER, po_id) is None:
            raise not_found(PURCHASE_ORDER)
    except StatusError as e:
        _rejected(GRN, e)
        raise

    grn = await store.insert_grn(po_id, status, received_date)
    status_transitions_total.labels(entity=GRN, to_status=status).inc()
    logger.info("Created GRN %s for purchase order %s with status %s", grn["id"], po_id, status)

    cascaded = await _apply_cascade(store, po_id, grn_cascade(None, status))
    return TransitionResult(grn, None, cascaded)


def _cancel_rule_message(role: str) -> str:
    ordered = [s for s in STATUS_VALUES[LIFECYCLE_ORDER] if s in CANCELLABLE_FROM[role]]
    quoted = [f"'{s}'" for s in ordered]
    if len(quoted) <= 2:
        allowed = " or ".join(quoted)
    else:
        allowed = ", ".join(quoted[:-1]) + ", or " + quoted[-1]
    return f"Orders can only be cancelled when in {allowed} status"


async def cancel_order(
    store,
    order_id: str,
    role: str,
    actor_id: str | None = None,
    reason: str | None = None,
) -> TransitionResult:
    reason = reason or NO_REASON
    try:
        order = await store.fetch_document(LIFECYCLE_ORDER, order_id)
        if order is None:
            raise not_found(LIFECYCLE_ORDER)
        if role not in CANCELLABLE_FROM:
            raise Forbidden("You don't have permission to cancel this order")
        check_order_access(order, role, actor_id, action="cancel")
        current = order["status"]
        if not can_cancel(role, current):
            if is_terminal(LIFECYCLE_ORDER, current):
                raise TerminalStateViolation(LIFECYCLE_ORDER, current)
            raise StatusError(_cancel_rule_message(role))
        updated = await store.compare_and_set_status(
            LIFECYCLE_ORDER, order_id, current, "cancelled", {"status_reason": reason}
        )
    except StatusError as e:
        _rejected(LIFECYCLE_ORDER, e)
        raise

    status_transitions_total.labels(entity=LIFECYCLE_ORDER, to_status="cancelled").inc()
    logger.info("Order %s cancelled by %s from %s: %s", order_id, role, current, reason)
    return TransitionResult(updated, current)


async def order_transitions(store, order_id: str, role: str, actor_id: str | None = None) -> dict:
    order = await store.fetch_document(LIFECYCLE_ORDER, order_id)
    if order is None:
        raise not_found(LIFECYCLE_ORDER)
    check_order_access(order, role, actor_id)
    return {
        "current_status": order["status"],
        "transitions": available_transitions(order["status"], role),
    }
