"""
Document status policy: status vocabularies, permitted transitions, terminal states and the GRN cascade.
Pure decision logic; callers load the current status and persist the result.
"""

# Document kinds. The two order vocabularies are separate policies and never interchangeable:
# FULFILMENT_ORDER is what the status endpoint accepts, LIFECYCLE_ORDER is the role-keyed table.
FULFILMENT_ORDER = "order"
LIFECYCLE_ORDER = "lifecycle_order"
PURCHASE_ORDER = "purchase_order"
GRN = "grn"
RETURN_ORDER = "return_order"

ROLES = ("customer", "vendor", "admin", "delivery")

STATUS_VALUES: dict[str, list[str]] = {
    FULFILMENT_ORDER: ["Received", "Processed", "Dispatched", "Delivered"],
    LIFECYCLE_ORDER: [
        "pending",
        "approved",
        "preparing",
        "ready",
        "in_transit",
        "delivered",
        "rejected",
        "cancelled",
        "failed",
    ],
    PURCHASE_ORDER: ["Draft", "Approved", "Cancelled", "Completed"],
    GRN: ["Received", "Rejected"],
    RETURN_ORDER: ["Received", "Processed"],
}

# Purchase order inbound status, written by the GRN cascade
INBOUND_STATUS_VALUES = ["Created", "Approved", "Dispatched", "Delivered", "Completed", "Cancelled"]

TERMINAL_STATUSES: dict[str, frozenset[str]] = {
    PURCHASE_ORDER: frozenset({"Completed"}),
    LIFECYCLE_ORDER: frozenset({"delivered", "rejected", "cancelled"}),
}

# Current status -> role -> allowed next statuses
ORDER_LIFECYCLE_TRANSITIONS: dict[str, dict[str, list[str]]] = {
    "pending": {
        "vendor": ["approved", "rejected"],
        "admin": ["approved", "rejected", "cancelled"],
    },
    "approved": {
        "vendor": ["preparing", "cancelled"],
        "admin": ["preparing", "cancelled"],
        "customer": ["cancelled"],
    },
    "preparing": {
        "vendor": ["ready", "cancelled"],
        "admin": ["ready", "cancelled"],
    },
    "ready": {
        "delivery": ["in_transit"],
        "admin": ["in_transit", "cancelled"],
    },
    "in_transit": {
        "delivery": ["delivered", "failed"],
        "admin": ["delivered", "failed"],
    },
    "delivered": {},  # terminal
    "rejected": {},  # terminal
    "cancelled": {},  # terminal
    "failed": {
        "admin": ["in_transit"],  # delivery retry
    },
}

ORDER_STATUS_DESCRIPTIONS: dict[str, str] = {
    "pending": "Order is waiting for vendor approval",
    "approved": "Order has been approved by the vendor",
    "preparing": "Order is being prepared",
    "ready": "Order is ready for pickup by delivery person",
    "in_transit": "Order is on the way to the customer",
    "delivered": "Order has been successfully delivered",
    "rejected": "Order was rejected by the vendor",
    "cancelled": "Order was cancelled",
    "failed": "Delivery attempt failed",
}

REASON_REQUIRED_STATUSES = frozenset({"rejected", "cancelled", "failed"})

# Role -> lifecycle statuses from which that role may cancel through the cancel endpoint
CANCELLABLE_FROM: dict[str, frozenset[str]] = {
    "customer": frozenset({"pending", "approved"}),
    "vendor": frozenset({"pending", "approved", "preparing"}),
    "admin": frozenset({"pending", "approved", "preparing", "ready", "in_transit", "failed"}),
}

DISPLAY_NAMES: dict[str, str] = {
    FULFILMENT_ORDER: "order",
    LIFECYCLE_ORDER: "order",
    PURCHASE_ORDER: "purchase order",
    GRN: "GRN",
    RETURN_ORDER: "return order",
}


class StatusError(Exception):
    """Base for policy errors; each maps to a client-facing 4xx response."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_content(self) -> dict:
        return {"error": self.message}


class InvalidStatus(StatusError):
    """Requested status is not a member of the kind's vocabulary."""

    def __init__(self, kind: str, requested, message: str = "Invalid status"):
        self.kind = kind
        self.requested = requested
        self.valid_statuses = list(STATUS_VALUES[kind])
        super().__init__(message)

    def to_content(self) -> dict:
        return {"error": self.message, "validStatuses": self.valid_statuses}


class TerminalStateViolation(StatusError):
    """Attempted to leave a terminal status."""

    def __init__(self, kind: str, current: str):
        self.kind = kind
        self.current = current
        if kind == PURCHASE_ORDER:
            message = "Cannot change status of a completed purchase order"
        else:
            message = f"Cannot change status of a {current} {DISPLAY_NAMES[kind]}"
        super().__init__(message)


class TransitionNotAllowed(StatusError):
    """The lifecycle table has no edge from current to requested for this role."""

    def __init__(self, current: str, requested: str, role: str | None, allowed: list[str]):
        self.current = current
        self.requested = requested
        self.role = role
        self.allowed = allowed
        super().__init__(f"Cannot change order status from '{current}' to '{requested}' as {role or 'anonymous'}")

    def to_content(self) -> dict:
        return {"error": self.message, "availableTransitions": self.allowed}


def validate_status(kind: str, requested) -> str:
    """Return requested if it belongs to kind's vocabulary, else raise InvalidStatus."""
    if kind not in STATUS_VALUES:
        raise ValueError(f"Unknown document kind: {kind}")
    if not isinstance(requested, str) or requested not in STATUS_VALUES[kind]:
        message = "Invalid PO status" if kind == PURCHASE_ORDER else "Invalid status"
        raise InvalidStatus(kind, requested, message)
    return requested


def allowed_lifecycle_targets(current: str, role: str | None) -> list[str]:
    if role is None:
        return []
    return list(ORDER_LIFECYCLE_TRANSITIONS.get(current, {}).get(role, []))


def is_terminal(kind: str, status: str) -> bool:
    return status in TERMINAL_STATUSES.get(kind, frozenset())


def can_transition(kind: str, current: str, requested: str, role: str | None = None) -> bool:
    """True if requested is allowed after current for this kind (and role, for lifecycle orders)."""
    if requested not in STATUS_VALUES.get(kind, []):
        return False
    if kind == LIFECYCLE_ORDER:
        return requested in allowed_lifecycle_targets(current, role)
    if is_terminal(kind, current):
        # Completed -> Completed is an idempotent no-op
        return requested == current
    return True


def check_transition(kind: str, current: str, requested, role: str | None = None) -> str:
    """Validate requested and raise the matching StatusError if the move is not permitted."""
    requested = validate_status(kind, requested)
    if can_transition(kind, current, requested, role):
        return requested
    if is_terminal(kind, current):
        raise TerminalStateViolation(kind, current)
    raise TransitionNotAllowed(current, requested, role, allowed_lifecycle_targets(current, role))


def available_transitions(current: str, role: str | None) -> list[dict]:
    return [
        {
            "status": status,
            "description": ORDER_STATUS_DESCRIPTIONS.get(status, status),
            "requires_reason": status in REASON_REQUIRED_STATUSES,
        }
        for status in allowed_lifecycle_targets(current, role)
    ]


def can_cancel(role: str, current: str) -> bool:
    return current in CANCELLABLE_FROM.get(role, frozenset())


def grn_cascade(previous: str | None, new: str) -> str | None:
    """
    Inbound status to write on the GRN's purchase order, or None.
    previous is None when the GRN is being created. Re-sending Received repeats the Delivered write,
    which repairs a cascade that failed earlier.
    """
    if new == "Received":
        return "Delivered"
    if new == "Rejected" and previous is not None and previous != "Rejected":
        return "Created"
    return None
