# ==== ORDER STATUS VOCABULARY ==== #

"""
Closed status vocabulary and well-known label keys.

An order's lifecycle status lives on the commerce platform as a single flag
label out of ``STATUS_LABELS``. Dates and the carrier tracking token live in
keyed ``key:value`` labels.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle status decoded from the status flag label."""

    PENDING = "pending"
    ORDER_READY = "order_ready"
    CUSTOMER_CONFIRMED = "customer_confirmed"
    READY_TO_SHIP = "ready_to_ship"
    ON_HOLD = "on_hold"
    SHIPPED = "shipped"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.FULFILLED, OrderStatus.CANCELLED)


# Flag labels that encode a status; PENDING has no label.
STATUS_LABELS: dict[str, OrderStatus] = {
    status.value: status for status in OrderStatus if status is not OrderStatus.PENDING
}

# Spellings written by the manual bulk-edit path.
STATUS_ALIASES: dict[str, OrderStatus] = {
    "order-ready": OrderStatus.ORDER_READY,
    "confirmed": OrderStatus.CUSTOMER_CONFIRMED,
    "ready-to-ship": OrderStatus.READY_TO_SHIP,
}


# --► STAGE ORDERING
# Linear position of each status on the happy path. ON_HOLD sits beside
# ORDER_READY; CANCELLED is handled separately.
STAGE_RANK: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.ORDER_READY: 1,
    OrderStatus.ON_HOLD: 1,
    OrderStatus.CUSTOMER_CONFIRMED: 2,
    OrderStatus.READY_TO_SHIP: 3,
    OrderStatus.SHIPPED: 4,
    OrderStatus.FULFILLED: 5,
}


# ==== LABEL KEYS ==== #


class LabelKey:
    """Keys of the keyed labels this core reads or writes."""

    ORDER_READY_DATE = "order_ready_date"
    MOVED_TO_ON_HOLD = "moved_to_on_hold"
    SHIPPING_DATE = "shipping_date"
    FULFILLED_AT = "fulfilled_at"
    CANCELLED_DATE = "cancelled_date"
    SHIPPING_BARCODE = "shipping_barcode"
    NOTIFIED_ON_HOLD = "notified_on_hold"
    NOTIFIED_CANCELLED = "notified_cancelled"
    ON_HOLD_REASON = "on_hold_reason"


# Guard keys written by the previous notification integration.
KEY_ALIASES: dict[str, str] = {
    "discord_notified_on_hold": LabelKey.NOTIFIED_ON_HOLD,
    "discord_notified_cancelled": LabelKey.NOTIFIED_CANCELLED,
}

NO_CONFIRMATION_REASON = "no_confirmation"


# Key whose date is the "status since" stamp of each status.
STATUS_SINCE_KEY: dict[OrderStatus, str] = {
    OrderStatus.ORDER_READY: LabelKey.ORDER_READY_DATE,
    OrderStatus.ON_HOLD: LabelKey.MOVED_TO_ON_HOLD,
    OrderStatus.SHIPPED: LabelKey.SHIPPING_DATE,
    OrderStatus.FULFILLED: LabelKey.FULFILLED_AT,
    OrderStatus.CANCELLED: LabelKey.CANCELLED_DATE,
}


class Flag:
    """Non-status flag labels with meaning to this core."""

    PRIORITY = "priority"
    NO_REPLY_CANCELLED = "no_reply_cancelled"
    DELETED = "deleted"
